"""Slack bot for Jenkins X pipelines - Main package.

Watches PipelineActivity resources in a namespace and keeps one Slack message
per build up to date, mentioning the commit author when they can be found.

Modules:
    models - Data models (dataclasses)
    api - Slack and cluster clients
    resolver - Commit author to Slack user resolution
    watcher - PipelineActivity change stream
    formatter - Slack message rendering
    correlator - Create-or-edit decisions per build
    dispatcher - Rate-limited, retrying Slack calls
    engine - Watch and worker threads
    config - Configuration
"""

from .config import BotConfig, DispatchConfig, WatchConfig
from .engine import WatchEngine
from .resolver import SlackUserResolver

__all__ = [
    'BotConfig',
    'DispatchConfig',
    'WatchConfig',
    'WatchEngine',
    'SlackUserResolver',
]

__version__ = '1.0.0'
