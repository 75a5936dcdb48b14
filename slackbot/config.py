"""
Bot Configuration

Loads bot settings from environment variables.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from .errors import ConfigError

DEFAULT_CHANNEL = '#jenkins-x'
DEFAULT_DASHBOARD_INGRESS = 'jx-pipelines-visualizer'
SERVICE_ACCOUNT_NAMESPACE_FILE = '/var/run/secrets/kubernetes.io/serviceaccount/namespace'


def get_namespace(path: str = SERVICE_ACCOUNT_NAMESPACE_FILE) -> str:
    """
    Get the namespace to watch.

    Uses JX_NAMESPACE or NAMESPACE if set, otherwise the namespace of the
    pod's service account when running in-cluster.

    Returns:
        Namespace name, or "" if none could be determined
    """
    namespace = os.getenv('JX_NAMESPACE') or os.getenv('NAMESPACE')
    if namespace:
        return namespace
    try:
        with open(path) as f:
            return f.read().strip()
    except OSError:
        return ''


@dataclass
class DispatchConfig:
    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 30.0
    min_interval: float = 1.0  # seconds between any two Slack calls
    timeout: int = 10


@dataclass
class WatchConfig:
    initial_backoff: float = 1.0
    max_backoff: float = 30.0
    timeout_seconds: int = 300


@dataclass
class BotConfig:
    """Configuration for the watch-and-notify engine."""

    # Slack settings
    slack_token: str = ''
    slack_url: Optional[str] = field(default=None)
    default_channel: str = DEFAULT_CHANNEL

    # Cluster settings
    namespace: str = ''
    dashboard_url: str = ''
    dashboard_ingress: str = DEFAULT_DASHBOARD_INGRESS
    source_config_path: Optional[str] = field(default=None)

    # Engine
    workers: int = 4
    shutdown_timeout: float = 10.0
    identity_cache_ttl: float = 600.0  # 10 minutes
    identity_cache_size: int = 1024

    # Sentry settings
    sentry_dsn: Optional[str] = field(default=None)
    sentry_environment: str = 'production'
    sentry_traces_sample_rate: float = 0.0

    dispatch: DispatchConfig = None
    watch: WatchConfig = None

    def __post_init__(self):
        if self.dispatch is None:
            self.dispatch = DispatchConfig()
        if self.watch is None:
            self.watch = WatchConfig()

    @classmethod
    def from_env(cls) -> 'BotConfig':
        """Create config from environment variables."""
        return cls(
            slack_token=os.getenv('SLACK_TOKEN', ''),
            slack_url=os.getenv('SLACK_URL') or None,
            default_channel=os.getenv('SLACK_CHANNEL', DEFAULT_CHANNEL),
            namespace=get_namespace(),
            dashboard_url=os.getenv('DASHBOARD_URL', ''),
            dashboard_ingress=os.getenv('DASHBOARD_INGRESS', DEFAULT_DASHBOARD_INGRESS),
            source_config_path=os.getenv('SOURCE_CONFIG_PATH') or None,
            workers=int(os.getenv('SLACKBOT_WORKERS', 4)),
            shutdown_timeout=float(os.getenv('SLACKBOT_SHUTDOWN_TIMEOUT', 10.0)),
            identity_cache_ttl=float(os.getenv('IDENTITY_CACHE_TTL', 600.0)),
            sentry_dsn=os.getenv('SENTRY_DSN') or None,
            sentry_environment=os.getenv('SENTRY_ENVIRONMENT', 'production'),
            sentry_traces_sample_rate=float(os.getenv('SENTRY_TRACES_SAMPLE_RATE', 0.0)),
            dispatch=DispatchConfig(
                max_attempts=int(os.getenv('SLACK_MAX_ATTEMPTS', 5)),
                min_interval=float(os.getenv('SLACK_MIN_INTERVAL', 1.0)),
            ),
            watch=WatchConfig(
                timeout_seconds=int(os.getenv('WATCH_TIMEOUT_SECONDS', 300)),
            ),
        )

    def validate(self) -> None:
        """
        Check the settings the bot cannot start without.

        Raises:
            ConfigError: describing the first problem found
        """
        if not self.slack_token:
            raise ConfigError('no $SLACK_TOKEN defined')
        if not self.namespace:
            raise ConfigError('no namespace defined: set $JX_NAMESPACE or run inside the cluster')
        if self.workers < 1:
            raise ConfigError(f'workers must be at least 1, got {self.workers}')
        if self.dispatch.max_attempts < 1:
            raise ConfigError(f'max attempts must be at least 1, got {self.dispatch.max_attempts}')

    @property
    def sentry_enabled(self) -> bool:
        """Check if Sentry tracking is configured."""
        return bool(self.sentry_dsn)
