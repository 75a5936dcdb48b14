"""API layer - Slack and cluster communication."""

from .slack import SlackClient, WebSlackClient, MockSlackClient
from .cluster import ClusterClient, KubernetesClusterClient, MockClusterClient, WatchExpired
from .retry import Backoff, RetryStrategy, with_retry

__all__ = [
    'SlackClient',
    'WebSlackClient',
    'MockSlackClient',
    'ClusterClient',
    'KubernetesClusterClient',
    'MockClusterClient',
    'WatchExpired',
    'Backoff',
    'RetryStrategy',
    'with_retry',
]
