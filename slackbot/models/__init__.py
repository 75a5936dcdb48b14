"""Data models - Pipeline activities and notification records."""

from .activity import (
    ChangeEvent,
    ChangeType,
    CommitInfo,
    PipelineActivity,
    Stage,
    Status,
    TERMINAL_STATUSES,
)
from .notification import (
    NotificationRecord,
    NotificationState,
    Payload,
    ResolutionMethod,
    ResolvedUser,
)

__all__ = [
    # Activity
    'ChangeEvent',
    'ChangeType',
    'CommitInfo',
    'PipelineActivity',
    'Stage',
    'Status',
    'TERMINAL_STATUSES',

    # Notification
    'NotificationRecord',
    'NotificationState',
    'Payload',
    'ResolutionMethod',
    'ResolvedUser',
]
