"""
Monitoring for the Slack bot

Provides:
- Sentry error tracking with activity context
- Error capture decorator for the worker and watch loops
"""

from .decorators import capture_errors
from .sentry import (
    init_sentry,
    set_activity_context,
    add_breadcrumb,
    capture_exception,
)

__all__ = [
    'capture_errors',
    'init_sentry',
    'set_activity_context',
    'add_breadcrumb',
    'capture_exception',
]
