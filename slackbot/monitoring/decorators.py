"""
Monitoring Decorators

Provides decorators for automatic error capture.
"""

import functools
import logging
from typing import Any, Callable, Dict, Optional, TypeVar, cast

from .sentry import add_breadcrumb, capture_exception

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def capture_errors(
    step_name: Optional[str] = None,
    reraise: bool = True,
    tags: Optional[Dict[str, str]] = None,
) -> Callable[[F], F]:
    """
    Decorator to log exceptions and send them to Sentry.

    Args:
        step_name: Optional step name for context
        reraise: Whether to reraise the exception after capture
        tags: Additional tags to include

    Usage:
        @capture_errors(step_name="handle_event", reraise=False)
        def process(event):
            ...
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            name = step_name or func.__name__

            try:
                return func(*args, **kwargs)

            except Exception as e:
                logger.exception("Unexpected error in %s: %s", name, e)

                error_tags = {"step": name}
                if tags:
                    error_tags.update(tags)

                add_breadcrumb(
                    message=f"{name} failed: {e}",
                    category="slackbot",
                    level="error",
                )
                capture_exception(
                    exception=e,
                    tags=error_tags,
                    extra={"function": func.__name__},
                )

                if reraise:
                    raise

                return None

        return cast(F, wrapper)

    return decorator
