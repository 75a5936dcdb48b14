"""
Sentry Setup and Context Management

Initializes Sentry SDK and provides context enrichment helpers.
"""

import logging
from typing import Any, Dict, Optional

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

from ..config import BotConfig

logger = logging.getLogger(__name__)

# Track initialization state
_sentry_initialized = False


def init_sentry(config: BotConfig) -> bool:
    """
    Initialize Sentry SDK.

    Args:
        config: BotConfig with DSN

    Returns:
        True if initialized successfully
    """
    global _sentry_initialized

    if _sentry_initialized:
        return True

    if not config.sentry_enabled:
        logger.debug("Sentry not configured, skipping initialization")
        return False

    try:
        logging_integration = LoggingIntegration(
            level=logging.INFO,  # Capture INFO and above as breadcrumbs
            event_level=logging.ERROR,  # Send ERROR and above as events
        )

        sentry_sdk.init(
            dsn=config.sentry_dsn,
            environment=config.sentry_environment,
            traces_sample_rate=config.sentry_traces_sample_rate,
            integrations=[logging_integration],
            send_default_pii=False,
            attach_stacktrace=True,
        )

        sentry_sdk.set_tag("namespace", config.namespace)

        _sentry_initialized = True
        logger.debug("Sentry initialized successfully")
        return True

    except Exception as e:
        logger.error("Failed to initialize Sentry: %s", e)
        return False


def set_activity_context(identifier: str, build: str, status: str) -> None:
    """
    Set the pipeline activity being handled, for Sentry events.

    Args:
        identifier: namespace/name of the PipelineActivity
        build: Build number
        status: Current activity status
    """
    if not _sentry_initialized:
        return

    sentry_sdk.set_context("activity", {
        "identifier": identifier,
        "build": build,
        "status": status,
    })
    sentry_sdk.set_tag("activity", identifier)


def add_breadcrumb(
    message: str,
    category: str = "slackbot",
    level: str = "info",
    data: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Add a breadcrumb to the current Sentry scope.

    Args:
        message: Breadcrumb message
        category: Category (watch, dispatch, resolve)
        level: Level (debug, info, warning, error)
        data: Additional data
    """
    if not _sentry_initialized:
        return

    sentry_sdk.add_breadcrumb(
        message=message,
        category=category,
        level=level,
        data=data or {},
    )


def capture_exception(
    exception: BaseException,
    level: str = "error",
    tags: Optional[Dict[str, str]] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """
    Capture an exception and send to Sentry.

    Args:
        exception: The exception to capture
        level: Severity level (error, warning, info)
        tags: Additional tags
        extra: Additional context data

    Returns:
        Sentry event ID if captured, None otherwise
    """
    if not _sentry_initialized:
        return None

    try:
        with sentry_sdk.new_scope() as scope:
            scope.level = level

            if tags:
                for key, value in tags.items():
                    scope.set_tag(key, value)

            if extra:
                for key, value in extra.items():
                    scope.set_extra(key, value)

            return sentry_sdk.capture_exception(exception)

    except Exception as e:
        logger.debug("Failed to capture exception: %s", e)
        return None
