"""Error types shared across the bot."""

from typing import Optional


class SlackBotError(Exception):
    """Base class for all bot errors."""
    pass


class ConfigError(SlackBotError):
    """Raised at startup when required configuration is missing or invalid."""
    pass


# Slack error codes that are worth retrying
TRANSIENT_SLACK_ERRORS = frozenset({
    "ratelimited",
    "rate_limited",
    "internal_error",
    "fatal_error",
    "service_unavailable",
    "request_timeout",
})


class SlackApiError(SlackBotError):
    """An error returned by (or while talking to) the Slack Web API."""

    def __init__(
        self,
        error: str,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ):
        self.error = error
        self.status_code = status_code
        self.retry_after = retry_after
        super().__init__(f"slack API error: {error} (status={status_code})")

    @property
    def transient(self) -> bool:
        """True for rate limiting, 5xx responses and network failures."""
        if self.status_code is not None and (self.status_code == 429 or self.status_code >= 500):
            return True
        return self.error in TRANSIENT_SLACK_ERRORS or self.error == "network_error"


class DispatchError(SlackBotError):
    """A create or update call that could not be delivered."""

    def __init__(self, message: str, transient: bool = False):
        super().__init__(message)
        self.transient = transient
