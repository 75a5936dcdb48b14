"""Result types for notification handling."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .models import NotificationRecord


class ResultStatus(Enum):
    """What handling a change event did."""
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class Result:
    """Standard result of handling one change event."""
    status: ResultStatus
    record: Optional[NotificationRecord] = None
    message: str = ""

    @staticmethod
    def created(record: NotificationRecord) -> 'Result':
        """A new message was posted."""
        return Result(ResultStatus.CREATED, record)

    @staticmethod
    def updated(record: NotificationRecord) -> 'Result':
        """The existing message was edited."""
        return Result(ResultStatus.UPDATED, record)

    @staticmethod
    def unchanged(record: NotificationRecord) -> 'Result':
        """The render matched the last one, so nothing was sent."""
        return Result(ResultStatus.UNCHANGED, record)

    @staticmethod
    def skipped(message: str, record: Optional[NotificationRecord] = None) -> 'Result':
        """Create a skipped result."""
        return Result(ResultStatus.SKIPPED, record, message)

    @staticmethod
    def error(message: str, record: Optional[NotificationRecord] = None) -> 'Result':
        """Create an error result."""
        return Result(ResultStatus.ERROR, record, message)

    @property
    def dispatched(self) -> bool:
        """Check if a Slack call was made and succeeded."""
        return self.status in (ResultStatus.CREATED, ResultStatus.UPDATED)

    @property
    def is_skipped(self) -> bool:
        return self.status == ResultStatus.SKIPPED

    @property
    def is_error(self) -> bool:
        return self.status == ResultStatus.ERROR
