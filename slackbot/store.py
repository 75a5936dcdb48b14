"""Notification store - Correlation records between builds and Slack messages."""

import copy
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from .models import NotificationRecord

CorrelationKey = Tuple[str, str]


class NotificationRepository(ABC):
    """Abstract base for correlation record storage."""

    @abstractmethod
    def get(self, key: CorrelationKey) -> Optional[NotificationRecord]:
        """Retrieve the record for a correlation key."""

    @abstractmethod
    def save(self, record: NotificationRecord) -> None:
        """Save a record (insert or update)."""
        pass

    @abstractmethod
    def get_all(self) -> List[NotificationRecord]:
        """Retrieve all records."""
        pass

    def exists(self, key: CorrelationKey) -> bool:
        return self.get(key) is not None


class InMemoryNotificationRepository(NotificationRepository):
    """Records held for the lifetime of the process.

    Callers get copies, so a record only changes through save().
    """

    def __init__(self):
        self._records: Dict[CorrelationKey, NotificationRecord] = {}
        self._lock = threading.RLock()

    def get(self, key: CorrelationKey) -> Optional[NotificationRecord]:
        with self._lock:
            record = self._records.get(key)
            return copy.copy(record) if record else None

    def save(self, record: NotificationRecord) -> None:
        with self._lock:
            self._records[record.key] = copy.copy(record)

    def get_all(self) -> List[NotificationRecord]:
        with self._lock:
            return [copy.copy(r) for r in self._records.values()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
