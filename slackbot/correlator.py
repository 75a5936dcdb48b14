"""
Notification Correlator

Decides, for each change event, whether to post a new Slack message or edit
the one already describing the build.

Per correlation key the lifecycle is:

    Absent -> Posted -> Updated* -> terminal (frozen)

A key freezes once a render reflecting a terminal status has been delivered,
or pauses after a permanent Slack failure. Frozen keys make no further calls.
"""

import logging
import threading
from typing import Callable, Dict, Optional

from .dispatcher import Dispatcher
from .errors import DispatchError
from .formatter import format_activity
from .models import (
    ChangeEvent,
    ChangeType,
    NotificationRecord,
    NotificationState,
    Payload,
    PipelineActivity,
    ResolvedUser,
)
from .resolver import SlackUserResolver
from .result import Result
from .source_config import SourceConfigs
from .store import CorrelationKey, InMemoryNotificationRepository, NotificationRepository

logger = logging.getLogger(__name__)

Formatter = Callable[[PipelineActivity, ResolvedUser, str], Payload]


class NotificationCorrelator:
    """
    Owns the correlation records and applies change events to them.

    Usage:
        correlator = NotificationCorrelator(dispatcher, resolver, source_configs, "#builds")
        result = correlator.handle(event)
        if result.dispatched:
            ...
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        resolver: SlackUserResolver,
        source_configs: Optional[SourceConfigs] = None,
        default_channel: str = "",
        dashboard_url: str = "",
        repository: Optional[NotificationRepository] = None,
        formatter: Formatter = format_activity,
    ):
        self.dispatcher = dispatcher
        self.resolver = resolver
        self.source_configs = source_configs if source_configs is not None else SourceConfigs()
        self.default_channel = default_channel
        self.dashboard_url = dashboard_url
        self.repository = repository if repository is not None else InMemoryNotificationRepository()
        self.formatter = formatter
        self._key_locks: Dict[CorrelationKey, threading.Lock] = {}
        self._key_locks_guard = threading.Lock()

    def _lock_for(self, key: CorrelationKey) -> threading.Lock:
        with self._key_locks_guard:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[key] = lock
            return lock

    def handle(self, event: ChangeEvent) -> Result:
        """
        Apply one change event.

        Args:
            event: Change emitted by the watcher

        Returns:
            Result describing what was sent (if anything)
        """
        activity = event.activity
        if event.type == ChangeType.DELETED:
            return Result.skipped(f"{activity.identifier} deleted")

        settings = self.source_configs.lookup(activity.owner, activity.repository)
        if not settings.notify:
            return Result.skipped(f"notifications disabled for {activity.full_repository}")

        with self._lock_for(activity.correlation_key):
            record = self.repository.get(activity.correlation_key)
            if record is None:
                return self._create(event, settings.channel or self.default_channel)
            return self._update(event, record)

    def _render(self, activity: PipelineActivity) -> Payload:
        commit = activity.commit
        user = self.resolver.resolve(commit.author_name, commit.author_email)
        return self.formatter(activity, user, self.dashboard_url)

    def _create(self, event: ChangeEvent, channel: str) -> Result:
        activity = event.activity
        if not channel:
            logger.warning("No Slack channel configured for %s, skipping %s",
                           activity.full_repository, activity.identifier)
            return Result.skipped(f"no channel for {activity.full_repository}")

        payload = self._render(activity)
        try:
            message_id = self.dispatcher.send(channel, None, payload)
        except DispatchError as e:
            # Stays absent; the next event for this key tries again
            logger.error("Failed to post notification for %s #%s: %s",
                         activity.identifier, activity.build, e)
            return Result.error(str(e))

        record = NotificationRecord(
            key=activity.correlation_key,
            channel=channel,
            message_id=message_id,
            content_hash=payload.content_hash,
            state=NotificationState.POSTED,
            terminal=activity.is_terminal,
            last_sequence=event.sequence,
        )
        self.repository.save(record)
        logger.info("Posted notification for %s #%s (%s) to %s",
                    activity.identifier, activity.build, activity.status.value, channel)
        return Result.created(record)

    def _update(self, event: ChangeEvent, record: NotificationRecord) -> Result:
        activity = event.activity
        if event.sequence and event.sequence <= record.last_sequence:
            return Result.skipped(f"stale event {event.sequence} for {activity.identifier}", record)
        if record.terminal:
            return Result.skipped(f"{activity.identifier} #{activity.build} already final", record)
        if record.paused:
            return Result.skipped(f"{activity.identifier} #{activity.build} paused", record)

        payload = self._render(activity)
        content_hash = payload.content_hash
        if content_hash == record.content_hash:
            record.last_sequence = max(record.last_sequence, event.sequence)
            self.repository.save(record)
            return Result.unchanged(record)

        try:
            self.dispatcher.send(record.channel, record.message_id, payload)
        except DispatchError as e:
            if not e.transient:
                record.paused = True
                self.repository.save(record)
                logger.error("Pausing notifications for %s #%s: %s",
                             activity.identifier, activity.build, e)
            else:
                logger.warning("Failed to update notification for %s #%s: %s",
                               activity.identifier, activity.build, e)
            return Result.error(str(e), record)

        record.content_hash = content_hash
        record.state = NotificationState.UPDATED
        record.terminal = activity.is_terminal
        record.last_sequence = max(record.last_sequence, event.sequence)
        self.repository.save(record)
        logger.debug("Updated notification for %s #%s (%s)",
                     activity.identifier, activity.build, activity.status.value)
        return Result.updated(record)
