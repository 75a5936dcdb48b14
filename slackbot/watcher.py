"""
Activity Watcher

Subscribes to PipelineActivity changes in a namespace and yields normalized
change events. The subscription survives dropped connections: the watcher
relists, diffs against what it has already seen and resumes watching, backing
off exponentially between failed attempts.
"""

import dataclasses
import itertools
import logging
import threading
from typing import Dict, Iterator, List, Optional, Set

from .api.cluster import ClusterClient, WatchExpired
from .api.retry import Backoff
from .config import WatchConfig
from .models import ChangeEvent, ChangeType, PipelineActivity

logger = logging.getLogger(__name__)

WATCH_EVENT_TYPES = {
    "ADDED": ChangeType.ADDED,
    "MODIFIED": ChangeType.MODIFIED,
    "DELETED": ChangeType.DELETED,
}


class ActivityWatcher:
    """
    Produces change events for PipelineActivity resources.

    Usage:
        watcher = ActivityWatcher(cluster_client, "jx", stop_event)
        for event in watcher.events():
            queue.put(event)
    """

    def __init__(
        self,
        cluster_client: ClusterClient,
        namespace: str,
        stop_event: Optional[threading.Event] = None,
        config: Optional[WatchConfig] = None,
    ):
        """
        Args:
            cluster_client: Client used to list and watch activities
            namespace: Namespace to watch
            stop_event: Shutdown signal; events() returns once it is set
            config: Backoff and watch timeout settings
        """
        self.cluster_client = cluster_client
        self.namespace = namespace
        self.stop_event = stop_event or threading.Event()
        self.config = config or WatchConfig()
        self.backoff = Backoff(self.config.initial_backoff, self.config.max_backoff)
        # Last-seen snapshot per activity identifier
        self._seen: Dict[str, PipelineActivity] = {}
        # Deleted while still running; kept so a relist does not report them again
        self._gone: Set[str] = set()
        # Until the first listing, builds that already finished are not reported
        self._listed = False
        self._sequence = itertools.count(1)

    @property
    def working_set(self) -> Dict[str, PipelineActivity]:
        return dict(self._seen)

    def events(self) -> Iterator[ChangeEvent]:
        """
        Yield change events until the stop event is set.

        Subscription failures are logged and retried with backoff; they never
        escape this generator.
        """
        resource_version: Optional[str] = None
        while not self.stop_event.is_set():
            try:
                if resource_version is None:
                    items, resource_version = self.cluster_client.list_activities(self.namespace)
                    yield from self._resync(items)
                    self.backoff.reset()

                for event_type, obj in self.cluster_client.watch_activities(
                    self.namespace, resource_version, self.config.timeout_seconds,
                ):
                    if self.stop_event.is_set():
                        return
                    resource_version = (obj.get("metadata") or {}).get("resourceVersion") or resource_version
                    self.backoff.reset()
                    event = self._observe(event_type, obj)
                    if event is not None:
                        yield event

            except WatchExpired as e:
                logger.info("Watch of namespace %s expired (%s), relisting", self.namespace, e)
                resource_version = None
            except Exception as e:
                delay = self.backoff.next_delay()
                logger.warning("Watch of pipeline activities in %s failed: %s; retrying in %.0fs",
                               self.namespace, e, delay)
                if self.stop_event.wait(delay):
                    return

    def _next_event(self, change_type: ChangeType, activity: PipelineActivity) -> ChangeEvent:
        return ChangeEvent(type=change_type, activity=activity, sequence=next(self._sequence))

    def _resync(self, items: List[dict]) -> Iterator[ChangeEvent]:
        """
        Diff a fresh listing against the working set.

        On the first listing, activities that have already finished are only
        recorded: they were reported (or missed) before this process started.
        Activities deleted while running are dropped once a listing no longer
        contains them.
        """
        initial = not self._listed
        self._listed = True
        current: Dict[str, PipelineActivity] = {}
        for item in items:
            activity = self._parse(item)
            if activity is not None:
                current[activity.identifier] = activity

        for identifier in [i for i in self._gone if i not in current]:
            self._gone.discard(identifier)
            self._seen.pop(identifier, None)

        for identifier, activity in current.items():
            self._gone.discard(identifier)
            previous = self._seen.get(identifier)
            if previous is None:
                self._seen[identifier] = activity
                if initial and activity.is_terminal:
                    continue
                yield self._next_event(ChangeType.ADDED, activity)
            elif previous.fingerprint != activity.fingerprint:
                self._seen[identifier] = activity
                yield self._next_event(ChangeType.MODIFIED, activity)

        for identifier in [i for i in self._seen if i not in current and i not in self._gone]:
            activity = self._seen[identifier]
            self._forget(activity)
            yield self._next_event(ChangeType.DELETED, activity)

    def _observe(self, event_type: str, obj: dict) -> Optional[ChangeEvent]:
        change_type = WATCH_EVENT_TYPES.get(event_type)
        if change_type is None:
            logger.debug("Ignoring watch event of type %s", event_type)
            return None
        activity = self._parse(obj)
        if activity is None:
            return None

        previous = self._seen.get(activity.identifier)
        if change_type == ChangeType.DELETED:
            self._forget(activity)
            return self._next_event(change_type, activity)

        if previous is not None and previous.fingerprint == activity.fingerprint:
            return None
        if previous is not None and change_type == ChangeType.ADDED:
            change_type = ChangeType.MODIFIED
        self._gone.discard(activity.identifier)
        self._seen[activity.identifier] = activity
        return self._next_event(change_type, activity)

    def _forget(self, activity: PipelineActivity) -> None:
        """Only terminal activities leave the working set."""
        if activity.is_terminal:
            self._seen.pop(activity.identifier, None)
            self._gone.discard(activity.identifier)
        else:
            self._gone.add(activity.identifier)
            logger.debug("Activity %s deleted while %s", activity.identifier, activity.status.value)

    def _parse(self, obj: dict) -> Optional[PipelineActivity]:
        try:
            activity = PipelineActivity.from_resource(obj)
        except (ValueError, TypeError, AttributeError) as e:
            name = (obj.get("metadata") or {}).get("name") if isinstance(obj, dict) else None
            logger.warning("Skipping malformed pipeline activity %s: %s", name, e)
            return None
        if not activity.namespace:
            activity = dataclasses.replace(activity, namespace=self.namespace)
        return activity
