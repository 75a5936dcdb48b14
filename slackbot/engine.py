"""
Watch Engine

Runs the watch-and-notify loop: one supervised watch thread feeding a pool of
worker threads. Events are striped onto workers by correlation key so every
build is handled by one worker, in the order the watcher emitted its events.
"""

import dataclasses
import logging
import queue
import threading
import time
import zlib
from collections import Counter
from typing import Dict, List, Optional

from .api.cluster import ClusterClient
from .api.retry import Backoff
from .api.slack import SlackClient
from .config import BotConfig
from .correlator import NotificationCorrelator
from .dispatcher import Dispatcher
from .models import ChangeEvent
from .monitoring import capture_errors, capture_exception, set_activity_context
from .resolver import SlackUserResolver, TTLCache
from .result import Result
from .source_config import SourceConfigs
from .watcher import ActivityWatcher

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.5


def watch_timeout_for(shutdown_timeout: float) -> int:
    """Longest server-side watch timeout that still lets stop() finish in time."""
    return max(1, int(shutdown_timeout / 2))


class WatchEngine:
    """
    Wires the watcher to the correlator and keeps both running.

    Usage:
        engine = WatchEngine.from_config(config, slack_client, cluster_client, source_configs)
        engine.run()          # blocks until engine.stop() is called
    """

    def __init__(
        self,
        watcher: ActivityWatcher,
        correlator: NotificationCorrelator,
        workers: int = 4,
        shutdown_timeout: float = 10.0,
        stop_event: Optional[threading.Event] = None,
        restart_backoff: Optional[Backoff] = None,
    ):
        """
        Args:
            watcher: Source of change events
            correlator: Applies each change event
            workers: Number of worker threads
            shutdown_timeout: Seconds stop() waits for in-flight work
            stop_event: Shared shutdown signal (also given to watcher and dispatcher)
            restart_backoff: Delay policy for restarting a crashed watch thread
        """
        self.watcher = watcher
        self.correlator = correlator
        self.shutdown_timeout = shutdown_timeout
        self.stop_event = stop_event or threading.Event()
        self.restart_backoff = restart_backoff or Backoff(1.0, 30.0)
        self.stats: Dict[str, int] = Counter()
        self._stats_lock = threading.Lock()
        self._queues: List[queue.Queue] = [queue.Queue() for _ in range(max(workers, 1))]
        self._workers: List[threading.Thread] = []
        self._watch_thread: Optional[threading.Thread] = None
        self.watch_restarts = 0

    @classmethod
    def from_config(
        cls,
        config: BotConfig,
        slack_client: SlackClient,
        cluster_client: ClusterClient,
        source_configs: Optional[SourceConfigs] = None,
    ) -> 'WatchEngine':
        """Build every component from already-constructed clients."""
        stop_event = threading.Event()
        resolver = SlackUserResolver(
            slack_client,
            cluster_client,
            config.namespace,
            cache=TTLCache(ttl=config.identity_cache_ttl, max_entries=config.identity_cache_size),
        )
        dispatcher = Dispatcher(slack_client, config.dispatch, stop_event=stop_event)
        correlator = NotificationCorrelator(
            dispatcher,
            resolver,
            source_configs=source_configs,
            default_channel=config.default_channel,
            dashboard_url=config.dashboard_url,
        )
        # An idle watch only notices shutdown when its read returns
        watch_config = dataclasses.replace(
            config.watch,
            timeout_seconds=min(config.watch.timeout_seconds, watch_timeout_for(config.shutdown_timeout)),
        )
        watcher = ActivityWatcher(cluster_client, config.namespace, stop_event, watch_config)
        return cls(
            watcher,
            correlator,
            workers=config.workers,
            shutdown_timeout=config.shutdown_timeout,
            stop_event=stop_event,
            restart_backoff=Backoff(config.watch.initial_backoff, config.watch.max_backoff),
        )

    @property
    def running(self) -> bool:
        return bool(self._workers) and not self.stop_event.is_set()

    def submit(self, event: ChangeEvent) -> None:
        """Queue an event on the worker that owns its correlation key."""
        identifier, build = event.activity.correlation_key
        stripe = zlib.crc32(f"{identifier}#{build}".encode("utf-8")) % len(self._queues)
        self._queues[stripe].put(event)

    def start(self) -> None:
        """Start the worker threads and the watch thread without blocking."""
        if self._workers:
            return
        for i, q in enumerate(self._queues):
            thread = threading.Thread(
                target=self._worker_loop, args=(q,), name=f"slackbot-worker-{i}", daemon=True,
            )
            thread.start()
            self._workers.append(thread)
        self._start_watch()

    def run(self) -> None:
        """Run until stop() is called, restarting the watch thread if it dies."""
        self.start()
        logger.info("Watching pipeline activities in namespace %s", self.watcher.namespace)
        while not self.stop_event.is_set():
            self.supervise()
            self.stop_event.wait(POLL_INTERVAL)
        self._join()

    def supervise(self) -> None:
        """Restart the watch thread if it has exited while the engine is running."""
        if self.stop_event.is_set():
            return
        if self._watch_thread is not None and self._watch_thread.is_alive():
            return
        delay = self.restart_backoff.next_delay()
        logger.warning("Watch task exited, restarting in %.0fs", delay)
        if self.stop_event.wait(delay):
            return
        self.watch_restarts += 1
        self._start_watch()

    def stop(self) -> None:
        """Signal shutdown and wait up to shutdown_timeout for in-flight work."""
        if not self.stop_event.is_set():
            logger.info("Stopping slack bot")
            self.stop_event.set()
        self._join()

    def _join(self) -> None:
        threads = list(self._workers)
        if self._watch_thread is not None:
            threads.append(self._watch_thread)
        deadline = time.monotonic() + self.shutdown_timeout
        for thread in threads:
            thread.join(max(deadline - time.monotonic(), 0))
        stuck = [t.name for t in threads if t.is_alive()]
        if stuck:
            logger.warning("Threads still running after %.0fs shutdown timeout: %s",
                           self.shutdown_timeout, ", ".join(stuck))

    def _start_watch(self) -> None:
        self._watch_thread = threading.Thread(
            target=self._watch_loop, name="slackbot-watch", daemon=True,
        )
        self._watch_thread.start()

    def _watch_loop(self) -> None:
        """Top-level function of the watch thread. A crash ends only this thread."""
        try:
            for event in self.watcher.events():
                self.restart_backoff.reset()
                self.submit(event)
        except Exception as e:
            logger.exception("Watch task crashed: %s", e)
            capture_exception(e, tags={"step": "watch"})

    def _worker_loop(self, q: queue.Queue) -> None:
        while True:
            try:
                event = q.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                if self.stop_event.is_set():
                    return
                continue
            try:
                if self.stop_event.is_set():
                    return
                self._process(event)
            finally:
                q.task_done()

    @capture_errors(step_name="handle_event", reraise=False)
    def _process(self, event: ChangeEvent) -> Optional[Result]:
        activity = event.activity
        set_activity_context(activity.identifier, activity.build, activity.status.value)
        result = self.correlator.handle(event)
        with self._stats_lock:
            self.stats[result.status.value] += 1
        if result.is_skipped:
            logger.debug("Skipped %s %s: %s", event.type.value, activity.identifier, result.message)
        return result

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until every queued event has been handled. Mostly for tests."""
        done = threading.Event()

        def _wait():
            for q in self._queues:
                q.join()
            done.set()

        threading.Thread(target=_wait, daemon=True).start()
        return done.wait(timeout)
