"""Tests for WatchEngine."""

import threading
import time
from unittest.mock import MagicMock

import pytest

from slackbot.api.retry import Backoff
from slackbot.config import BotConfig, WatchConfig
from slackbot.engine import WatchEngine, watch_timeout_for
from slackbot.models import ChangeEvent, ChangeType, PipelineActivity
from slackbot.result import Result


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def bot_config(fast_dispatch_config):
    return BotConfig(
        slack_token="xoxb-test",
        namespace="ns",
        default_channel="#builds",
        workers=2,
        shutdown_timeout=2.0,
        dispatch=fast_dispatch_config,
        watch=WatchConfig(initial_backoff=0.001, max_backoff=0.01, timeout_seconds=1),
    )


def _event(resource, sequence=1):
    return ChangeEvent(ChangeType.MODIFIED, PipelineActivity.from_resource(resource), sequence)


class TestEndToEnd:
    def test_build_lifecycle_edits_one_message(self, bot_config, mock_slack, mock_cluster, activity_resource):
        mock_cluster.put_activity(activity_resource())
        mock_cluster.watch_scripts = [[
            ("MODIFIED", activity_resource(stages=[("Build", "Succeeded"), ("Test", "Running")])),
            ("MODIFIED", activity_resource(status="Succeeded", completed="2024-01-01T10:02:00Z",
                                           stages=[("Build", "Succeeded"), ("Test", "Succeeded")])),
        ]]
        engine = WatchEngine.from_config(bot_config, mock_slack, mock_cluster)

        engine.start()
        try:
            assert wait_for(lambda: len(mock_slack.updates) == 2)
        finally:
            engine.stop()

        assert len(mock_slack.posts) == 1
        assert engine.stats["created"] == 1
        assert engine.stats["updated"] == 2
        assert not engine.running

    def test_builds_get_separate_messages(self, bot_config, mock_slack, mock_cluster, activity_resource):
        mock_cluster.put_activity(activity_resource(name="app-1", build="1"))
        mock_cluster.put_activity(activity_resource(name="app-2", build="2"))
        engine = WatchEngine.from_config(bot_config, mock_slack, mock_cluster)

        engine.start()
        try:
            assert wait_for(lambda: len(mock_slack.posts) == 2)
        finally:
            engine.stop()

        assert len(mock_slack.messages) == 2

    def test_finished_builds_are_not_posted_on_startup(self, bot_config, mock_slack, mock_cluster,
                                                       activity_resource):
        for i in range(3):
            mock_cluster.put_activity(activity_resource(name=f"old-{i}", build=str(i), status="Succeeded",
                                                        stages=[("Build", "Succeeded")]))
        engine = WatchEngine.from_config(bot_config, mock_slack, mock_cluster)

        engine.start()
        try:
            assert wait_for(lambda: len(mock_cluster.watch_calls) > 0)
            assert engine.wait_idle(5)
        finally:
            engine.stop()

        assert mock_slack.posts == []

    def test_run_returns_after_stop(self, bot_config, mock_slack, mock_cluster):
        engine = WatchEngine.from_config(bot_config, mock_slack, mock_cluster)
        thread = threading.Thread(target=engine.run)
        thread.start()

        assert wait_for(lambda: engine.running)
        engine.stop_event.set()
        thread.join(5)

        assert not thread.is_alive()


class TestStriping:
    def test_same_key_goes_to_same_worker(self, activity_resource):
        engine = WatchEngine(MagicMock(), MagicMock(), workers=4)

        engine.submit(_event(activity_resource(), 1))
        engine.submit(_event(activity_resource(status="Succeeded"), 2))

        sizes = sorted(q.qsize() for q in engine._queues)
        assert sizes == [0, 0, 0, 2]

    def test_events_handled_in_order(self, activity_resource):
        handled = []
        correlator = MagicMock()
        correlator.handle.side_effect = lambda event: handled.append(event.sequence) or Result.skipped("")
        watcher = MagicMock()
        watcher.events.return_value = iter(())
        engine = WatchEngine(watcher, correlator, workers=3)

        for seq in range(1, 6):
            engine.submit(_event(activity_resource(), seq))
        engine.start()
        try:
            assert engine.wait_idle(5)
        finally:
            engine.stop()

        assert handled == [1, 2, 3, 4, 5]


class TestSupervision:
    def test_crashed_watcher_is_restarted(self):
        watcher = MagicMock()
        watcher.namespace = "ns"
        watcher.events.side_effect = RuntimeError("boom")
        engine = WatchEngine(watcher, MagicMock(), workers=1, restart_backoff=Backoff(0.001, 0.01))

        engine.start()
        engine._watch_thread.join(5)
        engine.supervise()
        engine._watch_thread.join(5)
        engine.stop()

        assert engine.watch_restarts == 1
        assert watcher.events.call_count == 2

    def test_no_restart_while_stopping(self):
        watcher = MagicMock()
        watcher.events.return_value = iter(())
        engine = WatchEngine(watcher, MagicMock(), workers=1)

        engine.start()
        engine.stop()
        engine.supervise()

        assert engine.watch_restarts == 0

    def test_handler_errors_do_not_kill_workers(self, activity_resource):
        correlator = MagicMock()
        correlator.handle.side_effect = [RuntimeError("bad event"), Result.skipped("ok")]
        watcher = MagicMock()
        watcher.events.return_value = iter(())
        engine = WatchEngine(watcher, correlator, workers=1)

        engine.submit(_event(activity_resource(), 1))
        engine.submit(_event(activity_resource(), 2))
        engine.start()
        try:
            assert engine.wait_idle(5)
        finally:
            engine.stop()

        assert correlator.handle.call_count == 2
        assert engine.stats["skipped"] == 1

    def test_process_swallows_errors(self, activity_resource):
        correlator = MagicMock()
        correlator.handle.side_effect = RuntimeError("boom")
        engine = WatchEngine(MagicMock(), correlator, workers=1)

        assert engine._process(_event(activity_resource())) is None


class TestShutdown:
    def test_watch_timeout_fits_shutdown_timeout(self):
        assert watch_timeout_for(10.0) == 5
        assert watch_timeout_for(0.5) == 1

    def test_idle_watch_exits_within_shutdown_timeout(self, bot_config, mock_slack, mock_cluster):
        mock_cluster.idle_wait = 30.0
        bot_config.watch = WatchConfig(initial_backoff=0.001, max_backoff=0.01, timeout_seconds=300)
        engine = WatchEngine.from_config(bot_config, mock_slack, mock_cluster)

        engine.start()
        assert wait_for(lambda: len(mock_cluster.watch_calls) > 0)
        engine.stop()

        assert engine.watcher.config.timeout_seconds == 1
        assert not engine._watch_thread.is_alive()
