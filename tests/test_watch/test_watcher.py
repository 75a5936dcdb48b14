"""Tests for ActivityWatcher."""

import threading
from itertools import islice

import pytest

from slackbot.api.cluster import WatchExpired
from slackbot.config import WatchConfig
from slackbot.models import ChangeType, Status
from slackbot.watcher import ActivityWatcher

FAST = WatchConfig(initial_backoff=0.001, max_backoff=0.01, timeout_seconds=1)


@pytest.fixture
def watcher(mock_cluster):
    return ActivityWatcher(mock_cluster, "ns", config=FAST)


def take(watcher, n):
    return list(islice(watcher.events(), n))


class TestInitialList:
    def test_existing_activities_are_added(self, watcher, mock_cluster, activity_resource):
        mock_cluster.put_activity(activity_resource(name="a", build="1"))
        mock_cluster.put_activity(activity_resource(name="b", build="2"))

        events = take(watcher, 2)

        assert [e.type for e in events] == [ChangeType.ADDED, ChangeType.ADDED]
        assert {e.activity.identifier for e in events} == {"ns/a", "ns/b"}
        assert [e.sequence for e in events] == [1, 2]
        assert mock_cluster.list_calls == 1

    def test_malformed_resources_are_skipped(self, watcher, mock_cluster, activity_resource):
        mock_cluster.put_activity({"metadata": {"name": "broken", "namespace": "ns"}, "spec": "garbage"})
        mock_cluster.put_activity(activity_resource(name="good"))

        events = take(watcher, 1)

        assert events[0].activity.name == "good"

    def test_missing_namespace_uses_watched_namespace(self, watcher, mock_cluster, activity_resource):
        resource = activity_resource()
        del resource["metadata"]["namespace"]
        mock_cluster.put_activity(resource)

        assert take(watcher, 1)[0].activity.identifier == "ns/build-1"

    def test_finished_builds_are_not_reported_on_startup(self, watcher, mock_cluster, activity_resource):
        for name in ("old-1", "old-2"):
            mock_cluster.put_activity(activity_resource(name=name, status="Succeeded",
                                                        stages=[("Build", "Succeeded")]))
        mock_cluster.put_activity(activity_resource(name="live"))

        events = take(watcher, 1)

        assert [(e.type, e.activity.name) for e in events] == [(ChangeType.ADDED, "live")]
        assert set(watcher.working_set) == {"ns/old-1", "ns/old-2", "ns/live"}

    def test_builds_finished_while_disconnected_are_reported(self, watcher, mock_cluster, activity_resource):
        mock_cluster.put_activity(activity_resource(name="live"))
        mock_cluster.watch_scripts = [WatchExpired("gone")]
        events = watcher.events()
        next(events)

        mock_cluster.put_activity(activity_resource(name="quick", status="Failed",
                                                    stages=[("Build", "Failed")]))
        relisted = next(events)

        assert (relisted.type, relisted.activity.name) == (ChangeType.ADDED, "quick")


class TestWatchStream:
    def test_duplicate_snapshots_are_dropped(self, watcher, mock_cluster, activity_resource):
        mock_cluster.put_activity(activity_resource())
        mock_cluster.watch_scripts = [[
            ("MODIFIED", activity_resource(resource_version="11")),
            ("MODIFIED", activity_resource(stages=[("Build", "Succeeded")], resource_version="12")),
        ]]

        events = take(watcher, 2)

        assert events[1].type == ChangeType.MODIFIED
        assert events[1].activity.stages[0].status == Status.SUCCEEDED

    def test_added_for_known_activity_becomes_modified(self, watcher, mock_cluster, activity_resource):
        mock_cluster.put_activity(activity_resource())
        mock_cluster.watch_scripts = [[("ADDED", activity_resource(status="Succeeded"))]]

        events = take(watcher, 2)

        assert events[1].type == ChangeType.MODIFIED

    def test_unknown_event_types_are_ignored(self, watcher, mock_cluster, activity_resource):
        mock_cluster.watch_scripts = [[
            ("BOOKMARK", {"metadata": {"resourceVersion": "5"}}),
            ("ADDED", activity_resource(name="new")),
        ]]

        events = take(watcher, 1)

        assert events[0].activity.name == "new"

    def test_resumes_from_last_resource_version(self, watcher, mock_cluster, activity_resource):
        mock_cluster.put_activity(activity_resource())
        mock_cluster.watch_scripts = [
            [("MODIFIED", activity_resource(stages=[("Build", "Succeeded")], resource_version="15"))],
            [("MODIFIED", activity_resource(status="Succeeded", stages=[("Build", "Succeeded")],
                                            resource_version="16"))],
        ]

        take(watcher, 3)

        assert mock_cluster.watch_calls == ["1", "15"]

    def test_sequences_increase(self, watcher, mock_cluster, activity_resource):
        mock_cluster.put_activity(activity_resource())
        mock_cluster.watch_scripts = [[
            ("MODIFIED", activity_resource(stages=[("Build", "Succeeded")])),
            ("MODIFIED", activity_resource(status="Failed", stages=[("Build", "Failed")])),
        ]]

        sequences = [e.sequence for e in take(watcher, 3)]

        assert sequences == sorted(sequences)
        assert len(set(sequences)) == 3


class TestReconnect:
    def test_expired_watch_relists_and_diffs(self, watcher, mock_cluster, activity_resource):
        mock_cluster.put_activity(activity_resource(name="a"))
        mock_cluster.put_activity(activity_resource(name="b"))
        mock_cluster.watch_scripts = [WatchExpired("too old resource version")]
        events = watcher.events()
        next(events)
        next(events)

        # Changes made while disconnected
        mock_cluster.put_activity(activity_resource(name="a", stages=[("Build", "Succeeded")]))
        mock_cluster.put_activity(activity_resource(name="c"))
        relisted = list(islice(events, 2))

        assert mock_cluster.list_calls == 2
        assert {(e.type, e.activity.name) for e in relisted} == {
            (ChangeType.MODIFIED, "a"),
            (ChangeType.ADDED, "c"),
        }

    def test_errors_back_off_and_resume(self, watcher, mock_cluster, activity_resource):
        mock_cluster.put_activity(activity_resource())
        mock_cluster.watch_scripts = [
            ConnectionError("connection reset"),
            [("MODIFIED", activity_resource(stages=[("Build", "Succeeded")]))],
        ]

        events = take(watcher, 2)

        assert events[1].type == ChangeType.MODIFIED
        assert mock_cluster.list_calls == 1
        assert mock_cluster.watch_calls == ["1", "1"]
        assert watcher.backoff.failures == 0

    def test_error_mid_stream_keeps_resource_version(self, watcher, mock_cluster, activity_resource):
        mock_cluster.put_activity(activity_resource())
        mock_cluster.watch_scripts = [
            [("MODIFIED", activity_resource(stages=[("Build", "Succeeded")], resource_version="20")),
             ("MODIFIED", ConnectionError("stream closed"))],
            [("MODIFIED", activity_resource(status="Succeeded", stages=[("Build", "Succeeded")]))],
        ]

        take(watcher, 3)

        assert mock_cluster.watch_calls == ["1", "20"]


class TestDeleted:
    def test_terminal_activity_leaves_working_set(self, watcher, mock_cluster, activity_resource):
        done = activity_resource(status="Succeeded", stages=[("Build", "Succeeded")])
        mock_cluster.put_activity(activity_resource())
        mock_cluster.watch_scripts = [[("MODIFIED", done), ("DELETED", done)]]

        events = take(watcher, 3)

        assert events[2].type == ChangeType.DELETED
        assert "ns/build-1" not in watcher.working_set

    def test_running_activity_is_not_reported_again(self, watcher, mock_cluster, activity_resource):
        running = activity_resource(name="a")
        mock_cluster.put_activity(running)
        mock_cluster.watch_scripts = [[("DELETED", running)], WatchExpired("gone")]
        events = watcher.events()
        next(events)
        assert next(events).type == ChangeType.DELETED
        assert "ns/a" in watcher.working_set

        del mock_cluster.activities["a"]
        mock_cluster.put_activity(activity_resource(name="b"))
        after_relist = next(events)

        assert (after_relist.type, after_relist.activity.name) == (ChangeType.ADDED, "b")
        assert "ns/a" not in watcher.working_set

    def test_missing_from_relist_is_deleted(self, watcher, mock_cluster, activity_resource):
        mock_cluster.put_activity(activity_resource(name="a"))
        mock_cluster.watch_scripts = [WatchExpired("gone")]
        events = watcher.events()
        next(events)

        del mock_cluster.activities["a"]
        mock_cluster.put_activity(activity_resource(name="b"))
        relisted = list(islice(events, 2))

        assert {(e.type, e.activity.name) for e in relisted} == {
            (ChangeType.DELETED, "a"),
            (ChangeType.ADDED, "b"),
        }


class TestShutdown:
    def test_no_events_once_stopped(self, mock_cluster, activity_resource):
        stop = threading.Event()
        stop.set()
        mock_cluster.put_activity(activity_resource())
        watcher = ActivityWatcher(mock_cluster, "ns", stop_event=stop, config=FAST)

        assert list(watcher.events()) == []
        assert mock_cluster.list_calls == 0

    def test_stop_during_stream(self, mock_cluster, activity_resource):
        stop = threading.Event()
        mock_cluster.put_activity(activity_resource())
        mock_cluster.watch_scripts = [[("MODIFIED", activity_resource(status="Succeeded"))]]
        watcher = ActivityWatcher(mock_cluster, "ns", stop_event=stop, config=FAST)
        events = watcher.events()
        next(events)

        stop.set()

        assert list(events) == []

    def test_stop_during_backoff(self, mock_cluster):
        stop = threading.Event()
        mock_cluster.watch_scripts = [ConnectionError("connection refused")]
        watcher = ActivityWatcher(mock_cluster, "ns", stop_event=stop,
                                  config=WatchConfig(initial_backoff=60.0))
        timer = threading.Timer(0.05, stop.set)
        timer.start()

        assert list(watcher.events()) == []
        timer.join()
