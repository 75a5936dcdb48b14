"""Tests for Slack message rendering."""

import json

from slackbot.formatter import UNKNOWN_ICON, build_url, format_activity, status_icon
from slackbot.models import PipelineActivity, ResolutionMethod, ResolvedUser, Status


def _all_text(payload):
    return json.dumps(payload.to_message())


JANE = ResolvedUser("Jane Dev", ResolutionMethod.EMAIL, "U123")


class TestStatusIcons:
    def test_every_status_has_an_icon(self):
        for status in Status:
            assert status_icon(status)

    def test_unknown_status_is_neutral(self):
        assert status_icon(Status.UNKNOWN) == UNKNOWN_ICON


class TestFormatActivity:
    def test_deterministic(self, activity_resource):
        activity = PipelineActivity.from_resource(activity_resource(
            stages=[("Build", "Succeeded"), ("Test", "Running")],
        ))
        first = format_activity(activity, JANE, "https://dash.example.com")
        second = format_activity(activity, JANE, "https://dash.example.com")
        assert first == second
        assert first.content_hash == second.content_hash

    def test_header_and_stages(self, activity_resource):
        activity = PipelineActivity.from_resource(activity_resource(
            stages=[("Build", "Succeeded"), ("Test", "Running")],
        ))
        payload = format_activity(activity, JANE, "")

        header = payload.blocks[0]["text"]["text"]
        assert "acme/app" in header
        assert "`main`" in header
        assert "#1" in header
        assert "Running" in header

        stage_lines = payload.blocks[1]["text"]["text"].split("\n")
        assert stage_lines[0] == ":white_check_mark: Build (45s)"
        assert stage_lines[1] == ":hourglass_flowing_sand: Test"

    def test_resolved_user_is_mentioned(self, activity_resource):
        activity = PipelineActivity.from_resource(activity_resource())
        payload = format_activity(activity, JANE, "")
        assert "<@U123>" in _all_text(payload)

    def test_unresolved_user_shows_raw_name(self, activity_resource):
        activity = PipelineActivity.from_resource(activity_resource())
        payload = format_activity(activity, ResolvedUser.unresolved("Jane Dev"), "")
        text = _all_text(payload)
        assert "Jane Dev" in text
        assert "<@" not in text

    def test_dashboard_link(self, activity_resource):
        activity = PipelineActivity.from_resource(activity_resource())
        payload = format_activity(activity, JANE, "https://dash.example.com/")
        url = "https://dash.example.com/acme/app/main/1"
        assert url in payload.blocks[0]["text"]["text"]
        assert f"<{url}|View pipeline>" in _all_text(payload)

    def test_no_dashboard_no_link(self, activity_resource):
        activity = PipelineActivity.from_resource(activity_resource())
        payload = format_activity(activity, JANE, "")
        assert "View pipeline" not in _all_text(payload)
        assert build_url("", activity) == ""

    def test_color_follows_status(self, activity_resource):
        ok = PipelineActivity.from_resource(activity_resource(status="Succeeded"))
        failed = PipelineActivity.from_resource(activity_resource(status="Failed"))
        assert format_activity(ok, JANE, "").color != format_activity(failed, JANE, "").color

    def test_status_change_changes_hash(self, activity_resource):
        running = PipelineActivity.from_resource(activity_resource(status="Running"))
        done = PipelineActivity.from_resource(activity_resource(status="Succeeded"))
        assert format_activity(running, JANE, "").content_hash != format_activity(done, JANE, "").content_hash

    def test_escapes_control_characters(self, activity_resource):
        activity = PipelineActivity.from_resource(activity_resource(stages=[("<build & test>", "Running")]))
        payload = format_activity(activity, JANE, "")
        assert "&lt;build &amp; test&gt;" in payload.blocks[1]["text"]["text"]
