"""
Slack Block Kit Message Builders

Renders a pipeline activity into a Slack message. Rendering is a pure
function of its inputs so that identical snapshots hash identically.
"""

from typing import Any, Dict, List

from .models import Payload, PipelineActivity, ResolvedUser, Stage, Status

STATUS_ICONS = {
    Status.PENDING: ":clock3:",
    Status.RUNNING: ":hourglass_flowing_sand:",
    Status.SUCCEEDED: ":white_check_mark:",
    Status.FAILED: ":x:",
    Status.ABORTED: ":no_entry_sign:",
    Status.NOT_EXECUTED: ":fast_forward:",
}
UNKNOWN_ICON = ":grey_question:"

STATUS_COLORS = {
    Status.SUCCEEDED: "#2eb886",
    Status.FAILED: "#a30200",
    Status.ABORTED: "#a30200",
    Status.RUNNING: "#439fe0",
}
NEUTRAL_COLOR = "#cccccc"


def status_icon(status: Status) -> str:
    """Emoji for a status. Unknown values get a neutral icon."""
    return STATUS_ICONS.get(status, UNKNOWN_ICON)


def status_color(status: Status) -> str:
    return STATUS_COLORS.get(status, NEUTRAL_COLOR)


def _section(text: str) -> Dict[str, Any]:
    """Create a section block with markdown."""
    return {
        "type": "section",
        "text": {"type": "mrkdwn", "text": text},
    }


def _context(elements: List[str]) -> Dict[str, Any]:
    """Create a context block."""
    return {
        "type": "context",
        "elements": [{"type": "mrkdwn", "text": e} for e in elements],
    }


def _escape(text: str) -> str:
    """Escape the characters Slack treats as control sequences."""
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def build_url(dashboard_url: str, activity: PipelineActivity) -> str:
    """Link to the build in the pipelines dashboard, or "" when there is no dashboard."""
    if not dashboard_url:
        return ""
    return "/".join([
        dashboard_url.rstrip("/"),
        activity.owner,
        activity.repository,
        activity.branch,
        activity.build,
    ])


def _build_stage_line(stage: Stage) -> str:
    """Build a single stage line."""
    line = f"{status_icon(stage.status)} {_escape(stage.name)}"
    duration = stage.duration_str
    if duration is not None:
        line += f" ({duration})"
    return line


def _build_header(activity: PipelineActivity, dashboard_url: str) -> str:
    build = f"#{activity.build}"
    url = build_url(dashboard_url, activity)
    if url:
        build = f"<{url}|{build}>"
    return (
        f"{status_icon(activity.status)} *{_escape(activity.full_repository)}* "
        f"`{_escape(activity.branch)}` {build} {activity.status.value}"
    )


def _build_commit_line(activity: PipelineActivity, user: ResolvedUser) -> str:
    commit = activity.commit
    author = user.mention if user.resolved else _escape(user.display_name)
    parts = [f":bust_in_silhouette: {author}"]
    if commit.sha:
        sha = f"`{commit.short_sha}`"
        if commit.url:
            sha = f"<{commit.url}|{commit.short_sha}>"
        parts.append(sha)
    if commit.title:
        title = commit.title
        if len(title) > 80:
            title = title[:80] + "..."
        parts.append(_escape(title))
    return " ".join(parts)


def format_activity(activity: PipelineActivity, user: ResolvedUser, dashboard_url: str) -> Payload:
    """
    Build the Slack message for a pipeline activity.

    Args:
        activity: PipelineActivity snapshot
        user: Resolved commit author
        dashboard_url: Pipelines dashboard base URL ("" disables links)

    Returns:
        Payload with fallback text, blocks and attachment colour
    """
    header = _build_header(activity, dashboard_url)
    blocks = [_section(header)]

    if activity.stages:
        lines = [_build_stage_line(stage) for stage in activity.stages]
        blocks.append(_section("\n".join(lines)))

    footer = [_build_commit_line(activity, user)]
    url = build_url(dashboard_url, activity)
    if url:
        footer.append(f"<{url}|View pipeline>")
    blocks.append(_context(footer))

    text = (
        f"{activity.full_repository} {activity.branch} #{activity.build} "
        f"{activity.status.value}"
    )
    if user.resolved:
        text += f" ({user.mention})"

    return Payload(text=text, blocks=tuple(blocks), color=status_color(activity.status))
