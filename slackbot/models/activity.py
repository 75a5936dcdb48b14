"""
Pipeline Activity Models

Typed views of the Jenkins X PipelineActivity custom resource.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Status(Enum):
    """Status of a pipeline run or one of its stages."""
    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    ABORTED = "Aborted"
    NOT_EXECUTED = "NotExecuted"
    UNKNOWN = "Unknown"  # anything the orchestrator adds later

    @classmethod
    def parse(cls, value: Optional[str]) -> "Status":
        """Parse a status string, mapping unrecognized values to UNKNOWN."""
        if not value:
            return cls.PENDING
        lowered = value.strip().lower()
        for status in cls:
            if status.value.lower() == lowered:
                return status
        return cls.UNKNOWN

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({Status.SUCCEEDED, Status.FAILED, Status.ABORTED})


class ChangeType(Enum):
    """Kind of change observed on a PipelineActivity."""
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp as written by Kubernetes."""
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def format_duration(seconds: float) -> str:
    """Human-readable duration."""
    if seconds < 60:
        return f"{seconds:.0f}s"
    mins = int(seconds // 60)
    remaining_secs = int(seconds % 60)
    if mins < 60:
        return f"{mins}m {remaining_secs}s"
    hours = mins // 60
    return f"{hours}h {mins % 60}m"


@dataclass(frozen=True)
class Stage:
    """A single stage of a pipeline run."""

    name: str
    status: Status
    ordinal: int
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        """Stage duration, only known once the stage has completed."""
        if self.started_at is None or self.completed_at is None:
            return None
        return max((self.completed_at - self.started_at).total_seconds(), 0.0)

    @property
    def duration_str(self) -> Optional[str]:
        secs = self.duration_seconds
        if secs is None:
            return None
        return format_duration(secs)


@dataclass(frozen=True)
class CommitInfo:
    """The commit that triggered a pipeline run."""

    sha: str = ""
    author_name: str = ""
    author_email: str = ""
    message: str = ""
    url: str = ""

    @property
    def short_sha(self) -> str:
        return self.sha[:7]

    @property
    def title(self) -> str:
        """First line of the commit message."""
        return self.message.strip().split("\n", 1)[0] if self.message else ""


@dataclass(frozen=True)
class PipelineActivity:
    """One execution of a CI/CD pipeline."""

    namespace: str
    name: str
    owner: str
    repository: str
    branch: str
    build: str
    status: Status
    stages: Tuple[Stage, ...] = ()
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    commit: CommitInfo = field(default_factory=CommitInfo)

    def __post_init__(self):
        ordinals = [s.ordinal for s in self.stages]
        if len(ordinals) != len(set(ordinals)):
            raise ValueError(f"duplicate stage ordinals in activity {self.identifier}")
        # Stages are always held in rendering order
        object.__setattr__(self, "stages", tuple(sorted(self.stages, key=lambda s: s.ordinal)))

    @property
    def identifier(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def correlation_key(self) -> Tuple[str, str]:
        """Ties this build to exactly one outbound message."""
        return (self.identifier, self.build)

    @property
    def full_repository(self) -> str:
        return f"{self.owner}/{self.repository}"

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def fingerprint(self) -> Tuple[Any, ...]:
        """What counts as a semantic change between two snapshots."""
        return (
            self.status,
            tuple((s.name, s.status) for s in self.stages),
            self.completed_at,
        )

    @classmethod
    def from_resource(cls, resource: Dict[str, Any]) -> "PipelineActivity":
        """
        Build an activity from a PipelineActivity resource dict.

        Args:
            resource: The custom resource as returned by the cluster API

        Returns:
            PipelineActivity snapshot
        """
        metadata = resource.get("metadata") or {}
        spec = resource.get("spec") or {}

        owner = spec.get("gitOwner") or ""
        repository = spec.get("gitRepository") or ""
        branch = spec.get("gitBranch") or ""

        # Older activities only carry "owner/repo/branch"
        pipeline = spec.get("pipeline") or ""
        if pipeline and not (owner and repository and branch):
            parts = pipeline.split("/")
            if len(parts) >= 3:
                owner = owner or parts[0]
                repository = repository or parts[1]
                branch = branch or "/".join(parts[2:])

        labels = metadata.get("labels") or {}
        build = str(spec.get("build") or labels.get("build") or "")

        stages: List[Stage] = []
        for step in spec.get("steps") or []:
            if step.get("kind", "Stage") != "Stage" or not step.get("stage"):
                continue
            stage = step["stage"]
            stages.append(Stage(
                name=stage.get("name") or f"stage-{len(stages) + 1}",
                status=Status.parse(stage.get("status")),
                ordinal=len(stages),
                started_at=parse_timestamp(stage.get("startedTimestamp")),
                completed_at=parse_timestamp(stage.get("completedTimestamp")),
            ))

        commit = CommitInfo(
            sha=spec.get("lastCommitSHA") or "",
            author_name=spec.get("author") or "",
            author_email=spec.get("authorEmail") or "",
            message=spec.get("lastCommitMessage") or "",
            url=spec.get("lastCommitURL") or "",
        )

        return cls(
            namespace=metadata.get("namespace") or "",
            name=metadata.get("name") or "",
            owner=owner,
            repository=repository,
            branch=branch,
            build=build,
            status=Status.parse(spec.get("status")),
            stages=tuple(stages),
            started_at=parse_timestamp(spec.get("startedTimestamp")),
            completed_at=parse_timestamp(spec.get("completedTimestamp")),
            commit=commit,
        )


@dataclass(frozen=True)
class ChangeEvent:
    """A normalized change emitted by the watcher."""

    type: ChangeType
    activity: PipelineActivity
    sequence: int = 0
