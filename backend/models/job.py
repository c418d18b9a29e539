from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from .status import StatusSnapshot


class JobState(str, Enum):
    CREATED = "created"
    UPLOADING = "uploading"
    SUBMITTED = "submitted"
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"


_FORWARD_ORDER = [
    JobState.CREATED,
    JobState.UPLOADING,
    JobState.SUBMITTED,
    JobState.QUEUED,
    JobState.RUNNING,
    JobState.COMPLETE,
]
TERMINAL_STATES = frozenset({JobState.COMPLETE, JobState.FAILED, JobState.CANCELLED})


class InvalidTransitionError(Exception):
    def __init__(self, current: JobState, requested: JobState) -> None:
        super().__init__(f"cannot move job from {current.value!r} to {requested.value!r}")
        self.current = current
        self.requested = requested


def can_transition(current: JobState, requested: JobState) -> bool:
    """Forward moves only; failed/cancelled from any live state; queued<->running may flap."""
    if current in TERMINAL_STATES:
        return False
    if requested in (JobState.FAILED, JobState.CANCELLED):
        return True
    if current is JobState.RUNNING and requested is JobState.QUEUED:
        return True
    return _FORWARD_ORDER.index(requested) > _FORWARD_ORDER.index(current)


@dataclass(frozen=True)
class InputAssetRef:
    name: str
    size: int                  # bytes
    content_type: str


@dataclass(frozen=True)
class JobHandle:
    owner: str
    slug: str

    @property
    def ref(self) -> str:
        return f"{self.owner}/{self.slug}"


@dataclass(frozen=True)
class SlotVersion:
    slug: str
    version: int


@dataclass
class Job:
    id: str
    title: str
    visual_style: str
    clip_duration_seconds: int
    input_asset: InputAssetRef | None = None
    state: JobState = JobState.CREATED
    remote_handle: JobHandle | None = None
    input_slot: SlotVersion | None = None
    job_slot: SlotVersion | None = None
    error_message: str | None = None
    last_snapshot: StatusSnapshot | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, requested: JobState, *, error_message: str | None = None) -> None:
        """Move to ``requested``; repeating the current state is a no-op."""
        if requested is self.state:
            return
        if not can_transition(self.state, requested):
            raise InvalidTransitionError(self.state, requested)
        self.state = requested
        self.updated_at = datetime.now(timezone.utc)
        if error_message is not None:
            self.error_message = error_message
