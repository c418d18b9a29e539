from .job import (
    TERMINAL_STATES,
    InputAssetRef,
    InvalidTransitionError,
    Job,
    JobHandle,
    JobState,
    SlotVersion,
    can_transition,
)
from .status import StatusSnapshot, UiStage

__all__ = [
    "Job",
    "JobState",
    "JobHandle",
    "InputAssetRef",
    "SlotVersion",
    "InvalidTransitionError",
    "TERMINAL_STATES",
    "can_transition",
    "StatusSnapshot",
    "UiStage",
]
