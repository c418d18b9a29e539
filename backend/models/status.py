from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class UiStage(StrEnum):
    ANALYSIS = "analysis"
    CLIPS = "clips"
    DONE = "done"
    ERROR = "error"
    CANCELLED = "cancelled"


class StatusSnapshot(BaseModel):
    """One reconciled view of remote job status. Replaced wholesale on every poll."""

    model_config = ConfigDict(frozen=True)

    remote_state: str
    ui_stage: UiStage
    progress_percent: int
    done: bool
    errored: bool
    error_message: str | None = None
    download_url: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def terminal(self) -> bool:
        return self.done or self.errored
