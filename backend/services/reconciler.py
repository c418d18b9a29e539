"""Map remote kernel status onto the small UI-facing state machine."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx

from models import JobHandle, JobState, StatusSnapshot, UiStage
from services.errors import RemoteStatusError

logger = logging.getLogger(__name__)

# remote state -> (ui stage, progress %, done, errored)
STATUS_TABLE: dict[str, tuple[UiStage, int, bool, bool]] = {
    "queued": (UiStage.ANALYSIS, 5, False, False),
    "running": (UiStage.CLIPS, 50, False, False),
    "complete": (UiStage.DONE, 100, True, False),
    "error": (UiStage.ERROR, 0, False, True),
    "cancelled": (UiStage.CANCELLED, 0, False, True),
}
UNKNOWN_STATUS = (UiStage.ANALYSIS, 2, False, False)

_ALIASES = {
    "cancelrequested": "cancelled",
    "cancelacknowledged": "cancelled",
    "canceled": "cancelled",
}

_JOB_STATES = {
    "queued": JobState.QUEUED,
    "running": JobState.RUNNING,
    "complete": JobState.COMPLETE,
    "error": JobState.FAILED,
    "cancelled": JobState.CANCELLED,
}


def normalize_remote_state(raw: str | None) -> str:
    state = (raw or "").strip().lower()
    if state.startswith("kernelworkerstatus."):
        state = state[len("kernelworkerstatus."):]
    return _ALIASES.get(state, state) or "unknown"


def job_state_for(remote_state: str) -> JobState | None:
    """Local job state implied by a normalised remote state, or None if unknown."""
    return _JOB_STATES.get(remote_state)


def build_snapshot(payload: dict[str, Any], *, download_url: str | None) -> StatusSnapshot:
    remote_state = normalize_remote_state(payload.get("status"))
    ui_stage, progress, done, errored = STATUS_TABLE.get(remote_state, UNKNOWN_STATUS)
    return StatusSnapshot(
        remote_state=remote_state,
        ui_stage=ui_stage,
        progress_percent=progress,
        done=done,
        errored=errored,
        error_message=payload.get("failureMessage") or None,
        download_url=download_url if done else None,
        started_at=_parse_time(payload.get("startTime")),
        finished_at=_parse_time(payload.get("completionTime")),
    )


def _parse_time(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.debug("[status] Unparseable timestamp %r", value)
        return None


class StatusReconciler:
    """Stateless status reads for one job handle."""

    def __init__(self, http: httpx.Client, handle: JobHandle, *, download_url: str) -> None:
        self._http = http
        self.handle = handle
        self.download_url = download_url

    def poll(self) -> StatusSnapshot:
        """One status request; each call depends only on current remote state."""
        response = self._http.get(f"kernels/{self.handle.owner}/{self.handle.slug}/status")
        if not response.is_success:
            raise RemoteStatusError(
                "Platform status read failed",
                status_code=response.status_code,
                body=response.text,
            )
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            raise RemoteStatusError(
                "Platform status response was not a JSON object",
                status_code=response.status_code,
                body=response.text[:500],
            )
        snapshot = build_snapshot(payload, download_url=self.download_url)
        logger.debug(
            "[status] %s -> %s (%s%%)",
            self.handle.ref,
            snapshot.ui_stage,
            snapshot.progress_percent,
        )
        return snapshot
