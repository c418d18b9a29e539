"""Error taxonomy for job submission, status reads and output retrieval."""

from __future__ import annotations

from models.job import InvalidTransitionError

__all__ = [
    "InvalidTransitionError",
    "MissingCredentialsError",
    "MissingInputError",
    "MusicVideoError",
    "OutputNotReadyError",
    "RemoteJobFailedError",
    "RemotePlatformError",
    "RemoteStatusError",
    "SlotCreateError",
    "SlotReviseError",
    "ValidationError",
]


class MusicVideoError(Exception):
    """Base class for orchestrator errors."""


class ValidationError(MusicVideoError):
    """Submission input is missing or invalid; user-correctable."""


class MissingInputError(ValidationError):
    """No audio asset was provided."""


class MissingCredentialsError(MusicVideoError):
    """Platform credentials are not configured."""


class RemotePlatformError(MusicVideoError):
    """A platform call failed; keeps the remote status code and body."""

    def __init__(self, message: str, *, status_code: int | None = None, body: str = "") -> None:
        detail = message
        if status_code is not None:
            detail += f" (HTTP {status_code})"
        if body:
            detail += f": {body}"
        super().__init__(detail)
        self.status_code = status_code
        self.body = body


class SlotCreateError(RemotePlatformError):
    pass


class SlotReviseError(RemotePlatformError):
    pass


class RemoteStatusError(RemotePlatformError):
    pass


class OutputNotReadyError(MusicVideoError):
    """The finished artifact is not in the output listing yet. Expected while running."""

    def __init__(self, files: list[str], message: str = "Video not found in output yet") -> None:
        super().__init__(message)
        self.files = files


class RemoteJobFailedError(MusicVideoError):
    """The platform reported the job as errored or cancelled."""

    def __init__(self, remote_state: str, message: str | None = None) -> None:
        super().__init__(message or f"Remote job ended in state {remote_state!r}")
        self.remote_state = remote_state
        self.diagnostic = message
