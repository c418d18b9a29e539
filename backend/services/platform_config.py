"""Remote platform settings read from the environment (optionally via backend/.env)."""

import os
from dataclasses import dataclass

from services.errors import MissingCredentialsError

DEFAULT_API_BASE = "https://www.kaggle.com/api/v1"
DEFAULT_SITE_BASE = "https://www.kaggle.com"
DEFAULT_POLL_INTERVAL_SECONDS = 20  # respects Kaggle rate limits
DEFAULT_REQUEST_TIMEOUT_SECONDS = 60
DEFAULT_MAX_UPLOAD_MB = 100

SHARED_INPUT_SLUG = "music-video-input"
SHARED_JOB_SLUG = "music-video-pipeline"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class PlatformConfig:
    username: str
    key: str
    api_base: str = DEFAULT_API_BASE
    site_base: str = DEFAULT_SITE_BASE
    shared_slots: bool = False
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    watch_jobs: bool = True
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_MB * 1024 * 1024

    def slot_slugs(self, job_id: str) -> tuple[str, str]:
        """(input slot slug, job slot slug) for a job."""
        if self.shared_slots:
            return SHARED_INPUT_SLUG, SHARED_JOB_SLUG
        return f"{SHARED_INPUT_SLUG}-{job_id}", f"{SHARED_JOB_SLUG}-{job_id}"

    def job_url(self, slug: str) -> str:
        return f"{self.site_base.rstrip('/')}/code/{self.username}/{slug}"


def _env(name: str, default: str = "") -> str:
    return os.environ.get(name, "").strip() or default


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name)
    if not raw:
        return default
    return raw.lower() in _TRUTHY


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    return float(raw) if raw else default


def load_platform_config() -> PlatformConfig:
    """Build config from KAGGLE_* / MVGEN_* variables. Credentials are required."""
    username = _env("KAGGLE_USERNAME")
    key = _env("KAGGLE_KEY")
    if not username or not key:
        raise MissingCredentialsError(
            "Platform credentials not configured (KAGGLE_USERNAME / KAGGLE_KEY)"
        )
    return PlatformConfig(
        username=username,
        key=key,
        api_base=_env("KAGGLE_API_BASE", DEFAULT_API_BASE),
        site_base=_env("KAGGLE_SITE_BASE", DEFAULT_SITE_BASE),
        shared_slots=_env_bool("MVGEN_SHARED_SLOTS", False),
        poll_interval_seconds=_env_float("MVGEN_POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL_SECONDS),
        watch_jobs=_env_bool("MVGEN_WATCH_JOBS", True),
        request_timeout_seconds=_env_float("MVGEN_REQUEST_TIMEOUT_SECONDS", DEFAULT_REQUEST_TIMEOUT_SECONDS),
        max_upload_bytes=int(_env_float("MVGEN_MAX_UPLOAD_MB", DEFAULT_MAX_UPLOAD_MB) * 1024 * 1024),
    )
