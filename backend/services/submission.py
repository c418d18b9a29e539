"""Submit a music-video job: validate input, push the input slot, then the job slot."""

from __future__ import annotations

import logging
import secrets

import httpx

from models import InputAssetRef, Job, JobHandle, JobState, SlotVersion
from services.artifact_client import VersionedArtifactClient
from services.errors import MissingInputError, MusicVideoError, RemotePlatformError, ValidationError
from services.job_definition import (
    GPU_RESOURCES,
    build_job_config,
    input_slot_extras,
    job_script_source,
    job_title,
)
from services.platform_config import PlatformConfig

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "My Song"
DEFAULT_STYLE = "cinematic photorealistic, golden hour lighting, shallow depth of field, 4K"
DEFAULT_CLIP_DURATION_SECONDS = 5
DEFAULT_AUDIO_NAME = "song.mp3"

# Lowercase and digits only so the ID is valid inside platform slugs.
_JOB_ID_ALPHABET = "23456789abcdefghjkmnpqrstuvwxyz"
_JOB_ID_LENGTH = 10


def generate_job_id() -> str:
    return "".join(secrets.choice(_JOB_ID_ALPHABET) for _ in range(_JOB_ID_LENGTH))


def new_job(
    *,
    title: str | None = None,
    visual_style: str | None = None,
    clip_duration_seconds: int = DEFAULT_CLIP_DURATION_SECONDS,
    job_id: str | None = None,
) -> Job:
    return Job(
        id=job_id or generate_job_id(),
        title=(title or "").strip() or DEFAULT_TITLE,
        visual_style=(visual_style or "").strip() or DEFAULT_STYLE,
        clip_duration_seconds=clip_duration_seconds,
    )


class JobSubmissionService:
    def __init__(self, artifacts: VersionedArtifactClient, config: PlatformConfig) -> None:
        self._artifacts = artifacts
        self._config = config

    def validate(self, job: Job, audio: bytes | None, asset_name: str | None, content_type: str | None) -> InputAssetRef:
        if not audio:
            raise MissingInputError("No audio file provided")
        if len(audio) > self._config.max_upload_bytes:
            raise ValidationError(
                f"Audio file too large ({len(audio)} bytes, limit {self._config.max_upload_bytes})"
            )
        content_type = (content_type or "").strip().lower() or "audio/mpeg"
        if not content_type.startswith("audio/"):
            raise ValidationError(f"Expected an audio file, got {content_type!r}")
        if job.clip_duration_seconds <= 0:
            raise ValidationError("clip_duration must be a positive integer")
        name = (asset_name or "").strip().rsplit("/", 1)[-1] or DEFAULT_AUDIO_NAME
        return InputAssetRef(name=name, size=len(audio), content_type=content_type)

    def submit(
        self,
        job: Job,
        audio: bytes | None,
        *,
        asset_name: str | None = None,
        content_type: str | None = None,
    ) -> JobHandle:
        """
        Push the input slot, then the job slot that depends on it.

        Nothing is rolled back: if the job push fails the input slot stays at
        its new version and a retry simply pushes both again.
        """
        job.input_asset = self.validate(job, audio, asset_name, content_type)
        input_slug, job_slug = self._config.slot_slugs(job.id)
        owner = self._artifacts.owner
        config = build_job_config(
            job_id=job.id,
            title=job.title,
            visual_style=job.visual_style,
            clip_duration_seconds=job.clip_duration_seconds,
            audio_file_name=job.input_asset.name,
        )

        job.advance(JobState.UPLOADING)
        logger.info(
            "[submit] Job %s: uploading %s (%d bytes) to %s/%s",
            job.id,
            job.input_asset.name,
            job.input_asset.size,
            owner,
            input_slug,
        )
        try:
            input_version = self._artifacts.ensure_input_slot(
                input_slug,
                audio,
                job.input_asset.name,
                content_type=job.input_asset.content_type,
                extra_files=input_slot_extras(config),
            )
            job.input_slot = SlotVersion(input_slug, input_version)

            job_version = self._artifacts.ensure_job_slot(
                job_slug,
                job_script_source(),
                GPU_RESOURCES,
                title=job_title(job_slug),
                dataset_sources=[f"{owner}/{input_slug}"],
            )
            job.job_slot = SlotVersion(job_slug, job_version)
        except MusicVideoError as exc:
            job.advance(JobState.FAILED, error_message=str(exc))
            logger.error("[submit] Job %s failed during push: %s", job.id, exc)
            raise
        except httpx.HTTPError as exc:
            error = RemotePlatformError(f"Platform request failed during push: {exc!r}")
            job.advance(JobState.FAILED, error_message=str(error))
            logger.error("[submit] Job %s failed during push: %r", job.id, exc)
            raise error from exc

        job.remote_handle = JobHandle(owner=owner, slug=job_slug)
        job.advance(JobState.SUBMITTED)
        logger.info(
            "[submit] Job %s submitted as %s (input v%d, job v%d)",
            job.id,
            job.remote_handle.ref,
            job.input_slot.version,
            job.job_slot.version,
        )
        return job.remote_handle
