"""Job REST API: submit audio, poll status, download the finished video."""

import asyncio
import logging
from datetime import datetime

import httpx
from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from models import Job, JobState, StatusSnapshot, UiStage
from services.errors import (
    MissingCredentialsError,
    OutputNotReadyError,
    RemoteJobFailedError,
    RemotePlatformError,
    RemoteStatusError,
    ValidationError,
)
from services.platform import Platform, get_platform
from services.poller import watch_job
from services.store import (
    apply_snapshot,
    get_job,
    latest_job,
    register_job,
    supersede_active_jobs,
    watchers,
)
from services.submission import DEFAULT_CLIP_DURATION_SECONDS, JobSubmissionService, new_job

router = APIRouter(tags=["jobs"])
logger = logging.getLogger(__name__)


class JobSubmitResponse(BaseModel):
    job_id: str
    owner: str
    slug: str
    state: JobState
    job_url: str
    status_url: str
    download_url: str
    message: str


class JobReadResponse(BaseModel):
    job_id: str
    title: str
    visual_style: str
    clip_duration_seconds: int
    state: JobState
    error_message: str | None = None
    input_version: int | None = None
    job_version: int | None = None
    created_at: datetime
    updated_at: datetime


class JobStatusResponse(StatusSnapshot):
    job_id: str
    state: JobState
    job_url: str | None = None


def require_platform() -> Platform:
    try:
        return get_platform()
    except MissingCredentialsError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


def _lookup(job_id: str) -> Job:
    job = get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


def _latest() -> Job:
    job = latest_job()
    if job is None:
        raise HTTPException(status_code=404, detail="No job submitted yet")
    return job


def _local_snapshot(job: Job) -> StatusSnapshot:
    """Snapshot for a job that ended locally (e.g. superseded) without a terminal remote report."""
    cancelled = job.state is JobState.CANCELLED
    return StatusSnapshot(
        remote_state=job.state.value,
        ui_stage=UiStage.CANCELLED if cancelled else UiStage.ERROR,
        progress_percent=0,
        done=False,
        errored=True,
        error_message=job.error_message,
    )


async def _watch(job: Job, platform: Platform, download_url: str) -> None:
    reconciler = platform.reconciler(job.remote_handle, download_url=download_url)

    def record(snapshot: StatusSnapshot) -> None:
        apply_snapshot(job, snapshot)

    try:
        await watch_job(
            reconciler.poll,
            interval_seconds=platform.config.poll_interval_seconds,
            on_snapshot=record,
            label=f"job {job.id}",
        )
    except RemoteJobFailedError as exc:
        logger.warning("[jobs] Job %s failed remotely: %s", job.id, exc)
    finally:
        if watchers.get(job.id) is asyncio.current_task():
            watchers.pop(job.id, None)


@router.post("/jobs", response_model=JobSubmitResponse, status_code=201)
async def submit_job(
    request: Request,
    audio: UploadFile | None = File(None),
    title: str | None = Form(None),
    style: str | None = Form(None),
    clip_duration: int = Form(DEFAULT_CLIP_DURATION_SECONDS),
    platform: Platform = Depends(require_platform),
) -> JobSubmitResponse:
    """Upload the audio and job definition, then start watching the remote run."""
    logger.info("[jobs] POST /api/jobs called")
    limit = platform.config.max_upload_bytes
    if audio is not None and audio.size is not None and audio.size > limit:
        raise HTTPException(status_code=400, detail=f"Audio file too large ({audio.size} bytes, limit {limit})")
    # One byte past the limit is enough for validation to reject the upload.
    audio_bytes = await audio.read(limit + 1) if audio is not None else None
    job = new_job(title=title, visual_style=style, clip_duration_seconds=clip_duration)
    service = JobSubmissionService(platform.artifacts(), platform.config)

    try:
        handle = await run_in_threadpool(
            service.submit,
            job,
            audio_bytes,
            asset_name=audio.filename if audio is not None else None,
            content_type=audio.content_type if audio is not None else None,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except RemotePlatformError as exc:
        register_job(job)
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    if platform.config.shared_slots:
        supersede_active_jobs(job.id)
    register_job(job)

    download_url = str(request.url_for("download_job_output", job_id=job.id))
    if platform.config.watch_jobs:
        watchers[job.id] = asyncio.create_task(_watch(job, platform, download_url))

    logger.info("[jobs] POST /api/jobs -> 201 job_id=%s remote=%s", job.id, handle.ref)
    return JobSubmitResponse(
        job_id=job.id,
        owner=handle.owner,
        slug=handle.slug,
        state=job.state,
        job_url=platform.config.job_url(handle.slug),
        status_url=str(request.url_for("read_job_status", job_id=job.id)),
        download_url=download_url,
        message="Pipeline started. Poll the status URL for progress.",
    )


@router.get("/jobs/{job_id}", response_model=JobReadResponse)
def read_job(job_id: str) -> JobReadResponse:
    job = _lookup(job_id)
    return JobReadResponse(
        job_id=job.id,
        title=job.title,
        visual_style=job.visual_style,
        clip_duration_seconds=job.clip_duration_seconds,
        state=job.state,
        error_message=job.error_message,
        input_version=job.input_slot.version if job.input_slot else None,
        job_version=job.job_slot.version if job.job_slot else None,
        created_at=job.created_at,
        updated_at=job.updated_at,
    )


async def _status(job: Job, request: Request, platform: Platform) -> JobStatusResponse:
    if job.remote_handle is None:
        raise HTTPException(
            status_code=409,
            detail=job.error_message or f"Job is {job.state.value}; nothing submitted yet",
        )
    job_url = platform.config.job_url(job.remote_handle.slug)

    if job.is_terminal:
        last = job.last_snapshot
        snapshot = last if last is not None and last.terminal else _local_snapshot(job)
    else:
        download_url = str(request.url_for("download_job_output", job_id=job.id))
        reconciler = platform.reconciler(job.remote_handle, download_url=download_url)
        try:
            snapshot = await run_in_threadpool(reconciler.poll)
        except (RemoteStatusError, httpx.HTTPError) as exc:
            logger.warning("[jobs] Status read failed for job %s: %s", job.id, exc)
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        apply_snapshot(job, snapshot)

    return JobStatusResponse(
        **snapshot.model_dump(),
        job_id=job.id,
        state=job.state,
        job_url=job_url,
    )


@router.get("/jobs/{job_id}/status", response_model=JobStatusResponse)
async def read_job_status(
    job_id: str,
    request: Request,
    platform: Platform = Depends(require_platform),
) -> JobStatusResponse:
    """Fresh status for polling. Safe to call concurrently."""
    return await _status(_lookup(job_id), request, platform)


@router.get("/status", response_model=JobStatusResponse)
async def read_latest_status(
    request: Request,
    platform: Platform = Depends(require_platform),
) -> JobStatusResponse:
    """Status of the most recently submitted job."""
    return await _status(_latest(), request, platform)


async def _download(job: Job, platform: Platform):
    if job.state in (JobState.FAILED, JobState.CANCELLED):
        exc = RemoteJobFailedError(job.state.value, job.error_message)
        raise HTTPException(status_code=409, detail=str(exc))
    if job.remote_handle is None:
        return JSONResponse(status_code=404, content={"detail": "Job not submitted yet", "files": []})

    retriever = platform.retriever(job.remote_handle)
    try:
        artifact = await run_in_threadpool(retriever.fetch_output)
    except OutputNotReadyError as exc:
        logger.info("[jobs] Output for job %s not ready; visible files: %s", job.id, exc.files)
        return JSONResponse(status_code=404, content={"detail": str(exc), "files": exc.files})

    headers = {"Content-Disposition": f'attachment; filename="{artifact.filename}"'}
    if artifact.content_length is not None:
        headers["Content-Length"] = str(artifact.content_length)
    return StreamingResponse(artifact.iter_bytes(), media_type=artifact.content_type, headers=headers)


@router.get("/jobs/{job_id}/download")
async def download_job_output(job_id: str, platform: Platform = Depends(require_platform)):
    """Proxy the finished video so callers never need platform credentials."""
    return await _download(_lookup(job_id), platform)


@router.get("/download")
async def download_latest_output(platform: Platform = Depends(require_platform)):
    return await _download(_latest(), platform)
