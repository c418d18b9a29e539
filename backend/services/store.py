"""In-memory job registry keyed by job ID, plus each job's status watcher task."""

import asyncio
import logging

from models import Job, JobState, StatusSnapshot, can_transition
from services.reconciler import job_state_for

logger = logging.getLogger(__name__)

jobs: dict[str, Job] = {}
watchers: dict[str, asyncio.Task] = {}


def register_job(job: Job) -> Job:
    jobs[job.id] = job
    return job


def get_job(job_id: str) -> Job | None:
    return jobs.get(job_id)


def latest_job() -> Job | None:
    if not jobs:
        return None
    return max(jobs.values(), key=lambda job: job.created_at)


def apply_snapshot(job: Job, snapshot: StatusSnapshot) -> bool:
    """
    Record a snapshot and move the job along if the remote state implies a
    legal transition. Stale or out-of-order reports are ignored. Returns True
    when the job state changed.
    """
    job.last_snapshot = snapshot
    target = job_state_for(snapshot.remote_state)
    if target is None or target is job.state:
        return False
    if not can_transition(job.state, target):
        logger.debug(
            "[store] Ignoring stale remote state %s for job %s in state %s",
            snapshot.remote_state,
            job.id,
            job.state.value,
        )
        return False
    job.advance(target, error_message=snapshot.error_message if snapshot.errored else None)
    logger.info("[store] Job %s -> %s", job.id, job.state.value)
    return True


def cancel_watcher(job_id: str) -> None:
    task = watchers.pop(job_id, None)
    if task is not None and not task.done():
        task.cancel()


def supersede_active_jobs(new_job_id: str) -> list[Job]:
    """With shared slots a new submission replaces any job still in flight."""
    superseded: list[Job] = []
    for job in jobs.values():
        if job.id == new_job_id or job.is_terminal:
            continue
        job.advance(JobState.CANCELLED, error_message=f"Superseded by job {new_job_id}")
        cancel_watcher(job.id)
        superseded.append(job)
        logger.info("[store] Job %s superseded by %s", job.id, new_job_id)
    return superseded


def cancel_watchers() -> None:
    for job_id in list(watchers):
        cancel_watcher(job_id)
