"""Fixed-interval status watcher for one job. Cancel the task to stop polling."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

import httpx

from models import StatusSnapshot
from services.errors import RemoteJobFailedError, RemoteStatusError

logger = logging.getLogger(__name__)


async def watch_job(
    poll: Callable[[], StatusSnapshot],
    *,
    interval_seconds: float,
    on_snapshot: Callable[[StatusSnapshot], None] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: str = "job",
) -> StatusSnapshot:
    """
    Poll immediately, then every ``interval_seconds`` until a terminal state.

    ``poll`` is blocking and runs in a worker thread. Failed reads are logged
    and retried on the next tick. Returns the final snapshot on success and
    raises RemoteJobFailedError when the platform reports error/cancelled.
    """
    while True:
        try:
            snapshot = await asyncio.to_thread(poll)
        except RemoteStatusError as exc:
            logger.warning("[watch] %s: status read failed, retrying in %ss: %s", label, interval_seconds, exc)
        except httpx.HTTPError as exc:
            logger.warning("[watch] %s: request failed, retrying in %ss: %r", label, interval_seconds, exc)
        else:
            if on_snapshot is not None:
                on_snapshot(snapshot)
            if snapshot.errored:
                logger.info("[watch] %s ended in %s", label, snapshot.remote_state)
                raise RemoteJobFailedError(snapshot.remote_state, snapshot.error_message)
            if snapshot.done:
                logger.info("[watch] %s complete", label)
                return snapshot
        await sleep(interval_seconds)
