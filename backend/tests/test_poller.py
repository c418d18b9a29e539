from __future__ import annotations

import asyncio

import httpx
import pytest

from fake_platform import FakeKaggle
from models import JobHandle, StatusSnapshot
from services.errors import RemoteJobFailedError, RemoteStatusError
from services.platform import Platform
from services.poller import watch_job
from services.reconciler import build_snapshot


def _scripted(*steps):
    """A blocking poll() that replays snapshots (or raises exceptions) in order."""
    remaining = list(steps)
    calls: list[int] = []

    def poll() -> StatusSnapshot:
        calls.append(1)
        step = remaining.pop(0)
        if isinstance(step, Exception):
            raise step
        return build_snapshot({"status": step}, download_url="http://test/download")

    return poll, calls


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.mark.anyio
async def test_returns_final_snapshot_on_completion() -> None:
    poll, calls = _scripted("queued", "running", "running", "complete")
    sleep = RecordingSleep()
    seen: list[str] = []

    final = await watch_job(
        poll,
        interval_seconds=20,
        on_snapshot=lambda s: seen.append(s.remote_state),
        sleep=sleep,
    )

    assert final.done is True
    assert final.download_url == "http://test/download"
    assert seen == ["queued", "running", "running", "complete"]
    assert len(calls) == 4
    assert sleep.delays == [20, 20, 20]


@pytest.mark.anyio
async def test_status_read_failures_are_retried() -> None:
    poll, calls = _scripted(
        RemoteStatusError("Platform status read failed", status_code=503),
        httpx.ConnectError("connection refused"),
        "running",
        "complete",
    )
    sleep = RecordingSleep()

    final = await watch_job(poll, interval_seconds=1.5, sleep=sleep)

    assert final.remote_state == "complete"
    assert len(calls) == 4
    assert sleep.delays == [1.5, 1.5, 1.5]


@pytest.mark.anyio
async def test_remote_error_raises_job_failed() -> None:
    poll, _ = _scripted("running", "error")

    with pytest.raises(RemoteJobFailedError) as excinfo:
        await watch_job(poll, interval_seconds=0, sleep=RecordingSleep())

    assert excinfo.value.remote_state == "error"


@pytest.mark.anyio
async def test_cancelled_remote_run_raises_job_failed() -> None:
    poll, _ = _scripted("cancelAcknowledged")

    with pytest.raises(RemoteJobFailedError) as excinfo:
        await watch_job(poll, interval_seconds=0, sleep=RecordingSleep())

    assert excinfo.value.remote_state == "cancelled"


@pytest.mark.anyio
async def test_unexpected_errors_propagate() -> None:
    poll, _ = _scripted(KeyError("status"))

    with pytest.raises(KeyError):
        await watch_job(poll, interval_seconds=0, sleep=RecordingSleep())


@pytest.mark.anyio
async def test_watcher_stops_when_cancelled() -> None:
    poll, calls = _scripted(*["running"] * 100)

    task = asyncio.create_task(watch_job(poll, interval_seconds=0.01))
    await asyncio.sleep(0.05)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    made = len(calls)
    await asyncio.sleep(0.05)
    assert len(calls) == made


@pytest.mark.anyio
async def test_undecodable_response_is_retried() -> None:
    poll, calls = _scripted(httpx.DecodingError("invalid gzip stream"), "complete")

    final = await watch_job(poll, interval_seconds=0, sleep=RecordingSleep())

    assert final.done is True
    assert len(calls) == 2


@pytest.mark.anyio
async def test_garbage_status_page_does_not_stop_watching(platform: Platform, fake_kaggle: FakeKaggle) -> None:
    handle = JobHandle(owner="tester", slug="music-video-pipeline-abc")
    fake_kaggle.scripted[("GET", "/status")] = [
        httpx.Response(200, text="<html>Service temporarily unavailable</html>"),
    ]
    fake_kaggle.set_status(handle.slug, "complete")
    seen: list[str] = []

    final = await watch_job(
        platform.reconciler(handle).poll,
        interval_seconds=0,
        on_snapshot=lambda s: seen.append(s.remote_state),
        sleep=RecordingSleep(),
    )

    assert final.done is True
    assert seen == ["complete"]
    status_reads = [r for r in fake_kaggle.requests if r.url.path.endswith("/status")]
    assert len(status_reads) == 2
