from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from fake_platform import FakeKaggle
from models import JobHandle, JobState, UiStage
from services.errors import RemoteStatusError
from services.platform import Platform
from services.reconciler import build_snapshot, job_state_for, normalize_remote_state

HANDLE = JobHandle(owner="tester", slug="music-video-pipeline-abc")
DOWNLOAD_URL = "http://test/api/jobs/abc/download"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("running", "running"),
        ("RUNNING", "running"),
        ("KernelWorkerStatus.COMPLETE", "complete"),
        ("cancelAcknowledged", "cancelled"),
        ("cancelRequested", "cancelled"),
        ("", "unknown"),
        (None, "unknown"),
        ("new_fancy_state", "new_fancy_state"),
    ],
)
def test_normalize_remote_state(raw: str | None, expected: str) -> None:
    assert normalize_remote_state(raw) == expected


@pytest.mark.parametrize(
    ("status", "stage", "progress", "done", "errored"),
    [
        ("queued", UiStage.ANALYSIS, 5, False, False),
        ("something-new", UiStage.ANALYSIS, 2, False, False),
        ("running", UiStage.CLIPS, 50, False, False),
        ("complete", UiStage.DONE, 100, True, False),
        ("error", UiStage.ERROR, 0, False, True),
        ("cancelled", UiStage.CANCELLED, 0, False, True),
    ],
)
def test_status_table(status: str, stage: UiStage, progress: int, done: bool, errored: bool) -> None:
    snapshot = build_snapshot({"status": status}, download_url=DOWNLOAD_URL)
    assert snapshot.ui_stage is stage
    assert snapshot.progress_percent == progress
    assert snapshot.done is done
    assert snapshot.errored is errored
    assert (snapshot.download_url is not None) is done


def test_poll_running(platform: Platform, fake_kaggle: FakeKaggle) -> None:
    fake_kaggle.set_status(HANDLE.slug, "running", startTime="2026-10-18T10:00:00Z")

    snapshot = platform.reconciler(HANDLE, download_url=DOWNLOAD_URL).poll()

    assert snapshot.ui_stage == "clips"
    assert snapshot.done is False
    assert snapshot.errored is False
    assert snapshot.download_url is None
    assert snapshot.started_at == datetime(2026, 10, 18, 10, 0, tzinfo=timezone.utc)


def test_poll_complete_sets_download_url(platform: Platform, fake_kaggle: FakeKaggle) -> None:
    fake_kaggle.set_status(HANDLE.slug, "complete", completionTime="2026-10-18T10:40:00Z")

    snapshot = platform.reconciler(HANDLE, download_url=DOWNLOAD_URL).poll()

    assert snapshot.done is True
    assert snapshot.download_url == DOWNLOAD_URL
    assert snapshot.finished_at is not None


def test_poll_defaults_download_url_to_platform_output_page(
    platform: Platform, fake_kaggle: FakeKaggle
) -> None:
    fake_kaggle.set_status(HANDLE.slug, "complete")

    snapshot = platform.reconciler(HANDLE).poll()

    assert snapshot.download_url == "https://kaggle.test/code/tester/music-video-pipeline-abc/output"


def test_poll_error_carries_failure_message(platform: Platform, fake_kaggle: FakeKaggle) -> None:
    fake_kaggle.set_status(HANDLE.slug, "error", failureMessage="CUDA out of memory")

    snapshot = platform.reconciler(HANDLE).poll()

    assert snapshot.errored is True
    assert snapshot.error_message == "CUDA out of memory"
    assert snapshot.download_url is None


def test_poll_non_success_raises_remote_status_error(platform: Platform, fake_kaggle: FakeKaggle) -> None:
    fake_kaggle.failures[("GET", "/status")] = 429

    with pytest.raises(RemoteStatusError) as excinfo:
        platform.reconciler(HANDLE).poll()

    assert excinfo.value.status_code == 429
    assert "forced failure" in excinfo.value.body


def test_poll_is_a_pure_read(platform: Platform, fake_kaggle: FakeKaggle) -> None:
    reconciler = platform.reconciler(HANDLE)
    fake_kaggle.set_status(HANDLE.slug, "running")
    first = reconciler.poll()
    second = reconciler.poll()
    assert first == second

    fake_kaggle.set_status(HANDLE.slug, "queued")
    assert reconciler.poll().ui_stage is UiStage.ANALYSIS


def test_job_state_for() -> None:
    assert job_state_for("queued") is JobState.QUEUED
    assert job_state_for("running") is JobState.RUNNING
    assert job_state_for("complete") is JobState.COMPLETE
    assert job_state_for("error") is JobState.FAILED
    assert job_state_for("cancelled") is JobState.CANCELLED
    assert job_state_for("unknown") is None


def test_non_json_success_body_raises_remote_status_error(platform: Platform, fake_kaggle: FakeKaggle) -> None:
    fake_kaggle.scripted[("GET", "/status")] = [
        httpx.Response(200, text="<html>Service temporarily unavailable</html>"),
        httpx.Response(200, json=["not", "an", "object"]),
    ]
    reconciler = platform.reconciler(HANDLE)

    for _ in range(2):
        with pytest.raises(RemoteStatusError) as excinfo:
            reconciler.poll()
        assert excinfo.value.status_code == 200

    assert reconciler.poll().remote_state == "queued"
