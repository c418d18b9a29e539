from __future__ import annotations

from collections.abc import Iterator

import httpx
import pytest

from fake_platform import API_HOST, OWNER, FakeKaggle
from services.platform import Platform, create_http_client
from services.platform_config import PlatformConfig
from services.store import jobs, watchers


@pytest.fixture
def anyio_backend() -> str:
    """The async tests drive asyncio directly, so run them on asyncio only."""
    return "asyncio"


@pytest.fixture
def fake_kaggle() -> FakeKaggle:
    return FakeKaggle()


@pytest.fixture
def platform_config() -> PlatformConfig:
    return PlatformConfig(
        username=OWNER,
        key="secret-key",
        api_base=f"https://{API_HOST}/api/v1",
        site_base=f"https://{API_HOST}",
        watch_jobs=False,
        poll_interval_seconds=0.01,
    )


@pytest.fixture
def platform(fake_kaggle: FakeKaggle, platform_config: PlatformConfig) -> Iterator[Platform]:
    http = create_http_client(platform_config, transport=httpx.MockTransport(fake_kaggle))
    yield Platform(platform_config, http)
    http.close()


@pytest.fixture
def clear_jobs() -> Iterator[None]:
    """Isolate tests by clearing the in-memory job registry."""
    jobs.clear()
    watchers.clear()
    yield
    jobs.clear()
    watchers.clear()
