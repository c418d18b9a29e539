"""Authenticated HTTP access to the remote batch platform, shared by all components."""

from __future__ import annotations

import logging

import httpx

from models import JobHandle
from services.artifact_client import VersionedArtifactClient
from services.platform_config import PlatformConfig, load_platform_config
from services.reconciler import StatusReconciler
from services.retriever import OutputRetriever

logger = logging.getLogger(__name__)


def create_http_client(
    config: PlatformConfig,
    *,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """httpx client with Basic auth applied to every platform request."""
    return httpx.Client(
        base_url=config.api_base.rstrip("/") + "/",
        auth=httpx.BasicAuth(config.username, config.key),
        timeout=config.request_timeout_seconds,
        follow_redirects=True,
        transport=transport,
    )


class Platform:
    """Factory for the per-job platform components over one shared HTTP client."""

    def __init__(self, config: PlatformConfig, http: httpx.Client) -> None:
        self.config = config
        self.http = http

    def artifacts(self) -> VersionedArtifactClient:
        return VersionedArtifactClient(self.http, owner=self.config.username)

    def reconciler(self, handle: JobHandle, *, download_url: str | None = None) -> StatusReconciler:
        return StatusReconciler(
            self.http,
            handle,
            download_url=download_url or f"{self.config.job_url(handle.slug)}/output",
        )

    def retriever(self, handle: JobHandle) -> OutputRetriever:
        return OutputRetriever(self.http, handle)

    def close(self) -> None:
        self.http.close()


_platform: Platform | None = None


def get_platform() -> Platform:
    """Process-wide platform built lazily from the environment."""
    global _platform
    if _platform is None:
        config = load_platform_config()
        _platform = Platform(config, create_http_client(config))
        logger.info(
            "[platform] Using %s as %s (shared_slots=%s)",
            config.api_base,
            config.username,
            config.shared_slots,
        )
    return _platform


def close_platform() -> None:
    global _platform
    if _platform is not None:
        _platform.close()
        _platform = None
