"""Locate the finished video in a job's output listing and stream it back."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass

import httpx

from models import JobHandle
from services.errors import OutputNotReadyError

logger = logging.getLogger(__name__)

FINAL_ARTIFACT_SUFFIX = "_music_video.mp4"
VIDEO_CONTENT_TYPE = "video/mp4"
CHUNK_SIZE = 64 * 1024


@dataclass
class RemoteArtifact:
    filename: str
    content_type: str
    content_length: int | None
    response: httpx.Response

    def iter_bytes(self) -> Iterator[bytes]:
        """Yield the body, closing the upstream response when done."""
        try:
            yield from self.response.iter_bytes(CHUNK_SIZE)
        finally:
            self.response.close()

    def close(self) -> None:
        self.response.close()


class OutputRetriever:
    def __init__(self, http: httpx.Client, handle: JobHandle) -> None:
        self._http = http
        self.handle = handle

    def list_output_files(self) -> list[dict]:
        response = self._http.get(
            f"kernels/{self.handle.owner}/{self.handle.slug}/output",
            params={"type": "file"},
        )
        if not response.is_success:
            # No listing until the run has produced output.
            logger.info(
                "[download] Output listing for %s unavailable (HTTP %s)",
                self.handle.ref,
                response.status_code,
            )
            return []
        try:
            files = response.json().get("files") or []
        except (ValueError, AttributeError):
            logger.warning("[download] Malformed output listing for %s", self.handle.ref)
            return []
        return [f for f in files if isinstance(f, dict)]

    def fetch_output(self) -> RemoteArtifact:
        files = self.list_output_files()
        names = [str(f.get("fileName")) for f in files if f.get("fileName")]
        match = next(
            (f for f in files if str(f.get("fileName") or "").endswith(FINAL_ARTIFACT_SUFFIX)),
            None,
        )
        if match is None or not match.get("url"):
            raise OutputNotReadyError(names)

        filename = str(match["fileName"]).rsplit("/", 1)[-1]
        request = self._http.build_request("GET", str(match["url"]))
        response = self._http.send(request, stream=True)
        if not response.is_success:
            status_code = response.status_code
            response.close()
            logger.warning("[download] Artifact read for %s failed (HTTP %s)", self.handle.ref, status_code)
            raise OutputNotReadyError(names, message=f"Video not readable yet (HTTP {status_code})")

        length = response.headers.get("content-length")
        logger.info("[download] Streaming %s for %s", filename, self.handle.ref)
        return RemoteArtifact(
            filename=filename,
            content_type=VIDEO_CONTENT_TYPE,
            content_length=int(length) if length and length.isdigit() else None,
            response=response,
        )
