"""
Versioned artifact pushes to the remote platform.

Two named slots back every job: an input slot (a private dataset holding the
audio plus the job's structured configuration) and a job slot (a GPU script
kernel). Pushing to an existing slug creates a new version; slots are never
deleted. Multi-step pushes are not rolled back: repeating the whole sequence
after a mid-way failure is always safe because the next attempt re-uploads.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import httpx

from services.errors import RemotePlatformError, SlotCreateError, SlotReviseError

logger = logging.getLogger(__name__)

INPUT_SLOT_TITLE = "Music Video Input"
DEFAULT_AUDIO_CONTENT_TYPE = "audio/mpeg"


@dataclass(frozen=True)
class SlotFile:
    name: str
    data: bytes
    content_type: str = "application/octet-stream"


@dataclass(frozen=True)
class ResourceRequirements:
    enable_gpu: bool = True
    enable_internet: bool = True


class VersionedArtifactClient:
    def __init__(self, http: httpx.Client, *, owner: str) -> None:
        self._http = http
        self.owner = owner

    # -- input slot -------------------------------------------------------

    def input_slot_exists(self, slug: str) -> bool:
        return self._http.get(f"datasets/{self.owner}/{slug}").status_code == 200

    def ensure_input_slot(
        self,
        slug: str,
        asset_bytes: bytes,
        asset_name: str,
        *,
        content_type: str = DEFAULT_AUDIO_CONTENT_TYPE,
        extra_files: Sequence[SlotFile] = (),
        title: str = INPUT_SLOT_TITLE,
    ) -> int:
        """
        Create or revise the input slot with the asset (and any extra files).

        Absent slot: ticket -> upload -> create. Present slot: ticket ->
        upload -> new version, retiring older versions. Returns the version.
        """
        files = [SlotFile(asset_name, asset_bytes, content_type), *extra_files]
        if not self.input_slot_exists(slug):
            logger.info("[artifacts] Creating input slot %s/%s (%d file(s))", self.owner, slug, len(files))
            tokens = [self._upload_file(f, SlotCreateError) for f in files]
            payload = self._post_json(
                "datasets",
                {
                    "ownerSlug": self.owner,
                    "slug": slug,
                    "title": title,
                    "isPrivate": True,
                    "licenses": [{"name": "other"}],
                    "files": [{"token": t} for t in tokens],
                },
                SlotCreateError,
                "Input slot create failed",
            )
            version = self._version_from(payload, f"datasets/{self.owner}/{slug}", SlotCreateError)
        else:
            logger.info("[artifacts] Revising input slot %s/%s (%d file(s))", self.owner, slug, len(files))
            tokens = [self._upload_file(f, SlotReviseError) for f in files]
            payload = self._post_json(
                f"datasets/{self.owner}/{slug}/versions",
                {
                    "versionNotes": f"New audio upload: {asset_name}",
                    "files": [{"token": t} for t in tokens],
                    "convertToCsv": False,
                    "deleteOldVersions": True,
                },
                SlotReviseError,
                "Input slot revise failed",
            )
            version = self._version_from(payload, f"datasets/{self.owner}/{slug}", SlotReviseError)
        logger.info("[artifacts] Input slot %s/%s now at version %d", self.owner, slug, version)
        return version

    def _upload_file(self, file: SlotFile, error_cls: type[RemotePlatformError]) -> str:
        """Request an upload ticket and PUT the bytes; returns the ticket token."""
        ticket = self._post_json(
            f"datasets/upload/file/{len(file.data)}/{int(time.time())}",
            {"fileName": file.name},
            error_cls,
            f"Upload ticket request failed for {file.name}",
        )
        token = ticket.get("token")
        upload_url = ticket.get("createUrl")
        if not token or not upload_url:
            raise error_cls(f"Upload ticket for {file.name} missing token or createUrl", body=str(ticket))

        # Platform-provided storage URL: no platform credentials on this request.
        response = self._http.put(
            upload_url,
            content=file.data,
            headers={"Content-Type": file.content_type},
            auth=None,
        )
        if not response.is_success:
            raise error_cls(
                f"Byte upload failed for {file.name}",
                status_code=response.status_code,
                body=response.text,
            )
        logger.debug("[artifacts] Uploaded %s (%d bytes)", file.name, len(file.data))
        return str(token)

    # -- job slot ---------------------------------------------------------

    def job_slot_exists(self, slug: str) -> bool:
        return self._http.get(f"kernels/{self.owner}/{slug}").status_code == 200

    def ensure_job_slot(
        self,
        slug: str,
        source: str,
        resources: ResourceRequirements,
        *,
        title: str,
        dataset_sources: Sequence[str] = (),
    ) -> int:
        """Push the job definition; create and revise are the same push call."""
        exists = self.job_slot_exists(slug)
        error_cls: type[RemotePlatformError] = SlotReviseError if exists else SlotCreateError
        logger.info(
            "[artifacts] %s job slot %s/%s (gpu=%s internet=%s sources=%s)",
            "Revising" if exists else "Creating",
            self.owner,
            slug,
            resources.enable_gpu,
            resources.enable_internet,
            list(dataset_sources),
        )
        payload = self._post_json(
            "kernels/push",
            {
                "slug": f"{self.owner}/{slug}",
                "newTitle": title,
                "text": source,
                "language": "python",
                "kernelType": "script",
                "isPrivate": True,
                "enableGpu": resources.enable_gpu,
                "enableInternet": resources.enable_internet,
                "datasetDataSources": list(dataset_sources),
                "competitionDataSources": [],
                "kernelDataSources": [],
                "categoryIds": [],
            },
            error_cls,
            "Job slot push failed",
        )
        version = self._version_from(payload, f"kernels/{self.owner}/{slug}", error_cls)
        logger.info("[artifacts] Job slot %s/%s now at version %d", self.owner, slug, version)
        return version

    # -- helpers ----------------------------------------------------------

    def _post_json(
        self,
        path: str,
        body: dict[str, Any],
        error_cls: type[RemotePlatformError],
        message: str,
    ) -> dict[str, Any]:
        response = self._http.post(path, json=body)
        if not response.is_success:
            raise error_cls(message, status_code=response.status_code, body=response.text)
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        # The platform sometimes reports failures inside a 200 body.
        if payload.get("error"):
            raise error_cls(message, status_code=response.status_code, body=str(payload["error"]))
        return payload

    def _version_from(
        self,
        payload: dict[str, Any],
        metadata_path: str,
        error_cls: type[RemotePlatformError],
    ) -> int:
        version = payload.get("versionNumber")
        if version is None:
            response = self._http.get(metadata_path)
            if not response.is_success:
                raise error_cls(
                    "Could not read slot version",
                    status_code=response.status_code,
                    body=response.text,
                )
            meta = response.json()
            version = meta.get("currentVersionNumber", meta.get("versionNumber"))
        if version is None:
            raise error_cls("Platform did not report a slot version", body=str(payload))
        return int(version)
