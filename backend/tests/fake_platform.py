"""In-memory fake of the remote platform's REST API, served through httpx.MockTransport."""

from __future__ import annotations

import json
from typing import Any

import httpx

API_HOST = "kaggle.test"
UPLOAD_HOST = "upload.test"
FILES_HOST = "files.test"
OWNER = "tester"


class FakeKaggle:
    """
    Enough of the dataset / kernel API to exercise slot pushes, status reads
    and output retrieval.

    ``failures[(method, target)] = status`` fails requests whose host equals
    ``target`` or whose path ends with it. ``scripted[(method, target)]`` is a
    queue of responses or exceptions served, one per matching request, before
    normal handling resumes.
    """

    def __init__(self) -> None:
        self.datasets: dict[str, dict[str, Any]] = {}
        self.kernels: dict[str, dict[str, Any]] = {}
        self.tickets: dict[str, dict[str, Any]] = {}
        self.kernel_status: dict[str, dict[str, Any]] = {}
        self.outputs: dict[str, list[dict[str, Any]]] = {}
        self.blobs: dict[str, bytes] = {}
        self.failures: dict[tuple[str, str], int] = {}
        self.scripted: dict[tuple[str, str], list[httpx.Response | Exception]] = {}
        self.push_error: str | None = None
        self.requests: list[httpx.Request] = []

    @staticmethod
    def _matches(request: httpx.Request, method: str, target: str) -> bool:
        return request.method == method and (
            request.url.host == target or request.url.path.endswith(target)
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for (method, target), queue in self.scripted.items():
            if queue and self._matches(request, method, target):
                step = queue.pop(0)
                if isinstance(step, Exception):
                    raise step
                return step
        for (method, target), status in self.failures.items():
            if self._matches(request, method, target):
                return httpx.Response(status, text=f"forced failure for {target}")

        host = request.url.host
        if host == UPLOAD_HOST:
            token = request.url.path.rsplit("/", 1)[-1]
            self.tickets[token]["data"] = request.content
            return httpx.Response(200)
        if host == FILES_HOST:
            blob = self.blobs.get(request.url.path)
            if blob is None:
                return httpx.Response(404, text="no such file")
            return httpx.Response(200, content=blob, headers={"Content-Type": "video/mp4"})

        path = request.url.path.removeprefix("/api/v1/")
        parts = path.split("/")
        body = json.loads(request.content) if request.method == "POST" and request.content else {}

        if parts[0] == "datasets":
            return self._datasets(request.method, parts[1:], body)
        if parts[0] == "kernels":
            return self._kernels(request.method, parts[1:], body)
        return httpx.Response(404, text=f"unknown route {path}")

    def _datasets(self, method: str, parts: list[str], body: dict[str, Any]) -> httpx.Response:
        if method == "POST" and parts[:2] == ["upload", "file"]:
            token = f"tok{len(self.tickets) + 1}"
            self.tickets[token] = {"name": body["fileName"], "data": None}
            return httpx.Response(
                200, json={"token": token, "createUrl": f"https://{UPLOAD_HOST}/blob/{token}"}
            )
        if method == "POST" and not parts:
            slug = body["slug"]
            self.datasets[slug] = {"version": 1, "files": self._claim(body["files"]), "meta": body}
            return httpx.Response(200, json={"ref": f"{OWNER}/{slug}", "status": "ok", "error": None})
        if method == "GET" and len(parts) == 2:
            dataset = self.datasets.get(parts[1])
            if dataset is None:
                return httpx.Response(404, json={"message": "Not found"})
            return httpx.Response(200, json={"ref": "/".join(parts), "currentVersionNumber": dataset["version"]})
        if method == "POST" and len(parts) == 3 and parts[2] == "versions":
            dataset = self.datasets.get(parts[1])
            if dataset is None:
                return httpx.Response(404, json={"message": "Not found"})
            dataset["version"] += 1
            dataset["files"] = self._claim(body["files"])
            dataset["last_version_request"] = body
            return httpx.Response(200, json={"ref": "/".join(parts[:2]), "status": "ok", "error": None})
        return httpx.Response(404, text="unknown dataset route")

    def _claim(self, file_refs: list[dict[str, str]]) -> dict[str, bytes]:
        return {self.tickets[ref["token"]]["name"]: self.tickets[ref["token"]]["data"] for ref in file_refs}

    def _kernels(self, method: str, parts: list[str], body: dict[str, Any]) -> httpx.Response:
        if method == "POST" and parts == ["push"]:
            if self.push_error:
                return httpx.Response(200, json={"ref": body["slug"], "error": self.push_error})
            slug = body["slug"].split("/", 1)[1]
            kernel = self.kernels.setdefault(slug, {"version": 0})
            kernel["version"] += 1
            kernel["payload"] = body
            return httpx.Response(
                200,
                json={"ref": body["slug"], "versionNumber": kernel["version"], "error": None},
            )
        if method == "GET" and len(parts) == 2:
            if parts[1] not in self.kernels:
                return httpx.Response(404, json={"message": "Not found"})
            return httpx.Response(200, json={"ref": "/".join(parts)})
        if method == "GET" and len(parts) == 3 and parts[2] == "status":
            return httpx.Response(200, json=self.kernel_status.get(parts[1], {"status": "queued"}))
        if method == "GET" and len(parts) == 3 and parts[2] == "output":
            files = self.outputs.get(parts[1])
            if files is None:
                return httpx.Response(404, json={"message": "No output yet"})
            return httpx.Response(200, json={"files": files})
        return httpx.Response(404, text="unknown kernel route")

    def set_status(self, slug: str, status: str, **extra: Any) -> None:
        self.kernel_status[slug] = {"status": status, **extra}

    def publish_output(self, slug: str, file_name: str, data: bytes) -> None:
        path = f"/{slug}/{file_name}"
        self.blobs[path] = data
        self.outputs.setdefault(slug, []).append(
            {"fileName": file_name, "url": f"https://{FILES_HOST}{path}"}
        )
