"""GitHub contents-API artifact store.

Every put/delete is its own commit on the configured branch. GitHub rejects
an update whose blob SHA is stale (409, or 422 when the SHA is missing), which
surfaces as a `WriteConflict`; `sync` drops the cached SHAs so the retry
re-reads them. `create` sends no SHA, so an existing file is a conflict
too.
"""

from __future__ import annotations

import base64
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from swarm_factory.core.errors import StoreError
from swarm_factory.store.base import StoreEntry, WriteConflict, WriteFatal, WriteOk, WriteResult

logger = structlog.get_logger(__name__)

DEFAULT_API_URL = "https://api.github.com"
USER_AGENT = "swarm-factory"


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:300]
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return response.text[:300]


class GitHubContentsStore:
    """Artifact store over `/repos/{owner}/{repo}/contents/{path}`."""

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str,
        *,
        branch: str | None = None,
        api_url: str = DEFAULT_API_URL,
        timeout_s: float = 15.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.owner = owner
        self.repo = repo
        self.branch = branch
        self._client = client or httpx.Client(base_url=api_url, timeout=timeout_s)
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "User-Agent": USER_AGENT,
        }
        self._shas: dict[str, str] = {}

    def close(self) -> None:
        self._client.close()

    def _url(self, path: str) -> str:
        return f"/repos/{self.owner}/{self.repo}/contents/{quote(path.strip('/'))}"

    def _params(self) -> dict[str, str]:
        return {"ref": self.branch} if self.branch else {}

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return self._client.request(method, self._url(path), headers=self._headers, **kwargs)
        except httpx.HTTPError as exc:
            raise StoreError(f"GitHub {method} {path} failed", str(exc)) from exc

    def _fetch(self, path: str) -> Any | None:
        response = self._request("GET", path, params=self._params())
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise StoreError(f"GitHub GET {path} failed ({response.status_code})", _error_detail(response))
        return response.json()

    def list_dir(self, path: str) -> list[StoreEntry]:
        payload = self._fetch(path)
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise StoreError(f"GitHub path is not a directory: {path}")
        entries = [
            StoreEntry(name=item["name"], path=item["path"], is_dir=item.get("type") == "dir")
            for item in payload
            if isinstance(item, dict) and item.get("name") and item.get("path")
        ]
        return sorted(entries, key=lambda e: e.name)

    def get(self, path: str) -> bytes | None:
        payload = self._fetch(path)
        if payload is None:
            return None
        if not isinstance(payload, dict) or payload.get("type") != "file":
            raise StoreError(f"GitHub path is not a file: {path}")
        if payload.get("sha"):
            self._shas[path] = payload["sha"]
        content = payload.get("content") or ""
        return base64.b64decode(content)

    def _sha_for(self, path: str) -> str | None:
        if path in self._shas:
            return self._shas[path]
        payload = self._fetch(path)
        if isinstance(payload, dict) and payload.get("sha"):
            self._shas[path] = payload["sha"]
            return payload["sha"]
        return None

    def _classify(self, path: str, response: httpx.Response) -> WriteResult | None:
        if response.status_code == 409:
            return WriteConflict(path=path, detail=_error_detail(response))
        if response.status_code == 422 and "sha" in _error_detail(response).lower():
            return WriteConflict(path=path, detail=_error_detail(response))
        if response.status_code >= 400:
            return WriteFatal(path=path, detail=f"HTTP {response.status_code}: {_error_detail(response)}")
        return None

    def put(self, path: str, data: bytes, message: str) -> WriteResult:
        return self._put(path, data, message, sha=self._sha_for(path))

    def create(self, path: str, data: bytes, message: str) -> WriteResult:
        # Without a sha GitHub refuses to replace an existing file (422).
        return self._put(path, data, message, sha=None)

    def _put(self, path: str, data: bytes, message: str, *, sha: str | None) -> WriteResult:
        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(data).decode("ascii"),
        }
        if self.branch:
            body["branch"] = self.branch
        if sha:
            body["sha"] = sha

        response = self._request("PUT", path, json=body)
        failure = self._classify(path, response)
        if failure is not None:
            return failure

        payload = response.json()
        new_sha = (payload.get("content") or {}).get("sha")
        if new_sha:
            self._shas[path] = new_sha
        commit = payload.get("commit") or {}
        logger.debug("github put", path=path, commit=commit.get("sha"))
        return WriteOk(path=path, commit=commit.get("html_url") or commit.get("sha"))

    def delete(self, path: str, message: str) -> WriteResult:
        sha = self._sha_for(path)
        if sha is None:
            return WriteOk(path=path)
        body: dict[str, Any] = {"message": message, "sha": sha}
        if self.branch:
            body["branch"] = self.branch

        response = self._request("DELETE", path, json=body)
        if response.status_code == 404:
            self._shas.pop(path, None)
            return WriteOk(path=path)
        failure = self._classify(path, response)
        if failure is not None:
            return failure
        self._shas.pop(path, None)
        commit = (response.json().get("commit") or {}) if response.content else {}
        return WriteOk(path=path, commit=commit.get("html_url") or commit.get("sha"))

    def sync(self) -> None:
        self._shas.clear()

    def flush(self, message: str) -> WriteResult:
        return WriteOk(path="")
