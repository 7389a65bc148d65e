"""Client for the dashboard's per-run chat channel endpoint.

The dashboard owns the messaging credentials; we only ask it to open a
channel for a freshly confirmed run and keep what it answers.
"""

from __future__ import annotations

from typing import Any, Protocol

import httpx
import structlog

from swarm_factory.core.errors import NotificationError
from swarm_factory.core.models import JobRecord

logger = structlog.get_logger(__name__)

RUN_CHANNEL_PATH = "/api/slack/run-channel"


class RunChannelNotifier(Protocol):
    def create_run_channel(self, job: JobRecord) -> dict[str, Any]: ...


class RunChannelClient:
    def __init__(self, base_url: str, *, timeout_s: float = 10.0, client: httpx.Client | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout_s)

    def close(self) -> None:
        self._client.close()

    def create_run_channel(self, job: JobRecord) -> dict[str, Any]:
        """POST the run identity; return the endpoint's JSON answer.

        Raises:
            NotificationError: transport failure, HTTP error or `ok: false`.
        """
        url = f"{self.base_url}{RUN_CHANNEL_PATH}"
        body = {"jobId": job.job_id, "code": job.code, "title": job.title, "idea": job.idea}
        try:
            response = self._client.post(url, json=body)
        except httpx.HTTPError as exc:
            raise NotificationError(f"run-channel request failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code >= 400 or not isinstance(payload, dict) or not payload.get("ok"):
            detail = payload.get("error") if isinstance(payload, dict) else response.text[:200]
            raise NotificationError(f"run-channel failed (HTTP {response.status_code}): {detail}")

        logger.info("run channel created", job_id=job.job_id, channel=(payload.get("channel") or {}).get("name"))
        return payload
