"""Intake and confirmation.

Intake stages a Pending Job. Confirmation promotes it to a canonical Job
Record at a new path and then deletes the pending file, in that order, so a
crash in between leaves a duplicate to clean up rather than a lost job.
"""

from __future__ import annotations

import re
import secrets
import uuid
from dataclasses import dataclass, field
from typing import Any

import structlog

from swarm_factory.core import paths
from swarm_factory.core.dates import MonotonicClock
from swarm_factory.core.errors import InvalidInputError, NotFoundError, NotificationError, StoreError
from swarm_factory.core.models import HistoryEventType, JobRecord, Phase
from swarm_factory.core.repository import RunRepository
from swarm_factory.notifications.run_channel import RunChannelNotifier

logger = structlog.get_logger(__name__)

TITLE_MAX_LENGTH = 80
CODE_MAX_WORDS = 3
CODE_MAX_LENGTH = 24


def slugify(text: str, max_length: int = 48) -> str:
    slug = re.sub(r"[^a-z0-9\s-]", "", text.lower()).strip()
    slug = re.sub(r"[\s-]+", "-", slug)
    return slug[:max_length].strip("-")


def title_from_idea(idea: str) -> str:
    lines = (idea or "").strip().splitlines()
    return lines[0][:TITLE_MAX_LENGTH] if lines else ""


def make_short_code(idea: str, suffix: str | None = None) -> str:
    """`"Mobile car-wash booking app"` -> `"mobile-car-wash-3f9a"`.

    Not unique by construction; the jobId is the authoritative identity.
    """
    words = slugify(title_from_idea(idea)).split("-")
    base = "-".join(w for w in words[:CODE_MAX_WORDS] if w)[:CODE_MAX_LENGTH].strip("-")
    tail = suffix or secrets.token_hex(2)
    return f"{base or 'job'}-{tail}"


def new_job(idea: str | None, requester: str | None, clock: MonotonicClock) -> JobRecord:
    text = (idea or "").strip()
    if not text:
        raise InvalidInputError("Missing idea")
    who = (requester or "").strip() or "unknown"
    ts = clock.now_iso()
    job = JobRecord(
        job_id=str(uuid.uuid4()),
        created_at=ts,
        phase=Phase.INTAKE.value,
        idea=text,
        code=make_short_code(text),
        title=title_from_idea(text),
        requester=who,
    )
    job.record(HistoryEventType.INTAKE, {"idea": text, "requester": who}, ts=ts)
    return job


@dataclass(frozen=True)
class IntakeResult:
    job: JobRecord
    pending_file: str

    def to_dict(self) -> dict[str, Any]:
        return {"jobId": self.job.job_id, "code": self.job.code, "pendingFile": self.pending_file}


@dataclass
class ConfirmResult:
    job: JobRecord
    run_file: str
    commit: str | None = None
    slack: dict[str, Any] | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobId": self.job.job_id,
            "code": self.job.code,
            "phase": self.job.phase,
            "runFile": self.run_file,
            "commit": self.commit,
            "slack": self.slack,
        }


class JobService:
    def __init__(
        self,
        repository: RunRepository,
        clock: MonotonicClock | None = None,
        notifier: RunChannelNotifier | None = None,
    ) -> None:
        self.repository = repository
        self.clock = clock or MonotonicClock()
        self.notifier = notifier

    def intake(self, idea: str | None, requester: str | None = None) -> IntakeResult:
        job = new_job(idea, requester, self.clock)
        self.repository.begin_batch()
        self.repository.save_pending(job, f"intake: {job.code}")
        self.repository.publish(f"intake: {job.code}")
        logger.info("pending job created", job_id=job.job_id, code=job.code)
        return IntakeResult(job=job, pending_file=paths.pending_path(job.job_id))

    def find_pending(self, *, job_id: str | None = None, code: str | None = None, last: bool = False) -> JobRecord:
        """Locate a Pending Job by id, by short code (case-insensitive), or the newest one."""
        if job_id:
            job = self.repository.load_pending(job_id)
            if job is None:
                raise NotFoundError(f"No pending job found for jobId={job_id}")
            return job

        if code:
            wanted = code.strip().lower()
            for job in self.repository.list_pending():
                if (job.code or "").lower() == wanted:
                    return job
            raise NotFoundError(f"No pending job found for code={code}")

        if last:
            pending = self.repository.list_pending()
            if not pending:
                raise NotFoundError("No pending jobs exist.")
            return max(pending, key=lambda j: j.created_at)

        raise InvalidInputError("Missing --job-id, --code, or --last")

    def confirm(
        self,
        *,
        job_id: str | None = None,
        code: str | None = None,
        last: bool = False,
        message: str | None = None,
    ) -> ConfirmResult:
        self.repository.begin_batch()
        job = self.find_pending(job_id=job_id, code=code, last=last)
        commit_message = message or f"run: {job.label} confirmed"

        job.record(HistoryEventType.CONFIRMED, {}, ts=self.clock.now_iso())
        job.phase = Phase.CUSTOMER_DISCOVERY.value
        self.repository.save_run(job, commit_message)
        self.repository.delete_pending(job.job_id, commit_message)
        published = self.repository.publish(commit_message)
        logger.info("job confirmed", job_id=job.job_id, code=job.code)

        result = ConfirmResult(job=job, run_file=paths.run_path(job.job_id), commit=published.commit)
        if self.notifier is not None:
            result.slack = self._open_run_channel(job)
        return result

    def _open_run_channel(self, job: JobRecord) -> dict[str, Any]:
        try:
            answer = self.notifier.create_run_channel(job)  # type: ignore[union-attr]
        except NotificationError as exc:
            logger.warning("run channel not created", job_id=job.job_id, error=str(exc))
            return {"ok": False, "error": str(exc)}

        channel = answer.get("channel") or {}
        if not channel.get("channelId"):
            return answer

        job.slack = {
            "channelId": channel["channelId"],
            "name": channel.get("name"),
            "thread_ts": answer.get("thread_ts") or answer.get("kickoff_ts"),
            "artifactFile": answer.get("artifactFile"),
            "commitUrl": answer.get("commitUrl"),
        }
        job.record(HistoryEventType.SLACK_CHANNEL_CREATED, job.slack, ts=self.clock.now_iso())
        try:
            self.repository.save_run(job, f"slack: persist channel for {job.label}")
            self.repository.publish(f"slack: persist channel for {job.label}")
        except StoreError as exc:
            logger.warning("failed to persist run channel metadata", job_id=job.job_id, error=str(exc))
            return {**answer, "persisted": False, "error": str(exc)}
        return {**answer, "persisted": True}
