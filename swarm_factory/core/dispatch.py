"""Dispatch Deduplicator.

Turns ASSIGN_AGENT events into "please act on this" markers under
`artifacts/<jobId>/dispatch/`, at most one marker per idempotency key.
Events come from two places: the run's own history and the job's decision
log. The scan is safe to repeat on every scheduler tick; re-observing an
event (after a pull re-surfaces it, say) yields the same key and no new
marker.
"""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

import structlog

from swarm_factory.core import paths
from swarm_factory.core.dates import MonotonicClock
from swarm_factory.core.decisions import DecisionLog
from swarm_factory.core.errors import InvalidInputError, StoreError
from swarm_factory.core.models import AssignEvent, DecisionAction, DispatchMarker, HistoryEventType, MarkerStatus
from swarm_factory.core.repository import RunRepository

logger = structlog.get_logger(__name__)

DEFAULT_MAX_RUNS = 200
UNKNOWN_ROLE = "unknown"
ROLE_KEYS = ("role", "agent", "agentRole", "pool")
ROLE_ALIASES: Mapping[str, str] = {
    "engineer": "coder",
    "coder": "coder",
    "dev": "coder",
    "design": "designer",
    "designer": "designer",
    "ux": "designer",
    "qa": "qa",
    "test": "qa",
    "tester": "qa",
    "deploy": "deploy",
    "release": "deploy",
}
MARKER_NOTES = "Queued by dispatch-scan. A controller picks this up and advances its status."

_UNSAFE_NAME_RE = re.compile(r"[^a-z0-9_-]")


def role_from_assign(data: Mapping[str, Any] | None) -> str:
    """Normalized role of an assignment payload, or `unknown`."""
    raw = ""
    for key in ROLE_KEYS:
        value = (data or {}).get(key)
        if value:
            raw = str(value).strip().lower()
            if raw:
                break
    if not raw:
        return UNKNOWN_ROLE
    return ROLE_ALIASES.get(raw, raw)


def extract_assign_events(source: Any) -> list[AssignEvent]:
    """ASSIGN_AGENT entries of an event list, or of `{events: [...]}` / `{history: [...]}`."""
    if isinstance(source, list):
        items = source
    elif isinstance(source, Mapping) and isinstance(source.get("events"), list):
        items = source["events"]
    elif isinstance(source, Mapping) and isinstance(source.get("history"), list):
        items = source["history"]
    else:
        return []

    events: list[AssignEvent] = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        name = str(item.get("event") or item.get("type") or "").upper()
        if name != HistoryEventType.ASSIGN_AGENT.value:
            continue
        data = item.get("data") or item.get("payload") or {}
        events.append(AssignEvent(ts=item.get("ts") or item.get("at"), data=dict(data)))
    return events


def assign_event_from_decision(record: Mapping[str, Any]) -> AssignEvent | None:
    """The assign event carried by a stored decision record, if it is one.

    Works on the raw payload: a record written by another actor with an alias
    or a missing agent still becomes an event, and `role_from_assign` decides
    what it maps to.
    """
    if str(record.get("action") or "").strip().upper() != DecisionAction.ASSIGN_AGENT.value:
        return None
    return AssignEvent(ts=record.get("createdAt"), data=dict(record))


def canonical_json(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def make_dispatch_key(job_id: str, event: AssignEvent) -> str:
    """`<jobId>:<role>:<ts>:<sha1 of the canonical payload>`."""
    role = role_from_assign(event.data)
    digest = hashlib.sha1(canonical_json(event.data).encode("utf-8")).hexdigest()
    return f"{job_id}:{role}:{event.ts or ''}:{digest}"


@dataclass(frozen=True)
class QueuedDispatch:
    job_id: str
    dispatch_key: str
    requested_role: str
    file: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobId": self.job_id,
            "dispatchKey": self.dispatch_key,
            "requestedRole": self.requested_role,
            "file": self.file,
        }


@dataclass
class DispatchScanResult:
    ts: str
    dry_run: bool
    scanned_runs: int = 0
    queued: list[QueuedDispatch] = field(default_factory=list)
    already_marked: int = 0
    commit: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ts": self.ts,
            "dryRun": self.dry_run,
            "scannedRuns": self.scanned_runs,
            "queued": [q.to_dict() for q in self.queued],
            "alreadyMarked": self.already_marked,
            "commit": self.commit,
        }


class DispatchDeduplicator:
    def __init__(
        self,
        repository: RunRepository,
        decision_log: DecisionLog,
        clock: MonotonicClock | None = None,
        max_runs: int = DEFAULT_MAX_RUNS,
    ) -> None:
        self.repository = repository
        self.decision_log = decision_log
        self.clock = clock or MonotonicClock()
        self.max_runs = max_runs

    def marker_keys(self, job_id: str) -> set[str]:
        """Idempotency keys of every marker currently stored for `job_id`."""
        keys: set[str] = set()
        for _, payload in self.repository.list_records(paths.dispatch_dir(job_id)):
            key = payload.get("dispatchKey")
            if isinstance(key, str):
                keys.add(key)
        return keys

    def gather(self, job_id: str, run: Mapping[str, Any]) -> list[AssignEvent]:
        """Assignment events from the run history followed by the decision log."""
        events = extract_assign_events(run.get("history") or [])
        try:
            records = self.decision_log.list_records(job_id)
        except StoreError as exc:
            logger.warning("decision read failed during dispatch scan", job_id=job_id, error=str(exc))
            records = []
        for _, record in records:
            event = assign_event_from_decision(record)
            if event is not None:
                events.append(event)
        return events

    def scan(self, *, dry_run: bool = False, sync_first: bool = False, publish: bool = False) -> DispatchScanResult:
        result = DispatchScanResult(ts=self.clock.now_iso(), dry_run=dry_run)

        if sync_first and not dry_run:
            try:
                self.repository.store.sync()
            except StoreError as exc:
                logger.warning("pull before dispatch scan failed, using local state", error=str(exc))

        for entry in self.repository.list_run_entries(self.max_runs):
            try:
                run = self.repository.read_json(entry.path)
            except StoreError as exc:
                logger.warning("skipping unreadable run", path=entry.path, error=str(exc))
                continue
            if not run or not run.get("jobId"):
                continue
            try:
                job_id = paths.check_job_id(str(run["jobId"]))
            except InvalidInputError:
                logger.warning("skipping run with unusable jobId", path=entry.path)
                continue

            events = self.gather(job_id, run)
            if not events:
                continue
            result.scanned_runs += 1
            self._queue_events(job_id, run, events, result, dry_run)

        if publish and result.queued and not dry_run:
            published = self.repository.publish(f"dispatch: queue {len(result.queued)} assign event(s)")
            result.commit = published.commit

        logger.info(
            "dispatch scan finished",
            scanned_runs=result.scanned_runs,
            queued=len(result.queued),
            already_marked=result.already_marked,
            dry_run=dry_run,
        )
        return result

    def _queue_events(
        self,
        job_id: str,
        run: Mapping[str, Any],
        events: Iterable[AssignEvent],
        result: DispatchScanResult,
        dry_run: bool,
    ) -> None:
        planned: set[str] = set()
        for event in events:
            key = make_dispatch_key(job_id, event)
            # Re-list right before writing; another actor may have queued it meanwhile.
            if key in planned or key in self.marker_keys(job_id):
                result.already_marked += 1
                continue

            role = role_from_assign(event.data)
            created_at = self.clock.now_iso()
            path = paths.dispatch_marker_path(job_id, created_at, _UNSAFE_NAME_RE.sub("-", role))
            pool = event.data.get("pool")
            marker = DispatchMarker(
                created_at=created_at,
                job_id=job_id,
                code=run.get("code"),
                title=run.get("title"),
                dispatch_key=key,
                assign_event=event,
                requested_role=role,
                pool=str(pool) if pool else None,
                status=MarkerStatus.QUEUED,
                notes=MARKER_NOTES,
            )
            if not dry_run:
                message = f"dispatch: {role} for {run.get('code') or job_id}"
                self.repository.create_json(path, marker.to_dict(), message)
            planned.add(key)
            result.queued.append(QueuedDispatch(job_id=job_id, dispatch_key=key, requested_role=role, file=path))
