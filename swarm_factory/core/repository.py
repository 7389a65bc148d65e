"""Typed access to runs, pending jobs, inbox items and per-job record collections.

Every mutation goes through the retry policy; reads go straight to the
store.
"""

from __future__ import annotations

import json
from typing import Any, Callable

import structlog
from pydantic import ValidationError

from swarm_factory.core import paths
from swarm_factory.core.errors import StoreError
from swarm_factory.core.models import InboxItem, JobRecord
from swarm_factory.core.retry import RetryPolicy
from swarm_factory.store.base import ArtifactStore, StoreEntry, WriteOk, WriteResult

logger = structlog.get_logger(__name__)


def dump_json(payload: Any) -> bytes:
    return (json.dumps(payload, indent=2, ensure_ascii=False) + "\n").encode("utf-8")


class RunRepository:
    def __init__(self, store: ArtifactStore, retry: RetryPolicy | None = None) -> None:
        self.store = store
        self.retry = retry or RetryPolicy()

    # --- generic ---------------------------------------------------------

    def begin_batch(self) -> None:
        self.retry.prepare(self.store)

    def _write(self, path: str, attempt: Callable[[], WriteResult]) -> WriteOk:
        return self.retry.run(self.store, attempt, label=path)

    def read_json(self, path: str) -> dict[str, Any] | None:
        raw = self.store.get(path)
        if raw is None:
            return None
        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise StoreError(f"Corrupt JSON at {path}", str(exc)) from exc
        if not isinstance(payload, dict):
            raise StoreError(f"Expected a JSON object at {path}")
        return payload

    def write_json(self, path: str, payload: Any, message: str) -> WriteOk:
        data = dump_json(payload)
        return self._write(path, lambda: self.store.put(path, data, message))

    def create_json(self, path: str, payload: Any, message: str) -> WriteOk:
        """Write a record that must not exist yet. A taken path raises after the retry policy."""
        data = dump_json(payload)
        return self._write(path, lambda: self.store.create(path, data, message))

    def write_text(self, path: str, text: str, message: str) -> WriteOk:
        data = text.encode("utf-8")
        return self._write(path, lambda: self.store.put(path, data, message))

    def delete(self, path: str, message: str) -> WriteOk:
        return self._write(path, lambda: self.store.delete(path, message))

    def publish(self, message: str) -> WriteOk:
        return self.retry.run(self.store, lambda: self.store.flush(message), label="publish")

    def list_records(self, directory: str) -> list[tuple[str, dict[str, Any]]]:
        """All JSON records in `directory`, sorted by path. Unreadable ones are skipped."""
        records: list[tuple[str, dict[str, Any]]] = []
        for entry in self.store.list_dir(directory):
            if entry.is_dir or not entry.name.endswith(paths.RECORD_SUFFIX):
                continue
            try:
                payload = self.read_json(entry.path)
            except StoreError as exc:
                logger.warning("skipping unreadable record", path=entry.path, error=str(exc))
                continue
            if payload is not None:
                records.append((entry.path, payload))
        return sorted(records, key=lambda item: item[0])

    # --- runs ------------------------------------------------------------

    def _parse_job(self, path: str, payload: dict[str, Any]) -> JobRecord:
        try:
            return JobRecord.model_validate(payload)
        except ValidationError as exc:
            raise StoreError(f"Invalid job record at {path}", str(exc)) from exc

    def load_run(self, job_id: str) -> JobRecord | None:
        path = paths.run_path(job_id)
        payload = self.read_json(path)
        return None if payload is None else self._parse_job(path, payload)

    def save_run(self, job: JobRecord, message: str) -> WriteOk:
        return self.write_json(paths.run_path(job.job_id), job.to_dict(), message)

    def list_run_entries(self, limit: int | None = None) -> list[StoreEntry]:
        """Run files, most recently modified first."""
        entries = [
            e for e in self.store.list_dir(paths.RUNS_DIR) if not e.is_dir and e.name.endswith(paths.RECORD_SUFFIX)
        ]
        entries.sort(key=lambda e: (e.modified_at or 0.0, e.name), reverse=True)
        return entries if limit is None else entries[:limit]

    def list_runs(self, limit: int | None = None) -> list[JobRecord]:
        """Readable runs, newest `createdAt` first."""
        jobs: list[JobRecord] = []
        for path, payload in self.list_records(paths.RUNS_DIR):
            try:
                jobs.append(self._parse_job(path, payload))
            except StoreError as exc:
                logger.warning("skipping invalid run", path=path, error=str(exc))
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs if limit is None else jobs[:limit]

    # --- pending ---------------------------------------------------------

    def load_pending(self, job_id: str) -> JobRecord | None:
        path = paths.pending_path(job_id)
        payload = self.read_json(path)
        return None if payload is None else self._parse_job(path, payload)

    def save_pending(self, job: JobRecord, message: str) -> WriteOk:
        return self.write_json(paths.pending_path(job.job_id), job.to_dict(), message)

    def delete_pending(self, job_id: str, message: str) -> WriteOk:
        return self.delete(paths.pending_path(job_id), message)

    def list_pending(self) -> list[JobRecord]:
        jobs: list[JobRecord] = []
        for path, payload in self.list_records(paths.PENDING_DIR):
            try:
                jobs.append(self._parse_job(path, payload))
            except StoreError as exc:
                logger.warning("skipping invalid pending job", path=path, error=str(exc))
        return jobs

    # --- inbox -----------------------------------------------------------

    def save_inbox_item(self, item: InboxItem, path: str, message: str) -> WriteOk:
        return self.create_json(path, item.to_dict(), message)

    def list_inbox(self, limit: int | None = None) -> list[InboxItem]:
        """Readable inbox items, newest `createdAt` first."""
        items: list[InboxItem] = []
        for path, payload in self.list_records(paths.INBOX_DIR):
            try:
                items.append(InboxItem.model_validate(payload))
            except ValidationError as exc:
                logger.warning("skipping invalid inbox item", path=path, error=str(exc))
        items.sort(key=lambda i: i.created_at, reverse=True)
        return items if limit is None else items[:limit]
