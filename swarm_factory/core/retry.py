"""Bounded retry for store mutations.

Optimistic concurrency without a lock server: attempt the write, and when
the shared history moved underneath us, re-synchronize and attempt once
more. A second conflict is fatal for this invocation and surfaces to the
caller; persistent contention is an operator problem.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import structlog

from swarm_factory.core.errors import StoreConflictError, StoreWriteError
from swarm_factory.store.base import ArtifactStore, WriteConflict, WriteFatal, WriteOk, WriteResult

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """How store writes react to conflicts.

    Attributes:
        max_retries: Re-sync/re-attempt cycles after the first conflict.
        sync_before: Pull the latest state at the start of each write batch.
    """

    max_retries: int = 1
    sync_before: bool = False

    def prepare(self, store: ArtifactStore) -> None:
        """Called once before a batch of writes."""
        if self.sync_before:
            store.sync()

    def run(self, store: ArtifactStore, attempt: Callable[[], WriteResult], *, label: str = "write") -> WriteOk:
        """Run `attempt` until it succeeds or the policy is exhausted."""
        result = attempt()
        retries = 0
        while isinstance(result, WriteConflict) and retries < self.max_retries:
            retries += 1
            logger.warning(
                "store conflict, re-synchronizing",
                label=label,
                path=result.path,
                retry=retries,
                detail=result.detail,
            )
            store.sync()
            result = attempt()

        match result:
            case WriteOk():
                return result
            case WriteConflict(path=path, detail=detail):
                raise StoreConflictError(f"{label}: conflict persisted after {retries} retry(ies) ({path})", detail)
            case WriteFatal(path=path, detail=detail):
                raise StoreWriteError(f"{label}: write rejected ({path})", detail)
        raise TypeError(f"Unexpected write result: {result!r}")
