"""Decision Log: append-only, per-job decision records.

Actors express "what should happen next" by appending a small record under
`artifacts/<jobId>/decisions/`. Nothing here reads the Job Record or any
existing decision before writing, so this layer cannot conflict on content;
conflicts on the commit sequence are the retry policy's business.
"""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import ValidationError

from swarm_factory.core import paths
from swarm_factory.core.dates import MonotonicClock
from swarm_factory.core.errors import InvalidInputError
from swarm_factory.core.models import (
    PHASE_VALUES,
    ROLE_VALUES,
    DecisionAction,
    StoredDecision,
    decision_from_record,
)
from swarm_factory.core.repository import RunRepository

logger = structlog.get_logger(__name__)


def build_decision_record(
    job_id: str,
    action: str | None,
    created_at: str,
    *,
    to_phase: str | None = None,
    agent: str | None = None,
    pipeline: bool | None = None,
    note: str | None = None,
) -> dict[str, Any]:
    """Validate the inputs and return the record as it will be stored.

    Raises:
        InvalidInputError: with every problem found, before anything is written.
    """
    problems: list[str] = []
    job_id = paths.check_job_id(job_id)
    tag = (action or "").strip().upper()
    phase = (to_phase or "").strip().upper() or None
    role = (agent or "").strip().lower() or None

    if not tag:
        problems.append("Missing action")
    elif tag == DecisionAction.SET_PHASE.value:
        if phase is None:
            problems.append("SET_PHASE requires toPhase")
        elif phase not in PHASE_VALUES:
            problems.append(f"Unknown phase: {phase}")
    elif tag == DecisionAction.ASSIGN_AGENT.value:
        if role is None:
            problems.append("ASSIGN_AGENT requires agent")
        elif role not in ROLE_VALUES:
            problems.append(f"Unknown agent role: {role} (expected one of {', '.join(sorted(ROLE_VALUES))})")

    if problems:
        raise InvalidInputError(problems[0], problems)

    return {
        "kind": "DECISION",
        "jobId": job_id,
        "createdAt": created_at,
        "action": tag,
        "toPhase": phase,
        "agent": role,
        "pipeline": bool(pipeline) if pipeline is not None else None,
        "note": note or None,
    }


class DecisionLog:
    def __init__(self, repository: RunRepository, clock: MonotonicClock | None = None) -> None:
        self.repository = repository
        self.clock = clock or MonotonicClock()

    def append(
        self,
        job_id: str,
        action: str | None,
        *,
        to_phase: str | None = None,
        agent: str | None = None,
        pipeline: bool | None = None,
        note: str | None = None,
        publish: bool = True,
    ) -> StoredDecision:
        """Write one new decision record at a fresh, timestamp-derived path."""
        created_at = self.clock.now_iso()
        record = build_decision_record(
            job_id, action, created_at, to_phase=to_phase, agent=agent, pipeline=pipeline, note=note
        )
        path = paths.decision_path(record["jobId"], created_at)
        message = f"decision: {record['action']} {record['jobId']}"

        self.repository.begin_batch()
        self.repository.create_json(path, record, message)
        if publish:
            self.repository.publish(message)
        logger.info("decision appended", job_id=record["jobId"], action=record["action"], path=path)
        return StoredDecision(path=path, decision=decision_from_record(record))

    def list_records(self, job_id: str) -> list[tuple[str, dict[str, Any]]]:
        """Raw stored payloads for `job_id`, in storage-path order, unvalidated."""
        return self.repository.list_records(paths.decisions_dir(job_id))

    def list(self, job_id: str) -> list[StoredDecision]:
        """Every readable decision for `job_id`, in storage-path order.

        Raises:
            StoreError: when the decision collection cannot be listed.
        """
        decisions: list[StoredDecision] = []
        for path, payload in self.list_records(job_id):
            try:
                decisions.append(StoredDecision(path=path, decision=decision_from_record(payload)))
            except ValidationError as exc:
                logger.warning("skipping malformed decision", path=path, error=str(exc))
        return decisions
