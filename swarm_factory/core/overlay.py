"""Overlay Resolver: the effective view of a job.

The Job Record holds the base phase written by the runner. Decisions are
folded over it at read time, never written back:

- effective phase: `toPhase` of the latest SET_PHASE decision, else the stored phase
- effective assignment: `agent`/`pipeline` of the latest ASSIGN_AGENT decision, else None

The two lookups are independent. "Latest" means last in storage-path order;
paths embed the creation timestamp, so this is chronological up to ties,
which fall back to plain string comparison of the paths.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

import structlog

from swarm_factory.core.decisions import DecisionLog
from swarm_factory.core.errors import NotFoundError, StoreError
from swarm_factory.core.models import AssignAgentDecision, InboxItem, JobRecord, SetPhaseDecision, StoredDecision
from swarm_factory.core.repository import RunRepository

logger = structlog.get_logger(__name__)

SPEC_ARTIFACT_KEY = "product"
DEFAULT_BOARD_LIMIT = 50


@dataclass(frozen=True)
class EffectiveView:
    job: JobRecord
    effective_phase: str
    phase_overridden: bool
    latest_decision: StoredDecision | None
    latest_phase_decision: StoredDecision | None
    latest_assignment_decision: StoredDecision | None
    assigned_agent: str | None
    assigned_pipeline: bool | None
    decision_count: int
    has_spec: bool
    decisions_degraded: bool = False

    def to_dict(self) -> dict[str, Any]:
        def _decision(item: StoredDecision | None) -> dict[str, Any] | None:
            return None if item is None else {"file": item.path, **item.decision.to_dict()}

        return {
            "job": self.job.to_dict(),
            "effectivePhase": self.effective_phase,
            "phaseOverridden": self.phase_overridden,
            "latestDecision": _decision(self.latest_decision),
            "latestPhaseDecision": _decision(self.latest_phase_decision),
            "latestAssignmentDecision": _decision(self.latest_assignment_decision),
            "assignedAgent": self.assigned_agent,
            "assignedPipeline": self.assigned_pipeline,
            "summary": {
                "decisionCount": self.decision_count,
                "latestDecisionFile": self.latest_decision.path if self.latest_decision else None,
                "hasSpec": self.has_spec,
            },
            "decisionsDegraded": self.decisions_degraded,
        }


@dataclass(frozen=True)
class BoardView:
    runs: list[EffectiveView]
    inbox: list[InboxItem]

    def to_dict(self) -> dict[str, Any]:
        return {"items": [v.to_dict() for v in self.runs], "inbox": [i.to_dict() for i in self.inbox]}


def resolve_effective(
    job: JobRecord, decisions: Iterable[StoredDecision], *, degraded: bool = False
) -> EffectiveView:
    """Fold `decisions` over `job`. Input order does not matter."""
    ordered = sorted(decisions, key=lambda d: d.path)

    latest_phase: StoredDecision | None = None
    latest_assignment: StoredDecision | None = None
    for item in reversed(ordered):
        match item.decision:
            case SetPhaseDecision() if latest_phase is None:
                latest_phase = item
            case AssignAgentDecision() if latest_assignment is None:
                latest_assignment = item
            case _:
                pass
        if latest_phase is not None and latest_assignment is not None:
            break

    effective_phase = job.phase
    if latest_phase is not None:
        effective_phase = latest_phase.decision.to_phase.value  # type: ignore[union-attr]

    agent: str | None = None
    pipeline: bool | None = None
    if latest_assignment is not None:
        assignment = latest_assignment.decision
        agent = assignment.agent.value  # type: ignore[union-attr]
        pipeline = assignment.pipeline

    return EffectiveView(
        job=job,
        effective_phase=effective_phase,
        phase_overridden=effective_phase != job.phase,
        latest_decision=ordered[-1] if ordered else None,
        latest_phase_decision=latest_phase,
        latest_assignment_decision=latest_assignment,
        assigned_agent=agent,
        assigned_pipeline=pipeline,
        decision_count=len(ordered),
        has_spec=bool(job.artifacts.get(SPEC_ARTIFACT_KEY)),
        decisions_degraded=degraded,
    )


class OverlayResolver:
    def __init__(self, repository: RunRepository, decision_log: DecisionLog) -> None:
        self.repository = repository
        self.decision_log = decision_log

    def resolve(self, job_id: str) -> EffectiveView:
        job = self.repository.load_run(job_id)
        if job is None:
            raise NotFoundError(f"Run not found: {job_id}")
        return self.resolve_job(job)

    def resolve_job(self, job: JobRecord) -> EffectiveView:
        """Resolve one job; a decision read failure degrades to the raw record."""
        try:
            decisions = self.decision_log.list(job.job_id)
        except StoreError as exc:
            logger.warning("decision read failed, using raw record", job_id=job.job_id, error=str(exc))
            return resolve_effective(job, [], degraded=True)
        return resolve_effective(job, decisions)

    def build_board(self, limit: int = DEFAULT_BOARD_LIMIT) -> BoardView:
        """Effective views of the newest `limit` runs, plus the newest inbox items."""
        runs = [self.resolve_job(job) for job in self.repository.list_runs(limit)]
        try:
            inbox = self.repository.list_inbox(limit)
        except StoreError as exc:
            logger.warning("inbox read failed, board shows runs only", error=str(exc))
            inbox = []
        return BoardView(runs=runs, inbox=inbox)
