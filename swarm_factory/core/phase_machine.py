"""Phase State Machine.

Advances a Job Record along the fixed pipeline, one phase per step:

    CUSTOMER_DISCOVERY -> PRODUCT -> DESIGN -> BUILD -> QA -> DEPLOY -> HUMAN_REVIEW

Each step writes one phase artifact and appends ARTIFACT_WRITTEN then
PHASE_SET to the job's history. Artifact content is template-based; the
point is a complete, ordered artifact trail.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

import structlog

from swarm_factory.core import paths
from swarm_factory.core.dates import MonotonicClock
from swarm_factory.core.errors import NotFoundError, StoreError
from swarm_factory.core.models import HistoryEventType, JobRecord, Phase
from swarm_factory.core.repository import RunRepository

logger = structlog.get_logger(__name__)

DEFAULT_MAX_STEPS = 20

STOP_PHASES = frozenset({Phase.INTAKE.value, Phase.HUMAN_REVIEW.value, Phase.DONE.value, Phase.FAILED.value})


def _customer_discovery(job: JobRecord, ts: str) -> dict[str, Any]:
    return {
        "kind": "CUSTOMER_DISCOVERY",
        "jobId": job.job_id,
        "createdAt": ts,
        "persona": {"title": "Prospective customer", "summary": f"Someone who would pay for: {job.title or job.idea}"},
        "pains": [
            "Requests arrive through scattered channels and get lost.",
            "Follow-ups are manual and slow.",
        ],
        "objections": ["Does it fit my existing tools?", "Is setup quick?"],
        "buySignal": "Would trial it if it saves admin time every week.",
    }


def _product_spec(job: JobRecord, ts: str) -> dict[str, Any]:
    name = "".join(c for c in (job.title or job.idea or "New Product") if c.isalnum() or c in " -").strip()
    return {
        "kind": "PRODUCT_SPEC",
        "jobId": job.job_id,
        "createdAt": ts,
        "productName": f"{name or 'New Product'} MVP",
        "mvpScope": ["Request form", "Admin list with accept/decline", "Status page"],
        "outOfScope": ["Payments", "Full CRM"],
        "acceptanceCriteria": [
            "A customer can submit a request in under a minute.",
            "An admin can accept a request and see it listed.",
            "The app deploys and loads at a URL.",
        ],
    }


def _design_spec(job: JobRecord, ts: str) -> dict[str, Any]:
    return {
        "kind": "DESIGN_SPEC",
        "jobId": job.job_id,
        "createdAt": ts,
        "informationArchitecture": ["Request page", "Admin dashboard", "Request detail"],
        "components": ["RequestForm", "RequestsTable", "StatusBadge"],
        "uxFlow": ["Customer submits, sees confirmation", "Admin reviews and accepts"],
    }


def _build_plan(job: JobRecord, ts: str) -> str:
    return (
        "# Build Plan\n\n"
        f"Job: {job.job_id}\n"
        f"Code: {job.code or ''}\n\n"
        "## Steps\n"
        "1. Request form page\n"
        "2. Admin dashboard page\n"
        "3. Create/list/update endpoints\n"
    )


def _qa_report(job: JobRecord, ts: str) -> str:
    return (
        "# QA Report\n\n"
        "- Request form submits\n"
        "- Admin sees the request\n"
        "- Accept moves the request to the accepted list\n\n"
        "## Open issues\n"
        "- Notifications are not implemented\n"
    )


def _deploy_report(job: JobRecord, ts: str) -> dict[str, Any]:
    return {
        "kind": "DEPLOY_REPORT",
        "jobId": job.job_id,
        "createdAt": ts,
        "status": "PENDING_REAL_DEPLOY",
        "url": None,
    }


@dataclass(frozen=True)
class PhaseStep:
    """What one automatic transition writes."""

    phase: Phase
    directory: str
    ext: str
    artifact_key: str
    kind: str
    next_phase: Phase
    note: str
    render: Callable[[JobRecord, str], Any]


PIPELINE: dict[str, PhaseStep] = {
    step.phase.value: step
    for step in (
        PhaseStep(
            Phase.CUSTOMER_DISCOVERY,
            "customer",
            "json",
            "customer",
            "CUSTOMER_DISCOVERY",
            Phase.PRODUCT,
            "customer discovery complete",
            _customer_discovery,
        ),
        PhaseStep(
            Phase.PRODUCT, "product", "json", "product", "PRODUCT_SPEC", Phase.DESIGN, "product spec complete", _product_spec
        ),
        PhaseStep(Phase.DESIGN, "design", "json", "design", "DESIGN_SPEC", Phase.BUILD, "design spec complete", _design_spec),
        PhaseStep(Phase.BUILD, "build", "md", "buildPlan", "BUILD_PLAN", Phase.QA, "build plan written", _build_plan),
        PhaseStep(Phase.QA, "qa", "md", "qa", "QA_REPORT", Phase.DEPLOY, "qa report written", _qa_report),
        PhaseStep(
            Phase.DEPLOY,
            "deploy",
            "json",
            "deploy",
            "DEPLOY_REPORT",
            Phase.HUMAN_REVIEW,
            "deploy report written; awaiting human review",
            _deploy_report,
        ),
    )
}


class PhaseMachine:
    def __init__(
        self,
        repository: RunRepository,
        clock: MonotonicClock | None = None,
        runner_name: str = "batch-runner",
    ) -> None:
        self.repository = repository
        self.clock = clock or MonotonicClock()
        self.runner_name = runner_name

    def advance_one_step(self, job: JobRecord) -> bool:
        """Advance `job` by one phase. Returns whether progress occurred.

        Stop phases (INTAKE, HUMAN_REVIEW, DONE, FAILED) return False without
        touching anything. An unknown phase records a SWARM_ERROR diagnostic
        and also returns False; the phase itself is left as it was.
        """
        if not job.phase:
            job.phase = Phase.CUSTOMER_DISCOVERY.value

        if job.phase in STOP_PHASES:
            return False

        step = PIPELINE.get(job.phase)
        if step is None:
            self._diagnose(job, f"Unknown phase: {job.phase}")
            return False

        ts = self.clock.now_iso()
        path = paths.artifact_path(job.job_id, step.directory, ts, step.ext)
        content = step.render(job, ts)
        message = f"artifact: {job.label} {step.kind}"
        if step.ext == "json":
            self.repository.write_json(path, content, message)
        else:
            self.repository.write_text(path, content, message)

        job.artifacts[step.artifact_key] = path
        job.record(HistoryEventType.ARTIFACT_WRITTEN, {"path": path, "kind": step.kind}, ts=ts)
        job.phase = step.next_phase.value
        job.record(HistoryEventType.PHASE_SET, {"toPhase": job.phase, "note": step.note}, ts=self.clock.now_iso())

        if step.phase is Phase.DEPLOY:
            done_ts = self.clock.now_iso()
            job.swarm["completedAt"] = done_ts
            job.record(HistoryEventType.SWARM_COMPLETED, {"mode": "template"}, ts=done_ts)

        logger.info("phase advanced", job_id=job.job_id, from_phase=step.phase.value, to_phase=job.phase)
        return True

    def _diagnose(self, job: JobRecord, error: str) -> None:
        last = job.history[-1] if job.history else None
        if last is not None and last.event == HistoryEventType.SWARM_ERROR.value and last.data.get("error") == error:
            return
        job.record(HistoryEventType.SWARM_ERROR, {"error": error}, ts=self.clock.now_iso())
        logger.warning("job left for manual triage", job_id=job.job_id, error=error)

    def advance(self, job: JobRecord, max_steps: int = DEFAULT_MAX_STEPS) -> int:
        """Run `advance_one_step` until it stops or `max_steps` is reached."""
        steps = 0
        while steps < max_steps and self.advance_one_step(job):
            steps += 1
        return steps

    def advance_run(self, job_id: str, max_steps: int = DEFAULT_MAX_STEPS) -> RunAdvance:
        """Load, fast-forward and persist one run."""
        job = self.repository.load_run(job_id)
        if job is None:
            raise NotFoundError(f"Run not found: {job_id}")

        history_before = len(job.history)
        if "startedAt" not in job.swarm:
            ts = self.clock.now_iso()
            job.swarm["startedAt"] = ts
            job.swarm["runner"] = self.runner_name
            job.record(HistoryEventType.SWARM_STARTED, {"runner": self.runner_name}, ts=ts)

        from_phase = job.phase
        steps = self.advance(job, max_steps)
        # Nothing but the start stamp changed: keep the record untouched.
        changed = steps > 0 or any(
            h.event == HistoryEventType.SWARM_ERROR.value for h in job.history[history_before:]
        )
        if changed:
            self.repository.save_run(job, f"runner: {job.label} -> {job.phase}")
        return RunAdvance(job_id=job.job_id, from_phase=from_phase, to_phase=job.phase, steps=steps, written=changed)

    def advance_runs(self, job_ids: list[str], max_steps: int = DEFAULT_MAX_STEPS) -> BatchAdvanceResult:
        """Drive every listed run, then publish once."""
        result = BatchAdvanceResult()
        self.repository.begin_batch()
        for job_id in job_ids:
            try:
                outcome = self.advance_run(job_id, max_steps)
            except NotFoundError:
                logger.warning("run missing, skipping", job_id=job_id)
                result.skipped.append(job_id)
                continue
            except StoreError as exc:
                logger.warning("run failed, continuing batch", job_id=job_id, error=str(exc))
                result.failed.append(FailedRun(job_id=job_id, error=str(exc)))
                continue
            result.runs.append(outcome)

        written = [r for r in result.runs if r.written]
        if written:
            published = self.repository.publish(f"runner: advance {len(written)} run(s)")
            result.commit = published.commit
        return result


@dataclass(frozen=True)
class RunAdvance:
    job_id: str
    from_phase: str
    to_phase: str
    steps: int
    written: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobId": self.job_id,
            "fromPhase": self.from_phase,
            "toPhase": self.to_phase,
            "steps": self.steps,
            "written": self.written,
        }


@dataclass(frozen=True)
class FailedRun:
    job_id: str
    error: str


@dataclass
class BatchAdvanceResult:
    runs: list[RunAdvance] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[FailedRun] = field(default_factory=list)
    commit: str | None = None

    @property
    def updated(self) -> list[str]:
        return [r.job_id for r in self.runs if r.steps > 0]

    def to_dict(self) -> dict[str, Any]:
        return {
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": [{"jobId": f.job_id, "error": f.error} for f in self.failed],
            "runs": [r.to_dict() for r in self.runs],
            "commit": self.commit,
        }
