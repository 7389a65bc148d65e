"""Unit tests for the Overlay Resolver and board aggregation."""

import pytest

from swarm_factory.core.decisions import DecisionLog
from swarm_factory.core.errors import NotFoundError, StoreError
from swarm_factory.core.inbox import Inbox
from swarm_factory.core.models import JobRecord, StoredDecision, decision_from_record
from swarm_factory.core.overlay import OverlayResolver, resolve_effective


def _job(phase="DESIGN", job_id="job-1", created_at="2026-10-19T07:00:00.000Z"):
    return JobRecord(job_id=job_id, created_at=created_at, phase=phase, idea="x")


def _decision(ts, **fields):
    encoded = ts.replace(":", "-").replace(".", "-")
    record = {"kind": "DECISION", "jobId": "job-1", "createdAt": ts, **fields}
    return StoredDecision(path=f"artifacts/job-1/decisions/{encoded}.json", decision=decision_from_record(record))


T1 = "2026-10-19T08:00:00.000Z"
T2 = "2026-10-19T09:00:00.000Z"
T3 = "2026-10-19T10:00:00.000Z"


@pytest.mark.unit
def test_no_decisions_means_raw_record():
    view = resolve_effective(_job(), [])

    assert view.effective_phase == "DESIGN"
    assert view.phase_overridden is False
    assert view.assigned_agent is None and view.assigned_pipeline is None
    assert view.latest_decision is None
    assert view.decision_count == 0


@pytest.mark.unit
def test_latest_phase_decision_wins_regardless_of_input_order():
    early = _decision(T1, action="SET_PHASE", toPhase="BUILD")
    late = _decision(T2, action="SET_PHASE", toPhase="QA")

    for order in ([early, late], [late, early]):
        view = resolve_effective(_job(), order)
        assert view.effective_phase == "QA"
        assert view.phase_overridden is True
        assert view.latest_phase_decision == late


@pytest.mark.unit
def test_phase_and_assignment_lookups_are_independent():
    assign = _decision(T1, action="ASSIGN_AGENT", agent="coder", pipeline=True)
    phase = _decision(T2, action="SET_PHASE", toPhase="QA")

    view = resolve_effective(_job(), [phase, assign])

    assert view.effective_phase == "QA"
    assert view.assigned_agent == "coder"
    assert view.assigned_pipeline is True
    assert view.latest_decision == phase
    assert view.latest_assignment_decision == assign


@pytest.mark.unit
def test_other_decisions_count_but_do_not_steer():
    phase = _decision(T1, action="SET_PHASE", toPhase="BUILD")
    note = _decision(T2, action="ESCALATE", note="ping")

    view = resolve_effective(_job(), [note, phase])

    assert view.effective_phase == "BUILD"
    assert view.decision_count == 2
    assert view.latest_decision == note


@pytest.mark.unit
def test_override_to_stored_phase_is_not_flagged():
    view = resolve_effective(_job("QA"), [_decision(T1, action="SET_PHASE", toPhase="QA")])
    assert view.effective_phase == "QA"
    assert view.phase_overridden is False


@pytest.mark.unit
def test_to_dict_summary():
    job = _job()
    job.artifacts["product"] = "artifacts/job-1/product/a.json"
    latest = _decision(T3, action="ASSIGN_AGENT", agent="qa")

    data = resolve_effective(job, [latest]).to_dict()

    assert data["summary"] == {"decisionCount": 1, "latestDecisionFile": latest.path, "hasSpec": True}
    assert data["assignedAgent"] == "qa"
    assert data["latestAssignmentDecision"]["file"] == latest.path
    assert data["decisionsDegraded"] is False


@pytest.mark.unit
def test_resolver_reads_the_decision_log(repository, clock):
    repository.save_run(_job(), "seed")
    log = DecisionLog(repository, clock)
    log.append("job-1", "SET_PHASE", to_phase="BUILD")
    log.append("job-1", "SET_PHASE", to_phase="QA")

    view = OverlayResolver(repository, log).resolve("job-1")

    assert view.effective_phase == "QA"
    assert repository.load_run("job-1").phase == "DESIGN"


@pytest.mark.unit
def test_resolver_missing_run(repository, clock):
    with pytest.raises(NotFoundError):
        OverlayResolver(repository, DecisionLog(repository, clock)).resolve("ghost")


class _BrokenLog:
    def __init__(self, broken_ids):
        self.broken_ids = broken_ids

    def list(self, job_id):
        if job_id in self.broken_ids:
            raise StoreError("store unreachable")
        return [_decision(T1, action="SET_PHASE", toPhase="DONE")]


@pytest.mark.unit
def test_decision_read_failure_degrades_to_raw_record(repository):
    view = OverlayResolver(repository, _BrokenLog({"job-1"})).resolve_job(_job())

    assert view.effective_phase == "DESIGN"
    assert view.decisions_degraded is True


@pytest.mark.unit
def test_board_survives_one_jobs_decision_failure(repository):
    repository.save_run(_job(job_id="job-1", created_at="2026-10-19T07:00:00.000Z"), "seed")
    repository.save_run(_job(job_id="job-2", created_at="2026-10-19T08:00:00.000Z"), "seed")
    repository.save_run(_job(job_id="job-3", created_at="2026-10-19T06:00:00.000Z"), "seed")

    board = OverlayResolver(repository, _BrokenLog({"job-2"})).build_board(limit=2).runs

    assert [v.job.job_id for v in board] == ["job-2", "job-1"]
    assert board[0].decisions_degraded is True
    assert board[0].effective_phase == "DESIGN"
    assert board[1].effective_phase == "DONE"


@pytest.mark.unit
def test_board_lists_inbox_items_next_to_runs(repository, clock):
    repository.save_run(_job(job_id="job-1"), "seed")
    inbox = Inbox(repository, clock)
    older = inbox.submit("Dog walking marketplace")
    newer = inbox.submit("Plumber booking")

    board = OverlayResolver(repository, DecisionLog(repository, clock)).build_board().to_dict()

    assert [item["job"]["jobId"] for item in board["items"]] == ["job-1"]
    assert [item["id"] for item in board["inbox"]] == [newer.item.id, older.item.id]
    assert board["inbox"][0]["kind"] == "INBOX_ITEM"
