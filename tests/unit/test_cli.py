"""Unit tests for the swarm-factory command line (file store under tmp_path)."""

import json

import pytest

from swarm_factory.cli.main import EXIT_FAILURE, EXIT_INVALID, EXIT_NOT_FOUND, EXIT_OK, main
from swarm_factory.core.errors import StoreError
from swarm_factory.store.file_store import FileStore


@pytest.fixture
def cli(tmp_path, capsys):
    config_path = tmp_path / "swarm-factory.yml"
    config_path.write_text(f"store:\n  kind: file\n  root: {tmp_path / 'data'}\n", encoding="utf-8")

    def run(*argv):
        code = main(["--config", str(config_path), *argv])
        out = capsys.readouterr().out
        return code, json.loads(out)

    return run


@pytest.mark.unit
def test_intake_confirm_advance(cli):
    code, intake = cli("intake", "--idea", "Mobile car-wash booking app", "--requester", "dana")
    assert code == EXIT_OK and intake["ok"] is True

    code, confirmed = cli("confirm", "--code", intake["code"])
    assert code == EXIT_OK
    assert confirmed["phase"] == "CUSTOMER_DISCOVERY"
    assert confirmed["runFile"] == f"runs/{intake['jobId']}.json"

    code, advanced = cli("advance", "--all")
    assert code == EXIT_OK
    assert advanced["updated"] == [intake["jobId"]]
    assert advanced["runs"][0]["toPhase"] == "HUMAN_REVIEW"


@pytest.mark.unit
def test_decide_and_resolve(cli):
    _, intake = cli("intake", "--idea", "Idea")
    cli("confirm", "--job-id", intake["jobId"])

    code, decided = cli("decide", "--job-id", intake["jobId"], "--action", "SET_PHASE", "--to-phase", "DONE")
    assert code == EXIT_OK
    assert decided["decision"]["toPhase"] == "DONE"

    code, view = cli("resolve", "--job-id", intake["jobId"])
    assert code == EXIT_OK
    assert view["effectivePhase"] == "DONE"
    assert view["phaseOverridden"] is True

    code, board = cli("board")
    assert code == EXIT_OK
    assert [item["job"]["jobId"] for item in board["items"]] == [intake["jobId"]]


@pytest.mark.unit
def test_inbox_item_shows_on_board(cli):
    code, submitted = cli("inbox", "--idea", "Dog walking marketplace")
    assert code == EXIT_OK
    assert submitted["file"].startswith("inbox/") and submitted["file"].endswith("-dog-walking-marketplace.json")
    assert submitted["item"]["status"] == "PENDING"

    code, board = cli("board")
    assert code == EXIT_OK
    assert board["items"] == []
    assert [i["id"] for i in board["inbox"]] == [submitted["item"]["id"]]

    code, failed = cli("inbox", "--idea", "  ")
    assert code == EXIT_INVALID and failed["error"] == "Missing idea"


@pytest.mark.unit
@pytest.mark.parametrize("flag, expected", [("--pipeline", True), ("--no-pipeline", False), (None, None)])
def test_decide_records_pipeline_flag(cli, flag, expected):
    _, intake = cli("intake", "--idea", "Idea")
    cli("confirm", "--job-id", intake["jobId"])
    argv = ["decide", "--job-id", intake["jobId"], "--action", "ASSIGN_AGENT", "--agent", "coder"]

    code, decided = cli(*argv, *([flag] if flag else []))

    assert code == EXIT_OK
    assert decided["decision"]["pipeline"] is expected
    _, view = cli("resolve", "--job-id", intake["jobId"])
    assert view["assignedPipeline"] is expected


@pytest.mark.unit
def test_missing_required_input_exits_1(cli):
    code, payload = cli("intake")
    assert code == EXIT_INVALID
    assert payload["ok"] is False
    assert "--idea" in payload["error"]

    code, payload = cli("advance")
    assert code == EXIT_INVALID


@pytest.mark.unit
def test_assign_without_agent_exits_1(cli):
    _, intake = cli("intake", "--idea", "Idea")
    cli("confirm", "--last")

    code, payload = cli("decide", "--job-id", intake["jobId"], "--action", "ASSIGN_AGENT")

    assert code == EXIT_INVALID
    assert payload == {"ok": False, "error": "ASSIGN_AGENT requires agent"}


@pytest.mark.unit
def test_unknown_job_exits_2(cli):
    code, payload = cli("confirm", "--code", "nope-0000")
    assert code == EXIT_NOT_FOUND
    assert payload["ok"] is False

    code, _ = cli("resolve", "--job-id", "ghost")
    assert code == EXIT_NOT_FOUND

    code, _ = cli("decide", "--job-id", "ghost", "--action", "SET_PHASE", "--to-phase", "DONE")
    assert code == EXIT_NOT_FOUND


@pytest.mark.unit
def test_dispatch_scan(cli):
    _, intake = cli("intake", "--idea", "Idea")
    cli("confirm", "--last")
    cli("decide", "--job-id", intake["jobId"], "--action", "ASSIGN_AGENT", "--agent", "coder")

    code, first = cli("dispatch-scan")
    _, second = cli("dispatch-scan")

    assert code == EXIT_OK
    assert [q["requestedRole"] for q in first["queued"]] == ["coder"]
    assert second["queued"] == []


@pytest.mark.unit
def test_store_failure_exits_3(cli, monkeypatch):
    def broken(self, path, data, message):
        raise StoreError("Failed to write", "read-only file system")

    monkeypatch.setattr(FileStore, "put", broken)

    code, payload = cli("intake", "--idea", "Idea")

    assert code == EXIT_FAILURE
    assert "read-only file system" in payload["error"]
