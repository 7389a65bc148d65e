"""Unit tests for the directory-tree store and the run repository on top of it."""

import json

import pytest

from swarm_factory.core.errors import InvalidInputError, StoreError
from swarm_factory.core.models import JobRecord
from swarm_factory.store.base import WriteConflict, WriteOk
from swarm_factory.store.file_store import FileStore


@pytest.mark.unit
def test_put_get_delete(tmp_path):
    store = FileStore(tmp_path)

    assert store.put("runs/a.json", b"{}", "msg") == WriteOk("runs/a.json")
    assert store.get("runs/a.json") == b"{}"

    store.delete("runs/a.json", "msg")
    assert store.get("runs/a.json") is None
    # deleting twice is fine
    assert isinstance(store.delete("runs/a.json", "msg"), WriteOk)


@pytest.mark.unit
def test_create_refuses_an_existing_path(tmp_path):
    store = FileStore(tmp_path)

    assert store.create("artifacts/j/decisions/a.json", b"first", "msg") == WriteOk("artifacts/j/decisions/a.json")
    result = store.create("artifacts/j/decisions/a.json", b"second", "msg")

    assert isinstance(result, WriteConflict)
    assert store.get("artifacts/j/decisions/a.json") == b"first"
    assert [e.name for e in store.list_dir("artifacts/j/decisions")] == ["a.json"]


@pytest.mark.unit
def test_list_dir_sorted_and_missing_dir_is_empty(tmp_path):
    store = FileStore(tmp_path)
    for name in ("b.json", "a.json", ".hidden"):
        store.put(f"runs/{name}", b"{}", "msg")

    names = [e.name for e in store.list_dir("runs")]

    assert names == ["a.json", "b.json"]
    assert store.list_dir("nowhere") == []
    assert all(e.modified_at is not None for e in store.list_dir("runs"))


@pytest.mark.unit
def test_rejects_paths_escaping_the_root(tmp_path):
    store = FileStore(tmp_path)
    with pytest.raises(InvalidInputError):
        store.get("../outside.json")


@pytest.mark.unit
def test_sync_and_flush_are_noops(tmp_path):
    store = FileStore(tmp_path)
    store.sync()
    assert isinstance(store.flush("msg"), WriteOk)


@pytest.mark.unit
def test_repository_reports_corrupt_json(store, repository):
    store.put("runs/bad.json", b"{not json", "msg")

    with pytest.raises(StoreError):
        repository.load_run("bad")


@pytest.mark.unit
def test_repository_list_runs_skips_unreadable_records(store, repository):
    good = JobRecord(job_id="good", created_at="2026-10-19T07:37:01.123Z")
    newer = JobRecord(job_id="newer", created_at="2026-10-19T09:00:00.000Z")
    repository.save_run(good, "msg")
    repository.save_run(newer, "msg")
    store.put("runs/bad.json", b"[1, 2]", "msg")

    jobs = repository.list_runs()

    assert [j.job_id for j in jobs] == ["newer", "good"]


@pytest.mark.unit
def test_repository_writes_pretty_json_with_trailing_newline(store, repository):
    job = JobRecord(job_id="abc", created_at="2026-10-19T07:37:01.123Z", idea="x")
    repository.save_run(job, "msg")

    raw = store.get("runs/abc.json").decode("utf-8")

    assert raw.endswith("}\n")
    assert json.loads(raw)["jobId"] == "abc"
