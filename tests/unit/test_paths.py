"""Unit tests for store layout and timestamp-in-filename encoding."""

import pytest

from swarm_factory.core import paths
from swarm_factory.core.errors import InvalidInputError


@pytest.mark.unit
def test_encode_timestamp_replaces_colons_and_dots():
    assert paths.encode_timestamp("2026-10-19T07:37:01.123Z") == "2026-10-19T07-37-01-123Z"


@pytest.mark.unit
def test_decode_timestamp_inverts_encoding():
    ts = "2026-10-19T07:37:01.123Z"
    assert paths.decode_timestamp(paths.encode_timestamp(ts)) == ts


@pytest.mark.unit
def test_decode_timestamp_accepts_marker_file_names():
    name = "artifacts/job-1/dispatch/2026-10-19T07-37-01-123Z-coder.json"
    assert paths.decode_timestamp(name) == "2026-10-19T07:37:01.123Z"


@pytest.mark.unit
def test_decode_timestamp_rejects_other_names():
    with pytest.raises(ValueError):
        paths.decode_timestamp("notes.json")


@pytest.mark.unit
def test_encoded_names_sort_chronologically():
    stamps = [
        "2026-10-19T07:37:01.999Z",
        "2026-10-19T07:37:02.000Z",
        "2026-10-19T10:00:00.000Z",
        "2026-10-20T00:00:00.000Z",
    ]
    encoded = [paths.encode_timestamp(ts) for ts in reversed(stamps)]
    assert [paths.decode_timestamp(name) for name in sorted(encoded)] == stamps


@pytest.mark.unit
def test_layout_paths():
    ts = "2026-10-19T07:37:01.123Z"
    assert paths.run_path("abc") == "runs/abc.json"
    assert paths.pending_path("abc") == "orchestrator/pending/abc.json"
    assert paths.artifact_path("abc", "build", ts, "md") == "artifacts/abc/build/2026-10-19T07-37-01-123Z.md"
    assert paths.decision_path("abc", ts) == "artifacts/abc/decisions/2026-10-19T07-37-01-123Z.json"
    assert paths.dispatch_marker_path("abc", ts, "qa") == "artifacts/abc/dispatch/2026-10-19T07-37-01-123Z-qa.json"


@pytest.mark.unit
def test_job_id_from_record_path():
    assert paths.job_id_from_record_path("runs/abc.json") == "abc"
    assert paths.job_id_from_record_path(" abc ") == "abc"


@pytest.mark.unit
@pytest.mark.parametrize("job_id", ["", "   ", None, "a/b", "..", "a\\b"])
def test_check_job_id_rejects_unusable_ids(job_id):
    with pytest.raises(InvalidInputError):
        paths.check_job_id(job_id)
