"""Store layout and the timestamp-in-filename encoding.

Layout (all paths are store-relative, `/`-separated):

    runs/<jobId>.json                               canonical Job Records
    orchestrator/pending/<jobId>.json               Pending Jobs
    artifacts/<jobId>/<phaseDir>/<ts>.<ext>         phase artifacts
    artifacts/<jobId>/decisions/<ts>.json           Decision Records
    artifacts/<jobId>/dispatch/<ts>-<role>.json     Dispatch Markers
    inbox/<ts>-<slug>.json                          Inbox Items

`<ts>` is `encode_timestamp(createdAt)`. Lexical order of encoded names is
chronological order; `encode_timestamp`/`decode_timestamp` are the only
place that encoding lives.
"""

from __future__ import annotations

import posixpath
import re

from swarm_factory.core.errors import InvalidInputError

RUNS_DIR = "runs"
PENDING_DIR = "orchestrator/pending"
ARTIFACTS_DIR = "artifacts"
DECISIONS_SUBDIR = "decisions"
DISPATCH_SUBDIR = "dispatch"
INBOX_DIR = "inbox"
RECORD_SUFFIX = ".json"

_ENCODED_TS_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})T(\d{2})-(\d{2})-(\d{2})-(\d{3})Z")
_UNSAFE_ID_RE = re.compile(r"[/\\]|^\.+$")


def encode_timestamp(ts: str) -> str:
    """`2026-10-19T07:37:01.123Z` -> `2026-10-19T07-37-01-123Z`."""
    return ts.replace(":", "-").replace(".", "-")


def decode_timestamp(name: str) -> str:
    """Recover the ISO timestamp from an encoded file name.

    Accepts a bare encoded stamp or a file name that starts with one
    (`2026-10-19T07-37-01-123Z-coder.json`).
    """
    base = posixpath.basename(name)
    match = _ENCODED_TS_RE.match(base)
    if not match:
        raise ValueError(f"Not a timestamp-encoded name: {name}")
    day, hour, minute, second, millis = match.groups()
    return f"{day}T{hour}:{minute}:{second}.{millis}Z"


def check_job_id(job_id: str | None) -> str:
    """Return a stripped job id, rejecting values that cannot name a path."""
    value = (job_id or "").strip()
    if not value:
        raise InvalidInputError("Missing jobId")
    if _UNSAFE_ID_RE.search(value):
        raise InvalidInputError(f"Invalid jobId: {value!r}")
    return value


def run_path(job_id: str) -> str:
    return f"{RUNS_DIR}/{check_job_id(job_id)}{RECORD_SUFFIX}"


def pending_path(job_id: str) -> str:
    return f"{PENDING_DIR}/{check_job_id(job_id)}{RECORD_SUFFIX}"


def job_id_from_record_path(path: str) -> str:
    """`runs/<id>.json` (or any path to a record file) -> `<id>`."""
    base = posixpath.basename(path.strip())
    if base.endswith(RECORD_SUFFIX):
        base = base[: -len(RECORD_SUFFIX)]
    return check_job_id(base)


def job_artifacts_dir(job_id: str) -> str:
    return f"{ARTIFACTS_DIR}/{check_job_id(job_id)}"


def artifact_path(job_id: str, phase_dir: str, ts: str, ext: str) -> str:
    return f"{job_artifacts_dir(job_id)}/{phase_dir}/{encode_timestamp(ts)}.{ext}"


def decisions_dir(job_id: str) -> str:
    return f"{job_artifacts_dir(job_id)}/{DECISIONS_SUBDIR}"


def decision_path(job_id: str, ts: str) -> str:
    return f"{decisions_dir(job_id)}/{encode_timestamp(ts)}{RECORD_SUFFIX}"


def dispatch_dir(job_id: str) -> str:
    return f"{job_artifacts_dir(job_id)}/{DISPATCH_SUBDIR}"


def dispatch_marker_path(job_id: str, ts: str, role: str) -> str:
    return f"{dispatch_dir(job_id)}/{encode_timestamp(ts)}-{role}{RECORD_SUFFIX}"


def inbox_item_path(ts: str, slug: str) -> str:
    return f"{INBOX_DIR}/{encode_timestamp(ts)}-{slug or 'item'}{RECORD_SUFFIX}"
