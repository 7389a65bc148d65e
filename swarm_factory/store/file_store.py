"""Plain directory-tree artifact store."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path, PurePosixPath

import structlog

from swarm_factory.core.errors import InvalidInputError, StoreError
from swarm_factory.store.base import StoreEntry, WriteConflict, WriteOk, WriteResult

logger = structlog.get_logger(__name__)


class FileStore:
    """Artifact store rooted at a local directory.

    Writes land immediately (temp file + rename, so readers never see a torn
    blob). `sync` and `flush` are no-ops: there is no shared history to pull
    from or publish to.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).expanduser().resolve()

    def resolve(self, path: str) -> Path:
        rel = PurePosixPath(path.strip().lstrip("/"))
        if not rel.parts or ".." in rel.parts:
            raise InvalidInputError(f"Invalid store path: {path!r}")
        return self.root.joinpath(*rel.parts)

    def list_dir(self, path: str) -> list[StoreEntry]:
        directory = self.resolve(path)
        if not directory.is_dir():
            return []
        prefix = path.strip().strip("/")
        try:
            entries = [
                StoreEntry(
                    name=child.name,
                    path=f"{prefix}/{child.name}",
                    is_dir=child.is_dir(),
                    modified_at=child.stat().st_mtime,
                )
                for child in directory.iterdir()
                if not child.name.startswith(".")
            ]
        except OSError as exc:
            raise StoreError(f"Failed to list {path}", str(exc)) from exc
        return sorted(entries, key=lambda e: e.name)

    def get(self, path: str) -> bytes | None:
        target = self.resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StoreError(f"Failed to read {path}", str(exc)) from exc

    def put(self, path: str, data: bytes, message: str) -> WriteResult:
        return self._write(path, data, message, exclusive=False)

    def create(self, path: str, data: bytes, message: str) -> WriteResult:
        return self._write(path, data, message, exclusive=True)

    def _write(self, path: str, data: bytes, message: str, *, exclusive: bool) -> WriteResult:
        target = self.resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".tmp-", suffix=target.suffix)
            try:
                with os.fdopen(fd, "wb") as handle:
                    handle.write(data)
                if exclusive:
                    # link() refuses an existing target, replace() does not.
                    os.link(tmp_name, target)
                    os.unlink(tmp_name)
                else:
                    os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except FileExistsError:
            return WriteConflict(path=path, detail="already exists")
        except OSError as exc:
            raise StoreError(f"Failed to write {path}", str(exc)) from exc
        logger.debug("store put", path=path, message=message, size=len(data), exclusive=exclusive)
        return WriteOk(path=path)

    def delete(self, path: str, message: str) -> WriteResult:
        target = self.resolve(path)
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            raise StoreError(f"Failed to delete {path}", str(exc)) from exc
        logger.debug("store delete", path=path, message=message)
        return WriteOk(path=path)

    def sync(self) -> None:
        return None

    def flush(self, message: str) -> WriteResult:
        return WriteOk(path="")
