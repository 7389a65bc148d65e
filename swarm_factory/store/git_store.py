"""Git working-tree artifact store.

Writes go to the working tree and are staged right away. `flush` commits
whatever is staged and pushes it; a push rejected because the remote moved
on is a `WriteConflict`, and `sync` (`pull --rebase`) is how the retry
policy recovers from it.
"""

from __future__ import annotations

from pathlib import Path
from typing import cast

import structlog
from git import Repo
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from swarm_factory.core.errors import StoreError
from swarm_factory.store.base import WriteConflict, WriteFatal, WriteOk, WriteResult
from swarm_factory.store.file_store import FileStore

logger = structlog.get_logger(__name__)

_CONFLICT_MARKERS = ("[rejected]", "non-fast-forward", "fetch first", "updates were rejected")


def _is_push_conflict(exc: GitCommandError) -> bool:
    text = f"{exc.stderr or ''} {exc.stdout or ''}".lower()
    return any(marker in text for marker in _CONFLICT_MARKERS)


class GitStore(FileStore):
    """FileStore backed by a git repository with an optional remote."""

    def __init__(
        self,
        root: Path | str,
        *,
        remote: str = "origin",
        branch: str | None = None,
        push: bool = True,
    ) -> None:
        super().__init__(root)
        try:
            self.repo = Repo(self.root, search_parent_directories=True)
        except (InvalidGitRepositoryError, NoSuchPathError) as exc:
            raise StoreError(f"Not a git repository: {self.root}") from exc
        self.remote = remote
        self.branch = branch
        self.push_enabled = push

    def _has_remote(self) -> bool:
        return any(r.name == self.remote for r in self.repo.remotes)

    def _branch_name(self) -> str:
        return self.branch or self.repo.active_branch.name

    def _stage(self, path: str, result: WriteResult) -> WriteResult:
        if not isinstance(result, WriteOk):
            return result
        try:
            self.repo.git.add("--", str(self.resolve(path)))
        except GitCommandError as exc:
            return WriteFatal(path=path, detail=str(exc))
        return result

    def put(self, path: str, data: bytes, message: str) -> WriteResult:
        return self._stage(path, super().put(path, data, message))

    def create(self, path: str, data: bytes, message: str) -> WriteResult:
        return self._stage(path, super().create(path, data, message))

    def delete(self, path: str, message: str) -> WriteResult:
        target = self.resolve(path)
        try:
            tracked = cast(str, self.repo.git.ls_files("--", str(target))).strip()
            if tracked:
                self.repo.git.rm("--cached", "--quiet", "--", str(target))
        except GitCommandError as exc:
            return WriteFatal(path=path, detail=str(exc))
        return super().delete(path, message)

    def sync(self) -> None:
        if not self._has_remote():
            return
        try:
            self.repo.git.pull("--rebase", self.remote, self._branch_name())
        except GitCommandError as exc:
            raise StoreError("git pull --rebase failed", str(exc)) from exc
        logger.info("synced with remote", remote=self.remote, branch=self._branch_name())

    def flush(self, message: str) -> WriteResult:
        try:
            staged = cast(str, self.repo.git.diff("--cached", "--name-only")).strip()
            if staged:
                self.repo.git.commit("-m", message)
                logger.info("committed", message=message, files=len(staged.splitlines()))
            if not self.repo.head.is_valid():
                return WriteOk(path="")
            commit = self.repo.head.commit.hexsha
        except GitCommandError as exc:
            return WriteFatal(path="", detail=str(exc))

        if not self.push_enabled or not self._has_remote():
            return WriteOk(path="", commit=commit)

        try:
            self.repo.git.push(self.remote, f"HEAD:{self._branch_name()}")
        except GitCommandError as exc:
            if _is_push_conflict(exc):
                return WriteConflict(path="", detail=str(exc.stderr or exc).strip())
            return WriteFatal(path="", detail=str(exc))
        logger.info("pushed", remote=self.remote, branch=self._branch_name(), commit=commit[:10])
        return WriteOk(path="", commit=commit)
