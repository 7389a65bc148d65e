"""Artifact store contract.

A store is path-addressed blob storage with list/get/put/delete. Each write
is individually atomic; ordering across writes is only eventually consistent
for other readers. Writes never raise on a conflict: they return an explicit
`WriteResult` so the retry policy can decide what to do.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Union


@dataclass(frozen=True)
class StoreEntry:
    """One item of a directory listing."""

    name: str
    path: str
    is_dir: bool = False
    modified_at: float | None = None  # epoch seconds; None when the transport cannot tell


@dataclass(frozen=True)
class WriteOk:
    path: str
    commit: str | None = None


@dataclass(frozen=True)
class WriteConflict:
    """The backing history moved since our last sync."""

    path: str
    detail: str


@dataclass(frozen=True)
class WriteFatal:
    """The write was rejected and retrying will not help."""

    path: str
    detail: str


WriteResult = Union[WriteOk, WriteConflict, WriteFatal]


class ArtifactStore(Protocol):
    """Path-addressed storage injected into every component."""

    def list_dir(self, path: str) -> list[StoreEntry]:
        """List a directory. A missing directory lists as empty."""
        ...

    def get(self, path: str) -> bytes | None:
        """Read a blob, or None when nothing exists at `path`."""
        ...

    def put(self, path: str, data: bytes, message: str) -> WriteResult: ...

    def create(self, path: str, data: bytes, message: str) -> WriteResult:
        """Write a blob that must not exist yet; an existing one is a `WriteConflict`."""
        ...

    def delete(self, path: str, message: str) -> WriteResult: ...

    def sync(self) -> None:
        """Pull the latest shared state."""
        ...

    def flush(self, message: str) -> WriteResult:
        """Publish writes made since the last flush."""
        ...
