"""Artifact store implementations and the factory that picks one from config."""

from __future__ import annotations

import os

from swarm_factory.config.schema import StoreConfig
from swarm_factory.core.errors import ConfigurationError
from swarm_factory.store.base import ArtifactStore, StoreEntry, WriteConflict, WriteFatal, WriteOk, WriteResult
from swarm_factory.store.file_store import FileStore
from swarm_factory.store.git_store import GitStore
from swarm_factory.store.github_store import GitHubContentsStore


def open_store(config: StoreConfig) -> ArtifactStore:
    """Build the store described by the `store:` config section."""
    if config.kind == "file":
        return FileStore(config.root)
    if config.kind == "git":
        return GitStore(config.root, remote=config.remote, branch=config.branch, push=config.push)

    token = os.getenv(config.token_env)
    if not token:
        raise ConfigurationError(f"Missing env: {config.token_env}")
    if not config.owner or not config.repo:
        raise ConfigurationError("store.owner and store.repo are required for the github store")
    return GitHubContentsStore(
        config.owner,
        config.repo,
        token,
        branch=config.branch,
        api_url=config.api_url,
        timeout_s=config.timeout_s,
    )


__all__ = [
    "ArtifactStore",
    "StoreEntry",
    "WriteOk",
    "WriteConflict",
    "WriteFatal",
    "WriteResult",
    "FileStore",
    "GitStore",
    "GitHubContentsStore",
    "open_store",
]
