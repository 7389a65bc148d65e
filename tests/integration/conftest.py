"""Shared fixtures for integration tests: real git repositories under tmp_path."""

from pathlib import Path

import pytest
from git import Repo


def configure_identity(repo: Repo) -> Repo:
    with repo.config_writer() as writer:
        writer.set_value("user", "name", "Swarm Factory Tests")
        writer.set_value("user", "email", "tests@swarm-factory.invalid")
        writer.set_value("commit", "gpgsign", "false")
    return repo


@pytest.fixture
def git_remote(tmp_path: Path) -> Path:
    """Bare remote with one seed commit on `main`."""
    remote = tmp_path / "remote.git"
    Repo.init(remote, bare=True, initial_branch="main")

    seed = configure_identity(Repo.clone_from(str(remote), str(tmp_path / "seed")))
    (tmp_path / "seed" / "README.md").write_text("swarm factory data\n", encoding="utf-8")
    seed.git.add("README.md")
    seed.git.commit("-m", "seed")
    seed.git.push("origin", "HEAD:main")
    return remote


@pytest.fixture
def clone(tmp_path: Path, git_remote: Path):
    """Factory for working clones of `git_remote`."""

    def make(name: str) -> Path:
        path = tmp_path / name
        configure_identity(Repo.clone_from(str(git_remote), str(path)))
        return path

    return make
