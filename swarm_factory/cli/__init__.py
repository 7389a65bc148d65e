"""Command line entry points."""

from swarm_factory.cli.main import main

__all__ = ["main"]
