"""Swarm Factory: idea pipeline state machine, decision overlay and dispatch dedup."""

__version__ = "0.1.0"
