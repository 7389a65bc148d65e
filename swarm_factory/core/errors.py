"""Error taxonomy shared by every Swarm Factory component."""

from __future__ import annotations


class SwarmFactoryError(Exception):
    """Base class for all errors raised by Swarm Factory."""


class InvalidInputError(SwarmFactoryError, ValueError):
    """Raised when required input is missing or malformed. Nothing was written."""

    def __init__(self, message: str, diagnostics: list[str] | None = None) -> None:
        super().__init__(message)
        self.diagnostics = tuple(diagnostics or [message])


class ConfigurationError(SwarmFactoryError):
    """Raised when configuration cannot produce a usable component."""


class NotFoundError(SwarmFactoryError, LookupError):
    """Raised when a referenced job, pending job or record is absent."""


class StoreError(SwarmFactoryError):
    """Raised when the artifact store (or another collaborator) fails.

    The collaborator's own error detail is kept on `detail`.
    """

    def __init__(self, message: str, detail: str | None = None) -> None:
        super().__init__(message if not detail else f"{message}: {detail}")
        self.detail = detail


class StoreConflictError(StoreError):
    """Raised when a write still conflicts after the bounded retry."""


class StoreWriteError(StoreError):
    """Raised when the store rejects a write for a reason other than a conflict."""


class NotificationError(SwarmFactoryError):
    """Raised when the messaging collaborator rejects a request."""
