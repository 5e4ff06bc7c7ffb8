"""Error taxonomy shared by the reconciliation core and its adapters."""

from __future__ import annotations


class TermRequesterError(RuntimeError):
    """Base class for failures surfaced by the term request service."""


class InitializationError(TermRequesterError):
    """Raised when the store cannot be opened or the engine is used before ``init``."""


class BackendError(TermRequesterError):
    """Raised when the store or the tracker fails; the original error is the cause."""


class DataLossError(TermRequesterError):
    """Raised when a tracker ticket exists without a store record owning it."""

    def __init__(self, message: str, *, ticket_id: str) -> None:
        super().__init__(message)
        self.ticket_id = ticket_id


class InvalidArgumentError(TermRequesterError, ValueError):
    """Raised for malformed identifiers, blank names and misuse of unsaved entities."""


class InvalidTransitionError(InvalidArgumentError):
    """Raised when an observed status change is not part of the lifecycle."""
