"""
squad.engine.errors — Error Taxonomy
=====================================

Only genuine failures are exceptions.  Acting on a missing entity or
repeating a vote/claim is a defined idempotent outcome
(:attr:`~squad.engine.ledger.Outcome.NO_OP`), never an error.  Lost updates
between sessions are neither detected nor reported.
"""

from __future__ import annotations


class SquadError(Exception):
    """Base class for all Squad errors."""


class AccessDenied(SquadError):
    """Login attempted with a name whose record has been REJECTED."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Access denied for {name!r}: blacklisted by admin.")
        self.name = name


class PermissionDenied(SquadError):
    """The session's state or role does not allow the submitted action."""


class InvalidInput(SquadError, ValueError):
    """An action carried malformed input (blank name, oversized tag, ...)."""


class SyncFailure(SquadError):
    """A fetch or replace against the Entity Store failed.

    Local state is left stale; the next poll interval retries.
    """

    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Sync failed during {operation}{detail}")
        self.operation = operation
        self.cause = cause


class AIServiceError(SquadError):
    """The generative-AI collaborator failed or returned nothing usable."""
