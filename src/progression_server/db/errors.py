"""Typed database exceptions for the DB package.

Repository modules signal infrastructure failures (SQLite connection/query
errors) and failed conditional writes through this hierarchy instead of
boolean return values.

Design intent:
    - "Row not found" stays a ``None`` return where the contract allows it.
    - Infrastructure failures raise ``DatabaseReadError``/``DatabaseWriteError``
      so API boundaries can map them to deterministic HTTP 5xx responses.
    - A write whose precondition no longer holds raises
      ``ConditionalWriteError``; callers may re-read and resubmit.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class DatabaseOperationContext:
    """Structured operation metadata carried by repository exceptions.

    Attributes:
        operation: Stable operation identifier (for example
            ``"history.append_record"``).
        details: Optional human-readable context for logs and debugging.
    """

    operation: str
    details: str | None = None


class DatabaseError(RuntimeError):
    """Base exception for DB-layer failures."""


class DatabaseOperationError(DatabaseError):
    """Base exception for repository operation failures.

    Args:
        context: Structured operation metadata.
        cause: Optional underlying exception.
    """

    def __init__(
        self,
        *,
        context: DatabaseOperationContext,
        cause: Exception | None = None,
    ) -> None:
        message = context.operation
        if context.details:
            message = f"{message}: {context.details}"
        super().__init__(message)
        self.context = context
        self.cause = cause


class DatabaseReadError(DatabaseOperationError):
    """Repository read/query failure."""


class DatabaseWriteError(DatabaseOperationError):
    """Repository mutation/transaction failure."""


class ConditionalWriteError(DatabaseWriteError):
    """A conditional write found its precondition no longer satisfied."""


class CharacterNotFoundError(DatabaseOperationError):
    """The character sheet addressed by a write does not exist."""


class SheetPathError(DatabaseOperationError):
    """A nested sheet path does not resolve to an existing parent object."""
