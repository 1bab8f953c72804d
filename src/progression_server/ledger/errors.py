"""Ledger error taxonomy.

Every error carries an HTTP ``status_code`` and a ``context`` dict so the API
layer can render it without knowing the concrete class:

    LedgerValidationError   400  malformed input, bad payload shape
    LedgerNotFoundError     404  missing history, block or record
    LedgerConflictError     409  precondition failures
    LedgerInternalError     500  unrecoverable processing failures

Store failures (``progression_server.db.errors``) are not wrapped; they
propagate unchanged.
"""

from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """Base exception for ledger operations."""

    status_code = 500

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class LedgerValidationError(LedgerError):
    """Input failed validation.

    ``context["errors"]`` holds the pydantic error list when one is available.
    """

    status_code = 400


class LedgerNotFoundError(LedgerError):
    status_code = 404


class HistoryNotFoundError(LedgerNotFoundError):
    """The character has no history blocks at all."""

    def __init__(self, character_id: str) -> None:
        super().__init__("No history found for the character", character_id=character_id)


class BlockNotFoundError(LedgerNotFoundError):
    """The requested block number does not exist for the character."""

    def __init__(self, character_id: str, block_number: int) -> None:
        super().__init__(
            "History block not found",
            character_id=character_id,
            block_number=block_number,
        )


class RecordNotFoundError(LedgerNotFoundError):
    """The record id is not present in the addressed block."""

    def __init__(self, character_id: str, block_number: int, record_id: str) -> None:
        super().__init__(
            "Record not found in the history block",
            character_id=character_id,
            block_number=block_number,
            record_id=record_id,
        )


class LedgerConflictError(LedgerError):
    status_code = 409


class StaleRevertTargetError(LedgerConflictError):
    """The record to revert is not the latest record.

    Surfaced as 404 on the wire; existing clients treat a stale revert target
    as "not found".
    """

    status_code = 404

    def __init__(self, character_id: str, expected_id: str, actual_id: str) -> None:
        super().__init__(
            "The latest record does not match the given id",
            character_id=character_id,
            expected_id=expected_id,
            actual_id=actual_id,
        )


class RecordTooLargeError(LedgerConflictError):
    """A single record exceeds the block size ceiling on its own."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(
            "Record is too large to fit into an empty history block",
            size=size,
            limit=limit,
        )


class BlockTooLargeError(LedgerConflictError):
    """An update would grow a stored block past the size ceiling."""

    def __init__(self, block_number: int, size: int, limit: int) -> None:
        super().__init__(
            "Update would exceed the history block size limit",
            block_number=block_number,
            size=size,
            limit=limit,
        )


class HistoryExistsError(LedgerConflictError):
    """A clone target already has history blocks."""

    def __init__(self, character_id: str) -> None:
        super().__init__("Target character already has history", character_id=character_id)


class CharacterExistsError(LedgerConflictError):
    """A character sheet with this id already exists."""

    def __init__(self, character_id: str) -> None:
        super().__init__("Character already exists", character_id=character_id)


class LedgerInternalError(LedgerError):
    status_code = 500


class UnknownRecordTypeError(LedgerInternalError):
    def __init__(self, record_type: Any) -> None:
        super().__init__("Unknown history record type", record_type=record_type)


class RevertApplicationError(LedgerInternalError):
    """An inverse write failed; the record was left in place.

    Writes that already succeeded are not rolled back. Retrying the revert
    re-applies them, which is harmless because each sets a stored value back
    to the record's ``old`` snapshot.
    """

    def __init__(self, record_id: str, target: str, cause: Exception) -> None:
        super().__init__(
            "Failed to apply inverse mutation",
            record_id=record_id,
            target=target,
            cause=str(cause),
        )
        self.target = target
        self.cause = cause
