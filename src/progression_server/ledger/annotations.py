"""Comments on history records.

A comment is the only part of a stored record that may change after it was
appended. Writes are last-write-wins; the conditional update only guards
against the record having moved (reverted or replaced) between the read and
the write.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from progression_server.ledger.constants import MAX_STRING_LENGTH_VERY_LONG
from progression_server.ledger.errors import (
    BlockTooLargeError,
    LedgerValidationError,
    RecordNotFoundError,
)
from progression_server.ledger.reader import LedgerReader
from progression_server.ledger.records import LedgerModel, serialized_size

if TYPE_CHECKING:
    from progression_server.db.history_repo import HistoryBlockStore

logger = logging.getLogger(__name__)


class CommentResult(LedgerModel):
    character_id: str
    block_number: int
    record_id: str
    comment: str | None


class AnnotationService:
    def __init__(self, store: HistoryBlockStore) -> None:
        self.store = store
        self.reader = LedgerReader(store)

    def set_comment(
        self,
        character_id: str,
        record_id: str,
        comment: str | None,
        block_number: int | None = None,
    ) -> CommentResult:
        """Overwrite the comment of a record.

        Args:
            character_id: Owning character.
            record_id: Record to annotate.
            comment: New comment; ``None`` clears it.
            block_number: Block holding the record; defaults to the latest.

        Raises:
            LedgerValidationError: Comment longer than 1000 characters.
            HistoryNotFoundError / BlockNotFoundError: Addressed block missing.
            RecordNotFoundError: Record is not in the addressed block.
            BlockTooLargeError: The block would exceed its byte ceiling.
            ConditionalWriteError: The record moved between read and write.
        """
        if comment is not None and len(comment) > MAX_STRING_LENGTH_VERY_LONG:
            raise LedgerValidationError(
                f"Comment must not exceed {MAX_STRING_LENGTH_VERY_LONG} characters",
                length=len(comment),
            )

        if block_number is None:
            block = self.reader.get_latest_block(character_id)
        else:
            block = self.reader.get_block(character_id, block_number)

        index = next(
            (i for i, record in enumerate(block.changes) if record.id == record_id),
            None,
        )
        if index is None:
            raise RecordNotFoundError(character_id, block.block_number, record_id)

        changes = list(block.changes)
        changes[index] = changes[index].model_copy(update={"comment": comment})
        size = serialized_size(block.model_copy(update={"changes": changes}))
        limit = self.store.settings.max_block_bytes
        if size > limit:
            raise BlockTooLargeError(block.block_number, size=size, limit=limit)

        self.store.set_record_comment(
            character_id,
            block.block_number,
            index,
            record_id=record_id,
            comment=comment,
        )
        logger.debug("Updated comment of record %s (character %s)", record_id, character_id)
        return CommentResult(
            character_id=character_id,
            block_number=block.block_number,
            record_id=record_id,
            comment=comment,
        )
