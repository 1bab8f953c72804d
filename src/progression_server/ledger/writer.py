"""Append path of the character history ledger.

Overview
--------
:class:`LedgerWriter` turns a :class:`RecordDraft` produced by a mutation
handler into a stored :class:`Record`. Each call ends in exactly one of three
outcomes:

1. **No-op.** The draft describes the same mutation as the character's latest
   record (same type, name, data, learning method and point snapshots). The
   latest record is returned and nothing is written. This makes retries of
   an at-least-once delivered mutation harmless.
2. **Append.** The record fits into the latest block and is appended to it.
3. **New block.** The latest block is full (by size or by record count), or
   the character has no history yet. A new block is created, linked to the
   previous one through ``previousBlockId``.

Numbering
---------
``number`` is ``latest.number + 1`` (or 1 for the first record), so numbers
are contiguous across the concatenation of all blocks.

Concurrency
-----------
The writer reads the latest block and then issues a conditional write whose
condition is what it observed: the block still holds the same number of
records, or the next block number is still free. A concurrent writer that got
there first makes the condition fail with ``ConditionalWriteError``; the
caller may resubmit the identical draft, and duplicate suppression takes care
of the case where the competing write was the same mutation.

Duplicate suppression only compares against the latest record. Submitting
A, B, A stores three records.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from progression_server.ledger.errors import RecordTooLargeError
from progression_server.ledger.payloads import validate_record
from progression_server.ledger.records import (
    HistoryBlock,
    Record,
    RecordDraft,
    new_id,
    serialized_size,
)

if TYPE_CHECKING:
    from progression_server.db.history_repo import HistoryBlockStore

logger = logging.getLogger(__name__)


class LedgerWriter:
    """Appends records to a character's history.

    Args:
        store: Block store; its settings supply the block limits.
    """

    def __init__(self, store: HistoryBlockStore) -> None:
        self.store = store

    @property
    def max_block_bytes(self) -> int:
        return self.store.settings.max_block_bytes

    @property
    def max_block_records(self) -> int:
        return self.store.settings.max_block_records

    def append(self, character_id: str, draft: RecordDraft) -> Record:
        """Record a mutation for ``character_id``.

        Args:
            character_id: Owning character.
            draft: Mutation description without number, id or timestamp.

        Returns:
            The stored record, or the existing latest record when the draft
            duplicates it.

        Raises:
            LedgerValidationError: ``draft`` is not a record the revert engine
                can undo (payload shape, name format, point snapshots).
            RecordTooLargeError: The record cannot fit even an empty block.
            ConditionalWriteError: A concurrent write changed the latest block.
            DatabaseError: Any other store failure.

        Example:
            >>> record = writer.append(character_id, draft)
            >>> record.number
            1
        """
        validate_record(draft)

        latest_block = self.store.get_latest_block(character_id)
        if latest_block is None:
            record = Record.from_draft(draft, number=1)
            self._create_block(character_id, 1, None, record)
            logger.info("Started history of character %s", character_id)
            return record

        latest = latest_block.latest
        if latest is not None and draft.fingerprint() == latest.fingerprint():
            logger.debug(
                "Skipping duplicate record %s for character %s", latest.number, character_id
            )
            return latest

        number = latest.number + 1 if latest is not None else 1
        record = Record.from_draft(draft, number=number)

        if self._fits(latest_block, record):
            self.store.append_record(
                character_id,
                latest_block.block_number,
                record,
                expected_count=len(latest_block.changes),
            )
        else:
            self._create_block(
                character_id,
                latest_block.block_number + 1,
                latest_block.block_id,
                record,
            )
        return record

    def _fits(self, block: HistoryBlock, record: Record) -> bool:
        if len(block.changes) >= self.max_block_records:
            return False
        return serialized_size(block.with_record(record)) <= self.max_block_bytes

    def _create_block(
        self,
        character_id: str,
        block_number: int,
        previous_block_id: str | None,
        record: Record,
    ) -> HistoryBlock:
        block = HistoryBlock(
            character_id=character_id,
            block_number=block_number,
            block_id=new_id(),
            previous_block_id=previous_block_id,
            changes=[record],
        )
        size = serialized_size(block)
        if size > self.max_block_bytes:
            raise RecordTooLargeError(size=size, limit=self.max_block_bytes)
        created = self.store.create_block(block)
        if block_number > 1:
            logger.info(
                "Opened history block %s for character %s", block_number, character_id
            )
        return created
