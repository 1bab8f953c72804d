"""Whole-history operations: delete, clone and verify.

These run when a character is deleted or cloned, and from the
``history verify`` CLI command. Unlike the append/revert path they touch every
block of a character, using the store's batch writes (chunks of 25 blocks).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from progression_server.db.errors import DatabaseError
from progression_server.ledger.errors import HistoryExistsError, HistoryNotFoundError
from progression_server.ledger.records import HistoryBlock, new_id, serialized_size

if TYPE_CHECKING:
    from progression_server.db.history_repo import HistoryBlockStore

logger = logging.getLogger(__name__)


def delete_history(store: HistoryBlockStore, character_id: str) -> int:
    """Delete every history block of a character.

    Returns:
        Number of blocks deleted (0 when there was no history).
    """
    block_numbers = store.list_block_keys(character_id)
    if not block_numbers:
        return 0
    deleted = store.delete_blocks(character_id, block_numbers)
    logger.info("Deleted %s history blocks of character %s", deleted, character_id)
    return deleted


def clone_history(store: HistoryBlockStore, source_id: str, target_id: str) -> int:
    """Copy the whole history of ``source_id`` to ``target_id``.

    Block and record ids are regenerated and the chain is re-linked through
    the new block ids. Numbers, timestamps, payloads and comments are kept.

    The copy is written in chunks. If a chunk fails, the blocks this call
    already committed are deleted again before the error is re-raised, so a
    failed clone leaves the target without history and can be retried.

    Raises:
        HistoryNotFoundError: The source has no history.
        HistoryExistsError: The target already has history.
        DatabaseError: Writing the copy failed.

    Returns:
        Number of blocks copied.
    """
    if store.get_latest_block(target_id) is not None:
        raise HistoryExistsError(target_id)
    blocks = store.query_blocks(source_id, ascending=True)
    if not blocks:
        raise HistoryNotFoundError(source_id)

    copies: list[HistoryBlock] = []
    previous_block_id: str | None = None
    for block in blocks:
        block_id = new_id()
        copies.append(
            HistoryBlock(
                character_id=target_id,
                block_number=block.block_number,
                block_id=block_id,
                previous_block_id=previous_block_id,
                changes=[record.model_copy(update={"id": new_id()}) for record in block.changes],
            )
        )
        previous_block_id = block_id

    try:
        written = store.create_blocks(copies)
    except DatabaseError:
        _discard_partial_copy(store, target_id, {copy.block_id for copy in copies})
        raise
    logger.info("Cloned %s history blocks from %s to %s", written, source_id, target_id)
    return written


def _discard_partial_copy(store: HistoryBlockStore, target_id: str, block_ids: set[str]) -> None:
    # Blocks minted by this clone only.
    written = [
        block.block_number
        for block in store.query_blocks(target_id)
        if block.block_id in block_ids
    ]
    if written:
        store.delete_blocks(target_id, written)
        logger.warning(
            "Clone to %s failed; removed %s partially copied blocks", target_id, len(written)
        )


@dataclass(frozen=True)
class HistoryVerifyResult:
    """Outcome of :func:`verify_history`.

    Attributes:
        status: ``"ok"``, ``"empty"`` (no blocks) or ``"corrupt"``.
        block_count: Blocks inspected.
        record_count: Records inspected.
        last_record_number: Number of the tail record, if any.
        error_detail: First problem found when ``status == "corrupt"``.
    """

    status: Literal["ok", "empty", "corrupt"]
    block_count: int = 0
    record_count: int = 0
    last_record_number: int | None = None
    error_detail: str | None = None


def verify_history(store: HistoryBlockStore, character_id: str) -> HistoryVerifyResult:
    """Check the structural invariants of a character's history.

    Checked, block by block in ascending order:

    - block numbers start at 1 and have no gaps;
    - block 1 has no ``previousBlockId``, every later block points at the
      ``blockId`` of its predecessor;
    - no block is empty or exceeds the configured size/record limits;
    - record numbers run 1, 2, 3... across all blocks;
    - record ids are unique.

    Stops at the first violation.
    """
    blocks = store.query_blocks(character_id, ascending=True)
    if not blocks:
        return HistoryVerifyResult(status="empty")

    settings = store.settings
    seen_ids: set[str] = set()
    expected_number = 1
    previous: HistoryBlock | None = None
    record_count = 0

    def corrupt(detail: str) -> HistoryVerifyResult:
        return HistoryVerifyResult(
            status="corrupt",
            block_count=len(blocks),
            record_count=record_count,
            last_record_number=expected_number - 1 or None,
            error_detail=detail,
        )

    for position, block in enumerate(blocks, start=1):
        if block.block_number != position:
            return corrupt(f"expected block {position}, found block {block.block_number}")
        expected_link = previous.block_id if previous is not None else None
        if block.previous_block_id != expected_link:
            return corrupt(
                f"block {block.block_number} links to {block.previous_block_id}, "
                f"expected {expected_link}"
            )
        if not block.changes:
            return corrupt(f"block {block.block_number} is empty")
        if len(block.changes) > settings.max_block_records:
            return corrupt(f"block {block.block_number} holds {len(block.changes)} records")
        size = serialized_size(block)
        if size > settings.max_block_bytes:
            return corrupt(f"block {block.block_number} is {size} bytes")

        for record in block.changes:
            if record.number != expected_number:
                return corrupt(
                    f"record {record.id} in block {block.block_number} has number "
                    f"{record.number}, expected {expected_number}"
                )
            if record.id in seen_ids:
                return corrupt(f"record id {record.id} appears twice")
            seen_ids.add(record.id)
            expected_number += 1
            record_count += 1
        previous = block

    return HistoryVerifyResult(
        status="ok",
        block_count=len(blocks),
        record_count=record_count,
        last_record_number=expected_number - 1,
    )
