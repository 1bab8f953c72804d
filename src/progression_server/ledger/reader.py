"""Read path of the character history ledger.

History is paged one block at a time, newest first. A page carries the block
plus a pointer to the previous block, which the client passes back as
``block_number`` to continue.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING

from pydantic import Field

from progression_server.ledger.errors import BlockNotFoundError, HistoryNotFoundError
from progression_server.ledger.records import HistoryBlock, LedgerModel

if TYPE_CHECKING:
    from progression_server.db.history_repo import HistoryBlockStore


class HistoryPage(LedgerModel):
    """One page of history.

    Attributes:
        items: The requested block (always exactly one).
        previous_block_number: Number of the block before it, ``None`` on block 1.
        previous_block_id: ``previousBlockId`` of the block.
    """

    items: list[HistoryBlock] = Field(default_factory=list)
    previous_block_number: int | None = None
    previous_block_id: str | None = None


class LedgerReader:
    def __init__(self, store: HistoryBlockStore) -> None:
        self.store = store

    def get_latest_block(self, character_id: str) -> HistoryBlock:
        """Return the latest block or raise ``HistoryNotFoundError``."""
        block = self.store.get_latest_block(character_id)
        if block is None:
            raise HistoryNotFoundError(character_id)
        return block

    def get_block(self, character_id: str, block_number: int) -> HistoryBlock:
        """Return a specific block.

        Raises:
            HistoryNotFoundError: The character has no history at all.
            BlockNotFoundError: The character has history, but not this block.
        """
        block = self.store.get_block(character_id, block_number)
        if block is not None:
            return block
        if self.store.get_latest_block(character_id) is None:
            raise HistoryNotFoundError(character_id)
        raise BlockNotFoundError(character_id, block_number)

    def get_page(self, character_id: str, block_number: int | None = None) -> HistoryPage:
        """Return one page: the latest block, or ``block_number`` if given."""
        if block_number is None:
            block = self.get_latest_block(character_id)
        else:
            block = self.get_block(character_id, block_number)
        return HistoryPage(
            items=[block],
            previous_block_number=block.block_number - 1 if block.block_number > 1 else None,
            previous_block_id=block.previous_block_id,
        )

    def iter_blocks(self, character_id: str) -> Iterator[HistoryBlock]:
        """Yield every block of a character, oldest first."""
        yield from self.store.query_blocks(character_id, ascending=True)
