"""History block repository for the SQLite backend.

Overview
--------
``HistoryBlockStore`` adapts the ledger's partitioned-document access pattern
onto a single SQLite table: the character id is the partition key, the block
number the sort key, and the ordered record list lives in a JSON column.

Every mutation is conditional. The condition is evaluated by the same SQL
statement (or ``BEGIN IMMEDIATE`` transaction) that applies the change, and a
failed condition raises ``ConditionalWriteError``:

    create_block        the (character, block number) key must be free
    append_record       the block must still hold ``expected_count`` records
    remove_last_record  the tail record must still be ``expected_record_id``
    set_record_comment  the record at ``index`` must still be ``record_id``
    delete_block        the block must hold exactly the one expected record

Reads are point/range reads on the primary key and always see committed data.

Configuration
-------------
The store receives its settings explicitly (``StoreSettings``) instead of
reading them from the process environment, so several stores with different
databases or limits can coexist (tests rely on this).
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, NoReturn

from pydantic import ValidationError

from progression_server.db.connection import connection_scope
from progression_server.db.errors import (
    ConditionalWriteError,
    DatabaseError,
    DatabaseOperationContext,
    DatabaseReadError,
    DatabaseWriteError,
)
from progression_server.db.schema import validate_table_name
from progression_server.ledger.constants import BATCH_CHUNK_SIZE
from progression_server.ledger.records import HistoryBlock, Record, compact_json

logger = logging.getLogger(__name__)

_COLUMNS = "character_id, block_number, block_id, previous_block_id, changes_json"


@dataclass(frozen=True)
class StoreSettings:
    """Explicit configuration of a ``HistoryBlockStore``.

    Attributes:
        db_path: SQLite database file.
        table_name: History block table.
        max_block_bytes: Serialized size ceiling of one block.
        max_block_records: Record count ceiling of one block.
    """

    db_path: Path
    table_name: str = "history_blocks"
    max_block_bytes: int = 380_000
    max_block_records: int = 1000

    @classmethod
    def from_config(cls, cfg: Any = None) -> StoreSettings:
        """Build settings from a ``ServerConfig`` (defaults to the loaded one)."""
        if cfg is None:
            from progression_server.config import config as cfg
        return cls(
            db_path=cfg.database.absolute_path,
            table_name=cfg.history.table_name,
            max_block_bytes=cfg.history.max_block_bytes,
            max_block_records=cfg.history.max_block_records,
        )


def _raise_read_error(operation: str, exc: Exception, *, details: str | None = None) -> NoReturn:
    """Raise a typed repository read error while preserving chained cause."""
    if isinstance(exc, DatabaseError):
        raise exc
    raise DatabaseReadError(
        context=DatabaseOperationContext(operation=operation, details=details),
        cause=exc,
    ) from exc


def _raise_write_error(operation: str, exc: Exception, *, details: str | None = None) -> NoReturn:
    """Raise a typed repository write error while preserving chained cause."""
    if isinstance(exc, DatabaseError):
        raise exc
    raise DatabaseWriteError(
        context=DatabaseOperationContext(operation=operation, details=details),
        cause=exc,
    ) from exc


def _condition_failed(operation: str, details: str) -> NoReturn:
    raise ConditionalWriteError(
        context=DatabaseOperationContext(operation=operation, details=details),
    )


def _row_to_block(row: sqlite3.Row | tuple) -> HistoryBlock:
    character_id, block_number, block_id, previous_block_id, changes_json = row
    return HistoryBlock(
        character_id=character_id,
        block_number=block_number,
        block_id=block_id,
        previous_block_id=previous_block_id,
        changes=json.loads(changes_json),
    )


def _record_json(record: Record) -> str:
    return compact_json(record.to_wire())


class HistoryBlockStore:
    """Conditional read/write access to history blocks.

    Args:
        settings: Database path, table name and block limits.

    Example:
        >>> store = HistoryBlockStore(StoreSettings.from_config())
        >>> block = store.get_latest_block(character_id)
    """

    def __init__(self, settings: StoreSettings) -> None:
        self.settings = settings
        self._table = validate_table_name(settings.table_name)

    def _scope(self, **kwargs: Any):
        return connection_scope(db_path=self.settings.db_path, **kwargs)

    # ── Reads ─────────────────────────────────────────────────────────────────

    def get_latest_block(self, character_id: str) -> HistoryBlock | None:
        """Return the highest-numbered block of a character, or ``None``."""
        try:
            with self._scope() as conn:
                row = conn.execute(
                    f"SELECT {_COLUMNS} FROM {self._table} "
                    "WHERE character_id = ? ORDER BY block_number DESC LIMIT 1",
                    (character_id,),
                ).fetchone()
            return _row_to_block(row) if row else None
        except (sqlite3.Error, ValidationError, ValueError) as exc:
            _raise_read_error("history.get_latest_block", exc, details=f"character_id={character_id}")

    def get_block(self, character_id: str, block_number: int) -> HistoryBlock | None:
        """Return one block by number, or ``None`` if it does not exist."""
        try:
            with self._scope() as conn:
                row = conn.execute(
                    f"SELECT {_COLUMNS} FROM {self._table} "
                    "WHERE character_id = ? AND block_number = ?",
                    (character_id, block_number),
                ).fetchone()
            return _row_to_block(row) if row else None
        except (sqlite3.Error, ValidationError, ValueError) as exc:
            _raise_read_error(
                "history.get_block",
                exc,
                details=f"character_id={character_id} block_number={block_number}",
            )

    def query_blocks(
        self,
        character_id: str,
        *,
        ascending: bool = True,
        limit: int | None = None,
    ) -> list[HistoryBlock]:
        """Range query over a character's blocks ordered by block number."""
        order = "ASC" if ascending else "DESC"
        sql = (
            f"SELECT {_COLUMNS} FROM {self._table} "
            f"WHERE character_id = ? ORDER BY block_number {order}"
        )
        params: tuple[Any, ...] = (character_id,)
        if limit is not None:
            sql += " LIMIT ?"
            params = (character_id, limit)
        try:
            with self._scope() as conn:
                rows = conn.execute(sql, params).fetchall()
            return [_row_to_block(row) for row in rows]
        except (sqlite3.Error, ValidationError, ValueError) as exc:
            _raise_read_error("history.query_blocks", exc, details=f"character_id={character_id}")

    def list_block_keys(self, character_id: str) -> list[int]:
        """Return the block numbers of a character without loading records."""
        try:
            with self._scope() as conn:
                rows = conn.execute(
                    f"SELECT block_number FROM {self._table} "
                    "WHERE character_id = ? ORDER BY block_number",
                    (character_id,),
                ).fetchall()
            return [int(row[0]) for row in rows]
        except sqlite3.Error as exc:
            _raise_read_error("history.list_block_keys", exc, details=f"character_id={character_id}")

    # ── Conditional writes ───────────────────────────────────────────────────

    def create_block(self, block: HistoryBlock) -> HistoryBlock:
        """Insert a new block; fails if the block number is already taken."""
        operation = "history.create_block"
        try:
            with self._scope(write=True) as conn:
                self._insert(conn, block)
        except sqlite3.IntegrityError as exc:
            raise ConditionalWriteError(
                context=DatabaseOperationContext(
                    operation=operation,
                    details=(
                        f"block {block.block_number} already exists for "
                        f"character_id={block.character_id}"
                    ),
                ),
                cause=exc,
            ) from exc
        except sqlite3.Error as exc:
            _raise_write_error(operation, exc, details=f"character_id={block.character_id}")
        logger.debug(
            "Created history block %s for character %s", block.block_number, block.character_id
        )
        return block

    def _insert(self, conn: sqlite3.Connection, block: HistoryBlock) -> None:
        changes = [record.to_wire() for record in block.changes]
        conn.execute(
            f"INSERT INTO {self._table} "
            "(character_id, block_number, block_id, previous_block_id, changes_json, record_count) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                block.character_id,
                block.block_number,
                block.block_id,
                block.previous_block_id,
                compact_json(changes),
                len(changes),
            ),
        )

    def append_record(
        self,
        character_id: str,
        block_number: int,
        record: Record,
        *,
        expected_count: int,
    ) -> None:
        """Append ``record`` to a block still holding ``expected_count`` records."""
        operation = "history.append_record"
        try:
            with self._scope(write=True) as conn:
                cursor = conn.execute(
                    f"UPDATE {self._table} "
                    "SET changes_json = json_insert(changes_json, '$[#]', json(?)), "
                    "record_count = record_count + 1 "
                    "WHERE character_id = ? AND block_number = ? AND record_count = ?",
                    (_record_json(record), character_id, block_number, expected_count),
                )
                if cursor.rowcount != 1:
                    _condition_failed(
                        operation,
                        f"block {block_number} of character_id={character_id} "
                        f"no longer holds {expected_count} records",
                    )
        except sqlite3.Error as exc:
            _raise_write_error(operation, exc, details=f"character_id={character_id}")

    def remove_last_record(
        self,
        character_id: str,
        block_number: int,
        *,
        expected_record_id: str,
    ) -> None:
        """Drop the tail record of a block if it is still ``expected_record_id``."""
        operation = "history.remove_last_record"
        try:
            with self._scope(write=True) as conn:
                cursor = conn.execute(
                    f"UPDATE {self._table} "
                    "SET changes_json = json_remove(changes_json, '$[#-1]'), "
                    "record_count = record_count - 1 "
                    "WHERE character_id = ? AND block_number = ? "
                    "AND json_extract(changes_json, '$[#-1].id') = ?",
                    (character_id, block_number, expected_record_id),
                )
                if cursor.rowcount != 1:
                    _condition_failed(
                        operation,
                        f"tail of block {block_number} is no longer {expected_record_id}",
                    )
        except sqlite3.Error as exc:
            _raise_write_error(operation, exc, details=f"character_id={character_id}")

    def set_record_comment(
        self,
        character_id: str,
        block_number: int,
        index: int,
        *,
        record_id: str,
        comment: str | None,
    ) -> None:
        """Overwrite the comment of the record at ``index`` if it is still ``record_id``."""
        operation = "history.set_record_comment"
        try:
            with self._scope(write=True) as conn:
                cursor = conn.execute(
                    f"UPDATE {self._table} "
                    "SET changes_json = json_set(changes_json, ?, ?) "
                    "WHERE character_id = ? AND block_number = ? "
                    "AND json_extract(changes_json, ?) = ?",
                    (
                        f"$[{index}].comment",
                        comment,
                        character_id,
                        block_number,
                        f"$[{index}].id",
                        record_id,
                    ),
                )
                if cursor.rowcount != 1:
                    _condition_failed(
                        operation,
                        f"record at index {index} of block {block_number} is no longer {record_id}",
                    )
        except sqlite3.Error as exc:
            _raise_write_error(operation, exc, details=f"character_id={character_id}")

    def delete_block(
        self,
        character_id: str,
        block_number: int,
        *,
        expected_record_id: str,
    ) -> None:
        """Delete a block whose only record is still ``expected_record_id``."""
        operation = "history.delete_block"
        try:
            with self._scope(write=True) as conn:
                cursor = conn.execute(
                    f"DELETE FROM {self._table} "
                    "WHERE character_id = ? AND block_number = ? AND record_count = 1 "
                    "AND json_extract(changes_json, '$[0].id') = ?",
                    (character_id, block_number, expected_record_id),
                )
                if cursor.rowcount != 1:
                    _condition_failed(
                        operation,
                        f"block {block_number} no longer holds only {expected_record_id}",
                    )
        except sqlite3.Error as exc:
            _raise_write_error(operation, exc, details=f"character_id={character_id}")
        logger.debug("Deleted history block %s for character %s", block_number, character_id)

    # ── Batch operations ─────────────────────────────────────────────────────

    def create_blocks(self, blocks: Sequence[HistoryBlock]) -> int:
        """Insert many blocks, in transactions of ``BATCH_CHUNK_SIZE`` blocks.

        A chunk is atomic; earlier chunks stay committed if a later one fails
        (``clone_history`` deletes them again).

        Returns:
            Number of blocks inserted.
        """
        operation = "history.create_blocks"
        written = 0
        try:
            for chunk in _chunks(blocks, BATCH_CHUNK_SIZE):
                with self._scope(write=True) as conn:
                    for block in chunk:
                        self._insert(conn, block)
                written += len(chunk)
        except sqlite3.IntegrityError as exc:
            raise ConditionalWriteError(
                context=DatabaseOperationContext(
                    operation=operation, details=f"{written} blocks written before conflict"
                ),
                cause=exc,
            ) from exc
        except sqlite3.Error as exc:
            _raise_write_error(operation, exc, details=f"{written} blocks written")
        return written

    def delete_blocks(self, character_id: str, block_numbers: Iterable[int]) -> int:
        """Delete blocks by number, in transactions of ``BATCH_CHUNK_SIZE`` keys.

        Returns:
            Number of rows actually deleted.
        """
        operation = "history.delete_blocks"
        deleted = 0
        try:
            for chunk in _chunks(list(block_numbers), BATCH_CHUNK_SIZE):
                placeholders = ", ".join("?" for _ in chunk)
                with self._scope(write=True) as conn:
                    cursor = conn.execute(
                        f"DELETE FROM {self._table} "
                        f"WHERE character_id = ? AND block_number IN ({placeholders})",
                        (character_id, *chunk),
                    )
                deleted += cursor.rowcount
        except sqlite3.Error as exc:
            _raise_write_error(operation, exc, details=f"character_id={character_id}")
        return deleted


def _chunks(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]
