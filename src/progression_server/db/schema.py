"""Schema creation for the SQLite backend.

Two tables back the service:

``history_blocks`` (name configurable)
    One row per history block. ``(character_id, block_number)`` is the
    partition/sort key pair; ``changes_json`` holds the ordered record array.

``characters``
    One row per character sheet document, written back by the revert engine.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from progression_server.db.connection import connection_scope

logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def validate_table_name(table_name: str) -> str:
    """Return ``table_name`` unchanged if it is a safe SQL identifier.

    Raises:
        ValueError: If the name could not be interpolated into SQL safely.
    """
    if not _IDENTIFIER_RE.match(table_name):
        raise ValueError(f"Invalid table name: {table_name!r}")
    return table_name


def history_table_statements(table_name: str) -> tuple[str, ...]:
    """DDL for the history block table and its secondary index."""
    table = validate_table_name(table_name)
    return (
        f"""
        CREATE TABLE IF NOT EXISTS {table} (
            character_id TEXT NOT NULL,
            block_number INTEGER NOT NULL CHECK (block_number >= 1),
            block_id TEXT NOT NULL UNIQUE,
            previous_block_id TEXT,
            changes_json TEXT NOT NULL DEFAULT '[]',
            record_count INTEGER NOT NULL DEFAULT 0,
            PRIMARY KEY (character_id, block_number)
        )
        """,
        f"CREATE INDEX IF NOT EXISTS idx_{table}_block_id ON {table}(block_id)",
    )


CHARACTERS_TABLE_STATEMENT = """
    CREATE TABLE IF NOT EXISTS characters (
        character_id TEXT PRIMARY KEY,
        user_id TEXT,
        sheet_json TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
"""


def init_database(
    db_path: Path | str | None = None,
    *,
    table_name: str | None = None,
) -> None:
    """Create all tables if they do not exist.

    Args:
        db_path: Explicit database file. Defaults to the configured path.
        table_name: History table name. Defaults to ``config.history.table_name``.
    """
    from progression_server.config import config

    table_name = table_name or config.history.table_name
    path = Path(db_path) if db_path is not None else config.database.absolute_path
    path.parent.mkdir(parents=True, exist_ok=True)

    with connection_scope(write=True, db_path=path) as conn:
        cursor = conn.cursor()
        for statement in history_table_statements(table_name):
            cursor.execute(statement)
        cursor.execute(CHARACTERS_TABLE_STATEMENT)

    logger.info("Database initialized at %s (history table %s)", path, table_name)
