"""SQLite connection primitives for the progression server DB layer.

This module owns connection creation and low-level SQLite runtime pragmas so
repository code can stay focused on queries and transaction intent.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path


def get_db_path() -> Path:
    """Resolve the absolute SQLite database path from runtime configuration."""
    from progression_server.config import config

    return config.database.absolute_path


def configure_connection(connection: sqlite3.Connection) -> sqlite3.Connection:
    """Apply connection-level SQLite pragmas required by the application.

    Notes:
        - ``busy_timeout`` lets concurrent writers (for example the revert
          engine's worker threads) queue on the write lock instead of failing
          immediately with ``database is locked``.
    """
    connection.execute("PRAGMA foreign_keys = ON")
    connection.execute("PRAGMA busy_timeout = 5000")
    return connection


def get_connection(db_path: Path | str | None = None) -> sqlite3.Connection:
    """Create and configure a new SQLite connection.

    Args:
        db_path: Explicit database file. Defaults to the configured path.
    """
    path = Path(db_path) if db_path is not None else get_db_path()
    connection = sqlite3.connect(str(path))
    return configure_connection(connection)


@contextmanager
def connection_scope(
    *,
    write: bool = False,
    immediate: bool = False,
    db_path: Path | str | None = None,
) -> Iterator[sqlite3.Connection]:
    """Yield a configured connection with guaranteed cleanup semantics.

    Args:
        write: When True, commit on success and rollback on exceptions.
        immediate: When True (implies ``write``), open the transaction with
            ``BEGIN IMMEDIATE`` so the write lock is held from the first read.
            Conditional writes use this to re-check their condition and apply
            the mutation atomically.
        db_path: Explicit database file. Defaults to the configured path.

    Yields:
        Configured SQLite connection ready for cursor operations.

    Behavior:
        - Always closes the connection in ``finally``.
        - For write scopes, commits at the end of a successful block.
        - For write scopes, attempts rollback before re-raising failures.
    """
    write = write or immediate
    connection = get_connection(db_path)
    try:
        if immediate:
            connection.execute("BEGIN IMMEDIATE")
        yield connection
        if write:
            connection.commit()
    except Exception:
        if write:
            try:
                connection.rollback()
            except sqlite3.Error:
                # Preserve the original exception while best-effort rolling back.
                pass
        raise
    finally:
        connection.close()
