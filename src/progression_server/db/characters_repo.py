"""Character sheet repository for the SQLite backend.

Each character sheet is stored as one JSON document. The revert engine writes
individual sub-resources back (an attribute, a skill, a point pool) through
the ``set_*`` methods; each runs in its own ``BEGIN IMMEDIATE`` transaction,
reads the previous value and applies a nested ``json_set`` on the stored
document, so concurrent writes to different paths of one sheet never lose
each other's changes.

Sheet layout (top-level keys of ``sheet_json``)::

    generalInformation.level
    calculationPoints.adventurePoints | attributePoints
    attributes.<name>
    baseValues.<name>
    skills.<category>.<name>
    combat.<combatCategory>.<skillName>
    specialAbilities              (list of strings)
"""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any, NoReturn

from progression_server.db.connection import connection_scope
from progression_server.db.errors import (
    CharacterNotFoundError,
    DatabaseError,
    DatabaseOperationContext,
    DatabaseReadError,
    DatabaseWriteError,
    SheetPathError,
)
from progression_server.ledger.records import compact_json, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MutationResult:
    """Previous and current value of a written sheet path."""

    old: Any
    new: Any


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


def json_path(segments: tuple[str, ...]) -> str:
    """Build an SQLite JSON path with every key quoted, e.g. ``$."skills"."body"``."""
    parts = []
    for segment in segments:
        if not segment or '"' in segment:
            raise ValueError(f"Invalid sheet path segment: {segment!r}")
        parts.append(f'."{segment}"')
    return "$" + "".join(parts)


def _lookup(document: Any, segments: tuple[str, ...]) -> tuple[bool, Any]:
    current = document
    for segment in segments:
        if not isinstance(current, dict) or segment not in current:
            return False, None
        current = current[segment]
    return True, current


class CharacterSheetStore:
    """Sheet document storage and the default ``SheetWriter`` implementation.

    Args:
        db_path: SQLite database file. Defaults to the configured path.
    """

    def __init__(self, db_path: Path | str | None = None) -> None:
        self.db_path = db_path

    def _scope(self, **kwargs: Any):
        return connection_scope(db_path=self.db_path, **kwargs)

    # ── Documents ────────────────────────────────────────────────────────────

    def create_character(
        self,
        character_id: str,
        sheet: dict[str, Any],
        *,
        user_id: str | None = None,
    ) -> bool:
        """Insert a sheet document. Returns ``False`` if the id already exists."""
        try:
            with self._scope(write=True) as conn:
                conn.execute(
                    "INSERT INTO characters (character_id, user_id, sheet_json, updated_at) "
                    "VALUES (?, ?, ?, ?)",
                    (character_id, user_id, compact_json(sheet), utc_now().isoformat()),
                )
            return True
        except sqlite3.IntegrityError:
            return False
        except sqlite3.Error as exc:
            _raise_write_error(
                "characters.create_character", exc, details=f"character_id={character_id}"
            )

    def get_sheet(self, character_id: str) -> dict[str, Any] | None:
        try:
            with self._scope() as conn:
                row = conn.execute(
                    "SELECT sheet_json FROM characters WHERE character_id = ?",
                    (character_id,),
                ).fetchone()
            return json.loads(row[0]) if row else None
        except (sqlite3.Error, ValueError) as exc:
            _raise_read_error("characters.get_sheet", exc, details=f"character_id={character_id}")

    def get_owner(self, character_id: str) -> str | None:
        try:
            with self._scope() as conn:
                row = conn.execute(
                    "SELECT user_id FROM characters WHERE character_id = ?",
                    (character_id,),
                ).fetchone()
            return row[0] if row else None
        except sqlite3.Error as exc:
            _raise_read_error("characters.get_owner", exc, details=f"character_id={character_id}")

    def delete_character(self, character_id: str) -> bool:
        """Delete a sheet document. Returns ``False`` if it did not exist."""
        try:
            with self._scope(write=True) as conn:
                cursor = conn.execute(
                    "DELETE FROM characters WHERE character_id = ?", (character_id,)
                )
            return cursor.rowcount > 0
        except sqlite3.Error as exc:
            _raise_write_error(
                "characters.delete_character", exc, details=f"character_id={character_id}"
            )

    # ── Nested writes ────────────────────────────────────────────────────────

    def set_path(self, character_id: str, segments: tuple[str, ...], value: Any) -> MutationResult:
        """Set one nested value of a sheet; the parent object must exist.

        Args:
            character_id: Character to write.
            segments: Key path below the sheet root.
            value: JSON-compatible replacement value.

        Returns:
            The previous and the written value.

        Raises:
            CharacterNotFoundError: No sheet for ``character_id``.
            SheetPathError: The parent of ``segments`` is missing.
            DatabaseWriteError: Any SQLite failure.
        """
        operation = "characters.set_path"
        details = f"character_id={character_id} path={'.'.join(segments)}"
        try:
            path = json_path(segments)
        except ValueError as exc:
            raise SheetPathError(
                context=DatabaseOperationContext(operation=operation, details=details),
                cause=exc,
            ) from exc

        try:
            with self._scope(immediate=True) as conn:
                row = conn.execute(
                    "SELECT sheet_json FROM characters WHERE character_id = ?",
                    (character_id,),
                ).fetchone()
                if row is None:
                    raise CharacterNotFoundError(
                        context=DatabaseOperationContext(operation=operation, details=details)
                    )
                sheet = json.loads(row[0])
                parent_found, parent = _lookup(sheet, segments[:-1])
                if not parent_found or not isinstance(parent, dict):
                    raise SheetPathError(
                        context=DatabaseOperationContext(operation=operation, details=details)
                    )
                old = parent.get(segments[-1])
                conn.execute(
                    "UPDATE characters SET sheet_json = json_set(sheet_json, ?, json(?)), "
                    "updated_at = ? WHERE character_id = ?",
                    (path, compact_json(value), utc_now().isoformat(), character_id),
                )
        except (sqlite3.Error, ValueError) as exc:
            _raise_write_error(operation, exc, details=details)

        logger.debug("Set %s on character %s", ".".join(segments), character_id)
        return MutationResult(old=old, new=value)

    def set_level(self, character_id: str, level: int) -> MutationResult:
        return self.set_path(character_id, ("generalInformation", "level"), level)

    def set_base_value(self, character_id: str, name: str, value: dict[str, Any]) -> MutationResult:
        return self.set_path(character_id, ("baseValues", name), value)

    def set_special_abilities(self, character_id: str, values: list[str]) -> MutationResult:
        return self.set_path(character_id, ("specialAbilities",), values)

    def set_attribute(self, character_id: str, name: str, value: dict[str, Any]) -> MutationResult:
        return self.set_path(character_id, ("attributes", name), value)

    def set_skill(
        self, character_id: str, category: str, name: str, value: dict[str, Any]
    ) -> MutationResult:
        return self.set_path(character_id, ("skills", category, name), value)

    def set_combat_stats(
        self, character_id: str, combat_category: str, skill_name: str, value: dict[str, Any]
    ) -> MutationResult:
        return self.set_path(character_id, ("combat", combat_category, skill_name), value)

    def set_adventure_points(self, character_id: str, points: dict[str, Any]) -> MutationResult:
        return self.set_path(character_id, ("calculationPoints", "adventurePoints"), points)

    def set_attribute_points(self, character_id: str, points: dict[str, Any]) -> MutationResult:
        return self.set_path(character_id, ("calculationPoints", "attributePoints"), points)
