"""Reversal of the latest history record.

Overview
--------
Only the tail record of a character's history can be reverted. Reverting

1. checks that the requested record is still the tail,
2. validates it with the same record checks the writer applies,
3. writes every ``old`` snapshot back through the :class:`SheetWriter`,
4. removes the record (or deletes its block when it was the only record).

Inverse writes
--------------
Each record type maps to a set of independent sub-resource writes: the
mutated value itself plus any point pool that moved with it. The writes are
submitted to a thread pool and all of them are awaited before anything else
happens. If any write fails the record stays in place and
``RevertApplicationError`` is raised; writes that did succeed are **not**
rolled back. Every write sets a value to its recorded ``old`` snapshot, so
retrying the revert converges.

Record names
------------
Skill records are named ``"<category>/<skill>"``, or
``"combat/<skill> (<combatCategory>)"`` for combat skills. Combat stat
records are named ``"<combatCategory>/<skill>"``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from pydantic import BaseModel

from progression_server.ledger.errors import (
    RevertApplicationError,
    StaleRevertTargetError,
    UnknownRecordTypeError,
)
from progression_server.ledger.payloads import (
    RecordPayload,
    parse_combat_name,
    parse_skill_name,
    validate_record,
)
from progression_server.ledger.reader import LedgerReader
from progression_server.ledger.records import Record, RecordType

if TYPE_CHECKING:
    from progression_server.db.history_repo import HistoryBlockStore

logger = logging.getLogger(__name__)


class SheetWriter(Protocol):
    """Character-sheet mutations the revert engine depends on.

    Every method sets one sub-resource of the sheet and returns the previous
    and new value (``MutationResult``).
    """

    def set_level(self, character_id: str, level: int) -> Any: ...

    def set_base_value(self, character_id: str, name: str, value: dict[str, Any]) -> Any: ...

    def set_special_abilities(self, character_id: str, values: list[str]) -> Any: ...

    def set_attribute(self, character_id: str, name: str, value: dict[str, Any]) -> Any: ...

    def set_skill(
        self, character_id: str, category: str, name: str, value: dict[str, Any]
    ) -> Any: ...

    def set_combat_stats(
        self, character_id: str, combat_category: str, skill_name: str, value: dict[str, Any]
    ) -> Any: ...

    def set_adventure_points(self, character_id: str, points: dict[str, Any]) -> Any: ...

    def set_attribute_points(self, character_id: str, points: dict[str, Any]) -> Any: ...


@dataclass(frozen=True)
class InverseWrite:
    """One pending sheet write.

    Attributes:
        target: Sheet path being restored, for logs and errors.
        apply: Performs the write.
    """

    target: str
    apply: Callable[[], Any]


def _wire(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


class RevertEngine:
    """Reverts the latest history record of a character.

    Args:
        store: Block store.
        sheet_writer: Applies inverse mutations to the character sheet.
        max_workers: Upper bound on concurrently running inverse writes.
    """

    def __init__(
        self,
        store: HistoryBlockStore,
        sheet_writer: SheetWriter,
        *,
        max_workers: int = 4,
    ) -> None:
        self.store = store
        self.reader = LedgerReader(store)
        self.sheet_writer = sheet_writer
        self.max_workers = max(1, max_workers)

    def revert(self, character_id: str, record_id: str) -> Record:
        """Undo the latest record of ``character_id``.

        Args:
            character_id: Owning character.
            record_id: Id the caller believes is the latest record.

        Returns:
            The removed record.

        Raises:
            HistoryNotFoundError: The character has no history.
            StaleRevertTargetError: ``record_id`` is not the latest record.
            LedgerValidationError: The stored record fails validation.
            RevertApplicationError: An inverse write failed.
            ConditionalWriteError: The tail changed before truncation.
        """
        block = self.reader.get_latest_block(character_id)
        latest = block.latest
        if latest is None or latest.id != record_id:
            raise StaleRevertTargetError(
                character_id,
                expected_id=record_id,
                actual_id=latest.id if latest is not None else "",
            )

        payload = validate_record(latest)
        writes = self.inverse_writes(character_id, latest, payload)
        self._apply(latest, writes)

        if len(block.changes) == 1:
            self.store.delete_block(
                character_id, block.block_number, expected_record_id=record_id
            )
        else:
            self.store.remove_last_record(
                character_id, block.block_number, expected_record_id=record_id
            )
        logger.info(
            "Reverted record %s (%s %s) of character %s",
            latest.number,
            latest.type.name,
            latest.name,
            character_id,
        )
        return latest

    # ── Inverse mutations ────────────────────────────────────────────────────

    def inverse_writes(
        self,
        character_id: str,
        record: Record,
        payload: RecordPayload[Any],
    ) -> list[InverseWrite]:
        """Build the sheet writes that restore ``record``'s ``old`` snapshots."""
        writer = self.sheet_writer
        old = payload.old
        new = payload.new
        writes: list[InverseWrite] = []

        match record.type:
            case RecordType.CHARACTER_CREATED:
                # Nothing precedes creation; only the record itself goes away.
                return writes

            case RecordType.LEVEL_CHANGED:
                writes.append(
                    InverseWrite(
                        "generalInformation.level",
                        lambda: writer.set_level(character_id, old.value),
                    )
                )
                writes += self._points_writes(character_id, record)

            case RecordType.CALCULATION_POINTS_CHANGED:
                if old.adventure_points is not None:
                    points = _wire(old.adventure_points)
                    writes.append(
                        InverseWrite(
                            "calculationPoints.adventurePoints",
                            lambda: writer.set_adventure_points(character_id, points),
                        )
                    )
                if old.attribute_points is not None:
                    attribute_points = _wire(old.attribute_points)
                    writes.append(
                        InverseWrite(
                            "calculationPoints.attributePoints",
                            lambda: writer.set_attribute_points(character_id, attribute_points),
                        )
                    )

            case RecordType.BASE_VALUE_CHANGED:
                value = _wire(old)
                writes.append(
                    InverseWrite(
                        f"baseValues.{record.name}",
                        lambda: writer.set_base_value(character_id, record.name, value),
                    )
                )
                writes += self._points_writes(character_id, record)

            case RecordType.SPECIAL_ABILITIES_CHANGED:
                values = list(old.values)
                writes.append(
                    InverseWrite(
                        "specialAbilities",
                        lambda: writer.set_special_abilities(character_id, values),
                    )
                )
                writes += self._points_writes(character_id, record)

            case RecordType.ATTRIBUTE_CHANGED:
                writes += self._attribute_dependency_writes(character_id, old, new)
                attribute = _wire(old.attribute)
                writes.append(
                    InverseWrite(
                        f"attributes.{record.name}",
                        lambda: writer.set_attribute(character_id, record.name, attribute),
                    )
                )
                writes += self._points_writes(character_id, record)

            case RecordType.SKILL_CHANGED:
                name = parse_skill_name(record.name)
                if old.combat_stats is not None:
                    stats = _wire(old.combat_stats)
                    writes.append(
                        InverseWrite(
                            f"combat.{name.combat_category}.{name.skill}",
                            lambda: writer.set_combat_stats(
                                character_id, name.combat_category, name.skill, stats
                            ),
                        )
                    )
                skill = _wire(old.skill)
                writes.append(
                    InverseWrite(
                        f"skills.{name.category}.{name.skill}",
                        lambda: writer.set_skill(character_id, name.category, name.skill, skill),
                    )
                )
                writes += self._points_writes(character_id, record)

            case RecordType.COMBAT_STATS_CHANGED:
                combat_category, skill_name = parse_combat_name(record.name)
                stats = _wire(old)
                writes.append(
                    InverseWrite(
                        f"combat.{combat_category}.{skill_name}",
                        lambda: writer.set_combat_stats(
                            character_id, combat_category, skill_name, stats
                        ),
                    )
                )
                writes += self._points_writes(character_id, record)

            case _:
                raise UnknownRecordTypeError(record.type)

        return writes

    def _attribute_dependency_writes(self, character_id: str, old: Any, new: Any) -> list[InverseWrite]:
        """Restore base values whose formula result and combat stats that moved."""
        writer = self.sheet_writer
        writes: list[InverseWrite] = []

        new_base_values = new.base_values or {}
        for name, old_value in (old.base_values or {}).items():
            new_value = new_base_values.get(name)
            if new_value is not None and new_value.by_formula == old_value.by_formula:
                continue
            value = _wire(old_value)
            writes.append(
                InverseWrite(
                    f"baseValues.{name}",
                    lambda name=name, value=value: writer.set_base_value(character_id, name, value),
                )
            )

        new_combat = new.combat or {}
        for combat_category, skills in (old.combat or {}).items():
            for skill_name, old_stats in skills.items():
                if new_combat.get(combat_category, {}).get(skill_name) == old_stats:
                    continue
                stats = _wire(old_stats)
                writes.append(
                    InverseWrite(
                        f"combat.{combat_category}.{skill_name}",
                        lambda category=combat_category, skill=skill_name, stats=stats: (
                            writer.set_combat_stats(character_id, category, skill, stats)
                        ),
                    )
                )
        return writes

    def _points_writes(self, character_id: str, record: Record) -> list[InverseWrite]:
        """Restore the point pools recorded in ``record.calculation_points``."""
        writer = self.sheet_writer
        writes: list[InverseWrite] = []
        adventure = record.calculation_points.adventure_points
        attribute = record.calculation_points.attribute_points

        if adventure is not None:
            adventure_points = _wire(adventure.old)
            writes.append(
                InverseWrite(
                    "calculationPoints.adventurePoints",
                    lambda: writer.set_adventure_points(character_id, adventure_points),
                )
            )
        if attribute is not None:
            attribute_points = _wire(attribute.old)
            writes.append(
                InverseWrite(
                    "calculationPoints.attributePoints",
                    lambda: writer.set_attribute_points(character_id, attribute_points),
                )
            )
        return writes

    def _apply(self, record: Record, writes: list[InverseWrite]) -> None:
        """Run all writes concurrently, wait for every one, then surface a failure."""
        if not writes:
            return
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(writes))) as executor:
            futures = [(write, executor.submit(write.apply)) for write in writes]
            wait([future for _, future in futures])

        failures = [(write, future.exception()) for write, future in futures if future.exception()]
        for write, exc in failures:
            logger.error("Inverse write %s for record %s failed: %s", write.target, record.id, exc)
        if failures:
            write, exc = failures[0]
            raise RevertApplicationError(record.id, write.target, exc) from exc
