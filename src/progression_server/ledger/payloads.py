"""Per-type payload models for ``Record.data``.

Each ``RecordType`` selects exactly one closed payload shape; both ``old`` and
``new`` must match it. ``validate_record`` is the single entry point used by
the writer (before storing) and the revert engine (before dispatching the
inverse mutation); it adds the record-level checks on top of
``validate_record_data``: the name shape of skill and combat stat records and
the point pool snapshots their inverse mutation restores.

    CHARACTER_CREATED           CharacterCreation (``old`` must be absent)
    LEVEL_CHANGED               LevelChange
    CALCULATION_POINTS_CHANGED  CalculationPointsChange
    BASE_VALUE_CHANGED          BaseValue
    SPECIAL_ABILITIES_CHANGED   SpecialAbilitiesChange
    ATTRIBUTE_CHANGED           AttributeChange
    SKILL_CHANGED               SkillChange
    COMBAT_STATS_CHANGED        CombatStats
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import Field, ValidationError, field_validator

from progression_server.ledger.constants import (
    ACTIVATED_SKILLS_AT_CREATION,
    MAX_ARRAY_SIZE,
    MAX_COST,
    MAX_COST_CATEGORY,
    MAX_LEVEL,
    MAX_POINTS,
    MAX_RATING,
    MAX_STRING_LENGTH_DEFAULT,
    MIN_LEVEL,
    MIN_RATING,
)
from progression_server.ledger.errors import LedgerValidationError, UnknownRecordTypeError
from progression_server.ledger.records import (
    CalculationPoints,
    LedgerModel,
    RecordData,
    RecordDraft,
    RecordType,
)

_SKILL_NAME_RE = re.compile(r"^(?P<category>[^/]+)/(?P<skill>.+?)(?: \((?P<combat>[^()]+)\))?$")


# ── Sheet value shapes ────────────────────────────────────────────────────────


class Attribute(LedgerModel):
    start: int = Field(ge=MIN_RATING, le=MAX_RATING)
    current: int = Field(ge=MIN_RATING, le=MAX_RATING)
    mod: int = Field(ge=MIN_RATING, le=MAX_RATING)
    total_cost: int = Field(ge=0, le=MAX_COST)


class BaseValue(LedgerModel):
    start: int = Field(ge=MIN_RATING, le=MAX_RATING)
    current: int = Field(ge=MIN_RATING, le=MAX_RATING)
    by_formula: int | None = Field(default=None, ge=MIN_RATING, le=MAX_RATING)
    by_lvl_up: int | None = Field(default=None, ge=MIN_RATING, le=MAX_RATING)
    mod: int = Field(ge=MIN_RATING, le=MAX_RATING)


class Skill(LedgerModel):
    activated: bool
    start: int = Field(ge=MIN_RATING, le=MAX_RATING)
    current: int = Field(ge=MIN_RATING, le=MAX_RATING)
    mod: int = Field(ge=MIN_RATING, le=MAX_RATING)
    total_cost: int = Field(ge=0, le=MAX_COST)
    default_cost_category: int = Field(ge=0, le=MAX_COST_CATEGORY)


class CombatStats(LedgerModel):
    available_points: int = Field(ge=0, le=MAX_POINTS)
    handling: int = Field(ge=MIN_RATING, le=MAX_RATING)
    attack_value: int = Field(ge=MIN_RATING, le=MAX_RATING)
    skilled_attack_value: int = Field(ge=MIN_RATING, le=MAX_RATING)
    parade_value: int = Field(ge=MIN_RATING, le=MAX_RATING)
    skilled_parade_value: int = Field(ge=MIN_RATING, le=MAX_RATING)


# ── Payloads ──────────────────────────────────────────────────────────────────


class GenerationPoints(LedgerModel):
    through_disadvantages: int = Field(ge=0, le=MAX_POINTS)
    spent: int = Field(ge=0, le=MAX_POINTS)
    total: int = Field(ge=0, le=MAX_POINTS)


class CharacterCreation(LedgerModel):
    """Snapshot taken when a character is created.

    ``character`` is the full sheet document; its internals belong to the
    character-mutation subsystem and are not re-validated here.
    """

    character: dict[str, Any]
    generation_points: GenerationPoints
    activated_skills: list[str] = Field(
        min_length=ACTIVATED_SKILLS_AT_CREATION,
        max_length=ACTIVATED_SKILLS_AT_CREATION,
    )

    @field_validator("activated_skills")
    @classmethod
    def _check_skill_names(cls, value: list[str]) -> list[str]:
        for name in value:
            category, sep, skill = name.partition("/")
            if not sep or not category or not skill:
                raise ValueError(f"activated skill {name!r} is not 'category/name'")
        return value


class LevelChange(LedgerModel):
    value: int = Field(ge=MIN_LEVEL, le=MAX_LEVEL)


class CalculationPointsChange(LedgerModel):
    adventure_points: CalculationPoints | None = None
    attribute_points: CalculationPoints | None = None


class SpecialAbilitiesChange(LedgerModel):
    values: list[str] = Field(max_length=MAX_ARRAY_SIZE)

    @field_validator("values")
    @classmethod
    def _check_lengths(cls, value: list[str]) -> list[str]:
        for ability in value:
            if len(ability) > MAX_STRING_LENGTH_DEFAULT:
                raise ValueError(f"special ability longer than {MAX_STRING_LENGTH_DEFAULT} characters")
        return value


class AttributeChange(LedgerModel):
    """An attribute plus everything derived from it that moved with it.

    Attributes:
        attribute: The attribute itself.
        base_values: Base values keyed by name (formula inputs).
        combat: Combat stats keyed by combat category, then skill name.
    """

    attribute: Attribute
    base_values: dict[str, BaseValue] | None = None
    combat: dict[str, dict[str, CombatStats]] | None = None


class SkillChange(LedgerModel):
    skill: Skill
    combat_stats: CombatStats | None = None


PAYLOAD_MODELS: dict[RecordType, type[LedgerModel]] = {
    RecordType.CHARACTER_CREATED: CharacterCreation,
    RecordType.LEVEL_CHANGED: LevelChange,
    RecordType.CALCULATION_POINTS_CHANGED: CalculationPointsChange,
    RecordType.BASE_VALUE_CHANGED: BaseValue,
    RecordType.SPECIAL_ABILITIES_CHANGED: SpecialAbilitiesChange,
    RecordType.ATTRIBUTE_CHANGED: AttributeChange,
    RecordType.SKILL_CHANGED: SkillChange,
    RecordType.COMBAT_STATS_CHANGED: CombatStats,
}

P = TypeVar("P", bound=LedgerModel)


@dataclass(frozen=True)
class RecordPayload(Generic[P]):
    """Typed view of a record's ``data``.

    Attributes:
        old: Snapshot before the mutation; ``None`` only for creation.
        new: Snapshot after the mutation.
    """

    old: P | None
    new: P


def validate_record_data(record_type: RecordType | int, data: RecordData) -> RecordPayload[Any]:
    """Check ``data`` against the payload shape selected by ``record_type``.

    Args:
        record_type: Type tag of the record.
        data: Raw before/after snapshot.

    Returns:
        The parsed payload pair.

    Raises:
        UnknownRecordTypeError: If the tag has no payload model.
        LedgerValidationError: If either side does not match the shape, or if
            ``old`` is present for creation / missing for any other type.
    """
    try:
        record_type = RecordType(record_type)
    except ValueError:
        raise UnknownRecordTypeError(record_type) from None
    model = PAYLOAD_MODELS[record_type]

    if record_type is RecordType.CHARACTER_CREATED:
        if data.old is not None:
            raise LedgerValidationError(
                "Character creation records must not carry an old value",
                record_type=record_type.name,
            )
    elif data.old is None:
        raise LedgerValidationError(
            "Record is missing its old value",
            record_type=record_type.name,
        )

    try:
        old = model.model_validate(data.old) if data.old is not None else None
        new = model.model_validate(data.new)
    except ValidationError as exc:
        raise LedgerValidationError(
            "Record data does not match its type",
            record_type=record_type.name,
            errors=exc.errors(include_url=False, include_context=False),
        ) from exc
    return RecordPayload(old=old, new=new)


# ── Record names ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SkillName:
    category: str
    skill: str
    combat_category: str | None = None


def parse_skill_name(name: str) -> SkillName:
    """Split ``"body/athletics"`` or ``"combat/daggers (melee)"``."""
    match = _SKILL_NAME_RE.match(name)
    if match is None:
        raise LedgerValidationError("Malformed skill record name", name=name)
    return SkillName(match["category"], match["skill"], match["combat"])


def parse_combat_name(name: str) -> tuple[str, str]:
    """Split ``"melee/daggers"`` into combat category and skill name."""
    combat_category, sep, skill = name.partition("/")
    if not sep or not combat_category or not skill:
        raise LedgerValidationError("Malformed combat stats record name", name=name)
    return combat_category, skill


def validate_record(record: RecordDraft) -> RecordPayload[Any]:
    """Check that ``record`` is something the revert engine can undo.

    On top of the payload shape this enforces the record name format of skill
    and combat stat records, and the point pool snapshots that skill and
    attribute changes must carry.

    Raises:
        UnknownRecordTypeError: If the tag has no payload model.
        LedgerValidationError: If any check fails.
    """
    payload = validate_record_data(record.type, record.data)
    points = record.calculation_points

    match RecordType(record.type):
        case RecordType.SKILL_CHANGED:
            name = parse_skill_name(record.name)
            has_combat = payload.new.combat_stats is not None or (
                payload.old is not None and payload.old.combat_stats is not None
            )
            if has_combat and name.combat_category is None:
                raise LedgerValidationError(
                    "Combat skill record name lacks its combat category",
                    name=record.name,
                )
            if points.adventure_points is None:
                raise LedgerValidationError(
                    "Record is missing its adventure points snapshot",
                    record_type=record.type.name,
                )
        case RecordType.ATTRIBUTE_CHANGED:
            if points.attribute_points is None:
                raise LedgerValidationError(
                    "Record is missing its attribute points snapshot",
                    record_type=record.type.name,
                )
        case RecordType.COMBAT_STATS_CHANGED:
            parse_combat_name(record.name)
        case _:
            pass
    return payload
