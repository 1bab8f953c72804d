"""Record and block envelope models.

Overview
--------
A ``Record`` is one mutation event of a character; a ``HistoryBlock`` is the
bounded, ordered unit of storage holding records for one character. Blocks
link backwards through ``previousBlockId`` so the history can be paged from
newest to oldest.

All models serialise with camelCase keys (``blockNumber``,
``learningMethod``...) and reject unknown fields. The ``data`` payload is kept
as plain mappings at this level; its per-type shape is checked by
``progression_server.ledger.payloads``.

Size accounting
---------------
Block size limits are measured on the compact UTF-8 JSON encoding of the wire
form (``serialized_size``), which is also what the store persists.
"""

from __future__ import annotations

import json
import uuid
from datetime import UTC, datetime
from enum import IntEnum, StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_serializer
from pydantic.alias_generators import to_camel

from progression_server.ledger.constants import (
    MAX_HISTORY_BLOCK_NUMBER,
    MAX_HISTORY_RECORDS,
    MAX_POINTS,
    MAX_RECORDS_PER_BLOCK,
    MAX_STRING_LENGTH_DEFAULT,
    MAX_STRING_LENGTH_VERY_LONG,
)

UUID_PATTERN = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"

_FINGERPRINT_FIELDS = ("type", "name", "data", "learningMethod", "calculationPoints")


class RecordType(IntEnum):
    """Kind of mutation a record describes. Values are part of the wire format."""

    CHARACTER_CREATED = 0
    LEVEL_CHANGED = 1
    CALCULATION_POINTS_CHANGED = 2
    BASE_VALUE_CHANGED = 3
    SPECIAL_ABILITIES_CHANGED = 4
    ATTRIBUTE_CHANGED = 5
    SKILL_CHANGED = 6
    COMBAT_STATS_CHANGED = 7


class LearningMethod(StrEnum):
    FREE = "FREE"
    LOW_PRICED = "LOW_PRICED"
    NORMAL = "NORMAL"
    EXPENSIVE = "EXPENSIVE"


class LedgerModel(BaseModel):
    """Base for every wire model: camelCase aliases, closed shape."""

    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON-compatible camelCase representation."""
        return self.model_dump(mode="json", by_alias=True)


# ── Points ────────────────────────────────────────────────────────────────────


class CalculationPoints(LedgerModel):
    """A spendable point pool (adventure points or attribute points)."""

    start: int = Field(ge=0, le=MAX_POINTS)
    available: int = Field(ge=0, le=MAX_POINTS)
    total: int = Field(ge=0, le=MAX_POINTS)


class PointsChange(LedgerModel):
    old: CalculationPoints
    new: CalculationPoints


class RecordCalculationPoints(LedgerModel):
    """Point pool snapshots touched by a mutation; ``None`` when untouched."""

    adventure_points: PointsChange | None = None
    attribute_points: PointsChange | None = None


# ── Records ───────────────────────────────────────────────────────────────────


class RecordData(LedgerModel):
    """Before/after snapshot of the mutated subject.

    ``old`` is absent only for character creation; ``None`` means absent and
    is omitted from the serialised form.
    """

    old: dict[str, Any] | None = None
    new: dict[str, Any]

    @field_validator("old", "new")
    @classmethod
    def _check_key_lengths(cls, value: dict[str, Any] | None) -> dict[str, Any] | None:
        if value is None:
            return value
        for key in value:
            if len(key) > MAX_STRING_LENGTH_DEFAULT:
                raise ValueError(f"data key longer than {MAX_STRING_LENGTH_DEFAULT} characters")
        return value

    @model_serializer(mode="wrap")
    def _omit_absent_old(self, handler: Any) -> dict[str, Any]:
        out = handler(self)
        if self.old is None:
            out.pop("old", None)
        return out


class RecordDraft(LedgerModel):
    """A record as submitted by a mutation handler, before the writer stamps it.

    Attributes:
        type: Kind of mutation.
        name: Subject of the mutation, e.g. ``"strength"``,
            ``"body/athletics"`` or ``"combat/daggers (melee)"``.
        data: Before/after snapshot.
        learning_method: Cost tier applied, if any.
        calculation_points: Point pool snapshots, if pools were touched.
        comment: Free-form annotation.
    """

    type: RecordType
    name: str = Field(min_length=1, max_length=MAX_STRING_LENGTH_DEFAULT)
    data: RecordData
    learning_method: LearningMethod | None = None
    calculation_points: RecordCalculationPoints = Field(default_factory=RecordCalculationPoints)
    comment: str | None = Field(default=None, max_length=MAX_STRING_LENGTH_VERY_LONG)

    def fingerprint(self) -> str:
        """Canonical encoding of the semantic content of the mutation.

        Two records with equal fingerprints describe the same mutation.
        ``comment`` and the writer-assigned fields are not part of it.
        """
        wire = self.to_wire()
        return canonical_json({key: wire[key] for key in _FINGERPRINT_FIELDS})


class Record(RecordDraft):
    """A stored ledger entry.

    Attributes:
        number: Per-character sequence number, contiguous across blocks.
        id: UUID assigned at append time; never changes.
        timestamp: UTC instant assigned at append time.
    """

    number: int = Field(ge=1, le=MAX_HISTORY_RECORDS)
    id: str = Field(pattern=UUID_PATTERN)
    timestamp: datetime

    @classmethod
    def from_draft(cls, draft: RecordDraft, *, number: int) -> Record:
        """Stamp a draft with its sequence number, a fresh id and the current time."""
        return cls(
            **draft.model_dump(),
            number=number,
            id=new_id(),
            timestamp=utc_now(),
        )


class HistoryBlock(LedgerModel):
    """One storage unit of a character's history.

    Attributes:
        character_id: Owning character.
        block_number: Position in the chain, starting at 1.
        block_id: UUID of this block.
        previous_block_id: ``block_id`` of block ``block_number - 1``; ``None``
            for the first block.
        changes: Records in append order.
    """

    character_id: str
    block_number: int = Field(ge=1, le=MAX_HISTORY_BLOCK_NUMBER)
    block_id: str
    previous_block_id: str | None = None
    changes: list[Record] = Field(default_factory=list, max_length=MAX_RECORDS_PER_BLOCK)

    @property
    def latest(self) -> Record | None:
        return self.changes[-1] if self.changes else None

    def with_record(self, record: Record) -> HistoryBlock:
        """Return a copy with ``record`` appended (used for size checks)."""
        return self.model_copy(update={"changes": [*self.changes, record]})


# ── Helpers ───────────────────────────────────────────────────────────────────


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(UTC)


def canonical_json(value: Any) -> str:
    """Deterministic JSON: sorted keys, compact separators, UTF-8 text."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compact_json(value: Any) -> str:
    """Compact JSON preserving key order, as persisted by the store."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def serialized_size(value: BaseModel | dict[str, Any] | list[Any]) -> int:
    """Size in bytes of the compact UTF-8 JSON encoding of ``value``."""
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json", by_alias=True)
    return len(compact_json(value).encode("utf-8"))
