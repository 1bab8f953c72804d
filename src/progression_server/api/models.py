"""
Pydantic models for API requests and responses.

Ledger objects (``RecordDraft``, ``Record``, ``HistoryPage``,
``CommentResult``) are served as-is from ``progression_server.ledger``; this
module only holds the request and response shapes that exist purely for HTTP.
All bodies use camelCase keys.
"""

from typing import Any, Literal
from uuid import UUID

from pydantic import Field

from progression_server.ledger.constants import MAX_STRING_LENGTH_VERY_LONG
from progression_server.ledger.records import LedgerModel

# ============================================================================
# REQUEST MODELS (Client → Server)
# ============================================================================


class CommentRequest(LedgerModel):
    """
    New comment for a history record.

    Attributes:
        comment: Comment text; ``null`` clears the comment.
    """

    comment: str | None = Field(default=None, max_length=MAX_STRING_LENGTH_VERY_LONG)


class CreateCharacterRequest(LedgerModel):
    """
    Register a character sheet document.

    Attributes:
        sheet: Full character sheet (generalInformation, attributes, skills...).
        user_id: Owning user, if known.
    """

    sheet: dict[str, Any]
    user_id: str | None = None


class CloneCharacterRequest(LedgerModel):
    """
    Copy a character and its history.

    Attributes:
        target_character_id: Id of the new character.
        user_id: Owner of the copy; defaults to the source owner.
    """

    target_character_id: UUID
    user_id: str | None = None


# ============================================================================
# RESPONSE MODELS (Server → Client)
# ============================================================================


class CharacterResponse(LedgerModel):
    character_id: str
    user_id: str | None = None
    sheet: dict[str, Any]


class CloneCharacterResponse(LedgerModel):
    character_id: str
    target_character_id: str
    blocks_copied: int
    sheet_copied: bool


class DeleteCharacterResponse(LedgerModel):
    character_id: str
    blocks_deleted: int
    sheet_deleted: bool


class VerifyHistoryResponse(LedgerModel):
    """
    Structural check of a character's history.

    Attributes:
        status: ``ok``, ``empty`` or ``corrupt``.
        block_count: Blocks inspected.
        record_count: Records inspected.
        last_record_number: Number of the tail record.
        error_detail: First problem found, when corrupt.
    """

    character_id: str
    status: Literal["ok", "empty", "corrupt"]
    block_count: int
    record_count: int
    last_record_number: int | None = None
    error_detail: str | None = None
