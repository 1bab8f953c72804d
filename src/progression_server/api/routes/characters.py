"""Character sheet endpoints (create, read, clone, delete)."""

from uuid import UUID

from fastapi import APIRouter

from progression_server.api.models import (
    CharacterResponse,
    CloneCharacterRequest,
    CloneCharacterResponse,
    CreateCharacterRequest,
    DeleteCharacterResponse,
)
from progression_server.db.errors import CharacterNotFoundError, DatabaseOperationContext
from progression_server.ledger.errors import CharacterExistsError
from progression_server.services import LedgerServices


def router(services: LedgerServices) -> APIRouter:
    """Build the character router around the ledger services."""
    api = APIRouter(prefix="/characters", tags=["characters"])

    @api.post("/{character_id}", response_model=CharacterResponse, status_code=201)
    def create_character(character_id: UUID, request: CreateCharacterRequest):
        """Register the sheet document of a new character."""
        created = services.sheets.create_character(
            str(character_id), request.sheet, user_id=request.user_id
        )
        if not created:
            raise CharacterExistsError(str(character_id))
        return CharacterResponse(
            character_id=str(character_id), user_id=request.user_id, sheet=request.sheet
        )

    @api.get("/{character_id}", response_model=CharacterResponse)
    def get_character(character_id: UUID):
        """Get the current sheet of a character."""
        sheet = services.sheets.get_sheet(str(character_id))
        if sheet is None:
            raise CharacterNotFoundError(
                context=DatabaseOperationContext(
                    operation="characters.get_sheet", details=f"character_id={character_id}"
                )
            )
        return CharacterResponse(
            character_id=str(character_id),
            user_id=services.sheets.get_owner(str(character_id)),
            sheet=sheet,
        )

    @api.post("/{character_id}/clone", response_model=CloneCharacterResponse, status_code=201)
    def clone_character(character_id: UUID, request: CloneCharacterRequest):
        """Copy a character's sheet and history under a new id."""
        outcome = services.clone_character(
            str(character_id), str(request.target_character_id), user_id=request.user_id
        )
        return CloneCharacterResponse(
            character_id=str(character_id),
            target_character_id=str(request.target_character_id),
            blocks_copied=outcome.blocks_copied,
            sheet_copied=outcome.sheet_copied,
        )

    @api.delete("/{character_id}", response_model=DeleteCharacterResponse)
    def delete_character(character_id: UUID):
        """Delete a character's sheet and its whole history."""
        outcome = services.delete_character(str(character_id))
        return DeleteCharacterResponse(
            character_id=str(character_id),
            blocks_deleted=outcome.blocks_deleted,
            sheet_deleted=outcome.sheet_deleted,
        )

    return api
