"""Character history endpoints (append, page, revert, comment, verify)."""

from uuid import UUID

from fastapi import APIRouter, Query

from progression_server.api.models import CommentRequest, VerifyHistoryResponse
from progression_server.ledger import (
    CommentResult,
    HistoryPage,
    Record,
    RecordDraft,
    verify_history,
)
from progression_server.ledger.constants import MAX_HISTORY_BLOCK_NUMBER
from progression_server.services import LedgerServices

BLOCK_NUMBER_QUERY = Query(
    default=None,
    alias="block-number",
    ge=1,
    le=MAX_HISTORY_BLOCK_NUMBER,
    description="Block to read; defaults to the latest block.",
)


def router(services: LedgerServices) -> APIRouter:
    """Build the history router around the ledger services."""
    api = APIRouter(prefix="/characters/{character_id}/history", tags=["history"])

    @api.post("", response_model=Record)
    def append_record(character_id: UUID, draft: RecordDraft):
        """
        Record a character mutation.

        Re-submitting the same mutation as the latest record returns that
        record without storing a new one.
        """
        return services.writer.append(str(character_id), draft)

    @api.get("", response_model=HistoryPage)
    def get_history(character_id: UUID, block_number: int | None = BLOCK_NUMBER_QUERY):
        """Get one block of history plus a pointer to the previous block."""
        return services.reader.get_page(str(character_id), block_number)

    @api.get("/verify", response_model=VerifyHistoryResponse)
    def verify(character_id: UUID):
        """Check chain links, numbering and block bounds of a character's history."""
        result = verify_history(services.store, str(character_id))
        return VerifyHistoryResponse(
            character_id=str(character_id),
            status=result.status,
            block_count=result.block_count,
            record_count=result.record_count,
            last_record_number=result.last_record_number,
            error_detail=result.error_detail,
        )

    @api.delete("/{record_id}", response_model=Record)
    def revert_record(character_id: UUID, record_id: UUID):
        """
        Revert the latest record.

        Writes the record's old values back to the character sheet and removes
        the record. Only the latest record can be reverted; any other id is
        answered with 404.
        """
        return services.reverter.revert(str(character_id), str(record_id))

    @api.patch("/{record_id}", response_model=CommentResult)
    def set_comment(
        character_id: UUID,
        record_id: UUID,
        request: CommentRequest,
        block_number: int | None = BLOCK_NUMBER_QUERY,
    ):
        """Set or clear the comment of a record in the given (or latest) block."""
        return services.annotations.set_comment(
            str(character_id),
            str(record_id),
            request.comment,
            block_number=block_number,
        )

    return api
