"""Wiring of the ledger components around one database.

``LedgerServices`` plays the role the game engine plays for a MUD server: it
is built once at startup, handed to every router factory, and owns the
store-backed components. Tests build their own instance against a temporary
database.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from progression_server.db.characters_repo import CharacterSheetStore
from progression_server.db.history_repo import HistoryBlockStore, StoreSettings
from progression_server.ledger import (
    AnnotationService,
    LedgerReader,
    LedgerWriter,
    RevertEngine,
    clone_history,
    delete_history,
)
from progression_server.ledger.errors import CharacterExistsError, HistoryExistsError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CloneOutcome:
    blocks_copied: int
    sheet_copied: bool


@dataclass(frozen=True)
class DeleteOutcome:
    blocks_deleted: int
    sheet_deleted: bool


class LedgerServices:
    """Ledger writer, reader, revert engine and annotation service sharing one store.

    Args:
        settings: Block store settings.
        revert_max_workers: Thread pool size of the revert engine.
    """

    def __init__(self, settings: StoreSettings, *, revert_max_workers: int = 4) -> None:
        self.settings = settings
        self.store = HistoryBlockStore(settings)
        self.sheets = CharacterSheetStore(settings.db_path)
        self.writer = LedgerWriter(self.store)
        self.reader = LedgerReader(self.store)
        self.reverter = RevertEngine(self.store, self.sheets, max_workers=revert_max_workers)
        self.annotations = AnnotationService(self.store)

    @classmethod
    def from_config(cls, cfg: Any = None) -> LedgerServices:
        if cfg is None:
            from progression_server.config import config as cfg
        return cls(
            StoreSettings.from_config(cfg),
            revert_max_workers=cfg.history.revert_max_workers,
        )

    def clone_character(
        self,
        source_id: str,
        target_id: str,
        *,
        user_id: str | None = None,
    ) -> CloneOutcome:
        """Copy the sheet (when there is one) and the history of a character.

        Raises:
            CharacterExistsError: The target already has a sheet.
            HistoryExistsError: The target already has history.
        """
        if self.sheets.get_sheet(target_id) is not None:
            raise CharacterExistsError(target_id)
        if self.store.get_latest_block(target_id) is not None:
            raise HistoryExistsError(target_id)

        sheet_copied = False
        sheet = self.sheets.get_sheet(source_id)
        if sheet is not None:
            owner = user_id if user_id is not None else self.sheets.get_owner(source_id)
            sheet_copied = self.sheets.create_character(target_id, sheet, user_id=owner)
            if not sheet_copied:
                raise CharacterExistsError(target_id)

        blocks = 0
        if self.store.get_latest_block(source_id) is not None:
            blocks = clone_history(self.store, source_id, target_id)
        logger.info("Cloned character %s to %s", source_id, target_id)
        return CloneOutcome(blocks_copied=blocks, sheet_copied=sheet_copied)

    def delete_character(self, character_id: str) -> DeleteOutcome:
        """Remove the sheet and every history block of a character."""
        blocks = delete_history(self.store, character_id)
        sheet_deleted = self.sheets.delete_character(character_id)
        return DeleteOutcome(blocks_deleted=blocks, sheet_deleted=sheet_deleted)
