"""Ledger package: chained, size-bounded character history.

Every mutation of a character is recorded as a :class:`Record` inside a
:class:`HistoryBlock`. Blocks are created in order and linked backwards, so
the full history of a character is the concatenation of its blocks by
``blockNumber``.

Public surface
--------------
- :class:`LedgerWriter`      append a record (idempotent against the latest one).
- :class:`LedgerReader`      page through history one block at a time.
- :class:`RevertEngine`      undo the latest record.
- :class:`AnnotationService` set the comment of a record.
- :func:`clone_history`, :func:`delete_history`, :func:`verify_history`
  whole-history maintenance.

Usage example
-------------
::

    from progression_server.db.history_repo import HistoryBlockStore, StoreSettings
    from progression_server.ledger import LedgerWriter, RecordDraft

    store = HistoryBlockStore(StoreSettings.from_config())
    record = LedgerWriter(store).append(character_id, RecordDraft.model_validate(body))
"""

from progression_server.ledger.annotations import AnnotationService, CommentResult
from progression_server.ledger.maintenance import (
    HistoryVerifyResult,
    clone_history,
    delete_history,
    verify_history,
)
from progression_server.ledger.reader import HistoryPage, LedgerReader
from progression_server.ledger.records import (
    HistoryBlock,
    LearningMethod,
    Record,
    RecordDraft,
    RecordType,
)
from progression_server.ledger.revert import RevertEngine, SheetWriter
from progression_server.ledger.writer import LedgerWriter

__all__ = [
    "AnnotationService",
    "CommentResult",
    "HistoryBlock",
    "HistoryPage",
    "HistoryVerifyResult",
    "LearningMethod",
    "LedgerReader",
    "LedgerWriter",
    "Record",
    "RecordDraft",
    "RecordType",
    "RevertEngine",
    "SheetWriter",
    "clone_history",
    "delete_history",
    "verify_history",
]
