"""Item Import Package.

Resumable SoftOne → storefront catalogue import:
- ItemImportEngine: begin/run_batch state machine
- StaleItemHandler: post-full-import sweep of untouched products
- ItemSyncRunner: in-process full sync (scheduled runs)
"""

from item_import.engine import ItemImportEngine, ITEMS_SQL_NAME
from item_import.models import (
    BatchOwnershipError,
    BatchStateNotFoundError,
    ImportBatchResult,
    ImportBatchState,
    ImportPhase,
    ImportStats,
    NormalizedItem,
    RowImportError,
    RowOutcome,
)
from item_import.normalize import normalize_row
from item_import.runner import ItemSyncRunner, record_successful_run
from item_import.stale import META_LAST_SYNC, META_MTRL, StaleItemHandler
from item_import.state_store import BatchStateStore, LastRunStore

__all__ = [
    "ItemImportEngine",
    "ITEMS_SQL_NAME",
    "ItemSyncRunner",
    "record_successful_run",
    "StaleItemHandler",
    "BatchStateStore",
    "LastRunStore",
    "normalize_row",
    "META_MTRL",
    "META_LAST_SYNC",
    "BatchOwnershipError",
    "BatchStateNotFoundError",
    "ImportBatchResult",
    "ImportBatchState",
    "ImportPhase",
    "ImportStats",
    "NormalizedItem",
    "RowImportError",
    "RowOutcome",
]
