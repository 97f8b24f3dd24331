"""Item Import Data Models.

This module defines the models for the resumable item import:
- ImportStats: processed/created/updated/skipped counters
- ImportBatchState: everything a batch step needs, persisted between calls
- NormalizedItem: one ERP row in the form the import logic consumes
- ImportBatchResult: what a batch step returns to the caller
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ImportPhase(str, Enum):
    """Import state machine phase. No backward transitions."""
    UNINITIALIZED = "uninitialized"
    BATCH_IN_PROGRESS = "batch_in_progress"
    COMPLETE = "complete"


class RowOutcome(str, Enum):
    """How a single row was applied."""
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"


# =============================================================================
# Errors
# =============================================================================

class ItemImportError(Exception):
    """Base exception for item import errors."""
    pass


class RowImportError(ItemImportError):
    """A single row could not be applied. Always caught inside the batch."""

    def __init__(self, message: str, row: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.row = row or {}


class BatchOwnershipError(ItemImportError):
    """The caller does not own the batch state it presented."""
    pass


class BatchStateNotFoundError(ItemImportError):
    """No batch state for this process (unknown id or TTL expired)."""
    pass


# =============================================================================
# Models
# =============================================================================

class ImportStats(BaseModel):
    """Row counters. ``processed`` counts every iterated row."""
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0

    def record(self, outcome: RowOutcome) -> None:
        self.processed += 1
        if outcome == RowOutcome.CREATED:
            self.created += 1
        elif outcome == RowOutcome.UPDATED:
            self.updated += 1
        else:
            self.skipped += 1

    def add(self, other: "ImportStats") -> None:
        self.processed += other.processed
        self.created += other.created
        self.updated += other.updated
        self.skipped += other.skipped


class ImportBatchState(BaseModel):
    """Persisted state of one resumable import.

    Invariants:
        cursor <= total_rows once total_rows is known
        stats.processed == cursor
    """
    process_id: str = Field(..., description="Opaque id correlating batch steps")
    owner_id: str = Field(..., description="Identity allowed to drive this import")
    created_at: float = Field(..., description="Epoch seconds when the state was created")
    started_at: int = Field(..., description="Run timestamp used for last-sync and stale markers")
    force_full_import: bool = False
    force_taxonomy_refresh: bool = False
    delta_minutes: Optional[int] = Field(default=None, description="Delta window sent to the ERP, None for full")
    phase: ImportPhase = ImportPhase.BATCH_IN_PROGRESS
    cursor: int = 0
    total_rows: Optional[int] = None
    stats: ImportStats = Field(default_factory=ImportStats)
    rows: List[Dict[str, Any]] = Field(default_factory=list, description="Raw ERP rows, un-normalized")

    @property
    def is_full_import(self) -> bool:
        return self.delta_minutes is None

    @property
    def remaining(self) -> int:
        return max(0, (self.total_rows or 0) - self.cursor)


class NormalizedItem(BaseModel):
    """A catalogue row with snake_case keys and typed values."""
    mtrl: Optional[str] = None
    sku: Optional[str] = None
    barcode: Optional[str] = None
    code: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    stock_quantity: Optional[float] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    colour: Optional[str] = None
    size: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict, description="Normalized source row")

    @property
    def has_identity(self) -> bool:
        return bool(self.mtrl or self.sku or self.barcode or self.code)


class ImportBatchResult(BaseModel):
    """Result of one batch step."""
    state: ImportBatchState
    batch: ImportStats = Field(default_factory=ImportStats)
    complete: bool = False
    warnings: List[str] = Field(default_factory=list)
    stale_processed: int = 0
