"""Item import endpoints.

An import is driven by the caller one batch at a time:

    POST /imports                          -> process_id, total_rows
    POST /imports/{process_id}/batches     -> repeat until complete

Every call carries the ``X-Owner-Id`` header; batch state is only visible
to the owner that started the import.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from api.services.runtime import Runtime, get_runtime
from connectors.softone.so_errors import SoftOneConfigError, SoftOneError
from item_import.models import BatchOwnershipError, BatchStateNotFoundError, ImportPhase, ImportStats
from item_import.runner import record_successful_run


router = APIRouter()


class BeginImportRequest(BaseModel):
    """Request to start an import."""
    force_full_import: Optional[bool] = Field(
        default=None,
        description="Ignore the last successful run and pull the whole catalogue",
    )
    force_taxonomy_refresh: bool = False


class ImportStateSummary(BaseModel):
    """Public view of a batch state (raw rows are never returned)."""
    process_id: str
    phase: ImportPhase
    total_rows: int
    cursor: int
    remaining: int
    full_import: bool
    delta_minutes: Optional[int] = None
    started_at: int


class RunBatchRequest(BaseModel):
    """Request to process the next batch."""
    batch_size: Optional[int] = Field(default=None, ge=1, le=500)


class BatchResultResponse(BaseModel):
    """Outcome of one batch step."""
    process_id: str
    complete: bool
    cursor: int
    total_rows: int
    batch: ImportStats
    totals: ImportStats
    warnings: List[str] = []
    stale_processed: int = 0


def _summary(state) -> ImportStateSummary:
    return ImportStateSummary(
        process_id=state.process_id,
        phase=state.phase,
        total_rows=state.total_rows or 0,
        cursor=state.cursor,
        remaining=state.remaining,
        full_import=state.is_full_import,
        delta_minutes=state.delta_minutes,
        started_at=state.started_at,
    )


@router.post("", response_model=ImportStateSummary, status_code=201)
async def begin_import(
    request: BeginImportRequest,
    x_owner_id: str = Header(..., min_length=1),
    runtime: Runtime = Depends(get_runtime),
) -> ImportStateSummary:
    """Fetch catalogue rows from SoftOne and open a resumable import."""
    try:
        state = await runtime.imports.begin(
            x_owner_id,
            force_full_import=request.force_full_import,
            force_taxonomy_refresh=request.force_taxonomy_refresh,
        )
    except SoftOneConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SoftOneError as e:
        raise HTTPException(status_code=502, detail=f"SoftOne request failed: {e}")

    return _summary(state)


@router.post("/{process_id}/batches", response_model=BatchResultResponse)
async def run_import_batch(
    process_id: str,
    request: RunBatchRequest,
    x_owner_id: str = Header(..., min_length=1),
    runtime: Runtime = Depends(get_runtime),
) -> BatchResultResponse:
    """Apply the next batch of rows for an import this owner started."""
    state = runtime.imports.state_store.load(x_owner_id, process_id)
    if state is None:
        owner = runtime.imports.state_store.owner_of(process_id)
        if owner is not None and owner != x_owner_id:
            raise HTTPException(status_code=403, detail="Import belongs to a different owner")
        raise HTTPException(status_code=404, detail=f"No import in progress for process {process_id}")

    try:
        result = await run_in_threadpool(
            runtime.imports.run_batch, state, x_owner_id, request.batch_size or runtime.batch_size
        )
    except BatchOwnershipError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except BatchStateNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    record_successful_run(runtime.imports, result)

    return BatchResultResponse(
        process_id=result.state.process_id,
        complete=result.complete,
        cursor=result.state.cursor,
        total_rows=result.state.total_rows or 0,
        batch=result.batch,
        totals=result.state.stats,
        warnings=result.warnings,
        stale_processed=result.stale_processed,
    )
