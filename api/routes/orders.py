"""Order export endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from api.services.runtime import Runtime, get_runtime
from order_export.models import ExportOutcome, ExportResult


router = APIRouter()


class StatusChangeRequest(BaseModel):
    """Order status transition reported by the storefront."""
    old_status: Optional[str] = None
    new_status: str


class ExportResponse(BaseModel):
    """Outcome of an export trigger."""
    order_id: int
    exported: bool
    outcome: ExportOutcome
    document_id: Optional[str] = None
    message: Optional[str] = None


def _response(result: ExportResult) -> ExportResponse:
    return ExportResponse(
        order_id=result.order_id,
        exported=result.exported,
        outcome=result.outcome,
        document_id=result.document_id,
        message=result.message,
    )


@router.post("/{order_id}/export", response_model=ExportResponse)
async def export_order(order_id: int, runtime: Runtime = Depends(get_runtime)) -> ExportResponse:
    """Export an order to SoftOne unless it already carries a document id."""
    if runtime.storefront.orders.get(order_id) is None:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")

    result = await runtime.orders.export(order_id)
    return _response(result)


@router.post("/{order_id}/status-change", response_model=ExportResponse)
async def order_status_changed(
    order_id: int,
    request: StatusChangeRequest,
    runtime: Runtime = Depends(get_runtime),
) -> ExportResponse:
    """Export when the new status is one of the trigger statuses."""
    if runtime.storefront.orders.get(order_id) is None:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")

    result = await runtime.orders.handle_status_change(order_id, request.old_status, request.new_status)
    return _response(result)
