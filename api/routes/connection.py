"""SoftOne connection test endpoint."""

import time
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.services.runtime import Runtime, get_runtime
from connectors.softone.so_errors import SoftOneError


router = APIRouter()


class ConnectionTestResult(BaseModel):
    """Result of a connection test."""
    success: bool
    client_id: Optional[str] = None
    message: str
    latency_ms: Optional[float] = None
    details: Dict[str, Any] = {}


@router.post("/test", response_model=ConnectionTestResult)
async def test_connection(runtime: Runtime = Depends(get_runtime)) -> ConnectionTestResult:
    """Force a fresh SoftOne session and report the outcome."""
    start = time.perf_counter()
    try:
        client_id = await runtime.client.test_connection()
    except SoftOneError as e:
        return ConnectionTestResult(
            success=False,
            message=f"Connection error: {e}",
            latency_ms=(time.perf_counter() - start) * 1000,
            details={"error_type": type(e).__name__, **e.context},
        )

    return ConnectionTestResult(
        success=True,
        client_id=client_id,
        message="Connection successful",
        latency_ms=(time.perf_counter() - start) * 1000,
    )
