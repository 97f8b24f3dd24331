"""
Observability Module for the SoftOne sync

Provides:
- Structured logging with correlation IDs
- Metrics collection (dispatch, item import, order export)
"""

from core.observability.metrics import (
    SyncMetrics,
    get_metrics,
)

from core.observability.logging import (
    get_logger,
    configure_logging,
    CorrelationContext,
    with_correlation,
    log_sync_event,
)

__all__ = [
    # Metrics
    "SyncMetrics",
    "get_metrics",
    # Logging
    "get_logger",
    "configure_logging",
    "CorrelationContext",
    "with_correlation",
    "log_sync_event",
]
