"""Order Export Package.

Sends qualifying storefront orders to SoftOne as SALDOC documents:
- OrderExportEngine: customer resolution, payload build, retrying transmit
- CustomerSync: registered customer -> SoftOne TRDR
"""

from order_export.customers import CustomerSync, customer_code, guest_customer_code
from order_export.engine import OrderExportEngine, retry_delay
from order_export.models import (
    META_DOCUMENT_ID,
    META_TRDR,
    TRIGGER_STATUSES,
    ExportError,
    ExportOutcome,
    ExportResult,
    OrderDocumentPayload,
)

__all__ = [
    "OrderExportEngine",
    "retry_delay",
    "CustomerSync",
    "customer_code",
    "guest_customer_code",
    "ExportError",
    "ExportOutcome",
    "ExportResult",
    "OrderDocumentPayload",
    "META_DOCUMENT_ID",
    "META_TRDR",
    "TRIGGER_STATUSES",
]
