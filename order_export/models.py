"""Order Export Data Models.

- ExportError: customer resolution or payload construction aborted the export
- OrderDocumentPayload: the SALDOC document sent to SoftOne
- ExportResult: what one export trigger produced
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


META_DOCUMENT_ID = "_softone_document_id"
META_TRDR = "_softone_trdr"

TRIGGER_STATUSES = ("processing", "completed")

CUSTOMER_CODE_PREFIX = "WEB"
SALES_DOCUMENT_OBJECT = "SALDOC"
CUSTOMER_OBJECT = "CUSTOMER"


class ExportError(Exception):
    """Order export aborted before or during transmission."""

    def __init__(self, message: str, order_id: Optional[int] = None):
        super().__init__(message)
        self.order_id = order_id


class ExportOutcome(str, Enum):
    """How one export trigger ended."""
    EXPORTED = "exported"
    ALREADY_EXPORTED = "already_exported"
    ABORTED = "aborted"
    FAILED = "failed"
    IGNORED = "ignored"


class OrderDocumentPayload(BaseModel):
    """SALDOC payload: one header, one or more item lines, optional MTRDOC."""
    header: Dict[str, Any] = Field(default_factory=dict)
    lines: List[Dict[str, Any]] = Field(default_factory=list)
    mtrdoc: Optional[Dict[str, Any]] = None

    def is_complete(self) -> bool:
        return bool(self.header) and bool(self.lines)

    def to_service_data(self) -> Dict[str, Any]:
        """Body of the ``setData`` ``data`` field."""
        data: Dict[str, Any] = {
            "SALDOC": [dict(self.header)],
            "ITELINES": [dict(line) for line in self.lines],
        }
        if self.mtrdoc:
            data["MTRDOC"] = [dict(self.mtrdoc)]
        return data


class ExportResult(BaseModel):
    """Result of one export trigger."""
    order_id: int
    outcome: ExportOutcome
    document_id: Optional[str] = None
    attempts: int = 0
    message: Optional[str] = None

    @property
    def exported(self) -> bool:
        return self.outcome in (ExportOutcome.EXPORTED, ExportOutcome.ALREADY_EXPORTED)
