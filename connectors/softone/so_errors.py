"""SoftOne connector errors.

Every error carries a ``context`` dict with secrets already redacted so the
caller can log it or show it to an operator without leaking credentials.
"""

from enum import Enum
from typing import Any, Dict, Optional


REDACTED = "***"
SENSITIVE_KEYS = frozenset({"password", "pass", "clientid", "client_id", "username"})


def redact(value: Any) -> Any:
    """Return a copy of ``value`` with sensitive keys masked (recursively)."""
    if isinstance(value, dict):
        return {
            k: REDACTED if isinstance(k, str) and k.lower() in SENSITIVE_KEYS else redact(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [redact(v) for v in value]
    return value


class SoftOneError(Exception):
    """Base exception for SoftOne connector errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = redact(context or {})


class SoftOneConfigError(SoftOneError):
    """Missing endpoint, credentials, or service name."""
    pass


class SoftOneAuthError(SoftOneError):
    """Login/authenticate did not yield a usable client ID."""
    pass


class ApiErrorKind(str, Enum):
    """Dispatch failure category."""
    TRANSPORT = "transport"
    HTTP_STATUS = "http_status"
    DECODE = "decode"
    BUSINESS = "business"


class SoftOneApiError(SoftOneError):
    """A dispatched request failed."""

    def __init__(
        self,
        message: str,
        kind: ApiErrorKind,
        status_code: int = 0,
        response_body: str = "",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.kind = kind
        self.status_code = status_code
        self.response_body = response_body
