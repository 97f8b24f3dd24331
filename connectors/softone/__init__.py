"""SoftOne Connector Package.

Session management and request dispatch for the SoftOne ERP web-services
endpoint (one JSON POST URL multiplexing many named services).
"""

from connectors.softone.so_auth import (
    CLIENT_ID_CACHE_KEY,
    CLIENT_META_KEY,
    SessionToken,
    SoftOneSessionManager,
    resolve_ttl,
)
from connectors.softone.so_client import SoftOneApiClient, is_authentication_error
from connectors.softone.so_config import SoftOneConfig, load_softone_config
from connectors.softone.so_errors import (
    ApiErrorKind,
    SoftOneApiError,
    SoftOneAuthError,
    SoftOneConfigError,
    SoftOneError,
    redact,
)
from connectors.softone.so_models import (
    AuthenticateResponse,
    LoginResponse,
    ServiceResponse,
    SetDataResponse,
    SqlDataResponse,
)

__all__ = [
    # Client
    "SoftOneApiClient",
    "is_authentication_error",
    # Session
    "SoftOneSessionManager",
    "SessionToken",
    "CLIENT_ID_CACHE_KEY",
    "CLIENT_META_KEY",
    "resolve_ttl",
    # Config
    "SoftOneConfig",
    "load_softone_config",
    # Errors
    "SoftOneError",
    "SoftOneConfigError",
    "SoftOneAuthError",
    "SoftOneApiError",
    "ApiErrorKind",
    "redact",
    # Models
    "ServiceResponse",
    "LoginResponse",
    "AuthenticateResponse",
    "SqlDataResponse",
    "SetDataResponse",
]
