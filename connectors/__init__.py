"""ERP Connectors.

This package contains the ERP-side integrations. Each connector handles:
- ERP-specific authentication and session caching
- Request dispatch and error classification
- Typed views over ERP responses

The sync engines (item_import/, order_export/) depend only on the client
operations exposed here, never on raw HTTP.
"""

from connectors.softone import (
    SoftOneApiClient,
    SoftOneSessionManager,
    SoftOneConfig,
    load_softone_config,
    SoftOneError,
    SoftOneConfigError,
    SoftOneAuthError,
    SoftOneApiError,
    ApiErrorKind,
)

__all__ = [
    "SoftOneApiClient",
    "SoftOneSessionManager",
    "SoftOneConfig",
    "load_softone_config",
    "SoftOneError",
    "SoftOneConfigError",
    "SoftOneAuthError",
    "SoftOneApiError",
    "ApiErrorKind",
]
