"""Security module - encryption and durable session metadata."""

from core.security.encryption import (
    SecretEncryption,
    EncryptedSecret,
    generate_encryption_key,
)
from core.security.session_store import (
    SessionMetaStore,
    StoredSession,
    InMemorySessionMetaStore,
    FileSessionMetaStore,
)

__all__ = [
    "SecretEncryption",
    "EncryptedSecret",
    "generate_encryption_key",
    "SessionMetaStore",
    "StoredSession",
    "InMemorySessionMetaStore",
    "FileSessionMetaStore",
]
