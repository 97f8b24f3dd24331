"""Durable session metadata storage backends.

Keeps the fallback copy of the SoftOne session (client ID plus its
cached_at/ttl/expires_at bookkeeping) so that losing the fast TTL cache
does not force a new login:
- InMemorySessionMetaStore: For development/testing
- FileSessionMetaStore: For single-server deployments, optionally encrypted
"""

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from core.security.encryption import EncryptedSecret, SecretEncryption

logger = logging.getLogger(__name__)


@dataclass
class StoredSession:
    """Session metadata record.

    Timestamps are epoch seconds. ``expires_at`` is always ``cached_at + ttl``.
    """
    client_id: str
    cached_at: float
    ttl: int
    expires_at: float

    @classmethod
    def create(cls, client_id: str, cached_at: float, ttl: int) -> "StoredSession":
        return cls(client_id=client_id, cached_at=cached_at, ttl=ttl, expires_at=cached_at + ttl)

    def remaining(self, now: float) -> float:
        """Seconds of lifetime left at ``now`` (never negative)."""
        return max(0.0, self.expires_at - now)

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "client_id": self.client_id,
            "cached_at": self.cached_at,
            "ttl": self.ttl,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StoredSession":
        return cls(
            client_id=str(data["client_id"]),
            cached_at=float(data["cached_at"]),
            ttl=int(data["ttl"]),
            expires_at=float(data["expires_at"]),
        )


class SessionMetaStore(ABC):
    """Abstract base class for durable session metadata."""

    @abstractmethod
    async def store(self, key: str, session: StoredSession) -> None:
        """Persist a session record under ``key``."""
        pass

    @abstractmethod
    async def get(self, key: str) -> Optional[StoredSession]:
        """Retrieve a session record."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a session record."""
        pass


class InMemorySessionMetaStore(SessionMetaStore):
    """In-memory session metadata for development/testing.

    WARNING: Records are lost on restart. Use only for development.
    """

    def __init__(self):
        self._sessions: Dict[str, StoredSession] = {}
        self._lock = threading.Lock()

    async def store(self, key: str, session: StoredSession) -> None:
        with self._lock:
            self._sessions[key] = session

    async def get(self, key: str) -> Optional[StoredSession]:
        with self._lock:
            return self._sessions.get(key)

    async def delete(self, key: str) -> bool:
        with self._lock:
            return self._sessions.pop(key, None) is not None


class FileSessionMetaStore(SessionMetaStore):
    """File-based session metadata, one JSON file per key.

    When an encryption helper is supplied the client ID is stored encrypted,
    with the key bound as additional authenticated data.

    Directory structure:
        {base_path}/
            {key}.json
    """

    def __init__(self, base_path: str = ".sessions", encryption: Optional[SecretEncryption] = None):
        self._base_path = Path(base_path)
        self._base_path.mkdir(parents=True, exist_ok=True)
        self._encryption = encryption
        self._lock = threading.Lock()

        # Restrictive permissions on the session directory
        try:
            os.chmod(self._base_path, 0o700)
        except OSError:
            pass  # Windows doesn't support chmod the same way

    def _path(self, key: str) -> Path:
        safe_key = "".join(c if c.isalnum() or c in "-_" else "_" for c in key)
        return self._base_path / f"{safe_key}.json"

    async def store(self, key: str, session: StoredSession) -> None:
        data = session.to_dict()
        if self._encryption:
            secret = self._encryption.encrypt({"client_id": session.client_id}, scope=key)
            data["client_id"] = None
            data["encrypted_client_id"] = secret.to_dict()

        path = self._path(key)
        with self._lock:
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2)
            try:
                os.chmod(path, 0o600)
            except OSError:
                pass

    async def get(self, key: str) -> Optional[StoredSession]:
        path = self._path(key)
        if not path.exists():
            return None

        with self._lock:
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
            except json.JSONDecodeError as e:
                logger.warning(f"Unreadable session metadata file {path.name}: {e}")
                return None

        if data.get("encrypted_client_id"):
            if not self._encryption:
                logger.warning(f"Session metadata {path.name} is encrypted but no key is configured")
                return None
            try:
                secret = EncryptedSecret.from_dict(data["encrypted_client_id"])
                data["client_id"] = self._encryption.decrypt(secret)["client_id"]
            except (KeyError, ValueError) as e:
                logger.warning(f"Could not decrypt session metadata {path.name}: {e}")
                return None

        try:
            return StoredSession.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Invalid session metadata in {path.name}: {e}")
            return None

    async def delete(self, key: str) -> bool:
        path = self._path(key)
        with self._lock:
            if path.exists():
                path.unlink()
                return True
            return False
