"""Secret encryption using AES-GCM.

Provides encryption at rest for the SoftOne client ID kept in the durable
session metadata. Uses AES-256-GCM for authenticated encryption.
"""

import base64
import json
import os
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict

from cryptography.hazmat.primitives.ciphers.aead import AESGCM


def generate_encryption_key() -> str:
    """Generate a new 256-bit encryption key.

    Returns:
        Base64-encoded 32-byte key suitable for AES-256
    """
    key = secrets.token_bytes(32)
    return base64.b64encode(key).decode('utf-8')


@dataclass
class EncryptedSecret:
    """Encrypted secret with metadata."""
    ciphertext: str  # Base64-encoded, GCM tag appended
    nonce: str       # Base64-encoded 96-bit nonce
    created_at: str  # ISO timestamp
    scope: str       # Bound as AAD, e.g. the session key
    key_version: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ciphertext": self.ciphertext,
            "nonce": self.nonce,
            "created_at": self.created_at,
            "scope": self.scope,
            "key_version": self.key_version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EncryptedSecret":
        return cls(
            ciphertext=data["ciphertext"],
            nonce=data["nonce"],
            created_at=data["created_at"],
            scope=data["scope"],
            key_version=data.get("key_version", 1),
        )


class SecretEncryption:
    """AES-256-GCM encryption for session secrets.

    Usage:
        key = generate_encryption_key()
        enc = SecretEncryption(key)
        encrypted = enc.encrypt({"client_id": "..."}, scope="softone_client_meta")
        data = enc.decrypt(encrypted)
    """

    def __init__(self, encryption_key: str):
        """Initialize with base64-encoded encryption key.

        Args:
            encryption_key: Base64-encoded 32-byte key (from generate_encryption_key())

        Raises:
            ValueError: If the key is not valid base64 or not 32 bytes
        """
        try:
            self._key = base64.b64decode(encryption_key)
        except (ValueError, TypeError) as e:
            raise ValueError(f"Invalid encryption key: {e}")
        if len(self._key) != 32:
            raise ValueError("Invalid encryption key: key must be 32 bytes (256 bits)")

        self._aesgcm = AESGCM(self._key)

    def encrypt(self, data: Dict[str, Any], scope: str, key_version: int = 1) -> EncryptedSecret:
        """Encrypt a dictionary of secret values.

        Args:
            data: JSON-serialisable secret values
            scope: Scope identifier bound as additional authenticated data
            key_version: Key version for rotation support
        """
        plaintext = json.dumps(data).encode('utf-8')
        nonce = os.urandom(12)
        ciphertext = self._aesgcm.encrypt(nonce, plaintext, scope.encode('utf-8'))

        return EncryptedSecret(
            ciphertext=base64.b64encode(ciphertext).decode('utf-8'),
            nonce=base64.b64encode(nonce).decode('utf-8'),
            created_at=datetime.now(timezone.utc).isoformat(),
            scope=scope,
            key_version=key_version,
        )

    def decrypt(self, encrypted: EncryptedSecret) -> Dict[str, Any]:
        """Decrypt secret values.

        Raises:
            ValueError: If decryption fails (wrong key, tampered data, wrong scope)
        """
        try:
            ciphertext = base64.b64decode(encrypted.ciphertext)
            nonce = base64.b64decode(encrypted.nonce)
            plaintext = self._aesgcm.decrypt(nonce, ciphertext, encrypted.scope.encode('utf-8'))
            return json.loads(plaintext.decode('utf-8'))
        except Exception as e:
            raise ValueError(f"Secret decryption failed: {e}")
