"""
Application-layer encryption for submitted resources.

Resources sent for validation carry PHI (names, birth dates, identifiers).
They are stored only as Fernet ciphertext next to their validation run.
"""

import json
import os
from typing import Any

from cryptography.fernet import Fernet


class EncryptionService:
    """Wraps Fernet symmetric encryption for resource snapshots."""

    def __init__(self, key: str | None = None):
        raw_key = key or os.getenv("PHI_ENCRYPTION_KEY", "")
        if raw_key:
            self._fernet = Fernet(raw_key.encode() if isinstance(raw_key, str) else raw_key)
        else:
            # Development only; production keys come from the secrets manager
            self._fernet = Fernet(Fernet.generate_key())

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a string and return base64-encoded ciphertext."""
        if not plaintext:
            return ""
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt base64-encoded ciphertext back to plaintext."""
        if not ciphertext:
            return ""
        return self._fernet.decrypt(ciphertext.encode()).decode()

    def encrypt_resource(self, resource: dict[str, Any]) -> str:
        return self.encrypt(json.dumps(resource, sort_keys=True, separators=(",", ":")))

    def decrypt_resource(self, ciphertext: str) -> dict[str, Any] | None:
        plaintext = self.decrypt(ciphertext)
        return json.loads(plaintext) if plaintext else None
