"""Credential vault: encryption at rest and masking for display."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

MASK = "••••••••"


def mask_credential(credential: str, show_chars: int = 4) -> str:
    """Mask a credential for display, keeping the first/last few characters."""
    if len(credential) <= show_chars * 2:
        return MASK
    return f"{credential[:show_chars]}{MASK}{credential[-show_chars:]}"


class CredentialVault:
    """Encrypts credential maps into opaque blobs and back.

    Usage:
        vault = CredentialVault(settings.encryption_key)
        blob = vault.store_credentials({"apiKey": "sk-..."})
        creds = vault.decrypt_credentials(blob)
    """

    def __init__(self, key: Optional[str | bytes] = None) -> None:
        if not key:
            logger.warning("ENCRYPTION_KEY not set - generating temporary key")
            key = Fernet.generate_key()
        self._cipher = Fernet(key.encode() if isinstance(key, str) else key)

    def encrypt_credentials(self, credentials: dict[str, Any]) -> str:
        """Encrypt credentials dictionary."""
        json_str = json.dumps(credentials)
        encrypted_bytes = self._cipher.encrypt(json_str.encode())
        return encrypted_bytes.decode()

    def decrypt_credentials(self, encrypted_str: str) -> dict[str, Any]:
        """Decrypt credentials string."""
        try:
            decrypted_bytes = self._cipher.decrypt(encrypted_str.encode())
            return json.loads(decrypted_bytes.decode())
        except (InvalidToken, ValueError) as e:
            logger.error(f"Failed to decrypt credentials: {type(e).__name__}")
            return {}

    def store_credentials(self, credentials: dict[str, Optional[str]]) -> str:
        """Encrypt credentials, dropping unset fields."""
        clean = {key: value for key, value in credentials.items() if value is not None}
        return self.encrypt_credentials(clean)

    def retrieve_credentials(self, encrypted_str: str) -> dict[str, str]:
        """Decrypt credentials, dropping unset fields."""
        raw = self.decrypt_credentials(encrypted_str)
        return {key: value for key, value in raw.items() if value is not None}

    def masked_credentials(self, encrypted_str: str) -> dict[str, str]:
        """Masked version of stored credentials for the dashboard."""
        credentials = self.retrieve_credentials(encrypted_str)
        return {key: mask_credential(str(value)) for key, value in credentials.items() if value}
