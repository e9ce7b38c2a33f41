"""
Application-layer encryption for PHI fields stored by the ingestion pipeline.

The key comes from PHI_ENCRYPTION_KEY; without one a throwaway key is
generated, which is only acceptable outside production.
"""

from __future__ import annotations

import logging

from cryptography.fernet import Fernet

from ingestion.config import settings

logger = logging.getLogger(__name__)


class EncryptionService:
    """Fernet symmetric encryption for individual PHI values."""

    def __init__(self, key: str | bytes | None = None):
        raw_key = key or settings.PHI_ENCRYPTION_KEY
        if not raw_key:
            if settings.ENVIRONMENT == "production":
                raise RuntimeError("PHI_ENCRYPTION_KEY must be set in production")
            logger.warning("PHI_ENCRYPTION_KEY not set; using an ephemeral key")
            raw_key = Fernet.generate_key()
        self._fernet = Fernet(raw_key.encode() if isinstance(raw_key, str) else raw_key)

    def encrypt(self, plaintext: str | None) -> str | None:
        """Encrypt a value; None and empty strings pass through as None."""
        if not plaintext:
            return None
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str | None) -> str | None:
        if not ciphertext:
            return None
        return self._fernet.decrypt(ciphertext.encode()).decode()
