"""
PHI Encryption Service

AES-256-GCM encryption for protected health information.
Uses PBKDF2 key derivation with a per-message salt.
"""

import base64
import hashlib
import os
from typing import Any, Dict, Iterable, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from medimind.api.config import settings


PHI_ASSOCIATED_DATA = b"PHI_DATA"


class PHIEncryptionService:
    """
    Service for encrypting and decrypting PHI strings.

    Output layout is salt + nonce + ciphertext (GCM tag appended),
    base64 encoded for storage in text columns.
    """

    SALT_SIZE = 16  # 128 bits
    NONCE_SIZE = 12  # 96 bits, GCM standard
    ITERATIONS = 480000  # OWASP recommended

    def __init__(self, master_key: Optional[str] = None):
        """
        Initialize encryption service.

        Args:
            master_key: Master encryption key. Uses settings if not provided.
        """
        self._master_key = (master_key or settings.PHI_ENCRYPTION_KEY).encode()

    def _derive_key(self, salt: bytes) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=self.ITERATIONS,
        )
        return kdf.derive(self._master_key)

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a PHI string.

        Args:
            plaintext: String to encrypt

        Returns:
            Base64 text (salt + nonce + ciphertext)
        """
        if not plaintext:
            raise ValueError("Cannot encrypt empty string")

        salt = os.urandom(self.SALT_SIZE)
        nonce = os.urandom(self.NONCE_SIZE)

        aesgcm = AESGCM(self._derive_key(salt))
        ciphertext = aesgcm.encrypt(nonce, plaintext.encode(), PHI_ASSOCIATED_DATA)

        return base64.b64encode(salt + nonce + ciphertext).decode()

    def decrypt(self, encrypted: str) -> str:
        """
        Decrypt a value produced by encrypt().

        Raises:
            ValueError: If decryption fails
        """
        try:
            raw = base64.b64decode(encrypted, validate=True)
        except (ValueError, TypeError):
            raise ValueError("Invalid encrypted data")

        header = self.SALT_SIZE + self.NONCE_SIZE
        if len(raw) <= header:
            raise ValueError("Invalid encrypted data")

        salt = raw[: self.SALT_SIZE]
        nonce = raw[self.SALT_SIZE : header]
        ciphertext = raw[header:]

        aesgcm = AESGCM(self._derive_key(salt))
        try:
            return aesgcm.decrypt(nonce, ciphertext, PHI_ASSOCIATED_DATA).decode()
        except InvalidTag:
            raise ValueError("Failed to decrypt PHI data")


def hash_identifier(value: str) -> str:
    """Short one-way token for a PHI string."""
    return hashlib.sha256(value.encode()).hexdigest()[:8] + "***"


def anonymize(record: Dict[str, Any], fields: Iterable[str]) -> Dict[str, Any]:
    """
    Return a copy of record with the named fields masked.

    Strings become a hash prefix; other truthy values become [REDACTED].
    Falsy values are left as they are.
    """
    anonymized = dict(record)
    for name in fields:
        value = anonymized.get(name)
        if not value:
            continue
        if isinstance(value, str):
            anonymized[name] = hash_identifier(value)
        else:
            anonymized[name] = "[REDACTED]"
    return anonymized


# Singleton instance
_encryption_service: Optional[PHIEncryptionService] = None


def get_encryption_service() -> PHIEncryptionService:
    """Get shared encryption service instance."""
    global _encryption_service
    if _encryption_service is None:
        _encryption_service = PHIEncryptionService()
    return _encryption_service
