"""Fernet symmetric encryption for social account tokens.

The FERNET_KEY environment variable must be set with a valid Fernet key
generated via `Fernet.generate_key()`.

Usage:
    from app.utils.encryption import get_encryption_service

    service = get_encryption_service()
    encrypted = service.encrypt("page-access-token")
    decrypted = service.decrypt(encrypted, account_id=str(account.id))

Security Notes:
    - NEVER log or expose encrypted values or plaintext tokens
    - Key rotation requires re-encrypting all stored social account tokens
"""

import os
from typing import ClassVar

from cryptography.fernet import Fernet, InvalidToken


class EncryptionKeyMissing(Exception):
    """Raised when FERNET_KEY is unset or not a valid Fernet key."""

    pass


class DecryptionError(Exception):
    """Raised when decryption fails due to invalid key or corrupted data.

    Attributes:
        account_id: Social account whose token failed to decrypt (if known).
            Safe to log; the ciphertext never is.
    """

    def __init__(self, message: str, account_id: str | None = None) -> None:
        self.account_id = account_id
        super().__init__(message)

    def __str__(self) -> str:
        if self.account_id:
            return f"{super().__str__()} (account_id={self.account_id})"
        return super().__str__()


class EncryptionService:
    """Process-wide Fernet cipher, created lazily on first use.

    Raises:
        EncryptionKeyMissing: If FERNET_KEY is not set or malformed.
    """

    _instance: ClassVar["EncryptionService | None"] = None
    _cipher: Fernet

    def __new__(cls) -> "EncryptionService":
        if cls._instance is None:
            instance = super().__new__(cls)
            instance._initialize()
            cls._instance = instance
        return cls._instance

    def _initialize(self) -> None:
        key = os.environ.get("FERNET_KEY")
        if not key:
            raise EncryptionKeyMissing(
                "FERNET_KEY environment variable is required to use connected accounts"
            )
        try:
            self._cipher = Fernet(key.encode())
        except ValueError as e:
            raise EncryptionKeyMissing(
                "Invalid FERNET_KEY format: Fernet key must be 32 url-safe base64-encoded bytes"
            ) from e

    def encrypt(self, plaintext: str) -> bytes:
        return self._cipher.encrypt(plaintext.encode())

    def decrypt(self, ciphertext: bytes, account_id: str | None = None) -> str:
        """Decrypt ciphertext bytes to plaintext string.

        Raises:
            DecryptionError: If decryption fails (invalid key or corrupted data).
        """
        try:
            return self._cipher.decrypt(ciphertext).decode()
        except InvalidToken as e:
            raise DecryptionError(
                "Decryption failed: invalid encryption key or corrupted data",
                account_id=account_id,
            ) from e
        except (TypeError, ValueError) as e:
            raise DecryptionError(
                f"Decryption failed: {type(e).__name__}",
                account_id=account_id,
            ) from e

    @classmethod
    def reset_instance(cls) -> None:
        """Reset singleton instance (for testing only)."""
        cls._instance = None


def get_encryption_service() -> EncryptionService:
    """Get the singleton EncryptionService instance."""
    return EncryptionService()
