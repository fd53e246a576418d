"""Cross-cutting utilities for the orchestration layer.

This package contains helper functions and services used across multiple
modules. Utilities should be pure functions or singletons without business
logic.

Modules:
    encryption: Fernet symmetric encryption for platform access tokens.
    filesystem: Video file paths, public URLs and artifact cleanup.
    logging: structlog configuration.
"""

from app.utils.encryption import (
    DecryptionError,
    EncryptionKeyMissing,
    EncryptionService,
    get_encryption_service,
)

__all__ = [
    "DecryptionError",
    "EncryptionKeyMissing",
    "EncryptionService",
    "get_encryption_service",
]
