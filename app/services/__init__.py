"""Business logic services for the orchestration layer.

Generation workers import the progress API from here:

    from app.services import mark_ready, record_stage, save_checkpoint
"""

from app.exceptions import ConfigurationError
from app.services.checkpoint_service import (
    enter_review,
    mark_failed,
    mark_ready,
    record_stage,
    save_checkpoint,
)
from app.services.credential_service import AccountCredentials, CredentialService

__all__ = [
    "AccountCredentials",
    "ConfigurationError",
    "CredentialService",
    "enter_review",
    "mark_failed",
    "mark_ready",
    "record_stage",
    "save_checkpoint",
]
