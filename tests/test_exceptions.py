"""Tests for custom exception classes.

Tests cover:
- Message formatting for NotFoundError, CancelledVideoError and
  InvalidStateTransitionError (P1)
- Hierarchy that the HTTP mapping relies on (P1)
- Extra attributes carried for clients (field, provider, plan usage) (P2)
"""

import uuid

import pytest

from app.exceptions import (
    AuthorizationError,
    CancelledVideoError,
    ConfigurationError,
    ConflictError,
    InputValidationError,
    InvalidStateTransitionError,
    NotFoundError,
    PlanLimitError,
    ProviderError,
)
from app.models import VideoStatus


class TestNotFoundError:
    def test_message_names_entity_and_id(self) -> None:
        """[P1] NotFoundError message capitalizes the entity.

        GIVEN: A missing automation id
        WHEN: NotFoundError is built
        THEN: str() is "Automation not found: <id>"
        """
        automation_id = uuid.uuid4()

        error = NotFoundError("automation", automation_id)

        assert str(error) == f"Automation not found: {automation_id}"
        assert error.entity == "automation"
        assert error.entity_id == automation_id


class TestHierarchy:
    def test_plan_limit_is_authorization_error(self) -> None:
        """[P1] Plan limits map to 403 through AuthorizationError."""
        error = PlanLimitError("Monthly limit reached", current=3, limit=3)

        assert isinstance(error, AuthorizationError)
        assert (error.current, error.limit) == (3, 3)

    def test_cancelled_video_is_conflict(self) -> None:
        """[P1] Writes after stop surface as a conflict."""
        video_id = uuid.uuid4()

        with pytest.raises(ConflictError) as exc_info:
            raise CancelledVideoError(video_id)

        assert exc_info.value.video_id == video_id
        assert str(exc_info.value) == f"Video {video_id} was cancelled; progress write refused"

    def test_configuration_error_is_plain_exception(self) -> None:
        """[P2] ConfigurationError carries only its message."""
        with pytest.raises(ConfigurationError, match="FERNET_KEY"):
            raise ConfigurationError("FERNET_KEY environment variable not set")


class TestInvalidStateTransitionError:
    def test_str_includes_transition(self) -> None:
        """[P1] str() appends from/to; args[0] keeps the short message."""
        error = InvalidStateTransitionError(
            "Invalid transition", VideoStatus.READY, VideoStatus.QUEUED
        )

        assert str(error) == "Invalid transition (from=READY, to=QUEUED)"
        assert error.args[0] == "Invalid transition"
        assert error.from_status is VideoStatus.READY
        assert error.to_status is VideoStatus.QUEUED


class TestAttributes:
    @pytest.mark.parametrize("field", [None, "selectedIndices"])
    def test_input_validation_field(self, field) -> None:
        """[P2] InputValidationError keeps the offending field (or None)."""
        error = InputValidationError("bad input", field=field)

        assert error.field == field
        assert str(error) == "bad input"

    def test_provider_error_provider_optional(self) -> None:
        """[P2] ProviderError provider defaults to None."""
        assert ProviderError("boom").provider is None
        assert ProviderError("boom", provider="YOUTUBE").provider == "YOUTUBE"
