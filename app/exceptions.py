"""Shared exceptions for the application.

This module contains exception classes used across multiple services
to avoid cross-domain dependencies between services. Route handlers map
each class to an HTTP status in app.main, so services raise these instead
of building HTTP responses themselves.

Taxonomy:
    - InputValidationError: malformed payload, URL or index (400/422)
    - AuthenticationError / AuthorizationError: no caller / not owner (401/403)
    - NotFoundError: missing video, series or automation (404)
    - InvalidStateTransitionError / ConflictError: action illegal for the
      current status, or a concurrent edit / duplicate in-flight job (409)
    - ProviderError: external vendor failure, message already classified (502)
"""


class ConfigurationError(Exception):
    """Raised when required configuration is missing.

    This error indicates a configuration problem that prevents
    generation or publishing from proceeding (e.g., FERNET_KEY unset, or
    no provider implementation registered for a resolved provider id).
    """

    pass


class InputValidationError(Exception):
    """Raised when caller input is malformed.

    Attributes:
        field: Name of the offending request field, if a single field is at
            fault. Routes surface it so clients can highlight the input.
    """

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class AuthenticationError(Exception):
    """Raised when the request carries no authenticated identity."""

    pass


class AuthorizationError(Exception):
    """Raised when the caller neither owns the record nor holds a privileged role."""

    pass


class PlanLimitError(AuthorizationError):
    """Raised when the caller's plan quota (e.g. monthly videos) is exhausted."""

    def __init__(self, message: str, current: int, limit: int):
        self.current = current
        self.limit = limit
        super().__init__(message)


class NotFoundError(Exception):
    """Raised when a referenced record does not exist.

    Attributes:
        entity: Kind of record ("video", "series", "automation", ...).
        entity_id: Identifier that was looked up.
    """

    def __init__(self, entity: str, entity_id: object):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity.capitalize()} not found: {entity_id}")


class ConflictError(Exception):
    """Raised when an action collides with concurrent or in-flight work.

    Covers the single-in-flight rule (a second job for a series that already
    has one QUEUED/GENERATING video) and optimistic-lock failures on the
    checkpoint. Clients should present this as "already running" or
    "changed elsewhere, reload" rather than as a generic failure.
    """

    pass


class InvalidStateTransitionError(Exception):
    """Raised when attempting an invalid state transition in the VideoStatus workflow.

    Only transitions defined in Video.VALID_TRANSITIONS are allowed, and each
    lifecycle action additionally checks its own precondition status.

    Attributes:
        message: Human-readable error message describing the invalid transition.
        from_status: The current VideoStatus before the attempted transition.
        to_status: The VideoStatus that was attempted but is not valid.

    Example:
        >>> video.status = VideoStatus.READY
        >>> video.status = VideoStatus.QUEUED  # retry from READY is not allowed
        InvalidStateTransitionError: Invalid transition: READY → QUEUED
    """

    def __init__(self, message: str, from_status: "VideoStatus", to_status: "VideoStatus"):
        """Initialize InvalidStateTransitionError with transition details.

        Args:
            message: Human-readable error message.
            from_status: Current status before transition attempt.
            to_status: Target status that was attempted.
        """
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(message)

    def __str__(self) -> str:
        """Return detailed error message with transition context."""
        base_message = super().__str__()
        return f"{base_message} (from={self.from_status.value}, to={self.to_status.value})"


class CancelledVideoError(ConflictError):
    """Raised when a worker tries to write progress for a stopped video.

    Stopping is cooperative: the stop action only marks the record FAILED, and
    every worker write-back checks for it before overwriting state.
    """

    def __init__(self, video_id: object):
        self.video_id = video_id
        super().__init__(f"Video {video_id} was cancelled; progress write refused")


class ProviderError(Exception):
    """Raised when an external AI vendor or social platform fails.

    The message is already classified into an actionable form (see
    app.services.error_classifier) and is safe to show to users.

    Attributes:
        provider: Provider or platform identifier that failed.
    """

    def __init__(self, message: str, provider: str | None = None):
        self.provider = provider
        super().__init__(message)
