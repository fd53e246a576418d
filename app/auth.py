"""Caller identity for request handlers.

Authentication itself happens upstream (gateway / session layer); requests
reach this service with the verified identity in headers:

    X-User-Id:   user UUID (required)
    X-User-Role: USER | ADMIN | OWNER (default USER)
    X-User-Plan: FREE | STARTER | PRO | AGENCY (default FREE)

Usage:
    @router.post("/videos/{video_id}/retry")
    async def retry(video_id: UUID, user: CurrentUser = Depends(get_current_user)):
        ...
"""

import uuid
from dataclasses import dataclass

from fastapi import Header

from app.exceptions import AuthenticationError
from app.models import UserPlan, UserRole


@dataclass(frozen=True)
class CurrentUser:
    """Authenticated caller.

    Attributes:
        id: User UUID.
        role: Caller role; ADMIN and OWNER bypass ownership checks.
        plan: Caller plan (limits are checked against the record owner's plan).
    """

    id: uuid.UUID
    role: UserRole = UserRole.USER
    plan: UserPlan = UserPlan.FREE

    @property
    def is_privileged(self) -> bool:
        return self.role in (UserRole.ADMIN, UserRole.OWNER)


def _parse_enum(enum_cls, raw: str | None, default):
    if not raw:
        return default
    try:
        return enum_cls(raw.strip().upper())
    except ValueError as e:
        raise AuthenticationError(f"Invalid {enum_cls.__name__} header: {raw}") from e


async def get_current_user(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
    x_user_plan: str | None = Header(default=None),
) -> CurrentUser:
    """FastAPI dependency returning the authenticated caller.

    Raises:
        AuthenticationError: If X-User-Id is missing or not a UUID (401).
    """
    if not x_user_id:
        raise AuthenticationError("Authentication required")
    try:
        user_id = uuid.UUID(x_user_id)
    except ValueError as e:
        raise AuthenticationError("Invalid X-User-Id header") from e

    return CurrentUser(
        id=user_id,
        role=_parse_enum(UserRole, x_user_role, UserRole.USER),
        plan=_parse_enum(UserPlan, x_user_plan, UserPlan.FREE),
    )
