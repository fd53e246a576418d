"""AI Video Generator Orchestration Layer.

This package contains the FastAPI service that drives short-form video
generation (queued to external workers), human review, automations and
publishing to Facebook, Instagram and YouTube. State lives in PostgreSQL.
"""

from app.database import async_session_factory, get_session
from app.models import Base, Video

__all__ = [
    "Base",
    "Video",
    "async_session_factory",
    "get_session",
]
