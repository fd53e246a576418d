"""Filesystem path helpers for per-video artifacts.

Layout under AppSettings.videos_root (served publicly as /videos/*):

    {videos_root}/
    ├── {video_id}.mp4        assembled video (video_url = /videos/{video_id}.mp4)
    └── {video_id}/           working directory (scenes, voiceover, music)

Security:
    Video ids are validated before being joined into a path, and resolved
    paths are verified to stay within videos_root.

Usage:
    from app.utils.filesystem import get_video_file, remove_video_artifacts

    path = get_video_file(settings.videos_root, video.id)
    removed = await remove_video_artifacts(settings.videos_root, video.id)
"""

import asyncio
import re
import shutil
import uuid
from pathlib import Path

import structlog

__all__ = [
    "get_video_file",
    "get_video_workdir",
    "public_video_url",
    "remove_video_artifacts",
]

log = structlog.get_logger(__name__)

# Validation pattern: alphanumeric, underscores, dashes only
_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")


def _validate_identifier(identifier: str, name: str) -> None:
    """Validate identifier to prevent path traversal attacks.

    Raises:
        ValueError: If identifier is empty or contains anything but
            alphanumerics, underscores and dashes.
    """
    if not identifier:
        raise ValueError(f"{name} cannot be empty")

    if not _ID_PATTERN.match(identifier):
        raise ValueError(
            f"Invalid {name}: '{identifier}'. "
            f"Only alphanumeric characters, underscores, and dashes are allowed."
        )


def _verify_path_in_root(path: Path, root: Path) -> None:
    if not path.resolve().is_relative_to(root.resolve()):
        raise ValueError(f"Path traversal detected: {path} escapes videos root {root}")


def get_video_file(videos_root: str | Path, video_id: uuid.UUID | str) -> Path:
    """Path of the assembled MP4 for a video (not created)."""
    root = Path(videos_root)
    video_key = str(video_id)
    _validate_identifier(video_key, "video_id")
    path = root / f"{video_key}.mp4"
    _verify_path_in_root(path, root)
    return path


def get_video_workdir(videos_root: str | Path, video_id: uuid.UUID | str) -> Path:
    """Path of the per-video working directory (not created)."""
    root = Path(videos_root)
    video_key = str(video_id)
    _validate_identifier(video_key, "video_id")
    path = root / video_key
    _verify_path_in_root(path, root)
    return path


def public_video_url(video_id: uuid.UUID | str) -> str:
    """Public path of the assembled video, relative to the app URL."""
    return f"/videos/{video_id}.mp4"


def _remove_sync(videos_root: str | Path, video_id: uuid.UUID | str) -> int:
    removed = 0
    video_file = get_video_file(videos_root, video_id)
    if video_file.is_file():
        video_file.unlink()
        removed += 1
    workdir = get_video_workdir(videos_root, video_id)
    if workdir.is_dir():
        shutil.rmtree(workdir)
        removed += 1
    return removed


async def remove_video_artifacts(videos_root: str | Path, video_id: uuid.UUID | str) -> int:
    """Delete the assembled file and working directory of a video.

    Missing artifacts are not an error. Filesystem failures are logged and
    swallowed so one stuck file cannot block deleting the database rows.

    Returns:
        Number of artifacts (file or directory) removed.
    """
    try:
        return await asyncio.to_thread(_remove_sync, videos_root, video_id)
    except OSError as e:
        log.warning("video_artifact_cleanup_failed", video_id=str(video_id), error=str(e))
        return 0
