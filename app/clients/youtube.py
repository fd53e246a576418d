"""YouTube Shorts upload via the YouTube Data API v3 resumable protocol.

Flow:
    1. POST upload/youtube/v3/videos?uploadType=resumable with the snippet
       and status metadata → session URI in the Location header
    2. PUT the MP4 bytes to the session URI → video resource with its id
    3. URL is https://youtube.com/shorts/{id}

Only the stored access token is used; acquiring and refreshing tokens happens
in the account connection flow, outside this client.
"""

import asyncio
from pathlib import Path

import httpx
import structlog

from app.clients.base import PlatformClient, PostOutcome, error_message, json_object
from app.services.captions import YouTubeMetadata

log = structlog.get_logger(__name__)

UPLOAD_URL = "https://www.googleapis.com/upload/youtube/v3/videos"
SHORTS_TAG = "#Shorts"


def youtube_shorts_url(video_id: str) -> str:
    return f"https://youtube.com/shorts/{video_id}"


class YouTubeClient(PlatformClient):
    """Uploads Shorts to the channel owning the access token."""

    platform_name = "YOUTUBE"

    def __init__(self, access_token: str, http_client: httpx.AsyncClient | None = None):
        super().__init__(http_client=http_client)
        self._token = access_token

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"}

    async def upload_short(self, video_path: Path, metadata: YouTubeMetadata) -> PostOutcome:
        """Upload a video as a public Short.

        Args:
            video_path: Local path of the assembled MP4.
            metadata: Title, description, tags and category.
        """
        title = metadata.title if SHORTS_TAG in metadata.title else f"{metadata.title} {SHORTS_TAG}"
        body = {
            "snippet": {
                "title": title[:100],
                "description": metadata.description,
                "tags": [*metadata.tags, "Shorts"],
                "categoryId": metadata.category_id,
            },
            "status": {"privacyStatus": "public", "selfDeclaredMadeForKids": False},
        }
        payload = await asyncio.to_thread(video_path.read_bytes)

        session = await self._send(
            "POST",
            UPLOAD_URL,
            params={"uploadType": "resumable", "part": "snippet,status"},
            headers={
                **self._auth_headers(),
                "X-Upload-Content-Type": "video/mp4",
                "X-Upload-Content-Length": str(len(payload)),
            },
            json=body,
        )
        if session.is_error:
            return PostOutcome(False, error=error_message(session, "Failed to start upload"))

        session_uri = session.headers.get("Location")
        if not session_uri:
            return PostOutcome(False, error="Failed to start upload: no session URI returned")

        upload = await self._send(
            "PUT",
            session_uri,
            headers={**self._auth_headers(), "Content-Type": "video/mp4"},
            content=payload,
        )
        if upload.is_error:
            return PostOutcome(False, error=f"Upload failed: {error_message(upload, upload.text)}")

        # The video is live from here on
        video_id = str(json_object(upload).get("id", ""))
        if not video_id:
            log.warning("youtube_uploaded_without_video_id")
            return PostOutcome(True)

        log.info("youtube_short_uploaded", video_id=video_id)
        return PostOutcome(True, post_id=video_id, url=youtube_shorts_url(video_id))
