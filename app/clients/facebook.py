"""Facebook Reels publishing via the Pages Graph API.

Flow:
    1. POST /{page-id}/video_reels upload_phase=start → video_id, upload_url
    2. POST the binary to upload_url (OAuth header, offset 0, file_size)
    3. POST /{page-id}/video_reels upload_phase=finish with the description
    4. Poll /{video-id}?fields=permalink_url,source for a public permalink;
       fall back to https://www.facebook.com/reel/{video-id} when it never
       shows up (the reel may still be transcoding)

Security:
    The page access token is sent as a request parameter and header only.
    NEVER log it.
"""

import asyncio
from pathlib import Path

import httpx
import structlog

from app.clients.base import (
    PlatformClient,
    PostOutcome,
    error_message,
    json_object,
    poll_for_url,
)
from app.config import AppSettings, get_app_settings

log = structlog.get_logger(__name__)

FACEBOOK_WEB = "https://www.facebook.com"


def facebook_fallback_url(video_id: str) -> str:
    return f"{FACEBOOK_WEB}/reel/{video_id}"


class FacebookClient(PlatformClient):
    """Publishes reels to one Facebook page."""

    platform_name = "FACEBOOK"

    def __init__(
        self,
        page_id: str,
        page_access_token: str,
        settings: AppSettings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        super().__init__(http_client=http_client)
        self.page_id = page_id
        self._token = page_access_token
        self.settings = settings or get_app_settings()
        self.graph_url = f"https://graph.facebook.com/{self.settings.graph_api_version}"

    async def publish_reel(self, video_path: Path, description: str) -> PostOutcome:
        """Upload and publish a reel.

        Args:
            video_path: Local path of the assembled MP4.
            description: Caption shown with the reel.

        Returns:
            PostOutcome with post_id and url on success, raw error otherwise.
        """
        start = await self._send(
            "POST",
            f"{self.graph_url}/{self.page_id}/video_reels",
            json={"upload_phase": "start", "access_token": self._token},
        )
        if start.is_error:
            return PostOutcome(False, error=error_message(start, "Failed to start upload"))

        start_body = json_object(start)
        video_id = str(start_body.get("video_id", ""))
        upload_url = start_body.get("upload_url")
        if not video_id or not upload_url:
            return PostOutcome(False, error="Failed to start upload: no upload URL returned")

        payload = await asyncio.to_thread(video_path.read_bytes)
        upload = await self._send(
            "POST",
            upload_url,
            headers={
                "Authorization": f"OAuth {self._token}",
                "offset": "0",
                "file_size": str(len(payload)),
                "Content-Type": "application/octet-stream",
            },
            content=payload,
        )
        if upload.is_error:
            return PostOutcome(False, error=f"Upload failed: {upload.text}")

        finish = await self._send(
            "POST",
            f"{self.graph_url}/{self.page_id}/video_reels",
            json={
                "upload_phase": "finish",
                "video_id": video_id,
                "video_state": "PUBLISHED",
                "description": description,
                "access_token": self._token,
            },
        )
        if finish.is_error:
            return PostOutcome(False, error=error_message(finish, "Failed to finish upload"))

        # The reel is live from here on
        final_id = str(json_object(finish).get("video_id") or video_id)
        permalink = await poll_for_url(
            lambda: self.fetch_permalink(final_id),
            attempts=self.settings.permalink_attempts,
            first_wait=self.settings.permalink_first_wait,
            next_wait=self.settings.permalink_next_wait,
        )
        if permalink is None:
            log.info("facebook_permalink_fallback", video_id=final_id)

        return PostOutcome(True, post_id=final_id, url=permalink or facebook_fallback_url(final_id))

    async def fetch_permalink(self, video_id: str) -> str | None:
        """Fetch the reel permalink (relative paths are made absolute)."""
        response = await self._send(
            "GET",
            f"{self.graph_url}/{video_id}",
            params={"fields": "permalink_url,source", "access_token": self._token},
        )
        if response.is_error:
            return None
        permalink = json_object(response).get("permalink_url")
        if not permalink or not isinstance(permalink, str):
            return None
        return permalink if permalink.startswith("http") else f"{FACEBOOK_WEB}{permalink}"
