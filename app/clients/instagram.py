"""Instagram Reels publishing via the Instagram Graph API.

Flow:
    1. POST /{ig-user-id}/media media_type=REELS with a public video_url
    2. Poll /{container-id}?fields=status_code until FINISHED (or ERROR)
    3. POST /{ig-user-id}/media_publish creation_id=<container-id>
    4. Poll /{media-id}?fields=permalink for the public URL; fall back to
       https://www.instagram.com/reel/{media-id}/

Instagram fetches the video itself, so the file must be reachable under
PUBLIC_APP_URL/videos/<filename>.
"""

import asyncio

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

CONTAINER_POLL_ATTEMPTS = 30
CONTAINER_POLL_WAIT = 5.0


def instagram_fallback_url(media_id: str) -> str:
    return f"https://www.instagram.com/reel/{media_id}/"


class InstagramClient(PlatformClient):
    """Publishes reels to one Instagram professional account."""

    platform_name = "INSTAGRAM"

    def __init__(
        self,
        ig_user_id: str,
        access_token: str,
        settings: AppSettings | None = None,
        http_client: httpx.AsyncClient | None = None,
        container_poll_attempts: int = CONTAINER_POLL_ATTEMPTS,
        container_poll_wait: float = CONTAINER_POLL_WAIT,
    ):
        super().__init__(http_client=http_client)
        self.ig_user_id = ig_user_id
        self._token = access_token
        self.settings = settings or get_app_settings()
        self.graph_url = f"https://graph.facebook.com/{self.settings.graph_api_version}"
        self.container_poll_attempts = container_poll_attempts
        self.container_poll_wait = container_poll_wait

    async def publish_reel(self, video_url: str, caption: str) -> PostOutcome:
        """Create, await and publish a reel container.

        Args:
            video_url: Publicly reachable URL of the MP4.
            caption: Reel caption.
        """
        create = await self._send(
            "POST",
            f"{self.graph_url}/{self.ig_user_id}/media",
            json={
                "media_type": "REELS",
                "video_url": video_url,
                "caption": caption,
                "access_token": self._token,
            },
        )
        if create.is_error:
            return PostOutcome(
                False, error=error_message(create, "Failed to create media container")
            )

        container_id = str(json_object(create).get("id", ""))
        if not container_id:
            return PostOutcome(False, error="Failed to create media container: no id returned")

        status = await self.wait_for_container(container_id)
        if status != "FINISHED":
            return PostOutcome(False, error=f"Media container processing failed (status={status})")

        publish = await self._send(
            "POST",
            f"{self.graph_url}/{self.ig_user_id}/media_publish",
            json={"creation_id": container_id, "access_token": self._token},
        )
        if publish.is_error:
            return PostOutcome(False, error=error_message(publish, "Failed to publish reel"))

        # The reel is live from here on
        media_id = str(json_object(publish).get("id", ""))
        if not media_id:
            log.warning("instagram_published_without_media_id", ig_user_id=self.ig_user_id)
            return PostOutcome(True)

        permalink = await poll_for_url(
            lambda: self.fetch_permalink(media_id),
            attempts=self.settings.permalink_attempts,
            first_wait=self.settings.permalink_first_wait,
            next_wait=self.settings.permalink_next_wait,
        )
        if permalink is None:
            log.info("instagram_permalink_fallback", media_id=media_id)
        return PostOutcome(
            True, post_id=media_id, url=permalink or instagram_fallback_url(media_id)
        )

    async def wait_for_container(self, container_id: str) -> str:
        """Poll container status_code.

        Returns:
            "FINISHED", "ERROR", or "TIMEOUT" when attempts run out.
        """
        for _ in range(self.container_poll_attempts):
            await asyncio.sleep(self.container_poll_wait)
            response = await self._send(
                "GET",
                f"{self.graph_url}/{container_id}",
                params={"fields": "status_code", "access_token": self._token},
            )
            if response.is_error:
                continue
            status = json_object(response).get("status_code")
            if status in ("FINISHED", "ERROR"):
                return status
        return "TIMEOUT"

    async def fetch_permalink(self, media_id: str) -> str | None:
        response = await self._send(
            "GET",
            f"{self.graph_url}/{media_id}",
            params={"fields": "permalink", "access_token": self._token},
        )
        if response.is_error:
            return None
        permalink = json_object(response).get("permalink")
        return permalink if isinstance(permalink, str) and permalink else None
