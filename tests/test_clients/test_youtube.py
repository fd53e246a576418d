"""Tests for the YouTube Shorts resumable upload client."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from app.clients.youtube import UPLOAD_URL, YouTubeClient
from app.services.captions import YouTubeMetadata


@pytest.fixture
def video_file(tmp_path):
    path = tmp_path / "short.mp4"
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42")
    return path


@pytest.fixture
def metadata():
    return YouTubeMetadata(
        title="The Door at the End of the Hall",
        description="Wait for the ending...",
        tags=["scary stories", "horror"],
        category_id="24",
    )


@pytest.mark.asyncio
async def test_upload_short_success(video_file, metadata):
    client = YouTubeClient("yt-token")
    responses = [
        httpx.Response(200, headers={"Location": "https://upload.session/abc"}),
        httpx.Response(200, json={"id": "dQw4w9WgXcQ"}),
    ]

    with patch.object(
        client.client, "request", new_callable=AsyncMock, side_effect=responses
    ) as request:
        outcome = await client.upload_short(video_file, metadata)

    assert outcome.success
    assert outcome.post_id == "dQw4w9WgXcQ"
    assert outcome.url == "https://youtube.com/shorts/dQw4w9WgXcQ"

    session_call, upload_call = request.await_args_list
    assert session_call.args == ("POST", UPLOAD_URL)
    assert session_call.kwargs["headers"]["Authorization"] == "Bearer yt-token"
    snippet = session_call.kwargs["json"]["snippet"]
    assert snippet["title"] == "The Door at the End of the Hall #Shorts"
    assert snippet["tags"] == ["scary stories", "horror", "Shorts"]
    assert snippet["categoryId"] == "24"
    assert session_call.kwargs["json"]["status"]["privacyStatus"] == "public"
    assert upload_call.args == ("PUT", "https://upload.session/abc")
    assert upload_call.kwargs["content"] == video_file.read_bytes()

    await client.close()


@pytest.mark.asyncio
async def test_title_with_shorts_tag_kept_and_truncated(video_file):
    client = YouTubeClient("yt-token")
    long_title = "x" * 120 + " #Shorts"
    responses = [
        httpx.Response(200, headers={"Location": "https://upload.session/abc"}),
        httpx.Response(200, json={"id": "v1"}),
    ]

    with patch.object(
        client.client, "request", new_callable=AsyncMock, side_effect=responses
    ) as request:
        await client.upload_short(video_file, YouTubeMetadata(title=long_title, description=""))

    title = request.await_args_list[0].kwargs["json"]["snippet"]["title"]
    assert len(title) == 100
    assert title.count("#Shorts") == 0

    await client.close()


@pytest.mark.asyncio
async def test_missing_session_uri(video_file, metadata):
    client = YouTubeClient("yt-token")

    with patch.object(
        client.client, "request", new_callable=AsyncMock, return_value=httpx.Response(200)
    ):
        outcome = await client.upload_short(video_file, metadata)

    assert not outcome.success
    assert "no session URI" in outcome.error

    await client.close()


@pytest.mark.asyncio
async def test_quota_error(video_file, metadata):
    client = YouTubeClient("yt-token")
    error = httpx.Response(
        403,
        json={
            "error": {
                "message": "The request cannot be completed because you have exceeded your quota."
            }
        },
    )

    with patch.object(client.client, "request", new_callable=AsyncMock, return_value=error):
        outcome = await client.upload_short(video_file, metadata)

    assert not outcome.success
    assert "exceeded your quota" in outcome.error

    await client.close()


@pytest.mark.asyncio
async def test_upload_with_unreadable_body_is_still_success(video_file, metadata):
    client = YouTubeClient("yt-token")
    responses = [
        httpx.Response(200, headers={"Location": "https://upload.session/abc"}),
        httpx.Response(200, text="uploaded"),
    ]

    with patch.object(client.client, "request", new_callable=AsyncMock, side_effect=responses):
        outcome = await client.upload_short(video_file, metadata)

    assert outcome.success
    assert outcome.post_id is None

    await client.close()
