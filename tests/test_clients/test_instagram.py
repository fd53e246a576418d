"""Tests for the Instagram Reels client (container, publish, permalink)."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from app.clients.instagram import InstagramClient

PUBLIC_URL = "https://app.example.com/videos/abc.mp4"


@pytest.fixture
def client(settings):
    return InstagramClient("ig-42", "ig-token", settings=settings, container_poll_wait=0)


@pytest.mark.asyncio
async def test_publish_reel_success(client):
    responses = [
        httpx.Response(200, json={"id": "container-1"}),
        httpx.Response(200, json={"status_code": "IN_PROGRESS"}),
        httpx.Response(200, json={"status_code": "FINISHED"}),
        httpx.Response(200, json={"id": "media-7"}),
        httpx.Response(200, json={"permalink": "https://www.instagram.com/reel/Cx1/"}),
    ]

    with patch.object(
        client.client, "request", new_callable=AsyncMock, side_effect=responses
    ) as request:
        outcome = await client.publish_reel(PUBLIC_URL, "caption #Shorts")

    assert outcome.success
    assert outcome.post_id == "media-7"
    assert outcome.url == "https://www.instagram.com/reel/Cx1/"
    create_call = request.await_args_list[0]
    assert create_call.kwargs["json"]["media_type"] == "REELS"
    assert create_call.kwargs["json"]["video_url"] == PUBLIC_URL
    publish_call = request.await_args_list[3]
    assert publish_call.args[1].endswith("/ig-42/media_publish")
    assert publish_call.kwargs["json"]["creation_id"] == "container-1"

    await client.close()


@pytest.mark.asyncio
async def test_container_error_stops_before_publish(client):
    responses = [
        httpx.Response(200, json={"id": "container-1"}),
        httpx.Response(200, json={"status_code": "ERROR"}),
    ]

    with patch.object(
        client.client, "request", new_callable=AsyncMock, side_effect=responses
    ) as request:
        outcome = await client.publish_reel(PUBLIC_URL, "caption")

    assert not outcome.success
    assert outcome.error == "Media container processing failed (status=ERROR)"
    assert request.await_count == 2

    await client.close()


@pytest.mark.asyncio
async def test_container_timeout(settings):
    client = InstagramClient(
        "ig-42", "ig-token", settings=settings, container_poll_attempts=2, container_poll_wait=0
    )
    responses = [
        httpx.Response(200, json={"id": "container-1"}),
        httpx.Response(200, json={"status_code": "IN_PROGRESS"}),
        httpx.Response(200, json={"status_code": "IN_PROGRESS"}),
    ]

    with patch.object(client.client, "request", new_callable=AsyncMock, side_effect=responses):
        outcome = await client.publish_reel(PUBLIC_URL, "caption")

    assert outcome.error == "Media container processing failed (status=TIMEOUT)"

    await client.close()


@pytest.mark.asyncio
async def test_permalink_fallback(client, settings):
    responses = [
        httpx.Response(200, json={"id": "container-1"}),
        httpx.Response(200, json={"status_code": "FINISHED"}),
        httpx.Response(200, json={"id": "media-7"}),
        *[httpx.Response(400, json={}) for _ in range(settings.permalink_attempts)],
    ]

    with patch.object(client.client, "request", new_callable=AsyncMock, side_effect=responses):
        outcome = await client.publish_reel(PUBLIC_URL, "caption")

    assert outcome.success
    assert outcome.url == "https://www.instagram.com/reel/media-7/"

    await client.close()


@pytest.mark.asyncio
async def test_create_error_message(client):
    error = httpx.Response(
        400, json={"error": {"message": "Error validating access token: Session has expired"}}
    )

    with patch.object(client.client, "request", new_callable=AsyncMock, return_value=error):
        outcome = await client.publish_reel(PUBLIC_URL, "caption")

    assert not outcome.success
    assert outcome.error.startswith("Error validating access token")

    await client.close()


@pytest.mark.asyncio
async def test_non_json_permalink_body_falls_back(client, settings):
    responses = [
        httpx.Response(200, json={"id": "container-1"}),
        httpx.Response(200, json={"status_code": "FINISHED"}),
        httpx.Response(200, json={"id": "media-7"}),
        *[
            httpx.Response(200, text="<html>processing</html>")
            for _ in range(settings.permalink_attempts)
        ],
    ]

    with patch.object(client.client, "request", new_callable=AsyncMock, side_effect=responses):
        outcome = await client.publish_reel(PUBLIC_URL, "caption")

    assert outcome.success
    assert outcome.url == "https://www.instagram.com/reel/media-7/"

    await client.close()


@pytest.mark.asyncio
async def test_published_without_media_id_is_still_success(client):
    responses = [
        httpx.Response(200, json={"id": "container-1"}),
        httpx.Response(200, json={"status_code": "FINISHED"}),
        httpx.Response(200, text="OK"),
    ]

    with patch.object(
        client.client, "request", new_callable=AsyncMock, side_effect=responses
    ) as request:
        outcome = await client.publish_reel(PUBLIC_URL, "caption")

    assert outcome.success
    assert outcome.post_id is None
    assert outcome.url is None
    assert request.await_count == 3

    await client.close()
