"""Tests for video lifecycle routes.

Services are patched; these tests cover request parsing, identity headers,
response serialization and the exception-to-status mapping.
"""

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

from fastapi import status

from app.exceptions import (
    ConflictError,
    InputValidationError,
    InvalidStateTransitionError,
    PlanLimitError,
)
from app.models import Platform, Video, VideoStatus
from app.schemas.video import PlatformPostResult
from app.services.publish_service import PublishService, PublishSummary
from app.services.review_service import RegeneratedImage, ReviewService


def _video(status_: VideoStatus = VideoStatus.READY, **kwargs) -> Video:
    defaults = {
        "id": uuid.uuid4(),
        "series_id": uuid.uuid4(),
        "title": "The Door at the End of the Hall",
        "posted_platforms": [],
        "updated_at": datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc),
    }
    defaults.update(kwargs)
    return Video(status=status_, **defaults)


def test_missing_identity_is_401(api_client):
    response = api_client.post(f"/api/v1/videos/{uuid.uuid4()}/stop")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json() == {"error": "Authentication required"}


def test_stop_returns_video(api_client, auth_headers, user_id, mock_db_session):
    video = _video(VideoStatus.FAILED, error_message="Stopped by user")

    with patch(
        "app.services.video_service.stop_video", new_callable=AsyncMock, return_value=video
    ) as stop:
        response = api_client.post(f"/api/v1/videos/{video.id}/stop", headers=auth_headers)

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["id"] == str(video.id)
    assert body["status"] == "FAILED"
    assert body["errorMessage"] == "Stopped by user"
    db, video_id, actor = stop.await_args.args
    assert db is mock_db_session
    assert video_id == video.id
    assert actor.id == user_id
    mock_db_session.commit.assert_awaited_once()


def test_stop_ready_video_is_409(api_client, auth_headers):
    error = InvalidStateTransitionError(
        "Only queued or generating videos can be stopped",
        from_status=VideoStatus.READY,
        to_status=VideoStatus.FAILED,
    )

    with patch("app.services.video_service.stop_video", new_callable=AsyncMock, side_effect=error):
        response = api_client.post(f"/api/v1/videos/{uuid.uuid4()}/stop", headers=auth_headers)

    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json() == {
        "error": "Only queued or generating videos can be stopped",
        "currentStatus": "READY",
    }


def test_retry_plan_limit_is_403(api_client, auth_headers, mock_db_session):
    error = PlanLimitError("Monthly video limit reached (3/3) for the FREE plan", 3, 3)

    with patch(
        "app.services.video_service.retry_video", new_callable=AsyncMock, side_effect=error
    ):
        response = api_client.post(f"/api/v1/videos/{uuid.uuid4()}/retry", headers=auth_headers)

    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["current"] == 3
    assert response.json()["limit"] == 3
    mock_db_session.rollback.assert_awaited_once()
    mock_db_session.commit.assert_not_awaited()


def test_retry_conflict_is_409(api_client, auth_headers):
    error = ConflictError("A video is already being generated for this series")

    with patch(
        "app.services.video_service.retry_video", new_callable=AsyncMock, side_effect=error
    ):
        response = api_client.post(f"/api/v1/videos/{uuid.uuid4()}/retry", headers=auth_headers)

    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json() == {"error": "A video is already being generated for this series"}


def test_assemble_with_selected_indices(api_client, auth_headers):
    video = _video(VideoStatus.GENERATING, generation_stage="ASSEMBLY")

    with patch.object(
        ReviewService, "assemble", new_callable=AsyncMock, return_value=video
    ) as assemble:
        response = api_client.post(
            f"/api/v1/videos/{video.id}/assemble",
            headers=auth_headers,
            json={"selectedIndices": [0, 2]},
        )

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["generationStage"] == "ASSEMBLY"
    assert assemble.await_args.args[3] == [0, 2]


def test_assemble_without_body_keeps_all(api_client, auth_headers):
    video = _video(VideoStatus.GENERATING)

    with patch.object(
        ReviewService, "assemble", new_callable=AsyncMock, return_value=video
    ) as assemble:
        response = api_client.post(f"/api/v1/videos/{video.id}/assemble", headers=auth_headers)

    assert response.status_code == status.HTTP_200_OK
    assert assemble.await_args.args[3] is None


def test_assemble_out_of_range_is_422_with_field(api_client, auth_headers):
    error = InputValidationError("Scene indices out of range (0-2): [5]", field="selectedIndices")

    with patch.object(ReviewService, "assemble", new_callable=AsyncMock, side_effect=error):
        response = api_client.post(
            f"/api/v1/videos/{uuid.uuid4()}/assemble",
            headers=auth_headers,
            json={"selectedIndices": [5]},
        )

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert response.json()["field"] == "selectedIndices"


def test_regenerate_image(api_client, auth_headers):
    result = RegeneratedImage(index=1, image_path="/videos/work/scene_1b.png", prompt="a candle")

    with patch.object(
        ReviewService, "regenerate_image", new_callable=AsyncMock, return_value=result
    ):
        response = api_client.post(
            f"/api/v1/videos/{uuid.uuid4()}/regenerate-image",
            headers=auth_headers,
            json={"index": 1, "prompt": "a candle"},
        )

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {
        "index": 1,
        "imagePath": "/videos/work/scene_1b.png",
        "prompt": "a candle",
    }


def test_regenerate_image_blank_prompt_rejected_by_schema(api_client, auth_headers):
    response = api_client.post(
        f"/api/v1/videos/{uuid.uuid4()}/regenerate-image",
        headers=auth_headers,
        json={"index": 0, "prompt": "   "},
    )

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_publish_defaults_to_202_and_background(api_client, auth_headers, mock_db_session):
    video = _video(VideoStatus.POSTED)

    with (
        patch.object(
            PublishService,
            "check_publishable",
            new_callable=AsyncMock,
            return_value=[Platform.YOUTUBE],
        ),
        patch.object(
            PublishService,
            "publish_video",
            new_callable=AsyncMock,
            return_value=PublishSummary(video=video),
        ) as publish,
    ):
        response = api_client.post(
            f"/api/v1/videos/{video.id}/publish",
            headers=auth_headers,
            json={"platforms": ["YOUTUBE"]},
        )

    assert response.status_code == status.HTTP_202_ACCEPTED
    assert response.json() == {
        "videoId": str(video.id),
        "platforms": ["YOUTUBE"],
        "status": "accepted",
    }
    # TestClient runs background tasks before returning
    publish.assert_awaited_once()
    assert publish.await_args.args[3] == [Platform.YOUTUBE]
    assert mock_db_session.commit.await_count == 2


def test_background_publish_after_status_change_is_abandoned(
    api_client, auth_headers, mock_db_session
):
    error = InvalidStateTransitionError(
        "Only ready or posted videos can be published",
        from_status=VideoStatus.FAILED,
        to_status=VideoStatus.POSTED,
    )

    with (
        patch.object(
            PublishService,
            "check_publishable",
            new_callable=AsyncMock,
            return_value=[Platform.YOUTUBE],
        ),
        patch.object(
            PublishService, "publish_video", new_callable=AsyncMock, side_effect=error
        ) as publish,
    ):
        response = api_client.post(f"/api/v1/videos/{uuid.uuid4()}/publish", headers=auth_headers)

    assert response.status_code == status.HTTP_202_ACCEPTED
    publish.assert_awaited_once()
    mock_db_session.rollback.assert_awaited_once()
    assert mock_db_session.commit.await_count == 1


def test_publish_wait_returns_results(api_client, auth_headers):
    video = _video(VideoStatus.POSTED)
    results = [
        PlatformPostResult(platform=Platform.YOUTUBE, success=True, url="https://youtu.be/x"),
        PlatformPostResult(platform=Platform.FACEBOOK, success=False, error="No connected account"),
    ]

    with patch.object(
        PublishService,
        "publish_video",
        new_callable=AsyncMock,
        return_value=PublishSummary(video=video, results=results),
    ):
        response = api_client.post(
            f"/api/v1/videos/{video.id}/publish?wait=true", headers=auth_headers
        )

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["video"]["status"] == "POSTED"
    assert body["results"][0]["url"] == "https://youtu.be/x"
    assert body["results"][1]["error"] == "No connected account"


def test_publish_validation_error_is_not_backgrounded(api_client, auth_headers):
    error = InputValidationError("No target platforms selected", field="platforms")

    with (
        patch.object(
            PublishService, "check_publishable", new_callable=AsyncMock, side_effect=error
        ),
        patch.object(PublishService, "publish_video", new_callable=AsyncMock) as publish,
    ):
        response = api_client.post(f"/api/v1/videos/{uuid.uuid4()}/publish", headers=auth_headers)

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert response.json()["field"] == "platforms"
    publish.assert_not_awaited()


def test_reset_posted_passes_platforms(api_client, auth_headers):
    video = _video(VideoStatus.READY)

    with patch(
        "app.services.video_service.reset_posted", new_callable=AsyncMock, return_value=video
    ) as reset:
        response = api_client.post(
            f"/api/v1/videos/{video.id}/reset-posted",
            headers=auth_headers,
            json={"platforms": ["FACEBOOK"]},
        )

    assert response.status_code == status.HTTP_200_OK
    assert reset.await_args.args[3] == [Platform.FACEBOOK]


def test_update_link(api_client, auth_headers):
    video = _video(
        VideoStatus.POSTED,
        posted_platforms=[
            {"platform": "YOUTUBE", "success": True, "url": "https://youtu.be/x", "manualUrl": True}
        ],
    )

    with patch.object(
        PublishService, "update_manual_link", new_callable=AsyncMock, return_value=video
    ) as update_link:
        response = api_client.post(
            f"/api/v1/videos/{video.id}/update-link",
            headers=auth_headers,
            json={"platform": "YOUTUBE", "url": "https://youtu.be/x"},
        )

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["postedPlatforms"][0]["manualUrl"] is True
    assert update_link.await_args.args[3:] == (Platform.YOUTUBE, "https://youtu.be/x")


def test_update_link_unknown_platform_rejected(api_client, auth_headers):
    response = api_client.post(
        f"/api/v1/videos/{uuid.uuid4()}/update-link",
        headers=auth_headers,
        json={"platform": "TIKTOK", "url": "https://tiktok.com/@x/video/1"},
    )

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
