"""Tests for video lifecycle actions: stop, retry, reset-posted.

Uses the in-memory SQLite database; the job queue and providers are mocks.
"""

import uuid

import pytest

from app.auth import CurrentUser
from app.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidStateTransitionError,
    NotFoundError,
    PlanLimitError,
)
from app.models import STOPPED_BY_USER_MESSAGE, Platform, UserRole, VideoStatus
from app.services import video_service
from tests.support.factories import create_character, create_video, persist


class TestStopVideo:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [VideoStatus.QUEUED, VideoStatus.GENERATING])
    async def test_stop_in_flight_video(self, async_session, series, actor, status):
        video = create_video(series, status=status, generation_stage="TTS")
        await persist(async_session, video)

        stopped = await video_service.stop_video(async_session, video.id, actor)

        assert stopped.status == VideoStatus.FAILED
        assert stopped.error_message == STOPPED_BY_USER_MESSAGE
        assert stopped.generation_stage is None
        assert stopped.is_cancelled

    @pytest.mark.asyncio
    async def test_stop_ready_video_rejected(self, async_session, series, actor):
        video = create_video(series, status=VideoStatus.READY)
        await persist(async_session, video)

        with pytest.raises(InvalidStateTransitionError, match="Only queued or generating"):
            await video_service.stop_video(async_session, video.id, actor)

    @pytest.mark.asyncio
    async def test_stop_unknown_video(self, async_session, actor):
        with pytest.raises(NotFoundError):
            await video_service.stop_video(async_session, uuid.uuid4(), actor)

    @pytest.mark.asyncio
    async def test_stranger_cannot_stop(self, async_session, series):
        video = create_video(series, status=VideoStatus.QUEUED)
        await persist(async_session, video)

        with pytest.raises(AuthorizationError):
            await video_service.stop_video(async_session, video.id, CurrentUser(id=uuid.uuid4()))

        assert video.status == VideoStatus.QUEUED

    @pytest.mark.asyncio
    async def test_admin_can_stop_any_video(self, async_session, series):
        video = create_video(series, status=VideoStatus.QUEUED)
        await persist(async_session, video)
        admin = CurrentUser(id=uuid.uuid4(), role=UserRole.ADMIN)

        stopped = await video_service.stop_video(async_session, video.id, admin)

        assert stopped.status == VideoStatus.FAILED


class TestRetryVideo:
    @pytest.mark.asyncio
    async def test_retry_ready_video_rejected(
        self, async_session, series, actor, mock_job_queue, provider_registry, settings
    ):
        video = create_video(series, status=VideoStatus.READY)
        await persist(async_session, video)

        with pytest.raises(InvalidStateTransitionError, match="Only failed or stuck videos"):
            await video_service.retry_video(
                async_session, video.id, actor, mock_job_queue, provider_registry, settings
            )

        mock_job_queue.submit.assert_not_awaited()
        assert video.status == VideoStatus.READY

    @pytest.mark.asyncio
    async def test_retry_failed_video_reuses_stored_scenes(
        self,
        async_session,
        series,
        actor,
        mock_job_queue,
        provider_registry,
        script_generator,
        settings,
    ):
        video = create_video(
            series,
            status=VideoStatus.FAILED,
            error_message="TTS provider timed out",
            scenes_json=[{"text": "It was dark.", "visualDescription": "a dark room"}],
            checkpoint_data={"stage": "SCRIPT", "completedStages": ["SCRIPT"]},
        )
        await persist(async_session, video)

        retried = await video_service.retry_video(
            async_session, video.id, actor, mock_job_queue, provider_registry, settings
        )

        assert retried.status == VideoStatus.QUEUED
        assert retried.error_message is None
        assert retried.checkpoint_data == {"stage": "SCRIPT", "completedStages": ["SCRIPT"]}
        script_generator.generate_script.assert_not_awaited()

        job = mock_job_queue.submit.await_args.args[0]
        assert job.video_id == video.id
        assert job.scenes[0].text == "It was dark."
        assert job.providers.llm == settings.fallback_llm_provider
        assert job.music_path == "dark-ambient"
        assert job.review_mode is False

    @pytest.mark.asyncio
    async def test_retry_parses_scene_markers_from_script(
        self, async_session, series, actor, mock_job_queue, provider_registry, settings
    ):
        video = create_video(
            series,
            status=VideoStatus.FAILED,
            script_text="[Scene 1]\nThe hall was cold.\n\n[Scene 2]\nA door opened.",
        )
        await persist(async_session, video)

        await video_service.retry_video(
            async_session, video.id, actor, mock_job_queue, provider_registry, settings
        )

        job = mock_job_queue.submit.await_args.args[0]
        assert [scene.text for scene in job.scenes] == ["The hall was cold.", "A door opened."]
        assert video.scenes_json[1]["text"] == "A door opened."

    @pytest.mark.asyncio
    async def test_retry_regenerates_script_when_nothing_stored(
        self,
        async_session,
        owner,
        series,
        actor,
        mock_job_queue,
        provider_registry,
        script_generator,
        generated_script,
        settings,
    ):
        character = create_character(owner)
        await persist(async_session, character)
        series.character_id = character.id
        video = create_video(series, status=VideoStatus.FAILED, script_text=None)
        await persist(async_session, video)

        await video_service.retry_video(
            async_session, video.id, actor, mock_job_queue, provider_registry, settings
        )

        params = script_generator.generate_script.await_args.args[0]
        assert params.niche == "Scary Stories"
        assert params.character_prompt == character.prompt
        assert video.title == generated_script.title
        assert video.script_text == generated_script.full_script
        job = mock_job_queue.submit.await_args.args[0]
        assert job.character_prompt == character.prompt
        assert len(job.scenes) == 2

    @pytest.mark.asyncio
    async def test_retry_blocked_by_other_in_flight_video(
        self, async_session, series, actor, mock_job_queue, provider_registry, settings
    ):
        running = create_video(series, status=VideoStatus.GENERATING)
        failed = create_video(series, status=VideoStatus.FAILED)
        await persist(async_session, running, failed)

        with pytest.raises(ConflictError, match="already being generated"):
            await video_service.retry_video(
                async_session, failed.id, actor, mock_job_queue, provider_registry, settings
            )

        mock_job_queue.submit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stuck_queued_video_can_be_retried(
        self, async_session, series, actor, mock_job_queue, provider_registry, settings
    ):
        video = create_video(
            series,
            status=VideoStatus.QUEUED,
            scenes_json=[{"text": "Stuck.", "visualDescription": "a clock"}],
        )
        await persist(async_session, video)

        retried = await video_service.retry_video(
            async_session, video.id, actor, mock_job_queue, provider_registry, settings
        )

        assert retried.status == VideoStatus.QUEUED
        mock_job_queue.submit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_retry_respects_plan_limit(
        self, async_session, series, actor, mock_job_queue, provider_registry, settings
    ):
        # FREE plan allows three videos a month
        others = [create_video(series, status=VideoStatus.READY) for _ in range(3)]
        failed = create_video(series, status=VideoStatus.FAILED)
        await persist(async_session, *others, failed)

        with pytest.raises(PlanLimitError) as exc_info:
            await video_service.retry_video(
                async_session, failed.id, actor, mock_job_queue, provider_registry, settings
            )

        assert exc_info.value.limit == 3
        mock_job_queue.submit.assert_not_awaited()


class TestResetPosted:
    @pytest.mark.asyncio
    async def test_reset_all_moves_posted_to_ready(self, async_session, series, actor):
        video = create_video(
            series,
            status=VideoStatus.POSTED,
            posted_platforms=[
                "YOUTUBE",
                {"platform": "FACEBOOK", "success": True, "url": "https://fb/1"},
            ],
        )
        await persist(async_session, video)

        reset = await video_service.reset_posted(async_session, video.id, actor)

        assert reset.posted_platforms == []
        assert reset.status == VideoStatus.READY

    @pytest.mark.asyncio
    async def test_reset_one_platform_keeps_others(self, async_session, series, actor):
        video = create_video(
            series,
            status=VideoStatus.POSTED,
            posted_platforms=[
                {"platform": "YOUTUBE", "success": True, "url": "https://youtube.com/shorts/a"},
                {"platform": "FACEBOOK", "success": True, "url": "https://fb/1"},
            ],
        )
        await persist(async_session, video)

        reset = await video_service.reset_posted(
            async_session, video.id, actor, [Platform.FACEBOOK]
        )

        assert [entry["platform"] for entry in reset.posted_platforms] == ["YOUTUBE"]
        assert reset.status == VideoStatus.POSTED

    @pytest.mark.asyncio
    async def test_reset_last_success_moves_to_ready(self, async_session, series, actor):
        video = create_video(
            series,
            status=VideoStatus.POSTED,
            posted_platforms=[
                {"platform": "YOUTUBE", "success": True},
                {"platform": "INSTAGRAM", "success": False, "error": "spam"},
            ],
        )
        await persist(async_session, video)

        reset = await video_service.reset_posted(
            async_session, video.id, actor, [Platform.YOUTUBE]
        )

        assert reset.status == VideoStatus.READY
        assert reset.posted_platforms[0]["platform"] == "INSTAGRAM"

    @pytest.mark.asyncio
    async def test_reset_generating_video_rejected(self, async_session, series, actor):
        video = create_video(series, status=VideoStatus.GENERATING)
        await persist(async_session, video)

        with pytest.raises(InvalidStateTransitionError):
            await video_service.reset_posted(async_session, video.id, actor)

    @pytest.mark.asyncio
    async def test_reset_series(self, async_session, series, actor):
        posted = create_video(series, status=VideoStatus.POSTED, posted_platforms=["YOUTUBE"])
        ready = create_video(
            series,
            status=VideoStatus.READY,
            posted_platforms=[{"platform": "FACEBOOK", "success": False, "error": "x"}],
        )
        failed = create_video(series, status=VideoStatus.FAILED)
        await persist(async_session, posted, ready, failed)

        count = await video_service.reset_series_posted(async_session, series.id, actor)

        assert count == 2
        assert posted.status == VideoStatus.READY
        assert posted.posted_platforms == []
        assert ready.posted_platforms == []
        assert failed.status == VideoStatus.FAILED


class TestSingleInFlight:
    @pytest.mark.asyncio
    async def test_create_queued_video_rejects_second_in_flight(self, async_session, series):
        first = await video_service.create_queued_video(
            async_session,
            series,
            title="One",
            script_text=None,
            scenes=[],
            target_duration=45,
        )

        with pytest.raises(ConflictError, match="already being generated for this series"):
            await video_service.create_queued_video(
                async_session,
                series,
                title="Two",
                script_text=None,
                scenes=[],
                target_duration=45,
            )

        assert first.status == VideoStatus.QUEUED

    @pytest.mark.asyncio
    async def test_partial_unique_index_rejects_lost_race(self, async_session, series):
        await persist(async_session, create_video(series, status=VideoStatus.QUEUED))
        async_session.add(create_video(series, status=VideoStatus.GENERATING))

        with pytest.raises(ConflictError):
            await video_service.flush_or_conflict(async_session)
