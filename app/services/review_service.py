"""Review Service for videos suspended in REVIEW.

A video generated in review mode stops after images and narration exist, so a
person can drop weak scenes or redraw single images before final assembly.

Key Responsibilities:
- Assemble: REVIEW → GENERATING (stage ASSEMBLY) with an optional subset of
  scene images, re-enqueued with reviewMode=false
- Regenerate image: replace one image in place while staying in REVIEW

Architecture Pattern:
    Service: validates status and checkpoint, mutates the Video, flushes
    Database: status transitions enforced by Video.validate_status_change(),
        concurrent checkpoint edits rejected by the version column
    Providers: image generator resolved per call, never cached on the video

Usage:
    service = ReviewService(queue, registry)
    video = await service.assemble(db, video_id, actor, selected_indices=[0, 2])
    result = await service.regenerate_image(db, video_id, actor, index=1, prompt="...")
"""

import uuid
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import CurrentUser
from app.config import AppSettings, get_app_settings
from app.exceptions import InputValidationError, InvalidStateTransitionError
from app.models import GenerationStage, Video, VideoStatus
from app.queue import JobQueue
from app.schemas.checkpoint import (
    AssemblyStage,
    ReviewStage,
    dump_checkpoint,
    load_checkpoint,
)
from app.services.catalog import art_style_prompts
from app.services.provider_resolver import resolve_providers
from app.services.providers import ProviderRegistry, generate_images_checked
from app.services.video_service import (
    STALE_VIDEO_MESSAGE,
    build_generation_job,
    flush_or_conflict,
    load_authorized_video,
    resolve_character_prompt,
    stored_scenes,
)
from app.utils.logging import get_logger

log = get_logger(__name__)

MISSING_CHECKPOINT_MESSAGE = "Missing checkpoint data"


@dataclass
class RegeneratedImage:
    """Result of a single-image regeneration."""

    index: int
    image_path: str
    prompt: str


def _review_checkpoint(video: Video) -> ReviewStage:
    """Parse the checkpoint of a REVIEW video as a ReviewStage.

    Legacy blobs classified as IMAGES (no reviewMode key) are accepted too,
    since older workers did not always write the flag.

    Raises:
        InputValidationError: No usable images + audio in the checkpoint.
    """
    try:
        checkpoint = load_checkpoint(video.checkpoint_data)
    except ValidationError as e:
        log.warning("review_checkpoint_invalid", video_id=str(video.id), errors=e.error_count())
        raise InputValidationError(MISSING_CHECKPOINT_MESSAGE) from e

    if isinstance(checkpoint, ReviewStage):
        return checkpoint
    if checkpoint is not None and checkpoint.stage == "IMAGES":
        data: dict[str, Any] = checkpoint.model_dump(by_alias=True)
        data.update(stage="REVIEW", reviewMode=True)
        return ReviewStage.model_validate(data)
    raise InputValidationError(MISSING_CHECKPOINT_MESSAGE)


def _require_review(video: Video, to_status: VideoStatus, action: str) -> None:
    if video.status != VideoStatus.REVIEW:
        raise InvalidStateTransitionError(
            f"Video must be in REVIEW to {action}",
            from_status=video.status,
            to_status=to_status,
        )


class ReviewService:
    """Assemble and regenerate-image actions on reviewed videos."""

    def __init__(
        self,
        queue: JobQueue,
        registry: ProviderRegistry,
        settings: AppSettings | None = None,
    ):
        self.queue = queue
        self.registry = registry
        self.settings = settings or get_app_settings()

    async def assemble(
        self,
        db: AsyncSession,
        video_id: uuid.UUID,
        actor: CurrentUser,
        selected_indices: list[int] | None = None,
    ) -> Video:
        """Resume a reviewed video into final assembly.

        Args:
            selected_indices: Images to keep (any order, duplicates ignored).
                None or empty keeps every image.

        Raises:
            InvalidStateTransitionError: Video is not in REVIEW.
            InputValidationError: Checkpoint lacks images/audio, or an index
                is out of range.
        """
        video = await load_authorized_video(db, video_id, actor)
        _require_review(video, VideoStatus.GENERATING, "assemble")
        checkpoint = _review_checkpoint(video)

        image_count = len(checkpoint.image_paths)
        indices = sorted(set(selected_indices)) if selected_indices else list(range(image_count))
        out_of_range = [i for i in indices if i < 0 or i >= image_count]
        if out_of_range:
            raise InputValidationError(
                f"Scene indices out of range (0-{image_count - 1}): {out_of_range}",
                field="selectedIndices",
            )

        timings = checkpoint.timings
        data = checkpoint.model_dump(by_alias=True, exclude={"stage", "review_mode"})
        data.update(
            imagePaths=[checkpoint.image_paths[i] for i in indices],
            imagePrompts=(
                [checkpoint.image_prompts[i] for i in indices] if checkpoint.image_prompts else []
            ),
            sceneTimings=[timings[i].model_dump(by_alias=True) for i in indices] if timings else [],
            expandedTimings=None,
        )
        assembly = AssemblyStage.model_validate(data)

        series = video.series
        video.checkpoint_data = dump_checkpoint(assembly)
        video.status = VideoStatus.GENERATING
        video.generation_stage = GenerationStage.ASSEMBLY.value
        await flush_or_conflict(db)

        providers = resolve_providers(series, series.user, self.settings)
        character_prompt = await resolve_character_prompt(db, series.character_id)
        await self.queue.submit(
            build_generation_job(
                video,
                series,
                providers,
                character_prompt=character_prompt,
                scenes=stored_scenes(video),
                script_text=video.script_text,
                music_path=checkpoint.music_path,
                review_mode=False,
            )
        )

        log.info(
            "video_assembly_requested",
            video_id=str(video.id),
            kept=len(indices),
            total=image_count,
        )
        return video

    async def regenerate_image(
        self,
        db: AsyncSession,
        video_id: uuid.UUID,
        actor: CurrentUser,
        index: int,
        prompt: str,
    ) -> RegeneratedImage:
        """Redraw one scene image with a new prompt; status stays REVIEW.

        Raises:
            InvalidStateTransitionError: Video is not in REVIEW.
            InputValidationError: Blank prompt or index out of range.
            ProviderError: The image provider returned no image.
        """
        prompt = (prompt or "").strip()
        if not prompt:
            raise InputValidationError("Prompt must not be empty", field="prompt")

        video = await load_authorized_video(db, video_id, actor)
        _require_review(video, VideoStatus.REVIEW, "regenerate images")
        checkpoint = _review_checkpoint(video)

        if index < 0 or index >= len(checkpoint.image_paths):
            raise InputValidationError(
                f"Image index {index} out of range (0-{len(checkpoint.image_paths) - 1})",
                field="index",
            )

        series = video.series
        providers = resolve_providers(series, series.user, self.settings)
        style_modifier, negative_prompt = art_style_prompts(series.art_style)
        result = await generate_images_checked(
            self.registry.image(providers.image),
            [prompt],
            style_modifier,
            negative_prompt,
            providers.image,
        )
        new_path = result.image_paths[0]

        image_paths = list(checkpoint.image_paths)
        image_paths[index] = new_path
        image_prompts = list(checkpoint.image_prompts)
        if image_prompts:
            image_prompts[index] = prompt
        updated = checkpoint.model_copy(
            update={"image_paths": image_paths, "image_prompts": image_prompts}
        )
        video.checkpoint_data = dump_checkpoint(updated)
        await flush_or_conflict(db, STALE_VIDEO_MESSAGE)

        log.info(
            "video_image_regenerated",
            video_id=str(video.id),
            index=index,
            provider=providers.image,
        )
        return RegeneratedImage(index=index, image_path=new_path, prompt=prompt)
