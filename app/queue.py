"""PgQueuer-backed job submission for the generation workers.

The orchestration layer never runs generation itself: it enqueues a fully
resolved GenerationJob on the `video_generation` entrypoint and the external
workers claim it (FOR UPDATE SKIP LOCKED) and report progress back through
app.services.checkpoint_service.

Each job carries dedupe_key=<video id>, so a second submission for a video
whose previous job is still queued or running is rejected by PgQueuer and
surfaces as ConflictError.

Architecture Pattern:
    - asyncpg pool shared by the driver
    - AsyncpgPoolDriver + Queries for enqueueing
    - Schema installed on first start

Usage:
    from app.queue import get_job_queue

    async def route(queue: JobQueue = Depends(get_job_queue)):
        await queue.submit(job)
"""

import os

import asyncpg
from pgqueuer.db import AsyncpgPoolDriver
from pgqueuer.errors import DuplicateJobError
from pgqueuer.queries import Queries

from app.exceptions import ConfigurationError, ConflictError
from app.schemas.job import GenerationJob
from app.utils.logging import get_logger

log = get_logger(__name__)

GENERATION_ENTRYPOINT = "video_generation"


class JobQueue:
    """Submits generation jobs to PgQueuer.

    Args:
        queries: PgQueuer Queries bound to a driver.
    """

    def __init__(self, queries: Queries):
        self.queries = queries

    async def submit(self, job: GenerationJob, priority: int = 0) -> None:
        """Enqueue a generation job.

        Raises:
            ConflictError: A job for this video is already queued or running.
        """
        try:
            await self.queries.enqueue(
                GENERATION_ENTRYPOINT,
                job.to_payload(),
                priority=priority,
                dedupe_key=str(job.video_id),
            )
        except DuplicateJobError as e:
            log.warning("job_duplicate", video_id=str(job.video_id))
            raise ConflictError(
                f"A generation job for video {job.video_id} is already queued"
            ) from e

        log.info(
            "job_submitted",
            video_id=str(job.video_id),
            series_id=str(job.series_id),
            review_mode=job.review_mode,
            llm=job.providers.llm,
            tts=job.providers.tts,
            image=job.providers.image,
        )


_job_queue: JobQueue | None = None


async def initialize_job_queue() -> tuple[JobQueue, asyncpg.Pool]:
    """Create the asyncpg pool, install the PgQueuer schema if missing.

    Returns:
        tuple[JobQueue, asyncpg.Pool]: The process-wide queue and its pool
            (closed by the caller on shutdown).

    Raises:
        ValueError: If DATABASE_URL not set
        asyncpg.PostgresError: If database connection fails
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise ValueError("DATABASE_URL environment variable not set")

    # asyncpg wants the plain postgresql:// scheme
    dsn = database_url.replace("postgresql+asyncpg://", "postgresql://", 1)

    log.info("initializing_asyncpg_pool", min_size=1, max_size=5, timeout=30)
    pool = await asyncpg.create_pool(dsn=dsn, min_size=1, max_size=5, timeout=30)

    queries = Queries(AsyncpgPoolDriver(pool))
    if not await queries.has_table("pgqueuer"):
        log.info("installing_pgqueuer_schema")
        await queries.install()
        log.info("pgqueuer_schema_installed")

    global _job_queue
    _job_queue = JobQueue(queries)
    log.info("job_queue_initialized", entrypoint=GENERATION_ENTRYPOINT)
    return _job_queue, pool


def reset_job_queue() -> None:
    """Forget the process-wide queue (shutdown and tests)."""
    global _job_queue
    _job_queue = None


def get_job_queue() -> JobQueue:
    """FastAPI dependency returning the process-wide JobQueue.

    Raises:
        ConfigurationError: If the queue was not initialized (no DATABASE_URL).
    """
    if _job_queue is None:
        raise ConfigurationError("Job queue not initialized. Set DATABASE_URL.")
    return _job_queue
