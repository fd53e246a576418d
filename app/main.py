"""FastAPI application for short-form video orchestration.

This is the web service entry point. It exposes the video lifecycle,
automation and series endpoints, and maps domain exceptions to HTTP status
codes. Generation itself runs in external workers fed through PgQueuer.

Error Mapping:
    InputValidationError          -> 400 (422 when tied to a field)
    AuthenticationError           -> 401
    AuthorizationError            -> 403 (PlanLimitError includes usage)
    NotFoundError                 -> 404
    InvalidStateTransitionError   -> 409
    ConflictError                 -> 409
    ProviderError                 -> 502
    ConfigurationError            -> 500
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
    ConflictError,
    InputValidationError,
    InvalidStateTransitionError,
    NotFoundError,
    PlanLimitError,
    ProviderError,
)
from app.queue import initialize_job_queue, reset_job_queue
from app.routes import automations, providers, series, videos
from app.utils.logging import configure_logging, get_logger

log = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage startup/shutdown.

    Startup:
    - Load .env and configure structlog
    - Initialize the PgQueuer job queue if DATABASE_URL is set

    Shutdown:
    - Close the asyncpg pool
    """
    load_dotenv()
    configure_logging()

    pool = None
    try:
        _, pool = await initialize_job_queue()
    except ValueError:
        log.warning(
            "job_queue_disabled",
            message="DATABASE_URL not set, generation jobs cannot be submitted",
        )

    yield  # Application runs here

    reset_job_queue()
    if pool is not None:
        log.info("closing_asyncpg_pool")
        await pool.close()


app = FastAPI(
    title="AI Video Generator - Short-Form Orchestration",
    description="Generation lifecycle, review, automation and social publishing",
    version="0.2.0",
    lifespan=lifespan,
)

app.include_router(videos.router)
app.include_router(automations.router)
app.include_router(series.router)
app.include_router(providers.router)


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    content = {"error": message}
    content.update({key: value for key, value in extra.items() if value is not None})
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(InputValidationError)
async def handle_input_validation(request: Request, exc: InputValidationError) -> JSONResponse:
    if exc.field:
        return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc), field=exc.field)
    return _error(status.HTTP_400_BAD_REQUEST, str(exc))


@app.exception_handler(AuthenticationError)
async def handle_authentication(request: Request, exc: AuthenticationError) -> JSONResponse:
    return _error(status.HTTP_401_UNAUTHORIZED, str(exc))


@app.exception_handler(AuthorizationError)
async def handle_authorization(request: Request, exc: AuthorizationError) -> JSONResponse:
    if isinstance(exc, PlanLimitError):
        return _error(status.HTTP_403_FORBIDDEN, str(exc), current=exc.current, limit=exc.limit)
    return _error(status.HTTP_403_FORBIDDEN, str(exc))


@app.exception_handler(NotFoundError)
async def handle_not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return _error(status.HTTP_404_NOT_FOUND, str(exc))


@app.exception_handler(InvalidStateTransitionError)
async def handle_invalid_transition(
    request: Request, exc: InvalidStateTransitionError
) -> JSONResponse:
    return _error(
        status.HTTP_409_CONFLICT,
        exc.args[0],
        currentStatus=exc.from_status.value,
    )


@app.exception_handler(ConflictError)
async def handle_conflict(request: Request, exc: ConflictError) -> JSONResponse:
    return _error(status.HTTP_409_CONFLICT, str(exc))


@app.exception_handler(ProviderError)
async def handle_provider(request: Request, exc: ProviderError) -> JSONResponse:
    log.warning("provider_error", provider=exc.provider, error=str(exc)[:200])
    return _error(status.HTTP_502_BAD_GATEWAY, str(exc), provider=exc.provider)


@app.exception_handler(ConfigurationError)
async def handle_configuration(request: Request, exc: ConfigurationError) -> JSONResponse:
    log.error("configuration_error", path=request.url.path, error=str(exc))
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check() -> JSONResponse:
    """Health check endpoint for deployment validation.

    Returns:
        JSONResponse: Status and service name
    """
    return JSONResponse(content={"status": "healthy", "service": "ai-video-generator"})


if __name__ == "__main__":
    import uvicorn

    # Binding to 0.0.0.0 is intentional for Docker compatibility
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",  # noqa: S104
        port=8000,
        reload=True,
    )
