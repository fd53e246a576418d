"""Automation routes.

This module provides FastAPI routes for automation control:
- POST /api/v1/automations/{id}/trigger - Produce one video now
- POST /api/v1/automations/{id}/stop - Disable and cancel the in-flight video
- PATCH /api/v1/automations/{id} - Partial update (schedule changes reset last run)
"""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import CurrentUser, get_current_user
from app.config import AppSettings, get_app_settings
from app.database import get_session
from app.queue import JobQueue, get_job_queue
from app.schemas.automation import (
    AutomationResponse,
    AutomationUpdate,
    StopAutomationResponse,
    TriggerResponse,
)
from app.services import automation_service
from app.services.providers import ProviderRegistry, get_provider_registry

router = APIRouter(prefix="/api/v1/automations", tags=["automations"])


@router.post("/{automation_id}/trigger", response_model=TriggerResponse)
async def trigger_automation(
    automation_id: uuid.UUID,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    queue: JobQueue = Depends(get_job_queue),
    registry: ProviderRegistry = Depends(get_provider_registry),
    settings: AppSettings = Depends(get_app_settings),
) -> TriggerResponse:
    """Generate a script and queue one video for the automation.

    Returns:
        200 OK: Video queued
        409 Conflict: A video is already being generated for this automation
    """
    result = await automation_service.trigger_automation(
        db, automation_id, user, queue, registry, settings
    )
    return TriggerResponse(
        video_id=result.video.id, series_id=result.series.id, title=result.video.title
    )


@router.post(
    "/{automation_id}/stop",
    response_model=StopAutomationResponse,
    response_model_by_alias=True,
)
async def stop_automation(
    automation_id: uuid.UUID,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> StopAutomationResponse:
    _, cancelled = await automation_service.stop_automation(db, automation_id, user)
    if cancelled is not None:
        message = "Automation stopped and in-flight video cancelled"
    else:
        message = "Automation stopped"
    return StopAutomationResponse(
        cancelled_video_id=cancelled.id if cancelled else None, message=message
    )


@router.patch("/{automation_id}", response_model=AutomationResponse)
async def update_automation(
    automation_id: uuid.UUID,
    body: AutomationUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> AutomationResponse:
    automation = await automation_service.update_automation(db, automation_id, user, body)
    return AutomationResponse.model_validate(automation)
