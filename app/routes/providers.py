"""Provider catalog route.

- GET /api/v1/providers/{capability} - Providers a user may select (llm, tts, image)
"""

from fastapi import APIRouter, Depends

from app.auth import CurrentUser, get_current_user
from app.config import AppSettings, get_app_settings
from app.services.catalog import Capability, ProviderInfo
from app.services.provider_resolver import list_selectable_providers

router = APIRouter(prefix="/api/v1/providers", tags=["providers"])


@router.get("/{capability}", response_model=list[ProviderInfo])
async def list_providers(
    capability: Capability,
    user: CurrentUser = Depends(get_current_user),
    settings: AppSettings = Depends(get_app_settings),
) -> list[ProviderInfo]:
    return list_selectable_providers(capability, settings)
