"""Client settings API: the remote base URL and auth token used by the sync engine."""
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from typing import Optional

from ..core.config import settings
from ..models.preference import PreferenceKey, PreferenceRepository
from ..services.offline_sync import OfflineSyncService
from .sync import get_sync_service

router = APIRouter(prefix="/settings", tags=["settings"])


class SettingsUpdate(BaseModel):
    base_url: Optional[str] = Field(default=None, pattern=r"^https?://\S+$")
    # An empty token clears the stored one
    auth_token: Optional[str] = None


class SettingsResponse(BaseModel):
    base_url: str
    has_auth_token: bool


def get_preferences(service: OfflineSyncService = Depends(get_sync_service)) -> PreferenceRepository:
    if service.preferences is None:
        raise HTTPException(status_code=503, detail="Preferences are not available")
    return service.preferences


def _current(prefs: PreferenceRepository) -> SettingsResponse:
    return SettingsResponse(
        base_url=prefs.get_base_url(settings.API_BASE_URL),
        has_auth_token=bool(prefs.get_auth_token() or settings.API_TOKEN),
    )


@router.get("/", response_model=SettingsResponse)
def read_settings(prefs: PreferenceRepository = Depends(get_preferences)):
    return _current(prefs)


@router.put("/", response_model=SettingsResponse)
def update_settings(update: SettingsUpdate, prefs: PreferenceRepository = Depends(get_preferences)):
    """Change the server address or token; the next submit picks them up."""
    if update.base_url is not None:
        prefs.set(PreferenceKey.BASE_URL, update.base_url)
    if update.auth_token is not None:
        prefs.set(PreferenceKey.AUTH_TOKEN, update.auth_token or None)
    return _current(prefs)
