"""Voice mode and memory opt-in settings."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from models import User
from schemas import SettingsUpdate, SettingsResponse
from deps import get_db, get_current_user
from settings_service import get_or_create_settings
from voice_modes import get_all_voice_modes

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("", response_model=SettingsResponse)
async def get_settings(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return SettingsResponse.model_validate(get_or_create_settings(db, user.id))


@router.get("/voice-modes")
async def list_voice_modes():
    return {"voice_modes": get_all_voice_modes()}


@router.patch("", response_model=SettingsResponse)
async def update_settings(
    update: SettingsUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    settings = get_or_create_settings(db, user.id)
    changes = update.model_dump(exclude_unset=True)
    if "voice_mode" in changes and changes["voice_mode"] is not None:
        settings.voice_mode = changes["voice_mode"]
    if "allow_memory_references" in changes and changes["allow_memory_references"] is not None:
        settings.allow_memory_references = bool(changes["allow_memory_references"])
    if "system_prompt" in changes:
        settings.system_prompt = (changes["system_prompt"] or "").strip() or None
    if "model_name" in changes:
        settings.model_name = (changes["model_name"] or "").strip() or None
    db.commit()
    db.refresh(settings)
    return SettingsResponse.model_validate(settings)
