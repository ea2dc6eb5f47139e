"""User and settings helpers shared by routes and the chat handler."""

from typing import Callable, NamedTuple, Optional

from sqlalchemy.orm import Session

from models import UserSettings
from voice_modes import VoiceMode, coerce_voice_mode

DEFAULT_SYSTEM_PROMPT = (
    "You are Nova, a personal companion. You are calm, present, and honest. "
    "You remember what the person chooses to share with you, and you never "
    "pretend to know more than you do."
)


class VoiceSettings(NamedTuple):
    voice_mode: VoiceMode
    allow_memory_references: bool
    system_prompt: str
    model_name: Optional[str]


def get_or_create_settings(db: Session, user_id: int) -> UserSettings:
    settings = db.query(UserSettings).filter(UserSettings.user_id == user_id).first()
    if settings:
        return settings
    settings = UserSettings(user_id=user_id, voice_mode=VoiceMode.QUIET.value, allow_memory_references=False)
    db.add(settings)
    db.commit()
    db.refresh(settings)
    return settings


class SettingsReader:
    """Voice-mode and memory opt-in lookups for the chat handler."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def read(self, user_id: int) -> VoiceSettings:
        db = self.session_factory()
        try:
            settings = get_or_create_settings(db, int(user_id))
            return VoiceSettings(
                voice_mode=coerce_voice_mode(settings.voice_mode),
                allow_memory_references=bool(settings.allow_memory_references),
                system_prompt=(settings.system_prompt or "").strip() or DEFAULT_SYSTEM_PROMPT,
                model_name=settings.model_name,
            )
        finally:
            db.close()

    def get_voice_mode(self, user_id: int) -> VoiceMode:
        return self.read(user_id).voice_mode

    def get_allow_memory_references(self, user_id: int) -> bool:
        return self.read(user_id).allow_memory_references
