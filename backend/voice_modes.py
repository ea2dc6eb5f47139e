"""
Response styles for Nova's voice modes.
"""

from enum import Enum
from typing import Dict, NamedTuple


class VoiceMode(str, Enum):
    QUIET = "quiet"
    ENGAGED = "engaged"
    MYTHIC = "mythic"
    BLUNT = "blunt"


class ResponseStyle(NamedTuple):
    max_sentences: int
    allow_questions_on_greeting: bool
    warmth_bias: int  # 0-100


MODE_STYLES: Dict[VoiceMode, ResponseStyle] = {
    VoiceMode.QUIET: ResponseStyle(max_sentences=2, allow_questions_on_greeting=False, warmth_bias=40),
    VoiceMode.ENGAGED: ResponseStyle(max_sentences=4, allow_questions_on_greeting=True, warmth_bias=70),
    VoiceMode.MYTHIC: ResponseStyle(max_sentences=3, allow_questions_on_greeting=False, warmth_bias=50),
    VoiceMode.BLUNT: ResponseStyle(max_sentences=2, allow_questions_on_greeting=False, warmth_bias=20),
}

DEFAULT_VOICE_MODE = VoiceMode.QUIET


def get_response_style(mode: VoiceMode) -> ResponseStyle:
    return MODE_STYLES[mode]


def get_all_voice_modes() -> list[str]:
    return [mode.value for mode in VoiceMode]


def coerce_voice_mode(raw) -> VoiceMode:
    """Stored preference -> VoiceMode, falling back to quiet for unknown values."""
    if isinstance(raw, VoiceMode):
        return raw
    try:
        return VoiceMode(str(raw or "").strip().lower())
    except ValueError:
        return DEFAULT_VOICE_MODE


def warmth_descriptor(warmth_bias: int) -> str:
    if warmth_bias < 30:
        return "cool and minimal"
    if warmth_bias < 60:
        return "subtly warm"
    return "warm and engaged"
