"""Voice policy: reply pools, banned-phrase checks, sanitizer, prompt rules."""

import random
import re
from typing import Optional

from voice_modes import VoiceMode, get_response_style, warmth_descriptor

ELLIPSIS_RESPONSES = ("…", "Mm.", "I'm here.", "Still here.")

ULTRA_SHORT_RESPONSES = ("Yeah.", "Mm.", "Got it.", "Okay.")

CASUAL_PROBE_RESPONSES = ("Yeah.", "I'm here.", "Here.", "I'm here with you.")

EXPLICIT_INVITE_RESPONSE = "Go ahead. I'm listening."

# Modes whose style allows questions on greeting must answer with one; the rest never ask.
MODE_GREETING_RESPONSES: dict[VoiceMode, tuple[str, ...]] = {
    VoiceMode.QUIET: ("Hey.", "Hi.", "Mm.", "Yeah.", "I'm here.", "Here.", "Hey. I'm here."),
    VoiceMode.ENGAGED: (
        "Hey. What's on your mind?",
        "Hi. How's the day treating you?",
        "Hey, I'm here. What's up?",
        "Hi. Anything you want to get into?",
    ),
    VoiceMode.MYTHIC: ("I'm here.", "I'm with you.", "Here.", "Still here."),
    VoiceMode.BLUNT: ("Yeah.", "Here.", "I'm here."),
}

MODEL_FAILURE_RESPONSE = "I couldn't reach the model just now. Try again in a moment."

SANITIZED_FALLBACK = "I'm here."

BANNED_PHRASES = (
    "tell me how that makes you feel",
    "that's a thoughtful observation",
    "i'm here to help",
    "how does that make you feel",
    "what a great question",
    "that's a great point",
    "i understand how you feel",
    "it sounds like you're feeling",
    "i hear what you're saying",
    "thank you for sharing",
    "i'm glad you shared that",
    "that's understandable",
    "that must be difficult",
    "i can imagine",
    "let's explore that",
    "let's unpack that",
    "it sounds like",
    "i'm sorry you're going through",
    "you are valid",
)

# Allowed only when the user asked about Nova's nature this turn.
CONDITIONAL_BANNED_PHRASES = (
    "as an ai",
    "as an artificial intelligence",
)

_QUOTE_AND_SPACE_CHARS = " \t\r\n\"'“”‘’"


def pick_response(pool, rng: Optional[random.Random] = None) -> str:
    choices = list(pool)
    return (rng or random).choice(choices)


def greeting_pool(mode: VoiceMode) -> tuple[str, ...]:
    return MODE_GREETING_RESPONSES[mode]


def find_banned_phrase(response: str, user_asked_about_capabilities: bool) -> Optional[str]:
    lower = (response or "").lower().replace("’", "'")
    for phrase in BANNED_PHRASES:
        if phrase in lower:
            return phrase
    if not user_asked_about_capabilities:
        for phrase in CONDITIONAL_BANNED_PHRASES:
            if phrase in lower:
                return phrase
    return None


def _phrase_regex(phrase: str) -> re.Pattern:
    # Straight and curly apostrophes are interchangeable in model output.
    body = re.escape(phrase).replace("'", "['’]")
    return re.compile(body, re.IGNORECASE)


def _tidy_after_removal(text: str) -> str:
    out = re.sub(r"\s{2,}", " ", text)
    out = re.sub(r"\s+([,.;:!?])", r"\1", out)
    out = re.sub(r"([,.;:!?])([A-Za-z])", r"\1 \2", out)
    out = out.strip(_QUOTE_AND_SPACE_CHARS)
    out = re.sub(r"^[,.;:!?\s]+", "", out)
    return out.strip(_QUOTE_AND_SPACE_CHARS)


def sanitize_banned_phrase(response: str, banned_phrase: str) -> str:
    """Remove a banned phrase locally, without another model call.

    Text that does not contain the phrase comes back untouched, and the fallback
    is a fixed point, which makes the function idempotent.
    """
    if not banned_phrase or response == SANITIZED_FALLBACK:
        return response
    pattern = _phrase_regex(banned_phrase)
    if not pattern.search(response or ""):
        return response
    sanitized = response
    while pattern.search(sanitized):
        sanitized = _tidy_after_removal(pattern.sub("", sanitized))
    if not sanitized.strip():
        return SANITIZED_FALLBACK
    return sanitized


def build_enhanced_system_prompt(base_prompt: str, mode: VoiceMode) -> str:
    style = get_response_style(mode)
    plural = "s" if style.max_sentences > 1 else ""
    question_rule = (
        "You may ask brief questions only when the user provides context."
        if style.allow_questions_on_greeting
        else "Do not ask questions on simple greetings. Just acknowledge presence."
    )
    rules = [
        "You are a companion, not a therapist or counselor. Be present, not performative.",
        f"Default to {style.max_sentences} sentence{plural} maximum unless the user provides substantial context.",
        'NEVER use phrases like: "Tell me how that makes you feel", "Thank you for sharing", or similar counselor-speak.',
        'Only say "As an AI..." if the user explicitly asks about your nature or capabilities.',
        question_rule,
        "Depth gating: only expand or ask follow-up questions when the user provides context or asks you something directly.",
        f"Warmth level: {style.warmth_bias}% - {warmth_descriptor(style.warmth_bias)}",
        f"Mode: {mode.value.capitalize()}",
    ]
    if mode == VoiceMode.MYTHIC:
        rules.append("Speak with subtle weight and presence, as if each word matters.")
    if mode == VoiceMode.BLUNT:
        rules.append("Be direct and minimal. No fluff.")

    block = "\n".join(f"- {rule}" for rule in rules)
    return f"{base_prompt or ''}\n\nVoice rules:\n{block}"
