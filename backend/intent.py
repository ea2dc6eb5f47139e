"""Turn classification for the gate stages.

Depends only on text_utils. Matching is exact or regex based on purpose.
"""

import re

from text_utils import normalize_whitespace, word_count

ELLIPSIS_INPUTS = ("...", "…")

GREETING_REGEX = re.compile(
    r"^(hi|hey|hello|yo|sup|heya|hiya|howdy)( there| nova)?[\s!.,]*$",
    re.IGNORECASE,
)

CASUAL_PROBE_PATTERNS = (
    re.compile(r"^(you there|are you there|still there|you around)\??$", re.IGNORECASE),
    re.compile(r"^what('?re| are) you (doing|up to)\??$", re.IGNORECASE),
    re.compile(r"^(whatcha|watcha) (doing|doin'?)\??$", re.IGNORECASE),
)

EXPLICIT_INVITE_PATTERNS = (
    re.compile(r"\b(i|i'd|i would) (want|like|need) to talk\b", re.IGNORECASE),
    re.compile(r"\bcan (i|we) (talk|vent)\b", re.IGNORECASE),
    re.compile(r"\bcan i tell you (something|a thing)\b", re.IGNORECASE),
    re.compile(r"\bi (have|got|need to tell you) something\b", re.IGNORECASE),
    re.compile(r"\blet me tell you (something|about)\b", re.IGNORECASE),
)

MINIMAL_ACKNOWLEDGEMENTS = frozenset(
    {
        "ok", "okay", "k", "kk", "yeah", "yea", "yep", "yup", "nope", "nah", "no",
        "sure", "fine", "cool", "alright", "mhm", "hmm", "hm", "mm", "true",
        "same", "thanks", "thx", "got it", "fair", "right", "lol",
    }
)

CAPABILITY_MARKERS = (
    "are you ai",
    "are you an ai",
    "what are you",
    "who are you",
    "are you real",
    "how do you work",
    "can you feel",
    "do you have feelings",
)


def last_user_message(messages: list[dict]) -> str:
    for msg in reversed(messages or []):
        if msg.get("role") == "user":
            return str(msg.get("content") or "")
    return ""


def user_messages(messages: list[dict]) -> list[str]:
    return [str(m.get("content") or "") for m in (messages or []) if m.get("role") == "user"]


def is_ellipsis_only(message: str) -> bool:
    return (message or "").strip() in ELLIPSIS_INPUTS


def is_greeting(message: str) -> bool:
    return bool(GREETING_REGEX.match((message or "").strip()))


def is_minimal_acknowledgement(message: str) -> bool:
    low = normalize_whitespace(message).lower().rstrip(".!?,")
    return low in MINIMAL_ACKNOWLEDGEMENTS


def is_ultra_short(message: str) -> bool:
    trimmed = (message or "").strip()
    if not trimmed or is_greeting(trimmed):
        return False
    if is_minimal_acknowledgement(trimmed):
        return True
    return word_count(trimmed) <= 2 and len(trimmed) <= 6


def is_casual_probe(message: str) -> bool:
    trimmed = normalize_whitespace(message)
    return any(p.match(trimmed) for p in CASUAL_PROBE_PATTERNS)


def is_explicit_invite(message: str) -> bool:
    low = normalize_whitespace(message).lower().replace("’", "'")
    return any(p.search(low) for p in EXPLICIT_INVITE_PATTERNS)


def is_asking_about_capabilities(message: str) -> bool:
    low = normalize_whitespace(message).lower()
    return any(marker in low for marker in CAPABILITY_MARKERS)


def has_user_provided_context(messages: list[dict]) -> bool:
    """Whether the user has given enough to earn a longer reply."""
    texts = [t.strip() for t in user_messages(messages)]
    if not texts:
        return False
    for content in texts[-5:]:
        if len(content) > 50 or "?" in content:
            return True
    meaningful = [t for t in texts if len(t) > 20 and not is_greeting(t)]
    return len(meaningful) >= 2
