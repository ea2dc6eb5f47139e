"""Low-level text helpers used across the voice engine.

No dependency on schemas, models, or any other project module.
"""

import re

SENTENCE_UNIT_REGEX = re.compile(r"[^.!?]*[.!?]+")
SIGNATURE_LENGTH = 140


def normalize_whitespace(text: str) -> str:
    return " ".join((text or "").split()).strip()


def word_count(text: str) -> int:
    return len([w for w in (text or "").split() if w.strip()])


def split_sentences(text: str) -> list[str]:
    """Sentence units with their terminator runs attached ("Wait..." stays one unit)."""
    return SENTENCE_UNIT_REGEX.findall(text or "")


def count_sentences(text: str) -> int:
    return len(split_sentences((text or "").strip()))


def trim_to_sentences(text: str, max_sentences: int = 2) -> str:
    units = split_sentences(text)
    if not units:
        return text
    if len(units) <= max_sentences:
        return text.strip()
    return "".join(units[: max(1, max_sentences)]).strip()


def message_signature(text: str) -> str:
    return normalize_whitespace(text).lower()[:SIGNATURE_LENGTH]


def snippet(text: str, limit: int = 80) -> str:
    cleaned = normalize_whitespace(text).rstrip(" .!?;:,")
    if len(cleaned) <= limit:
        return cleaned
    cut = cleaned[:limit]
    if " " in cut:
        cut = cut.rsplit(" ", 1)[0]
    return cut.rstrip(" .!?;:,")
