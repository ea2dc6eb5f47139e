"""Emotion buckets used by the reflection gate."""

import re
from typing import NamedTuple, Optional

REPEAT_WINDOW = 6
REPEAT_THRESHOLD = 2


class EmotionBucket(NamedTuple):
    key: str
    pattern: re.Pattern
    first_lines: tuple[str, ...]
    repeat_lines: tuple[str, ...]


# Order matters: the first matching bucket wins.
REFLECTION_BUCKETS: tuple[EmotionBucket, ...] = (
    EmotionBucket(
        key="tired",
        pattern=re.compile(r"\b(tired|exhausted|drained|worn out|wiped|sleepy|no energy)\b", re.IGNORECASE),
        first_lines=("Sounds like you're running on empty.", "That kind of tired sits heavy."),
        repeat_lines=("Still running on empty.", "The tired hasn't let up."),
    ),
    EmotionBucket(
        key="stress",
        pattern=re.compile(r"\b(stress(ed|ful)?|overwhelm(ed|ing)?|pressure|too much on my plate)\b", re.IGNORECASE),
        first_lines=("That's a lot to carry.", "Heavy load today."),
        repeat_lines=("Still a lot on you.", "The pressure's still there."),
    ),
    EmotionBucket(
        key="long_day",
        pattern=re.compile(r"\b(long|rough|hard|brutal|awful) day\b", re.IGNORECASE),
        first_lines=("Long one.", "That was a day."),
        repeat_lines=("Another long one.", "Those days keep stacking up."),
    ),
    EmotionBucket(
        key="worry",
        pattern=re.compile(r"\b(worr(y|ied|ying)|anxious|anxiety|nervous|scared|afraid)\b", re.IGNORECASE),
        first_lines=("That worry's loud right now.", "Hard to set that down."),
        repeat_lines=("It's still on your mind.", "That worry keeps circling back."),
    ),
    EmotionBucket(
        key="sadness",
        pattern=re.compile(r"\b(sad|down|low|depressed|heartbroken|crying|miserable)\b", re.IGNORECASE),
        first_lines=("That's a heavy feeling.", "I'm sorry it's like that."),
        repeat_lines=("Still heavy.", "It hasn't lifted yet."),
    ),
    EmotionBucket(
        key="anger",
        pattern=re.compile(r"\b(angry|mad|furious|pissed|annoyed|frustrated|irritated)\b", re.IGNORECASE),
        first_lines=("That would get under anyone's skin.", "Fair to be angry about that."),
        repeat_lines=("Still burning.", "That anger's still there."),
    ),
    EmotionBucket(
        key="loneliness",
        pattern=re.compile(r"\b(lonely|alone|isolated|nobody|no one to talk)\b", re.IGNORECASE),
        first_lines=("I'm here with you.", "You're not alone in this moment."),
        repeat_lines=("Still here with you.", "I haven't gone anywhere."),
    ),
)


def classify_bucket(message: str) -> Optional[EmotionBucket]:
    for bucket in REFLECTION_BUCKETS:
        if bucket.pattern.search(message or ""):
            return bucket
    return None


def is_repeated(bucket: EmotionBucket, recent_user_messages: list[str]) -> bool:
    """Whether the bucket matched at least twice in the recent user window (current turn included)."""
    window = recent_user_messages[-REPEAT_WINDOW:]
    hits = sum(1 for text in window if bucket.pattern.search(text or ""))
    return hits >= REPEAT_THRESHOLD


def line_pool(bucket: EmotionBucket, recent_user_messages: list[str]) -> tuple[str, ...]:
    if is_repeated(bucket, recent_user_messages):
        return bucket.repeat_lines
    return bucket.first_lines
