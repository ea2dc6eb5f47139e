"""Memory reads and the continuity scorer used by the reflection gate."""

import os
from typing import Callable, NamedTuple, Optional

from sqlalchemy.orm import Session

from cooldown_store import ConversationCooldowns, CooldownEntry, CooldownKind
from models import Memory
from text_utils import snippet


def _env_float(name: str, default: float, min_value: float, max_value: float) -> float:
    raw = os.getenv(name)
    try:
        value = float(raw) if raw not in (None, "") else default
    except Exception:
        value = default
    return max(min_value, min(max_value, value))


CONTINUITY_COOLDOWN_SEC = _env_float("VOICE_CONTINUITY_COOLDOWN_SEC", 600.0, 0.0, 86400.0)
CONTINUITY_SNIPPET_CHARS = 80
MEMORY_SCAN_LIMIT = 250

FOCUS_TERMS = (
    "stress",
    "tired",
    "exhausted",
    "worried",
    "worry",
    "anxious",
    "sad",
    "angry",
    "upset",
    "lonely",
    "alone",
    "overwhelmed",
)


class MemorySnapshot(NamedTuple):
    id: str
    content: str
    tags: tuple[str, ...] = ()


class ContinuityResult(NamedTuple):
    clause: Optional[str]
    memory_id: Optional[str]
    memory_reads: int


NO_CONTINUITY = ContinuityResult(clause=None, memory_id=None, memory_reads=0)


class MemoryReader:
    """Read-only view of a user's stored memories."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def list_memories(self, user_id) -> list[MemorySnapshot]:
        db = self.session_factory()
        try:
            rows = (
                db.query(Memory)
                .filter(Memory.user_id == int(user_id))
                .order_by(Memory.created_at.desc(), Memory.id.desc())
                .limit(MEMORY_SCAN_LIMIT)
                .all()
            )
            return [
                MemorySnapshot(id=str(r.id), content=r.content or "", tags=tuple(r.tags or ()))
                for r in rows
            ]
        finally:
            db.close()


def focus_terms_in(message: str) -> list[str]:
    low = (message or "").lower()
    return [term for term in FOCUS_TERMS if term in low]


def score_memory(memory: MemorySnapshot, terms: list[str]) -> int:
    corpus = f"{memory.content} {' '.join(memory.tags)}".lower()
    return sum(1 for term in terms if term in corpus)


def pick_memory(
    memories: list[MemorySnapshot],
    terms: list[str],
    exclude_id: Optional[str] = None,
) -> Optional[MemorySnapshot]:
    best: Optional[MemorySnapshot] = None
    best_score = 0
    for memory in memories:
        if exclude_id is not None and str(memory.id) == str(exclude_id):
            continue
        score = score_memory(memory, terms)
        if score > best_score:
            best, best_score = memory, score
    return best


def continuity_clause(memory: MemorySnapshot) -> Optional[str]:
    text = snippet(memory.content, CONTINUITY_SNIPPET_CHARS).lower()
    if not text:
        return None
    return f"You mentioned {text} before."


class ContinuityScorer:
    """Picks at most one stored memory to reference alongside a reflection line."""

    def __init__(self, cooldown_sec: float = CONTINUITY_COOLDOWN_SEC):
        self.cooldown_sec = cooldown_sec

    def compose(
        self,
        user_id,
        message: str,
        list_memories: Optional[Callable[[str], list]],
        cooldowns: ConversationCooldowns,
        now: float,
    ) -> ContinuityResult:
        """Caller must hold the conversation lock behind ``cooldowns``.

        Never raises: any failure means no continuity clause.
        """
        if list_memories is None:
            return NO_CONTINUITY
        previous = cooldowns.get(CooldownKind.CONTINUITY)
        if previous is not None and not previous.elapsed(now, self.cooldown_sec):
            return NO_CONTINUITY
        terms = focus_terms_in(message)
        if not terms:
            return NO_CONTINUITY

        try:
            memories = [_as_snapshot(m) for m in (list_memories(user_id) or [])]
        except Exception:
            return ContinuityResult(clause=None, memory_id=None, memory_reads=1)

        exclude_id = previous.last_memory_id if previous is not None else None
        chosen = pick_memory(memories, terms, exclude_id=exclude_id)
        clause = continuity_clause(chosen) if chosen is not None else None
        if clause is None:
            return ContinuityResult(clause=None, memory_id=None, memory_reads=1)

        cooldowns.put(CooldownKind.CONTINUITY, CooldownEntry(last_at=now, last_memory_id=str(chosen.id)))
        return ContinuityResult(clause=clause, memory_id=str(chosen.id), memory_reads=1)


def _as_snapshot(raw) -> MemorySnapshot:
    if isinstance(raw, MemorySnapshot):
        return raw
    if isinstance(raw, dict):
        return MemorySnapshot(
            id=str(raw.get("id")),
            content=str(raw.get("content") or ""),
            tags=tuple(raw.get("tags") or ()),
        )
    return MemorySnapshot(
        id=str(getattr(raw, "id")),
        content=str(getattr(raw, "content", "") or ""),
        tags=tuple(getattr(raw, "tags", None) or ()),
    )
