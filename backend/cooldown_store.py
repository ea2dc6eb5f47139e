"""Per-conversation cooldown state for the reflection and continuity gates."""

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, NamedTuple, Optional


class CooldownKind(str, Enum):
    REFLECTION = "reflection"
    CONTINUITY = "continuity"


class CooldownKey(NamedTuple):
    user_id: str
    conversation_id: str
    kind: CooldownKind


@dataclass(frozen=True)
class CooldownEntry:
    last_at: float
    last_message_signature: Optional[str] = None
    last_memory_id: Optional[str] = None

    def elapsed(self, now: float, cooldown_sec: float) -> bool:
        return (now - self.last_at) >= cooldown_sec


class ConversationCooldowns:
    """View over one conversation's entries; only valid while its lock is held."""

    def __init__(self, entries: dict, user_id: str, conversation_id: str):
        self._entries = entries
        self._user_id = user_id
        self._conversation_id = conversation_id

    def _key(self, kind: CooldownKind) -> CooldownKey:
        return CooldownKey(self._user_id, self._conversation_id, CooldownKind(kind))

    def get(self, kind: CooldownKind) -> Optional[CooldownEntry]:
        return self._entries.get(self._key(kind))

    def put(self, kind: CooldownKind, entry: CooldownEntry) -> None:
        self._entries[self._key(kind)] = entry


class CooldownStore:
    """Keyed timed state, one lock per (user_id, conversation_id).

    Entries are created lazily and never evicted; the map lives as long as the
    process.
    """

    def __init__(self):
        self._entries: dict[CooldownKey, CooldownEntry] = {}
        self._locks: dict[tuple[str, str], threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, user_id: str, conversation_id: str) -> threading.Lock:
        scope = (str(user_id), str(conversation_id))
        with self._registry_lock:
            lock = self._locks.get(scope)
            if lock is None:
                lock = threading.Lock()
                self._locks[scope] = lock
            return lock

    @contextmanager
    def conversation(self, user_id: str, conversation_id: str) -> Iterator[ConversationCooldowns]:
        """Hold the conversation lock so a check-then-update is one atomic step."""
        lock = self._lock_for(user_id, conversation_id)
        with lock:
            yield ConversationCooldowns(self._entries, str(user_id), str(conversation_id))

    def get(self, key: CooldownKey) -> Optional[CooldownEntry]:
        with self.conversation(key.user_id, key.conversation_id) as slot:
            return slot.get(key.kind)

    def put(self, key: CooldownKey, entry: CooldownEntry) -> None:
        with self.conversation(key.user_id, key.conversation_id) as slot:
            slot.put(key.kind, entry)

    def snapshot_for_user(self, user_id: str) -> list[dict]:
        with self._registry_lock:
            scopes = [scope for scope in self._locks if scope[0] == str(user_id)]
        out: list[dict] = []
        for _, conversation_id in sorted(scopes):
            with self.conversation(user_id, conversation_id) as slot:
                for kind in CooldownKind:
                    entry = slot.get(kind)
                    if entry is None:
                        continue
                    item = {"conversationId": conversation_id, "kind": kind.value, "lastAt": entry.last_at}
                    # Signatures are message text; diagnostics must not leak content.
                    if entry.last_memory_id is not None:
                        item["lastMemoryId"] = entry.last_memory_id
                    out.append(item)
        return out
