"""Gate decision telemetry: per-user ring buffers, JSONL sink, summary reader."""

import json
import os
import threading
from collections import deque
from datetime import datetime, timezone, timedelta
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_BACKEND_DIR = Path(__file__).resolve().parent


def _env_int(name: str, default: int, min_value: int, max_value: int) -> int:
    raw = os.getenv(name)
    try:
        value = int(raw) if raw not in (None, "") else default
    except Exception:
        value = default
    return max(min_value, min(max_value, value))


DECISION_LOG_DIR = Path(os.getenv("NOVA_LOG_DIR") or (_BACKEND_DIR / ".nova"))
DECISION_LOG_PATH = Path(os.getenv("NOVA_DECISION_LOG_PATH") or (DECISION_LOG_DIR / "gate-decisions.jsonl"))
MAX_PER_USER = _env_int("DECISION_LOG_MAX_PER_USER", 200, 10, 5000)


def telemetry_enabled() -> bool:
    return (os.getenv("DECISION_LOG_ENABLED", "1") or "1").strip().lower() in (
        "1", "true", "yes", "on",
    )


class DecisionStage(str, Enum):
    ELLIPSIS = "ellipsis"
    ULTRA_SHORT = "ultra_short"
    CASUAL_PROBE = "casual_probe"
    GREETING = "greeting"
    EXPLICIT_INVITE = "explicit_invite"
    REFLECTION = "reflection"
    MODEL_CALL = "model_call"


class DecisionRecord(BaseModel):
    """One immutable audit entry per inbound turn."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        protected_namespaces=(),
        use_enum_values=True,
    )

    ts: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    route: str
    stage: DecisionStage
    reason: Optional[str] = None
    short_circuited: bool
    rewritten: bool = False
    model_call_count: int = Field(default=0, ge=0, le=1)
    memory_read_count: int = Field(default=0, ge=0)
    voice_mode: Optional[str] = None
    allow_memory_references: Optional[bool] = None
    continuity: bool = False
    model: Optional[str] = None

    def to_public(self) -> dict:
        return self.model_dump(by_alias=True)


class DecisionRecorder:
    """Append-only decision log.

    In memory: a capped deque per user key, oldest entries dropped first.
    On disk: one JSON object per line, mirrored best-effort.
    """

    def __init__(self, log_path: Optional[Path] = None, max_per_user: int = MAX_PER_USER, durable: Optional[bool] = None):
        self.log_path = Path(log_path) if log_path is not None else DECISION_LOG_PATH
        self.max_per_user = max_per_user
        self.durable = telemetry_enabled() if durable is None else durable
        self._buffers: dict[str, deque] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._file_lock = threading.Lock()

    def _slot(self, user_key: str) -> tuple[deque, threading.Lock]:
        with self._registry_lock:
            buf = self._buffers.get(user_key)
            if buf is None:
                buf = deque(maxlen=self.max_per_user)
                self._buffers[user_key] = buf
                self._locks[user_key] = threading.Lock()
            return buf, self._locks[user_key]

    def _existing(self, user_key: str) -> Optional[tuple[deque, threading.Lock]]:
        with self._registry_lock:
            buf = self._buffers.get(user_key)
            if buf is None:
                return None
            return buf, self._locks[user_key]

    def _append_line(self, payload: dict) -> None:
        if not self.durable:
            return
        try:
            with self._file_lock:
                self.log_path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.log_path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(payload, ensure_ascii=False) + "\n")
        except Exception:
            # Durable mirroring must never fail the request.
            pass

    def record(self, user_key: str, record: DecisionRecord) -> DecisionRecord:
        user_key = str(user_key)
        buf, lock = self._slot(user_key)
        with lock:
            buf.append(record)
        self._append_line({"userKey": user_key, **record.to_public()})
        return record

    def recent(self, user_key: str, limit: int = 10) -> list[DecisionRecord]:
        slot = self._existing(str(user_key))
        if slot is None:
            return []
        buf, lock = slot
        with lock:
            items = list(buf)
        n = max(0, int(limit))
        return items[-n:] if n else []

    def last(self, user_key: str) -> Optional[DecisionRecord]:
        items = self.recent(user_key, 1)
        return items[-1] if items else None

    def count(self, user_key: str) -> int:
        slot = self._existing(str(user_key))
        if slot is None:
            return 0
        buf, lock = slot
        with lock:
            return len(buf)

    def last_global(self) -> Optional[tuple[str, DecisionRecord]]:
        with self._registry_lock:
            keys = list(self._buffers.keys())
        best: Optional[tuple[str, DecisionRecord]] = None
        for key in keys:
            record = self.last(key)
            if record is None:
                continue
            if best is None or record.ts > best[1].ts:
                best = (key, record)
        return best

    def clear(self, user_key: str) -> None:
        """User-triggered wipe of this user's entries, in memory and on disk."""
        user_key = str(user_key)
        slot = self._existing(user_key)
        if slot is not None:
            buf, lock = slot
            with lock:
                buf.clear()
        try:
            with self._file_lock:
                if not self.log_path.exists():
                    return
                kept: list[str] = []
                with open(self.log_path, "r", encoding="utf-8") as f:
                    for line in f:
                        raw = (line or "").strip()
                        if not raw:
                            continue
                        try:
                            owner = str(json.loads(raw).get("userKey"))
                        except Exception:
                            owner = None
                        if owner != user_key:
                            kept.append(raw + "\n")
                tmp_path = self.log_path.with_suffix(self.log_path.suffix + ".tmp")
                tmp_path.write_text("".join(kept), encoding="utf-8")
                os.replace(tmp_path, self.log_path)
        except Exception:
            pass

    def read_summary(self, user_key: str, hours: int = 24, limit: int = 6) -> dict:
        h = max(1, min(168, int(hours or 24)))
        n = max(1, min(25, int(limit or 6)))
        now_utc = datetime.now(timezone.utc)
        cutoff = now_utc - timedelta(hours=h)

        stage_counts: dict[str, int] = {}
        reason_counts: dict[str, int] = {}
        recent: deque = deque(maxlen=n)
        parse_errors = 0
        total = 0
        model_calls = 0
        rewrites = 0
        file_exists = self.log_path.exists()

        if file_exists:
            try:
                with open(self.log_path, "r", encoding="utf-8") as f:
                    for line in f:
                        raw = (line or "").strip()
                        if not raw:
                            continue
                        try:
                            item = json.loads(raw)
                        except Exception:
                            parse_errors += 1
                            continue
                        if str(item.get("userKey")) != str(user_key):
                            continue
                        ts = _parse_iso_utc(str(item.get("ts") or ""))
                        if not ts or ts < cutoff:
                            continue
                        total += 1
                        stage = str(item.get("stage") or "unknown")
                        stage_counts[stage] = stage_counts.get(stage, 0) + 1
                        reason = item.get("reason")
                        if reason:
                            reason_counts[str(reason)] = reason_counts.get(str(reason), 0) + 1
                        model_calls += int(item.get("modelCallCount") or 0)
                        if item.get("rewritten"):
                            rewrites += 1
                        recent.append(
                            {
                                "ts": ts.isoformat(),
                                "stage": stage,
                                "reason": reason,
                                "shortCircuited": bool(item.get("shortCircuited")),
                            }
                        )
            except Exception:
                pass

        short_circuits = total - stage_counts.get(DecisionStage.MODEL_CALL.value, 0)
        return {
            "status": "ok",
            "now_utc": now_utc.isoformat(),
            "window_hours": h,
            "telemetry_enabled": self.durable,
            "file_exists": file_exists,
            "file_path": str(self.log_path.name),
            "total": total,
            "stage_counts": stage_counts,
            "reason_counts": reason_counts,
            "model_call_count": model_calls,
            "rewrite_count": rewrites,
            "short_circuit_rate_percent": round((short_circuits / total) * 100.0, 2) if total > 0 else 0.0,
            "recent": list(recent),
            "parse_errors": parse_errors,
        }


def _parse_iso_utc(ts_raw: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(str(ts_raw).replace("Z", "+00:00"))
    except Exception:
        return None
