"""Read-only diagnostics and the caller's gate decision log."""

import os
import platform
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from models import User
from deps import get_cooldowns, get_current_user, get_recorder
from cooldown_store import CooldownStore
from telemetry import DecisionRecorder
from voice_engine import stage_order

router = APIRouter(prefix="/api/diagnostics", tags=["diagnostics"])

POLICY = {
    "noHiddenBackgroundCognition": True,
    "reflection": {"mode": "user-invoked-only"},
    "memory": {"mode": "opt-in-only"},
    "artifacts": {"mode": "off"},
}


@router.get("")
async def get_diagnostics(
    request: Request,
    user: User = Depends(get_current_user),
    recorder: DecisionRecorder = Depends(get_recorder),
    cooldowns: CooldownStore = Depends(get_cooldowns),
):
    """Runtime facts and guarantees. Contains no message text, prompts or memory content."""
    user_key = str(user.id)
    last = recorder.last(user_key)
    latest = recorder.last_global()
    started_at = getattr(request.app.state, "started_at", time.time())
    return {
        "ok": True,
        "now": datetime.now(timezone.utc).isoformat(),
        "uptimeSec": int(max(0.0, time.time() - started_at)),
        "env": os.getenv("NOVA_ENV", "development"),
        "build": {
            "version": request.app.version,
            "python": platform.python_version(),
        },
        "policy": {**POLICY, "gateOrder": stage_order(request.app.state.pipeline.stages)},
        "decisionLog": {
            "durable": recorder.durable,
            "file": recorder.log_path.name,
            "maxPerUser": recorder.max_per_user,
            "count": recorder.count(user_key),
            "last": last.to_public() if last else None,
            "lastAnyAt": latest[1].ts if latest else None,
        },
        "cooldowns": cooldowns.snapshot_for_user(user_key),
    }


@router.get("/decisions")
async def list_decisions(
    limit: int = 20,
    user: User = Depends(get_current_user),
    recorder: DecisionRecorder = Depends(get_recorder),
):
    n = max(1, min(int(limit or 20), recorder.max_per_user))
    return {"decisions": [r.to_public() for r in recorder.recent(str(user.id), n)]}


@router.get("/decisions/summary")
async def decisions_summary(
    hours: int = 24,
    limit: int = 6,
    user: User = Depends(get_current_user),
    recorder: DecisionRecorder = Depends(get_recorder),
):
    return recorder.read_summary(str(user.id), hours=hours, limit=limit)


@router.delete("/decisions")
async def clear_decisions(
    user: User = Depends(get_current_user),
    recorder: DecisionRecorder = Depends(get_recorder),
):
    recorder.clear(str(user.id))
    return {"ok": True, "cleared": True}
