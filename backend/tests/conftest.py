"""Shared fixtures: isolated database and sink paths, fake collaborators, turn factory."""

import asyncio
import os
import random
import tempfile
from pathlib import Path

# Must run before any project module reads its environment at import time.
_TMP_ROOT = Path(tempfile.mkdtemp(prefix="nova-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_ROOT / 'nova-test.db'}"
os.environ["NOVA_LOG_DIR"] = str(_TMP_ROOT / ".nova")
os.environ["NOVA_DECISION_LOG_PATH"] = str(_TMP_ROOT / ".nova" / "gate-decisions.jsonl")
os.environ["MODEL_CALL_LOG"] = str(_TMP_ROOT / "model_call_log.txt")
os.environ["MODEL_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""

import pytest

from cooldown_store import CooldownStore
from telemetry import DecisionRecorder
from voice_engine import GatePipeline, Turn
from voice_modes import VoiceMode


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeModel:
    """Async model caller that records every call."""

    def __init__(self, *replies, error=None, delay: float = 0.0):
        self.replies = list(replies) or ["Okay."]
        self.error = error
        self.delay = delay
        self.calls = []

    async def __call__(self, messages, system_prompt):
        self.calls.append((messages, system_prompt))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.replies[min(len(self.calls), len(self.replies)) - 1]


class MemoryLister:
    def __init__(self, memories=None, error=None):
        self.memories = list(memories or [])
        self.error = error
        self.calls = 0

    def __call__(self, user_id):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.memories)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def cooldowns():
    return CooldownStore()


@pytest.fixture
def recorder(tmp_path):
    return DecisionRecorder(log_path=tmp_path / "gate-decisions.jsonl", max_per_user=200, durable=True)


@pytest.fixture
def pipeline(cooldowns, recorder, rng, clock):
    return GatePipeline(cooldowns=cooldowns, recorder=recorder, rng=rng, clock=clock)


@pytest.fixture
def make_turn():
    def _make(
        text=None,
        messages=None,
        mode=VoiceMode.QUIET,
        model=None,
        conversation_id="c1",
        user_id="1",
        allow_memory_references=False,
        list_memories=None,
    ):
        if messages is None:
            messages = [{"role": "user", "content": text}]
        return Turn(
            user_id=user_id,
            conversation_id=conversation_id,
            messages=messages,
            system_prompt="You are Nova.",
            mode=mode,
            call_model=model if model is not None else FakeModel(),
            list_memories=list_memories,
            allow_memory_references=allow_memory_references,
            model_name="test-model",
        )

    return _make
