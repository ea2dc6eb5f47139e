"""Voice engine: ordered response gates, one model call at most, local post-processing.

Each inbound turn walks the stages in order. The first stage that matches
answers locally. If none matches, the model is called exactly once and its text
is sanitized and trimmed without another call. Every evaluation produces one
DecisionRecord.
"""

import asyncio
import inspect
import os
import random
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, NamedTuple, Optional, Union

from cooldown_store import CooldownEntry, CooldownKind, CooldownStore
from intent import (
    has_user_provided_context,
    is_asking_about_capabilities,
    is_casual_probe,
    is_ellipsis_only,
    is_explicit_invite,
    is_greeting,
    is_ultra_short,
    last_user_message,
    user_messages,
)
from memory_service import NO_CONTINUITY, ContinuityScorer
from model_service import is_model_error, parse_model_error
from policy import (
    CASUAL_PROBE_RESPONSES,
    ELLIPSIS_RESPONSES,
    EXPLICIT_INVITE_RESPONSE,
    MODEL_FAILURE_RESPONSE,
    ULTRA_SHORT_RESPONSES,
    build_enhanced_system_prompt,
    find_banned_phrase,
    greeting_pool,
    pick_response,
    sanitize_banned_phrase,
)
from reflection import classify_bucket, line_pool
from telemetry import DecisionRecord, DecisionRecorder, DecisionStage
from text_utils import count_sentences, message_signature, trim_to_sentences, word_count
from voice_modes import VoiceMode, get_response_style


def _env_float(name: str, default: float, min_value: float, max_value: float) -> float:
    raw = os.getenv(name)
    try:
        value = float(raw) if raw not in (None, "") else default
    except Exception:
        value = default
    return max(min_value, min(max_value, value))


REFLECTION_COOLDOWN_SEC = _env_float("VOICE_REFLECTION_COOLDOWN_SEC", 45.0, 0.0, 3600.0)
MODEL_TIMEOUT_SEC = _env_float("VOICE_MODEL_TIMEOUT_SEC", 45.0, 1.0, 600.0)
REFLECTION_MIN_WORDS = 3

CHAT_ROUTE = "/api/chat/completions"

ModelCaller = Callable[[list[dict], str], Union[Awaitable[str], str]]
MemoryLister = Callable[[str], list]


@dataclass
class Turn:
    user_id: str
    conversation_id: str
    messages: list[dict]
    system_prompt: str
    mode: VoiceMode
    call_model: ModelCaller
    list_memories: Optional[MemoryLister] = None
    allow_memory_references: bool = False
    route: str = CHAT_ROUTE
    model_name: Optional[str] = None


@dataclass(frozen=True)
class GateOutcome:
    response: str
    short_circuited: bool
    rewritten: bool
    stage: DecisionStage
    reason: Optional[str] = None
    model_call_count: int = 0
    memory_read_count: int = 0
    continuity: bool = False


class StageMatch(NamedTuple):
    response: str
    reason: Optional[str] = None
    memory_read_count: int = 0
    continuity: bool = False


@dataclass
class GateContext:
    """Per-evaluation facts shared by the stages."""

    message: str
    recent_user_messages: list[str]
    now: float
    rng: random.Random
    cooldowns: CooldownStore
    continuity: ContinuityScorer
    reflection_cooldown_sec: float


class ModelCallBudgetExceeded(RuntimeError):
    pass


class ModelCallBudget:
    """One-shot allowance for the external model call within a single evaluation."""

    def __init__(self, limit: int = 1):
        self.limit = limit
        self.used = 0

    def spend(self) -> None:
        if self.used >= self.limit:
            raise ModelCallBudgetExceeded(f"model call budget of {self.limit} exhausted")
        self.used += 1


# --------------- Gate stages ---------------


class GateStage:
    kind: DecisionStage

    def try_match(self, turn: Turn, ctx: GateContext) -> Optional[StageMatch]:
        raise NotImplementedError


class EllipsisStage(GateStage):
    kind = DecisionStage.ELLIPSIS

    def try_match(self, turn: Turn, ctx: GateContext) -> Optional[StageMatch]:
        if not is_ellipsis_only(ctx.message):
            return None
        return StageMatch(pick_response(ELLIPSIS_RESPONSES, ctx.rng), reason="ellipsis")


class UltraShortStage(GateStage):
    kind = DecisionStage.ULTRA_SHORT

    def try_match(self, turn: Turn, ctx: GateContext) -> Optional[StageMatch]:
        if not is_ultra_short(ctx.message):
            return None
        return StageMatch(pick_response(ULTRA_SHORT_RESPONSES, ctx.rng), reason="tiny_ack")


class CasualProbeStage(GateStage):
    kind = DecisionStage.CASUAL_PROBE

    def try_match(self, turn: Turn, ctx: GateContext) -> Optional[StageMatch]:
        if not is_casual_probe(ctx.message):
            return None
        return StageMatch(pick_response(CASUAL_PROBE_RESPONSES, ctx.rng), reason="presence_check")


class GreetingStage(GateStage):
    kind = DecisionStage.GREETING

    def try_match(self, turn: Turn, ctx: GateContext) -> Optional[StageMatch]:
        if not is_greeting(ctx.message):
            return None
        return StageMatch(pick_response(greeting_pool(turn.mode), ctx.rng), reason=f"greeting_{turn.mode.value}")


class ExplicitInviteStage(GateStage):
    kind = DecisionStage.EXPLICIT_INVITE

    def try_match(self, turn: Turn, ctx: GateContext) -> Optional[StageMatch]:
        if not is_explicit_invite(ctx.message):
            return None
        return StageMatch(EXPLICIT_INVITE_RESPONSE, reason="invites_conversation")


class ReflectionStage(GateStage):
    """Short mirrored line for emotional turns, optionally led by one memory reference."""

    kind = DecisionStage.REFLECTION

    def try_match(self, turn: Turn, ctx: GateContext) -> Optional[StageMatch]:
        if word_count(ctx.message) < REFLECTION_MIN_WORDS:
            return None
        bucket = classify_bucket(ctx.message)
        if bucket is None:
            return None

        signature = message_signature(ctx.message)
        continuity = NO_CONTINUITY
        with ctx.cooldowns.conversation(turn.user_id, turn.conversation_id) as slot:
            previous = slot.get(CooldownKind.REFLECTION)
            if previous is not None:
                if not previous.elapsed(ctx.now, ctx.reflection_cooldown_sec):
                    return None
                if previous.last_message_signature == signature:
                    return None
            slot.put(CooldownKind.REFLECTION, CooldownEntry(last_at=ctx.now, last_message_signature=signature))
            line = pick_response(line_pool(bucket, ctx.recent_user_messages), ctx.rng)
            if turn.allow_memory_references:
                continuity = ctx.continuity.compose(
                    user_id=turn.user_id,
                    message=ctx.message,
                    list_memories=turn.list_memories,
                    cooldowns=slot,
                    now=ctx.now,
                )

        response = f"{continuity.clause} {line}" if continuity.clause else line
        return StageMatch(
            response,
            reason=bucket.key,
            memory_read_count=continuity.memory_reads,
            continuity=continuity.clause is not None,
        )


DEFAULT_STAGES: tuple[GateStage, ...] = (
    EllipsisStage(),
    UltraShortStage(),
    CasualProbeStage(),
    GreetingStage(),
    ExplicitInviteStage(),
    ReflectionStage(),
)


def stage_order(stages: tuple[GateStage, ...] = DEFAULT_STAGES) -> list[str]:
    return [s.kind.value for s in stages] + [DecisionStage.MODEL_CALL.value]


# --------------- Pipeline ---------------


class GatePipeline:
    def __init__(
        self,
        cooldowns: CooldownStore,
        recorder: DecisionRecorder,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
        stages: tuple[GateStage, ...] = DEFAULT_STAGES,
        continuity: Optional[ContinuityScorer] = None,
        reflection_cooldown_sec: float = REFLECTION_COOLDOWN_SEC,
        model_timeout_sec: float = MODEL_TIMEOUT_SEC,
    ):
        self.cooldowns = cooldowns
        self.recorder = recorder
        self.rng = rng or random.Random()
        self.clock = clock
        self.stages = tuple(stages)
        self.continuity = continuity or ContinuityScorer()
        self.reflection_cooldown_sec = reflection_cooldown_sec
        self.model_timeout_sec = model_timeout_sec

    async def evaluate(self, turn: Turn) -> GateOutcome:
        message = last_user_message(turn.messages)
        ctx = GateContext(
            message=message,
            recent_user_messages=user_messages(turn.messages),
            now=self.clock(),
            rng=self.rng,
            cooldowns=self.cooldowns,
            continuity=self.continuity,
            reflection_cooldown_sec=self.reflection_cooldown_sec,
        )

        outcome = self._short_circuit(turn, ctx)
        if outcome is None:
            outcome = await self._model_path(turn, ctx)
        self._record(turn, outcome)
        return outcome

    def _short_circuit(self, turn: Turn, ctx: GateContext) -> Optional[GateOutcome]:
        for stage in self.stages:
            try:
                match = stage.try_match(turn, ctx)
            except Exception:
                # A broken stage falls through to the next one.
                match = None
            if match is None:
                continue
            return GateOutcome(
                response=match.response,
                short_circuited=True,
                rewritten=False,
                stage=stage.kind,
                reason=match.reason,
                memory_read_count=match.memory_read_count,
                continuity=match.continuity,
            )
        return None

    async def _model_path(self, turn: Turn, ctx: GateContext) -> GateOutcome:
        budget = ModelCallBudget(limit=1)
        text, failure = await self._call_model_once(turn, budget)
        if text is None:
            return GateOutcome(
                response=MODEL_FAILURE_RESPONSE,
                short_circuited=False,
                rewritten=False,
                stage=DecisionStage.MODEL_CALL,
                reason=failure,
                model_call_count=budget.used,
            )

        final_text, rewritten, notes = self._post_process(turn, ctx, text)
        return GateOutcome(
            response=final_text,
            short_circuited=False,
            rewritten=rewritten,
            stage=DecisionStage.MODEL_CALL,
            reason="+".join(notes) or None,
            model_call_count=budget.used,
        )

    async def _invoke_model(self, turn: Turn, prompt: str):
        call = turn.call_model
        if inspect.iscoroutinefunction(call) or inspect.iscoroutinefunction(getattr(call, "__call__", None)):
            return await call(turn.messages, prompt)
        # Blocking callers run in a worker thread.
        result = await asyncio.to_thread(call, turn.messages, prompt)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _call_model_once(self, turn: Turn, budget: ModelCallBudget) -> tuple[Optional[str], Optional[str]]:
        prompt = build_enhanced_system_prompt(turn.system_prompt, turn.mode)
        budget.spend()
        try:
            result = await asyncio.wait_for(self._invoke_model(turn, prompt), timeout=self.model_timeout_sec)
        except asyncio.TimeoutError:
            return None, "model_timeout"
        except Exception:
            return None, "model_error"

        if is_model_error(result):
            error_type = parse_model_error(result).get("type") or "unknown"
            return None, "model_timeout" if error_type == "timeout" else f"model_error:{error_type}"
        if not isinstance(result, str) or not result.strip():
            return None, "model_error:empty"
        return result.strip(), None

    def _post_process(self, turn: Turn, ctx: GateContext, text: str) -> tuple[str, bool, list[str]]:
        notes: list[str] = []
        rewritten = False

        phrase = find_banned_phrase(text, is_asking_about_capabilities(ctx.message))
        if phrase:
            sanitized = sanitize_banned_phrase(text, phrase)
            if sanitized != text:
                text = sanitized
                rewritten = True
                notes.append("sanitized")

        style = get_response_style(turn.mode)
        if not has_user_provided_context(turn.messages) and count_sentences(text) > style.max_sentences:
            text = trim_to_sentences(text, style.max_sentences)
            notes.append("truncated")
        return text, rewritten, notes

    def _record(self, turn: Turn, outcome: GateOutcome) -> None:
        try:
            self.recorder.record(
                turn.user_id,
                DecisionRecord(
                    route=turn.route,
                    stage=outcome.stage,
                    reason=outcome.reason,
                    short_circuited=outcome.short_circuited,
                    rewritten=outcome.rewritten,
                    model_call_count=outcome.model_call_count,
                    memory_read_count=outcome.memory_read_count,
                    voice_mode=turn.mode.value,
                    allow_memory_references=turn.allow_memory_references,
                    continuity=outcome.continuity,
                    model=turn.model_name if outcome.model_call_count else None,
                ),
            )
        except Exception:
            # Telemetry trouble never changes the reply.
            pass
