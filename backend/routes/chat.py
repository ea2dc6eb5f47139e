"""Chat completions routed through the voice engine gates."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from models import User
from schemas import (
    AssistantMessage,
    ChatChoice,
    ChatCompletionRequest,
    ChatCompletionResponse,
    VoiceEngineMeta,
)
from deps import get_current_user, get_model_service, get_pipeline
from model_service import ModelService
from voice_engine import CHAT_ROUTE, GatePipeline, Turn

router = APIRouter(prefix="/api/chat", tags=["chat"])

DEFAULT_CONVERSATION_ID = "default"


def _invalid_request(details) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "Invalid request", "details": details})


def _error_details(exc: ValidationError) -> list[dict]:
    return [
        {"loc": [str(p) for p in err.get("loc", ())], "msg": str(err.get("msg", ""))}
        for err in exc.errors()
    ]


@router.post("/completions", response_model=ChatCompletionResponse)
async def chat_completions(
    request: Request,
    user: User = Depends(get_current_user),
    pipeline: GatePipeline = Depends(get_pipeline),
    model_service: ModelService = Depends(get_model_service),
):
    try:
        body = await request.json()
    except Exception:
        return _invalid_request([{"loc": ["body"], "msg": "Body must be a JSON object"}])
    try:
        payload = ChatCompletionRequest.model_validate(body)
    except ValidationError as exc:
        return _invalid_request(_error_details(exc))

    settings = request.app.state.settings_reader.read(user.id)
    memory_reader = request.app.state.memory_reader
    model_name = settings.model_name or model_service.config.model_name

    async def call_model(messages: list[dict], system_prompt: str) -> str:
        return await model_service.complete(messages, system_prompt, model_name=model_name)

    turn = Turn(
        user_id=str(user.id),
        conversation_id=(payload.conversation_id or "").strip() or DEFAULT_CONVERSATION_ID,
        messages=[m.model_dump() for m in payload.messages],
        system_prompt=(payload.system_prompt or "").strip() or settings.system_prompt,
        mode=settings.voice_mode,
        call_model=call_model,
        list_memories=memory_reader.list_memories,
        allow_memory_references=settings.allow_memory_references,
        route=CHAT_ROUTE,
        model_name=model_name,
    )
    outcome = await pipeline.evaluate(turn)

    return ChatCompletionResponse(
        mock=model_service.is_mock,
        voice_engine=VoiceEngineMeta(
            short_circuited=outcome.short_circuited,
            rewritten=outcome.rewritten,
            mode=settings.voice_mode.value,
        ),
        choices=[ChatChoice(message=AssistantMessage(content=outcome.response))],
    )
