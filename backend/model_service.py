"""
Model caller for the voice engine's single completion per turn.
"""

import os
import random
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import httpx
from pydantic import BaseModel, ConfigDict


# --------------- Model error helpers ---------------
MODEL_ERROR_PREFIX = "__MODEL_ERR__"


def _model_error(error_type: str, detail: str = "") -> str:
    """Return a sentinel string indicating a model call failure."""
    return f"{MODEL_ERROR_PREFIX}{error_type}|{detail}"


def is_model_error(content) -> bool:
    return isinstance(content, str) and content.startswith(MODEL_ERROR_PREFIX)


def parse_model_error(content: str) -> dict:
    """Parse a model error sentinel into {type, detail}."""
    if not is_model_error(content):
        return {}
    rest = content[len(MODEL_ERROR_PREFIX):]
    parts = rest.split("|", 1)
    return {"type": parts[0], "detail": parts[1] if len(parts) > 1 else ""}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    try:
        return float(raw)
    except Exception:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except Exception:
        return default


class ModelConfig(BaseModel):
    """Model runtime configuration."""

    model_config = ConfigDict(protected_namespaces=())

    model_name: str = "gpt-4o-mini"
    api_url: str = "https://api.openai.com/v1/chat/completions"
    api_key: Optional[str] = None
    temperature: float = 0.7
    max_tokens: int = 300
    http_timeout_sec: float = 60.0


# Canned replies for keyless development; they still pass through post-processing.
MOCK_RESPONSES = [
    "I'm here with you. What's on your mind?",
    "That's a thoughtful observation. Tell me more about how that makes you feel.",
    "I appreciate you saying that. It sounds like this is important to you.",
    "I'm curious what brought this up. We can look at it together if you want.",
    "Thank you for sharing that with me. I'm listening.",
]


class ModelService:
    """OpenAI-compatible chat completion client. One HTTP request per call, no retries."""

    def __init__(self, config: Optional[ModelConfig] = None, rng: Optional[random.Random] = None):
        self.config = config or ModelConfig(
            api_url=os.getenv("MODEL_API_URL", "https://api.openai.com/v1/chat/completions"),
            api_key=os.getenv("MODEL_API_KEY") or os.getenv("OPENAI_API_KEY"),
            model_name=os.getenv("MODEL_NAME", "gpt-4o-mini"),
            temperature=_env_float("MODEL_TEMPERATURE", 0.7),
            max_tokens=max(32, min(2000, _env_int("MODEL_MAX_TOKENS", 300))),
            http_timeout_sec=max(5.0, min(300.0, _env_float("MODEL_HTTP_TIMEOUT_SEC", 60.0))),
        )
        self.call_log_path = os.getenv("MODEL_CALL_LOG", "model_call_log.txt")
        self.rng = rng or random.Random()

    @property
    def is_mock(self) -> bool:
        return not (self.config.api_key or "").strip()

    def _append_call_log(self, stage: str, status: str, detail: str = "", model_name: Optional[str] = None) -> None:
        try:
            p = Path(__file__).resolve().parent / self.call_log_path
            p.parent.mkdir(parents=True, exist_ok=True)
            ts = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
            line = f"[{ts}] stage={stage} status={status} model={model_name or self.config.model_name} detail={detail}\n"
            with open(p, "a", encoding="utf-8") as f:
                f.write(line)
        except Exception:
            # Logging must never block generation path.
            pass

    async def complete(
        self,
        messages: list[dict],
        system_prompt: str,
        model_name: Optional[str] = None,
    ) -> str:
        """Return the assistant text, or a model error sentinel on failure."""
        model = (model_name or "").strip() or self.config.model_name
        if self.is_mock:
            self._append_call_log("complete", "mock", f"messages={len(messages or [])}", model)
            return self.rng.choice(MOCK_RESPONSES)

        payload = {
            "model": model,
            "messages": [{"role": "system", "content": system_prompt or ""}]
            + [{"role": m.get("role"), "content": m.get("content")} for m in (messages or [])],
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }
        self._append_call_log("complete", "start", f"messages={len(messages or [])}", model)
        try:
            async with httpx.AsyncClient(timeout=self.config.http_timeout_sec) as client:
                response = await client.post(
                    self.config.api_url,
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {self.config.api_key}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.TimeoutException as exc:
            self._append_call_log("complete", "timeout", str(exc)[:200], model)
            return _model_error("timeout", str(exc)[:200])
        except httpx.HTTPError as exc:
            self._append_call_log("complete", "error", str(exc)[:200], model)
            return _model_error("network", str(exc)[:200])

        if response.status_code != 200:
            self._append_call_log("complete", "fail", f"http={response.status_code}", model)
            return _model_error("http_error", f"http={response.status_code}")

        try:
            result = response.json()
            choices = result.get("choices", []) if isinstance(result, dict) else []
            content = (choices[0].get("message", {}).get("content") or "").strip() if choices else ""
        except Exception as exc:
            self._append_call_log("complete", "error", f"bad_json {str(exc)[:160]}", model)
            return _model_error("bad_response", str(exc)[:200])

        if not content:
            self._append_call_log("complete", "fail", "empty_content", model)
            return _model_error("empty", "no content in choices")
        self._append_call_log("complete", "ok", "http=200", model)
        return content
