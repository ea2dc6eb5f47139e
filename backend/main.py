from fastapi import FastAPI, Request

from fastapi.middleware.cors import CORSMiddleware

from typing import Optional
import os
import time
import random
import uvicorn

from dotenv import load_dotenv
from pathlib import Path


# Load .env file (model key, database, cooldowns)
env_path = Path(__file__).resolve().parent / ".env"
load_dotenv(dotenv_path=env_path, override=False)


from database import SessionLocal, engine, Base

from cooldown_store import CooldownStore
from memory_service import ContinuityScorer, MemoryReader
from model_service import ModelService
from settings_service import SettingsReader
from telemetry import DecisionRecorder
from voice_engine import GatePipeline

from routes import users_router, chat_router, diagnostics_router, memories_router, settings_router


def _env_origins() -> list[str]:
    raw = os.getenv("NOVA_CORS_ORIGINS", "")
    extra = [o.strip() for o in raw.split(",") if o.strip()]
    return [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://localhost:8000",
        "http://127.0.0.1:8000",
    ] + extra


# Database
Base.metadata.create_all(bind=engine)


app = FastAPI(
    title="Nova API",
    description="Personal companion backend with a gated voice engine",
    version="1.0.0",
)


def configure_state(
    target: FastAPI,
    recorder: Optional[DecisionRecorder] = None,
    model_service: Optional[ModelService] = None,
    rng: Optional[random.Random] = None,
) -> FastAPI:
    """Attach the shared cooldown store, decision recorder and pipeline to the app."""
    cooldowns = CooldownStore()
    recorder = recorder or DecisionRecorder()
    target.state.started_at = time.time()
    target.state.cooldowns = cooldowns
    target.state.recorder = recorder
    target.state.model_service = model_service or ModelService()
    target.state.settings_reader = SettingsReader(SessionLocal)
    target.state.memory_reader = MemoryReader(SessionLocal)
    target.state.pipeline = GatePipeline(
        cooldowns=cooldowns,
        recorder=recorder,
        rng=rng,
        continuity=ContinuityScorer(),
    )
    return target


configure_state(app)


# CORS settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=_env_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(users_router)
app.include_router(chat_router)
app.include_router(diagnostics_router)
app.include_router(memories_router)
app.include_router(settings_router)


@app.middleware("http")
async def utf8_charset_middleware(request: Request, call_next):
    response = await call_next(request)
    ct = response.headers.get("content-type", "")
    if "application/json" in ct and "charset" not in ct:
        response.headers["content-type"] = ct + "; charset=utf-8"
    return response


@app.get("/")
async def root():
    return {
        "message": "Nova API - gated voice engine",
        "version": app.version,
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    uvicorn.run(app, host=os.getenv("NOVA_HOST", "127.0.0.1"), port=int(os.getenv("NOVA_PORT", "8000")))
