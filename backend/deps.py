"""Shared FastAPI dependencies used across route modules."""

from fastapi import Request

from database import SessionLocal
from auth import get_current_user_factory, security
from cooldown_store import CooldownStore
from telemetry import DecisionRecorder
from model_service import ModelService
from voice_engine import GatePipeline


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


get_current_user = get_current_user_factory(get_db)


def get_pipeline(request: Request) -> GatePipeline:
    return request.app.state.pipeline


def get_recorder(request: Request) -> DecisionRecorder:
    return request.app.state.recorder


def get_model_service(request: Request) -> ModelService:
    return request.app.state.model_service


def get_cooldowns(request: Request) -> CooldownStore:
    return request.app.state.cooldowns


__all__ = ["get_db", "security", "get_current_user", "get_pipeline", "get_recorder", "get_model_service", "get_cooldowns"]
