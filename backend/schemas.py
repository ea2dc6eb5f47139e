from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Literal, Optional
from datetime import datetime

# User Schemas
class UserCreate(BaseModel):
    username: str = Field(min_length=1, max_length=100)

class UserResponse(BaseModel):
    id: int
    username: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


# Chat Schemas
class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str

class ChatCompletionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    messages: list[ChatMessage] = Field(min_length=1)
    conversation_id: Optional[str] = Field(default=None, max_length=128)
    system_prompt: Optional[str] = None

class VoiceEngineMeta(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    short_circuited: bool
    rewritten: bool
    mode: str

class AssistantMessage(BaseModel):
    role: str = "assistant"
    content: str

class ChatChoice(BaseModel):
    message: AssistantMessage

class ChatCompletionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    mock: bool
    voice_engine: VoiceEngineMeta
    choices: list[ChatChoice]


# Memory Schemas
class MemoryCreate(BaseModel):
    content: str = Field(min_length=1, max_length=4000)
    tags: list[str] = Field(default_factory=list)
    importance: Literal["low", "medium", "high", "critical"] = "medium"
    source_conversation_id: Optional[str] = None

class MemoryResponse(BaseModel):
    id: int
    content: str
    tags: list[str] = Field(default_factory=list)
    importance: str
    source_conversation_id: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# Settings Schemas
class SettingsUpdate(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    voice_mode: Optional[Literal["quiet", "engaged", "mythic", "blunt"]] = None
    allow_memory_references: Optional[bool] = None
    system_prompt: Optional[str] = None
    model_name: Optional[str] = None

class SettingsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, protected_namespaces=())

    voice_mode: str
    allow_memory_references: bool
    system_prompt: Optional[str] = None
    model_name: Optional[str] = None
    updated_at: Optional[datetime] = None
