import uuid
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


Role = Literal["system", "user", "assistant"]
Importance = Literal["low", "medium", "high"]
MemoryType = Literal["personal", "preference", "fact", "context"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


class CamelModel(BaseModel):
    """Snake_case attributes, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatMessage(CamelModel):
    id: str = Field(default_factory=lambda: new_id("msg"))
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    model: str | None = None
    reactions: dict[str, int] = Field(default_factory=dict)
    edited: bool = False


class MemoryItem(CamelModel):
    id: str = Field(default_factory=lambda: new_id("mem"))
    type: MemoryType
    title: str
    content: str
    tags: set[str] = Field(default_factory=set)
    importance: Importance = "medium"
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ChatSettings(CamelModel):
    # Any string is accepted; unknown ids are routed to the default provider.
    # Unset fields fall back to the configured defaults.
    model: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, ge=100, le=8192)
    system_prompt: str | None = None


class ChatRequest(CamelModel):
    message: str | None = None
    settings: ChatSettings | None = None
    conversation_history: list[ChatMessage] = Field(default_factory=list)
    user_memories: list[MemoryItem] = Field(default_factory=list)
    user_id: str | None = None
