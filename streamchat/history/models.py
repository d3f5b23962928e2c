# streamchat/history/models.py
from __future__ import annotations

import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, Field

from streamchat.models import DEFAULT_MODEL, Role


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(UTC)


class Assistant(BaseModel):
    """A configured assistant: persona prompt plus the model it defaults to."""
    id: str = Field(default_factory=_new_id)
    name: str
    system_prompt: str
    default_model: str = DEFAULT_MODEL
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class Conversation(BaseModel):
    id: str = Field(default_factory=_new_id)
    title: str
    assistant_id: str
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class StoredMessage(BaseModel):
    id: str = Field(default_factory=_new_id)
    conversation_id: str
    role: Role
    content: str
    created_at: datetime = Field(default_factory=_now)
