# streamchat/models.py
"""
Request and stream event models.

The request models validate an inbound conversation before any stream is
opened. The event models are the discriminated union carried by each frame.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

DEFAULT_MODEL = "gemini-2.5-flash-lite"
MAX_MESSAGES = 50
MAX_CONTENT_LENGTH = 25_000

Role = Literal["system", "user", "assistant"]


class ChatMessage(BaseModel):
    """One role-tagged message; position in the request encodes order."""
    model_config = ConfigDict(extra="ignore")

    role: Role
    content: str = Field(min_length=1, max_length=MAX_CONTENT_LENGTH)


class ChatRequest(BaseModel):
    """Full conversation supplied by the caller for one turn."""
    model_config = ConfigDict(extra="ignore")

    messages: list[ChatMessage] = Field(min_length=1, max_length=MAX_MESSAGES)


class MetaEvent(BaseModel):
    type: Literal["meta"] = "meta"
    model: str


class TokenEvent(BaseModel):
    type: Literal["token"] = "token"
    token: str


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str


class DoneEvent(BaseModel):
    type: Literal["done"] = "done"


StreamEvent = Annotated[
    MetaEvent | TokenEvent | ErrorEvent | DoneEvent,
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def parse_event(payload: Any) -> StreamEvent:
    """Validate one decoded JSON payload into a stream event.

    Raises:
        pydantic.ValidationError: If the payload is not a known event.
    """
    return _event_adapter.validate_python(payload)


def is_terminal(event: StreamEvent) -> bool:
    """Return True for events that end a stream (``error`` and ``done``)."""
    return isinstance(event, ErrorEvent | DoneEvent)
