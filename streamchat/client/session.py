"""
Client-side stream consumer.

A ``ChatSession`` holds the visible conversation. Each ``send`` appends the
user message and a single assistant placeholder, posts the history, and
applies decoded frames to the placeholder in arrival order until a terminal
event arrives. ``cancel`` aborts the read and is reported as a cancellation,
never as an error.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

import httpx
import structlog

from streamchat.exceptions import DecodeError, StreamFailedError
from streamchat.logging_utils import ErrorClassifier
from streamchat.models import (
    DoneEvent,
    ErrorEvent,
    MetaEvent,
    Role,
    TokenEvent,
)
from streamchat.streaming.codec import DecodedItem, FrameDecoder

logger = structlog.get_logger(__name__)

DEFAULT_ENDPOINT = "/api/chat/stream"
ERROR_PREFIX = "Error: "


class TurnOutcome(Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ConversationMessage:
    role: Role
    content: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    model: str | None = None
    failed: bool = False


class ChatSession:
    """Conversation state plus the read loop for one streamed turn at a time."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        endpoint: str = DEFAULT_ENDPOINT,
        on_update: Callable[[ConversationMessage], None] | None = None,
        system_prompt: str | None = None,
    ):
        self._client = http_client
        self.endpoint = endpoint
        self.on_update = on_update
        self.messages: list[ConversationMessage] = []
        if system_prompt:
            self.messages.append(ConversationMessage(role="system", content=system_prompt))

        self._reader: asyncio.Task[None] | None = None
        self._abort_requested = False

    @property
    def is_streaming(self) -> bool:
        return self._reader is not None

    def can_send(self, text: str) -> bool:
        return bool(text.strip()) and not self.is_streaming

    def cancel(self) -> bool:
        """Abort the in-flight reply. Returns False when nothing is streaming."""
        if self._reader is None or self._reader.done():
            return False
        self._abort_requested = True
        self._reader.cancel()
        return True

    def _history_payload(self) -> dict[str, list[dict[str, str]]]:
        # Failed and empty (cancelled before any token) replies are not resent
        return {
            "messages": [
                {"role": m.role, "content": m.content}
                for m in self.messages
                if m.content and not m.failed
            ]
        }

    def _notify(self, message: ConversationMessage) -> None:
        if self.on_update is not None:
            self.on_update(message)

    async def send(self, text: str) -> TurnOutcome:
        """
        Stream the assistant's reply to ``text``.

        Raises:
            ValueError: If ``text`` is blank or a reply is already streaming.
        """
        if not self.can_send(text):
            raise ValueError("Nothing to send or a reply is already streaming")

        self.messages.append(ConversationMessage(role="user", content=text.strip()))
        payload = self._history_payload()

        placeholder = ConversationMessage(role="assistant", content="")
        self.messages.append(placeholder)
        self._notify(placeholder)

        self._abort_requested = False
        self._reader = asyncio.create_task(self._consume(payload, placeholder))
        try:
            await self._reader
            return TurnOutcome.COMPLETED
        except asyncio.CancelledError:
            if not self._abort_requested:
                raise
            logger.info("Stream cancelled", message_id=placeholder.id)
            return TurnOutcome.CANCELLED
        except Exception as e:
            _, category = ErrorClassifier.classify_error(e)
            logger.warning(
                "Stream failed",
                message_id=placeholder.id,
                error_category=category,
                error_message=str(e),
            )
            placeholder.content = f"{ERROR_PREFIX}{e}"
            placeholder.failed = True
            self._notify(placeholder)
            return TurnOutcome.FAILED
        finally:
            self._reader = None

    async def _consume(
        self, payload: dict[str, list[dict[str, str]]], placeholder: ConversationMessage
    ) -> None:
        async with self._client.stream("POST", self.endpoint, json=payload) as response:
            if not response.is_success:
                raise StreamFailedError(
                    f"Stream failed with status {response.status_code}"
                )

            decoder = FrameDecoder()
            async for chunk in response.aiter_bytes():
                for item in decoder.feed(chunk):
                    if self._apply(item, placeholder):
                        return

            for item in decoder.flush():
                if self._apply(item, placeholder):
                    return

        raise StreamFailedError("Stream ended before completion")

    def _apply(self, item: DecodedItem, placeholder: ConversationMessage) -> bool:
        """Apply one decoded item; True once the stream completed successfully."""
        if isinstance(item, DecodeError):
            raise item
        if isinstance(item, ErrorEvent):
            raise StreamFailedError(item.message)
        if isinstance(item, DoneEvent):
            return True

        if isinstance(item, TokenEvent):
            placeholder.content += item.token
        elif isinstance(item, MetaEvent):
            placeholder.model = item.model
        self._notify(placeholder)
        return False
