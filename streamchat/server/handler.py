"""
Per-request streaming handler.

A handler validates one conversation, then produces the frame sequence for
its reply: ``meta``, any number of ``token`` frames, and exactly one
terminal ``done`` or ``error``. Once the stream has opened no exception
escapes; provider failures become the terminal ``error`` frame.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from enum import Enum
from typing import Any

from pydantic import ValidationError

from streamchat.exceptions import ClosedTwiceError, InvalidRequestError
from streamchat.llm.adapter import ProviderAdapter
from streamchat.logging_utils import ContextualLogger, ErrorClassifier
from streamchat.models import (
    ChatRequest,
    DoneEvent,
    ErrorEvent,
    MetaEvent,
    StreamEvent,
    TokenEvent,
)
from streamchat.streaming.codec import encode

UNKNOWN_ERROR = "Unknown error"


class StreamState(Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    REJECTED = "rejected"
    OPENED = "opened"
    STREAMING = "streaming"
    CLOSED_DONE = "closed_done"
    CLOSED_ERROR = "closed_error"


_TRANSITIONS: dict[StreamState, set[StreamState]] = {
    StreamState.IDLE: {StreamState.VALIDATING},
    StreamState.VALIDATING: {StreamState.REJECTED, StreamState.OPENED},
    StreamState.OPENED: {StreamState.STREAMING},
    StreamState.STREAMING: {StreamState.CLOSED_DONE, StreamState.CLOSED_ERROR},
}

TERMINAL_STATES = frozenset(
    {StreamState.REJECTED, StreamState.CLOSED_DONE, StreamState.CLOSED_ERROR}
)


class ChatStreamHandler:
    """Drives one conversation turn from validation to a closed stream."""

    def __init__(
        self,
        adapter_factory: Callable[[], ProviderAdapter],
        request_id: str | None = None,
    ):
        self._adapter_factory = adapter_factory
        self.request_id = request_id or uuid.uuid4().hex
        self.state = StreamState.IDLE
        self.request: ChatRequest | None = None
        self.tokens_emitted = 0
        self._closed = False
        self._log = ContextualLogger({"request_id": self.request_id})

    def _transition(self, new_state: StreamState) -> None:
        if new_state not in _TRANSITIONS.get(self.state, set()):
            raise RuntimeError(
                f"Invalid stream transition {self.state.value} -> {new_state.value}"
            )
        self.state = new_state

    def validate(self, payload: Any) -> ChatRequest:
        """
        Validate the decoded request body.

        Raises:
            InvalidRequestError: With pydantic's error list as details.
        """
        self._transition(StreamState.VALIDATING)
        try:
            request = ChatRequest.model_validate(payload)
        except ValidationError as e:
            self._transition(StreamState.REJECTED)
            details = e.errors(
                include_url=False, include_context=False, include_input=False
            )
            self._log.info("Request rejected", error_count=len(details))
            raise InvalidRequestError("Invalid request", details=details) from e

        self.request = request
        self._transition(StreamState.OPENED)
        self._log = self._log.bind(messages=len(request.messages))
        return request

    def _close(self, final_state: StreamState) -> None:
        if self._closed:
            raise ClosedTwiceError(f"Stream {self.request_id} closed twice")
        self._closed = True
        self._transition(final_state)
        self._log.info(
            "Stream closed", state=final_state.value, tokens=self.tokens_emitted
        )

    async def events(self) -> AsyncIterator[StreamEvent]:
        """Yield the stream's events; always ends with one terminal event."""
        if self.request is None:
            raise RuntimeError("Stream must be validated before it is opened")
        self._transition(StreamState.STREAMING)

        final_state = StreamState.CLOSED_ERROR
        try:
            try:
                adapter = self._adapter_factory()
                self._log = self._log.bind(model=adapter.model)
                yield MetaEvent(model=adapter.model)

                async with aclosing(adapter.stream(self.request.messages)) as fragments:
                    async for fragment in fragments:
                        if not fragment:
                            continue
                        self.tokens_emitted += 1
                        yield TokenEvent(token=fragment)
            except Exception as e:
                _, category = ErrorClassifier.classify_error(e)
                self._log.error(
                    "Stream failed",
                    error_category=category,
                    error_type=type(e).__name__,
                    error_message=str(e),
                )
                yield ErrorEvent(message=str(e) or UNKNOWN_ERROR)
            else:
                final_state = StreamState.CLOSED_DONE
                yield DoneEvent()
        finally:
            self._close(final_state)

    async def frames(self) -> AsyncIterator[bytes]:
        """Encoded form of :meth:`events`, one SSE frame per write."""
        async with aclosing(self.events()) as events:
            async for event in events:
                yield encode(event)
