"""
Translation between the application's message list and a provider call.

The pure helpers here decide what the provider sees: the first system
message becomes the system instruction, every other message except the last
becomes history, and the most recent user message is the current turn.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from contextlib import aclosing

import structlog

from streamchat.llm.base import HistoryEntry, ProviderTurn, StreamingProvider
from streamchat.llm.exceptions import ProviderError
from streamchat.models import ChatMessage

logger = structlog.get_logger(__name__)


def find_last_user_index(messages: Sequence[ChatMessage]) -> int | None:
    """Return the index of the most recent ``user`` message, or None."""
    for index in range(len(messages) - 1, -1, -1):
        if messages[index].role == "user":
            return index
    return None


def extract_system_instruction(messages: Sequence[ChatMessage]) -> str | None:
    """Return the first system message's content; later ones are ignored."""
    for message in messages:
        if message.role == "system":
            return message.content
    return None


def build_provider_turn(messages: Sequence[ChatMessage]) -> ProviderTurn:
    """Split a validated conversation into the provider's call shape."""
    non_system = [m for m in messages if m.role != "system"]

    last_user = find_last_user_index(non_system)
    current = non_system[last_user].content if last_user is not None else ""

    # Everything before the last turn
    history = [
        HistoryEntry(role="model" if m.role == "assistant" else "user", text=m.content)
        for m in non_system[:-1]
    ]

    return ProviderTurn(
        message=current,
        history=history,
        system_instruction=extract_system_instruction(messages),
    )


class ProviderAdapter:
    """Wraps a provider behind a uniform async sequence of text deltas."""

    def __init__(self, provider: StreamingProvider):
        self.provider = provider

    @property
    def model(self) -> str:
        return self.provider.model

    async def stream(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        """
        Yield reply fragments for the conversation.

        Raises:
            ProviderError: For any failure raised by the provider, chained to
                the original exception. Cancellation passes through untouched.
        """
        turn = build_provider_turn(messages)
        logger.debug(
            "Provider turn built",
            provider=self.provider.name,
            history=len(turn.history),
            has_system=turn.system_instruction is not None,
        )

        try:
            async with aclosing(self.provider.stream_reply(turn)) as fragments:
                async for fragment in fragments:
                    yield fragment
        except ProviderError:
            raise
        except Exception as e:
            # google-genai APIError exposes the HTTP status as ``code``
            code = getattr(e, "code", None)
            raise ProviderError(
                str(e),
                provider=self.provider.name,
                model=self.provider.model,
                status_code=code if isinstance(code, int) else None,
            ) from e
