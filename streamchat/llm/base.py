# streamchat/llm/base.py
from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Literal, Protocol

ProviderRole = Literal["user", "model"]


@dataclass(frozen=True)
class HistoryEntry:
    """One prior turn in the provider's role vocabulary."""
    role: ProviderRole
    text: str


@dataclass(frozen=True)
class ProviderTurn:
    """Provider call shape: history, latest turn and optional system instruction."""
    message: str
    history: list[HistoryEntry] = field(default_factory=list)
    system_instruction: str | None = None


class StreamingProvider(Protocol):
    """
    Capability every LLM provider offers: given a turn, produce a finite,
    ordered, cancellable sequence of text fragments that may fail at any point.
    Providers holding network resources may also define ``async aclose()``;
    the server calls it on shutdown.
    """

    name: str
    model: str

    def stream_reply(self, turn: ProviderTurn) -> AsyncIterator[str]:
        """Yield reply fragments in order."""
        ...
