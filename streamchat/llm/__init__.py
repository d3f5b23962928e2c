"""
LLM provider integration.

This package provides:
- A provider protocol producing async sequences of text fragments
- Message-list to provider-turn translation
- Provider error wrapping
"""

from __future__ import annotations

from .adapter import (
    ProviderAdapter,
    build_provider_turn,
    extract_system_instruction,
    find_last_user_index,
)
from .base import HistoryEntry, ProviderTurn, StreamingProvider
from .exceptions import LLMError, ProviderError

__all__ = [
    "HistoryEntry",
    "LLMError",
    "ProviderAdapter",
    "ProviderError",
    "ProviderTurn",
    "StreamingProvider",
    "build_provider_turn",
    "extract_system_instruction",
    "find_last_user_index",
]
