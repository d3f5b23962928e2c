"""
Error handling for LLM provider calls.

Provider failures carry the provider name and model so a terminal stream
error can be logged with context while only the message reaches the client.
"""

from __future__ import annotations


class LLMError(Exception):
    """Base LLM error with provider context."""

    def __init__(
        self,
        message: str,
        provider: str,
        model: str,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.status_code = status_code


class ProviderError(LLMError):
    """Any failure raised by the external provider while streaming a reply."""
    pass
