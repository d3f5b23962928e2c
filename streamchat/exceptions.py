"""
Application error taxonomy.

Pre-stream errors (invalid request, configuration) are answered with a
normal JSON response. Errors after a stream has opened are converted into a
terminal ``error`` frame. Client-side decode failures and user aborts are
kept distinct so an abort is never displayed as a failure.
"""

from __future__ import annotations

from typing import Any


class ChatStreamError(Exception):
    """Base class for streamchat errors."""


class InvalidRequestError(ChatStreamError):
    """Request body is malformed, oversized or empty."""

    def __init__(self, message: str, details: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.details = details or []


class ConfigurationError(ChatStreamError, ValueError):
    """Required configuration (e.g. the provider credential) is missing or invalid."""


class DecodeError(ChatStreamError):
    """A frame could not be decoded into a stream event."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DecodeError):
            return NotImplemented
        return str(self) == str(other) and self.raw == other.raw

    __hash__ = ChatStreamError.__hash__


class StreamFailedError(ChatStreamError):
    """The server reported an error or the stream ended abnormally."""


class ClosedTwiceError(ChatStreamError, RuntimeError):
    """A stream response was closed more than once."""


class IntegrityViolationError(ChatStreamError):
    """A persistence operation would break a foreign-key relationship."""
