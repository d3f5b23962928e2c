"""Streaming LLM chat: frame codec, provider adapter, SSE endpoint and client."""

__version__ = "0.1.0"
