"""HTTP server: the streaming endpoint and its per-request handler."""

from .app import create_app
from .handler import ChatStreamHandler, StreamState

__all__ = ["ChatStreamHandler", "StreamState", "create_app"]
