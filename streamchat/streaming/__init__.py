"""
Stream framing for chat replies.

This package contains:
- SSE frame encoding of stream events
- Buffered decoding with carry-over across reads
"""

from .codec import DecodedItem, FrameDecoder, decode, encode

__all__ = ["DecodedItem", "FrameDecoder", "decode", "encode"]
