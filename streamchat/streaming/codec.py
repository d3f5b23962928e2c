"""
SSE frame codec for stream events.

Each event travels as one frame: ``data: <json>`` lines terminated by a
blank line. Decoding keeps whatever trails the last delimiter so a frame
split across network reads is reassembled on the next read.
"""

from __future__ import annotations

import codecs
import json
import re

from pydantic import ValidationError

from streamchat.exceptions import DecodeError
from streamchat.models import StreamEvent, parse_event

DELIMITER = "\n\n"
DATA_FIELD = "data"

_BYTE_DELIMITER = re.compile(rb"\r?\n\r?\n")

DecodedItem = StreamEvent | DecodeError


def encode(event: StreamEvent) -> bytes:
    """Serialize one event as a complete SSE frame."""
    payload = json.dumps(
        event.model_dump(mode="json"), ensure_ascii=False, separators=(",", ":")
    )
    return f"{DATA_FIELD}: {payload}{DELIMITER}".encode()


def _record_payload(record: str) -> str | None:
    """Join the data lines of one record; None when it carries no data."""
    data_lines = []
    for line in record.split("\n"):
        if not line or line.startswith(":"):
            continue  # comment / keep-alive

        field, sep, value = line.partition(":")
        if field != DATA_FIELD:
            continue  # event:, id:, retry: are not used by this protocol
        if sep and value.startswith(" "):
            value = value[1:]
        data_lines.append(value)

    if not data_lines:
        return None
    return "\n".join(data_lines)


def _decode_record(record: str) -> DecodedItem | None:
    payload = _record_payload(record)
    if payload is None or not payload.strip():
        return None

    try:
        return parse_event(json.loads(payload))
    except json.JSONDecodeError as e:
        return DecodeError(f"JSON decode error: {e}", raw=payload)
    except ValidationError as e:
        return DecodeError(
            f"Unknown stream event: {e.error_count()} validation error(s)",
            raw=payload,
        )


def decode(buffer: str) -> tuple[list[DecodedItem], str]:
    """
    Split an accumulated text buffer into decoded events.

    Returns:
        (items, remainder): ``items`` holds one entry per complete non-empty
        record in order, either a stream event or a ``DecodeError`` for a
        malformed record. ``remainder`` is the trailing incomplete fragment
        to prepend to the next read.
    """
    records = buffer.replace("\r\n", "\n").split(DELIMITER)
    remainder = records.pop()

    items: list[DecodedItem] = []
    for record in records:
        item = _decode_record(record)
        if item is not None:
            items.append(item)
    return items, remainder


class FrameDecoder:
    """
    Incremental decoder holding the carry-over buffer between reads.

    Bytes that are not valid in ``encoding`` spoil only the frame they sit
    in: that frame becomes a ``DecodeError`` item, and decoding resumes
    after its delimiter, possibly in a later read.
    """

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding
        self._bytes = codecs.getincrementaldecoder(encoding)()
        self._buffer = ""
        self._skipping = False
        self._skip_carry = b""

    @property
    def pending(self) -> str:
        """Unconsumed tail: the start of a frame not yet delimited."""
        return self._buffer

    def feed(self, chunk: bytes | str) -> list[DecodedItem]:
        """Append one read and return the events it completed."""
        if isinstance(chunk, str):
            return self._feed_text(chunk)

        items: list[DecodedItem] = []
        data = chunk
        while data:
            if self._skipping:
                data = self._skip_to_next_frame(data)
                continue
            try:
                text = self._bytes.decode(data)
            except UnicodeDecodeError as e:
                spoiled, data = self._invalid_bytes(e)
                items.extend(spoiled)
                continue
            items.extend(self._feed_text(text))
            break
        return items

    def flush(self) -> list[DecodedItem]:
        """Finish the byte stream; an undelimited tail stays in ``pending``."""
        if self._skipping:
            return []
        try:
            text = self._bytes.decode(b"", final=True)
        except UnicodeDecodeError as e:
            self._bytes.reset()
            return [
                DecodeError(
                    f"Truncated {self.encoding} sequence at end of stream: {e.reason}",
                    raw=self._buffer,
                )
            ]
        return self._feed_text(text)

    def _feed_text(self, text: str) -> list[DecodedItem]:
        items, self._buffer = decode(self._buffer + text)
        return items

    def _invalid_bytes(
        self, error: UnicodeDecodeError
    ) -> tuple[list[DecodedItem], bytes]:
        """
        Decode the frames completed before the bad bytes, plus one DecodeError.

        Returns the items and the bytes following the spoiled frame (empty
        while its delimiter has not arrived yet).
        """
        self._bytes.reset()
        # error.object includes bytes the decoder held over from earlier reads
        data = bytes(error.object)
        items = self._feed_text(data[: error.start].decode(self.encoding))
        spoiled_head, self._buffer = self._buffer, ""

        rest = data[error.start:]
        match = _BYTE_DELIMITER.search(rest)
        spoiled = rest if match is None else rest[: match.start()]
        items.append(
            DecodeError(
                f"Invalid {self.encoding} in frame: {error.reason}",
                raw=spoiled_head + spoiled.decode(self.encoding, errors="replace"),
            )
        )

        if match is None:
            self._skipping = True
            self._skip_carry = rest[-3:]
            return items, b""
        return items, rest[match.end():]

    def _skip_to_next_frame(self, data: bytes) -> bytes:
        """Drop the remainder of a spoiled frame; returns what follows it."""
        carry = self._skip_carry
        match = _BYTE_DELIMITER.search(carry + data)
        if match is None:
            self._skip_carry = (carry + data)[-3:]
            return b""
        self._skipping = False
        self._skip_carry = b""
        return data[max(match.end() - len(carry), 0):]
