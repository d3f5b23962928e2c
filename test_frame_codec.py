#!/usr/bin/env python3
"""
Test SSE frame encoding and buffered decoding.
"""

import json

from streamchat.exceptions import DecodeError
from streamchat.models import DoneEvent, ErrorEvent, MetaEvent, TokenEvent
from streamchat.streaming.codec import FrameDecoder, decode, encode

EVENTS = [
    MetaEvent(model="gemini-2.5-flash-lite"),
    TokenEvent(token="Hel"),
    TokenEvent(token="lo"),
    DoneEvent(),
]


class TestEncode:
    """Test the frame layout produced by encode."""

    def test_encode_token(self):
        frame = encode(TokenEvent(token="Hel"))
        assert frame == b'data: {"type":"token","token":"Hel"}\n\n'

    def test_encode_done(self):
        assert encode(DoneEvent()) == b'data: {"type":"done"}\n\n'

    def test_encode_keeps_newlines_inside_json(self):
        """A token containing a newline must not split the frame."""
        frame = encode(TokenEvent(token="line one\n\nline two"))
        assert frame.count(b"\n\n") == 1
        assert frame.endswith(b"\n\n")

    def test_encode_non_ascii_is_utf8(self):
        frame = encode(TokenEvent(token="héllo ✓"))
        assert "héllo ✓".encode() in frame
        payload = json.loads(frame.decode()[len("data: "):])
        assert payload == {"type": "token", "token": "héllo ✓"}


class TestDecode:
    """Test decode over complete and partial buffers."""

    def test_round_trip(self):
        buffer = b"".join(encode(e) for e in EVENTS).decode()
        items, remainder = decode(buffer)
        assert items == EVENTS
        assert remainder == ""

    def test_partial_frame_is_carried(self):
        items, remainder = decode('data: {"type":"tok')
        assert items == []
        assert remainder == 'data: {"type":"tok'

        items, remainder = decode(remainder + 'en","token":"Hi"}\n\n')
        assert items == [TokenEvent(token="Hi")]
        assert remainder == ""

    def test_malformed_frame_does_not_stop_decoding(self):
        buffer = (
            'data: {"type":"token","token":"a"}\n\n'
            "data: {not json}\n\n"
            'data: {"type":"token","token":"b"}\n\n'
        )
        items, remainder = decode(buffer)

        assert len(items) == 3
        assert items[0] == TokenEvent(token="a")
        assert isinstance(items[1], DecodeError)
        assert "JSON decode error" in str(items[1])
        assert items[1].raw == "{not json}"
        assert items[2] == TokenEvent(token="b")
        assert remainder == ""

    def test_unknown_event_type_is_decode_error(self):
        items, _ = decode('data: {"type":"usage","tokens":3}\n\n')
        assert len(items) == 1
        assert isinstance(items[0], DecodeError)
        assert "Unknown stream event" in str(items[0])

    def test_empty_records_and_comments_are_skipped(self):
        buffer = (
            "\n\n"
            ": keep-alive\n\n"
            'event: message\nid: 7\ndata: {"type":"done"}\n\n'
        )
        items, remainder = decode(buffer)
        assert items == [DoneEvent()]
        assert remainder == ""

    def test_crlf_line_endings(self):
        items, remainder = decode('data: {"type":"done"}\r\n\r\n')
        assert items == [DoneEvent()]
        assert remainder == ""

    def test_multiple_data_lines_are_joined(self):
        buffer = 'data: {"type":"token",\ndata: "token":"x"}\n\n'
        items, _ = decode(buffer)
        assert items == [TokenEvent(token="x")]

    def test_data_without_space(self):
        items, _ = decode('data:{"type":"error","message":"boom"}\n\n')
        assert items == [ErrorEvent(message="boom")]


class TestFrameDecoder:
    """Test incremental decoding across arbitrary read boundaries."""

    def test_split_at_every_byte_offset(self):
        stream = b"".join(encode(e) for e in EVENTS)
        for offset in range(len(stream) + 1):
            decoder = FrameDecoder()
            items = decoder.feed(stream[:offset]) + decoder.feed(stream[offset:])
            items += decoder.flush()
            assert items == EVENTS, f"split at {offset}"
            assert decoder.pending == ""

    def test_multibyte_character_split_across_reads(self):
        frame = encode(TokenEvent(token="✓"))
        split = frame.index("✓".encode()) + 1  # inside the 3-byte sequence

        decoder = FrameDecoder()
        assert decoder.feed(frame[:split]) == []
        assert decoder.feed(frame[split:]) == [TokenEvent(token="✓")]

    def test_byte_at_a_time(self):
        stream = b"".join(encode(e) for e in EVENTS)
        decoder = FrameDecoder()
        items = []
        for i in range(len(stream)):
            items.extend(decoder.feed(stream[i:i + 1]))
        assert items == EVENTS

    def test_undelimited_tail_stays_pending(self):
        decoder = FrameDecoder()
        assert decoder.feed('data: {"type":"done"}') == []
        assert decoder.flush() == []
        assert decoder.pending == 'data: {"type":"done"}'

    def test_accepts_text_chunks(self):
        decoder = FrameDecoder()
        assert decoder.feed('data: {"type":"done"}\n\n') == [DoneEvent()]


class TestInvalidBytes:
    """Test frames carrying bytes that are not valid UTF-8."""

    def test_bad_frame_between_good_frames(self):
        """Frames before and after the bad one are still decoded."""
        decoder = FrameDecoder()
        items = decoder.feed(
            b'data: {"type":"token","token":"a"}\n\n'
            b'data: {"type":"token","token":"\xff"}\n\n'
            b'data: {"type":"done"}\n\n'
        )

        assert len(items) == 3
        assert items[0] == TokenEvent(token="a")
        assert isinstance(items[1], DecodeError)
        assert "Invalid utf-8 in frame" in str(items[1])
        assert items[1].raw == 'data: {"type":"token","token":"\ufffd"}'
        assert items[2] == DoneEvent()
        assert decoder.pending == ""

    def test_bad_frame_spanning_reads(self):
        decoder = FrameDecoder()
        first = decoder.feed(b'data: {"type":"token","token":"a"}\n\ndata: {"x":"\xff')
        assert first[0] == TokenEvent(token="a")
        assert isinstance(first[1], DecodeError)

        # Rest of the spoiled frame is dropped, including a split delimiter
        assert decoder.feed(b'more"}\n') == []
        assert decoder.feed(b'\ndata: {"type":"done"}\n\n') == [DoneEvent()]

    def test_bad_byte_after_held_over_multibyte_prefix(self):
        decoder = FrameDecoder()
        check = "✓".encode()
        assert decoder.feed(b'data: {"type":"token","token":"' + check[:1]) == []

        items = decoder.feed(b"\xff" + b'"}\n\n' + encode(DoneEvent()))

        assert isinstance(items[0], DecodeError)
        assert items[1:] == [DoneEvent()]

    def test_truncated_sequence_at_end_of_stream(self):
        decoder = FrameDecoder()
        assert decoder.feed(b'data: {"type":"token","token":"' + "✓".encode()[:2]) == []

        items = decoder.flush()

        assert len(items) == 1
        assert isinstance(items[0], DecodeError)
        assert "Truncated utf-8" in str(items[0])
