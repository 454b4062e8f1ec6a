# pyright: reportMissingImports=false

from __future__ import annotations

import json

from eduai.streaming.sse import SSEFrameParser, sse_chunk, sse_end, sse_error, sse_start


def test_frame_helpers_encode_single_data_line() -> None:
    assert sse_start() == 'data: {"type": "start"}\n\n'
    assert sse_error("Chyba") == 'data: {"type": "error", "message": "Chyba"}\n\n'

    frame = sse_chunk("Příklad ")
    assert frame.startswith("data: ") and frame.endswith("\n\n")
    assert "Příklad" in frame
    assert json.loads(frame[len("data: ") :]) == {"type": "chunk", "content": "Příklad "}

    end = json.loads(sse_end(credits_used=1, credits_balance=9, session_id="s1")[len("data: ") :])
    assert end == {"type": "end", "credits_used": 1, "credits_balance": 9, "session_id": "s1"}


def test_parser_emits_complete_frames() -> None:
    parser = SSEFrameParser()
    out = parser.feed(sse_start() + sse_chunk("a"))
    assert [json.loads(d)["type"] for d in out] == ["start", "chunk"]
    assert parser.close() == []


def test_parser_keeps_partial_line_across_feeds() -> None:
    frame = sse_chunk("hello world")
    parser = SSEFrameParser()

    assert parser.feed(frame[:7]) == []
    assert parser.feed(frame[7:20]) == []
    out = parser.feed(frame[20:])
    assert len(out) == 1
    assert json.loads(out[0]) == {"type": "chunk", "content": "hello world"}


def test_parser_byte_by_byte() -> None:
    stream = sse_start() + sse_chunk("x") + sse_end(credits_used=1)
    parser = SSEFrameParser()
    out: list[str] = []
    for ch in stream:
        out.extend(parser.feed(ch))
    assert [json.loads(d)["type"] for d in out] == ["start", "chunk", "end"]


def test_parser_close_flushes_unterminated_line() -> None:
    parser = SSEFrameParser()
    assert parser.feed('data: {"type": "end"}') == []
    assert parser.close() == ['{"type": "end"}']
    assert parser.close() == []


def test_parser_ignores_non_data_lines_and_handles_crlf() -> None:
    parser = SSEFrameParser()
    out = parser.feed(': keepalive\r\nevent: message\r\ndata:{"type": "start"}\r\n\r\n')
    assert out == ['{"type": "start"}']
