"""Server-Sent Events framing shared by the relay and the streaming client.

Every frame is a single ``data: <json>`` line followed by a blank line.
Frame ``type`` is one of ``start``, ``chunk``, ``end`` or ``error``.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, Literal


FrameType = Literal["start", "chunk", "end", "error"]

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
SSE_MEDIA_TYPE = "text/event-stream"

_DATA_PREFIX = "data:"


def sse_message(payload: Mapping[str, Any]) -> str:
    return f"data: {json.dumps(dict(payload), ensure_ascii=False, default=str)}\n\n"


def sse_start() -> str:
    return sse_message({"type": "start"})


def sse_chunk(content: str) -> str:
    return sse_message({"type": "chunk", "content": content})


def sse_end(**fields: Any) -> str:
    return sse_message({"type": "end", **fields})


def sse_error(message: str) -> str:
    return sse_message({"type": "error", "message": message})


class SSEFrameParser:
    """Incremental ``data:`` line extractor.

    Network reads split frames at arbitrary points; a trailing partial line
    is held back until a later ``feed()`` completes it, or until ``close()``.
    """

    def __init__(self) -> None:
        self._pending = ""

    def feed(self, text: str) -> list[str]:
        buf = self._pending + text
        lines = buf.split("\n")
        self._pending = lines.pop()
        return [d for d in (self._data_of(line) for line in lines) if d is not None]

    def close(self) -> list[str]:
        tail, self._pending = self._pending, ""
        data = self._data_of(tail)
        return [data] if data is not None else []

    @staticmethod
    def _data_of(line: str) -> str | None:
        line = line.rstrip("\r")
        if not line.startswith(_DATA_PREFIX):
            return None
        value = line[len(_DATA_PREFIX) :]
        return value[1:] if value.startswith(" ") else value
