# pyright: reportMissingImports=false
# pyright: reportUnknownMemberType=false
from __future__ import annotations

import codecs
import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, cast

import httpx

from eduai.client.errors import StreamingRequestError
from eduai.streaming.sse import SSEFrameParser


logger = logging.getLogger(__name__)

_DEFAULT_ERROR = "An error occurred"


@dataclass
class StreamingCallbacks:
    on_start: Callable[[], None] | None = None
    on_chunk: Callable[[str], None] | None = None
    on_end: Callable[[dict[str, Any]], None] | None = None
    on_error: Callable[[str], None] | None = None


# Keys an ``end`` frame must carry before ``on_end`` fires.
_CHAT_END_KEYS = ("credits_used", "credits_balance", "session_id")
_WORKSHEET_END_KEYS = ("worksheet", "credits_used", "credits_balance")


class StreamingClient:
    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout_s: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not token:
            raise ValueError("No authentication token found")
        self._base_url = base_url.rstrip("/") + "/"
        self._token = token
        self._timeout_s = timeout_s
        self._transport = transport

    async def send_message_stream(
        self,
        message: str,
        session_id: str | None = None,
        conversation_id: str | None = None,
        callbacks: StreamingCallbacks | None = None,
    ) -> None:
        body = {"message": message, "session_id": session_id, "conversation_id": conversation_id}
        await self._stream(
            "ai/chat",
            body,
            callbacks or StreamingCallbacks(),
            end_keys=_CHAT_END_KEYS,
            failure="Failed to send message",
        )

    async def generate_worksheet_stream(
        self, params: Mapping[str, Any], callbacks: StreamingCallbacks | None = None
    ) -> None:
        await self._stream(
            "ai/generate-worksheet",
            dict(params),
            callbacks or StreamingCallbacks(),
            end_keys=_WORKSHEET_END_KEYS,
            failure="Failed to generate worksheet",
        )

    async def _stream(
        self,
        path: str,
        body: dict[str, Any],
        callbacks: StreamingCallbacks,
        *,
        end_keys: tuple[str, ...],
        failure: str,
    ) -> None:
        headers = {"Authorization": f"Bearer {self._token}", "Accept": "text/event-stream"}
        async with httpx.AsyncClient(
            base_url=self._base_url, timeout=self._timeout_s, transport=self._transport
        ) as client:
            async with client.stream("POST", path, json=body, headers=headers) as resp:
                if not resp.is_success:
                    _ = await resp.aread()
                    raise StreamingRequestError(resp.status_code, _error_message(resp) or failure)

                decoder = codecs.getincrementaldecoder("utf-8")()
                parser = SSEFrameParser()
                async for raw in resp.aiter_bytes():
                    for data in parser.feed(decoder.decode(raw)):
                        _dispatch(data, callbacks, end_keys)
                for data in parser.feed(decoder.decode(b"", final=True)) + parser.close():
                    _dispatch(data, callbacks, end_keys)


def _error_message(resp: httpx.Response) -> str | None:
    try:
        body = cast(object, resp.json())
    except ValueError:
        return None
    if isinstance(body, dict):
        err = cast(dict[str, object], body).get("error")
        if isinstance(err, str) and err:
            return err
    return None


def _dispatch(data: str, callbacks: StreamingCallbacks, end_keys: tuple[str, ...]) -> None:
    try:
        frame = cast(object, json.loads(data))
    except ValueError:
        logger.warning("Error parsing streaming data: %.200s", data)
        return
    if not isinstance(frame, dict):
        logger.warning("Ignoring non-object streaming frame")
        return
    msg = cast(dict[str, Any], frame)

    typ = msg.get("type")
    if typ == "start":
        if callbacks.on_start:
            callbacks.on_start()
    elif typ == "chunk":
        content = msg.get("content")
        if content and callbacks.on_chunk:
            callbacks.on_chunk(str(content))
    elif typ == "end":
        if all(msg.get(k) is not None for k in end_keys) and callbacks.on_end:
            callbacks.on_end({k: v for k, v in msg.items() if k != "type"})
    elif typ == "error":
        if callbacks.on_error:
            callbacks.on_error(str(msg.get("message") or _DEFAULT_ERROR))
