# pyright: reportMissingImports=false
# pyright: reportUnknownMemberType=false
from __future__ import annotations

import asyncio
import json
import math
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Protocol, TypedDict, cast
from urllib.parse import urlparse

import httpx

from eduai.core.config import Settings


class ChatMessage(TypedDict):
    role: str
    content: str


@dataclass
class LLMStreamCapture:
    provider: str = "fake"
    model: str = "fake"

    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


async def fake_chat_tokens(text: str) -> AsyncIterator[str]:
    reply = f"AI: {text}"
    words = reply.split(" ")
    for i, word in enumerate(words):
        await asyncio.sleep(0)
        yield word if i == len(words) - 1 else word + " "


def normalize_openai_base_url(raw: str) -> str:
    u = raw.strip()
    if u == "":
        raise ValueError("OPENAI_BASE_URL must not be empty")
    p = urlparse(u)
    if not p.scheme or not p.netloc:
        raise ValueError("OPENAI_BASE_URL must be an absolute URL (e.g. https://api.openai.com/v1)")
    u = u.rstrip("/")
    if not u.endswith("/v1"):
        u = u + "/v1"
    return u


def _clamp_timeout_seconds(raw: float | int | None) -> float:
    t = float(raw) if raw is not None else 60.0
    if not math.isfinite(t) or t <= 0:
        t = 60.0
    return float(max(1.0, min(300.0, t)))


class _SSELineStream(Protocol):
    def aiter_lines(self) -> AsyncIterator[str]: ...


async def iter_sse_data(resp: _SSELineStream) -> AsyncIterator[str]:
    """Yield the joined ``data:`` payload of every event in a line stream."""
    buf: list[str] = []
    async for line in resp.aiter_lines():
        line = str(line)

        if line == "":
            if buf:
                yield "\n".join(buf)
                buf = []
            continue

        if line.startswith("data:"):
            buf.append(line[len("data:") :].lstrip())

    if buf:
        yield "\n".join(buf)


def _extract_delta(obj: dict[str, object]) -> str | None:
    choices_obj = obj.get("choices")
    if not isinstance(choices_obj, list) or not choices_obj:
        return None
    c0_raw = cast(object, choices_obj[0])
    if not isinstance(c0_raw, dict):
        return None
    delta_raw = cast(dict[str, object], c0_raw).get("delta")
    if not isinstance(delta_raw, dict):
        return None
    content_obj = cast(dict[str, object], delta_raw).get("content")
    return content_obj if isinstance(content_obj, str) and content_obj != "" else None


def _capture_usage(obj: dict[str, object], capture: LLMStreamCapture | None) -> None:
    if capture is None:
        return
    usage_obj = obj.get("usage")
    if not isinstance(usage_obj, dict):
        return
    usage = cast(dict[str, object], usage_obj)

    prompt = usage.get("prompt_tokens")
    completion = usage.get("completion_tokens")
    total = usage.get("total_tokens")

    if isinstance(prompt, int) and prompt >= 0:
        capture.prompt_tokens = prompt
    if isinstance(completion, int) and completion >= 0:
        capture.completion_tokens = completion
    if isinstance(total, int) and total >= 0:
        capture.total_tokens = total
    elif capture.prompt_tokens is not None and capture.completion_tokens is not None:
        capture.total_tokens = capture.prompt_tokens + capture.completion_tokens


class AIProvider:
    """Chat completion token stream from an OpenAI-compatible API or a fake."""

    def __init__(
        self,
        *,
        mode: str = "fake",
        base_url: str = "https://api.openai.com/v1",
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
        max_tokens: int = 3000,
        timeout_s: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.mode = mode.strip().lower()
        self.base_url = normalize_openai_base_url(base_url)
        self.model = model if self.mode == "openai" else "fake"
        self._api_key = api_key or ""
        self._max_tokens = int(max_tokens)
        self._timeout_s = _clamp_timeout_seconds(timeout_s)
        self._transport = transport

    @classmethod
    def from_settings(cls, s: Settings) -> AIProvider:
        return cls(
            mode=s.openai_mode,
            base_url=s.openai_base_url,
            api_key=s.openai_api_key,
            model=s.openai_model,
            max_tokens=s.openai_max_tokens,
            timeout_s=s.openai_timeout_seconds,
        )

    @property
    def provider_id(self) -> str:
        return "openai" if self.mode == "openai" else "fake"

    async def stream_chat(
        self,
        messages: Sequence[ChatMessage],
        *,
        temperature: float = 0.7,
        capture: LLMStreamCapture | None = None,
    ) -> AsyncIterator[str]:
        if capture is not None:
            capture.provider = self.provider_id
            capture.model = self.model

        if self.mode != "openai":
            last_user = next((m["content"] for m in reversed(messages) if m["role"] == "user"), "")
            async for t in fake_chat_tokens(last_user):
                yield t
            return

        async for t in self._stream_openai(messages, temperature=temperature, capture=capture):
            yield t

    async def _stream_openai(
        self,
        messages: Sequence[ChatMessage],
        *,
        temperature: float,
        capture: LLMStreamCapture | None,
    ) -> AsyncIterator[str]:
        headers = {"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"}
        payload = {
            "model": self.model,
            "messages": list(messages),
            "stream": True,
            "stream_options": {"include_usage": True},
            "max_tokens": self._max_tokens,
            "temperature": temperature,
        }

        timeout = httpx.Timeout(self._timeout_s, connect=min(10.0, self._timeout_s))
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout, transport=self._transport, trust_env=False
        ) as client:
            async with client.stream("POST", "chat/completions", headers=headers, json=payload) as resp:
                _ = resp.raise_for_status()
                async for data in iter_sse_data(resp):
                    if data.strip() == "[DONE]":
                        return
                    try:
                        obj = cast(object, json.loads(data))
                    except ValueError:
                        continue
                    if not isinstance(obj, dict):
                        continue
                    obj_dict = cast(dict[str, object], obj)
                    _capture_usage(obj_dict, capture)
                    delta = _extract_delta(obj_dict)
                    if delta is not None:
                        yield delta
