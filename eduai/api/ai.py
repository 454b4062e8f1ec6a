# pyright: reportMissingImports=false
# pyright: reportUnknownArgumentType=false
# pyright: reportCallInDefaultInitializer=false
"""AI relay endpoints.

Every endpoint answers with an SSE stream. Credits are charged before the
provider is called; a failure after the charge (chat setup, the provider,
or an empty material) refunds it and ends the stream with an ``error`` frame.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from eduai.api.deps import get_current_user
from eduai.core.config import settings
from eduai.db import chat as chat_db
from eduai.db.ai_requests import AIRequestLog, log_ai_request
from eduai.db.credits import InsufficientCreditsError, add_credits, charge_for
from eduai.db.pool import OptimizedPool, Row
from eduai.db.session import get_pool
from eduai.metrics.prometheus import AIStreamMetricLabels, record_ai_stream
from eduai.services.ai_provider import AIProvider, ChatMessage, LLMStreamCapture
from eduai.services.materials import (
    chat_messages,
    lesson_plan_messages,
    parse_lesson_plan_response,
    parse_quiz_response,
    parse_worksheet_response,
    quiz_messages,
    worksheet_messages,
)
from eduai.streaming.sse import SSE_HEADERS, SSE_MEDIA_TYPE, sse_chunk, sse_end, sse_error, sse_start


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])

_GENERIC_FAILURE = "Chyba při generování odpovědi"
_EMPTY_RESPONSE = "AI nevrátila žádný obsah, zkuste to znovu"


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=4000)
    session_id: str | None = None
    conversation_id: str | None = None


class WorksheetRequest(BaseModel):
    topic: str = Field(..., min_length=1, max_length=500)
    question_count: int | None = Field(None, ge=1, le=50)
    difficulty: str | None = Field(None, max_length=40)
    teaching_style: str | None = Field(None, max_length=80)
    custom_instructions: str | None = Field(None, max_length=2000)


class LessonPlanRequest(BaseModel):
    subject: str = Field(..., min_length=1, max_length=100)
    grade_level: str = Field(..., min_length=1, max_length=50)
    title: str | None = Field(None, min_length=1, max_length=200)
    duration: str | None = Field(None, min_length=1, max_length=20)
    assignment_description: str | None = Field(None, min_length=1, max_length=1000)
    teaching_methods: list[str] | None = None
    available_resources: list[str] | None = None
    custom_instructions: str | None = Field(None, max_length=500)


class QuizRequest(BaseModel):
    title: str | None = Field(None, min_length=3, max_length=200)
    subject: str | None = Field(None, min_length=2, max_length=100)
    grade_level: str | None = Field(None, min_length=2, max_length=100)
    assignment_description: str | None = Field(None, min_length=10, max_length=1000)
    question_count: int | None = Field(None, ge=5, le=100)
    time_limit: str | None = Field(None, min_length=1, max_length=50)
    question_types: list[str] | None = None
    custom_instructions: str | None = Field(None, max_length=500)


def get_ai_provider() -> AIProvider:
    return AIProvider.from_settings(settings)


@dataclass
class _Relay:
    """Token stream plus the bookkeeping shared by every AI endpoint."""

    pool: OptimizedPool
    provider: AIProvider
    user_id: str
    request_type: str
    material_type: str
    temperature: float
    error: str | None = None

    async def charge(self, description: str) -> tuple[int, int] | str:
        try:
            charge = await asyncio.to_thread(charge_for, self.pool, self.user_id, self.material_type, description)
        except InsufficientCreditsError as e:
            return str(e)
        return charge.credits_used, charge.balance

    async def refund(self, amount: int) -> int:
        row = await asyncio.to_thread(
            add_credits,
            self.pool,
            self.user_id,
            amount,
            f"Refund: {self.material_type} generation failed",
            transaction_type="refund",
        )
        return int(row["balance_after"])

    async def tokens(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        """Relay provider tokens; a provider failure ends the stream and sets ``error``."""
        capture = LLMStreamCapture()
        started = time.perf_counter()
        chunks = 0
        try:
            async for token in self.provider.stream_chat(messages, temperature=self.temperature, capture=capture):
                chunks += 1
                yield token
        except Exception as e:
            logger.exception("AI provider stream failed (%s)", self.request_type)
            self.error = type(e).__name__

        latency_ms = int((time.perf_counter() - started) * 1000)
        record_ai_stream(
            labels=AIStreamMetricLabels(
                provider=capture.provider, model=capture.model, request_type=self.request_type
            ),
            latency_ms=latency_ms,
            output_chunks=chunks,
            error=self.error,
        )
        _ = await asyncio.to_thread(
            log_ai_request,
            self.pool,
            AIRequestLog(
                user_id=self.user_id,
                request_type=self.request_type,
                provider_id=capture.provider,
                model_used=capture.model,
                success=self.error is None,
                processing_time_ms=latency_ms,
                tokens_used=capture.total_tokens,
                error=self.error,
            ),
        )


async def _chat_stream(relay: _Relay, payload: ChatRequest) -> AsyncIterator[str]:
    session_id = payload.session_id or payload.conversation_id
    session: Row | None = None
    if session_id:
        session = await asyncio.to_thread(chat_db.get_session_for_user, relay.pool, session_id, relay.user_id)
        if session is None:
            yield sse_error("Konverzace nebyla nalezena")
            return

    charged = await relay.charge("Chat message")
    if isinstance(charged, str):
        yield sse_error(charged)
        return
    credits_used, balance = charged

    try:
        if session is None:
            session = await asyncio.to_thread(
                chat_db.create_session, relay.pool, relay.user_id, chat_db.session_title(payload.message)
            )
        sid = str(session["id"])
        history_rows = await asyncio.to_thread(chat_db.list_messages, relay.pool, sid)
        _ = await asyncio.to_thread(chat_db.add_message, relay.pool, sid, "user", payload.message, credits_used)
    except Exception:
        logger.exception("chat setup failed for user %s", relay.user_id)
        _ = await relay.refund(credits_used)
        yield sse_error(_GENERIC_FAILURE)
        return

    history = [(str(r["type"]), str(r["content"])) for r in history_rows]

    yield sse_start()

    parts: list[str] = []
    async for token in relay.tokens(chat_messages(history, payload.message)):
        parts.append(token)
        yield sse_chunk(token)

    if relay.error is not None:
        _ = await relay.refund(credits_used)
        yield sse_error(_GENERIC_FAILURE)
        return

    reply = "".join(parts)
    _ = await asyncio.to_thread(chat_db.add_message, relay.pool, sid, "assistant", reply, 0)
    yield sse_end(content=reply, credits_used=credits_used, credits_balance=balance, session_id=sid)


@dataclass(frozen=True)
class _Material:
    result_key: str
    description: str
    messages: list[ChatMessage]
    parse: Callable[[str], dict[str, Any]]


async def _material_stream(relay: _Relay, material: _Material) -> AsyncIterator[str]:
    charged = await relay.charge(material.description)
    if isinstance(charged, str):
        yield sse_error(charged)
        return
    credits_used, balance = charged

    yield sse_start()

    parts: list[str] = []
    async for token in relay.tokens(material.messages):
        parts.append(token)
        yield sse_chunk(token)

    raw = "".join(parts)
    if relay.error is not None or not raw.strip():
        _ = await relay.refund(credits_used)
        yield sse_error(_GENERIC_FAILURE if relay.error is not None else _EMPTY_RESPONSE)
        return

    yield sse_end(
        file_type=material.result_key,
        credits_used=credits_used,
        credits_balance=balance,
        **{material.result_key: material.parse(raw)},
    )


def _sse(stream: AsyncIterator[str]) -> StreamingResponse:
    return StreamingResponse(stream, media_type=SSE_MEDIA_TYPE, headers=SSE_HEADERS)


def _material_relay(pool: OptimizedPool, provider: AIProvider, user: Row, material_type: str) -> _Relay:
    return _Relay(
        pool=pool,
        provider=provider,
        user_id=str(user["id"]),
        request_type=material_type.replace("-", "_"),
        material_type=material_type,
        temperature=settings.openai_temperature_materials,
    )


@router.post("/chat")
async def ai_chat(
    payload: ChatRequest,
    user: Row = Depends(get_current_user),
    pool: OptimizedPool = Depends(get_pool),
    provider: AIProvider = Depends(get_ai_provider),
) -> StreamingResponse:
    relay = _Relay(
        pool=pool,
        provider=provider,
        user_id=str(user["id"]),
        request_type="chat",
        material_type="chat",
        temperature=settings.openai_temperature,
    )
    return _sse(_chat_stream(relay, payload))


@router.post("/generate-worksheet")
async def ai_generate_worksheet(
    payload: WorksheetRequest,
    user: Row = Depends(get_current_user),
    pool: OptimizedPool = Depends(get_pool),
    provider: AIProvider = Depends(get_ai_provider),
) -> StreamingResponse:
    material = _Material(
        result_key="worksheet",
        description="Worksheet generation",
        messages=worksheet_messages(
            topic=payload.topic,
            question_count=payload.question_count,
            difficulty=payload.difficulty,
            teaching_style=payload.teaching_style,
            custom_instructions=payload.custom_instructions,
        ),
        parse=lambda raw: parse_worksheet_response(raw, topic=payload.topic),
    )
    return _sse(_material_stream(_material_relay(pool, provider, user, "worksheet"), material))


@router.post("/generate-lesson-plan")
async def ai_generate_lesson_plan(
    payload: LessonPlanRequest,
    user: Row = Depends(get_current_user),
    pool: OptimizedPool = Depends(get_pool),
    provider: AIProvider = Depends(get_ai_provider),
) -> StreamingResponse:
    material = _Material(
        result_key="lesson_plan",
        description="Lesson plan generation",
        messages=lesson_plan_messages(
            subject=payload.subject,
            grade_level=payload.grade_level,
            title=payload.title,
            duration=payload.duration,
            assignment_description=payload.assignment_description,
            teaching_methods=payload.teaching_methods,
            available_resources=payload.available_resources,
            custom_instructions=payload.custom_instructions,
        ),
        parse=lambda raw: parse_lesson_plan_response(
            raw, title=payload.title or payload.subject, subject=payload.subject
        ),
    )
    return _sse(_material_stream(_material_relay(pool, provider, user, "lesson-plan"), material))


@router.post("/generate-quiz")
async def ai_generate_quiz(
    payload: QuizRequest,
    user: Row = Depends(get_current_user),
    pool: OptimizedPool = Depends(get_pool),
    provider: AIProvider = Depends(get_ai_provider),
) -> StreamingResponse:
    material = _Material(
        result_key="quiz",
        description="Quiz generation",
        messages=quiz_messages(
            title=payload.title,
            subject=payload.subject,
            grade_level=payload.grade_level,
            assignment_description=payload.assignment_description,
            question_count=payload.question_count,
            time_limit=payload.time_limit,
            question_types=payload.question_types,
            custom_instructions=payload.custom_instructions,
        ),
        parse=lambda raw: parse_quiz_response(raw, title=payload.title or "", subject=payload.subject or ""),
    )
    return _sse(_material_stream(_material_relay(pool, provider, user, "quiz"), material))
