from __future__ import annotations

import json
import re
from typing import Any, cast

from eduai.services.ai_provider import ChatMessage


CHAT_SYSTEM_PROMPT = (
    "Jsi trpělivý a přátelský asistent pro české učitele a studenty. "
    "Vysvětluj jasně a krok za krokem, vždy odpovídej česky, uváděj praktické příklady "
    "a pokud odpověď neznáš, upřímně to řekni."
)

WORKSHEET_SYSTEM_PROMPT = (
    "Jsi zkušený český učitel. Vytvoř pracovní list v čistém JSON formátu "
    '(pouze JSON, žádný další text) se strukturou: {"title": "...", "subject": "...", '
    '"instructions": "...", "questions": [{"problem": "...", "answer": "..."}]}.'
)

LESSON_PLAN_SYSTEM_PROMPT = (
    "Jsi zkušený český učitel. Vytvoř plán vyučovací hodiny v čistém JSON formátu "
    '(pouze JSON, žádný další text) se strukturou: {"title": "...", "subject": "...", '
    '"grade_level": "...", "duration": "...", "objectives": ["..."], '
    '"activities": [{"name": "...", "time": "...", "description": "..."}], "materials": ["..."]}.'
)

QUIZ_SYSTEM_PROMPT = (
    "Jsi zkušený český učitel. Vytvoř kvíz v čistém JSON formátu "
    '(pouze JSON, žádný další text) se strukturou: {"title": "...", "subject": "...", '
    '"grade_level": "...", "time_limit": "...", "questions": [{"type": "multiple_choice", '
    '"question": "...", "options": ["..."], "answer": "..."}]}.'
)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def chat_messages(history: list[tuple[str, str]], message: str) -> list[ChatMessage]:
    out: list[ChatMessage] = [{"role": "system", "content": CHAT_SYSTEM_PROMPT}]
    out.extend({"role": role, "content": content} for role, content in history)
    out.append({"role": "user", "content": message})
    return out


def worksheet_messages(
    *,
    topic: str,
    question_count: int | None = None,
    difficulty: str | None = None,
    teaching_style: str | None = None,
    custom_instructions: str | None = None,
) -> list[ChatMessage]:
    parts = [f"Vytvoř cvičení na téma: {topic}."]
    if question_count:
        parts.append(f"Počet otázek: {question_count}.")
    if difficulty:
        parts.append(f"Obtížnost: {difficulty}.")
    if teaching_style:
        parts.append(f"Styl výuky: {teaching_style}.")
    if custom_instructions:
        parts.append(custom_instructions.strip())
    return [
        {"role": "system", "content": WORKSHEET_SYSTEM_PROMPT},
        {"role": "user", "content": " ".join(parts)},
    ]


def _joined(label: str, values: list[str] | None) -> str | None:
    items = [v.strip() for v in values or [] if v.strip()]
    return f"{label}: {', '.join(items)}." if items else None


def _material_messages(system_prompt: str, parts: list[str | None]) -> list[ChatMessage]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": " ".join(p for p in parts if p)},
    ]


def lesson_plan_messages(
    *,
    subject: str,
    grade_level: str,
    title: str | None = None,
    duration: str | None = None,
    assignment_description: str | None = None,
    teaching_methods: list[str] | None = None,
    available_resources: list[str] | None = None,
    custom_instructions: str | None = None,
) -> list[ChatMessage]:
    return _material_messages(
        LESSON_PLAN_SYSTEM_PROMPT,
        [
            assignment_description or f"Vytvoř plán hodiny na téma: {title or subject}.",
            f"Předmět: {subject}.",
            f"Ročník: {grade_level}.",
            f"Délka hodiny: {duration}." if duration else None,
            _joined("Výukové metody", teaching_methods),
            _joined("Dostupné pomůcky", available_resources),
            custom_instructions.strip() if custom_instructions else None,
        ],
    )


def quiz_messages(
    *,
    title: str | None = None,
    subject: str | None = None,
    grade_level: str | None = None,
    assignment_description: str | None = None,
    question_count: int | None = None,
    time_limit: str | None = None,
    question_types: list[str] | None = None,
    custom_instructions: str | None = None,
) -> list[ChatMessage]:
    topic = title or subject or "obecné znalosti"
    return _material_messages(
        QUIZ_SYSTEM_PROMPT,
        [
            assignment_description or f"Vytvoř kvíz na téma: {topic}.",
            f"Předmět: {subject}." if subject else None,
            f"Ročník: {grade_level}." if grade_level else None,
            f"Počet otázek: {question_count}." if question_count else None,
            f"Časový limit: {time_limit}." if time_limit else None,
            _joined("Typy otázek", question_types),
            custom_instructions.strip() if custom_instructions else None,
        ],
    )


def clean_ai_response(raw: str) -> str:
    """Strip markdown fences and any prose around the outermost JSON object."""
    text = _FENCE_RE.sub("", raw.strip())
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        return text[start : end + 1]
    return text


def _parse_json_object(raw: str) -> dict[str, Any] | None:
    try:
        obj = cast(object, json.loads(clean_ai_response(raw)))
    except ValueError:
        return None
    return cast(dict[str, Any], obj) if isinstance(obj, dict) else None


def parse_worksheet_response(raw: str, *, topic: str = "") -> dict[str, Any]:
    """Parse the model output as a worksheet, falling back to a generic shell."""
    data = _parse_json_object(raw)
    if data is not None:
        _ = data.setdefault("title", topic or "Pracovní list")
        questions = data.get("questions")
        data["questions"] = questions if isinstance(questions, list) else []
        return data

    return {
        "template": "worksheet",
        "title": topic or "Pracovní list",
        "subject": "Matematika",
        "instructions": "",
        "content": raw.strip(),
        "questions": [],
    }


def parse_lesson_plan_response(raw: str, *, title: str = "", subject: str = "") -> dict[str, Any]:
    data = _parse_json_object(raw)
    if data is not None:
        _ = data.setdefault("title", title or "Plán hodiny")
        for key in ("objectives", "activities", "materials"):
            if not isinstance(data.get(key), list):
                data[key] = []
        return data

    return {
        "template": "lesson_plan",
        "title": title or "Plán hodiny",
        "subject": subject or "Obecný",
        "content": raw.strip(),
        "objectives": [],
        "activities": [],
        "materials": [],
    }


def parse_quiz_response(raw: str, *, title: str = "", subject: str = "") -> dict[str, Any]:
    data = _parse_json_object(raw)
    if data is not None:
        _ = data.setdefault("title", title or "Kvíz")
        questions = data.get("questions")
        data["questions"] = questions if isinstance(questions, list) else []
        return data

    return {
        "template": "quiz",
        "title": title or "Kvíz",
        "subject": subject or "Obecný",
        "content": raw.strip(),
        "questions": [],
    }
