from __future__ import annotations

import contextvars
import logging
import re
import sys
from typing_extensions import override


request_id_ctx_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    @override
    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.request_id = request_id_ctx_var.get()
        return True


_RE_BEARER = re.compile(
    r"(?i)(authorization\s*[:=]\s*bearer\s+)([a-z0-9._~+/=-]+)",
)
_RE_JSON_SECRETS = re.compile(
    r'(?i)("(?:password|access_token|api_key|openai_api_key)"\s*:\s*")([^"]+)(")',
)
_RE_PY_SECRETS = re.compile(
    r"(?i)('(?:password|access_token|api_key|openai_api_key)'\s*:\s*')([^']+)(')",
)
_RE_KV_SECRETS = re.compile(
    r"(?i)\b(password|access_token|api_key|jwt_secret)\b\s*=\s*([^\s,;]+)",
)
# OpenAI-style secret keys
_RE_SK_KEY = re.compile(r"\bsk-[A-Za-z0-9_-]{16,}\b")
_RE_DSN_PASSWORD = re.compile(r"(?i)(postgres(?:ql)?(?:\+psycopg)?://[^:/@\s]+:)([^@\s]+)(@)")


def _redact_value(raw: str) -> str:
    return f"[REDACTED len={len(raw)}]"


class RedactingFormatter(logging.Formatter):
    @override
    def format(self, record: logging.LogRecord) -> str:
        out = super().format(record)

        out = _RE_BEARER.sub(r"\1[REDACTED]", out)
        out = _RE_JSON_SECRETS.sub(
            lambda m: f"{m.group(1)}{_redact_value(m.group(2))}{m.group(3)}", out
        )
        out = _RE_PY_SECRETS.sub(
            lambda m: f"{m.group(1)}{_redact_value(m.group(2))}{m.group(3)}", out
        )
        out = _RE_KV_SECRETS.sub(lambda m: f"{m.group(1)}={_redact_value(m.group(2))}", out)
        out = _RE_SK_KEY.sub("[REDACTED_KEY]", out)
        out = _RE_DSN_PASSWORD.sub(lambda m: f"{m.group(1)}[REDACTED]{m.group(3)}", out)

        return out


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(
        RedactingFormatter(
            fmt="%(asctime)s %(levelname)s [%(name)s] [rid=%(request_id)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    # Avoid duplicate handlers when app reloads in dev.
    root.handlers = [handler]
