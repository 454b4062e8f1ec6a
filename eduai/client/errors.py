# pyright: reportMissingImports=false
"""Client-side error taxonomy and retry policy for calls to the EduAI API."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TypeVar, cast

import httpx


logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorType(str, Enum):
    NETWORK = "NETWORK"
    VALIDATION = "VALIDATION"
    AUTHENTICATION = "AUTHENTICATION"
    AUTHORIZATION = "AUTHORIZATION"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    RATE_LIMIT = "RATE_LIMIT"
    SERVER = "SERVER"
    UNKNOWN = "UNKNOWN"


class AppError(Exception):
    def __init__(
        self,
        type: ErrorType,  # noqa: A002
        message: str,
        *,
        user_message: str,
        retryable: bool = False,
        status_code: int | None = None,
        field: str | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.type = type
        self.message = message
        self.user_message = user_message
        self.retryable = retryable
        self.status_code = status_code
        self.field = field
        self.original_error = original_error


class StreamingRequestError(Exception):
    """Non-2xx answer to a streaming request; carries the server's message."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


_NETWORK_USER_MESSAGE = "Zkontrolujte připojení k internetu a zkuste to znovu."


def _server_error_body(response: httpx.Response) -> tuple[str | None, str | None]:
    try:
        body = cast(object, response.json())
    except ValueError:
        return None, None
    if not isinstance(body, dict):
        return None, None
    data = cast(dict[str, object], body)
    err, field = data.get("error"), data.get("field")
    return (err if isinstance(err, str) else None), (field if isinstance(field, str) else None)


def _from_status(
    status: int, server_message: str | None, field: str | None, original: BaseException
) -> AppError:
    if status == 400:
        return AppError(
            ErrorType.VALIDATION,
            server_message or "Neplatné údaje",
            user_message=server_message or "Zkontrolujte prosím zadané údaje a zkuste to znovu.",
            status_code=status,
            field=field,
            original_error=original,
        )
    if status == 401:
        return AppError(
            ErrorType.AUTHENTICATION,
            "Neautorizovaný přístup",
            user_message="Vaše relace vypršela. Přihlaste se prosím znovu.",
            status_code=status,
            original_error=original,
        )
    if status == 403:
        return AppError(
            ErrorType.AUTHORIZATION,
            "Nedostatečná oprávnění",
            user_message="Nemáte oprávnění k provedení této akce.",
            status_code=status,
            original_error=original,
        )
    if status == 404:
        return AppError(
            ErrorType.NOT_FOUND,
            "Zdroj nebyl nalezen",
            user_message="Požadovaný zdroj nebyl nalezen.",
            status_code=status,
            original_error=original,
        )
    if status == 409:
        return AppError(
            ErrorType.CONFLICT,
            server_message or "Konflikt dat",
            user_message=server_message or "Došlo ke konfliktu dat. Zkuste to prosím znovu.",
            status_code=status,
            original_error=original,
        )
    if status == 422:
        return AppError(
            ErrorType.VALIDATION,
            server_message or "Chyba validace",
            user_message=server_message or "Zadané údaje nejsou platné.",
            status_code=status,
            field=field,
            original_error=original,
        )
    if status == 429:
        return AppError(
            ErrorType.RATE_LIMIT,
            "Příliš mnoho požadavků",
            user_message="Příliš mnoho požadavků. Zkuste to prosím za chvíli.",
            retryable=True,
            status_code=status,
            original_error=original,
        )
    if status in (500, 502, 503, 504):
        return AppError(
            ErrorType.SERVER,
            "Chyba serveru",
            user_message="Došlo k chybě serveru. Zkuste to prosím znovu.",
            retryable=True,
            status_code=status,
            original_error=original,
        )
    return AppError(
        ErrorType.UNKNOWN,
        server_message or f"HTTP {status}",
        user_message="Došlo k neočekávané chybě. Zkuste to prosím znovu.",
        status_code=status,
        original_error=original,
    )


def classify_error(error: BaseException) -> AppError:
    if isinstance(error, AppError):
        return error

    if isinstance(error, httpx.HTTPStatusError):
        server_message, field = _server_error_body(error.response)
        return _from_status(error.response.status_code, server_message, field, error)

    if isinstance(error, StreamingRequestError):
        return _from_status(error.status_code, error.message or None, None, error)

    if isinstance(error, httpx.TimeoutException):
        return AppError(
            ErrorType.NETWORK,
            "Časový limit vypršel",
            user_message="Požadavek trval příliš dlouho. Zkuste to prosím znovu.",
            retryable=True,
            original_error=error,
        )

    if isinstance(error, httpx.TransportError):
        return AppError(
            ErrorType.NETWORK,
            "Chyba sítě",
            user_message=_NETWORK_USER_MESSAGE,
            retryable=True,
            original_error=error,
        )

    return AppError(
        ErrorType.UNKNOWN,
        str(error) or "Neznámá chyba",
        user_message="Došlo k neočekávané chybě. Zkuste to prosím znovu.",
        original_error=error,
    )


def validation_error(field: str, message: str) -> AppError:
    return AppError(ErrorType.VALIDATION, message, user_message=message, field=field)


@dataclass(frozen=True)
class ErrorLogEntry:
    error: AppError
    timestamp: datetime
    context: str | None = None
    user_id: str | None = None


class ErrorLog:
    """Bounded in-memory record of classified errors."""

    def __init__(self, *, max_entries: int = 1000) -> None:
        self._entries: deque[ErrorLogEntry] = deque(maxlen=max_entries)

    def log(self, error: AppError, context: str | None = None, user_id: str | None = None) -> None:
        self._entries.append(
            ErrorLogEntry(error=error, timestamp=datetime.now(UTC), context=context, user_id=user_id)
        )
        logger.error("%s error%s: %s", error.type.value, f" in {context}" if context else "", error.message)

    def entries(self, type: ErrorType | None = None) -> list[ErrorLogEntry]:  # noqa: A002
        if type is None:
            return list(self._entries)
        return [e for e in self._entries if e.error.type is type]

    def clear(self) -> None:
        self._entries.clear()


DEFAULT_RETRY_DELAYS_S = (1.0, 2.0, 4.0)


class RetryManager:
    def __init__(
        self,
        *,
        max_retries: int = 3,
        delays_s: tuple[float, ...] = DEFAULT_RETRY_DELAYS_S,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._max_retries = max_retries
        self._delays_s = delays_s
        self._sleep = sleep
        self._attempts: dict[str, int] = {}

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_id: str,
        max_retries: int | None = None,
    ) -> T:
        limit = self._max_retries if max_retries is None else max_retries
        while True:
            attempts = self._attempts.get(operation_id, 0)
            try:
                result = await operation()
            except Exception as e:
                app_error = classify_error(e)
                if not app_error.retryable or attempts >= limit:
                    _ = self._attempts.pop(operation_id, None)
                    if app_error is e:
                        raise
                    raise app_error from e

                self._attempts[operation_id] = attempts + 1
                delay = self._delays_s[min(attempts, len(self._delays_s) - 1)]
                logger.info(
                    "retrying %s after %s (attempt %d/%d, %.1fs)",
                    operation_id,
                    app_error.type.value,
                    attempts + 1,
                    limit,
                    delay,
                )
                _ = await self._sleep(delay)
                continue

            _ = self._attempts.pop(operation_id, None)
            return result

    def get_retry_count(self, operation_id: str) -> int:
        return self._attempts.get(operation_id, 0)

    def clear_retry_count(self, operation_id: str) -> None:
        _ = self._attempts.pop(operation_id, None)
