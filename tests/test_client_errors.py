# pyright: reportMissingImports=false

from __future__ import annotations

import asyncio

import httpx
import pytest

from eduai.client.errors import (
    AppError,
    ErrorLog,
    ErrorType,
    RetryManager,
    StreamingRequestError,
    classify_error,
    validation_error,
)


def _status_error(status: int, body: object | None = None) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "http://testserver/api/x")
    response = httpx.Response(status, json=body, request=request) if body is not None else httpx.Response(
        status, request=request
    )
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


@pytest.mark.parametrize(
    ("status", "expected", "retryable"),
    [
        (400, ErrorType.VALIDATION, False),
        (401, ErrorType.AUTHENTICATION, False),
        (403, ErrorType.AUTHORIZATION, False),
        (404, ErrorType.NOT_FOUND, False),
        (409, ErrorType.CONFLICT, False),
        (422, ErrorType.VALIDATION, False),
        (429, ErrorType.RATE_LIMIT, True),
        (500, ErrorType.SERVER, True),
        (503, ErrorType.SERVER, True),
        (418, ErrorType.UNKNOWN, False),
    ],
)
def test_classify_http_status(status: int, expected: ErrorType, retryable: bool) -> None:
    err = classify_error(_status_error(status))
    assert err.type is expected
    assert err.retryable is retryable
    assert err.status_code == status
    assert err.user_message


def test_validation_uses_server_message_and_field() -> None:
    err = classify_error(_status_error(400, {"success": False, "error": "Neplatný e-mail", "field": "email"}))
    assert err.type is ErrorType.VALIDATION
    assert err.message == "Neplatný e-mail"
    assert err.user_message == "Neplatný e-mail"
    assert err.field == "email"


def test_network_errors_are_retryable() -> None:
    request = httpx.Request("GET", "http://testserver/")

    timeout = classify_error(httpx.ReadTimeout("slow", request=request))
    assert timeout.type is ErrorType.NETWORK
    assert timeout.retryable
    assert timeout.message == "Časový limit vypršel"

    refused = classify_error(httpx.ConnectError("refused", request=request))
    assert refused.type is ErrorType.NETWORK
    assert refused.message == "Chyba sítě"


def test_streaming_request_error_is_classified_by_status() -> None:
    err = classify_error(StreamingRequestError(402, "Nedostatek kreditů"))
    assert err.type is ErrorType.UNKNOWN
    assert err.message == "Nedostatek kreditů"

    assert classify_error(StreamingRequestError(401, "x")).type is ErrorType.AUTHENTICATION


def test_unknown_exception_and_passthrough() -> None:
    err = classify_error(RuntimeError("boom"))
    assert err.type is ErrorType.UNKNOWN
    assert err.message == "boom"
    assert err.original_error is not None

    assert classify_error(err) is err


def test_error_log_is_bounded_and_filterable() -> None:
    log = ErrorLog(max_entries=2)
    log.log(validation_error("email", "bad"), context="register")
    log.log(classify_error(RuntimeError("x")))
    log.log(validation_error("name", "empty"))

    entries = log.entries()
    assert len(entries) == 2
    assert [e.error.field for e in log.entries(ErrorType.VALIDATION)] == ["name"]

    log.clear()
    assert log.entries() == []


class _Flaky:
    def __init__(self, failures: list[BaseException], result: str = "ok") -> None:
        self.failures = failures
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


def _manager(delays: list[float]) -> RetryManager:
    async def _sleep(s: float) -> None:
        delays.append(s)

    return RetryManager(sleep=_sleep)


def test_retry_succeeds_after_retryable_failures() -> None:
    delays: list[float] = []
    manager = _manager(delays)
    op = _Flaky([_status_error(503), _status_error(502)])

    result = asyncio.run(manager.execute_with_retry(op, "load-users"))

    assert result == "ok"
    assert op.calls == 3
    assert delays == [1.0, 2.0]
    assert manager.get_retry_count("load-users") == 0


def test_retry_gives_up_after_max_retries() -> None:
    delays: list[float] = []
    manager = _manager(delays)
    op = _Flaky([_status_error(500) for _ in range(10)])

    with pytest.raises(AppError) as exc_info:
        _ = asyncio.run(manager.execute_with_retry(op, "op", max_retries=3))

    assert exc_info.value.type is ErrorType.SERVER
    assert op.calls == 4
    assert delays == [1.0, 2.0, 4.0]


def test_non_retryable_error_is_raised_immediately() -> None:
    delays: list[float] = []
    manager = _manager(delays)
    op = _Flaky([_status_error(403)])

    with pytest.raises(AppError) as exc_info:
        _ = asyncio.run(manager.execute_with_retry(op, "op"))

    assert exc_info.value.type is ErrorType.AUTHORIZATION
    assert op.calls == 1
    assert delays == []


def test_clear_retry_count() -> None:
    manager = RetryManager()
    manager.clear_retry_count("missing")
    assert manager.get_retry_count("missing") == 0
