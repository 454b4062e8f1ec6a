# pyright: reportMissingImports=false
# pyright: reportUnknownArgumentType=false
# pyright: reportCallInDefaultInitializer=false
from __future__ import annotations

import logging
from typing import Any, NoReturn

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError

from eduai.api.deps import client_ip, get_current_user, unauthorized
from eduai.api.errors import ok
from eduai.core.config import settings
from eduai.core.security import (
    encode_access_token,
    hash_password,
    validate_password_policy,
    verify_password,
)
from eduai.db.pool import OptimizedPool, Row
from eduai.db.session import get_pool
from eduai.db.users import create_user, get_user_by_email, get_user_with_school, public_user, touch_last_login
from eduai.services.auth_rate_limit import AuthRateLimiter, auth_rate_limit_key


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

# Self-registration cannot grant administrative roles.
_SELF_SERVICE_ROLES = ("teacher_individual", "teacher", "student")


class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320, examples=["ucitel@skola.cz"])
    password: str = Field(..., min_length=8, examples=["heslo1234"])
    first_name: str = Field(..., min_length=1, max_length=120)
    last_name: str = Field(..., min_length=1, max_length=120)
    role: str = Field("teacher_individual")


class LoginRequest(BaseModel):
    email: str = Field(..., examples=["ucitel@skola.cz"])
    password: str = Field(..., examples=["heslo1234"])


def _rate_limiter() -> AuthRateLimiter:
    return AuthRateLimiter(
        enabled=settings.auth_rate_limit_enabled,
        max_failures=settings.auth_rate_limit_max_failures,
        window_seconds=settings.auth_rate_limit_window_seconds,
    )


def _raise_rate_limited(*, retry_after_seconds: int) -> NoReturn:
    headers: dict[str, str] | None = None
    if retry_after_seconds > 0:
        headers = {"Retry-After": str(int(retry_after_seconds))}
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Příliš mnoho pokusů, zkuste to později",
        headers=headers,
    )


def _guard(pool: OptimizedPool, limiter: AuthRateLimiter, key: str) -> None:
    check = limiter.check(pool, key=key)
    if check.blocked:
        _raise_rate_limited(retry_after_seconds=check.retry_after_seconds)


def _session_payload(user: Row) -> dict[str, Any]:
    token = encode_access_token(
        {"sub": str(user["id"]), "role": str(user["role"])},
        secret=settings.jwt_secret,
        expires_in_seconds=settings.access_token_ttl_seconds,
    )
    return {"token": token, "token_type": "bearer", "user": public_user(user)}


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest, request: Request, pool: OptimizedPool = Depends(get_pool)
) -> dict[str, Any]:
    limiter = _rate_limiter()
    key = auth_rate_limit_key(scope="auth_register", ip=client_ip(request))
    _guard(pool, limiter, key)

    try:
        validate_password_policy(payload.password)
    except ValueError as e:
        limiter.record_failure(pool, key=key)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if payload.role not in _SELF_SERVICE_ROLES:
        limiter.record_failure(pool, key=key)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Neplatná role")

    if get_user_by_email(pool, payload.email) is not None:
        limiter.record_failure(pool, key=key)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Uživatel s tímto e-mailem již existuje")

    try:
        user = create_user(
            pool,
            email=payload.email,
            password_hash=hash_password(payload.password),
            first_name=payload.first_name.strip(),
            last_name=payload.last_name.strip(),
            role=payload.role,
        )
    except IntegrityError:
        limiter.record_failure(pool, key=key)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Uživatel s tímto e-mailem již existuje")

    logger.info("registered user %s", user["id"])
    return ok(_session_payload(user))


@router.post("/login")
async def login(
    payload: LoginRequest, request: Request, pool: OptimizedPool = Depends(get_pool)
) -> dict[str, Any]:
    limiter = _rate_limiter()
    key = auth_rate_limit_key(scope="auth_login", ip=client_ip(request), identifier=payload.email)
    _guard(pool, limiter, key)

    user = get_user_by_email(pool, payload.email)
    if user is None or not verify_password(payload.password, str(user["password_hash"])):
        limiter.record_failure(pool, key=key)
        unauthorized("Neplatný e-mail nebo heslo")
    if not bool(user["is_active"]):
        limiter.record_failure(pool, key=key)
        unauthorized("Účet je deaktivován")

    limiter.reset(pool, key=key)
    touch_last_login(pool, str(user["id"]))
    return ok(_session_payload(user))


@router.get("/me")
async def me(
    user: Row = Depends(get_current_user), pool: OptimizedPool = Depends(get_pool)
) -> dict[str, Any]:
    profile = get_user_with_school(pool, str(user["id"])) or user
    return ok(public_user(profile))
