# pyright: reportMissingImports=false
# pyright: reportUnknownArgumentType=false
# pyright: reportCallInDefaultInitializer=false
from __future__ import annotations

from collections.abc import Callable
from typing import NoReturn

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from eduai.core.config import settings
from eduai.core.security import TokenError, decode_access_token
from eduai.db.pool import OptimizedPool, Row
from eduai.db.session import get_pool
from eduai.db.users import get_user_by_id


_bearer_scheme = HTTPBearer(auto_error=False)


def unauthorized(detail: str = "Přístupový token je vyžadován") -> NoReturn:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def forbidden(detail: str = "Nedostatečná oprávnění") -> NoReturn:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def client_ip(request: Request) -> str | None:
    if request.client is None:
        return None
    return request.client.host


def get_current_user(
    creds: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    pool: OptimizedPool = Depends(get_pool),
) -> Row:
    if creds is None or creds.scheme.lower() != "bearer" or creds.credentials == "":
        unauthorized()
    try:
        payload = decode_access_token(creds.credentials, settings.jwt_secret)
    except TokenError:
        unauthorized("Neplatný nebo expirovaný token")

    sub = payload.get("sub")
    if not isinstance(sub, str) or sub == "":
        unauthorized("Neplatný nebo expirovaný token")

    user = get_user_by_id(pool, sub)
    if user is None or not bool(user["is_active"]):
        unauthorized("Neplatný nebo expirovaný token")
    return user


def require_roles(*roles: str) -> Callable[..., Row]:
    allowed = frozenset(roles)

    def _dep(user: Row = Depends(get_current_user)) -> Row:
        if user["role"] not in allowed:
            forbidden()
        return user

    return _dep


require_platform_admin = require_roles("platform_admin")
