from __future__ import annotations

import base64
import hashlib
import hmac
import json
import secrets
import time
from typing import TypeAlias, cast


_PBKDF2_ALG = "pbkdf2_sha256"
_PBKDF2_HASH_NAME = "sha256"
_PBKDF2_ITERATIONS = 200_000
_PBKDF2_SALT_BYTES = 16


JSONScalar: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]


class TokenError(ValueError):
    pass


class TokenExpiredError(TokenError):
    pass


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    if data == "":
        raise ValueError("invalid base64 input")
    padded = data + "=" * ((4 - (len(data) % 4)) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii"))
    except (ValueError, UnicodeEncodeError) as exc:
        raise ValueError("invalid base64 input") from exc


def hash_password(password: str) -> str:
    if password == "":
        raise ValueError("password must be a non-empty string")

    salt = secrets.token_bytes(_PBKDF2_SALT_BYTES)
    dk = hashlib.pbkdf2_hmac(
        _PBKDF2_HASH_NAME,
        password.encode("utf-8"),
        salt,
        _PBKDF2_ITERATIONS,
        dklen=32,
    )
    return f"{_PBKDF2_ALG}${_PBKDF2_ITERATIONS}${_b64url_encode(salt)}${_b64url_encode(dk)}"


def verify_password(password: str, stored: str) -> bool:
    try:
        alg, iterations_s, salt_s, hash_s = stored.split("$", 3)
        if alg != _PBKDF2_ALG:
            return False
        iterations = int(iterations_s)
        if iterations <= 0:
            return False
        salt = _b64url_decode(salt_s)
        expected = _b64url_decode(hash_s)
    except ValueError:
        return False

    actual = hashlib.pbkdf2_hmac(
        _PBKDF2_HASH_NAME,
        password.encode("utf-8"),
        salt,
        iterations,
        dklen=len(expected),
    )
    return hmac.compare_digest(actual, expected)


def validate_password_policy(password: str) -> None:
    if len(password) < 8:
        raise ValueError("password must be at least 8 characters")
    if any(ch.isspace() for ch in password):
        raise ValueError("password must not contain whitespace")
    has_alpha = any(ch.isalpha() for ch in password)
    has_digit = any(ch.isdigit() for ch in password)
    if not (has_alpha and has_digit):
        raise ValueError("password must contain letters and numbers")


def _json_b64url(obj: dict[str, JSONValue]) -> str:
    raw = json.dumps(obj, separators=(",", ":"), sort_keys=True, ensure_ascii=True).encode("utf-8")
    return _b64url_encode(raw)


def _json_loads_dict(data: bytes) -> dict[str, JSONValue]:
    try:
        obj = cast(object, json.loads(data.decode("utf-8")))
    except (UnicodeDecodeError, ValueError) as exc:
        raise TokenError("invalid token") from exc
    if not isinstance(obj, dict):
        raise TokenError("invalid token")
    return cast(dict[str, JSONValue], obj)


def _sign_hs256(message: bytes, secret: str) -> bytes:
    if secret == "":
        raise ValueError("secret must be a non-empty string")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()


def encode_access_token(payload: dict[str, JSONValue], secret: str, expires_in_seconds: int) -> str:
    """Sign an HS256 JWT carrying ``payload`` plus ``iat``/``exp`` claims."""
    if expires_in_seconds <= 0:
        raise ValueError("expires_in_seconds must be a positive int")

    now = int(time.time())
    body: dict[str, JSONValue] = dict(payload)
    body["iat"] = now
    body["exp"] = now + expires_in_seconds

    header: dict[str, JSONValue] = {"alg": "HS256", "typ": "JWT"}
    signing_input = f"{_json_b64url(header)}.{_json_b64url(body)}"
    sig = _sign_hs256(signing_input.encode("ascii"), secret)
    return f"{signing_input}.{_b64url_encode(sig)}"


def decode_access_token(token: str, secret: str) -> dict[str, JSONValue]:
    """Verify signature and expiry; raises TokenError / TokenExpiredError."""
    parts = token.split(".")
    if len(parts) != 3 or not all(parts):
        raise TokenError("invalid token")
    header_b64, payload_b64, sig_b64 = parts

    try:
        expected_sig = _sign_hs256(f"{header_b64}.{payload_b64}".encode("ascii"), secret)
        provided_sig = _b64url_decode(sig_b64)
        header = _json_loads_dict(_b64url_decode(header_b64))
        payload = _json_loads_dict(_b64url_decode(payload_b64))
    except ValueError as exc:
        raise TokenError("invalid token") from exc
    if not hmac.compare_digest(provided_sig, expected_sig):
        raise TokenError("invalid token")
    if header.get("alg") != "HS256":
        raise TokenError("invalid token")

    exp = payload.get("exp")
    if not isinstance(exp, int):
        raise TokenError("invalid token")
    if int(time.time()) >= exp:
        raise TokenExpiredError("token expired")

    return payload
