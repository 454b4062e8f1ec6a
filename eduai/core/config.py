# pyright: reportMissingImports=false

from __future__ import annotations

from functools import lru_cache
import json
from typing import ClassVar, cast

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_DEV_JWT_SECRET = "dev-secret-change-me"


class Settings(BaseSettings):
    """Environment-driven settings with local dev defaults."""

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file=None,
        case_sensitive=False,
        extra="ignore",
    )

    api_prefix: str = "/api"
    log_level: str = "INFO"

    env: str = "dev"

    cors_allowed_origins: list[str] = Field(default_factory=list)

    # Postgres in production; the SQLite file is what local scripts use.
    database_url: str = "sqlite:///eduai_asistent.db"

    # Pool sizing is static, not adaptive.
    db_pool_max_size: int = 20
    db_pool_min_size: int = 5
    db_pool_idle_timeout_seconds: float = 30.0
    db_pool_connect_timeout_seconds: float = 2.0
    db_pool_max_uses: int = 7500

    slow_query_threshold_ms: float = 1000.0
    users_list_cache_ttl_seconds: float = 60.0

    # Auth (JWT) settings
    jwt_secret: str = _DEV_JWT_SECRET
    access_token_ttl_seconds: int = 7 * 24 * 3600

    auth_rate_limit_enabled: bool = True
    auth_rate_limit_max_failures: int = 5
    auth_rate_limit_window_seconds: int = 300

    openai_mode: str = "fake"
    openai_base_url: str = "https://api.openai.com/v1"
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    openai_max_tokens: int = 3000
    openai_temperature: float = 0.7
    openai_temperature_materials: float = 0.3
    openai_timeout_seconds: float = 60.0

    @field_validator("cors_allowed_origins", mode="before")
    @classmethod
    def _parse_listish_env(cls, v: object) -> list[str]:
        if v is None:
            return []
        if isinstance(v, list):
            v_list = cast(list[object], v)
            return [str(x).strip() for x in v_list if str(x).strip()]
        if isinstance(v, str):
            raw = v.strip()
            if raw == "":
                return []
            if raw.startswith("["):
                try:
                    parsed: object = cast(object, json.loads(raw))
                except ValueError:
                    parsed = None
                if isinstance(parsed, list):
                    parsed_list = cast(list[object], parsed)
                    return [str(x).strip() for x in parsed_list if str(x).strip()]
            return [s.strip() for s in raw.replace("\n", ",").split(",") if s.strip()]
        return [str(v).strip()] if str(v).strip() else []

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def sqlalchemy_database_uri(self) -> str:
        url = self.database_url.strip()
        for prefix in ("postgres://", "postgresql://"):
            if url.startswith(prefix):
                return "postgresql+psycopg://" + url.removeprefix(prefix)
        return url

    def _is_prod_env(self) -> bool:
        return self.env.strip().lower() in ("prod", "production")

    @model_validator(mode="after")
    def _validate_pool_config(self) -> "Settings":
        if self.db_pool_min_size <= 0:
            raise ValueError("DB_POOL_MIN_SIZE must be > 0")
        if self.db_pool_max_size < self.db_pool_min_size:
            raise ValueError("DB_POOL_MAX_SIZE must be >= DB_POOL_MIN_SIZE")
        return self

    @model_validator(mode="after")
    def _validate_openai_mode(self) -> "Settings":
        mode = self.openai_mode.strip().lower()
        if mode not in ("fake", "openai"):
            raise ValueError("OPENAI_MODE must be one of: fake, openai")
        if mode == "openai" and not (self.openai_api_key and self.openai_api_key.strip()):
            raise ValueError("OPENAI_API_KEY must be set when OPENAI_MODE=openai")
        return self

    @model_validator(mode="after")
    def _validate_prod_config(self) -> "Settings":
        if not self._is_prod_env():
            return self

        problems: list[str] = []

        if self.jwt_secret.strip() in ("", _DEV_JWT_SECRET):
            problems.append(
                f"JWT_SECRET must be set in production (cannot use default {_DEV_JWT_SECRET!r})."
            )
        if self.openai_mode.strip().lower() == "fake":
            problems.append("OPENAI_MODE=fake is forbidden in production. Set OPENAI_MODE=openai.")
        if self.is_sqlite:
            problems.append("DATABASE_URL must point at Postgres in production.")

        if problems:
            details = "\n".join(f"- {p}" for p in problems)
            raise ValueError(
                f"Production settings validation failed (ENV={self.env!r}). Fix the following before starting the server:\n"
                + details
            )

        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
