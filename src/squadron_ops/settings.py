"""Ops console configuration settings.

ConsoleSettings is the single configuration object accepted by create_app().
It is a plain dataclass (not env-coupled) so tests can inject config without
touching os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

_LOG_FORMATS = ("json", "console")
_DEFAULT_CORS_ORIGINS = (
    "http://localhost:5173",
    "http://localhost:3000",
)


def _float(env: dict[str, str], key: str, default: float) -> float:
    raw = env.get(key, "")
    return float(raw) if raw.strip() else default


def _int(env: dict[str, str], key: str, default: int) -> int:
    raw = env.get(key, "")
    return int(raw) if raw.strip() else default


@dataclass(frozen=True, slots=True)
class ConsoleSettings:
    """Configuration for the ops console FastAPI application.

    All fields have sensible defaults for local development.
    Non-local environments must supply supabase_url and
    supabase_service_role_key.
    """

    # ── Environment ────────────────────────────────────────────────
    environment: str = "local"
    """One of: local, dev, staging, production."""

    # ── Supabase ───────────────────────────────────────────────────
    supabase_url: str = ""
    """Supabase project URL (e.g. https://xyz.supabase.co)."""

    supabase_service_role_key: str = ""
    """Supabase service-role key for PostgREST calls. Never log this."""

    supabase_timeout_seconds: float = 30.0

    # ── Permission cache ───────────────────────────────────────────
    permission_cache_ttl_seconds: float = 30 * 60
    permission_cache_max_entries: int = 10_000

    # ── Logging ────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"
    """``json`` for production, ``console`` for a human-readable dev stream."""

    # ── CORS ───────────────────────────────────────────────────────
    cors_origins: tuple[str, ...] = _DEFAULT_CORS_ORIGINS

    @property
    def is_local(self) -> bool:
        return self.environment == "local"

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if not self.is_local:
            if not self.supabase_url:
                errors.append(f"{self.environment}: supabase_url is required")
            if not self.supabase_service_role_key:
                errors.append(
                    f"{self.environment}: supabase_service_role_key is required"
                )
        if self.permission_cache_ttl_seconds <= 0:
            errors.append("permission_cache_ttl_seconds must be > 0")
        if self.permission_cache_max_entries < 1:
            errors.append("permission_cache_max_entries must be >= 1")
        if self.supabase_timeout_seconds <= 0:
            errors.append("supabase_timeout_seconds must be > 0")
        if self.log_format not in _LOG_FORMATS:
            errors.append(f"log_format must be one of {', '.join(_LOG_FORMATS)}")
        return errors

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> ConsoleSettings:
        """Build settings from environment variables.

        Tests should construct ConsoleSettings directly.
        """
        if env is None:
            env = dict(os.environ)

        cors_raw = env.get("CORS_ORIGINS", "")
        cors = tuple(o.strip() for o in cors_raw.split(",") if o.strip()) if cors_raw else _DEFAULT_CORS_ORIGINS

        return cls(
            environment=env.get("ENVIRONMENT", "local"),
            supabase_url=env.get("SUPABASE_URL", ""),
            supabase_service_role_key=env.get("SUPABASE_SERVICE_ROLE_KEY", ""),
            supabase_timeout_seconds=_float(env, "SUPABASE_TIMEOUT_SECONDS", 30.0),
            permission_cache_ttl_seconds=_float(env, "PERMISSION_CACHE_TTL_SECONDS", 30 * 60),
            permission_cache_max_entries=_int(env, "PERMISSION_CACHE_MAX_ENTRIES", 10_000),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            log_format=env.get("LOG_FORMAT", "json").lower(),
            cors_origins=cors,
        )
