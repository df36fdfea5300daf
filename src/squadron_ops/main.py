"""Ops console FastAPI application factory.

The create_app() factory is the single entry point for building the console
ASGI application. It wires middleware (request-ID, request logging, CORS),
the permission, rule-admin and debrief routers, and injects source implementations.

Usage:
    # Local development (in-memory sources)
    from squadron_ops import create_app, ConsoleSettings
    app = create_app(ConsoleSettings())

    # Non-local (Supabase sources built from settings)
    app = create_app(ConsoleSettings.from_env())

    # Testing (full DI control)
    app = create_app(settings, grant_source=source, debrief_repo=debriefs, ...)
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .db.errors import SupabaseError, SupabaseUnavailableError
from .db.supabase_client import SupabaseClient
from .debriefs.access import DebriefAccess
from .observability.logging import configure_logging, get_logger
from .observability.metrics import metrics_text
from .observability.middleware import RequestIdMiddleware, RequestLoggingMiddleware
from .permissions.cache import PermissionCache
from .permissions.calculator import PermissionCalculator
from .permissions.gate import PermissionGate
from .permissions.resolver import PermissionResolver
from .permissions.rule_admin import RuleAdminService
from .protocols import DebriefSource, DelegationSource, GrantSource, PermissionRuleRepository
from .settings import ConsoleSettings

logger = get_logger(__name__)


@dataclass(frozen=True)
class AppDependencies:
    """Container for the injected sources and the services built on them.

    Stored on ``app.state.deps`` so route handlers and guards can reach them.
    """

    rule_repo: PermissionRuleRepository
    grant_source: GrantSource
    delegation_repo: DelegationSource
    debrief_repo: DebriefSource
    permission_cache: PermissionCache
    resolver: PermissionResolver
    debrief_access: DebriefAccess
    gate: PermissionGate
    rule_admin: RuleAdminService
    supabase_client: SupabaseClient | None = None


def _build_supabase_sources(
    client: SupabaseClient,
) -> tuple[PermissionRuleRepository, DelegationSource, DebriefSource]:
    from .db import (
        SupabaseDebriefRepository,
        SupabaseDelegationRepository,
        SupabasePermissionRuleRepository,
    )

    return (
        SupabasePermissionRuleRepository(client),
        SupabaseDelegationRepository(client),
        SupabaseDebriefRepository(client),
    )


def _build_inmemory_sources() -> tuple[PermissionRuleRepository, DelegationSource, DebriefSource]:
    from .inmemory import (
        InMemoryDebriefRepository,
        InMemoryDelegationRepository,
        InMemoryPermissionRuleRepository,
    )

    return (
        InMemoryPermissionRuleRepository(),
        InMemoryDelegationRepository(),
        InMemoryDebriefRepository(),
    )


# ── Factory ─────────────────────────────────────────────────────────


def create_app(
    settings: ConsoleSettings | None = None,
    *,
    grant_source: GrantSource | None = None,
    rule_repo: PermissionRuleRepository | None = None,
    delegation_repo: DelegationSource | None = None,
    debrief_repo: DebriefSource | None = None,
    supabase_client: SupabaseClient | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> FastAPI:
    """Create a configured ops console FastAPI application.

    Args:
        settings: Application settings. Defaults to local-dev settings.
        grant_source..debrief_repo: Source overrides. When None, local mode
            uses in-memory implementations and non-local mode builds the
            Supabase repositories. The default grant source is a
            ``PermissionCalculator`` over ``rule_repo``.
        supabase_client: Shared PostgREST client for non-local mode. When
            omitted one is created from settings and closed on shutdown.
        clock: Monotonic clock for the permission cache.

    Raises:
        ValueError: If settings validation fails.
    """
    if settings is None:
        settings = ConsoleSettings()

    errors = settings.validate()
    if errors:
        raise ValueError(
            "Console settings validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    configure_logging(level=settings.log_level, json_output=settings.log_format == "json")

    owned_client: SupabaseClient | None = None
    if settings.is_local:
        defaults = _build_inmemory_sources()
    else:
        if supabase_client is None:
            owned_client = SupabaseClient(
                supabase_url=settings.supabase_url,
                service_role_key=settings.supabase_service_role_key,
                timeout_seconds=settings.supabase_timeout_seconds,
            )
            supabase_client = owned_client
        defaults = _build_supabase_sources(supabase_client)

    rule_repo = rule_repo if rule_repo is not None else defaults[0]
    delegation_repo = delegation_repo if delegation_repo is not None else defaults[1]
    debrief_repo = debrief_repo if debrief_repo is not None else defaults[2]
    if grant_source is None:
        grant_source = PermissionCalculator(rule_repo)

    cache = PermissionCache(
        grant_source,
        ttl_seconds=settings.permission_cache_ttl_seconds,
        max_entries=settings.permission_cache_max_entries,
        clock=clock,
    )
    resolver = PermissionResolver(cache, delegation_repo)
    deps = AppDependencies(
        rule_repo=rule_repo,
        grant_source=grant_source,
        delegation_repo=delegation_repo,
        debrief_repo=debrief_repo,
        permission_cache=cache,
        resolver=resolver,
        debrief_access=DebriefAccess(resolver, debrief_repo),
        gate=PermissionGate(resolver),
        rule_admin=RuleAdminService(rule_repo, resolver),
        supabase_client=supabase_client,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("console_startup", environment=settings.environment)
        try:
            yield
        finally:
            if owned_client is not None:
                await owned_client.aclose()
            logger.info("console_shutdown")

    app = FastAPI(
        title="Squadron Ops Console",
        description="Permission and debrief access API for the squadron ops console",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.deps = deps
    app.state.settings = settings

    # ── Middleware stack (applied in reverse order) ──────────────
    # Order of execution: RequestId -> RequestLogging -> CORS -> route handler
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)

    @app.exception_handler(SupabaseError)
    async def storage_error(request: Request, exc: SupabaseError) -> JSONResponse:
        logger.warning(
            "storage_error",
            path=request.url.path,
            status_code=exc.status_code,
            code=exc.code,
            error=exc.message,
        )
        status_code = 503 if isinstance(exc, SupabaseUnavailableError) or exc.transient else 502
        return JSONResponse(
            status_code=status_code,
            content={
                "code": "STORAGE_ERROR",
                "message": "Upstream storage request failed",
                "request_id": getattr(request.state, "request_id", None),
            },
        )

    # ── Routes ──────────────────────────────────────────────────

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "environment": settings.environment,
            "permission_cache": cache.stats(),
        }

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        payload, content_type = metrics_text()
        return Response(content=payload, media_type=content_type)

    from .routes import create_debrief_router, create_permission_router, create_rule_router

    app.include_router(create_permission_router())
    app.include_router(create_rule_router())
    app.include_router(create_debrief_router())

    return app


# For uvicorn, use --factory flag:
#   uvicorn squadron_ops.main:create_app --factory
