"""Permission guards as FastAPI dependencies.

Usage::

    @router.post(
        "/api/v1/squadrons/{squadron_id}/roster",
        dependencies=[Depends(require_permission("manage_roster", squadron_context()))],
    )

User identity is taken from ``request.state.auth_identity`` when an upstream
auth layer has set it, otherwise from the X-User-ID header (local dev /
testing). Guards resolve through ``app.state.deps.resolver`` and so inherit
its fail-closed behaviour: any lookup failure is a 403.
"""

from __future__ import annotations

import dataclasses
from typing import Any, Awaitable, Callable, Iterable

from fastapi import HTTPException, Request

from ..observability.logging import get_logger
from ..permissions.grants import AccessContext
from ..permissions.resolver import PermissionResolver

logger = get_logger(__name__)

ContextExtractor = Callable[[Request], AccessContext | None]
Guard = Callable[[Request], Awaitable[str]]


def get_request_user_id(request: Request) -> str | None:
    identity = getattr(request.state, "auth_identity", None)
    if identity is not None:
        return getattr(identity, "user_id", None)
    return request.headers.get("x-user-id")


def require_user_id(request: Request) -> str:
    """Return the caller's user id.

    Raises:
        HTTPException(401): If no identity is present.
    """
    user_id = get_request_user_id(request)
    if not user_id:
        raise HTTPException(
            status_code=401,
            detail={"code": "AUTH_REQUIRED", "message": "User identity required"},
        )
    return user_id


def get_resolver(request: Request) -> PermissionResolver:
    return request.app.state.deps.resolver


async def caller_pilot_id(request: Request, user_id: str) -> str | None:
    """The caller's own pilot record, looked up server-side.

    A failed lookup yields None, which only ever costs the caller a
    delegation they might hold.
    """
    try:
        bases = await request.app.state.deps.rule_repo.get_user_bases(user_id)
    except Exception as exc:
        logger.warning(
            "caller_pilot_lookup_failed",
            user_id=user_id,
            error_type=type(exc).__name__,
        )
        return None
    return bases.pilot_id


def with_caller_pilot(context: AccessContext | None, pilot_id: str | None) -> AccessContext | None:
    """Replace any client-supplied ``pilot_id`` with the caller's own.

    ``pilot_id`` only feeds the ``edit_debriefs`` delegation fallback, which
    answers for the caller's own delegations and nobody else's.
    """
    if context is None or context.pilot_id == pilot_id:
        return context
    return dataclasses.replace(context, pilot_id=pilot_id)


def forbidden(required: list[str], message: str | None = None) -> HTTPException:
    return HTTPException(
        status_code=403,
        detail={
            "code": "INSUFFICIENT_PERMISSIONS",
            "message": message or "Insufficient permissions",
            "required": required,
        },
    )


def _param(request: Request, name: str) -> str | None:
    value: Any = request.path_params.get(name) or request.query_params.get(name)
    return str(value) if value else None


def squadron_context(param: str = "squadron_id") -> ContextExtractor:
    """Build an access context from a squadron id in the path or query."""

    def extract(request: Request) -> AccessContext | None:
        squadron_id = _param(request, param)
        return AccessContext(squadron_id=squadron_id) if squadron_id else None

    return extract


def wing_context(param: str = "wing_id") -> ContextExtractor:
    """Build an access context from a wing id in the path or query."""

    def extract(request: Request) -> AccessContext | None:
        wing_id = _param(request, param)
        return AccessContext(wing_id=wing_id) if wing_id else None

    return extract


def _deny(user_id: str, request: Request, required: list[str], mode: str) -> HTTPException:
    logger.info(
        "route_permission_denied",
        user_id=user_id,
        path=request.url.path,
        required=required,
        mode=mode,
    )
    return forbidden(required)


def require_permission(
    permission: str,
    context: ContextExtractor | None = None,
) -> Guard:
    """Dependency that admits the caller only with ``permission``.

    Resolves to the caller's user id.
    """

    async def guard(request: Request) -> str:
        user_id = require_user_id(request)
        access_context = context(request) if context else None
        if not await get_resolver(request).has_permission(user_id, permission, access_context):
            raise _deny(user_id, request, [permission], "one")
        return user_id

    return guard


def require_any_permission(
    permissions: Iterable[str],
    context: ContextExtractor | None = None,
) -> Guard:
    """Dependency that admits the caller with at least one of ``permissions``."""
    names = list(permissions)

    async def guard(request: Request) -> str:
        user_id = require_user_id(request)
        access_context = context(request) if context else None
        resolver = get_resolver(request)
        for name in names:
            if await resolver.has_permission(user_id, name, access_context):
                return user_id
        raise _deny(user_id, request, names, "any")

    return guard


def require_all_permissions(
    permissions: Iterable[str],
    context: ContextExtractor | None = None,
) -> Guard:
    """Dependency that admits the caller only with every one of ``permissions``."""
    names = list(permissions)

    async def guard(request: Request) -> str:
        user_id = require_user_id(request)
        access_context = context(request) if context else None
        results = await get_resolver(request).check_permissions(user_id, names, access_context)
        missing = [name for name in names if not results.get(name)]
        if missing:
            raise _deny(user_id, request, missing, "all")
        return user_id

    return guard
