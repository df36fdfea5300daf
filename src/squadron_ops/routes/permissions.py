"""Permission introspection endpoints.

Response contracts:
  GET  /api/v1/me/permissions           → 200 { user_id, permissions, expires_in }
  POST /api/v1/me/permissions/refresh   → 200 { user_id, permissions, expires_in }
  POST /api/v1/permissions/check        → 200 { results }
  POST /api/v1/permissions/gates        → 200 { gates: [...] }
  POST /api/v1/permissions/invalidate   → 200 { invalidated }

Gate and check endpoints never fail on a lookup error: the resolver denies
instead. Only the endpoints that return the raw set answer 503. A
``pilot_id`` in a request context is always replaced by the caller's own, so
the delegation fallback cannot be asked about another pilot.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from ..permissions.errors import GrantLookupFailure
from ..permissions.gate import GateMode
from ..permissions.permission_set import PermissionSet
from ..permissions.grants import AccessContext
from ..security.permission_guard import (
    caller_pilot_id,
    require_permission,
    require_user_id,
    with_caller_pilot,
)
from .schemas import AccessContextBody, CheckPermissionsRequest, GatesRequest, InvalidateRequest

MANAGE_USER_ACCOUNTS = 'manage_user_accounts'


def _unavailable(exc: GrantLookupFailure) -> HTTPException:
    return HTTPException(
        status_code=503,
        detail={
            'code': 'PERMISSIONS_UNAVAILABLE',
            'message': exc.message,
        },
    )


async def _caller_contexts(
    request: Request,
    user_id: str,
    bodies: list[AccessContextBody | None],
) -> list[AccessContext | None]:
    """Client contexts with ``pilot_id`` pinned to the caller's own record."""
    contexts = [body.to_context() if body else None for body in bodies]
    pilot_id = None
    if any(c is not None and c.debrief_id for c in contexts):
        pilot_id = await caller_pilot_id(request, user_id)
    return [with_caller_pilot(c, pilot_id) for c in contexts]


def create_permission_router() -> APIRouter:
    """Create the permission router; services come from ``app.state.deps``."""
    router = APIRouter(tags=['permissions'])

    def _payload(request: Request, user_id: str, permission_set: PermissionSet) -> dict:
        return {
            'user_id': user_id,
            'permissions': permission_set.to_dict(),
            'calculated_at': permission_set.calculated_at.isoformat(),
            'expires_in': request.app.state.deps.resolver.cache.expires_in(user_id),
        }

    @router.get('/api/v1/me/permissions')
    async def my_permissions(request: Request, user_id: str = Depends(require_user_id)):
        """Return the caller's resolved permission set."""
        try:
            permission_set = await request.app.state.deps.resolver.get_permissions(user_id)
        except GrantLookupFailure as exc:
            raise _unavailable(exc) from exc
        return _payload(request, user_id, permission_set)

    @router.post('/api/v1/me/permissions/refresh')
    async def refresh_my_permissions(request: Request, user_id: str = Depends(require_user_id)):
        """Recalculate the caller's set, bypassing the cache."""
        try:
            permission_set = await request.app.state.deps.resolver.refresh_permissions(user_id)
        except GrantLookupFailure as exc:
            raise _unavailable(exc) from exc
        return _payload(request, user_id, permission_set)

    @router.post('/api/v1/permissions/check')
    async def check_permissions(
        body: CheckPermissionsRequest,
        request: Request,
        user_id: str = Depends(require_user_id),
    ):
        resolver = request.app.state.deps.resolver
        context = (await _caller_contexts(request, user_id, [body.context]))[0]
        if body.detailed:
            results = [
                (await resolver.check_permission(user_id, name, context)).to_dict()
                for name in dict.fromkeys(body.permissions)
            ]
            return {'results': results}
        return {'results': await resolver.check_permissions(user_id, body.permissions, context)}

    @router.post('/api/v1/permissions/gates')
    async def decide_gates(
        body: GatesRequest,
        request: Request,
        user_id: str = Depends(require_user_id),
    ):
        gate = request.app.state.deps.gate
        contexts = await _caller_contexts(request, user_id, [item.context for item in body.gates])
        decisions = []
        for item, context in zip(body.gates, contexts):
            decision = await gate.decide(
                user_id,
                item.permission,
                mode=GateMode(item.mode),
                context=context,
                has_fallback=item.has_fallback,
                denied_message=item.denied_message,
            )
            decisions.append({'permission': item.permission, 'mode': item.mode, **decision.to_dict()})
        return {'gates': decisions}

    @router.post('/api/v1/permissions/invalidate')
    async def invalidate_permissions(
        body: InvalidateRequest,
        request: Request,
        _admin: str = Depends(require_permission(MANAGE_USER_ACCOUNTS)),
    ):
        """Drop cached sets after a role or rule change."""
        resolver = request.app.state.deps.resolver
        if body.all:
            resolver.invalidate_all()
            return {'invalidated': 'all'}
        if not body.user_id:
            raise HTTPException(
                status_code=422,
                detail={
                    'code': 'INVALID_REQUEST',
                    'message': 'Either user_id or all=true is required',
                },
            )
        resolver.invalidate(body.user_id)
        return {'invalidated': body.user_id}

    return router
