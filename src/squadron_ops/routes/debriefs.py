"""Mission debrief access endpoints.

Response contracts:
  GET    /api/v1/debriefs/{id}/access                  → 200 { can_view, can_edit, ... }
  POST   /api/v1/debriefs/{id}/finalize                → 200 { id, status, ... }
  GET    /api/v1/debriefs/{id}/delegations             → 200 { delegations: [...] }
  POST   /api/v1/debriefs/{id}/delegations             → 201 { id, delegated_to_pilot_id, ... }
  DELETE /api/v1/debriefs/{id}/delegations/{dlg_id}    → 200 { id, revoked: true, ... }

The caller's own pilot record (for the delegation fallback on edit) is looked
up server-side from the rule repository, never taken from the request.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from ..debriefs.access import DELEGATE_DEBRIEFS, FINALIZE_DEBRIEFS
from ..debriefs.status import DebriefRecord
from ..observability.logging import get_logger
from ..security.permission_guard import caller_pilot_id, forbidden, require_user_id
from .schemas import CreateDelegationRequest

logger = get_logger(__name__)


def _not_found(debrief_id: str) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={'code': 'DEBRIEF_NOT_FOUND', 'message': f'Debrief {debrief_id} not found'},
    )


def _finalized(debrief_id: str) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail={'code': 'DEBRIEF_FINALIZED', 'message': f'Debrief {debrief_id} is finalized'},
    )


async def _load(request: Request, debrief_id: str) -> DebriefRecord:
    debrief = await request.app.state.deps.debrief_access.get_debrief(debrief_id)
    if debrief is None:
        raise _not_found(debrief_id)
    return debrief


async def _require_delegate(request: Request, user_id: str, debrief_id: str) -> None:
    if not await request.app.state.deps.debrief_access.can_delegate_debrief(user_id, debrief_id):
        raise forbidden([DELEGATE_DEBRIEFS])


def create_debrief_router() -> APIRouter:
    """Create the debrief router; services come from ``app.state.deps``."""
    router = APIRouter(prefix='/api/v1/debriefs', tags=['debriefs'])

    @router.get('/{debrief_id}/access')
    async def debrief_access(
        debrief_id: str,
        request: Request,
        user_id: str = Depends(require_user_id),
    ):
        pilot_id = await caller_pilot_id(request, user_id)
        summary = await request.app.state.deps.debrief_access.access_summary(
            user_id, debrief_id, pilot_id,
        )
        return {'debrief_id': debrief_id, **summary}

    @router.post('/{debrief_id}/finalize')
    async def finalize_debrief(
        debrief_id: str,
        request: Request,
        user_id: str = Depends(require_user_id),
    ):
        """Lock a draft debrief against further edits."""
        debrief = await _load(request, debrief_id)
        if debrief.is_finalized:
            raise _finalized(debrief_id)

        updated = await request.app.state.deps.debrief_access.finalize_debrief(user_id, debrief_id)
        if updated is None:
            raise forbidden([FINALIZE_DEBRIEFS])
        return updated.to_dict()

    @router.get('/{debrief_id}/delegations')
    async def list_delegations(
        debrief_id: str,
        request: Request,
        user_id: str = Depends(require_user_id),
    ):
        await _load(request, debrief_id)
        await _require_delegate(request, user_id, debrief_id)
        records = await request.app.state.deps.delegation_repo.list_for_debrief(debrief_id)
        return {'delegations': [r.to_dict() for r in records]}

    @router.post('/{debrief_id}/delegations', status_code=201)
    async def create_delegation(
        debrief_id: str,
        body: CreateDelegationRequest,
        request: Request,
        user_id: str = Depends(require_user_id),
    ):
        """Let one pilot edit this debrief without a scope grant."""
        debrief = await _load(request, debrief_id)
        if debrief.is_finalized:
            raise _finalized(debrief_id)
        await _require_delegate(request, user_id, debrief_id)

        delegations = request.app.state.deps.delegation_repo
        existing = await delegations.find_active(debrief_id, body.pilot_id)
        if existing is not None:
            return existing.to_dict()

        record = await delegations.create(debrief_id, body.pilot_id, user_id)
        logger.info(
            'debrief_delegated',
            debrief_id=debrief_id,
            pilot_id=body.pilot_id,
            delegated_by=user_id,
        )
        return record.to_dict()

    @router.delete('/{debrief_id}/delegations/{delegation_id}')
    async def revoke_delegation(
        debrief_id: str,
        delegation_id: str,
        request: Request,
        user_id: str = Depends(require_user_id),
    ):
        await _load(request, debrief_id)
        await _require_delegate(request, user_id, debrief_id)

        delegations = request.app.state.deps.delegation_repo
        current = {r.id: r for r in await delegations.list_for_debrief(debrief_id)}
        if delegation_id not in current:
            raise HTTPException(
                status_code=404,
                detail={
                    'code': 'DELEGATION_NOT_FOUND',
                    'message': f'Delegation {delegation_id} not found',
                },
            )

        record = await delegations.revoke(delegation_id)
        logger.info('debrief_delegation_revoked', debrief_id=debrief_id, delegation_id=delegation_id)
        return (record or current[delegation_id]).to_dict()

    return router
