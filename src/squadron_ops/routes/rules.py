"""Permission rule administration endpoints.

Response contracts:
  GET    /api/v1/permission-rules                             → 200 { rules: [...] }
  POST   /api/v1/permission-rules                             → 201 { id, permission_id, ... }
  POST   /api/v1/permission-rules/bulk                        → 201 { rules: [...] }
  PATCH  /api/v1/permission-rules/{rule_id}                   → 200 { id, permission_id, ... }
  DELETE /api/v1/permission-rules/{rule_id}                   → 200 { deleted }
  GET    /api/v1/permission-rules/catalogue                   → 200 { permissions: { category: [...] } }
  GET    /api/v1/permission-rules/basis-options/{basis_type}  → 200 { options: [...] }

Every route requires ``manage_user_accounts``. Invalid drafts answer 422
with the offending field.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from ..permissions.rule_admin import InvalidRule, RuleAdminService
from ..security.permission_guard import require_permission
from .permissions import MANAGE_USER_ACCOUNTS
from .schemas import BulkRulesRequest, RuleBody, RuleUpdateBody

require_rule_admin = require_permission(MANAGE_USER_ACCOUNTS)


def _service(request: Request) -> RuleAdminService:
    return request.app.state.deps.rule_admin


def _invalid(exc: InvalidRule) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail={'code': 'INVALID_RULE', 'message': exc.message, 'field': exc.field},
    )


def _rule_not_found(rule_id: str) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={'code': 'RULE_NOT_FOUND', 'message': f'Permission rule {rule_id} not found'},
    )


def create_rule_router() -> APIRouter:
    """Create the rule-admin router; services come from ``app.state.deps``."""
    router = APIRouter(prefix='/api/v1/permission-rules', tags=['permission-rules'])

    @router.get('')
    async def list_rules(
        request: Request,
        basis_type: str | None = None,
        user_id: str = Depends(require_rule_admin),
    ):
        try:
            rules = await _service(request).list_rules(basis_type)
        except InvalidRule as exc:
            raise _invalid(exc) from exc
        return {'rules': [r.to_dict() for r in rules]}

    @router.post('', status_code=201)
    async def create_rule(
        body: RuleBody,
        request: Request,
        user_id: str = Depends(require_rule_admin),
    ):
        try:
            record = await _service(request).create_rule(body.to_draft(), user_id)
        except InvalidRule as exc:
            raise _invalid(exc) from exc
        return record.to_dict()

    @router.post('/bulk', status_code=201)
    async def bulk_create_rules(
        body: BulkRulesRequest,
        request: Request,
        user_id: str = Depends(require_rule_admin),
    ):
        """Create several rules at once; nothing is written if any is invalid."""
        try:
            records = await _service(request).bulk_create_rules(
                [rule.to_draft() for rule in body.rules], user_id,
            )
        except InvalidRule as exc:
            raise _invalid(exc) from exc
        return {'rules': [r.to_dict() for r in records]}

    @router.get('/catalogue')
    async def permission_catalogue(
        request: Request,
        user_id: str = Depends(require_rule_admin),
    ):
        grouped = await _service(request).grouped_permissions()
        return {
            'permissions': {
                category: [p.to_dict() for p in permissions]
                for category, permissions in grouped.items()
            },
        }

    @router.get('/basis-options/{basis_type}')
    async def basis_options(
        basis_type: str,
        request: Request,
        user_id: str = Depends(require_rule_admin),
    ):
        try:
            options = await _service(request).basis_options(basis_type)
        except InvalidRule as exc:
            raise _invalid(exc) from exc
        return {'options': [o.to_dict() for o in options]}

    @router.patch('/{rule_id}')
    async def update_rule(
        rule_id: str,
        body: RuleUpdateBody,
        request: Request,
        user_id: str = Depends(require_rule_admin),
    ):
        try:
            record = await _service(request).update_rule(rule_id, body.changes())
        except InvalidRule as exc:
            raise _invalid(exc) from exc
        if record is None:
            raise _rule_not_found(rule_id)
        return record.to_dict()

    @router.delete('/{rule_id}')
    async def delete_rule(
        rule_id: str,
        request: Request,
        user_id: str = Depends(require_rule_admin),
    ):
        if not await _service(request).delete_rule(rule_id):
            raise _rule_not_found(rule_id)
        return {'deleted': rule_id}

    return router
