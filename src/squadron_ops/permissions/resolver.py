"""Permission resolution for one user, permission and access context.

Evaluation order for ``has_permission``:

1. Load the user's ``PermissionSet`` through the session cache.
2. Absent permission name -> deny.
3. Scope match (``matcher.evaluate``) -> allow on success.
4. ``edit_debriefs`` only, when step 3 failed and the context names both a
   pilot and a debrief: a live, non-revoked delegation for that pair allows.
5. Otherwise deny.

Every failure on the way (unreachable source, unknown name, unusable
context) is logged and becomes a denial. Callers only ever see a boolean.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Literal

from ..observability.logging import get_logger
from ..observability.metrics import PERMISSION_CHECKS_TOTAL
from ..protocols import DelegationSource
from .cache import PermissionCache
from .errors import (
    GrantLookupFailure,
    InvalidContext,
    PermissionCheckError,
    PermissionDeniedError,
    UnknownPermission,
)
from .grants import AccessContext, PermissionGrant
from .matcher import evaluate, matching_grants, missing_context_fields
from .permission_set import GrantValue, PermissionSet

logger = get_logger(__name__)

EDIT_DEBRIEFS = 'edit_debriefs'

CheckReason = Literal[
    'granted',
    'delegated',
    'insufficient_permissions',
    'unknown_permission',
    'invalid_context',
    'lookup_failed',
]


@dataclass(frozen=True, slots=True)
class PermissionCheckResult:
    """Detailed outcome of one permission check."""

    permission: str
    allowed: bool
    reason: CheckReason
    matching_grants: tuple[PermissionGrant, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            'permission': self.permission,
            'allowed': self.allowed,
            'reason': self.reason,
            'matching_grants': [g.to_dict() for g in self.matching_grants],
        }


class PermissionResolver:
    """Fail-closed permission checks over a cached grant source."""

    def __init__(self, cache: PermissionCache, delegations: DelegationSource) -> None:
        self._cache = cache
        self._delegations = delegations

    @property
    def cache(self) -> PermissionCache:
        return self._cache

    async def get_permissions(self, user_id: str) -> PermissionSet:
        """Return the user's resolved set.

        Raises:
            GrantLookupFailure: If the grant source failed.
        """
        try:
            return await self._cache.get(user_id)
        except Exception as exc:
            raise GrantLookupFailure('grant', exc) from exc

    async def refresh_permissions(self, user_id: str) -> PermissionSet:
        try:
            return await self._cache.refresh(user_id)
        except Exception as exc:
            raise GrantLookupFailure('grant', exc) from exc

    def invalidate(self, user_id: str) -> None:
        self._cache.invalidate(user_id)
        logger.info('permission_set_invalidated', user_id=user_id)

    def invalidate_all(self) -> None:
        self._cache.invalidate_all()
        logger.info('permission_set_invalidated_all')

    async def has_permission(
        self,
        user_id: str,
        permission: str,
        context: AccessContext | None = None,
    ) -> bool:
        result = await self.check_permission(user_id, permission, context)
        return result.allowed

    async def check_permission(
        self,
        user_id: str,
        permission: str,
        context: AccessContext | None = None,
    ) -> PermissionCheckResult:
        try:
            permission_set = await self.get_permissions(user_id)
            result = await self._check(permission_set, permission, context)
        except PermissionCheckError as exc:
            result = self._denied(user_id, permission, context, exc)

        PERMISSION_CHECKS_TOTAL.labels(permission=permission, reason=result.reason).inc()
        return result

    async def check_permissions(
        self,
        user_id: str,
        permissions: Iterable[str],
        context: AccessContext | None = None,
    ) -> dict[str, bool]:
        """Check several permissions against one context.

        The set is loaded once; a load failure denies every name.
        """
        names = list(dict.fromkeys(permissions))
        try:
            permission_set = await self.get_permissions(user_id)
        except GrantLookupFailure as exc:
            for name in names:
                self._denied(user_id, name, context, exc)
                PERMISSION_CHECKS_TOTAL.labels(permission=name, reason=exc.code).inc()
            return {name: False for name in names}

        results: dict[str, bool] = {}
        for name in names:
            try:
                result = await self._check(permission_set, name, context)
            except PermissionCheckError as exc:
                result = self._denied(user_id, name, context, exc)
            PERMISSION_CHECKS_TOTAL.labels(permission=name, reason=result.reason).inc()
            results[name] = result.allowed
        return results

    async def require_permission(
        self,
        user_id: str,
        permission: str,
        context: AccessContext | None = None,
    ) -> None:
        """Raise ``PermissionDeniedError`` unless the check allows."""
        if not await self.has_permission(user_id, permission, context):
            raise PermissionDeniedError(permission, context)

    # ── internals ────────────────────────────────────────────────────

    async def _check(
        self,
        permission_set: PermissionSet,
        permission: str,
        context: AccessContext | None,
    ) -> PermissionCheckResult:
        grant = permission_set.get(permission)
        if grant is None:
            raise UnknownPermission(permission)

        if evaluate(grant, context):
            return PermissionCheckResult(
                permission=permission,
                allowed=True,
                reason='granted',
                matching_grants=matching_grants(grant, context),
            )

        if permission == EDIT_DEBRIEFS and await self._has_delegation(context):
            return PermissionCheckResult(permission=permission, allowed=True, reason='delegated')

        self._raise_for_context(permission, grant, context)
        return PermissionCheckResult(
            permission=permission, allowed=False, reason='insufficient_permissions',
        )

    async def _has_delegation(self, context: AccessContext | None) -> bool:
        if context is None or not context.pilot_id or not context.debrief_id:
            return False
        try:
            record = await self._delegations.find_active(context.debrief_id, context.pilot_id)
        except Exception as exc:
            raise GrantLookupFailure('delegation', exc) from exc
        return record is not None and not record.revoked

    @staticmethod
    def _raise_for_context(
        permission: str,
        grant: GrantValue,
        context: AccessContext | None,
    ) -> None:
        missing = missing_context_fields(grant, context)
        if missing:
            raise InvalidContext(permission, missing)

    @staticmethod
    def _denied(
        user_id: str,
        permission: str,
        context: AccessContext | None,
        exc: PermissionCheckError,
    ) -> PermissionCheckResult:
        log = logger.warning if isinstance(exc, GrantLookupFailure) else logger.info
        log(
            'permission_denied_fail_closed',
            user_id=user_id,
            permission=permission,
            error_code=exc.code,
            error=exc.message,
            context=context.to_dict() if context else None,
            details=exc.details,
        )
        return PermissionCheckResult(permission=permission, allowed=False, reason=exc.code)
