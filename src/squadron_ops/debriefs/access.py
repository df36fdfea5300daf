"""Debrief-level access checks.

Each check looks the debrief up first. A finalized debrief is locked for
editing before any permission is consulted, so not even a global
``edit_debriefs`` grant can reopen it. Everything else is delegated to the
resolver with the debrief's wing and squadron as the access context.

All checks fail closed: a missing debrief or an unreachable status source
yields False and is logged.
"""

from __future__ import annotations

from ..observability.logging import get_logger
from ..permissions.resolver import PermissionResolver
from ..protocols import DebriefSource
from .status import DebriefRecord, DebriefStatus, transition

logger = get_logger(__name__)

VIEW_DEBRIEFS = 'view_debriefs'
EDIT_DEBRIEFS = 'edit_debriefs'
FINALIZE_DEBRIEFS = 'finalize_debriefs'
DELEGATE_DEBRIEFS = 'delegate_debriefs'


class DebriefAccess:
    def __init__(self, resolver: PermissionResolver, debriefs: DebriefSource) -> None:
        self._resolver = resolver
        self._debriefs = debriefs

    async def get_debrief(self, debrief_id: str) -> DebriefRecord | None:
        """Look up a debrief, or None when missing or the lookup failed."""
        try:
            debrief = await self._debriefs.get_debrief(debrief_id)
        except Exception as exc:
            logger.warning(
                'debrief_lookup_failed',
                debrief_id=debrief_id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return None
        if debrief is None:
            logger.info('debrief_not_found', debrief_id=debrief_id)
        return debrief

    async def can_view_debrief(self, user_id: str, debrief_id: str) -> bool:
        debrief = await self.get_debrief(debrief_id)
        if debrief is None:
            return False
        return await self._resolver.has_permission(
            user_id, VIEW_DEBRIEFS, debrief.access_context(),
        )

    async def can_edit_debrief(
        self,
        user_id: str,
        debrief_id: str,
        pilot_id: str | None = None,
    ) -> bool:
        """Whether the user may edit the debrief.

        ``pilot_id`` is the caller's own pilot record; it enables the
        delegation fallback when no scope grant covers the debrief.
        """
        debrief = await self.get_debrief(debrief_id)
        if debrief is None:
            return False
        if debrief.is_finalized:
            return False
        return await self._resolver.has_permission(
            user_id, EDIT_DEBRIEFS, debrief.access_context(pilot_id),
        )

    async def can_finalize_debrief(self, user_id: str, debrief_id: str) -> bool:
        debrief = await self.get_debrief(debrief_id)
        if debrief is None or debrief.is_finalized:
            return False
        return await self._resolver.has_permission(
            user_id, FINALIZE_DEBRIEFS, debrief.access_context(),
        )

    async def can_delegate_debrief(self, user_id: str, debrief_id: str) -> bool:
        debrief = await self.get_debrief(debrief_id)
        if debrief is None:
            return False
        return await self._resolver.has_permission(
            user_id, DELEGATE_DEBRIEFS, debrief.access_context(),
        )

    async def access_summary(
        self,
        user_id: str,
        debrief_id: str,
        pilot_id: str | None = None,
    ) -> dict[str, bool]:
        return {
            'can_view': await self.can_view_debrief(user_id, debrief_id),
            'can_edit': await self.can_edit_debrief(user_id, debrief_id, pilot_id),
            'can_finalize': await self.can_finalize_debrief(user_id, debrief_id),
            'can_delegate': await self.can_delegate_debrief(user_id, debrief_id),
        }

    async def finalize_debrief(self, user_id: str, debrief_id: str) -> DebriefRecord | None:
        """Lock a draft debrief.

        Returns the finalized record, or None when the user may not finalize
        it (including when it is already finalized). Storage errors on the
        write itself propagate.
        """
        debrief = await self.get_debrief(debrief_id)
        if debrief is None or debrief.is_finalized:
            return None
        allowed = await self._resolver.has_permission(
            user_id, FINALIZE_DEBRIEFS, debrief.access_context(),
        )
        if not allowed:
            return None

        target = transition(debrief.status, DebriefStatus.FINALIZED)
        updated = await self._debriefs.set_status(debrief_id, target)
        logger.info('debrief_finalized', debrief_id=debrief_id, user_id=user_id)
        return updated
