"""Source protocols the permission layer depends on.

Concrete implementations are the Supabase repositories in ``squadron_ops.db``
(non-local) and the dict-backed ones in ``squadron_ops.inmemory`` (local
development and tests). The app factory accepts anything matching these.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .debriefs.status import DebriefRecord, DebriefStatus
    from .permissions.calculator import PermissionRule, UserBases
    from .permissions.grants import DelegationRecord
    from .permissions.permission_set import PermissionSet
    from .permissions.rule_admin import AppPermission, BasisOption, PermissionRuleRecord, RuleDraft


@runtime_checkable
class GrantSource(Protocol):
    """Resolved permission set for one user."""

    async def load_permission_set(self, user_id: str) -> PermissionSet: ...


@runtime_checkable
class PermissionRuleRepository(Protocol):
    """User bases and the permission rules attached to them."""

    async def get_user_bases(self, user_id: str) -> UserBases: ...
    async def list_applicable_rules(self, bases: UserBases) -> list[PermissionRule]: ...


@runtime_checkable
class DelegationSource(Protocol):
    """Debrief editing delegations. Always read live, never cached."""

    async def find_active(self, debrief_id: str, pilot_id: str) -> DelegationRecord | None: ...
    async def create(
        self, debrief_id: str, pilot_id: str, delegated_by_user_id: str,
    ) -> DelegationRecord: ...
    async def revoke(self, delegation_id: str) -> DelegationRecord | None: ...
    async def list_for_debrief(self, debrief_id: str) -> list[DelegationRecord]: ...


@runtime_checkable
class DebriefSource(Protocol):
    """Debrief lifecycle state plus the wing/squadron that owns it."""

    async def get_debrief(self, debrief_id: str) -> DebriefRecord | None: ...
    async def set_status(self, debrief_id: str, status: DebriefStatus) -> DebriefRecord | None: ...


@runtime_checkable
class RuleAdminRepository(Protocol):
    """Write side of ``permission_rules`` plus the catalogue the admin UI picks from."""

    async def list_permissions(self) -> list[AppPermission]: ...
    async def list_basis_options(self, basis_type: str) -> list[BasisOption]: ...
    async def list_rules(self, basis_type: str | None = None) -> list[PermissionRuleRecord]: ...
    async def get_rule(self, rule_id: str) -> PermissionRuleRecord | None: ...
    async def create_rules(
        self, drafts: list[RuleDraft], created_by: str,
    ) -> list[PermissionRuleRecord]: ...
    async def update_rule(
        self, rule_id: str, changes: Mapping[str, Any],
    ) -> PermissionRuleRecord | None: ...
    async def delete_rule(self, rule_id: str) -> bool: ...
