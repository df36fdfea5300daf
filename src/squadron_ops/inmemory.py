"""In-memory source implementations for local development and tests.

These are used when ENVIRONMENT=local. They satisfy the protocols in
``squadron_ops.protocols`` but keep everything in dicts (no persistence
across restarts).
"""

from __future__ import annotations

import dataclasses
import uuid
from typing import Any, Iterable, Mapping

from .debriefs.status import DebriefRecord, DebriefStatus
from .permissions.calculator import (
    PERMISSION_CATALOGUE,
    PermissionRule,
    UserBases,
    compute_permission_set,
)
from .permissions.grants import DelegationRecord
from .permissions.permission_set import PermissionSet
from .permissions.rule_admin import AppPermission, BasisOption, PermissionRuleRecord, RuleDraft


class InMemoryPermissionRuleRepository:
    """Bases, rules and the rule-admin catalogue kept in dicts.

    Without an explicit catalogue every known permission name is its own id.
    Rules given without an id get one.
    """

    def __init__(
        self,
        bases: Iterable[UserBases] = (),
        rules: Iterable[PermissionRule] = (),
        *,
        permissions: Iterable[AppPermission] | None = None,
        basis_options: Mapping[str, Iterable[BasisOption]] | None = None,
    ) -> None:
        self._bases: dict[str, UserBases] = {b.user_id: b for b in bases}
        self._rules: dict[str, PermissionRule] = {}
        self._created_by: dict[str, str] = {}
        if permissions is None:
            permissions = [
                AppPermission(id=name, name=name, display_name=name.replace("_", " ").capitalize())
                for name in sorted(PERMISSION_CATALOGUE)
            ]
        self._permissions: dict[str, AppPermission] = {p.id: p for p in permissions}
        self._basis_options = {k: list(v) for k, v in (basis_options or {}).items()}
        for rule in rules:
            self.add_rule(rule)

    def set_bases(self, bases: UserBases) -> None:
        self._bases[bases.user_id] = bases

    def add_rule(self, rule: PermissionRule) -> PermissionRule:
        if rule.id is None:
            rule = dataclasses.replace(rule, id=f"rule_{uuid.uuid4().hex[:8]}")
        self._rules[rule.id] = rule
        return rule

    async def get_user_bases(self, user_id: str) -> UserBases:
        return self._bases.get(user_id) or UserBases(user_id=user_id)

    async def list_applicable_rules(self, bases: UserBases) -> list[PermissionRule]:
        basis_ids = set(bases.basis_ids)
        applicable = []
        for rule in self._rules.values():
            if not rule.active:
                continue
            if rule.basis_type == "authenticated_user" and rule.basis_id is None:
                applicable.append(rule)
            elif rule.basis_type == "manual_override":
                if bases.user_profile_id and rule.basis_id == bases.user_profile_id:
                    applicable.append(rule)
            elif rule.basis_id is not None and rule.basis_id in basis_ids:
                applicable.append(rule)
        return applicable

    # Rule administration

    def _permission_by_name(self, name: str) -> AppPermission | None:
        return next((p for p in self._permissions.values() if p.name == name), None)

    def _record(self, rule: PermissionRule) -> PermissionRuleRecord:
        permission = self._permission_by_name(rule.permission)
        return PermissionRuleRecord(
            id=rule.id,
            permission_id=permission.id if permission else rule.permission,
            basis_type=rule.basis_type,
            scope=rule.scope,
            basis_id=rule.basis_id,
            active=rule.active,
            permission_name=rule.permission,
            permission_display_name=permission.display_name if permission else None,
            created_by=self._created_by.get(rule.id),
        )

    async def list_permissions(self) -> list[AppPermission]:
        return sorted(self._permissions.values(), key=lambda p: (p.category, p.name))

    async def list_basis_options(self, basis_type: str) -> list[BasisOption]:
        return list(self._basis_options.get(basis_type, ()))

    async def list_rules(self, basis_type: str | None = None) -> list[PermissionRuleRecord]:
        # Newest first, like the database ordering on created_at.
        return [
            self._record(rule)
            for rule in reversed(self._rules.values())
            if basis_type is None or rule.basis_type == basis_type
        ]

    async def get_rule(self, rule_id: str) -> PermissionRuleRecord | None:
        rule = self._rules.get(rule_id)
        return self._record(rule) if rule else None

    async def create_rules(
        self, drafts: list[RuleDraft], created_by: str,
    ) -> list[PermissionRuleRecord]:
        records = []
        for draft in drafts:
            rule = self.add_rule(PermissionRule(
                permission=self._permissions[draft.permission_id].name,
                basis_type=draft.basis_type,
                scope=draft.scope,
                basis_id=draft.basis_id,
                active=draft.active,
            ))
            self._created_by[rule.id] = created_by
            records.append(self._record(rule))
        return records

    async def update_rule(
        self, rule_id: str, changes: Mapping[str, Any],
    ) -> PermissionRuleRecord | None:
        rule = self._rules.get(rule_id)
        if rule is None:
            return None
        fields = {k: v for k, v in changes.items() if k != "permission_id"}
        if "permission_id" in changes:
            fields["permission"] = self._permissions[changes["permission_id"]].name
        rule = dataclasses.replace(rule, **fields)
        self._rules[rule_id] = rule
        return self._record(rule)

    async def delete_rule(self, rule_id: str) -> bool:
        self._created_by.pop(rule_id, None)
        return self._rules.pop(rule_id, None) is not None


class InMemoryGrantSource:
    """Fixed permission sets per user.

    Users without an entry resolve to the empty catalogue (everything denied).
    """

    def __init__(self, sets: Mapping[str, PermissionSet] | None = None) -> None:
        self._sets: dict[str, PermissionSet] = dict(sets or {})
        self.loads = 0

    def set_permissions(self, user_id: str, permission_set: PermissionSet) -> None:
        self._sets[user_id] = permission_set

    async def load_permission_set(self, user_id: str) -> PermissionSet:
        self.loads += 1
        existing = self._sets.get(user_id)
        if existing is not None:
            return existing
        return compute_permission_set((), UserBases(user_id=user_id))


class InMemoryDelegationRepository:
    def __init__(self) -> None:
        self._delegations: dict[str, DelegationRecord] = {}

    async def find_active(self, debrief_id: str, pilot_id: str) -> DelegationRecord | None:
        for record in self._delegations.values():
            if (
                record.debrief_id == debrief_id
                and record.delegated_to_pilot_id == pilot_id
                and not record.revoked
            ):
                return record
        return None

    async def create(
        self, debrief_id: str, pilot_id: str, delegated_by_user_id: str,
    ) -> DelegationRecord:
        record = DelegationRecord(
            id=f"dlg_{uuid.uuid4().hex[:8]}",
            debrief_id=debrief_id,
            delegated_to_pilot_id=pilot_id,
            delegated_by_user_id=delegated_by_user_id,
        )
        self._delegations[record.id] = record
        return record

    async def revoke(self, delegation_id: str) -> DelegationRecord | None:
        record = self._delegations.get(delegation_id)
        if record is None:
            return None
        revoked = dataclasses.replace(record, revoked=True)
        self._delegations[delegation_id] = revoked
        return revoked

    async def list_for_debrief(self, debrief_id: str) -> list[DelegationRecord]:
        return [r for r in self._delegations.values() if r.debrief_id == debrief_id]


class InMemoryDebriefRepository:
    def __init__(self, debriefs: Iterable[DebriefRecord] = ()) -> None:
        self._debriefs: dict[str, DebriefRecord] = {d.id: d for d in debriefs}

    def add(self, debrief: DebriefRecord) -> None:
        self._debriefs[debrief.id] = debrief

    async def get_debrief(self, debrief_id: str) -> DebriefRecord | None:
        return self._debriefs.get(debrief_id)

    async def set_status(self, debrief_id: str, status: DebriefStatus) -> DebriefRecord | None:
        current = self._debriefs.get(debrief_id)
        if current is None:
            return None
        updated = dataclasses.replace(current, status=status)
        self._debriefs[debrief_id] = updated
        return updated
