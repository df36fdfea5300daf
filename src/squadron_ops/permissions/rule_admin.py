"""Permission rule administration.

Admins attach permissions to bases (a standing, qualification, billet, team,
squadron, wing, every authenticated user, or one user profile) by writing
``permission_rules`` rows. Every successful write invalidates all cached
permission sets, since any rule can change any user's set.
"""

from __future__ import annotations

import asyncio
import dataclasses
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, get_args

from ..observability.logging import get_logger
from ..protocols import RuleAdminRepository
from .calculator import BasisType
from .grants import RULE_SCOPES
from .resolver import PermissionResolver

logger = get_logger(__name__)

BASIS_TYPES: frozenset[str] = frozenset(get_args(BasisType))

BASIS_TYPE_LABELS: dict[str, str] = {
    'standing': 'Standing',
    'qualification': 'Qualification',
    'billet': 'Billet',
    'team': 'Team',
    'squadron': 'Squadron',
    'wing': 'Wing',
    'authenticated_user': 'All Authenticated Users',
    'manual_override': 'Manual Override',
}

# Grouping for the admin matrix; anything else lands in 'other'.
PERMISSION_CATEGORIES = ('navigation', 'roster', 'events', 'settings', 'mission_prep')

# Basis types whose options are not rows of a roster table.
_FIXED_BASIS_OPTIONS = ('authenticated_user', 'manual_override')

RULE_FIELDS = frozenset({'permission_id', 'basis_type', 'basis_id', 'scope', 'active'})


class InvalidRule(ValueError):
    """A rule draft or update that cannot be stored."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f'{field}: {message}')


@dataclass(frozen=True, slots=True)
class AppPermission:
    """One row of the permission catalogue."""

    id: str
    name: str
    display_name: str
    description: str | None = None
    category: str = 'other'
    scope_type: str = 'global'

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'display_name': self.display_name,
            'description': self.description,
            'category': self.category,
            'scope_type': self.scope_type,
        }


@dataclass(frozen=True, slots=True)
class BasisOption:
    id: str
    name: str
    type: str

    def to_dict(self) -> dict[str, str]:
        return {'id': self.id, 'name': self.name, 'type': self.type}


@dataclass(frozen=True, slots=True)
class RuleDraft:
    """A rule as an admin submits it, before it has an id."""

    permission_id: str
    basis_type: str
    scope: str
    basis_id: str | None = None
    active: bool = True

    def to_row(self, created_by: str | None = None) -> dict[str, Any]:
        row = {
            'permission_id': self.permission_id,
            'basis_type': self.basis_type,
            'basis_id': self.basis_id,
            'scope': self.scope,
            'active': self.active,
        }
        if created_by is not None:
            row['created_by'] = created_by
        return row


@dataclass(frozen=True, slots=True)
class PermissionRuleRecord:
    """A stored rule as the admin interface lists it."""

    id: str
    permission_id: str
    basis_type: str
    scope: str
    basis_id: str | None = None
    active: bool = True
    permission_name: str | None = None
    permission_display_name: str | None = None
    basis_name: str | None = None
    created_by: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    def as_draft(self) -> RuleDraft:
        return RuleDraft(
            permission_id=self.permission_id,
            basis_type=self.basis_type,
            scope=self.scope,
            basis_id=self.basis_id,
            active=self.active,
        )

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


def validate_draft(draft: RuleDraft) -> None:
    """Raise ``InvalidRule`` unless the draft is storable.

    ``authenticated_user`` rules apply to everyone and take no basis id;
    every other basis type, including ``manual_override`` (a user profile
    id), needs one.
    """
    if not draft.permission_id:
        raise InvalidRule('permission_id', 'is required')
    if draft.basis_type not in BASIS_TYPES:
        raise InvalidRule('basis_type', f'unknown basis type {draft.basis_type!r}')
    if draft.scope not in RULE_SCOPES:
        raise InvalidRule('scope', f'unknown scope {draft.scope!r}')
    if draft.basis_type == 'authenticated_user':
        if draft.basis_id is not None:
            raise InvalidRule('basis_id', 'must be empty for authenticated_user rules')
    elif not draft.basis_id:
        raise InvalidRule('basis_id', f'is required for {draft.basis_type} rules')


def group_permissions(permissions: Iterable[AppPermission]) -> dict[str, list[AppPermission]]:
    grouped: dict[str, list[AppPermission]] = {c: [] for c in (*PERMISSION_CATEGORIES, 'other')}
    for permission in permissions:
        key = permission.category if permission.category in PERMISSION_CATEGORIES else 'other'
        grouped[key].append(permission)
    return grouped


class RuleAdminService:
    """Reads and writes permission rules on behalf of an admin."""

    def __init__(self, repository: RuleAdminRepository, resolver: PermissionResolver) -> None:
        self._repository = repository
        self._resolver = resolver

    async def grouped_permissions(self) -> dict[str, list[AppPermission]]:
        return group_permissions(await self._repository.list_permissions())

    async def basis_options(self, basis_type: str) -> list[BasisOption]:
        if basis_type not in BASIS_TYPES:
            raise InvalidRule('basis_type', f'unknown basis type {basis_type!r}')
        if basis_type in _FIXED_BASIS_OPTIONS:
            return [BasisOption(id=basis_type, name=BASIS_TYPE_LABELS[basis_type], type=basis_type)]
        return await self._repository.list_basis_options(basis_type)

    async def list_rules(self, basis_type: str | None = None) -> list[PermissionRuleRecord]:
        """Stored rules, newest first, with a display name for each basis."""
        if basis_type is not None and basis_type not in BASIS_TYPES:
            raise InvalidRule('basis_type', f'unknown basis type {basis_type!r}')
        rules = await self._repository.list_rules(basis_type)
        names = await self._basis_names({r.basis_type for r in rules if r.basis_id})
        return [
            dataclasses.replace(rule, basis_name=self._basis_name(rule, names))
            for rule in rules
        ]

    async def create_rule(self, draft: RuleDraft, created_by: str) -> PermissionRuleRecord:
        records = await self.bulk_create_rules([draft], created_by)
        return records[0]

    async def bulk_create_rules(
        self,
        drafts: list[RuleDraft],
        created_by: str,
    ) -> list[PermissionRuleRecord]:
        await self._validate(drafts)
        records = await self._repository.create_rules(drafts, created_by)
        self._rules_changed('created', rule_ids=[r.id for r in records], by=created_by)
        return records

    async def update_rule(
        self,
        rule_id: str,
        changes: Mapping[str, Any],
    ) -> PermissionRuleRecord | None:
        """Apply a partial update; None if the rule does not exist."""
        unknown = set(changes) - RULE_FIELDS
        if unknown:
            raise InvalidRule(sorted(unknown)[0], 'is not an editable rule field')
        for name, value in changes.items():
            if value is None and name != 'basis_id':
                raise InvalidRule(name, 'cannot be null')

        current = await self._repository.get_rule(rule_id)
        if current is None or not changes:
            return current
        await self._validate([dataclasses.replace(current.as_draft(), **changes)])

        record = await self._repository.update_rule(rule_id, dict(changes))
        if record is not None:
            self._rules_changed('updated', rule_ids=[rule_id], fields=sorted(changes))
        return record

    async def delete_rule(self, rule_id: str) -> bool:
        deleted = await self._repository.delete_rule(rule_id)
        if deleted:
            self._rules_changed('deleted', rule_ids=[rule_id])
        return deleted

    # ── internals ────────────────────────────────────────────────────

    async def _validate(self, drafts: list[RuleDraft]) -> None:
        for draft in drafts:
            validate_draft(draft)
        known = {p.id for p in await self._repository.list_permissions()}
        for draft in drafts:
            if draft.permission_id not in known:
                raise InvalidRule('permission_id', f'unknown permission {draft.permission_id!r}')

    async def _basis_names(self, basis_types: set[str]) -> dict[tuple[str, str], str]:
        table_backed = sorted(basis_types - set(_FIXED_BASIS_OPTIONS))
        results = await asyncio.gather(
            *(self._repository.list_basis_options(t) for t in table_backed),
            return_exceptions=True,
        )
        names: dict[tuple[str, str], str] = {}
        for basis_type, options in zip(table_backed, results):
            if isinstance(options, BaseException):
                logger.warning(
                    'basis_names_unavailable',
                    basis_type=basis_type,
                    error_type=type(options).__name__,
                )
                continue
            for option in options:
                names[(basis_type, option.id)] = option.name
        return names

    @staticmethod
    def _basis_name(rule: PermissionRuleRecord, names: dict[tuple[str, str], str]) -> str:
        if rule.basis_type == 'manual_override':
            return BASIS_TYPE_LABELS['manual_override']
        if not rule.basis_id:
            return BASIS_TYPE_LABELS.get(rule.basis_type, rule.basis_type)
        return names.get((rule.basis_type, rule.basis_id), f'Unknown {rule.basis_type}')

    def _rules_changed(self, action: str, **fields: Any) -> None:
        self._resolver.invalidate_all()
        logger.info('permission_rules_changed', action=action, **fields)
