"""Rule-based permission calculation (the grant source).

Permissions are granted additively by rules attached to a *basis*: a
standing, qualification, billet, team or squadron assignment the pilot
currently holds, every authenticated user, or a manual override on one user
profile. Each rule carries a scope that becomes a grant relative to the
user's own squadron, wing or pilot record.

``compute_permission_set`` is pure; ``PermissionCalculator`` fetches bases
and rules from a repository and feeds them through it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Literal

from ..observability.logging import get_logger
from ..protocols import PermissionRuleRepository
from .grants import PermissionGrant, SquadronGrant, WingGrant, grant_from_scope
from .permission_set import PermissionSet

logger = get_logger(__name__)

BasisType = Literal[
    'standing',
    'qualification',
    'billet',
    'team',
    'squadron',
    'wing',
    'authenticated_user',
    'manual_override',
]

# Navigation and organisation-wide switches: never scope-qualified.
BOOLEAN_PERMISSIONS: frozenset[str] = frozenset({
    'access_home',
    'access_roster',
    'access_events',
    'access_mission_prep',
    'access_flights',
    'access_settings',
    'access_reports',
    'access_mission_debriefing',
    'access_admin_tools',
    'access_developer_settings',
    'view_public_roster',
    'view_own_profile',
    'edit_organization_settings',
    'manage_user_accounts',
    'manage_polls',
    'vote_in_polls',
    'manage_change_log',
    'react_to_posts',
    'manage_dcs_reference_data',
})

SCOPED_PERMISSIONS: frozenset[str] = frozenset({
    'manage_roster',
    'edit_pilot_qualifications',
    'delete_pilots',
    'manage_standings',
    'bulk_edit_roster',
    'manage_events',
    'create_training_cycles',
    'manage_event_attendance',
    'override_event_settings',
    'manage_squadron_settings',
    'edit_discord_integration',
    'edit_flight_assignments',
    'assign_mission_roles',
    'publish_to_discord',
    'sync_with_discord',
    'view_debriefs',
    'edit_debriefs',
    'finalize_debriefs',
    'delegate_debriefs',
})

PERMISSION_CATALOGUE: frozenset[str] = BOOLEAN_PERMISSIONS | SCOPED_PERMISSIONS


@dataclass(frozen=True, slots=True)
class PermissionRule:
    """One active row of ``permission_rules`` joined to its permission name."""

    permission: str
    basis_type: BasisType
    scope: str
    basis_id: str | None = None
    active: bool = True
    id: str | None = None


@dataclass(frozen=True, slots=True)
class UserBases:
    """Everything about a user that rules can attach to."""

    user_id: str
    user_profile_id: str | None = None
    pilot_id: str | None = None
    squadron_id: str | None = None
    wing_id: str | None = None
    standing_ids: tuple[str, ...] = ()
    qualification_ids: tuple[str, ...] = ()
    billet_ids: tuple[str, ...] = ()
    team_ids: tuple[str, ...] = ()
    squadron_assignment_ids: tuple[str, ...] = ()

    @property
    def basis_ids(self) -> tuple[str, ...]:
        seen: dict[str, None] = {}
        for group in (
            self.standing_ids,
            self.qualification_ids,
            self.billet_ids,
            self.team_ids,
            self.squadron_assignment_ids,
        ):
            for basis_id in group:
                seen.setdefault(basis_id, None)
        return tuple(seen)


@dataclass
class _Accumulator:
    flags: dict[str, bool] = field(default_factory=dict)
    grants: dict[str, list[PermissionGrant]] = field(default_factory=dict)

    def add(self, name: str, grant: PermissionGrant) -> None:
        bucket = self.grants.setdefault(name, [])
        if grant not in bucket:
            bucket.append(grant)


def compute_permission_set(
    rules: Iterable[PermissionRule],
    bases: UserBases,
    *,
    calculated_at: datetime | None = None,
) -> PermissionSet:
    """Fold rules into a permission set for one user.

    Every catalogue name is present in the result: booleans default to
    False, scoped names to an empty grant tuple. Rules for names outside the
    catalogue, inactive rules, rules with an unrecognised scope, and scoped
    rules the user has no anchor for (``own_squadron`` without an
    assignment) contribute nothing.
    """
    acc = _Accumulator(
        flags={name: False for name in BOOLEAN_PERMISSIONS},
        grants={name: [] for name in SCOPED_PERMISSIONS},
    )

    for rule in rules:
        if not rule.active:
            continue
        if rule.permission in BOOLEAN_PERMISSIONS:
            acc.flags[rule.permission] = True
            continue
        if rule.permission not in SCOPED_PERMISSIONS:
            logger.debug('permission_rule_ignored', permission=rule.permission, rule_id=rule.id)
            continue

        try:
            grant = grant_from_scope(
                rule.scope,
                squadron_id=bases.squadron_id,
                wing_id=bases.wing_id,
                pilot_id=bases.pilot_id,
            )
        except ValueError:
            logger.warning(
                'permission_rule_bad_scope',
                permission=rule.permission,
                scope=rule.scope,
                rule_id=rule.id,
            )
            continue
        if grant is None:
            logger.debug(
                'permission_rule_unanchored',
                permission=rule.permission,
                scope=rule.scope,
                user_id=bases.user_id,
            )
            continue
        acc.add(rule.permission, grant)

    # Own-wing includes own-squadron.
    if bases.squadron_id and bases.wing_id:
        wing = WingGrant(bases.wing_id)
        for name, grants in acc.grants.items():
            if wing in grants:
                acc.add(name, SquadronGrant(bases.squadron_id))

    return PermissionSet(
        {**acc.flags, **acc.grants},
        calculated_at=calculated_at or datetime.now(timezone.utc),
    )


class PermissionCalculator:
    """Grant source backed by a permission-rule repository."""

    def __init__(self, repository: PermissionRuleRepository) -> None:
        self._repository = repository

    async def load_permission_set(self, user_id: str) -> PermissionSet:
        bases = await self._repository.get_user_bases(user_id)
        rules = await self._repository.list_applicable_rules(bases)
        permission_set = compute_permission_set(rules, bases)
        logger.info(
            'permission_set_calculated',
            user_id=user_id,
            rules=len(rules),
            granted=len(permission_set.granted_names()),
        )
        return permission_set
