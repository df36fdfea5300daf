"""Tests for rule-based permission calculation."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from squadron_ops.inmemory import InMemoryPermissionRuleRepository
from squadron_ops.permissions.calculator import (
    BOOLEAN_PERMISSIONS,
    SCOPED_PERMISSIONS,
    PermissionCalculator,
    PermissionRule,
    UserBases,
    compute_permission_set,
)
from squadron_ops.permissions.grants import FlightGrant, GlobalGrant, SquadronGrant, WingGrant

BASES = UserBases(
    user_id='u-1',
    user_profile_id='prof-1',
    pilot_id='p-1',
    squadron_id='sq-1',
    wing_id='wg-1',
    standing_ids=('standing-active',),
    qualification_ids=('qual-flight-lead',),
    billet_ids=('billet-co',),
)


def test_every_catalogue_name_is_present():
    permission_set = compute_permission_set([], BASES)

    assert set(permission_set) == BOOLEAN_PERMISSIONS | SCOPED_PERMISSIONS
    assert all(permission_set[name] is False for name in BOOLEAN_PERMISSIONS)
    assert all(permission_set[name] == () for name in SCOPED_PERMISSIONS)


def test_boolean_rule_turns_permission_on():
    rules = [PermissionRule('access_admin_tools', 'manual_override', 'global', 'prof-1')]

    assert compute_permission_set(rules, BASES)['access_admin_tools'] is True


def test_scoped_rules_become_grants_relative_to_the_user():
    rules = [
        PermissionRule('manage_roster', 'billet', 'own_squadron', 'billet-co'),
        PermissionRule('manage_events', 'qualification', 'all_wings', 'qual-flight-lead'),
        PermissionRule('edit_debriefs', 'qualification', 'flight', 'qual-flight-lead'),
    ]

    permission_set = compute_permission_set(rules, BASES)

    assert permission_set['manage_roster'] == (SquadronGrant('sq-1'),)
    assert permission_set['manage_events'] == (GlobalGrant(),)
    assert permission_set['edit_debriefs'] == (FlightGrant('p-1'),)


def test_own_wing_includes_own_squadron():
    rules = [PermissionRule('view_debriefs', 'standing', 'own_wing', 'standing-active')]

    permission_set = compute_permission_set(rules, BASES)

    assert permission_set['view_debriefs'] == (WingGrant('wg-1'), SquadronGrant('sq-1'))


def test_duplicate_rules_do_not_duplicate_grants():
    rules = [
        PermissionRule('manage_roster', 'billet', 'own_squadron', 'billet-co'),
        PermissionRule('manage_roster', 'standing', 'own_squadron', 'standing-active'),
    ]

    assert compute_permission_set(rules, BASES)['manage_roster'] == (SquadronGrant('sq-1'),)


def test_inactive_unknown_and_unanchored_rules_are_ignored():
    unassigned = UserBases(user_id='u-2', pilot_id='p-2')
    rules = [
        PermissionRule('manage_roster', 'billet', 'global', 'billet-co', active=False),
        PermissionRule('launch_missiles', 'billet', 'global', 'billet-co'),
        PermissionRule('manage_events', 'authenticated_user', 'own_squadron'),
    ]

    permission_set = compute_permission_set(rules, unassigned)

    assert permission_set['manage_roster'] == ()
    assert 'launch_missiles' not in permission_set
    assert permission_set['manage_events'] == ()


def test_bad_scope_row_only_drops_its_own_rule():
    rules = [
        PermissionRule('access_home', 'authenticated_user', 'global'),
        PermissionRule('manage_roster', 'billet', 'own_flight', 'billet-co', id='r-bad'),
        PermissionRule('manage_events', 'billet', 'own_squadron', 'billet-co'),
    ]

    permission_set = compute_permission_set(rules, BASES)

    assert permission_set['access_home'] is True
    assert permission_set['manage_roster'] == ()
    assert permission_set['manage_events'] == (SquadronGrant('sq-1'),)


def test_calculated_at_is_stamped():
    stamp = datetime(2026, 1, 1, tzinfo=timezone.utc)

    assert compute_permission_set([], BASES, calculated_at=stamp).calculated_at == stamp


@pytest.mark.asyncio
async def test_calculator_applies_only_rules_for_the_users_bases():
    repo = InMemoryPermissionRuleRepository(
        bases=[BASES],
        rules=[
            PermissionRule('access_home', 'authenticated_user', 'global'),
            PermissionRule('manage_roster', 'billet', 'own_squadron', 'billet-co'),
            PermissionRule('delete_pilots', 'billet', 'global', 'billet-xo'),
            PermissionRule('access_admin_tools', 'manual_override', 'global', 'prof-1'),
            PermissionRule('access_developer_settings', 'manual_override', 'global', 'prof-2'),
        ],
    )

    permission_set = await PermissionCalculator(repo).load_permission_set('u-1')

    assert permission_set['access_home'] is True
    assert permission_set['manage_roster'] == (SquadronGrant('sq-1'),)
    assert permission_set['delete_pilots'] == ()
    assert permission_set['access_admin_tools'] is True
    assert permission_set['access_developer_settings'] is False


@pytest.mark.asyncio
async def test_calculator_unknown_user_gets_authenticated_rules_only():
    repo = InMemoryPermissionRuleRepository(
        rules=[
            PermissionRule('access_home', 'authenticated_user', 'global'),
            PermissionRule('manage_roster', 'authenticated_user', 'own_squadron'),
        ],
    )

    permission_set = await PermissionCalculator(repo).load_permission_set('stranger')

    assert permission_set['access_home'] is True
    assert permission_set['manage_roster'] == ()
