"""Tests for grant variants, access contexts and permission sets."""

from __future__ import annotations

import pytest

from squadron_ops.permissions.grants import (
    AccessContext,
    DelegationRecord,
    FlightGrant,
    GlobalGrant,
    SquadronGrant,
    WingGrant,
    grant_from_scope,
)
from squadron_ops.permissions.permission_set import PermissionSet


class TestGrantFromScope:
    @pytest.mark.parametrize('scope', ['global', 'all_squadrons', 'all_wings'])
    def test_organisation_wide_scopes_become_global(self, scope):
        assert grant_from_scope(scope, squadron_id='sq-1', wing_id='wg-1') == GlobalGrant()

    def test_own_scopes_anchor_on_the_user(self):
        assert grant_from_scope('own_squadron', squadron_id='sq-1') == SquadronGrant('sq-1')
        assert grant_from_scope('own_wing', wing_id='wg-1') == WingGrant('wg-1')
        assert grant_from_scope('flight', pilot_id='p-1') == FlightGrant('p-1')

    def test_own_scope_without_anchor_is_none(self):
        assert grant_from_scope('own_squadron') is None
        assert grant_from_scope('own_wing', squadron_id='sq-1') is None

    def test_unknown_scope_raises(self):
        with pytest.raises(ValueError, match='unknown permission scope'):
            grant_from_scope('galaxy')


def test_grant_to_dict_is_tagged():
    assert GlobalGrant().to_dict() == {'type': 'global'}
    assert WingGrant('wg-1').to_dict() == {'type': 'wing', 'wing_id': 'wg-1'}
    assert SquadronGrant('sq-1').to_dict() == {'type': 'squadron', 'squadron_id': 'sq-1'}
    assert FlightGrant('p-1').to_dict() == {'type': 'flight', 'pilot_id': 'p-1'}


def test_access_context_from_mapping_and_back():
    context = AccessContext.from_mapping({'squadron_id': 'sq-1', 'pilot_id': 'p-1'})

    assert context == AccessContext(squadron_id='sq-1', pilot_id='p-1')
    assert context.to_dict() == {'squadron_id': 'sq-1', 'pilot_id': 'p-1'}
    assert AccessContext.from_mapping(None) is None
    assert AccessContext.from_mapping({}) is None


def test_delegation_record_activity_follows_revoked_flag():
    record = DelegationRecord(id='dlg-1', debrief_id='d-1', delegated_to_pilot_id='p-7')

    assert record.is_active is True
    assert DelegationRecord('dlg-1', 'd-1', 'p-7', revoked=True).is_active is False


class TestPermissionSet:
    def test_values_are_frozen(self):
        grants = [SquadronGrant('sq-1')]
        permission_set = PermissionSet({'manage_roster': grants, 'access_roster': True})
        grants.append(GlobalGrant())

        assert permission_set['manage_roster'] == (SquadronGrant('sq-1'),)
        assert permission_set['access_roster'] is True

    def test_mapping_is_read_only(self):
        permission_set = PermissionSet({'access_roster': True})

        with pytest.raises(TypeError):
            permission_set._grants['access_roster'] = False  # type: ignore[index]

    def test_absent_name_is_none(self):
        permission_set = PermissionSet({'access_roster': True})

        assert permission_set.get('manage_roster') is None
        assert 'manage_roster' not in permission_set
        assert len(permission_set) == 1

    def test_rejects_values_that_are_not_grants(self):
        with pytest.raises(ValueError, match='bool or a sequence'):
            PermissionSet({'manage_roster': 'sq-1'})
        with pytest.raises(ValueError, match='non-grant entry'):
            PermissionSet({'manage_roster': ['sq-1']})

    def test_from_entries_merges_repeated_names(self):
        permission_set = PermissionSet.from_entries([
            ('manage_roster', [SquadronGrant('sq-1')]),
            ('access_roster', False),
            ('manage_roster', [SquadronGrant('sq-1'), WingGrant('wg-1')]),
            ('access_roster', True),
        ])

        assert permission_set['manage_roster'] == (SquadronGrant('sq-1'), WingGrant('wg-1'))
        assert permission_set['access_roster'] is True

    def test_from_entries_rejects_mixed_kinds(self):
        with pytest.raises(ValueError, match='both boolean and scope-qualified'):
            PermissionSet.from_entries([
                ('manage_roster', True),
                ('manage_roster', [GlobalGrant()]),
            ])

    def test_granted_names_and_to_dict(self):
        permission_set = PermissionSet({
            'access_roster': True,
            'access_admin_tools': False,
            'manage_roster': (SquadronGrant('sq-1'),),
            'manage_events': (),
        })

        assert permission_set.granted_names() == ['access_roster', 'manage_roster']
        assert permission_set.to_dict()['manage_roster'] == [
            {'type': 'squadron', 'squadron_id': 'sq-1'}
        ]

    def test_equality_ignores_calculation_time(self):
        assert PermissionSet({'access_roster': True}) == PermissionSet({'access_roster': True})
        assert PermissionSet({'access_roster': True}) != PermissionSet({'access_roster': False})
