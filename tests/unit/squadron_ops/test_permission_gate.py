"""Tests for gate decisions."""

from __future__ import annotations

import pytest

from squadron_ops.inmemory import InMemoryDelegationRepository, InMemoryGrantSource
from squadron_ops.permissions.cache import PermissionCache
from squadron_ops.permissions.gate import (
    GateDecision,
    GateMode,
    PermissionGate,
    decide_gate,
    default_denied_message,
)
from squadron_ops.permissions.grants import AccessContext, SquadronGrant
from squadron_ops.permissions.resolver import PermissionResolver


@pytest.mark.parametrize('mode', list(GateMode))
def test_loading_renders_placeholder_in_every_mode(mode):
    decision = decide_gate(None, mode, permission='manage_roster', has_fallback=True)

    assert decision == GateDecision(render='placeholder', interactive=False)


@pytest.mark.parametrize('mode', list(GateMode))
def test_allowed_renders_children_in_every_mode(mode):
    decision = decide_gate(True, mode, permission='manage_roster')

    assert decision == GateDecision(render='children', interactive=True)


def test_hide_denied_renders_fallback_or_nothing():
    assert decide_gate(False, 'hide', permission='manage_roster').render == 'nothing'
    assert decide_gate(
        False, GateMode.HIDE, permission='manage_roster', has_fallback=True,
    ).render == 'fallback'


def test_disable_denied_renders_inert_children():
    decision = decide_gate(False, GateMode.DISABLE, permission='manage_roster')

    assert decision == GateDecision(render='children', interactive=False)


def test_show_tooltip_denied_explains():
    decision = decide_gate(False, 'show-tooltip', permission='manage_roster')

    assert decision.render == 'children'
    assert decision.interactive is False
    assert decision.tooltip == "You don't have permission to manage roster"


def test_custom_denied_message_wins():
    decision = decide_gate(
        False, GateMode.SHOW_TOOLTIP, permission='manage_roster', denied_message='Ask your CO',
    )

    assert decision.tooltip == 'Ask your CO'


def test_unknown_mode_is_rejected():
    with pytest.raises(ValueError):
        decide_gate(False, 'blink', permission='manage_roster')


def test_default_denied_message():
    assert default_denied_message('edit_flight_assignments') == (
        "You don't have permission to edit flight assignments"
    )


@pytest.mark.asyncio
async def test_permission_gate_resolves_for_user(make_permission_set):
    source = InMemoryGrantSource({
        'u-1': make_permission_set(manage_roster=(SquadronGrant('sq-1'),)),
    })
    gate = PermissionGate(PermissionResolver(PermissionCache(source), InMemoryDelegationRepository()))

    allowed = await gate.decide(
        'u-1', 'manage_roster', mode='disable', context=AccessContext(squadron_id='sq-1'),
    )
    denied = await gate.decide(
        'u-1', 'manage_roster', mode='show-tooltip', context=AccessContext(squadron_id='sq-2'),
    )

    assert allowed.to_dict() == {'render': 'children', 'interactive': True, 'tooltip': None}
    assert denied.tooltip == "You don't have permission to manage roster"
