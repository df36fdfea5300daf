"""Permission grant variants and the access context they are matched against.

A scope-qualified permission resolves to an ordered tuple of grants. The
union is closed: ``GlobalGrant``, ``WingGrant``, ``SquadronGrant`` and
``FlightGrant`` are the only variants, and every consumer switches over all
four (see ``matcher.evaluate``).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, TypeAlias

RuleScope = Literal[
    'global',
    'all_squadrons',
    'all_wings',
    'own_squadron',
    'own_wing',
    'flight',
]

RULE_SCOPES: frozenset[str] = frozenset(
    {'global', 'all_squadrons', 'all_wings', 'own_squadron', 'own_wing', 'flight'}
)


@dataclass(frozen=True, slots=True)
class GlobalGrant:
    """Unconditional access."""

    def to_dict(self) -> dict[str, Any]:
        return {'type': 'global'}


@dataclass(frozen=True, slots=True)
class WingGrant:
    """Access only within one wing."""

    wing_id: str

    def to_dict(self) -> dict[str, Any]:
        return {'type': 'wing', 'wing_id': self.wing_id}


@dataclass(frozen=True, slots=True)
class SquadronGrant:
    """Access only within one squadron."""

    squadron_id: str

    def to_dict(self) -> dict[str, Any]:
        return {'type': 'squadron', 'squadron_id': self.squadron_id}


@dataclass(frozen=True, slots=True)
class FlightGrant:
    """Flight-level grant tied to one pilot.

    Never satisfied by scope matching alone; it only means something through
    an explicit debrief delegation record.
    """

    pilot_id: str

    def to_dict(self) -> dict[str, Any]:
        return {'type': 'flight', 'pilot_id': self.pilot_id}


PermissionGrant: TypeAlias = GlobalGrant | WingGrant | SquadronGrant | FlightGrant

GRANT_TYPES: tuple[type, ...] = (GlobalGrant, WingGrant, SquadronGrant, FlightGrant)


@dataclass(frozen=True, slots=True)
class AccessContext:
    """The resource a caller is asking about.

    Every field is optional. ``debrief_id`` is only consulted by the
    ``edit_debriefs`` delegation fallback.
    """

    wing_id: str | None = None
    squadron_id: str | None = None
    pilot_id: str | None = None
    debrief_id: str | None = None

    @classmethod
    def from_mapping(cls, data: dict[str, Any] | None) -> AccessContext | None:
        if not data:
            return None
        return cls(
            wing_id=data.get('wing_id'),
            squadron_id=data.get('squadron_id'),
            pilot_id=data.get('pilot_id'),
            debrief_id=data.get('debrief_id'),
        )

    def to_dict(self) -> dict[str, str]:
        return {
            key: value
            for key, value in (
                ('wing_id', self.wing_id),
                ('squadron_id', self.squadron_id),
                ('pilot_id', self.pilot_id),
                ('debrief_id', self.debrief_id),
            )
            if value is not None
        }


@dataclass(frozen=True, slots=True)
class DelegationRecord:
    """Explicit debrief editing delegation to one pilot."""

    id: str
    debrief_id: str
    delegated_to_pilot_id: str
    revoked: bool = False
    delegated_by_user_id: str | None = None

    @property
    def is_active(self) -> bool:
        return not self.revoked

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'debrief_id': self.debrief_id,
            'delegated_to_pilot_id': self.delegated_to_pilot_id,
            'revoked': self.revoked,
            'delegated_by_user_id': self.delegated_by_user_id,
        }


def grant_from_scope(
    scope: str,
    *,
    squadron_id: str | None = None,
    wing_id: str | None = None,
    pilot_id: str | None = None,
) -> PermissionGrant | None:
    """Map a permission-rule scope onto a grant for one user.

    Returns None when the user lacks the identifier the scope is relative to
    (an ``own_squadron`` rule for a pilot with no current assignment).

    Raises:
        ValueError: If ``scope`` is not a known rule scope.
    """
    if scope not in RULE_SCOPES:
        raise ValueError(f'unknown permission scope: {scope!r}')

    if scope in ('global', 'all_squadrons', 'all_wings'):
        return GlobalGrant()
    if scope == 'own_squadron':
        return SquadronGrant(squadron_id) if squadron_id else None
    if scope == 'own_wing':
        return WingGrant(wing_id) if wing_id else None
    return FlightGrant(pilot_id) if pilot_id else None
