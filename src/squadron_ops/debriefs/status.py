"""Debrief lifecycle.

A mission debrief is a ``draft`` until someone with ``finalize_debriefs``
locks it; ``finalized`` is terminal:

  draft -> finalized

A finalized debrief cannot be edited by anyone, whatever their grants.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from types import MappingProxyType
from typing import Any

from ..permissions.grants import AccessContext


class DebriefStatus(str, Enum):
    DRAFT = 'draft'
    FINALIZED = 'finalized'


ALLOWED_TRANSITIONS = MappingProxyType(
    {
        DebriefStatus.DRAFT: frozenset({DebriefStatus.FINALIZED}),
        DebriefStatus.FINALIZED: frozenset(),
    }
)


class InvalidStatusTransition(ValueError):
    """Raised for debrief status changes the lifecycle does not allow."""

    def __init__(self, from_status: DebriefStatus, to_status: DebriefStatus) -> None:
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f'invalid debrief transition: {from_status.value!r} -> {to_status.value!r}'
        )


def transition(current: DebriefStatus, target: DebriefStatus) -> DebriefStatus:
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusTransition(current, target)
    return target


@dataclass(frozen=True, slots=True)
class DebriefRecord:
    """A debrief's lifecycle state and the unit that owns its mission."""

    id: str
    status: DebriefStatus = DebriefStatus.DRAFT
    wing_id: str | None = None
    squadron_id: str | None = None

    @property
    def is_finalized(self) -> bool:
        return self.status is DebriefStatus.FINALIZED

    def access_context(self, pilot_id: str | None = None) -> AccessContext:
        return AccessContext(
            wing_id=self.wing_id,
            squadron_id=self.squadron_id,
            pilot_id=pilot_id,
            debrief_id=self.id,
        )

    def with_status(self, status: DebriefStatus) -> DebriefRecord:
        return replace(self, status=transition(self.status, status))

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'status': self.status.value,
            'wing_id': self.wing_id,
            'squadron_id': self.squadron_id,
        }
