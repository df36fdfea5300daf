"""Gate decisions for permission-guarded UI elements.

A gate wraps one element and, given the state of one permission check,
decides what the client renders:

- ``hide``: the element when allowed, otherwise the fallback (or nothing).
- ``disable``: always the element, made non-interactive when denied.
- ``show-tooltip``: as ``disable``, plus an explanatory tooltip when denied.

While the check is unresolved every mode renders a neutral placeholder, so a
client never flashes an element it may not be allowed to use.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

from .grants import AccessContext
from .resolver import PermissionResolver

RenderKind = Literal['children', 'fallback', 'nothing', 'placeholder']


class GateMode(str, Enum):
    HIDE = 'hide'
    DISABLE = 'disable'
    SHOW_TOOLTIP = 'show-tooltip'


@dataclass(frozen=True, slots=True)
class GateDecision:
    render: RenderKind
    interactive: bool
    tooltip: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            'render': self.render,
            'interactive': self.interactive,
            'tooltip': self.tooltip,
        }


def default_denied_message(permission: str) -> str:
    return f"You don't have permission to {permission.replace('_', ' ')}"


def decide_gate(
    allowed: bool | None,
    mode: GateMode | str = GateMode.HIDE,
    *,
    permission: str,
    has_fallback: bool = False,
    denied_message: str | None = None,
) -> GateDecision:
    """Map a check state onto a render decision.

    ``allowed`` is None while the check has not resolved yet.
    """
    mode = GateMode(mode)

    if allowed is None:
        return GateDecision(render='placeholder', interactive=False)
    if allowed:
        return GateDecision(render='children', interactive=True)

    if mode is GateMode.HIDE:
        return GateDecision(render='fallback' if has_fallback else 'nothing', interactive=False)
    if mode is GateMode.DISABLE:
        return GateDecision(render='children', interactive=False)
    return GateDecision(
        render='children',
        interactive=False,
        tooltip=denied_message or default_denied_message(permission),
    )


class PermissionGate:
    """Resolves gate decisions for one user against a resolver."""

    def __init__(self, resolver: PermissionResolver) -> None:
        self._resolver = resolver

    async def decide(
        self,
        user_id: str,
        permission: str,
        *,
        mode: GateMode | str = GateMode.HIDE,
        context: AccessContext | None = None,
        has_fallback: bool = False,
        denied_message: str | None = None,
    ) -> GateDecision:
        allowed = await self._resolver.has_permission(user_id, permission, context)
        return decide_gate(
            allowed,
            mode,
            permission=permission,
            has_fallback=has_fallback,
            denied_message=denied_message,
        )
