"""Pure scope matching.

``evaluate`` decides whether one resolved grant value satisfies an access
context. It is synchronous, total over its typed input and free of side
effects; anything needing a lookup (delegations, debrief status) belongs to
the resolver.
"""

from __future__ import annotations

from typing import Sequence, assert_never

from .grants import (
    AccessContext,
    FlightGrant,
    GlobalGrant,
    PermissionGrant,
    SquadronGrant,
    WingGrant,
)


def grant_matches(grant: PermissionGrant, context: AccessContext | None) -> bool:
    """Return True if a single grant covers the context."""
    if isinstance(grant, GlobalGrant):
        return True
    if isinstance(grant, WingGrant):
        return context is not None and context.wing_id == grant.wing_id
    if isinstance(grant, SquadronGrant):
        return context is not None and context.squadron_id == grant.squadron_id
    if isinstance(grant, FlightGrant):
        # Resolved only through a delegation lookup in the resolver.
        return False
    assert_never(grant)


def evaluate(
    grant: bool | Sequence[PermissionGrant],
    context: AccessContext | None = None,
) -> bool:
    """Decide one permission for one context.

    A boolean grant is returned unchanged. A grant list is OR-composed and
    stops at the first match; an empty list denies.
    """
    if isinstance(grant, bool):
        return grant
    return any(grant_matches(g, context) for g in grant)


def matching_grants(
    grant: bool | Sequence[PermissionGrant],
    context: AccessContext | None = None,
) -> tuple[PermissionGrant, ...]:
    """Return every grant in the list that covers the context."""
    if isinstance(grant, bool):
        return ()
    return tuple(g for g in grant if grant_matches(g, context))


def missing_context_fields(
    grant: bool | Sequence[PermissionGrant],
    context: AccessContext | None,
) -> tuple[str, ...]:
    """Context fields the scoped grants needed when the caller supplied none.

    Empty when the grant is boolean, contains ``GlobalGrant``, or the context
    carries at least one field the grants refer to (a mismatch is then an
    ordinary denial, not a malformed request).
    """
    if isinstance(grant, bool) or any(isinstance(g, GlobalGrant) for g in grant):
        return ()

    needed: list[str] = []
    for g in grant:
        if isinstance(g, WingGrant):
            field = 'wing_id'
        elif isinstance(g, SquadronGrant):
            field = 'squadron_id'
        else:
            continue
        if field not in needed:
            needed.append(field)

    if context is not None and any(getattr(context, f) is not None for f in needed):
        return ()
    return tuple(needed)
