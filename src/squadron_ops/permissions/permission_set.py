"""Immutable, per-session permission set.

A ``PermissionSet`` maps a permission name either to a plain boolean or to an
ordered tuple of grants. It is built once from the grant source and never
mutated; a role change or re-login replaces it wholesale.
"""

from __future__ import annotations

from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping, Sequence, TypeAlias

from .grants import GRANT_TYPES, PermissionGrant

GrantValue: TypeAlias = bool | tuple[PermissionGrant, ...]


class PermissionSet:
    """Read-only mapping of permission name to grant value."""

    __slots__ = ('_grants', 'calculated_at')

    def __init__(
        self,
        grants: Mapping[str, bool | Sequence[PermissionGrant]] | None = None,
        *,
        calculated_at: datetime | None = None,
    ) -> None:
        frozen: dict[str, GrantValue] = {}
        for name, value in (grants or {}).items():
            frozen[name] = _freeze_value(name, value)
        self._grants: Mapping[str, GrantValue] = MappingProxyType(frozen)
        self.calculated_at = calculated_at or datetime.now(timezone.utc)

    @classmethod
    def from_entries(
        cls,
        entries: Iterable[tuple[str, bool | Sequence[PermissionGrant]]],
        *,
        calculated_at: datetime | None = None,
    ) -> PermissionSet:
        """Build a set from (name, value) pairs, merging repeated names.

        Boolean entries for the same name are OR-ed; grant lists are
        concatenated in order without duplicates.

        Raises:
            ValueError: If one name appears both boolean and list-typed.
        """
        merged: dict[str, bool | list[PermissionGrant]] = {}
        for name, value in entries:
            frozen = _freeze_value(name, value)
            current = merged.get(name)
            if current is None:
                merged[name] = frozen if isinstance(frozen, bool) else list(frozen)
                continue
            if isinstance(current, bool) != isinstance(frozen, bool):
                raise ValueError(
                    f'permission {name!r} is both boolean and scope-qualified'
                )
            if isinstance(current, bool):
                merged[name] = current or bool(frozen)
            else:
                current.extend(g for g in frozen if g not in current)
        return cls(merged, calculated_at=calculated_at)

    def get(self, name: str) -> GrantValue | None:
        return self._grants.get(name)

    def __getitem__(self, name: str) -> GrantValue:
        return self._grants[name]

    def __contains__(self, name: object) -> bool:
        return name in self._grants

    def __iter__(self) -> Iterator[str]:
        return iter(self._grants)

    def __len__(self) -> int:
        return len(self._grants)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PermissionSet):
            return NotImplemented
        return dict(self._grants) == dict(other._grants)

    def __repr__(self) -> str:
        return f'PermissionSet({dict(self._grants)!r})'

    def names(self) -> list[str]:
        return sorted(self._grants)

    def granted_names(self) -> list[str]:
        """Names that are true or carry at least one grant."""
        return sorted(name for name, value in self._grants.items() if value)

    def to_dict(self) -> dict[str, Any]:
        return {
            name: value if isinstance(value, bool) else [g.to_dict() for g in value]
            for name, value in sorted(self._grants.items())
        }


def _freeze_value(name: str, value: Any) -> GrantValue:
    if isinstance(value, bool):
        return value
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise ValueError(
            f'permission {name!r} must be a bool or a sequence of grants, '
            f'got {type(value).__name__}'
        )
    for grant in value:
        if not isinstance(grant, GRANT_TYPES):
            raise ValueError(
                f'permission {name!r} has a non-grant entry: {grant!r}'
            )
    return tuple(value)
