"""Supabase-backed DelegationSource over ``debrief_delegation``.

Delegations are soft-revoked (``revoked = true``) so the audit trail of who
was allowed to edit a debrief survives. Reads are never cached: a revoked
delegation stops working on the very next check.
"""

from __future__ import annotations

from typing import Any

from ..permissions.grants import DelegationRecord
from .errors import SupabaseError
from .supabase_client import SupabaseClient


def _record_from_row(row: dict[str, Any]) -> DelegationRecord:
    return DelegationRecord(
        id=str(row["id"]),
        debrief_id=str(row["mission_debrief_id"]),
        delegated_to_pilot_id=str(row["delegated_to_pilot_id"]),
        revoked=bool(row.get("revoked", False)),
        delegated_by_user_id=row.get("delegated_by_user_id"),
    )


class SupabaseDelegationRepository:
    """DelegationSource backed by public.debrief_delegation via PostgREST."""

    TABLE = "debrief_delegation"
    COLUMNS = "id,mission_debrief_id,delegated_to_pilot_id,delegated_by_user_id,revoked"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def find_active(self, debrief_id: str, pilot_id: str) -> DelegationRecord | None:
        rows = await self._client.select(
            self.TABLE,
            filters={
                "mission_debrief_id": ("eq", debrief_id),
                "delegated_to_pilot_id": ("eq", pilot_id),
                "revoked": ("eq", False),
            },
            columns=self.COLUMNS,
            limit=1,
        )
        return _record_from_row(rows[0]) if rows else None

    async def create(
        self, debrief_id: str, pilot_id: str, delegated_by_user_id: str,
    ) -> DelegationRecord:
        rows = await self._client.insert(
            self.TABLE,
            {
                "mission_debrief_id": debrief_id,
                "delegated_to_pilot_id": pilot_id,
                "delegated_by_user_id": delegated_by_user_id,
                "revoked": False,
            },
        )
        if not rows:
            raise SupabaseError(status_code=500, message="insert returned no delegation row")
        return _record_from_row(rows[0])

    async def revoke(self, delegation_id: str) -> DelegationRecord | None:
        rows = await self._client.update(
            self.TABLE,
            filters={"id": ("eq", delegation_id)},
            data={"revoked": True},
        )
        return _record_from_row(rows[0]) if rows else None

    async def list_for_debrief(self, debrief_id: str) -> list[DelegationRecord]:
        rows = await self._client.select(
            self.TABLE,
            filters={"mission_debrief_id": ("eq", debrief_id)},
            columns=self.COLUMNS,
        )
        return [_record_from_row(row) for row in rows]
