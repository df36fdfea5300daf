"""Supabase-backed DebriefSource over ``mission_debriefings``.

The owning wing and squadron come from the mission's event through an
embedded ``events`` select, so a debrief's access context always follows the
event it belongs to.
"""

from __future__ import annotations

from typing import Any

from ..debriefs.status import DebriefRecord, DebriefStatus
from .supabase_client import SupabaseClient


def _status_from_value(value: Any) -> DebriefStatus:
    # Pre-finalization states (in_progress, submitted) are all still editable.
    if value == DebriefStatus.FINALIZED.value:
        return DebriefStatus.FINALIZED
    return DebriefStatus.DRAFT


def _record_from_row(row: dict[str, Any]) -> DebriefRecord:
    mission = row.get("mission") or {}
    return DebriefRecord(
        id=str(row["id"]),
        status=_status_from_value(row.get("status")),
        wing_id=mission.get("wing_id"),
        squadron_id=mission.get("squadron_id"),
    )


class SupabaseDebriefRepository:
    """DebriefSource backed by public.mission_debriefings via PostgREST."""

    TABLE = "mission_debriefings"
    COLUMNS = "id,status,mission:events!inner(wing_id,squadron_id)"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def get_debrief(self, debrief_id: str) -> DebriefRecord | None:
        rows = await self._client.select(
            self.TABLE,
            filters={"id": ("eq", debrief_id)},
            columns=self.COLUMNS,
            limit=1,
        )
        return _record_from_row(rows[0]) if rows else None

    async def set_status(self, debrief_id: str, status: DebriefStatus) -> DebriefRecord | None:
        rows = await self._client.update(
            self.TABLE,
            filters={"id": ("eq", debrief_id)},
            data={"status": status.value},
        )
        if not rows:
            return None
        # PATCH returns the bare row; re-read to pick up the embedded event.
        return await self.get_debrief(debrief_id)
