"""Supabase-backed PermissionRuleRepository.

Reads the things a user's permissions hang off (current squadron assignment,
standings, qualifications, billets and teams) and the active
``permission_rules`` that attach to any of them.

Also the write side of permission_rules for the admin interface, plus
the app_permissions catalogue and the roster tables rules can attach to.

Key behaviors:
  - A user with no profile or no linked pilot still gets the rules for every
    authenticated user, plus any manual override on their profile
  - The current assignment is the open one (no end_date) with the latest
    start_date; its squadron and wing anchor the own_* scopes
  - Standings, billets and teams count while end_date is unset or in the
    future; qualifications while expiry_date is
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Mapping

from ..observability.logging import get_logger
from ..permissions.calculator import PermissionRule, UserBases
from ..permissions.rule_admin import AppPermission, BasisOption, PermissionRuleRecord, RuleDraft
from .errors import SupabaseNotFoundError
from .supabase_client import SupabaseClient

logger = get_logger(__name__)

_RULE_COLUMNS = "id,basis_type,basis_id,scope,active,app_permissions!inner(name)"
_ADMIN_RULE_COLUMNS = (
    "id,permission_id,basis_type,basis_id,scope,active,created_at,updated_at,created_by,"
    "app_permissions(name,display_name)"
)
_PERMISSION_COLUMNS = "id,name,display_name,description,category,scope_type"

# basis_type -> (table, columns, filters, order)
_BASIS_SOURCES: dict[str, tuple[str, str, dict[str, Any] | None, str]] = {
    "standing": ("standings", "id,name", None, "name.asc"),
    "qualification": ("qualifications", "id,name", {"active": ("eq", True)}, "name.asc"),
    "billet": ("roles", "id,name,order", None, "order.asc.nullslast,name.asc"),
    "team": ("teams", "id,name", None, "name.asc"),
    "squadron": ("org_squadrons", "id,name,designation", None, "name.asc"),
    "wing": ("org_wings", "id,name,designation", None, "name.asc"),
}


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _is_current(row: dict[str, Any], column: str, now: datetime) -> bool:
    value = row.get(column)
    if not value:
        return True
    return _parse_timestamp(str(value)) > now


def _unique(values: list[Any]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(str(v) for v in values if v))


def _rule_from_row(row: dict[str, Any]) -> PermissionRule | None:
    permission = (row.get("app_permissions") or {}).get("name")
    if not permission:
        return None
    return PermissionRule(
        permission=permission,
        basis_type=row["basis_type"],
        scope=row["scope"],
        basis_id=row.get("basis_id"),
        active=bool(row.get("active", True)),
        id=row.get("id"),
    )



def _admin_record_from_row(row: dict[str, Any]) -> PermissionRuleRecord:
    permission = row.get("app_permissions") or {}
    return PermissionRuleRecord(
        id=str(row["id"]),
        permission_id=str(row["permission_id"]),
        basis_type=row["basis_type"],
        scope=row["scope"],
        basis_id=row.get("basis_id"),
        active=bool(row.get("active", True)),
        permission_name=permission.get("name"),
        permission_display_name=permission.get("display_name"),
        created_by=row.get("created_by"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def _basis_option(basis_type: str, row: dict[str, Any]) -> BasisOption:
    name = str(row.get("name") or "")
    if row.get("designation"):
        name = f"{row['designation']} {name}".strip()
    return BasisOption(id=str(row["id"]), name=name, type=basis_type)


class SupabasePermissionRuleRepository:
    """PermissionRuleRepository backed by the roster and permission_rules tables."""

    PROFILES = "user_profiles"
    ASSIGNMENTS = "pilot_assignments"
    STANDINGS = "pilot_standings"
    QUALIFICATIONS = "pilot_qualifications"
    BILLETS = "pilot_roles"
    TEAMS = "pilot_teams"
    RULES = "permission_rules"
    PERMISSIONS = "app_permissions"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def get_user_bases(self, user_id: str) -> UserBases:
        profiles = await self._client.select(
            self.PROFILES,
            filters={"auth_user_id": ("eq", user_id)},
            columns="id,pilot_id",
            limit=1,
        )
        if not profiles:
            logger.info("user_profile_missing", user_id=user_id)
            return UserBases(user_id=user_id)

        profile = profiles[0]
        profile_id = profile.get("id")
        pilot_id = profile.get("pilot_id")
        if not pilot_id:
            return UserBases(user_id=user_id, user_profile_id=profile_id)

        assignments, standings, qualifications, billets, teams = await asyncio.gather(
            self._client.select(
                self.ASSIGNMENTS,
                filters={"pilot_id": ("eq", pilot_id)},
                columns="id,squadron_id,start_date,end_date,org_squadrons(id,name,wing_id)",
            ),
            self._client.select(
                self.STANDINGS,
                filters={"pilot_id": ("eq", pilot_id)},
                columns="standing_id,start_date,end_date",
            ),
            self._client.select(
                self.QUALIFICATIONS,
                filters={"pilot_id": ("eq", pilot_id)},
                columns="qualification_id,achieved_date,expiry_date",
            ),
            self._client.select(
                self.BILLETS,
                filters={"pilot_id": ("eq", pilot_id)},
                columns="role_id,effective_date,end_date",
            ),
            self._client.select(
                self.TEAMS,
                filters={"pilot_id": ("eq", pilot_id)},
                columns="team_id,start_date,end_date",
            ),
        )

        now = datetime.now(timezone.utc)
        open_assignments = sorted(
            (a for a in assignments if not a.get("end_date")),
            key=lambda a: a.get("start_date") or "",
            reverse=True,
        )
        squadron = (open_assignments[0].get("org_squadrons") or {}) if open_assignments else {}

        return UserBases(
            user_id=user_id,
            user_profile_id=profile_id,
            pilot_id=pilot_id,
            squadron_id=squadron.get("id"),
            wing_id=squadron.get("wing_id"),
            standing_ids=_unique(
                [r.get("standing_id") for r in standings if _is_current(r, "end_date", now)]
            ),
            qualification_ids=_unique(
                [r.get("qualification_id") for r in qualifications if _is_current(r, "expiry_date", now)]
            ),
            billet_ids=_unique(
                [r.get("role_id") for r in billets if _is_current(r, "end_date", now)]
            ),
            team_ids=_unique(
                [r.get("team_id") for r in teams if _is_current(r, "end_date", now)]
            ),
            squadron_assignment_ids=_unique(
                [(a.get("org_squadrons") or {}).get("id") for a in assignments]
            ),
        )

    async def list_applicable_rules(self, bases: UserBases) -> list[PermissionRule]:
        queries = [
            self._client.select(
                self.RULES,
                filters={
                    "active": ("eq", True),
                    "basis_type": ("eq", "authenticated_user"),
                    "basis_id": ("is", None),
                },
                columns=_RULE_COLUMNS,
            ),
        ]
        basis_ids = bases.basis_ids
        if basis_ids:
            queries.append(
                self._client.select(
                    self.RULES,
                    filters={"active": ("eq", True), "basis_id": ("in", list(basis_ids))},
                    columns=_RULE_COLUMNS,
                )
            )
        if bases.user_profile_id:
            queries.append(
                self._client.select(
                    self.RULES,
                    filters={
                        "active": ("eq", True),
                        "basis_type": ("eq", "manual_override"),
                        "basis_id": ("eq", bases.user_profile_id),
                    },
                    columns=_RULE_COLUMNS,
                )
            )

        results = await asyncio.gather(*queries)

        rules: list[PermissionRule] = []
        seen: set[str] = set()
        for rows in results:
            for row in rows:
                rule_id = row.get("id")
                if rule_id is not None and rule_id in seen:
                    continue
                rule = _rule_from_row(row)
                if rule is None:
                    continue
                if rule_id is not None:
                    seen.add(rule_id)
                rules.append(rule)
        return rules

    # ── Rule administration ──────────────────────────────────────────

    async def list_permissions(self) -> list[AppPermission]:
        rows = await self._client.select(
            self.PERMISSIONS,
            columns=_PERMISSION_COLUMNS,
            order="category.asc,name.asc",
        )
        return [
            AppPermission(
                id=str(row["id"]),
                name=row["name"],
                display_name=row.get("display_name") or row["name"],
                description=row.get("description"),
                category=row.get("category") or "other",
                scope_type=row.get("scope_type") or "global",
            )
            for row in rows
        ]

    async def list_basis_options(self, basis_type: str) -> list[BasisOption]:
        source = _BASIS_SOURCES.get(basis_type)
        if source is None:
            return []
        table, columns, filters, order = source
        try:
            rows = await self._client.select(table, filters=filters, columns=columns, order=order)
        except SupabaseNotFoundError:
            # Older schemas have no org_wings table.
            logger.warning("basis_table_missing", basis_type=basis_type, table=table)
            return []
        return [_basis_option(basis_type, row) for row in rows]

    async def list_rules(self, basis_type: str | None = None) -> list[PermissionRuleRecord]:
        rows = await self._client.select(
            self.RULES,
            filters={"basis_type": ("eq", basis_type)} if basis_type else None,
            columns=_ADMIN_RULE_COLUMNS,
            order="created_at.desc",
        )
        return [_admin_record_from_row(row) for row in rows]

    async def get_rule(self, rule_id: str) -> PermissionRuleRecord | None:
        rows = await self._client.select(
            self.RULES,
            filters={"id": ("eq", rule_id)},
            columns=_ADMIN_RULE_COLUMNS,
            limit=1,
        )
        return _admin_record_from_row(rows[0]) if rows else None

    async def create_rules(
        self,
        drafts: list[RuleDraft],
        created_by: str,
    ) -> list[PermissionRuleRecord]:
        if not drafts:
            return []
        rows = await self._client.insert(self.RULES, [d.to_row(created_by) for d in drafts])
        return [_admin_record_from_row(row) for row in rows]

    async def update_rule(
        self,
        rule_id: str,
        changes: Mapping[str, Any],
    ) -> PermissionRuleRecord | None:
        rows = await self._client.update(
            self.RULES,
            filters={"id": ("eq", rule_id)},
            data=dict(changes),
        )
        return _admin_record_from_row(rows[0]) if rows else None

    async def delete_rule(self, rule_id: str) -> bool:
        rows = await self._client.delete(self.RULES, filters={"id": ("eq", rule_id)})
        return bool(rows)
