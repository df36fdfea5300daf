"""Tests for the PostgREST-backed permission, delegation and debrief repositories."""

from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest

from squadron_ops.db.debrief_repo import SupabaseDebriefRepository
from squadron_ops.db.delegation_repo import SupabaseDelegationRepository
from squadron_ops.db.errors import SupabaseError
from squadron_ops.db.permission_rule_repo import SupabasePermissionRuleRepository
from squadron_ops.db.supabase_client import SupabaseClient
from squadron_ops.debriefs.status import DebriefStatus
from squadron_ops.permissions.calculator import PermissionCalculator, UserBases
from squadron_ops.permissions.grants import SquadronGrant, WingGrant
from squadron_ops.permissions.rule_admin import RuleDraft


class Recorder:
    """MockTransport handler that routes by table name and records requests."""

    def __init__(self, routes: dict[str, Callable[[httpx.Request], Any]]) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        table = request.url.path.rsplit("/", 1)[-1]
        result = self.routes[table](request)
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, json=result)

    def for_table(self, table: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(f"/{table}")]


def _client(recorder: Recorder, **kwargs: Any) -> tuple[httpx.AsyncClient, SupabaseClient]:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return http_client, SupabaseClient(
        supabase_url="https://example.supabase.co",
        service_role_key="svc-key",
        http_client=http_client,
        **kwargs,
    )


def _rules_for(request: httpx.Request) -> list[dict[str, Any]]:
    params = request.url.params
    if params.get("basis_type") == "eq.authenticated_user":
        return [
            {
                "id": "r-auth",
                "basis_type": "authenticated_user",
                "basis_id": None,
                "scope": "global",
                "active": True,
                "app_permissions": {"name": "access_home"},
            },
        ]
    if params.get("basis_type") == "eq.manual_override":
        return [
            {
                "id": "r-override",
                "basis_type": "manual_override",
                "basis_id": "prof-1",
                "scope": "global",
                "active": True,
                "app_permissions": {"name": "access_admin_tools"},
            },
        ]
    return [
        {
            "id": "r-billet",
            "basis_type": "billet",
            "basis_id": "billet-co",
            "scope": "own_wing",
            "active": True,
            "app_permissions": {"name": "manage_roster"},
        },
        # Same rule reached through a second basis id.
        {
            "id": "r-billet",
            "basis_type": "billet",
            "basis_id": "billet-co",
            "scope": "own_wing",
            "active": True,
            "app_permissions": {"name": "manage_roster"},
        },
    ]


ROSTER_ROUTES: dict[str, Callable[[httpx.Request], Any]] = {
    "user_profiles": lambda r: [{"id": "prof-1", "pilot_id": "p-1"}],
    "pilot_assignments": lambda r: [
        {
            "id": "a-old",
            "start_date": "2024-01-01",
            "end_date": "2025-01-01",
            "org_squadrons": {"id": "sq-old", "name": "VF-1", "wing_id": "wg-old"},
        },
        {
            "id": "a-older-open",
            "start_date": "2024-06-01",
            "end_date": None,
            "org_squadrons": {"id": "sq-2", "name": "VF-2", "wing_id": "wg-1"},
        },
        {
            "id": "a-current",
            "start_date": "2025-02-01",
            "end_date": None,
            "org_squadrons": {"id": "sq-1", "name": "VF-11", "wing_id": "wg-1"},
        },
    ],
    "pilot_standings": lambda r: [
        {"standing_id": "standing-active", "end_date": None},
        {"standing_id": "standing-retired", "end_date": "2001-01-01T00:00:00+00:00"},
    ],
    "pilot_qualifications": lambda r: [
        {"qualification_id": "qual-lead", "expiry_date": "2999-01-01"},
        {"qualification_id": "qual-lapsed", "expiry_date": "2000-01-01"},
    ],
    "pilot_roles": lambda r: [{"role_id": "billet-co", "end_date": None}],
    "pilot_teams": lambda r: [],
    "permission_rules": _rules_for,
}


class TestPermissionRuleRepository:
    @pytest.mark.asyncio
    async def test_user_bases_pick_current_assignment_and_live_bases(self):
        recorder = Recorder(ROSTER_ROUTES)
        http_client, client = _client(recorder)
        async with http_client:
            bases = await SupabasePermissionRuleRepository(client).get_user_bases("u-1")

        assert bases.user_profile_id == "prof-1"
        assert bases.pilot_id == "p-1"
        assert bases.squadron_id == "sq-1"
        assert bases.wing_id == "wg-1"
        assert bases.standing_ids == ("standing-active",)
        assert bases.qualification_ids == ("qual-lead",)
        assert bases.billet_ids == ("billet-co",)
        assert bases.team_ids == ()
        assert bases.squadron_assignment_ids == ("sq-old", "sq-2", "sq-1")

        profile_request = recorder.for_table("user_profiles")[0]
        assert profile_request.url.params["auth_user_id"] == "eq.u-1"

    @pytest.mark.asyncio
    async def test_user_without_profile_gets_empty_bases(self):
        recorder = Recorder({"user_profiles": lambda r: []})
        http_client, client = _client(recorder)
        async with http_client:
            bases = await SupabasePermissionRuleRepository(client).get_user_bases("u-9")

        assert bases == UserBases(user_id="u-9")
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_profile_without_pilot_skips_roster_tables(self):
        recorder = Recorder({"user_profiles": lambda r: [{"id": "prof-2", "pilot_id": None}]})
        http_client, client = _client(recorder)
        async with http_client:
            bases = await SupabasePermissionRuleRepository(client).get_user_bases("u-2")

        assert bases == UserBases(user_id="u-2", user_profile_id="prof-2")

    @pytest.mark.asyncio
    async def test_applicable_rules_query_three_rule_families(self):
        recorder = Recorder(ROSTER_ROUTES)
        http_client, client = _client(recorder)
        bases = UserBases(
            user_id="u-1",
            user_profile_id="prof-1",
            billet_ids=("billet-co",),
            standing_ids=("standing-active",),
        )
        async with http_client:
            rules = await SupabasePermissionRuleRepository(client).list_applicable_rules(bases)

        assert [r.id for r in rules] == ["r-auth", "r-billet", "r-override"]
        rule_requests = recorder.for_table("permission_rules")
        assert len(rule_requests) == 3
        assert all(r.url.params["active"] == "eq.true" for r in rule_requests)
        assert 'in.("standing-active","billet-co")' in [
            r.url.params.get("basis_id") for r in rule_requests
        ]
        assert "app_permissions!inner(name)" in rule_requests[0].url.params["select"]

    @pytest.mark.asyncio
    async def test_no_basis_ids_skips_the_basis_query(self):
        recorder = Recorder(ROSTER_ROUTES)
        http_client, client = _client(recorder)
        async with http_client:
            rules = await SupabasePermissionRuleRepository(client).list_applicable_rules(
                UserBases(user_id="u-1"),
            )

        assert [r.permission for r in rules] == ["access_home"]
        assert len(recorder.for_table("permission_rules")) == 1

    @pytest.mark.asyncio
    async def test_calculator_end_to_end(self):
        recorder = Recorder(ROSTER_ROUTES)
        http_client, client = _client(recorder)
        async with http_client:
            repo = SupabasePermissionRuleRepository(client)
            permission_set = await PermissionCalculator(repo).load_permission_set("u-1")

        assert permission_set["access_home"] is True
        assert permission_set["access_admin_tools"] is True
        assert permission_set["manage_roster"] == (WingGrant("wg-1"), SquadronGrant("sq-1"))

    @pytest.mark.asyncio
    async def test_storage_errors_propagate(self):
        recorder = Recorder({"user_profiles": lambda r: httpx.Response(500, json={"message": "boom"})})
        http_client, client = _client(recorder, max_retries=0)
        async with http_client:
            with pytest.raises(SupabaseError):
                await SupabasePermissionRuleRepository(client).get_user_bases("u-1")


DELEGATION_ROW = {
    "id": "dlg-1",
    "mission_debrief_id": "d-1",
    "delegated_to_pilot_id": "p-7",
    "delegated_by_user_id": "u-lead",
    "revoked": False,
}


class TestDelegationRepository:
    @pytest.mark.asyncio
    async def test_find_active_filters_on_live_records(self):
        recorder = Recorder({"debrief_delegation": lambda r: [DELEGATION_ROW]})
        http_client, client = _client(recorder)
        async with http_client:
            record = await SupabaseDelegationRepository(client).find_active("d-1", "p-7")

        assert record is not None
        assert record.id == "dlg-1"
        assert record.debrief_id == "d-1"
        params = recorder.requests[0].url.params
        assert params["mission_debrief_id"] == "eq.d-1"
        assert params["delegated_to_pilot_id"] == "eq.p-7"
        assert params["revoked"] == "eq.false"

    @pytest.mark.asyncio
    async def test_find_active_none_when_no_rows(self):
        recorder = Recorder({"debrief_delegation": lambda r: []})
        http_client, client = _client(recorder)
        async with http_client:
            assert await SupabaseDelegationRepository(client).find_active("d-1", "p-7") is None

    @pytest.mark.asyncio
    async def test_create_inserts_live_delegation(self):
        recorder = Recorder({"debrief_delegation": lambda r: httpx.Response(201, json=[DELEGATION_ROW])})
        http_client, client = _client(recorder)
        async with http_client:
            record = await SupabaseDelegationRepository(client).create("d-1", "p-7", "u-lead")

        body = json.loads(recorder.requests[0].content)
        assert body == {
            "mission_debrief_id": "d-1",
            "delegated_to_pilot_id": "p-7",
            "delegated_by_user_id": "u-lead",
            "revoked": False,
        }
        assert record.delegated_by_user_id == "u-lead"

    @pytest.mark.asyncio
    async def test_revoke_soft_deletes(self):
        recorder = Recorder({"debrief_delegation": lambda r: [{**DELEGATION_ROW, "revoked": True}]})
        http_client, client = _client(recorder)
        async with http_client:
            record = await SupabaseDelegationRepository(client).revoke("dlg-1")

        request = recorder.requests[0]
        assert request.method == "PATCH"
        assert json.loads(request.content) == {"revoked": True}
        assert record is not None and record.revoked is True


class TestDebriefRepository:
    @pytest.mark.asyncio
    async def test_get_debrief_reads_unit_from_event(self):
        recorder = Recorder({
            "mission_debriefings": lambda r: [
                {"id": "d-1", "status": "submitted", "mission": {"wing_id": "wg-1", "squadron_id": "sq-1"}},
            ],
        })
        http_client, client = _client(recorder)
        async with http_client:
            record = await SupabaseDebriefRepository(client).get_debrief("d-1")

        assert record is not None
        assert record.status is DebriefStatus.DRAFT
        assert record.wing_id == "wg-1"
        assert record.squadron_id == "sq-1"
        assert recorder.requests[0].url.params["select"] == SupabaseDebriefRepository.COLUMNS

    @pytest.mark.asyncio
    async def test_set_status_writes_and_rereads(self):
        def route(request: httpx.Request) -> Any:
            if request.method == "PATCH":
                return [{"id": "d-1", "status": "finalized"}]
            return [{"id": "d-1", "status": "finalized", "mission": {"wing_id": "wg-1", "squadron_id": None}}]

        recorder = Recorder({"mission_debriefings": route})
        http_client, client = _client(recorder)
        async with http_client:
            record = await SupabaseDebriefRepository(client).set_status("d-1", DebriefStatus.FINALIZED)

        assert [r.method for r in recorder.requests] == ["PATCH", "GET"]
        assert json.loads(recorder.requests[0].content) == {"status": "finalized"}
        assert record is not None and record.is_finalized
        assert record.wing_id == "wg-1"

    @pytest.mark.asyncio
    async def test_missing_debrief_is_none(self):
        recorder = Recorder({"mission_debriefings": lambda r: []})
        http_client, client = _client(recorder)
        async with http_client:
            repo = SupabaseDebriefRepository(client)
            assert await repo.get_debrief("d-404") is None
            assert await repo.set_status("d-404", DebriefStatus.FINALIZED) is None


ADMIN_RULE_ROW = {
    "id": "r-1",
    "permission_id": "perm-roster",
    "basis_type": "standing",
    "basis_id": "standing-active",
    "scope": "own_squadron",
    "active": True,
    "created_by": "u-admin",
    "created_at": "2026-01-02T03:04:05+00:00",
    "updated_at": "2026-01-02T03:04:05+00:00",
    "app_permissions": {"name": "manage_roster", "display_name": "Manage Roster"},
}


class TestRuleAdministration:
    @pytest.mark.asyncio
    async def test_list_rules_newest_first_with_permission_names(self):
        recorder = Recorder({"permission_rules": lambda r: [ADMIN_RULE_ROW]})
        http_client, client = _client(recorder)
        async with http_client:
            rules = await SupabasePermissionRuleRepository(client).list_rules("standing")

        assert rules[0].permission_name == "manage_roster"
        assert rules[0].permission_display_name == "Manage Roster"
        assert rules[0].created_by == "u-admin"
        params = recorder.requests[0].url.params
        assert params["order"] == "created_at.desc"
        assert params["basis_type"] == "eq.standing"

    @pytest.mark.asyncio
    async def test_create_rules_inserts_one_batch(self):
        recorder = Recorder({
            "permission_rules": lambda r: httpx.Response(201, json=[
                {**ADMIN_RULE_ROW, "id": "r-1"},
                {**ADMIN_RULE_ROW, "id": "r-2", "basis_id": "standing-reserve"},
            ]),
        })
        http_client, client = _client(recorder)
        drafts = [
            RuleDraft("perm-roster", "standing", "own_squadron", basis_id="standing-active"),
            RuleDraft("perm-roster", "standing", "own_squadron", basis_id="standing-reserve"),
        ]
        async with http_client:
            records = await SupabasePermissionRuleRepository(client).create_rules(drafts, "u-admin")

        assert [r.id for r in records] == ["r-1", "r-2"]
        assert len(recorder.requests) == 1
        body = json.loads(recorder.requests[0].content)
        assert body[1] == {
            "permission_id": "perm-roster",
            "basis_type": "standing",
            "basis_id": "standing-reserve",
            "scope": "own_squadron",
            "active": True,
            "created_by": "u-admin",
        }

    @pytest.mark.asyncio
    async def test_update_and_delete_target_one_rule(self):
        def route(request: httpx.Request) -> Any:
            if request.method == "PATCH":
                return [{**ADMIN_RULE_ROW, "active": False}]
            return []

        recorder = Recorder({"permission_rules": route})
        http_client, client = _client(recorder)
        async with http_client:
            repo = SupabasePermissionRuleRepository(client)
            record = await repo.update_rule("r-1", {"active": False})
            deleted = await repo.delete_rule("r-404")

        assert record is not None and record.active is False
        assert deleted is False
        patch, delete = recorder.requests
        assert patch.url.params["id"] == "eq.r-1"
        assert json.loads(patch.content) == {"active": False}
        assert delete.method == "DELETE"
        assert delete.url.params["id"] == "eq.r-404"

    @pytest.mark.asyncio
    async def test_basis_options_read_the_roster_table(self):
        recorder = Recorder({
            "org_squadrons": lambda r: [{"id": "sq-1", "name": "Black Knights", "designation": "VFA-154"}],
            "qualifications": lambda r: [{"id": "q-1", "name": "Flight Lead"}],
        })
        http_client, client = _client(recorder)
        async with http_client:
            repo = SupabasePermissionRuleRepository(client)
            squadrons = await repo.list_basis_options("squadron")
            qualifications = await repo.list_basis_options("qualification")

        assert squadrons[0].name == "VFA-154 Black Knights"
        assert qualifications[0].type == "qualification"
        assert recorder.for_table("qualifications")[0].url.params["active"] == "eq.true"

    @pytest.mark.asyncio
    async def test_missing_basis_table_yields_no_options(self):
        recorder = Recorder({"org_wings": lambda r: httpx.Response(404, json={"message": "not found"})})
        http_client, client = _client(recorder, max_retries=0)
        async with http_client:
            assert await SupabasePermissionRuleRepository(client).list_basis_options("wing") == []

    @pytest.mark.asyncio
    async def test_catalogue_defaults(self):
        recorder = Recorder({
            "app_permissions": lambda r: [{"id": "p-1", "name": "access_home", "category": None}],
        })
        http_client, client = _client(recorder)
        async with http_client:
            permissions = await SupabasePermissionRuleRepository(client).list_permissions()

        assert permissions[0].display_name == "access_home"
        assert permissions[0].category == "other"
