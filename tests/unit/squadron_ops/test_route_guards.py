"""Tests for permission guard dependencies."""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from squadron_ops.inmemory import InMemoryDelegationRepository, InMemoryGrantSource
from squadron_ops.permissions.cache import PermissionCache
from squadron_ops.permissions.grants import SquadronGrant, WingGrant
from squadron_ops.permissions.resolver import PermissionResolver
from squadron_ops.security.permission_guard import (
    require_all_permissions,
    require_any_permission,
    require_permission,
    squadron_context,
    wing_context,
)


@pytest.fixture
def client(make_permission_set):
    source = InMemoryGrantSource({
        'co': make_permission_set(
            access_roster=True,
            manage_roster=(SquadronGrant('sq-1'),),
            manage_events=(WingGrant('wg-1'),),
        ),
        'pilot': make_permission_set(access_roster=True),
    })
    app = FastAPI()
    app.state.deps = SimpleNamespace(
        resolver=PermissionResolver(PermissionCache(source), InMemoryDelegationRepository()),
    )

    @app.post('/squadrons/{squadron_id}/roster')
    async def edit_roster(
        squadron_id: str,
        user_id: str = Depends(require_permission('manage_roster', squadron_context())),
    ):
        return {'user_id': user_id, 'squadron_id': squadron_id}

    @app.post('/events')
    async def create_event(user_id: str = Depends(require_permission('manage_events', wing_context()))):
        return {'user_id': user_id}

    @app.get('/roster', dependencies=[Depends(require_any_permission(['manage_roster', 'access_roster']))])
    async def view_roster():
        return {'ok': True}

    @app.get(
        '/admin',
        dependencies=[Depends(require_all_permissions(['access_roster', 'access_admin_tools']))],
    )
    async def admin():
        return {'ok': True}

    return TestClient(app)


def test_missing_identity_is_401(client):
    resp = client.post('/squadrons/sq-1/roster')

    assert resp.status_code == 401
    assert resp.json()['detail']['code'] == 'AUTH_REQUIRED'


def test_path_param_supplies_squadron_context(client):
    allowed = client.post('/squadrons/sq-1/roster', headers={'X-User-ID': 'co'})
    denied = client.post('/squadrons/sq-2/roster', headers={'X-User-ID': 'co'})

    assert allowed.status_code == 200
    assert allowed.json() == {'user_id': 'co', 'squadron_id': 'sq-1'}
    assert denied.status_code == 403
    assert denied.json()['detail'] == {
        'code': 'INSUFFICIENT_PERMISSIONS',
        'message': 'Insufficient permissions',
        'required': ['manage_roster'],
    }


def test_query_param_supplies_wing_context(client):
    assert client.post('/events?wing_id=wg-1', headers={'X-User-ID': 'co'}).status_code == 200
    assert client.post('/events?wing_id=wg-2', headers={'X-User-ID': 'co'}).status_code == 403
    assert client.post('/events', headers={'X-User-ID': 'co'}).status_code == 403


def test_any_permission_admits_on_one_match(client):
    assert client.get('/roster', headers={'X-User-ID': 'pilot'}).status_code == 200
    assert client.get('/roster', headers={'X-User-ID': 'nobody'}).status_code == 403


def test_all_permissions_reports_what_is_missing(client):
    resp = client.get('/admin', headers={'X-User-ID': 'pilot'})

    assert resp.status_code == 403
    assert resp.json()['detail']['required'] == ['access_admin_tools']


def test_auth_identity_on_request_state_wins(client):
    app = client.app

    @app.middleware('http')
    async def fake_auth(request, call_next):
        request.state.auth_identity = SimpleNamespace(user_id='co')
        return await call_next(request)

    resp = TestClient(app).post('/squadrons/sq-1/roster', headers={'X-User-ID': 'pilot'})

    assert resp.status_code == 200
    assert resp.json()['user_id'] == 'co'
