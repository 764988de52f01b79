import pytest
from flask import Flask
from sqlalchemy import select
from cmms import get_db
from cmms.constants.permissions import PERMISSIONS_MANAGE, WO_REJECT
from cmms.errors import PermissionLookupError
from cmms.models.audit import AuditLog
from cmms.services.permission_store import StaticPermissionStore
from cmms.services.policy import PermissionResolver
from tests.test_utils_seed import ensure_hospital, seed_user_with_roles, set_role_entry
from tests.test_lifecycle_helpers import jwt_headers


@pytest.fixture()
def admin(app_context: Flask):
    h = ensure_hospital('Central')
    set_role_entry('hospital_admin', PERMISSIONS_MANAGE, True)
    user = seed_user_with_roles(['hospital_admin'], h.id)
    return h, user, jwt_headers(user.id, h.id)


def check(client, headers, key, hospital_id=None):
    params = {'key': key}
    if hospital_id is not None:
        params['hospital_id'] = hospital_id
    resp = client.get('/permissions/check', headers=headers, query_string=params)
    assert resp.status_code == 200
    return resp.get_json()['allowed']


def test_user_override_round_trip_is_audited(app_context, admin):
    client = app_context.test_client()
    h, admin_user, admin_headers = admin
    set_role_entry('supervisor', WO_REJECT, True)
    sup = seed_user_with_roles(['supervisor'], h.id)
    sup_headers = jwt_headers(sup.id, h.id)
    assert check(client, sup_headers, WO_REJECT) is True

    resp = client.put(f'/permissions/users/{sup.id}/overrides/{WO_REJECT}', json={'effect': 'deny'}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.get_json() == {'user_id': sup.id, 'key': WO_REJECT, 'effect': 'deny'}
    assert check(client, sup_headers, WO_REJECT) is False

    log = get_db().execute(select(AuditLog).where(AuditLog.action == 'PERM.USER.OVERRIDE')
                           .order_by(AuditLog.id.desc())).scalars().first()
    assert log.actor_user_id == admin_user.id
    assert log.entity_id == WO_REJECT
    assert log.meta == {'user_id': sup.id, 'effect': 'deny'}

    resp = client.delete(f'/permissions/users/{sup.id}/overrides/{WO_REJECT}', headers=admin_headers)
    assert resp.status_code == 200
    assert check(client, sup_headers, WO_REJECT) is True
    resp = client.delete(f'/permissions/users/{sup.id}/overrides/{WO_REJECT}', headers=admin_headers)
    assert resp.status_code == 404


def test_tenant_role_entry_overrides_default(app_context, admin):
    client = app_context.test_client()
    h, _, admin_headers = admin
    other = ensure_hospital('Annex')
    key = 'inventory.reports'
    set_role_entry('engineer', key, True)
    eng = seed_user_with_roles(['engineer'], h.id)
    remote_eng = seed_user_with_roles(['engineer'], other.id)
    resp = client.put(f'/permissions/roles/engineer/{key}', json={'allowed': False, 'hospital_id': h.id}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.get_json()['hospital_id'] == h.id
    assert check(client, jwt_headers(eng.id, h.id), key) is False
    assert check(client, jwt_headers(remote_eng.id, other.id), key) is True


def test_admin_writes_validate_input(app_context, admin):
    client = app_context.test_client()
    _, _, admin_headers = admin
    resp = client.put('/permissions/users/1/overrides/work_orders.reject', json={'effect': 'maybe'}, headers=admin_headers)
    assert resp.status_code == 400
    resp = client.put('/permissions/users/1/overrides/noaction', json={'effect': 'grant'}, headers=admin_headers)
    assert resp.status_code == 400
    resp = client.put('/permissions/roles/janitor/work_orders.reject', json={'allowed': True}, headers=admin_headers)
    assert resp.status_code == 400
    resp = client.put('/permissions/roles/engineer/work_orders.reject', json={'allowed': 'yes'}, headers=admin_headers)
    assert resp.status_code == 400


def test_admin_writes_require_permission(app_context):
    client = app_context.test_client()
    h = ensure_hospital('Central')
    tech = seed_user_with_roles(['technician'], h.id)
    resp = client.put(f'/permissions/users/{tech.id}/overrides/{WO_REJECT}', json={'effect': 'grant'},
                      headers=jwt_headers(tech.id, h.id))
    assert resp.status_code == 403
    assert resp.get_json()['error']['detail'] == 'Missing permission'


def test_effective_permissions_endpoint(app_context, admin):
    client = app_context.test_client()
    h, _, _ = admin
    set_role_entry('reporter', 'work_orders.create', True)
    reporter = seed_user_with_roles(['reporter'], h.id)
    resp = client.get('/permissions/me', headers=jwt_headers(reporter.id, h.id))
    assert resp.status_code == 200
    assert 'work_orders.create' in resp.get_json()['permissions']


class BrokenStore(StaticPermissionStore):
    def user_override(self, user_id, permission_key):
        raise PermissionLookupError('db down')


def test_strict_admin_path_surfaces_lookup_failure(app_context, admin, monkeypatch):
    import cmms.decorators.auth as auth_mod
    client = app_context.test_client()
    _, _, admin_headers = admin
    monkeypatch.setattr(auth_mod, 'get_resolver', lambda: PermissionResolver(BrokenStore()))
    resp = client.put('/permissions/users/1/overrides/work_orders.reject', json={'effect': 'grant'}, headers=admin_headers)
    assert resp.status_code == 503


def test_check_requires_key(app_context, admin):
    client = app_context.test_client()
    _, _, admin_headers = admin
    assert client.get('/permissions/check', headers=admin_headers).status_code == 400
