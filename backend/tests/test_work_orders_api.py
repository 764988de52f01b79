import pytest
from flask import Flask
from sqlalchemy import select
from cmms import get_db
from cmms.constants.permissions import WO_FINAL_APPROVE
from cmms.errors import StoreError
from cmms.models.work_order import WorkOrderOperation
from cmms.services.work_order_store import WorkOrderStore
from tests.test_utils_seed import (
    ensure_hospital, seed_user_with_roles, set_role_entry, create_work_order, reload_work_order,
)
from tests.test_lifecycle_helpers import jwt_headers, post_action, exercise_work_order_lifecycle

TEAM = 501


@pytest.fixture()
def crew(app_context: Flask):
    h = ensure_hospital('Central')
    users = {
        'technician': seed_user_with_roles(['technician'], h.id),
        'supervisor': seed_user_with_roles(['supervisor'], h.id),
        'engineer': seed_user_with_roles(['engineer'], h.id),
        'reporter': seed_user_with_roles(['reporter'], h.id),
        'manager': seed_user_with_roles(['maintenance_manager'], h.id),
    }
    headers = {name: jwt_headers(u.id, h.id, [TEAM]) for name, u in users.items()}
    return h, users, headers


def new_order(crew, **fields):
    h, users, _ = crew
    fields.setdefault('assigned_team', TEAM)
    return create_work_order(h.id, users['reporter'].id, **fields)


def test_full_lifecycle_and_final_approval(app_context, crew):
    client = app_context.test_client()
    _, users, headers = crew
    wo = new_order(crew)
    body = exercise_work_order_lifecycle(client, wo.id, headers['technician'], headers['supervisor'],
                                         headers['engineer'], headers['reporter'])
    assert body['work_order']['customer_reviewed_by'] == users['reporter'].id
    assert body['work_order']['technician_notes'] == 'Replaced gasket'

    set_role_entry('maintenance_manager', WO_FINAL_APPROVE, True)
    resp = client.post(f'/work-orders/{wo.id}/final-approve', json={'notes': 'Closed out'}, headers=headers['manager'])
    assert resp.status_code == 200
    assert resp.get_json()['work_order']['maintenance_manager_approved_by'] == users['manager'].id

    ops = get_db().execute(select(WorkOrderOperation.action).where(WorkOrderOperation.work_order_id == wo.id)
                           .order_by(WorkOrderOperation.id)).scalars().all()
    assert ops == ['start_work', 'complete_work', 'supervisor_approve', 'engineer_review', 'reporter_close', 'final_approve']


def test_detail_includes_available_actions(app_context, crew):
    client = app_context.test_client()
    _, _, headers = crew
    wo = new_order(crew)
    resp = client.get(f'/work-orders/{wo.id}', headers=headers['technician'])
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['work_order']['status'] == 'assigned'
    assert body['actions']['can']['start'] is True
    assert body['actions']['can']['reject'] is True
    assert body['actions']['can']['approve'] is False
    assert body['actions']['next_status'] == 'in_progress'
    assert body['auto_close']['pending'] is False


def test_missing_notes_is_400(app_context, crew):
    client = app_context.test_client()
    _, _, headers = crew
    wo = new_order(crew)
    post_action(client, wo.id, 'start_work', headers['technician'])
    body = post_action(client, wo.id, 'complete_work', headers['technician'], notes='  ', expect=400)
    assert body['error']['detail'] == 'Technician notes are required'
    assert reload_work_order(wo.id).status == 'in_progress'


def test_wrong_role_is_403_and_wrong_status_is_409(app_context, crew):
    client = app_context.test_client()
    _, _, headers = crew
    wo = new_order(crew)
    body = post_action(client, wo.id, 'start_work', headers['reporter'], expect=403)
    assert body['error']['detail'] == 'User does not have required role for this action'
    body = post_action(client, wo.id, 'supervisor_approve', headers['supervisor'], notes='early', expect=409)
    assert body['error']['detail'] == 'Invalid state transition'
    post_action(client, wo.id, 'teleport', headers['technician'], expect=404)
    post_action(client, 987654, 'start_work', headers['technician'], expect=404)


def test_precondition_failure_is_409(app_context, crew):
    from datetime import datetime, timezone
    client = app_context.test_client()
    _, _, headers = crew
    wo = new_order(crew, start_time=datetime(2024, 1, 1, tzinfo=timezone.utc))
    body = post_action(client, wo.id, 'start_work', headers['technician'], expect=409)
    assert body['error']['detail'] == 'Work already started'


def test_reject_through_api(app_context, crew):
    client = app_context.test_client()
    _, users, headers = crew
    wo = new_order(crew)
    post_action(client, wo.id, 'start_work', headers['technician'])
    post_action(client, wo.id, 'complete_work', headers['technician'], notes='done')
    resp = client.post(f'/work-orders/{wo.id}/reject', json={'reason': 'Valve still leaks'}, headers=headers['supervisor'])
    assert resp.status_code == 200
    order = resp.get_json()['work_order']
    assert order['status'] == 'in_progress'
    assert order['rejection_stage'] == 'supervisor'
    assert order['rejected_by'] == users['supervisor'].id
    assert order['technician_completed_at'] is None


def test_repeat_within_cooldown_is_429(app_context, crew, monkeypatch):
    client = app_context.test_client()
    h, users, _ = crew
    monkeypatch.setattr(app_context.extensions['cmms.actions'], 'cooldown', 60)
    headers = jwt_headers(users['technician'].id, h.id, [TEAM])
    wo = new_order(crew)
    post_action(client, wo.id, 'start_work', headers)
    body = post_action(client, wo.id, 'start_work', headers, expect=429)
    assert body['error']['status'] == 429
    # a different login session has its own guard
    other = jwt_headers(users['technician'].id, h.id, [TEAM])
    post_action(client, wo.id, 'start_work', other, expect=409)


class DownStore(WorkOrderStore):
    async def fetch(self, work_order_id):
        raise StoreError('connection refused')


def test_store_outage_is_503(app_context, crew, monkeypatch):
    client = app_context.test_client()
    _, _, headers = crew
    monkeypatch.setattr(app_context.extensions['cmms.actions'], 'store', DownStore())
    wo = new_order(crew)
    body = post_action(client, wo.id, 'start_work', headers['technician'], expect=503)
    assert body['error']['title'] == 'Service Unavailable'


def test_listing_respects_view_scope(app_context, crew):
    client = app_context.test_client()
    h, users, headers = crew
    other_hospital = ensure_hospital('Remote')
    mine = new_order(crew)
    team_other = new_order(crew, assigned_team=TEAM + 1)
    not_mine = create_work_order(h.id, users['engineer'].id, assigned_team=TEAM + 1)
    elsewhere = create_work_order(other_hospital.id, users['reporter'].id)

    def listed(name, **params):
        resp = client.get('/work-orders', headers=headers[name], query_string={'limit': 200, **params})
        assert resp.status_code == 200
        return {row['id'] for row in resp.get_json()['data']}

    reporter_ids = listed('reporter')
    assert {mine.id, team_other.id} <= reporter_ids
    assert not_mine.id not in reporter_ids and elsewhere.id not in reporter_ids

    tech_ids = listed('technician')
    assert mine.id in tech_ids
    assert team_other.id not in tech_ids and not_mine.id not in tech_ids

    engineer_ids = listed('engineer')
    assert {mine.id, team_other.id, not_mine.id} <= engineer_ids
    assert elsewhere.id not in engineer_ids

    assert mine.id in listed('engineer', status='assigned')
    resp = client.get('/work-orders', headers=headers['engineer'], query_string={'status': 'bogus'})
    assert resp.status_code == 400


def test_detail_hidden_outside_scope(app_context, crew):
    client = app_context.test_client()
    h, users, headers = crew
    wo = create_work_order(h.id, users['engineer'].id, assigned_team=TEAM + 7)
    assert client.get(f'/work-orders/{wo.id}', headers=headers['reporter']).status_code == 404
    assert client.get(f'/work-orders/{wo.id}', headers=headers['engineer']).status_code == 200


def test_requires_token(client):
    assert client.get('/work-orders').status_code == 401


def test_actions_hidden_outside_scope_are_404(app_context, crew):
    client = app_context.test_client()
    _, _, headers = crew
    wo = new_order(crew, assigned_team=TEAM + 3)
    assert client.get(f'/work-orders/{wo.id}', headers=headers['technician']).status_code == 404
    body = post_action(client, wo.id, 'start_work', headers['technician'], expect=404)
    assert body['error']['detail'] == 'Work order not found'
    assert reload_work_order(wo.id).status == 'assigned'


def test_token_without_hospital_claim_sees_only_global_scope(app_context, crew):
    client = app_context.test_client()
    h, users, _ = crew
    other = ensure_hospital('Remote')
    admin = seed_user_with_roles(['hospital_admin'], h.id)
    home = new_order(crew)
    foreign = create_work_order(other.id, users['reporter'].id)
    unscoped = jwt_headers(admin.id)

    resp = client.get('/work-orders', headers=unscoped, query_string={'limit': 200})
    assert resp.status_code == 200
    ids = {row['id'] for row in resp.get_json()['data']}
    assert foreign.id not in ids and home.id not in ids
    assert client.get(f'/work-orders/{foreign.id}', headers=unscoped).status_code == 404

    scoped = client.get('/work-orders', headers=jwt_headers(admin.id, h.id), query_string={'limit': 200})
    ids = {row['id'] for row in scoped.get_json()['data']}
    assert home.id in ids and foreign.id not in ids


def test_non_string_notes_are_missing_notes(app_context, crew):
    client = app_context.test_client()
    _, _, headers = crew
    wo = new_order(crew)
    post_action(client, wo.id, 'start_work', headers['technician'])
    resp = client.post(f'/work-orders/{wo.id}/complete_work', json={'notes': 42}, headers=headers['technician'])
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'Technician notes are required'
    assert reload_work_order(wo.id).status == 'in_progress'
