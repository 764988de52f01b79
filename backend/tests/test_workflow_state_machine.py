from datetime import datetime, timezone
import pytest
from cmms.models.work_order import WorkOrder
from cmms.services import workflow
from cmms.services.workflow import (
    WORK_ORDER_TRANSITIONS, get_available_actions, validate_transition, transition_for, required_fields,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def rec(status, **fields):
    return {'status': status, **fields}


def test_technician_start_round_trip():
    r = rec('assigned', start_time=None)
    assert get_available_actions('assigned', ['technician'], r).can.start is True
    r['start_time'] = NOW
    state = get_available_actions('assigned', ['technician'], r)
    assert state.can.start is False
    check = validate_transition('assigned', 'in_progress', ['technician'], r)
    assert (check.valid, check.error) == (False, 'Work already started')


def test_supervisor_at_pending_approval():
    r = rec('pending_supervisor_approval', technician_completed_at=NOW, supervisor_approved_at=None)
    can = get_available_actions('pending_supervisor_approval', ['supervisor'], r).can
    assert can.approve is True
    assert can.reject is True
    assert can.update is True
    # reassign only while the order has not reached an approval stage
    assert can.reassign is False
    assert can.start is False and can.complete is False


def test_reporter_close_depends_on_reporter_flag_and_closure():
    r = rec('pending_reporter_closure', engineer_approved_at=NOW, customer_reviewed_at=None)
    assert get_available_actions('pending_reporter_closure', ['reporter'], r, is_reporter=True).can.close is True
    r['customer_reviewed_at'] = NOW
    assert get_available_actions('pending_reporter_closure', ['reporter'], r, is_reporter=True).can.close is False


def test_reporter_of_record_without_reporter_role():
    r = rec('pending_reporter_closure', engineer_approved_at=NOW)
    state = get_available_actions('pending_reporter_closure', ['engineer'], r, is_reporter=True)
    assert state.can.close is True
    assert state.can.reject is True
    assert get_available_actions('pending_reporter_closure', ['engineer'], r).can.close is False


def test_available_actions_is_pure():
    r = rec('in_progress', start_time=NOW)
    snapshot = dict(r)
    first = get_available_actions('in_progress', ['technician', 'supervisor'], r)
    second = get_available_actions('in_progress', ['technician', 'supervisor'], r)
    assert first == second
    assert r == snapshot


def test_reject_union_across_transitions():
    # technician reject is open from in_progress regardless of other preconditions
    r = rec('in_progress', start_time=NOW, technician_completed_at=NOW)
    can = get_available_actions('in_progress', ['senior_technician'], r).can
    assert can.complete is False
    assert can.reject is True


def test_manager_flags_independent_of_table():
    for status in ('pending', 'assigned', 'in_progress', 'rejected_by_technician'):
        can = get_available_actions(status, ['engineer'], rec(status)).can
        assert can.reassign is True and can.update is True
    can = get_available_actions('completed', ['maintenance_manager'], rec('completed')).can
    assert can.reassign is False and can.update is True
    can = get_available_actions('assigned', ['technician'], rec('assigned')).can
    assert can.reassign is False and can.update is False


def test_next_status_reports_forward_edge():
    state = get_available_actions('in_progress', ['technician'], rec('in_progress', start_time=NOW))
    assert state.next_status == 'pending_supervisor_approval'
    assert get_available_actions('completed', ['technician'], rec('completed')).next_status is None


@pytest.mark.parametrize('t', WORK_ORDER_TRANSITIONS, ids=lambda t: f'{t.source}->{t.target}')
def test_validate_transition_matches_definition(t):
    role = sorted(t.roles)[0]
    good = {p.field: (NOW if p.is_set else None) for p in t.preconditions}
    assert validate_transition(t.source, t.target, [role], rec(t.source, **good)).valid is True
    assert validate_transition(t.source, t.target, ['nobody'], rec(t.source, **good)).error == \
        'User does not have required role for this action'
    for p in t.preconditions:
        bad = dict(good)
        bad[p.field] = None if p.is_set else NOW
        res = validate_transition(t.source, t.target, [role], rec(t.source, **bad))
        assert (res.valid, res.error) == (False, p.error)


def test_invalid_edge_message():
    res = validate_transition('pending', 'completed', ['global_admin'], rec('pending'))
    assert res.valid is False
    assert res.error == 'Invalid state transition'
    assert res.transition is None


def test_precondition_messages_from_table():
    r = rec('pending_engineer_review', supervisor_approved_at=None)
    res = validate_transition('pending_engineer_review', 'pending_reporter_closure', ['engineer'], r)
    assert res.error == 'Must be approved by supervisor first'
    r = rec('pending_reporter_closure', engineer_approved_at=None)
    res = validate_transition('pending_reporter_closure', 'completed', ['reporter'], r, is_reporter=True)
    assert res.error == 'Must be reviewed by engineer first'


def test_legacy_statuses_have_no_transitions():
    for status in WorkOrder.LEGACY_STATUSES:
        assert workflow.WORKFLOW.outgoing(status) == []
        assert status in WorkOrder.ALL_STATUSES
        can = get_available_actions(status, ['global_admin', 'technician', 'supervisor'], rec(status)).can
        assert not any([can.start, can.complete, can.approve, can.review, can.close, can.reject])


def test_terminal_statuses():
    assert workflow.is_terminal('completed') and workflow.is_terminal('auto_closed') and workflow.is_terminal('cancelled')
    assert not workflow.is_terminal('rejected_by_technician')
    for status in WorkOrder.TERMINAL_STATUSES:
        assert workflow.WORKFLOW.outgoing(status) == []


def test_transition_for_picks_stage_specific_reject():
    assert transition_for('pending_supervisor_approval', 'reject').action == 'reject_supervisor'
    assert transition_for('pending_engineer_review', 'reject').target == 'pending_supervisor_approval'
    assert transition_for('assigned', 'reject').target == 'rejected_by_technician'
    assert transition_for('completed', 'reject') is None
    assert transition_for('pending', 'start_work').target == 'in_progress'


def test_required_fields():
    assert required_fields('start_work') == []
    assert required_fields('complete_work') == ['technician_notes']
    assert required_fields('reporter_close') == []
    assert required_fields('reject') == ['rejection_reason']
    assert [t.source for t in workflow.transitions_for_action('start_work')] == ['pending', 'assigned']
