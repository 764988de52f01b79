"""Work order approval workflow.

The transition table below is the single definition of legal workflow edges.
UI affordances (``get_available_actions``) and server-side checks
(``validate_transition``) are both derived from it; neither function touches
the database or keeps state between calls.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Tuple

from cmms.constants.roles import (
    TECHNICIAN_ROLES, SUPERVISOR_ROLES, ENGINEER_ROLES, REPORTER_ROLES, MANAGER_ROLES, REPORTER,
)
from cmms.models.work_order import WorkOrder
from cmms.utils.fsm import Precondition, Transition, TransitionCheck, TransitionTable

START_WORK = 'start_work'
COMPLETE_WORK = 'complete_work'
SUPERVISOR_APPROVE = 'supervisor_approve'
ENGINEER_REVIEW = 'engineer_review'
REPORTER_CLOSE = 'reporter_close'
REJECT_TECHNICIAN = 'reject_technician'
REJECT_SUPERVISOR = 'reject_supervisor'
REJECT_ENGINEER = 'reject_engineer'
REJECT_REPORTER = 'reject_reporter'
REJECT = 'reject'  # umbrella action; the concrete edge depends on the current status

REJECT_ACTIONS = {
    REJECT_TECHNICIAN: 'technician',
    REJECT_SUPERVISOR: 'supervisor',
    REJECT_ENGINEER: 'engineer',
    REJECT_REPORTER: 'reporter',
}

# action -> work order column receiving the free-text notes
NOTES_COLUMNS = {
    START_WORK: None,
    COMPLETE_WORK: 'technician_notes',
    SUPERVISOR_APPROVE: 'supervisor_notes',
    ENGINEER_REVIEW: 'engineer_notes',
    REPORTER_CLOSE: 'reporter_notes',
    REJECT_TECHNICIAN: 'rejection_reason',
    REJECT_SUPERVISOR: 'rejection_reason',
    REJECT_ENGINEER: 'rejection_reason',
    REJECT_REPORTER: 'rejection_reason',
}

REASSIGNABLE_STATUSES = (
    WorkOrder.STATUS_PENDING,
    WorkOrder.STATUS_ASSIGNED,
    WorkOrder.STATUS_IN_PROGRESS,
    WorkOrder.STATUS_REJECTED_BY_TECHNICIAN,
)

_not_started = Precondition('start_time', False, 'Work already started')
_started = Precondition('start_time', True, 'Work must be started first')
_not_completed = Precondition('technician_completed_at', False, 'Work already completed')
_completed = Precondition('technician_completed_at', True, 'Technician must complete work first')
_not_supervisor_approved = Precondition('supervisor_approved_at', False, 'Already approved by supervisor')
_supervisor_approved = Precondition('supervisor_approved_at', True, 'Must be approved by supervisor first')
_not_engineer_reviewed = Precondition('engineer_approved_at', False, 'Already reviewed by engineer')
_engineer_reviewed = Precondition('engineer_approved_at', True, 'Must be reviewed by engineer first')
_not_reporter_closed = Precondition('customer_reviewed_at', False, 'Already closed by reporter')

WORK_ORDER_TRANSITIONS: Tuple[Transition, ...] = (
    Transition(WorkOrder.STATUS_PENDING, WorkOrder.STATUS_IN_PROGRESS, START_WORK, TECHNICIAN_ROLES,
               preconditions=(_not_started,)),
    Transition(WorkOrder.STATUS_ASSIGNED, WorkOrder.STATUS_IN_PROGRESS, START_WORK, TECHNICIAN_ROLES,
               preconditions=(_not_started,)),
    Transition(WorkOrder.STATUS_IN_PROGRESS, WorkOrder.STATUS_PENDING_SUPERVISOR_APPROVAL, COMPLETE_WORK, TECHNICIAN_ROLES,
               fields=('technician_notes',), preconditions=(_started, _not_completed)),
    Transition(WorkOrder.STATUS_PENDING_SUPERVISOR_APPROVAL, WorkOrder.STATUS_PENDING_ENGINEER_REVIEW, SUPERVISOR_APPROVE, SUPERVISOR_ROLES,
               fields=('supervisor_notes',), preconditions=(_completed, _not_supervisor_approved)),
    Transition(WorkOrder.STATUS_PENDING_ENGINEER_REVIEW, WorkOrder.STATUS_PENDING_REPORTER_CLOSURE, ENGINEER_REVIEW, ENGINEER_ROLES,
               fields=('engineer_notes',), preconditions=(_supervisor_approved, _not_engineer_reviewed)),
    # reporter notes are optional
    Transition(WorkOrder.STATUS_PENDING_REPORTER_CLOSURE, WorkOrder.STATUS_COMPLETED, REPORTER_CLOSE, REPORTER_ROLES,
               preconditions=(_engineer_reviewed, _not_reporter_closed)),

    # Rejections
    Transition(WorkOrder.STATUS_ASSIGNED, WorkOrder.STATUS_REJECTED_BY_TECHNICIAN, REJECT_TECHNICIAN, TECHNICIAN_ROLES,
               fields=('rejection_reason',)),
    Transition(WorkOrder.STATUS_IN_PROGRESS, WorkOrder.STATUS_REJECTED_BY_TECHNICIAN, REJECT_TECHNICIAN, TECHNICIAN_ROLES,
               fields=('rejection_reason',)),
    Transition(WorkOrder.STATUS_PENDING_SUPERVISOR_APPROVAL, WorkOrder.STATUS_IN_PROGRESS, REJECT_SUPERVISOR, SUPERVISOR_ROLES,
               fields=('rejection_reason',)),
    Transition(WorkOrder.STATUS_PENDING_ENGINEER_REVIEW, WorkOrder.STATUS_PENDING_SUPERVISOR_APPROVAL, REJECT_ENGINEER, ENGINEER_ROLES,
               fields=('rejection_reason',)),
    Transition(WorkOrder.STATUS_PENDING_REPORTER_CLOSURE, WorkOrder.STATUS_PENDING_ENGINEER_REVIEW, REJECT_REPORTER, REPORTER_ROLES,
               fields=('rejection_reason',), preconditions=(_engineer_reviewed,)),
)

WORKFLOW = TransitionTable(WORK_ORDER_TRANSITIONS, owner_role=REPORTER)

_ACTION_FLAGS = {
    START_WORK: 'start',
    COMPLETE_WORK: 'complete',
    SUPERVISOR_APPROVE: 'approve',
    ENGINEER_REVIEW: 'review',
    REPORTER_CLOSE: 'close',
    REJECT_TECHNICIAN: 'reject',
    REJECT_SUPERVISOR: 'reject',
    REJECT_ENGINEER: 'reject',
    REJECT_REPORTER: 'reject',
}


@dataclass(frozen=True)
class ActionFlags:
    start: bool = False
    complete: bool = False
    approve: bool = False
    review: bool = False
    close: bool = False
    reject: bool = False
    reassign: bool = False
    update: bool = False

    def as_dict(self):
        return {
            'start': self.start, 'complete': self.complete, 'approve': self.approve,
            'review': self.review, 'close': self.close, 'reject': self.reject,
            'reassign': self.reassign, 'update': self.update,
        }


@dataclass(frozen=True)
class WorkOrderState:
    status: str
    can: ActionFlags
    next_status: Optional[str] = None


def get_available_actions(status: str, actor_roles: Iterable[str], record: Any, is_reporter: bool = False) -> WorkOrderState:
    roles = list(actor_roles)
    flags = {}
    next_status = None
    for t in WORKFLOW.open_edges(status, roles, record, is_owner=is_reporter):
        flag = _ACTION_FLAGS[t.action]
        flags[flag] = True
        if t.action not in REJECT_ACTIONS:
            next_status = t.target

    # Coarse manager grants, independent of the edge table
    if MANAGER_ROLES.intersection(roles):
        flags['reassign'] = status in REASSIGNABLE_STATUSES
        flags['update'] = True

    return WorkOrderState(status=status, can=ActionFlags(**flags), next_status=next_status)


def validate_transition(source: str, target: str, actor_roles: Iterable[str], record: Any, is_reporter: bool = False) -> TransitionCheck:
    return WORKFLOW.check(source, target, actor_roles, record, is_owner=is_reporter)


def transition_for(status: str, action: str) -> Optional[Transition]:
    """Edge leaving ``status`` for ``action``; ``reject`` picks the stage-specific rejection."""
    for t in WORKFLOW.outgoing(status):
        if t.action == action or (action == REJECT and t.action in REJECT_ACTIONS):
            return t
    return None


def transitions_for_action(action: str) -> List[Transition]:
    if action == REJECT:
        return [t for t in WORK_ORDER_TRANSITIONS if t.action in REJECT_ACTIONS]
    return WORKFLOW.for_action(action)


def required_fields(action: str) -> List[str]:
    """Fields every edge of ``action`` requires; known without reading the record."""
    actions = set(REJECT_ACTIONS) if action == REJECT else {action}
    out: List[str] = []
    for t in WORK_ORDER_TRANSITIONS:
        if t.action in actions:
            for f in t.fields:
                if f not in out:
                    out.append(f)
    return out


def is_terminal(status: str) -> bool:
    return status in WorkOrder.TERMINAL_STATUSES


def is_workflow_action(action: str) -> bool:
    return action == REJECT or action in NOTES_COLUMNS

__all__ = [
    'WORK_ORDER_TRANSITIONS', 'WORKFLOW', 'ActionFlags', 'WorkOrderState',
    'get_available_actions', 'validate_transition', 'transition_for', 'transitions_for_action', 'required_fields',
    'is_terminal', 'is_workflow_action', 'REJECT_ACTIONS', 'NOTES_COLUMNS',
]
