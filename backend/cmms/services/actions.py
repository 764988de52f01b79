"""Work order action orchestrator.

One call per user action:

  1. required notes must be a non-blank string, checked before any store call
  2. local cooldown per (actor, action, work order); double submits inside
     the window are refused without touching the store. Only attempts that
     pass the notes check take a slot.
  3. role and precondition check against the current record
  4. one atomic store call which re-checks the guard
  5. best-effort notification; failures are logged and dropped

Outcomes are ``ActionResult`` values. Only ``StoreError`` escapes.
"""
from __future__ import annotations
import asyncio
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from cmms.constants.permissions import WO_FINAL_APPROVE
from cmms.errors import PreconditionFailed
from cmms.services import notifications, workflow
from cmms.services.identity import Actor
from cmms.services.notifications import NotificationEvent, LoggingNotifier
from cmms.services.work_order_store import FINAL_APPROVABLE_STATUSES
from cmms.utils.fsm import INVALID_TRANSITION, PRECONDITION_FAILED

logger = logging.getLogger(__name__)

RATE_LIMITED = 'rate_limited'
MISSING_NOTES = 'missing_notes'
NOT_FOUND = 'not_found'
FORBIDDEN = 'forbidden'
UNKNOWN_ACTION = 'unknown_action'

EVENT_TYPES = {
    workflow.START_WORK: notifications.WORK_STARTED,
    workflow.COMPLETE_WORK: notifications.WORK_COMPLETED,
    workflow.SUPERVISOR_APPROVE: notifications.SUPERVISOR_APPROVED,
    workflow.ENGINEER_REVIEW: notifications.ENGINEER_APPROVED,
    workflow.REPORTER_CLOSE: notifications.CUSTOMER_REVIEWED,
}

FIELD_LABELS = {
    'technician_notes': 'Technician notes are required',
    'supervisor_notes': 'Supervisor notes are required',
    'engineer_notes': 'Engineer notes are required',
    'rejection_reason': 'Rejection reason is required',
}


@dataclass(frozen=True)
class ActionResult:
    ok: bool
    reason: Optional[str] = None
    error: Optional[str] = None
    work_order: Optional[Dict[str, Any]] = None


class ActionRateLimiter:
    def __init__(self, cooldown: float = 2.0, clock: Callable[[], float] = time.monotonic):
        self.cooldown = cooldown
        self.clock = clock
        self._last: Dict[Tuple, float] = {}
        self._lock = threading.Lock()

    def allow(self, key: Tuple) -> bool:
        """Record an attempt for ``key``; False when the previous one is inside the cooldown."""
        with self._lock:
            now = self.clock()
            # drop expired slots
            self._last = {k: t for k, t in self._last.items() if now - t < self.cooldown}
            if key in self._last:
                return False
            self._last[key] = now
            return True

    def __len__(self):
        return len(self._last)


def _clean(notes: Any) -> Optional[str]:
    if not isinstance(notes, str):
        return None
    notes = notes.strip()
    return notes or None


class WorkOrderActions:
    def __init__(self, store, resolver=None, notifier=None, cooldown: float = 2.0,
                 clock: Callable[[], float] = time.monotonic):
        self.store = store
        self.resolver = resolver
        self.notifier = notifier or LoggingNotifier()
        self.limiter = ActionRateLimiter(cooldown, clock)

    # --- named actions ---
    async def start_work(self, actor: Actor, work_order_id: int) -> ActionResult:
        return await self.perform(actor, work_order_id, workflow.START_WORK)

    async def complete_work(self, actor: Actor, work_order_id: int, notes: str) -> ActionResult:
        return await self.perform(actor, work_order_id, workflow.COMPLETE_WORK, notes)

    async def supervisor_approve(self, actor: Actor, work_order_id: int, notes: str) -> ActionResult:
        return await self.perform(actor, work_order_id, workflow.SUPERVISOR_APPROVE, notes)

    async def engineer_review(self, actor: Actor, work_order_id: int, notes: str) -> ActionResult:
        return await self.perform(actor, work_order_id, workflow.ENGINEER_REVIEW, notes)

    async def reporter_close(self, actor: Actor, work_order_id: int, notes: Optional[str] = None) -> ActionResult:
        return await self.perform(actor, work_order_id, workflow.REPORTER_CLOSE, notes)

    async def reject(self, actor: Actor, work_order_id: int, reason: str) -> ActionResult:
        return await self.perform(actor, work_order_id, workflow.REJECT, reason)

    async def perform(self, actor: Actor, work_order_id: int, action: str, notes: Optional[str] = None) -> ActionResult:
        if not workflow.is_workflow_action(action):
            return ActionResult(False, UNKNOWN_ACTION, f'Unknown action {action}')
        notes = _clean(notes)
        fields = workflow.required_fields(action)
        if fields and notes is None:
            return ActionResult(False, MISSING_NOTES, FIELD_LABELS.get(fields[0], f'{fields[0]} is required'))
        if not self.limiter.allow((actor.user_id, action, work_order_id)):
            return ActionResult(False, RATE_LIMITED, 'Please wait before repeating this action')

        record = await self.store.fetch(work_order_id)
        if record is None:
            return ActionResult(False, NOT_FOUND, 'Work order not found')
        transition = workflow.transition_for(record['status'], action)
        if transition is None:
            return ActionResult(False, INVALID_TRANSITION, 'Invalid state transition', record)
        check = workflow.validate_transition(
            transition.source, transition.target, actor.role_codes(record.get('hospital_id')), record,
            is_reporter=record.get('reported_by') == actor.user_id,
        )
        if not check.valid:
            return ActionResult(False, check.reason, check.error, record)

        try:
            updated = await self.store.apply_transition(work_order_id, transition, actor.user_id, notes)
        except PreconditionFailed as e:
            logger.info('Work order %s %s refused by store: %s', work_order_id, transition.action, e)
            return ActionResult(False, PRECONDITION_FAILED, str(e), record)

        if transition.action in workflow.REJECT_ACTIONS:
            event = NotificationEvent(work_order_id, notifications.REJECTED, actor.user_id,
                                      {'rejection_stage': workflow.REJECT_ACTIONS[transition.action]})
        else:
            event = NotificationEvent(work_order_id, EVENT_TYPES[transition.action], actor.user_id)
        await self._notify(event)
        return ActionResult(True, work_order=updated)

    async def final_approve(self, actor: Actor, work_order_id: int, notes: str) -> ActionResult:
        """Manager sign-off after closure. Not a status change; gated by the permission resolver."""
        notes = _clean(notes)
        if notes is None:
            return ActionResult(False, MISSING_NOTES, 'Approval notes are required')
        if not self.limiter.allow((actor.user_id, 'final_approve', work_order_id)):
            return ActionResult(False, RATE_LIMITED, 'Please wait before repeating this action')
        record = await self.store.fetch(work_order_id)
        if record is None:
            return ActionResult(False, NOT_FOUND, 'Work order not found')
        if not await self._allowed(actor, WO_FINAL_APPROVE, record.get('hospital_id')):
            return ActionResult(False, FORBIDDEN, 'User does not have required role for this action', record)
        try:
            updated = await self.store.final_approve(work_order_id, actor.user_id, notes)
        except PreconditionFailed as e:
            return ActionResult(False, PRECONDITION_FAILED, str(e), record)
        await self._notify(NotificationEvent(work_order_id, notifications.FINAL_APPROVED, actor.user_id))
        return ActionResult(True, work_order=updated)

    async def available_actions(self, actor: Actor, record: Dict[str, Any]) -> Dict[str, Any]:
        """Action flags for UI gating; never raises on permission lookups."""
        state = workflow.get_available_actions(
            record['status'], actor.role_codes(record.get('hospital_id')), record,
            is_reporter=record.get('reported_by') == actor.user_id,
        )
        can = state.can.as_dict()
        can['final_approve'] = (
            record['status'] in FINAL_APPROVABLE_STATUSES
            and record.get('maintenance_manager_approved_at') is None
            and await self._allowed(actor, WO_FINAL_APPROVE, record.get('hospital_id'))
        )
        return {'status': state.status, 'next_status': state.next_status, 'can': can}

    async def _allowed(self, actor: Actor, key: str, hospital_id: Optional[int]) -> bool:
        if self.resolver is None:
            return False
        return await asyncio.to_thread(self.resolver.resolve, actor.user_id, key, hospital_id)

    async def _notify(self, event: NotificationEvent):
        try:
            await self.notifier.notify(event)
        except Exception:
            logger.exception('Notification %s for work order %s failed', event.event_type, event.work_order_id)


class ActionSessions:
    """One ``WorkOrderActions`` per login session, so cooldowns never leak across sessions.

    Sessions are keyed by the token ``jti``; the least recently used one is
    dropped once ``max_sessions`` is exceeded.
    """

    def __init__(self, store, resolver=None, notifier=None, cooldown: float = 2.0, max_sessions: int = 1024):
        self.store = store
        self.resolver = resolver
        self.notifier = notifier or LoggingNotifier()
        self.cooldown = cooldown
        self.max_sessions = max_sessions
        self._sessions: OrderedDict = OrderedDict()
        self._lock = threading.Lock()

    def get(self, session_key: str) -> WorkOrderActions:
        with self._lock:
            actions = self._sessions.pop(session_key, None)
            if actions is None:
                actions = WorkOrderActions(self.store, self.resolver, self.notifier, self.cooldown)
            self._sessions[session_key] = actions
            while len(self._sessions) > self.max_sessions:
                self._sessions.popitem(last=False)
            return actions

    def __len__(self):
        return len(self._sessions)
