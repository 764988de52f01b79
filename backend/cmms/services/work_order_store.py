"""Persistence boundary for work orders.

Every write is a single conditional UPDATE guarded by the edge's source status
and preconditions, plus one ``WorkOrderOperation`` row, in one transaction. A
guard miss raises ``PreconditionFailed``; anything the database raises becomes
``StoreError``.
"""
from __future__ import annotations
import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select, update, false, or_
from sqlalchemy.exc import SQLAlchemyError

from cmms.errors import PreconditionFailed, StoreError
from cmms.models.work_order import WorkOrder, WorkOrderOperation
from cmms.services import workflow
from cmms.services.role_capabilities import ViewScope
from cmms.utils.fsm import Transition
from cmms.utils.timestamps import utcnow, isoformat_z

logger = logging.getLogger(__name__)

FINAL_APPROVE = 'final_approve'
AUTO_CLOSE = 'auto_close'
FINAL_APPROVABLE_STATUSES = (WorkOrder.STATUS_COMPLETED, WorkOrder.STATUS_AUTO_CLOSED)

_COLUMNS = [c.key for c in WorkOrder.__table__.columns]


def work_order_record(wo: WorkOrder) -> Dict[str, Any]:
    """Plain dict snapshot of a row; datetimes stay datetimes."""
    return {name: getattr(wo, name) for name in _COLUMNS}


def work_order_json(record: Dict[str, Any]) -> Dict[str, Any]:
    out = {}
    for name, value in record.items():
        out[name] = isoformat_z(value) if isinstance(value, datetime) else value
    return out


def transition_values(transition: Transition, actor_id: int, notes: Optional[str], now: datetime) -> Dict[str, Any]:
    """Column values written by taking ``transition``."""
    values: Dict[str, Any] = {'status': transition.target, 'updated_at': now}
    action = transition.action
    if action == workflow.START_WORK:
        values.update(start_time=now, started_by=actor_id)
    elif action == workflow.COMPLETE_WORK:
        values.update(technician_completed_at=now, technician_completed_by=actor_id, technician_notes=notes)
    elif action == workflow.SUPERVISOR_APPROVE:
        values.update(supervisor_approved_at=now, supervisor_approved_by=actor_id, supervisor_notes=notes)
    elif action == workflow.ENGINEER_REVIEW:
        values.update(engineer_approved_at=now, engineer_approved_by=actor_id, engineer_notes=notes,
                      pending_closure_since=now)
    elif action == workflow.REPORTER_CLOSE:
        values.update(customer_reviewed_at=now, customer_reviewed_by=actor_id, reporter_notes=notes)
    elif action in workflow.REJECT_ACTIONS:
        values.update(rejected_at=now, rejected_by=actor_id, rejection_reason=notes,
                      rejection_stage=workflow.REJECT_ACTIONS[action])
        # the stage the order goes back to must be redone
        if action == workflow.REJECT_SUPERVISOR:
            values.update(technician_completed_at=None, technician_completed_by=None)
        elif action == workflow.REJECT_ENGINEER:
            values.update(supervisor_approved_at=None, supervisor_approved_by=None)
        elif action == workflow.REJECT_REPORTER:
            values.update(engineer_approved_at=None, engineer_approved_by=None, pending_closure_since=None)
    else:
        raise ValueError(f'Unknown workflow action {action}')
    return values


def _guard(transition: Transition):
    clauses = [WorkOrder.status == transition.source]
    for pre in transition.preconditions:
        column = getattr(WorkOrder, pre.field)
        clauses.append(column.isnot(None) if pre.is_set else column.is_(None))
    return clauses


def apply_view_scope(stmt, scope: Optional[ViewScope], user_id: int, team_ids=(), hospital_id: Optional[int] = None):
    """Narrow a work order select to what ``scope`` lets the user see."""
    if hospital_id is not None:
        stmt = stmt.where(WorkOrder.hospital_id == hospital_id)
    if scope == ViewScope.ALL:
        return stmt
    if scope == ViewScope.TEAM:
        team_ids = list(team_ids or [])
        if team_ids:
            return stmt.where(or_(WorkOrder.assigned_team.in_(team_ids), WorkOrder.assigned_to == user_id))
        return stmt.where(WorkOrder.assigned_to == user_id)
    if scope == ViewScope.OWN:
        return stmt.where(WorkOrder.reported_by == user_id)
    return stmt.where(false())


class WorkOrderStore:
    """Async persistence interface used by the action orchestrator."""

    async def fetch(self, work_order_id: int) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    async def apply_transition(self, work_order_id: int, transition: Transition, actor_id: int,
                               notes: Optional[str] = None) -> Dict[str, Any]:
        raise NotImplementedError

    async def final_approve(self, work_order_id: int, actor_id: int, notes: str) -> Dict[str, Any]:
        raise NotImplementedError

    async def auto_close(self, cutoff: datetime, now: datetime) -> List[Dict[str, Any]]:
        raise NotImplementedError


class SqlWorkOrderStore(WorkOrderStore):
    def __init__(self, session_factory: Callable, clock: Callable[[], datetime] = utcnow):
        self.session_factory = session_factory
        self.clock = clock

    def _run(self, fn):
        try:
            with self.session_factory() as session, session.begin():
                return fn(session)
        except SQLAlchemyError as e:
            logger.error('Work order store failure: %s', e)
            raise StoreError(f'work order store failed: {e}') from e

    def _current(self, session, work_order_id: int) -> Optional[Dict[str, Any]]:
        wo = session.execute(
            select(WorkOrder).where(WorkOrder.id == work_order_id).execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return work_order_record(wo) if wo else None

    def _log(self, session, work_order_id, action, from_status, to_status, actor_id, notes, now):
        session.add(WorkOrderOperation(
            work_order_id=work_order_id, action=action, from_status=from_status,
            to_status=to_status, performed_by=actor_id, notes=notes, created_at=now,
        ))

    # --- sync bodies, run in a worker thread ---
    def fetch_sync(self, work_order_id: int) -> Optional[Dict[str, Any]]:
        return self._run(lambda session: self._current(session, work_order_id))

    def apply_transition_sync(self, work_order_id: int, transition: Transition, actor_id: int,
                              notes: Optional[str] = None) -> Dict[str, Any]:
        now = self.clock()
        values = transition_values(transition, actor_id, notes, now)

        def w(session):
            stmt = (update(WorkOrder)
                    .where(WorkOrder.id == work_order_id, *_guard(transition))
                    .values(**values)
                    .execution_options(synchronize_session=False))
            result = session.execute(stmt)
            if result.rowcount != 1:
                current = self._current(session, work_order_id)
                if current is None:
                    raise PreconditionFailed('Work order not found')
                if current['status'] != transition.source:
                    raise PreconditionFailed('Invalid state transition', current['status'])
                raise PreconditionFailed(transition.validate(current) or 'Work order changed concurrently',
                                         current['status'])
            self._log(session, work_order_id, transition.action, transition.source, transition.target,
                      actor_id, notes, now)
            session.flush()
            return self._current(session, work_order_id)
        record = self._run(w)
        logger.info('Work order %s: %s -> %s by user %s (%s)', work_order_id, transition.source,
                    transition.target, actor_id, transition.action)
        return record

    def final_approve_sync(self, work_order_id: int, actor_id: int, notes: str) -> Dict[str, Any]:
        now = self.clock()

        def w(session):
            stmt = (update(WorkOrder)
                    .where(WorkOrder.id == work_order_id,
                           WorkOrder.status.in_(FINAL_APPROVABLE_STATUSES),
                           WorkOrder.maintenance_manager_approved_at.is_(None))
                    .values(maintenance_manager_approved_at=now, maintenance_manager_approved_by=actor_id,
                            maintenance_manager_notes=notes, updated_at=now)
                    .execution_options(synchronize_session=False))
            result = session.execute(stmt)
            current = self._current(session, work_order_id)
            if result.rowcount != 1:
                if current is None:
                    raise PreconditionFailed('Work order not found')
                if current['maintenance_manager_approved_at'] is not None:
                    raise PreconditionFailed('Already approved by manager', current['status'])
                raise PreconditionFailed('Work order must be closed before final approval', current['status'])
            self._log(session, work_order_id, FINAL_APPROVE, current['status'], current['status'],
                      actor_id, notes, now)
            return current
        return self._run(w)

    def auto_close_sync(self, cutoff: datetime, now: datetime) -> List[Dict[str, Any]]:
        stale = [
            WorkOrder.status == WorkOrder.STATUS_PENDING_REPORTER_CLOSURE,
            WorkOrder.pending_closure_since.isnot(None),
            WorkOrder.pending_closure_since <= cutoff,
        ]

        def w(session):
            ids = list(session.execute(select(WorkOrder.id).where(*stale).with_for_update()).scalars())
            if not ids:
                return []
            session.execute(
                update(WorkOrder)
                .where(WorkOrder.id.in_(ids), *stale)
                .values(status=WorkOrder.STATUS_AUTO_CLOSED, auto_closed_at=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            for wo_id in ids:
                self._log(session, wo_id, AUTO_CLOSE, WorkOrder.STATUS_PENDING_REPORTER_CLOSURE,
                          WorkOrder.STATUS_AUTO_CLOSED, None, None, now)
            session.flush()
            rows = session.execute(
                select(WorkOrder).where(WorkOrder.id.in_(ids)).order_by(WorkOrder.id)
                .execution_options(populate_existing=True)
            ).scalars()
            return [work_order_record(r) for r in rows]
        return self._run(w)

    # --- async interface ---
    async def fetch(self, work_order_id):
        return await asyncio.to_thread(self.fetch_sync, work_order_id)

    async def apply_transition(self, work_order_id, transition, actor_id, notes=None):
        return await asyncio.to_thread(self.apply_transition_sync, work_order_id, transition, actor_id, notes)

    async def final_approve(self, work_order_id, actor_id, notes):
        return await asyncio.to_thread(self.final_approve_sync, work_order_id, actor_id, notes)

    async def auto_close(self, cutoff, now):
        return await asyncio.to_thread(self.auto_close_sync, cutoff, now)
