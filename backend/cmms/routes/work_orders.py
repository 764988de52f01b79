from __future__ import annotations
from flask import Blueprint, request, abort, current_app
from flask_jwt_extended import jwt_required, get_jwt
from sqlalchemy import select
from cmms import get_db
from cmms.decorators.auth import current_actor, current_hospital_id
from cmms.models.work_order import WorkOrder
from cmms.services.actions import (
    WorkOrderActions, RATE_LIMITED, MISSING_NOTES, NOT_FOUND, FORBIDDEN, UNKNOWN_ACTION,
)
from cmms.services.auto_close import auto_close_info
from cmms.services.role_capabilities import work_order_view_scope
from cmms.services.work_order_store import apply_view_scope, work_order_json, work_order_record
from cmms.utils.fsm import INVALID_TRANSITION, PRECONDITION_FAILED
from cmms.utils.listing import paginate, build_list_payload, validate_choice

wo_bp = Blueprint('work_orders', __name__)

RESULT_STATUS = {
    FORBIDDEN: 403,
    INVALID_TRANSITION: 409,
    PRECONDITION_FAILED: 409,
    MISSING_NOTES: 400,
    RATE_LIMITED: 429,
    NOT_FOUND: 404,
    UNKNOWN_ACTION: 404,
}


def get_actions() -> WorkOrderActions:
    """Orchestrator bound to the caller's token (one per login session)."""
    return current_app.extensions['cmms.actions'].get(get_jwt()['jti'])


def _visible(actor, hospital_id):
    scope = work_order_view_scope(actor.role_codes(hospital_id))
    return apply_view_scope(select(WorkOrder), scope, actor.user_id, actor.team_ids, hospital_id)


def _require_visible(actor, wo_id: int):
    """404 unless the order is inside the caller's view scope."""
    stmt = _visible(actor, current_hospital_id()).where(WorkOrder.id == wo_id).with_only_columns(WorkOrder.id)
    if get_db().execute(stmt).first() is None:
        abort(404, description='Work order not found')


def _result_response(result):
    if not result.ok:
        abort(RESULT_STATUS.get(result.reason, 400), description=result.error)
    return {'work_order': work_order_json(result.work_order)}


@wo_bp.get('')
@jwt_required()
def list_work_orders():
    session = get_db()
    actor = current_actor()
    stmt = _visible(actor, current_hospital_id())
    status = validate_choice(request.args.get('status'), WorkOrder.ALL_STATUSES)
    if status:
        stmt = stmt.where(WorkOrder.status == status)
    rows, total, limit, offset = paginate(session, stmt.order_by(WorkOrder.id))
    return build_list_payload([work_order_json(work_order_record(r)) for r in rows], total, limit, offset)


@wo_bp.get('/<int:wo_id>')
@jwt_required()
async def get_work_order(wo_id: int):
    session = get_db()
    actor = current_actor()
    wo = session.execute(_visible(actor, current_hospital_id()).where(WorkOrder.id == wo_id)).scalar_one_or_none()
    if not wo:
        abort(404)
    record = work_order_record(wo)
    hours = current_app.config['AUTO_CLOSE_HOURS']
    return {
        'work_order': work_order_json(record),
        'actions': await get_actions().available_actions(actor, record),
        'auto_close': auto_close_info(record, hours=hours).as_dict(),
    }


@wo_bp.post('/<int:wo_id>/final-approve')
@jwt_required()
async def final_approve(wo_id: int):
    data = request.get_json(silent=True) or {}
    actor = current_actor()
    _require_visible(actor, wo_id)
    result = await get_actions().final_approve(actor, wo_id, data.get('notes'))
    return _result_response(result)


@wo_bp.post('/<int:wo_id>/<action>')
@jwt_required()
async def perform_action(wo_id: int, action: str):
    data = request.get_json(silent=True) or {}
    notes = data.get('notes')
    if notes is None:
        notes = data.get('reason')
    actor = current_actor()
    _require_visible(actor, wo_id)
    result = await get_actions().perform(actor, wo_id, action, notes)
    return _result_response(result)
