from __future__ import annotations
from flask import Blueprint, request, abort
from flask_jwt_extended import jwt_required, get_jwt_identity
from cmms.constants.permissions import PERMISSIONS_MANAGE, EFFECTS, is_valid_key
from cmms.constants.roles import SYSTEM_ROLES
from cmms.decorators.audit import audit_log
from cmms.decorators.auth import require_permission, get_resolver, get_permission_store, current_hospital_id

perm_bp = Blueprint('permissions', __name__)


@perm_bp.get('/check')
@jwt_required()
def check_permission():
    key = request.args.get('key')
    if not key:
        abort(400, description='key required')
    hospital_id = request.args.get('hospital_id', type=int)
    if hospital_id is None:
        hospital_id = current_hospital_id()
    user_id = int(get_jwt_identity())
    return {'key': key, 'hospital_id': hospital_id, 'allowed': get_resolver().resolve(user_id, key, hospital_id)}


@perm_bp.get('/me')
@jwt_required()
def my_permissions():
    hospital_id = request.args.get('hospital_id', type=int)
    if hospital_id is None:
        hospital_id = current_hospital_id()
    keys = get_resolver().effective_permissions(int(get_jwt_identity()), hospital_id)
    return {'hospital_id': hospital_id, 'permissions': sorted(keys)}


@perm_bp.put('/users/<int:user_id>/overrides/<key>')
@require_permission(PERMISSIONS_MANAGE, strict=True)
@audit_log('PERM.USER.OVERRIDE', entity='UserPermission', entity_id_key='key', meta_keys=['user_id', 'effect'])
def set_user_override(user_id: int, key: str):
    data = request.get_json(silent=True) or {}
    effect = data.get('effect')
    if effect not in EFFECTS:
        abort(400, description=f"effect must be one of {', '.join(EFFECTS)}")
    if not is_valid_key(key):
        abort(400, description='key must follow module.action')
    get_permission_store().set_user_override(user_id, key, effect)
    return {'user_id': user_id, 'key': key, 'effect': effect}


@perm_bp.delete('/users/<int:user_id>/overrides/<key>')
@require_permission(PERMISSIONS_MANAGE, strict=True)
@audit_log('PERM.USER.OVERRIDE.CLEAR', entity='UserPermission', entity_id_key='key', meta_keys=['user_id'])
def clear_user_override(user_id: int, key: str):
    if not get_permission_store().clear_user_override(user_id, key):
        abort(404, description='No override for this key')
    return {'user_id': user_id, 'key': key}


@perm_bp.put('/roles/<role_code>/<key>')
@require_permission(PERMISSIONS_MANAGE, strict=True)
@audit_log('PERM.ROLE.SET', entity='RolePermission', entity_id_key='key', meta_keys=['role_code', 'allowed', 'hospital_id'])
def set_role_permission(role_code: str, key: str):
    data = request.get_json(silent=True) or {}
    if role_code not in SYSTEM_ROLES:
        abort(400, description='unknown role code')
    if not is_valid_key(key):
        abort(400, description='key must follow module.action')
    allowed = data.get('allowed')
    if not isinstance(allowed, bool):
        abort(400, description='allowed must be boolean')
    hospital_id = data.get('hospital_id')
    if hospital_id is not None and not isinstance(hospital_id, int):
        abort(400, description='hospital_id must be integer')
    entry = get_permission_store().set_role_permission(role_code, key, allowed, hospital_id)
    return {'role_code': entry.role_code, 'key': entry.permission_key, 'allowed': entry.allowed,
            'hospital_id': entry.hospital_id}
