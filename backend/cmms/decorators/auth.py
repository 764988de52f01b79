from __future__ import annotations
from functools import wraps
from typing import Optional
from flask import abort, current_app
from flask_jwt_extended import verify_jwt_in_request, get_jwt, get_jwt_identity
from cmms import new_session
from cmms.services.identity import Actor
from cmms.services.permission_store import PermissionStore
from cmms.services.policy import PermissionResolver


def get_permission_store() -> PermissionStore:
    return PermissionStore(new_session)


def get_resolver() -> PermissionResolver:
    return PermissionResolver(get_permission_store())


def current_hospital_id() -> Optional[int]:
    hid = get_jwt().get('hospital_id')
    return int(hid) if hid is not None else None


def current_actor() -> Actor:
    """Actor for the verified JWT; role assignments are read from the database, teams from claims."""
    user_id = int(get_jwt_identity())
    team_ids = tuple(int(t) for t in get_jwt().get('team_ids') or [])
    return Actor(user_id, tuple(get_permission_store().assignments(user_id)), team_ids)


def require_permission(*keys: str, strict: bool = False):
    """403 unless the caller resolves every key. ``strict`` lets lookup failures surface as 503."""
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            user_id = int(get_jwt_identity())
            hospital_id = current_hospital_id()
            resolver = get_resolver()
            if strict:
                allowed = all([resolver.resolve_strict(user_id, k, hospital_id) for k in keys])
            else:
                allowed = resolver.has_all(user_id, keys, hospital_id)
            if not allowed:
                abort(403, description='Missing permission')
            return current_app.ensure_sync(fn)(*args, **kwargs)
        return wrapper
    return outer
