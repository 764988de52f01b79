from __future__ import annotations
"""Audit logging decorator for administrative route handlers.

Usage:

@audit_log('PERM.ROLE.SET', entity='RolePermission', entity_id_key='key', meta_keys=['role_code', 'allowed'])
def set_role_permission(role_code, key):
    ... return {'key': key, 'role_code': role_code, 'allowed': True}

Parameters:
  action: required audit action code (e.g. PERM.USER.OVERRIDE)
  entity: optional entity label
  entity_id_key: key in the returned JSON object whose value becomes entity_id.
  entity_id_arg: name of the path parameter to use for entity_id (fallback if entity_id_key absent).
  meta_keys: keys projected from the returned JSON into the meta dict.
  meta_builder: callable returning a meta dict; receives (data, original_return_value, args, kwargs).

Only successful responses (status < 400) are audited. Audit failures are
logged and never change the response.
"""

import logging
from functools import wraps
from typing import Any, Callable, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError

from cmms.services.audit import add_audit
from cmms import get_db

logger = logging.getLogger(__name__)


def _extract_payload(rv: Any):
    """Return (data, status) where data is the JSON-able dict for inspection."""
    if isinstance(rv, tuple) and rv:
        status = rv[1] if len(rv) > 1 and isinstance(rv[1], int) else 200
        return rv[0], status
    return rv, 200


def audit_log(
    action: str,
    *,
    entity: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    meta_builder: Optional[Callable[[dict, Any, tuple, dict], dict]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            rv = fn(*args, **kwargs)
            data, status = _extract_payload(rv)
            if status >= 400:
                return rv
            if not isinstance(data, dict):
                data = {}
            entity_id = None
            if entity_id_key and entity_id_key in data:
                entity_id = data.get(entity_id_key)
            elif entity_id_arg and entity_id_arg in kwargs:
                entity_id = kwargs.get(entity_id_arg)
            if meta_builder:
                meta = meta_builder(data, rv, args, kwargs)
            elif meta_keys:
                meta = {k: data.get(k) for k in meta_keys if k in data}
            else:
                meta = None
            session = get_db()
            try:
                add_audit(action, entity, entity_id, meta)
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                logger.exception('Audit entry %s for %s could not be written', action, entity_id)
            return rv
        return wrapper
    return outer
