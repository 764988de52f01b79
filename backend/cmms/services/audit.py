from __future__ import annotations
from typing import Any, Dict, Optional
from flask_jwt_extended import get_jwt_identity
from cmms import get_db
from cmms.models.audit import AuditLog


def add_audit(action: str, entity: Optional[str] = None, entity_id: Optional[str] = None, meta: Optional[Dict[str, Any]] = None):
    """Persist an audit log entry within the current DB session.

    Parameters:
      action: short action code e.g. PERM.ROLE.SET, PERM.USER.OVERRIDE
      entity: optional entity name (RolePermission, UserPermission)
      entity_id: optional key string
      meta: additional JSON-safe dictionary (will be shallow copied)
    """
    session = get_db()
    try:
        ident = get_jwt_identity()
        actor = int(ident) if ident is not None else None
    except RuntimeError:
        actor = None  # no JWT context (scripts, seeding)
    log = AuditLog(
        actor_user_id=actor or 0,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        meta=dict(meta or {}),
    )
    session.add(log)
    # No commit here; caller's transaction boundary controls durability.
    return log
