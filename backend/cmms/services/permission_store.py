"""Data access for the three permission sources.

* role defaults: ``RolePermission`` rows with no hospital
* hospital overrides: ``RolePermission`` rows pinned to a hospital
* user overrides: ``UserPermission`` grant/deny rows

Reads wrap database failures in ``PermissionLookupError``. Nothing here
decides precedence; that is the resolver's job.
"""
from __future__ import annotations
from collections import namedtuple
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import select, delete, or_
from sqlalchemy.exc import SQLAlchemyError

from cmms.constants.permissions import EFFECTS, is_valid_key
from cmms.errors import PermissionLookupError, StoreError
from cmms.models.authz import RolePermission, UserPermission, UserRole
from cmms.services.identity import RoleAssignment

RoleEntry = namedtuple('RoleEntry', ['role_code', 'permission_key', 'allowed', 'hospital_id'])


def _scope_clause(column, hospital_id: Optional[int]):
    if hospital_id is None:
        return column.is_(None)
    return or_(column.is_(None), column == hospital_id)


class PermissionStore:
    def __init__(self, session_factory: Callable):
        self.session_factory = session_factory

    def _read(self, fn):
        try:
            with self.session_factory() as session:
                return fn(session)
        except SQLAlchemyError as e:
            raise PermissionLookupError(f'permission lookup failed: {e}') from e

    def _write(self, fn):
        try:
            with self.session_factory() as session, session.begin():
                return fn(session)
        except SQLAlchemyError as e:
            raise StoreError(f'permission write failed: {e}') from e

    # --- reads ---
    def held_roles(self, user_id: int, hospital_id: Optional[int] = None) -> List[str]:
        def q(session):
            stmt = select(UserRole.role_code).where(UserRole.user_id == user_id)
            stmt = stmt.where(_scope_clause(UserRole.hospital_id, hospital_id))
            return sorted(set(session.execute(stmt).scalars()))
        return self._read(q)

    def assignments(self, user_id: int) -> List[RoleAssignment]:
        def q(session):
            rows = session.execute(select(UserRole).where(UserRole.user_id == user_id).order_by(UserRole.id)).scalars()
            return [RoleAssignment(r.role_code, r.hospital_id) for r in rows]
        return self._read(q)

    def role_entries(self, role_codes: Iterable[str], permission_key: str, hospital_id: Optional[int] = None) -> List[RoleEntry]:
        codes = list(role_codes)
        if not codes:
            return []

        def q(session):
            stmt = select(RolePermission).where(
                RolePermission.role_code.in_(codes),
                RolePermission.permission_key == permission_key,
                _scope_clause(RolePermission.hospital_id, hospital_id),
            )
            return [RoleEntry(r.role_code, r.permission_key, bool(r.allowed), r.hospital_id) for r in session.execute(stmt).scalars()]
        return self._read(q)

    def user_override(self, user_id: int, permission_key: str) -> Optional[str]:
        def q(session):
            stmt = select(UserPermission.effect).where(
                UserPermission.user_id == user_id, UserPermission.permission_key == permission_key)
            return session.execute(stmt).scalar_one_or_none()
        return self._read(q)

    def candidate_keys(self, user_id: int, role_codes: Iterable[str], hospital_id: Optional[int] = None) -> Set[str]:
        """Every key some source mentions for this user; the resolver decides which ones hold."""
        codes = list(role_codes)

        def q(session):
            keys = set(session.execute(select(UserPermission.permission_key).where(UserPermission.user_id == user_id)).scalars())
            if codes:
                keys.update(session.execute(select(RolePermission.permission_key).where(
                    RolePermission.role_code.in_(codes),
                    _scope_clause(RolePermission.hospital_id, hospital_id),
                )).scalars())
            return keys
        return self._read(q)

    # --- administrative writes ---
    def set_role_permission(self, role_code: str, permission_key: str, allowed: bool, hospital_id: Optional[int] = None) -> RoleEntry:
        if not is_valid_key(permission_key):
            raise ValueError(f"Permission key '{permission_key}' missing module.action pattern")

        def w(session):
            scope = RolePermission.hospital_id.is_(None) if hospital_id is None else RolePermission.hospital_id == hospital_id
            row = session.execute(select(RolePermission).where(
                RolePermission.role_code == role_code,
                RolePermission.permission_key == permission_key,
                scope,
            )).scalar_one_or_none()
            if row is None:
                row = RolePermission(role_code=role_code, permission_key=permission_key, hospital_id=hospital_id)
                session.add(row)
            row.allowed = bool(allowed)
        self._write(w)
        return RoleEntry(role_code, permission_key, bool(allowed), hospital_id)

    def set_user_override(self, user_id: int, permission_key: str, effect: str) -> str:
        if effect not in EFFECTS:
            raise ValueError(f"effect must be one of {', '.join(EFFECTS)}")
        if not is_valid_key(permission_key):
            raise ValueError(f"Permission key '{permission_key}' missing module.action pattern")

        def w(session):
            row = session.execute(select(UserPermission).where(
                UserPermission.user_id == user_id, UserPermission.permission_key == permission_key)).scalar_one_or_none()
            if row is None:
                row = UserPermission(user_id=user_id, permission_key=permission_key)
                session.add(row)
            row.effect = effect
        self._write(w)
        return effect

    def clear_user_override(self, user_id: int, permission_key: str) -> bool:
        def w(session):
            result = session.execute(delete(UserPermission).where(
                UserPermission.user_id == user_id, UserPermission.permission_key == permission_key))
            return result.rowcount > 0
        return self._write(w)


class StaticPermissionStore:
    """In-memory snapshot with the same read interface, for callers that already hold the data."""

    def __init__(self, user_roles: Optional[Dict[int, List[Tuple[str, Optional[int]]]]] = None,
                 role_entries: Iterable[Tuple[str, str, bool, Optional[int]]] = (),
                 user_overrides: Optional[Dict[Tuple[int, str], str]] = None):
        self.user_roles = {uid: [RoleAssignment(code, hid) for code, hid in roles] for uid, roles in (user_roles or {}).items()}
        self.entries = [RoleEntry(*e) for e in role_entries]
        self.overrides = dict(user_overrides or {})

    def held_roles(self, user_id, hospital_id=None):
        return sorted({a.role_code for a in self.user_roles.get(user_id, [])
                       if a.hospital_id is None or a.hospital_id == hospital_id})

    def assignments(self, user_id):
        return list(self.user_roles.get(user_id, []))

    def role_entries(self, role_codes, permission_key, hospital_id=None):
        codes = set(role_codes)
        return [e for e in self.entries
                if e.role_code in codes and e.permission_key == permission_key
                and (e.hospital_id is None or (hospital_id is not None and e.hospital_id == hospital_id))]

    def user_override(self, user_id, permission_key):
        return self.overrides.get((user_id, permission_key))

    def candidate_keys(self, user_id, role_codes, hospital_id=None):
        codes = set(role_codes)
        keys = {k for (uid, k) in self.overrides if uid == user_id}
        keys.update(e.permission_key for e in self.entries
                    if e.role_code in codes and (e.hospital_id is None or e.hospital_id == hospital_id))
        return keys
