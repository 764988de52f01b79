"""Test seeding utilities to reduce duplication.

These helpers centralize creation of hospitals, users, role assignments,
permission entries and work orders in the shared test database.
"""
from typing import Iterable, Optional
from uuid import uuid4
from cmms import get_db
from cmms.models.authz import Hospital, User, UserRole, RolePermission, UserPermission
from cmms.models.work_order import WorkOrder


def ensure_hospital(name: str = 'General') -> Hospital:
    session = get_db()
    h = session.query(Hospital).filter_by(name=name).one_or_none()
    if not h:
        h = Hospital(name=name)
        session.add(h); session.commit(); session.refresh(h)
    return h


def ensure_user(email: Optional[str] = None, name: Optional[str] = None) -> User:
    session = get_db()
    email = email or f'user-{uuid4().hex[:10]}@example.com'
    u = session.query(User).filter_by(email=email).one_or_none()
    if not u:
        u = User(name=name or email.split('@')[0], email=email)
        session.add(u); session.commit(); session.refresh(u)
    return u


def assign_roles(user: User, role_codes: Iterable[str], hospital_id: Optional[int] = None):
    session = get_db()
    for code in role_codes:
        if not session.query(UserRole).filter_by(user_id=user.id, role_code=code, hospital_id=hospital_id).one_or_none():
            session.add(UserRole(user_id=user.id, role_code=code, hospital_id=hospital_id))
    session.commit()


def seed_user_with_roles(role_codes: Iterable[str], hospital_id: Optional[int] = None) -> User:
    user = ensure_user()
    assign_roles(user, role_codes, hospital_id)
    return user


def set_role_entry(role_code: str, key: str, allowed: bool = True, hospital_id: Optional[int] = None):
    session = get_db()
    row = session.query(RolePermission).filter_by(role_code=role_code, permission_key=key, hospital_id=hospital_id).one_or_none()
    if not row:
        row = RolePermission(role_code=role_code, permission_key=key, hospital_id=hospital_id)
        session.add(row)
    row.allowed = allowed
    session.commit()


def set_user_effect(user: User, key: str, effect: str):
    session = get_db()
    row = session.query(UserPermission).filter_by(user_id=user.id, permission_key=key).one_or_none()
    if not row:
        row = UserPermission(user_id=user.id, permission_key=key)
        session.add(row)
    row.effect = effect
    session.commit()


def create_work_order(hospital_id: int, reported_by: int, status: str = WorkOrder.STATUS_ASSIGNED, **fields) -> WorkOrder:
    """Create a work order (non-idempotent). Extra keyword args set columns directly."""
    session = get_db()
    wo = WorkOrder(hospital_id=hospital_id, code=f'WO-{uuid4().hex[:8]}', description='Leaking valve',
                   reported_by=reported_by, status=status, **fields)
    session.add(wo); session.commit(); session.refresh(wo)
    return wo


def reload_work_order(wo_id: int) -> WorkOrder:
    session = get_db()
    session.expire_all()
    return session.get(WorkOrder, wo_id)


__all__ = [
    'ensure_hospital', 'ensure_user', 'assign_roles', 'seed_user_with_roles', 'set_role_entry',
    'set_user_effect', 'create_work_order', 'reload_work_order',
]
