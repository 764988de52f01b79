"""Seed definitions for global role defaults.

Expands ``ROLE_PRESETS`` into role permission entries with no hospital scope.
Hospital overrides and user overrides are administrative data and are never
seeded.
"""
from __future__ import annotations
from typing import Dict, List, Tuple

from sqlalchemy import select

from cmms.constants.permissions import ALL_PERMISSION_KEYS, ROLE_PRESETS
from cmms.models.authz import RolePermission


def role_default_rows() -> List[Tuple[str, str, bool]]:
    """(role_code, permission_key, allowed) for every preset; '*' expands to every known key."""
    rows = []
    for role_code, keys in ROLE_PRESETS.items():
        expanded = ALL_PERMISSION_KEYS if '*' in keys else keys
        for key in dict.fromkeys(expanded):
            rows.append((role_code, key, True))
    return rows


def ensure_role_defaults(session) -> int:
    """Insert missing global entries; existing ones (including explicit denies) are left alone."""
    existing = {
        (rp.role_code, rp.permission_key)
        for rp in session.execute(select(RolePermission).where(RolePermission.hospital_id.is_(None))).scalars()
    }
    created = 0
    for role_code, key, allowed in role_default_rows():
        if (role_code, key) in existing:
            continue
        session.add(RolePermission(role_code=role_code, permission_key=key, allowed=allowed, hospital_id=None))
        created += 1
    return created


def role_permission_map(session) -> Dict[str, List[str]]:
    mapping: Dict[str, List[str]] = {}
    for rp in session.execute(select(RolePermission).where(RolePermission.hospital_id.is_(None))).scalars():
        if rp.allowed:
            mapping.setdefault(rp.role_code, []).append(rp.permission_key)
    return {role: sorted(keys) for role, keys in mapping.items()}
