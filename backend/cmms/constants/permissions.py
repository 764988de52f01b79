"""Central enum-like definitions to avoid typos in permission keys.
Extend cautiously; never rename keys silently. Add new ones and deprecate old via migration if needed.
"""
from __future__ import annotations
from typing import List, Dict

MODULE_ACTIONS = {
    'work_orders': [
        'view', 'create', 'edit', 'delete', 'assign',
        'start_work', 'complete_work', 'approve', 'review_as_engineer',
        'final_approve', 'reject', 'reassign', 'update',
    ],
    'facilities': ['view', 'manage'],
    'locations': ['manage'],
    'assets': ['view', 'manage', 'export'],
    'teams': ['view', 'manage'],
    'inventory': ['view', 'manage', 'transactions', 'reports'],
    'maintenance': ['view', 'manage'],
    'analytics': ['view'],
    'users': ['manage'],
    'roles': ['manage'],
    'permissions': ['manage'],
    'hospitals': ['manage'],
}

WO_START_WORK = 'work_orders.start_work'
WO_COMPLETE_WORK = 'work_orders.complete_work'
WO_APPROVE = 'work_orders.approve'
WO_REVIEW_AS_ENGINEER = 'work_orders.review_as_engineer'
WO_FINAL_APPROVE = 'work_orders.final_approve'
WO_REJECT = 'work_orders.reject'
WO_REASSIGN = 'work_orders.reassign'
WO_UPDATE = 'work_orders.update'
PERMISSIONS_MANAGE = 'permissions.manage'

EFFECT_GRANT = 'grant'
EFFECT_DENY = 'deny'
EFFECTS = (EFFECT_GRANT, EFFECT_DENY)


def build_all_permission_keys() -> List[str]:
    keys: List[str] = []
    for module, actions in MODULE_ACTIONS.items():
        for act in actions:
            keys.append(f"{module}.{act}")
    return keys

ALL_PERMISSION_KEYS = build_all_permission_keys()


def is_valid_key(key: str) -> bool:
    module, _, action = (key or '').partition('.')
    return bool(module) and bool(action)


# Global defaults seeded as role permission entries with no hospital scope.
ROLE_PRESETS: Dict[str, List[str]] = {
    'global_admin': ['*'],
    'hospital_admin': [
        'users.manage', 'roles.manage', 'permissions.manage',
        'facilities.view', 'facilities.manage', 'locations.manage',
        'assets.view', 'assets.manage',
        'work_orders.view', 'work_orders.create', 'work_orders.edit', 'work_orders.assign',
        WO_APPROVE, WO_REVIEW_AS_ENGINEER, WO_FINAL_APPROVE, WO_REASSIGN, WO_UPDATE,
        'teams.view', 'teams.manage',
        'inventory.view', 'inventory.manage',
        'analytics.view',
    ],
    'facility_manager': [
        'facilities.view', 'facilities.manage', 'locations.manage',
        'assets.view', 'assets.manage',
        'work_orders.view', 'work_orders.create', 'work_orders.edit', 'work_orders.assign',
        WO_APPROVE, WO_REVIEW_AS_ENGINEER, WO_FINAL_APPROVE, WO_REASSIGN, WO_UPDATE,
        'teams.view', 'teams.manage',
        'inventory.view', 'analytics.view',
    ],
    'maintenance_manager': [
        'facilities.view', 'assets.view',
        'work_orders.view', 'work_orders.create', 'work_orders.assign',
        WO_REVIEW_AS_ENGINEER, WO_FINAL_APPROVE, WO_REASSIGN, WO_UPDATE,
        'teams.view', 'inventory.view',
        'maintenance.view', 'maintenance.manage', 'analytics.view',
    ],
    'engineer': [
        'facilities.view', 'assets.view',
        'work_orders.view', 'work_orders.create',
        WO_REVIEW_AS_ENGINEER, WO_REJECT, WO_REASSIGN, WO_UPDATE,
        'teams.view', 'inventory.view', 'analytics.view',
    ],
    'supervisor': [
        'facilities.view', 'assets.view',
        'work_orders.view', 'work_orders.create', 'work_orders.assign',
        WO_APPROVE, WO_REJECT, WO_REASSIGN, WO_UPDATE,
        'teams.view', 'inventory.view',
    ],
    'senior_technician': [
        'facilities.view', 'assets.view',
        'work_orders.view', 'work_orders.create',
        WO_START_WORK, WO_COMPLETE_WORK, WO_REJECT,
        'inventory.view',
    ],
    'technician': [
        'facilities.view', 'assets.view',
        'work_orders.view',
        WO_START_WORK, WO_COMPLETE_WORK, WO_REJECT,
        'inventory.view',
    ],
    'reporter': ['work_orders.view', 'work_orders.create'],
}
