"""Role codes shared by the permission resolver, capability table and workflow."""
from __future__ import annotations
from typing import List

GLOBAL_ADMIN = 'global_admin'
HOSPITAL_ADMIN = 'hospital_admin'
FACILITY_MANAGER = 'facility_manager'
MAINTENANCE_MANAGER = 'maintenance_manager'
ENGINEER = 'engineer'
SUPERVISOR = 'supervisor'
SENIOR_TECHNICIAN = 'senior_technician'
TECHNICIAN = 'technician'
REPORTER = 'reporter'

# Most privileged first. First match wins in the capability table.
ROLE_PRIORITY: List[str] = [
    GLOBAL_ADMIN,
    HOSPITAL_ADMIN,
    FACILITY_MANAGER,
    MAINTENANCE_MANAGER,
    ENGINEER,
    SUPERVISOR,
    TECHNICIAN,
    REPORTER,
]

TECHNICIAN_ROLES = frozenset({TECHNICIAN, SENIOR_TECHNICIAN})
SUPERVISOR_ROLES = frozenset({SUPERVISOR, FACILITY_MANAGER, HOSPITAL_ADMIN})
ENGINEER_ROLES = frozenset({ENGINEER, MAINTENANCE_MANAGER, FACILITY_MANAGER, HOSPITAL_ADMIN})
REPORTER_ROLES = frozenset({REPORTER})

# Roles that may reassign / update work orders outside the transition table
MANAGER_ROLES = frozenset({ENGINEER, SUPERVISOR, FACILITY_MANAGER, HOSPITAL_ADMIN, MAINTENANCE_MANAGER})

SYSTEM_ROLES = frozenset(ROLE_PRIORITY) | {SENIOR_TECHNICIAN}
