"""Static role capability table.

Predates the database-backed ``PermissionResolver`` and is still the
authority on work order *view scope*. Unlike the resolver (OR across all held
roles), a user with several roles gets exactly one config: the first match in
``ROLE_PRIORITY``.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from cmms.constants.roles import (
    ROLE_PRIORITY, GLOBAL_ADMIN, HOSPITAL_ADMIN, FACILITY_MANAGER, MAINTENANCE_MANAGER,
    ENGINEER, SUPERVISOR, TECHNICIAN, REPORTER,
)


class ViewScope(str, Enum):
    ALL = 'all'
    TEAM = 'team'
    OWN = 'own'


@dataclass(frozen=True)
class ModuleAccess:
    view: bool = False
    manage: bool = False


@dataclass(frozen=True)
class WorkOrderCapabilities:
    view: ViewScope
    create: bool = False
    start: bool = False
    complete: bool = False
    approve: bool = False
    review: bool = False
    final_approve: bool = False
    reject: bool = False
    reassign: bool = False
    update: bool = False


@dataclass(frozen=True)
class RoleConfig:
    code: str
    level: str  # 'platform' | 'tenant'
    dashboard_view: str
    can_access_admin: bool
    work_orders: WorkOrderCapabilities
    modules: Mapping[str, ModuleAccess] = field(default_factory=dict)

    def module(self, name: str):
        if name == 'work_orders':
            return self.work_orders
        return self.modules.get(name)


def _modules(**access) -> Mapping[str, ModuleAccess]:
    return MappingProxyType({name: ModuleAccess(*flags) for name, flags in access.items()})


ROLE_CONFIGS: Mapping[str, RoleConfig] = MappingProxyType({
    GLOBAL_ADMIN: RoleConfig(
        GLOBAL_ADMIN, 'platform', 'executive', True,
        WorkOrderCapabilities(ViewScope.ALL, create=True, start=True, complete=True, approve=True, review=True,
                              final_approve=True, reject=True, reassign=True, update=True),
        _modules(facilities=(True, True), assets=(True, True), inventory=(True, True), maintenance=(True, True),
                 teams=(True, True), users=(True, True), analytics=(True, True)),
    ),
    HOSPITAL_ADMIN: RoleConfig(
        HOSPITAL_ADMIN, 'tenant', 'executive', True,
        WorkOrderCapabilities(ViewScope.ALL, create=True, start=True, complete=True, approve=True, review=True,
                              final_approve=True, reject=True, reassign=True, update=True),
        _modules(facilities=(True, True), assets=(True, True), inventory=(True, True), maintenance=(True, True),
                 teams=(True, True), users=(True, True), analytics=(True, True)),
    ),
    FACILITY_MANAGER: RoleConfig(
        FACILITY_MANAGER, 'tenant', 'executive', True,
        WorkOrderCapabilities(ViewScope.ALL, create=True, approve=True, final_approve=True, reject=True,
                              reassign=True, update=True),
        _modules(facilities=(True, True), assets=(True, True), inventory=(True, False), maintenance=(True, True),
                 teams=(True, False), users=(True, False), analytics=(True, False)),
    ),
    MAINTENANCE_MANAGER: RoleConfig(
        MAINTENANCE_MANAGER, 'tenant', 'executive', True,
        WorkOrderCapabilities(ViewScope.ALL, create=True, approve=True, review=True, final_approve=True,
                              reject=True, reassign=True, update=True),
        _modules(facilities=(True, False), assets=(True, True), inventory=(True, True), maintenance=(True, True),
                 teams=(True, True), users=(True, True), analytics=(True, False)),
    ),
    ENGINEER: RoleConfig(
        ENGINEER, 'tenant', 'manager', False,
        WorkOrderCapabilities(ViewScope.ALL, create=True, review=True, reject=True, reassign=True, update=True),
        _modules(facilities=(True, False), assets=(True, False), inventory=(True, False), maintenance=(True, False),
                 teams=(True, False), analytics=(True, False)),
    ),
    SUPERVISOR: RoleConfig(
        SUPERVISOR, 'tenant', 'technician', True,
        WorkOrderCapabilities(ViewScope.TEAM, create=True, start=True, complete=True, approve=True, reject=True,
                              reassign=True, update=True),
        _modules(facilities=(True, False), assets=(True, False), inventory=(True, False), maintenance=(True, False),
                 teams=(True, False)),
    ),
    TECHNICIAN: RoleConfig(
        TECHNICIAN, 'tenant', 'technician', True,
        WorkOrderCapabilities(ViewScope.TEAM, create=True, start=True, complete=True, reject=True),
        _modules(facilities=(True, False), assets=(True, False), inventory=(True, False), maintenance=(True, False)),
    ),
    REPORTER: RoleConfig(
        REPORTER, 'tenant', 'reporter', False,
        WorkOrderCapabilities(ViewScope.OWN, create=True),
        _modules(),
    ),
})


def get_capabilities(role_code: str) -> Optional[RoleConfig]:
    return ROLE_CONFIGS.get(role_code)


def get_user_capabilities(role_codes: Iterable[str]) -> Optional[RoleConfig]:
    """Config of the highest-priority role held. No merging across roles."""
    held = set(role_codes)
    for code in ROLE_PRIORITY:
        if code in held:
            return ROLE_CONFIGS[code]
    return None


def has_module_access(role_config: Optional[RoleConfig], module: str, action: str) -> bool:
    if role_config is None:
        return False
    access = role_config.module(module)
    if access is None:
        return False
    # only a literal True grants; a view scope is not a boolean grant
    return getattr(access, action, None) is True


def can_view_module(role_config: Optional[RoleConfig], module: str) -> bool:
    """Sidebar visibility: any view scope counts as visible."""
    if role_config is None:
        return False
    access = role_config.module(module)
    if access is not None and isinstance(access.view, ViewScope):
        return True
    return has_module_access(role_config, module, 'view')


def work_order_view_scope(role_codes: Iterable[str]) -> Optional[ViewScope]:
    config = get_user_capabilities(role_codes)
    return config.work_orders.view if config else None
