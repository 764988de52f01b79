from __future__ import annotations
import logging
from typing import Dict, Iterable, Optional, Set

from cmms.constants.permissions import EFFECT_GRANT, EFFECT_DENY
from cmms.errors import PermissionLookupError

logger = logging.getLogger(__name__)


class PermissionResolver:
    """Database-backed permission answers for one user and key.

    Precedence, highest first:
      1. user override (grant -> True, deny -> False)
      2. any held role allowing the key (OR across roles); per role the
         hospital override replaces the global default
      3. default deny

    ``resolve`` is for UI gating and fails closed on lookup errors.
    ``resolve_strict`` is for administrative paths and lets them propagate.
    """

    def __init__(self, store):
        self.store = store

    def resolve(self, user_id: int, permission_key: str, hospital_id: Optional[int] = None) -> bool:
        try:
            return self.resolve_strict(user_id, permission_key, hospital_id)
        except PermissionLookupError:
            logger.exception('Permission lookup failed for user=%s key=%s hospital=%s; denying',
                             user_id, permission_key, hospital_id)
            return False

    def resolve_strict(self, user_id: int, permission_key: str, hospital_id: Optional[int] = None) -> bool:
        override = self.store.user_override(user_id, permission_key)
        roles = self.store.held_roles(user_id, hospital_id)
        allowed = self._role_result(roles, permission_key, hospital_id)
        if override == EFFECT_GRANT:
            return True
        if override == EFFECT_DENY:
            return False
        return allowed

    def _role_result(self, roles, permission_key: str, hospital_id: Optional[int]) -> bool:
        if not roles:
            return False
        defaults: Dict[str, bool] = {}
        scoped: Dict[str, bool] = {}
        for entry in self.store.role_entries(roles, permission_key, hospital_id):
            if entry.hospital_id is None:
                defaults[entry.role_code] = entry.allowed
            elif entry.hospital_id == hospital_id:
                scoped[entry.role_code] = entry.allowed
        return any(scoped.get(role, defaults.get(role, False)) for role in roles)

    def has_any(self, user_id: int, permission_keys: Iterable[str], hospital_id: Optional[int] = None) -> bool:
        results = [self.resolve(user_id, k, hospital_id) for k in permission_keys]
        return any(results)

    def has_all(self, user_id: int, permission_keys: Iterable[str], hospital_id: Optional[int] = None) -> bool:
        results = [self.resolve(user_id, k, hospital_id) for k in permission_keys]
        return all(results)

    def effective_permissions(self, user_id: int, hospital_id: Optional[int] = None) -> Set[str]:
        """All keys resolving to True for the user in the given scope."""
        try:
            roles = self.store.held_roles(user_id, hospital_id)
            keys = self.store.candidate_keys(user_id, roles, hospital_id)
        except PermissionLookupError:
            logger.exception('Could not list permissions for user=%s hospital=%s', user_id, hospital_id)
            return set()
        return {k for k in keys if self.resolve(user_id, k, hospital_id)}
