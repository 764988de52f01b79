"""Actor identity as seen by the workflow core.

Authentication happens elsewhere; the core only needs a user id and the role
codes that user holds, each optionally pinned to a hospital.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple


@dataclass(frozen=True)
class RoleAssignment:
    role_code: str
    hospital_id: Optional[int] = None  # None: global role


@dataclass(frozen=True)
class Actor:
    user_id: int
    roles: Tuple[RoleAssignment, ...] = ()
    team_ids: Tuple[int, ...] = ()

    @classmethod
    def of(cls, user_id: int, *role_codes: str, hospital_id: Optional[int] = None, team_ids: Iterable[int] = ()):
        return cls(user_id, tuple(RoleAssignment(c, hospital_id) for c in role_codes), tuple(team_ids))

    def role_codes(self, hospital_id: Optional[int] = None) -> List[str]:
        """Codes in effect for ``hospital_id``. Global roles always count; unscoped, only they do."""
        out: List[str] = []
        for a in self.roles:
            if a.hospital_id is not None and a.hospital_id != hospital_id:
                continue
            if a.role_code not in out:
                out.append(a.role_code)
        return out
