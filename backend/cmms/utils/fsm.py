from __future__ import annotations
"""Finite state machine toolkit for role-gated status workflows.

A workflow is an immutable sequence of ``Transition`` records: source and
target status, the action tag the edge licenses, the roles allowed to take it,
the input fields it requires and the preconditions the current record must
satisfy. ``TransitionTable`` answers the two questions callers ask: which
edges are open for an actor right now, and is a specific move legal.

Usage:
    from cmms.utils.fsm import Transition, TransitionTable, Precondition
    TABLE = TransitionTable([
        Transition('new', 'started', 'start', frozenset({'worker'}),
                   preconditions=(Precondition('started_at', False, 'Already started'),)),
    ])
    TABLE.check('new', 'started', ['worker'], record)

Checks never raise; they return a ``TransitionCheck``.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

INVALID_TRANSITION = 'invalid_transition'
FORBIDDEN = 'forbidden'
PRECONDITION_FAILED = 'precondition_failed'


def field_value(record: Any, name: str):
    """Read ``name`` from a mapping or an attribute-style record; missing counts as None."""
    if record is None:
        return None
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


@dataclass(frozen=True)
class Precondition:
    """``field`` must be set (or unset when ``is_set`` is False); ``error`` is the user-facing reason."""
    field: str
    is_set: bool
    error: str

    def holds(self, record: Any) -> bool:
        return (field_value(record, self.field) is not None) == self.is_set


@dataclass(frozen=True)
class Transition:
    source: str
    target: str
    action: str
    roles: frozenset
    fields: Tuple[str, ...] = ()
    preconditions: Tuple[Precondition, ...] = ()

    def validate(self, record: Any) -> Optional[str]:
        """Return the first failing precondition's message, or None when the record qualifies."""
        for pre in self.preconditions:
            if not pre.holds(record):
                return pre.error
        return None

    def allows_roles(self, roles: Iterable[str], is_owner: bool = False, owner_role: Optional[str] = None) -> bool:
        if self.roles.intersection(roles):
            return True
        return bool(is_owner and owner_role and owner_role in self.roles)


@dataclass(frozen=True)
class TransitionCheck:
    valid: bool
    error: Optional[str] = None
    transition: Optional[Transition] = None
    reason: Optional[str] = None


class TransitionTable:
    def __init__(self, transitions: Iterable[Transition], owner_role: Optional[str] = None, field_name: str = 'status'):
        self.transitions: Tuple[Transition, ...] = tuple(transitions)
        self.owner_role = owner_role
        self.field_name = field_name
        seen = set()
        for t in self.transitions:
            edge = (t.source, t.target)
            if edge in seen:
                raise ValueError(f"Duplicate {field_name} transition {t.source} -> {t.target}")
            seen.add(edge)

    def outgoing(self, source: str) -> List[Transition]:
        return [t for t in self.transitions if t.source == source]

    def find(self, source: str, target: str) -> Optional[Transition]:
        for t in self.transitions:
            if t.source == source and t.target == target:
                return t
        return None

    def for_action(self, action: str) -> List[Transition]:
        return [t for t in self.transitions if t.action == action]

    def graph(self) -> Dict[str, Set[str]]:
        out: Dict[str, Set[str]] = {}
        for t in self.transitions:
            out.setdefault(t.source, set()).add(t.target)
        return out

    def open_edges(self, source: str, roles: Iterable[str], record: Any, is_owner: bool = False) -> List[Transition]:
        """Edges leaving ``source`` the actor may take right now (role match and precondition pass)."""
        roles = list(roles)
        return [
            t for t in self.outgoing(source)
            if t.allows_roles(roles, is_owner, self.owner_role) and t.validate(record) is None
        ]

    def check(self, source: str, target: str, roles: Iterable[str], record: Any, is_owner: bool = False) -> TransitionCheck:
        t = self.find(source, target)
        if t is None:
            return TransitionCheck(False, 'Invalid state transition', reason=INVALID_TRANSITION)
        if not t.allows_roles(list(roles), is_owner, self.owner_role):
            return TransitionCheck(False, 'User does not have required role for this action', t, FORBIDDEN)
        error = t.validate(record)
        if error:
            return TransitionCheck(False, error, t, PRECONDITION_FAILED)
        return TransitionCheck(True, transition=t)

__all__ = [
    'Precondition', 'Transition', 'TransitionCheck', 'TransitionTable', 'field_value',
    'INVALID_TRANSITION', 'FORBIDDEN', 'PRECONDITION_FAILED',
]
