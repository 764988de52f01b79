"""Exceptions crossing the persistence boundary.

Validation outcomes (wrong role, stale status, missing notes) are returned as
result objects, never raised. Only store-level problems travel as exceptions.
"""


class StoreError(Exception):
    """The backing store failed or is unreachable."""


class PermissionLookupError(StoreError):
    """Permission entries could not be read."""


class PreconditionFailed(Exception):
    """The store rejected a write because the record no longer satisfies the transition guard."""

    def __init__(self, message: str, current_status: str = None):
        super().__init__(message)
        self.current_status = current_status
