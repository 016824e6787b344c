from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from ...constants import ROLE_ADMIN, ROLE_STAFF
from ...database.repositories.users_repo import UsersRepo
from ...errors import PermissionDenied
from ...utils.loggers import get_audit_logger, log_event

_log = logging.getLogger(__name__)

# capability -> roles allowed. Anything not listed here is denied.
CAPABILITIES: dict[str, frozenset[str]] = {
    "inventory.edit": frozenset({ROLE_ADMIN}),
    "inventory.delete": frozenset({ROLE_ADMIN}),
    "client.delete": frozenset({ROLE_ADMIN}),
    "job.delete": frozenset({ROLE_ADMIN}),
    "payment.edit": frozenset({ROLE_ADMIN}),
    "payment.delete": frozenset({ROLE_ADMIN}),
    "user.manage": frozenset({ROLE_ADMIN}),
    # everyday counter work
    "inventory.create": frozenset({ROLE_ADMIN, ROLE_STAFF}),
    "job.edit": frozenset({ROLE_ADMIN, ROLE_STAFF}),
    "payment.record": frozenset({ROLE_ADMIN, ROLE_STAFF}),
    "sale.record": frozenset({ROLE_ADMIN, ROLE_STAFF}),
}


class Authorizer:
    """
    Central capability check. The role is read from the users table on
    every call, so a demotion takes effect on the very next operation.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.users = UsersRepo(conn)

    def role_of(self, user_id: Optional[int]) -> str:
        return self.users.get_role(user_id)

    def can(self, user_id: Optional[int], capability: str) -> bool:
        allowed = CAPABILITIES.get(capability)
        if allowed is None:
            return False
        return self.role_of(user_id) in allowed

    def require(self, user_id: Optional[int], capability: str) -> str:
        """Return the caller's role, or raise PermissionDenied."""
        role = self.role_of(user_id)
        if role not in CAPABILITIES.get(capability, frozenset()):
            log_event(
                get_audit_logger(), op=capability, phase="denied",
                message="permission denied",
                extra={"user_id": user_id, "role": role},
                level=logging.WARNING,
            )
            _log.warning("user %s (%s) denied %s", user_id, role, capability)
            raise PermissionDenied(capability, role)
        return role
