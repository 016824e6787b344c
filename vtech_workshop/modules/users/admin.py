from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from ...config import Settings, load_settings
from ...constants import ROLES
from ...database.repositories.users_repo import UsersRepo
from ...database.transactions import atomic
from ...errors import BackendFailure, NotFound, ValidationError
from ...utils.auth import hash_password
from ...utils.loggers import get_audit_logger, log_event
from ...utils.validators import is_valid_email, optional_text
from .authz import Authorizer

_log = logging.getLogger(__name__)


class UserAdmin:
    """
    Privileged user management. Two gates, in order: the caller must hold
    admin (re-read from the store), and the elevated service credential
    must be configured. The credential is never handed back to callers.
    """

    def __init__(self, conn: sqlite3.Connection, settings: Optional[Settings] = None):
        self.conn = conn
        self.settings = settings or load_settings()
        self.users = UsersRepo(conn)
        self.authz = Authorizer(conn)

    def _require_service_key(self) -> None:
        if not self.settings.service_key:
            _log.error("VTECH_SERVICE_KEY is not set; user management is unavailable")
            raise BackendFailure("Server config error")

    def list_users(self, caller_id: int) -> list[dict]:
        self.authz.require(caller_id, "user.manage")
        return self.users.list_users()

    def update_user(
        self,
        caller_id: int,
        user_id: int,
        *,
        email: Optional[str] = None,
        password: Optional[str] = None,
        full_name: Optional[str] = None,
        role: Optional[str] = None,
    ) -> dict:
        """Apply the given fields to `user_id` and return the updated profile."""
        self.authz.require(caller_id, "user.manage")
        self._require_service_key()

        email_n = optional_text(email)
        if email_n is not None and not is_valid_email(email_n):
            raise ValidationError("Email address is not valid.")
        if role is not None and role not in ROLES:
            raise ValidationError(f"Role must be one of: {', '.join(ROLES)}.")
        if password is not None and len(password) < 4:
            raise ValidationError("Password must be at least 4 characters.")

        with atomic(self.conn):
            if self.users.get(user_id) is None:
                raise NotFound(f"User #{user_id} not found.")
            if email_n is not None and self.users.email_taken(email_n, exclude_id=user_id):
                raise ValidationError(f"Email '{email_n}' is already registered.")
            self.users.update_profile(
                user_id,
                email=email_n,
                full_name=optional_text(full_name),
                role=role,
                password_hash=hash_password(password) if password else None,
            )

        changed = [k for k, v in (("email", email_n), ("password", password),
                                  ("full_name", full_name), ("role", role)) if v]
        log_event(
            get_audit_logger(), op="user.update", phase="commit",
            message="user updated",
            extra={"caller_id": caller_id, "user_id": user_id, "fields": changed},
        )
        return self.users.get(user_id)
