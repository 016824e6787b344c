"""
Identity and session handling.

`IdentityProvider` is the seam the rest of the package talks to; the shop
runs `LocalIdentityProvider`, which keeps users and sessions in the local
database and verifies passwords with bcrypt.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Protocol

from ...config import Settings, load_settings
from ...constants import DEFAULT_ROLE, ROLES
from ...database.repositories.users_repo import UsersRepo
from ...errors import AuthenticationFailed, ValidationError
from ...utils.auth import hash_password, new_session_token, verify_and_maybe_upgrade
from ...utils.validators import is_valid_email, optional_text, require_text
from .authz import Authorizer

_log = logging.getLogger(__name__)

_TS_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class CurrentUser:
    user_id: int
    username: str
    email: Optional[str]
    full_name: Optional[str] = None


class IdentityProvider(Protocol):
    def get_current_user(self) -> Optional[CurrentUser]: ...

    def refresh_session(self) -> bool: ...


def _now() -> datetime:
    return datetime.now()


class LocalIdentityProvider:
    """
    Sign-in flow over the users table.

    After MAX_FAILED_ATTEMPTS consecutive failures the account is locked for
    LOCKOUT_MINUTES. Every attempt, good or bad, lands in auth_logs.
    """

    MAX_FAILED_ATTEMPTS = 5
    LOCKOUT_MINUTES = 15

    def __init__(
        self,
        conn: sqlite3.Connection,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self.conn = conn
        self.settings = settings or load_settings()
        self.repo = UsersRepo(conn)
        self._clock = clock
        self._session_id: Optional[str] = None
        self._user: Optional[CurrentUser] = None

    # ----------------------------- Public API -----------------------------

    def sign_in(self, username: str, password: str) -> CurrentUser:
        uname = (username or "").strip()
        if not uname or not password:
            raise AuthenticationFailed("empty_fields", "Please enter both username and password.")

        u = self.repo.get_by_username(uname)
        if not u:
            self._fail(uname, "user_not_found", f"No account exists for username '{uname}'.")
        if not u["is_active"]:
            self._fail(uname, "user_inactive", f"Account '{uname}' is inactive. Contact an administrator.")
        if self._is_locked(u):
            self._fail(
                uname, "locked_out",
                f"Account is locked due to repeated failures. Try again after {u['locked_until']}.",
            )

        user_id = int(u["user_id"])
        ok, _ = verify_and_maybe_upgrade(
            password, u["password_hash"],
            on_rehash=lambda new_hash: self.repo.set_password_hash(user_id, new_hash),
        )
        if not ok:
            lock_until = (self._clock() + timedelta(minutes=self.LOCKOUT_MINUTES)).strftime(_TS_FORMAT)
            self.repo.increment_failed_attempts(user_id, self.MAX_FAILED_ATTEMPTS, lock_until)
            self._fail(uname, "wrong_password", f"Incorrect password for '{uname}'.")

        now = self._clock()
        self.repo.reset_failed_attempts_and_touch_login(user_id, now.strftime(_TS_FORMAT))
        self.repo.insert_auth_log(uname, True, "ok")

        self._session_id = new_session_token()
        self.repo.create_session(self._session_id, user_id, self._expiry(now))
        self._user = CurrentUser(user_id, u["username"], u.get("email"), u.get("full_name"))
        _log.info("user %s signed in", uname)
        return self._user

    def sign_out(self) -> None:
        if self._session_id:
            self.repo.revoke_session(self._session_id)
        self._session_id = None
        self._user = None

    def sign_up(
        self,
        username: str,
        password: str,
        full_name: str,
        *,
        email: Optional[str] = None,
        role: str = DEFAULT_ROLE,
        caller_id: Optional[int] = None,
    ) -> int:
        """
        Open registration always creates staff accounts. Any other role needs
        a `caller_id` allowed to manage users.
        """
        uname = require_text(username, "Username")
        name = require_text(full_name, "Full name")
        if not password or len(password) < 4:
            raise ValidationError("Password must be at least 4 characters.")
        email_n = optional_text(email)
        if email_n and not is_valid_email(email_n):
            raise ValidationError("Email address is not valid.")
        if role not in ROLES:
            raise ValidationError(f"Role must be one of: {', '.join(ROLES)}.")
        if role != DEFAULT_ROLE:
            Authorizer(self.conn).require(caller_id, "user.manage")
        if self.repo.get_by_username(uname):
            raise ValidationError(f"Username '{uname}' is already taken.")
        if email_n and self.repo.email_taken(email_n):
            raise ValidationError(f"Email '{email_n}' is already registered.")
        return self.repo.insert(uname, hash_password(password), name, email=email_n, role=role)

    def get_current_user(self) -> Optional[CurrentUser]:
        """The signed-in user, or None once the session expired or was revoked."""
        if not self._session_id or self._user is None:
            return None
        s = self.repo.get_session(self._session_id)
        if s is None or s["revoked"] or self._expired(s["expires_at"]):
            self._session_id = None
            self._user = None
            return None
        return self._user

    def refresh_session(self) -> bool:
        """Slide the expiry forward; False when there is no live session."""
        if self.get_current_user() is None:
            return False
        self.repo.extend_session(self._session_id, self._expiry(self._clock()))
        return True

    # ----------------------------- Internals -----------------------------

    def _fail(self, username: str, code: str, message: str) -> None:
        self.repo.insert_auth_log(username, False, code)
        _log.info("sign-in refused for %s: %s", username, code)
        raise AuthenticationFailed(code, message)

    def _expiry(self, now: datetime) -> str:
        return (now + timedelta(minutes=self.settings.session_minutes)).strftime(_TS_FORMAT)

    def _expired(self, expires_at: str) -> bool:
        return expires_at <= self._clock().strftime(_TS_FORMAT)

    def _is_locked(self, user_row: dict) -> bool:
        locked_until = user_row.get("locked_until")
        if not locked_until:
            return False
        return str(locked_until) > self._clock().strftime(_TS_FORMAT)
