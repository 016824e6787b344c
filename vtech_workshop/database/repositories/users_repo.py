# vtech_workshop/database/repositories/users_repo.py
from __future__ import annotations

import sqlite3
from typing import Optional

from ...constants import DEFAULT_ROLE, ROLES
from ..transactions import atomic


class UsersRepo:
    """
    Data access for users, sessions and sign-in attempts.

      users(user_id, username, email, password_hash, full_name, role,
            is_active, created_date, last_login, failed_attempts, locked_until)
      sessions(session_id, user_id, created_at, expires_at, revoked)
      auth_logs(log_id, username, success, reason, created_at)

    Notes:
      - This repo does NOT verify passwords; the identity provider does that
        with bcrypt before calling the "success" path.
      - Timestamps are 'YYYY-MM-DD HH:MM:SS' local-time text supplied by the caller,
        so the application clock is the single source of truth.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self.conn.row_factory = sqlite3.Row

    @staticmethod
    def _norm_username(username: str) -> str:
        return (username or "").strip()

    # ------------------------------- reads -------------------------------

    def get_by_username(self, username: str) -> Optional[dict]:
        row = self.conn.execute(
            """
            SELECT user_id, username, email, password_hash, full_name, role,
                   is_active, last_login, failed_attempts, locked_until
            FROM users WHERE username = ?
            """,
            (self._norm_username(username),),
        ).fetchone()
        return dict(row) if row else None

    def get(self, user_id: int) -> Optional[dict]:
        row = self.conn.execute(
            """
            SELECT user_id, username, email, full_name, role, is_active,
                   last_login, created_date
            FROM users WHERE user_id = ?
            """,
            (user_id,),
        ).fetchone()
        return dict(row) if row else None

    def get_role(self, user_id: Optional[int]) -> str:
        """Role store lookup; unknown or inactive users read as the default role."""
        if user_id is None:
            return DEFAULT_ROLE
        row = self.conn.execute(
            "SELECT role, is_active FROM users WHERE user_id = ?", (user_id,)
        ).fetchone()
        if row is None or not row["is_active"] or row["role"] not in ROLES:
            return DEFAULT_ROLE
        return str(row["role"])

    def list_users(self) -> list[dict]:
        rows = self.conn.execute(
            "SELECT user_id, username, email, full_name, role, is_active, last_login "
            "FROM users ORDER BY username"
        ).fetchall()
        return [dict(r) for r in rows]

    def email_taken(self, email: str, exclude_id: Optional[int] = None) -> bool:
        sql = "SELECT 1 FROM users WHERE LOWER(email) = LOWER(?)"
        params: list = [email]
        if exclude_id is not None:
            sql += " AND user_id <> ?"
            params.append(exclude_id)
        return self.conn.execute(sql, params).fetchone() is not None

    # ------------------------------ writes -------------------------------

    def insert(
        self,
        username: str,
        password_hash: str,
        full_name: str,
        *,
        email: Optional[str] = None,
        role: str = DEFAULT_ROLE,
    ) -> int:
        with atomic(self.conn):
            cur = self.conn.execute(
                "INSERT INTO users(username, email, password_hash, full_name, role) VALUES (?,?,?,?,?)",
                (self._norm_username(username), email, password_hash, full_name, role),
            )
        return int(cur.lastrowid)

    def update_profile(
        self,
        user_id: int,
        *,
        email: Optional[str] = None,
        full_name: Optional[str] = None,
        role: Optional[str] = None,
        password_hash: Optional[str] = None,
    ) -> None:
        """Update only the fields given (None means unchanged). No commit."""
        sets: list[str] = []
        params: list = []
        for col, val in (
            ("email", email),
            ("full_name", full_name),
            ("role", role),
            ("password_hash", password_hash),
        ):
            if val is not None:
                sets.append(f"{col} = ?")
                params.append(val)
        if not sets:
            return
        params.append(user_id)
        self.conn.execute(f"UPDATE users SET {', '.join(sets)} WHERE user_id = ?", params)

    def set_password_hash(self, user_id: int, new_hash: str) -> None:
        with atomic(self.conn):
            self.conn.execute(
                "UPDATE users SET password_hash = ? WHERE user_id = ?", (new_hash, user_id)
            )

    def increment_failed_attempts(self, user_id: int, max_attempts: int, lock_until_ts: str) -> None:
        """
        Bump failed_attempts; once the count reaches `max_attempts`, set
        locked_until to `lock_until_ts`.
        """
        with atomic(self.conn):
            self.conn.execute(
                """
                UPDATE users
                   SET failed_attempts = failed_attempts + 1,
                       locked_until = CASE
                           WHEN (failed_attempts + 1) >= ? THEN ?
                           ELSE locked_until
                       END
                 WHERE user_id = ?
                """,
                (max(1, int(max_attempts)), lock_until_ts, user_id),
            )

    def reset_failed_attempts_and_touch_login(self, user_id: int, now_ts: str) -> None:
        with atomic(self.conn):
            self.conn.execute(
                """
                UPDATE users
                   SET failed_attempts = 0,
                       last_login = ?,
                       locked_until = NULL
                 WHERE user_id = ?
                """,
                (now_ts, user_id),
            )

    def insert_auth_log(self, username: str, success: bool, reason: str) -> None:
        with atomic(self.conn):
            self.conn.execute(
                "INSERT INTO auth_logs(username, success, reason) VALUES (?,?,?)",
                (self._norm_username(username), 1 if success else 0, reason or ""),
            )

    # ------------------------------ sessions -----------------------------

    def create_session(self, session_id: str, user_id: int, expires_at: str) -> None:
        with atomic(self.conn):
            self.conn.execute(
                "INSERT INTO sessions(session_id, user_id, expires_at) VALUES (?,?,?)",
                (session_id, user_id, expires_at),
            )

    def get_session(self, session_id: str) -> Optional[dict]:
        row = self.conn.execute(
            "SELECT session_id, user_id, created_at, expires_at, revoked FROM sessions WHERE session_id = ?",
            (session_id,),
        ).fetchone()
        return dict(row) if row else None

    def extend_session(self, session_id: str, expires_at: str) -> None:
        with atomic(self.conn):
            self.conn.execute(
                "UPDATE sessions SET expires_at = ? WHERE session_id = ? AND revoked = 0",
                (expires_at, session_id),
            )

    def revoke_session(self, session_id: str) -> None:
        with atomic(self.conn):
            self.conn.execute("UPDATE sessions SET revoked = 1 WHERE session_id = ?", (session_id,))
