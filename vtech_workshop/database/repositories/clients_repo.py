from __future__ import annotations
from dataclasses import dataclass
import sqlite3

from ...errors import DomainError, NotFound
from ...utils.validators import normalize_mobile, optional_text, require_amount, require_text
from ..transactions import atomic
from .ledger_repo import LedgerRepo


@dataclass
class Client:
    client_id: int | None
    name: str
    mobile: str
    email: str | None
    address: str | None
    gst_id: str | None
    opening_balance: float
    is_active: int
    date_created: str | None


_COLUMNS = (
    "client_id, name, mobile, email, address, gst_id, "
    "CAST(opening_balance AS REAL) AS opening_balance, is_active, date_created"
)


class ClientsRepo:
    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn
        self.ledger = LedgerRepo(conn)

    # ---- Queries ----------------------------------------------------------

    def list_clients(self, active_only: bool = True) -> list[Client]:
        """
        Returns clients, newest first. By default, only active rows (is_active=1).
        """
        sql = f"SELECT {_COLUMNS} FROM clients"
        if active_only:
            sql += " WHERE is_active = 1"
        sql += " ORDER BY client_id DESC"
        return [Client(**r) for r in self.conn.execute(sql).fetchall()]

    def search(self, term: str, active_only: bool = True) -> list[Client]:
        """
        Matches using LIKE on id / name / mobile / address.
        """
        pattern = f"%{(term or '').strip()}%"
        sql = (
            f"SELECT {_COLUMNS} FROM clients "
            "WHERE ("
            "  CAST(client_id AS TEXT) LIKE ? OR "
            "  name LIKE ? OR "
            "  mobile LIKE ? OR "
            "  address LIKE ?"
            ")"
        )
        if active_only:
            sql += " AND is_active = 1"
        sql += " ORDER BY client_id DESC"
        rows = self.conn.execute(sql, (pattern, pattern, pattern, pattern)).fetchall()
        return [Client(**r) for r in rows]

    def get(self, client_id: int) -> Client | None:
        r = self.conn.execute(
            f"SELECT {_COLUMNS} FROM clients WHERE client_id=?",
            (client_id,),
        ).fetchone()
        return Client(**r) if r else None

    def require(self, client_id: int) -> Client:
        c = self.get(client_id)
        if c is None:
            raise NotFound(f"Client #{client_id} not found.")
        return c

    def is_referenced(self, client_id: int) -> bool:
        row = self.conn.execute(
            """
            SELECT
              EXISTS(SELECT 1 FROM jobs            WHERE client_id = ?) OR
              EXISTS(SELECT 1 FROM direct_sales    WHERE client_id = ?) OR
              EXISTS(SELECT 1 FROM client_payments WHERE client_id = ?) AS used
            """,
            (client_id, client_id, client_id),
        ).fetchone()
        return bool(row["used"])

    # ---- Mutations --------------------------------------------------------

    def create(
        self,
        name: str,
        mobile: str,
        *,
        email: str | None = None,
        address: str | None = None,
        gst_id: str | None = None,
        opening_balance: float = 0.0,
    ) -> int:
        """
        Insert a new client. A non-zero opening balance is also posted to the
        ledger so the derived balance starts from it.
        """
        name_n = require_text(name, "Name")
        mobile_n = normalize_mobile(require_text(mobile, "Mobile"))
        opening = require_amount(opening_balance or 0.0, "Opening balance", signed=True)

        with atomic(self.conn):
            cur = self.conn.execute(
                "INSERT INTO clients(name, mobile, email, address, gst_id, opening_balance) "
                "VALUES (?,?,?,?,?,?)",
                (name_n, mobile_n, optional_text(email), optional_text(address),
                 optional_text(gst_id), opening),
            )
            client_id = int(cur.lastrowid)
            if opening:
                self.ledger.append(
                    client_id=client_id, kind="opening_balance", amount=opening,
                    note="Opening balance",
                )
        return client_id

    def update(
        self,
        client_id: int,
        name: str,
        mobile: str,
        *,
        email: str | None = None,
        address: str | None = None,
        gst_id: str | None = None,
        opening_balance: float | None = None,
    ) -> None:
        """
        Update core fields. If the opening balance changes, the ledger gets a
        delta event rather than a rewrite.
        """
        name_n = require_text(name, "Name")
        mobile_n = normalize_mobile(require_text(mobile, "Mobile"))

        with atomic(self.conn):
            current = self.require(client_id)
            opening = current.opening_balance
            if opening_balance is not None:
                opening = require_amount(opening_balance, "Opening balance", signed=True)

            self.conn.execute(
                "UPDATE clients SET name=?, mobile=?, email=?, address=?, gst_id=?, opening_balance=? "
                "WHERE client_id=?",
                (name_n, mobile_n, optional_text(email), optional_text(address),
                 optional_text(gst_id), opening, client_id),
            )
            delta = round(opening - float(current.opening_balance or 0.0), 2)
            if delta:
                self.ledger.append(
                    client_id=client_id, kind="opening_balance", amount=delta,
                    note="Opening balance corrected",
                )

    def set_active(self, client_id: int, active: bool) -> None:
        with atomic(self.conn):
            self.require(client_id)
            self.conn.execute(
                "UPDATE clients SET is_active=? WHERE client_id=?",
                (1 if active else 0, client_id),
            )

    def delete(self, client_id: int) -> None:
        """
        Hard delete, only for clients nothing points at. Referenced clients
        should be deactivated instead.
        """
        with atomic(self.conn):
            self.require(client_id)
            if self.is_referenced(client_id):
                raise DomainError(
                    "Cannot delete a client with jobs, sales or payments. Deactivate instead."
                )
            # only an opening-balance trail can remain; ledger rows are append-only
            has_events = self.conn.execute(
                "SELECT 1 FROM ledger_events WHERE client_id=? LIMIT 1", (client_id,)
            ).fetchone()
            if has_events:
                raise DomainError(
                    "Cannot delete a client that has ledger history. Deactivate instead."
                )
            self.conn.execute("DELETE FROM clients WHERE client_id=?", (client_id,))
