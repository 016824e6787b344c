"""
Append-only client ledger.

Every balance-affecting fact is one signed row in ledger_events:

    opening_balance  +/-  client's carried-forward balance (and corrections)
    job_delivered    +    final bill of a job, posted once on delivery
    job_adjustment   +/-  later change to a delivered job's bill
    direct_sale      +    total of a walk-in sale
    payment          -    money received
    discount         -    discount granted with a payment

Corrections never UPDATE or DELETE (schema triggers forbid it); they append a
row with the opposite sign that points at the original via reverses_event_id.
The balance is always derived: SUM(amount).

Writers here do not commit. Callers wrap them in `atomic(conn)` together with
the table write that caused the event.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Optional

from ...utils.helpers import today_str

KINDS = (
    "opening_balance",
    "job_delivered",
    "job_adjustment",
    "direct_sale",
    "payment",
    "discount",
)


@dataclass
class LedgerEvent:
    event_id: int
    client_id: int
    kind: str
    amount: float
    event_date: str
    job_id: int | None
    sale_id: int | None
    payment_id: int | None
    reverses_event_id: int | None
    note: str | None


_COLUMNS = (
    "event_id, client_id, kind, CAST(amount AS REAL) AS amount, event_date, "
    "job_id, sale_id, payment_id, reverses_event_id, note"
)


class LedgerRepo:
    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ------------------------------------------------------------------
    # Writes (no commit)
    # ------------------------------------------------------------------
    def append(
        self,
        *,
        client_id: int,
        kind: str,
        amount: float,
        event_date: Optional[str] = None,
        job_id: Optional[int] = None,
        sale_id: Optional[int] = None,
        payment_id: Optional[int] = None,
        reverses_event_id: Optional[int] = None,
        note: Optional[str] = None,
    ) -> int:
        if kind not in KINDS:
            raise ValueError(f"Unknown ledger event kind: {kind}")
        cur = self.conn.execute(
            """
            INSERT INTO ledger_events
                (client_id, kind, amount, event_date, job_id, sale_id,
                 payment_id, reverses_event_id, note)
            VALUES (?,?,?,?,?,?,?,?,?)
            """,
            (
                int(client_id), kind, float(amount), event_date or today_str(),
                job_id, sale_id, payment_id, reverses_event_id, note,
            ),
        )
        return int(cur.lastrowid)

    def reverse(self, event: LedgerEvent, *, event_date: Optional[str] = None, note: Optional[str] = None) -> int:
        """Append the mirror image of `event`."""
        return self.append(
            client_id=event.client_id,
            kind=event.kind,
            amount=-event.amount,
            event_date=event_date or today_str(),
            job_id=event.job_id,
            sale_id=event.sale_id,
            payment_id=event.payment_id,
            reverses_event_id=event.event_id,
            note=note or f"Reversal of event #{event.event_id}",
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def has_delivery_for_job(self, job_id: int) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM ledger_events WHERE kind='job_delivered' AND job_id=? LIMIT 1",
            (job_id,),
        ).fetchone()
        return row is not None

    def open_events_for_payment(self, payment_id: int) -> list[LedgerEvent]:
        """
        Events posted for a payment that have not been reversed yet
        (and are not reversals themselves).
        """
        rows = self.conn.execute(
            f"""
            SELECT {_COLUMNS}
            FROM ledger_events e
            WHERE e.payment_id = ?
              AND e.reverses_event_id IS NULL
              AND NOT EXISTS (
                  SELECT 1 FROM ledger_events r WHERE r.reverses_event_id = e.event_id
              )
            ORDER BY e.event_id
            """,
            (payment_id,),
        ).fetchall()
        return [LedgerEvent(**r) for r in rows]

    def balance(self, client_id: int, as_of: Optional[str] = None) -> float:
        sql = "SELECT COALESCE(SUM(CAST(amount AS REAL)), 0.0) AS b FROM ledger_events WHERE client_id=?"
        params: list = [client_id]
        if as_of:
            sql += " AND DATE(event_date) <= DATE(?)"
            params.append(as_of)
        row = self.conn.execute(sql, params).fetchone()
        return round(float(row["b"] or 0.0), 2)

    def list_events(
        self,
        client_id: int,
        *,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> list[LedgerEvent]:
        """Chronological; inclusive calendar-date bounds."""
        where = ["client_id = ?"]
        params: list = [client_id]
        if date_from:
            where.append("DATE(event_date) >= DATE(?)")
            params.append(date_from)
        if date_to:
            where.append("DATE(event_date) <= DATE(?)")
            params.append(date_to)
        sql = (
            f"SELECT {_COLUMNS} FROM ledger_events WHERE "
            + " AND ".join(where)
            + " ORDER BY DATE(event_date), event_id"
        )
        return [LedgerEvent(**r) for r in self.conn.execute(sql, params).fetchall()]
