from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Optional

from ...errors import NotFound


@dataclass
class ClientPayment:
    payment_id: int
    client_id: int
    amount: float
    discount: float
    payment_mode: str
    payment_date: str
    job_id: int | None
    bill_no: str | None
    remarks: str | None
    is_void: int


_COLUMNS = (
    "payment_id, client_id, CAST(amount AS REAL) AS amount, "
    "CAST(discount AS REAL) AS discount, payment_mode, payment_date, "
    "job_id, bill_no, remarks, is_void"
)


class ClientPaymentsRepo:
    """
    Payment rows. A "deleted" payment is voided (is_void=1) because its
    ledger events keep pointing at it. Writers do not commit.
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    def insert(
        self,
        *,
        client_id: int,
        amount: float,
        discount: float,
        payment_mode: str,
        payment_date: str,
        job_id: Optional[int],
        bill_no: Optional[str],
        remarks: Optional[str],
        created_by: Optional[int],
    ) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO client_payments
                (client_id, amount, discount, payment_mode, payment_date,
                 job_id, bill_no, remarks, created_by)
            VALUES (?,?,?,?,?,?,?,?,?)
            """,
            (client_id, float(amount), float(discount), payment_mode, payment_date,
             job_id, bill_no, remarks, created_by),
        )
        return int(cur.lastrowid)

    def update(
        self,
        payment_id: int,
        *,
        amount: float,
        discount: float,
        payment_mode: str,
        payment_date: str,
        job_id: Optional[int],
        bill_no: Optional[str],
        remarks: Optional[str],
    ) -> None:
        self.conn.execute(
            """
            UPDATE client_payments
               SET amount=?, discount=?, payment_mode=?, payment_date=?,
                   job_id=?, bill_no=?, remarks=?
             WHERE payment_id=?
            """,
            (float(amount), float(discount), payment_mode, payment_date,
             job_id, bill_no, remarks, payment_id),
        )

    def void(self, payment_id: int) -> None:
        self.conn.execute("UPDATE client_payments SET is_void=1 WHERE payment_id=?", (payment_id,))

    def get(self, payment_id: int) -> ClientPayment | None:
        r = self.conn.execute(
            f"SELECT {_COLUMNS} FROM client_payments WHERE payment_id=?", (payment_id,)
        ).fetchone()
        return ClientPayment(**r) if r else None

    def require(self, payment_id: int) -> ClientPayment:
        p = self.get(payment_id)
        if p is None or p.is_void:
            raise NotFound(f"Payment #{payment_id} not found.")
        return p

    def list_for_client(
        self,
        client_id: int,
        *,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        include_void: bool = False,
    ) -> list[ClientPayment]:
        where = ["client_id = ?"]
        params: list = [client_id]
        if not include_void:
            where.append("is_void = 0")
        if date_from:
            where.append("DATE(payment_date) >= DATE(?)")
            params.append(date_from)
        if date_to:
            where.append("DATE(payment_date) <= DATE(?)")
            params.append(date_to)
        sql = (
            f"SELECT {_COLUMNS} FROM client_payments WHERE "
            + " AND ".join(where)
            + " ORDER BY DATE(payment_date) DESC, payment_id DESC"
        )
        return [ClientPayment(**r) for r in self.conn.execute(sql, params).fetchall()]
