from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Dict, List, Optional

from ...constants import ATTENDANCE_MULTIPLIER
from ...errors import NotFound, ValidationError
from ...utils.helpers import today_str
from ...utils.validators import parse_date, require_amount, require_text
from ..transactions import atomic


@dataclass
class Staff:
    staff_id: int
    name: str
    per_day_salary: float
    is_active: int


class PayrollRepo:
    """
    Staff, daily attendance and loan repayments: the raw inputs of the
    salary and loan terms of the financial report.
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ---- Staff ------------------------------------------------------------

    def create_staff(self, name: str, per_day_salary: float) -> int:
        name_n = require_text(name, "Name")
        salary = require_amount(per_day_salary, "Per-day salary")
        with atomic(self.conn):
            cur = self.conn.execute(
                "INSERT INTO staff(name, per_day_salary) VALUES (?,?)", (name_n, salary)
            )
        return int(cur.lastrowid)

    def list_staff(self, active_only: bool = True) -> list[Staff]:
        sql = "SELECT staff_id, name, CAST(per_day_salary AS REAL) AS per_day_salary, is_active FROM staff"
        if active_only:
            sql += " WHERE is_active = 1"
        sql += " ORDER BY name"
        return [Staff(**r) for r in self.conn.execute(sql).fetchall()]

    def require_staff(self, staff_id: int) -> Staff:
        r = self.conn.execute(
            "SELECT staff_id, name, CAST(per_day_salary AS REAL) AS per_day_salary, is_active "
            "FROM staff WHERE staff_id=?",
            (staff_id,),
        ).fetchone()
        if r is None:
            raise NotFound(f"Staff #{staff_id} not found.")
        return Staff(**r)

    # ---- Attendance -------------------------------------------------------

    def mark_attendance(self, staff_id: int, work_date: str, status: str) -> None:
        """One row per staff per day; marking again overwrites the status."""
        if status not in ATTENDANCE_MULTIPLIER:
            raise ValidationError(
                f"Attendance status must be one of: {', '.join(ATTENDANCE_MULTIPLIER)}."
            )
        day = parse_date(work_date, "Work date") or today_str()
        with atomic(self.conn):
            self.require_staff(staff_id)
            self.conn.execute(
                """
                INSERT INTO attendance(staff_id, work_date, status) VALUES (?,?,?)
                ON CONFLICT(staff_id, work_date) DO UPDATE SET status = excluded.status
                """,
                (staff_id, day, status),
            )

    def attendance(
        self,
        *,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> List[Dict]:
        where: list[str] = []
        params: list = []
        if date_from:
            where.append("DATE(a.work_date) >= DATE(?)")
            params.append(date_from)
        if date_to:
            where.append("DATE(a.work_date) <= DATE(?)")
            params.append(date_to)
        sql = """
            SELECT a.attendance_id, a.staff_id, s.name AS staff_name, a.work_date, a.status,
                   CAST(s.per_day_salary AS REAL) AS per_day_salary
            FROM attendance a
            JOIN staff s ON s.staff_id = a.staff_id
        """
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY a.work_date, a.staff_id"
        return [dict(r) for r in self.conn.execute(sql, params).fetchall()]

    # ---- Loans ------------------------------------------------------------

    def record_loan_payment(
        self,
        lender: str,
        amount_paid: float,
        payment_date: str,
        remarks: Optional[str] = None,
    ) -> int:
        lender_n = require_text(lender, "Lender")
        amt = require_amount(amount_paid, "Amount paid")
        with atomic(self.conn):
            cur = self.conn.execute(
                "INSERT INTO loan_payments(lender, amount_paid, payment_date, remarks) VALUES (?,?,?,?)",
                (lender_n, amt, parse_date(payment_date, "Payment date") or today_str(), remarks),
            )
        return int(cur.lastrowid)
