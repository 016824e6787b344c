# vtech_workshop/database/repositories/reporting_repo.py
from __future__ import annotations

import sqlite3
from typing import Optional

from ...constants import STATUS_DELIVERED


def _scalar(row: Optional[sqlite3.Row], key: str) -> float:
    return float(row[key] if row and row[key] is not None else 0.0)


class ReportingRepo:
    """
    Read-only aggregate queries for the financial report, the dashboard and
    the per-client reconciliation.

    Notes on date handling:
      - Every range is inclusive on both ends and compares calendar days with
        DATE(col), so a timestamp late on the last day is still counted.
      - Delivered-job revenue is attributed to the completion date.
      - Voided payments are excluded everywhere.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self.conn.row_factory = sqlite3.Row

    # ----------------------------------------------------------------------
    # ------------------------------- SALES --------------------------------
    # ----------------------------------------------------------------------

    def delivered_jobs_total(self, date_from: str, date_to: str) -> float:
        sql = """
        SELECT COALESCE(SUM(CAST(j.final_bill AS REAL)), 0.0) AS total
        FROM jobs j
        WHERE j.status = ?
          AND j.del_status = 0
          AND DATE(j.date_completed) >= DATE(?)
          AND DATE(j.date_completed) <= DATE(?)
        """
        return _scalar(self.conn.execute(sql, (STATUS_DELIVERED, date_from, date_to)).fetchone(), "total")

    def direct_sales_total(self, date_from: str, date_to: str) -> float:
        sql = """
        SELECT COALESCE(SUM(CAST(s.total_amount AS REAL)), 0.0) AS total
        FROM direct_sales s
        WHERE DATE(s.sale_date) >= DATE(?) AND DATE(s.sale_date) <= DATE(?)
        """
        return _scalar(self.conn.execute(sql, (date_from, date_to)).fetchone(), "total")

    def parts_value(self, date_from: str, date_to: str) -> float:
        """
        Sum of qty x price over part lines of jobs delivered in the range plus
        direct-sale lines sold in the range (before the cost ratio).
        """
        sql = """
        SELECT
          (SELECT COALESCE(SUM(jp.quantity * CAST(jp.unit_price AS REAL)), 0.0)
             FROM job_parts jp
             JOIN jobs j ON j.job_id = jp.job_id
            WHERE j.status = ?
              AND j.del_status = 0
              AND DATE(j.date_completed) >= DATE(?)
              AND DATE(j.date_completed) <= DATE(?))
          +
          (SELECT COALESCE(SUM(i.quantity * CAST(i.price AS REAL)), 0.0)
             FROM direct_sale_items i
             JOIN direct_sales s ON s.sale_id = i.sale_id
            WHERE DATE(s.sale_date) >= DATE(?)
              AND DATE(s.sale_date) <= DATE(?)) AS total
        """
        params = (STATUS_DELIVERED, date_from, date_to, date_from, date_to)
        return _scalar(self.conn.execute(sql, params).fetchone(), "total")

    # ----------------------------------------------------------------------
    # ------------------------------ OUTFLOWS ------------------------------
    # ----------------------------------------------------------------------

    def discounts_total(self, date_from: str, date_to: str) -> float:
        sql = """
        SELECT COALESCE(SUM(CAST(p.discount AS REAL)), 0.0) AS total
        FROM client_payments p
        WHERE p.is_void = 0
          AND DATE(p.payment_date) >= DATE(?) AND DATE(p.payment_date) <= DATE(?)
        """
        return _scalar(self.conn.execute(sql, (date_from, date_to)).fetchone(), "total")

    def salary_total(self, date_from: str, date_to: str, multipliers: dict[str, float]) -> float:
        """per_day_salary x multiplier(status), statuses missing from `multipliers` count 0."""
        cases = " ".join("WHEN ? THEN ?" for _ in multipliers)
        params: list = []
        for status, mult in multipliers.items():
            params.extend([status, float(mult)])
        sql = f"""
        SELECT COALESCE(SUM(
                 CAST(s.per_day_salary AS REAL) * (CASE a.status {cases} ELSE 0 END)
               ), 0.0) AS total
        FROM attendance a
        JOIN staff s ON s.staff_id = a.staff_id
        WHERE DATE(a.work_date) >= DATE(?) AND DATE(a.work_date) <= DATE(?)
        """
        params.extend([date_from, date_to])
        return _scalar(self.conn.execute(sql, params).fetchone(), "total")

    def loan_paid_total(self, date_from: str, date_to: str) -> float:
        sql = """
        SELECT COALESCE(SUM(CAST(l.amount_paid AS REAL)), 0.0) AS total
        FROM loan_payments l
        WHERE DATE(l.payment_date) >= DATE(?) AND DATE(l.payment_date) <= DATE(?)
        """
        return _scalar(self.conn.execute(sql, (date_from, date_to)).fetchone(), "total")

    def expenses_total(self, date_from: str, date_to: str) -> float:
        sql = """
        SELECT COALESCE(SUM(CAST(e.amount AS REAL)), 0.0) AS total
        FROM expenses e
        WHERE DATE(e.date) >= DATE(?) AND DATE(e.date) <= DATE(?)
        """
        return _scalar(self.conn.execute(sql, (date_from, date_to)).fetchone(), "total")

    # ----------------------------------------------------------------------
    # ------------------------------ DASHBOARD -----------------------------
    # ----------------------------------------------------------------------

    def job_status_counts(self) -> dict[str, int]:
        rows = self.conn.execute(
            "SELECT status, COUNT(*) AS n FROM jobs WHERE del_status = 0 GROUP BY status"
        ).fetchall()
        return {r["status"]: int(r["n"]) for r in rows}

    def billing_for_jobs_created_on(self, day: str) -> float:
        sql = """
        SELECT COALESCE(SUM(CAST(j.final_bill AS REAL)), 0.0) AS total
        FROM jobs j
        WHERE j.del_status = 0 AND DATE(j.date_created) = DATE(?)
        """
        return _scalar(self.conn.execute(sql, (day,)).fetchone(), "total")

    # ----------------------------------------------------------------------
    # --------------------------- CLIENT TOTALS ----------------------------
    # ----------------------------------------------------------------------

    def client_source_totals(self, client_id: int) -> dict[str, float]:
        """
        Re-aggregation straight from the source tables (not the ledger):
        opening, delivered, direct_sales, payments, discounts.
        """
        sql = """
        SELECT
          (SELECT CAST(opening_balance AS REAL) FROM clients WHERE client_id = :cid) AS opening,
          (SELECT COALESCE(SUM(CAST(final_bill AS REAL)), 0.0)
             FROM jobs WHERE client_id = :cid AND status = :delivered AND del_status = 0) AS delivered,
          (SELECT COALESCE(SUM(CAST(total_amount AS REAL)), 0.0)
             FROM direct_sales WHERE client_id = :cid) AS direct_sales,
          (SELECT COALESCE(SUM(CAST(amount AS REAL)), 0.0)
             FROM client_payments WHERE client_id = :cid AND is_void = 0) AS payments,
          (SELECT COALESCE(SUM(CAST(discount AS REAL)), 0.0)
             FROM client_payments WHERE client_id = :cid AND is_void = 0) AS discounts
        """
        row = self.conn.execute(sql, {"cid": client_id, "delivered": STATUS_DELIVERED}).fetchone()
        return {k: round(_scalar(row, k), 2) for k in ("opening", "delivered", "direct_sales", "payments", "discounts")}

    def client_summaries(self, active_only: bool = True) -> list[dict]:
        """
        One row per client for the list view:
        client_id, name, mobile, delivered, direct_sales, paid, balance.
        `balance` is the ledger sum.
        """
        sql = """
        SELECT c.client_id, c.name, c.mobile,
               COALESCE((SELECT SUM(CAST(final_bill AS REAL)) FROM jobs
                          WHERE client_id = c.client_id AND status = ? AND del_status = 0), 0.0) AS delivered,
               COALESCE((SELECT SUM(CAST(total_amount AS REAL)) FROM direct_sales
                          WHERE client_id = c.client_id), 0.0) AS direct_sales,
               COALESCE((SELECT SUM(CAST(amount AS REAL)) FROM client_payments
                          WHERE client_id = c.client_id AND is_void = 0), 0.0) AS paid,
               COALESCE((SELECT SUM(CAST(amount AS REAL)) FROM ledger_events
                          WHERE client_id = c.client_id), 0.0) AS balance
        FROM clients c
        """
        if active_only:
            sql += " WHERE c.is_active = 1"
        sql += " ORDER BY c.name COLLATE NOCASE"
        out = []
        for r in self.conn.execute(sql, (STATUS_DELIVERED,)).fetchall():
            d = dict(r)
            for k in ("delivered", "direct_sales", "paid", "balance"):
                d[k] = round(float(d[k]), 2)
            out.append(d)
        return out
