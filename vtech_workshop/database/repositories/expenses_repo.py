"""
Repository for expenses and expense categories.

Expenses are one of the outflow terms of the financial report. Amounts are
stored as NUMERIC and returned as `float`. Descriptions must be non-empty and
amounts non-negative; everything else is left to the caller.

Schema reference (see `database/schema.py`):

CREATE TABLE expenses (
    expense_id  INTEGER PRIMARY KEY AUTOINCREMENT,
    description TEXT    NOT NULL,
    amount      NUMERIC NOT NULL CHECK (CAST(amount AS REAL) >= 0),
    date        DATE    NOT NULL DEFAULT (date('now','localtime')),
    category_id INTEGER,
    FOREIGN KEY (category_id) REFERENCES expense_categories(category_id)
);
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Dict, List, Optional

from ...errors import DomainError
from ...utils.helpers import today_str
from ...utils.validators import parse_date, require_amount, require_text
from ..transactions import atomic


@dataclass
class ExpenseCategory:
    category_id: int | None
    name: str


class ExpensesRepo:
    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ------------------------------------------------------------------
    # Category operations
    # ------------------------------------------------------------------

    def list_categories(self) -> List[ExpenseCategory]:
        rows = self.conn.execute(
            "SELECT category_id, name FROM expense_categories ORDER BY name"
        ).fetchall()
        return [ExpenseCategory(**dict(r)) for r in rows]

    def create_category(self, name: str) -> int:
        name_n = require_text(name, "Name")
        with atomic(self.conn):
            cur = self.conn.execute(
                "INSERT INTO expense_categories(name) VALUES (?)", (name_n,)
            )
        return int(cur.lastrowid)

    def delete_category(self, category_id: int) -> None:
        with atomic(self.conn):
            used = self.conn.execute(
                "SELECT 1 FROM expenses WHERE category_id=? LIMIT 1", (category_id,)
            ).fetchone()
            if used:
                raise DomainError("Cannot delete a category that is used by existing expenses.")
            self.conn.execute("DELETE FROM expense_categories WHERE category_id=?", (category_id,))

    # ------------------------------------------------------------------
    # Expense operations
    # ------------------------------------------------------------------

    def create_expense(
        self,
        description: str,
        amount: float,
        date: str,
        category_id: Optional[int] = None,
    ) -> int:
        desc_n = require_text(description, "Description")
        amt = require_amount(amount, "Amount")
        with atomic(self.conn):
            cur = self.conn.execute(
                "INSERT INTO expenses(description, amount, date, category_id) VALUES (?,?,?,?)",
                (desc_n, amt, parse_date(date) or today_str(), category_id),
            )
        return int(cur.lastrowid)

    def delete_expense(self, expense_id: int) -> None:
        with atomic(self.conn):
            self.conn.execute("DELETE FROM expenses WHERE expense_id = ?", (expense_id,))

    def search_expenses(
        self,
        query: str = "",
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        category_id: Optional[int] = None,
    ) -> List[Dict]:
        """
        LIKE match on description, inclusive calendar-day range, exact category.
        Ordered by date (DESC) then expense_id (DESC).
        """
        where: List[str] = []
        params: List = []
        if query:
            where.append("e.description LIKE ?")
            params.append(f"%{query.strip()}%")
        if date_from:
            where.append("DATE(e.date) >= DATE(?)")
            params.append(date_from)
        if date_to:
            where.append("DATE(e.date) <= DATE(?)")
            params.append(date_to)
        if category_id is not None:
            where.append("e.category_id = ?")
            params.append(category_id)

        sql = """
            SELECT e.expense_id,
                   e.description,
                   CAST(e.amount AS REAL) AS amount,
                   e.date,
                   e.category_id,
                   c.name AS category_name
            FROM expenses e
            LEFT JOIN expense_categories c ON c.category_id = e.category_id
        """
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY DATE(e.date) DESC, e.expense_id DESC"
        return [dict(r) for r in self.conn.execute(sql, tuple(params)).fetchall()]
