"""
Repository for spare parts and their stock movements.

Conventions:
- Stock changes go through `try_decrement` / `increment` / `set_stock`, each
  of which also writes a row to stock_movements.
- None of the stock writers commit; callers wrap them in `atomic(conn)`.
- Date strings are ISO 'YYYY-MM-DD'. Money is cast to float in Python.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Dict, List, Optional

from ...constants import DEFAULT_MIN_STOCK, PART_CATEGORIES
from ...errors import DomainError, NotFound
from ..transactions import atomic


@dataclass
class Part:
    part_id: int | None
    name: str
    category: str
    price: float
    stock: int
    minstock: int
    created_at: str | None = None

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.minstock


_COLUMNS = "part_id, name, category, CAST(price AS REAL) AS price, stock, minstock, created_at"


class InventoryRepo:
    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ------------------------------------------------------------------
    # Parts
    # ------------------------------------------------------------------
    def list_parts(self) -> list[Part]:
        rows = self.conn.execute(
            f"SELECT {_COLUMNS} FROM inventory_parts ORDER BY name COLLATE NOCASE"
        ).fetchall()
        return [Part(**r) for r in rows]

    def search(self, term: str) -> list[Part]:
        pattern = f"%{(term or '').strip()}%"
        rows = self.conn.execute(
            f"""
            SELECT {_COLUMNS} FROM inventory_parts
            WHERE name LIKE ? OR category LIKE ? OR CAST(part_id AS TEXT) LIKE ?
            ORDER BY name COLLATE NOCASE
            """,
            (pattern, pattern, pattern),
        ).fetchall()
        return [Part(**r) for r in rows]

    def get(self, part_id: int) -> Part | None:
        r = self.conn.execute(
            f"SELECT {_COLUMNS} FROM inventory_parts WHERE part_id=?", (part_id,)
        ).fetchone()
        return Part(**r) if r else None

    def require(self, part_id: int) -> Part:
        p = self.get(part_id)
        if p is None:
            raise NotFound(f"Part #{part_id} not found.")
        return p

    def name_exists(self, name: str, exclude_id: Optional[int] = None) -> bool:
        sql = "SELECT 1 FROM inventory_parts WHERE LOWER(name) = LOWER(?)"
        params: list = [name]
        if exclude_id is not None:
            sql += " AND part_id <> ?"
            params.append(exclude_id)
        return self.conn.execute(sql, params).fetchone() is not None

    def insert(
        self,
        name: str,
        price: float,
        stock: int,
        *,
        category: str = PART_CATEGORIES[0],
        minstock: int = DEFAULT_MIN_STOCK,
    ) -> int:
        cur = self.conn.execute(
            "INSERT INTO inventory_parts(name, category, price, stock, minstock) VALUES (?,?,?,?,?)",
            (name, category, float(price), int(stock), int(minstock)),
        )
        return int(cur.lastrowid)

    def update_fields(
        self,
        part_id: int,
        *,
        name: str,
        category: str,
        price: float,
        minstock: int,
    ) -> None:
        self.conn.execute(
            "UPDATE inventory_parts SET name=?, category=?, price=?, minstock=? WHERE part_id=?",
            (name, category, float(price), int(minstock), part_id),
        )

    def is_referenced(self, part_id: int) -> bool:
        row = self.conn.execute(
            """
            SELECT
              EXISTS(SELECT 1 FROM job_parts         WHERE part_id = ?) OR
              EXISTS(SELECT 1 FROM direct_sale_items WHERE part_id = ?) AS used
            """,
            (part_id, part_id),
        ).fetchone()
        return bool(row["used"])

    def delete(self, part_id: int) -> None:
        with atomic(self.conn):
            self.require(part_id)
            if self.is_referenced(part_id):
                raise DomainError("Cannot delete a part that was used on a job or sale.")
            self.conn.execute("DELETE FROM inventory_parts WHERE part_id=?", (part_id,))

    # ------------------------------------------------------------------
    # Stock writers (no commit)
    # ------------------------------------------------------------------
    def try_decrement(self, part_id: int, quantity: int) -> int | None:
        """
        Conditional decrement. Returns the new stock, or None when the row
        holds less than `quantity` (nothing is changed in that case).
        """
        cur = self.conn.execute(
            "UPDATE inventory_parts SET stock = stock - ? WHERE part_id = ? AND stock >= ?",
            (int(quantity), part_id, int(quantity)),
        )
        if cur.rowcount != 1:
            return None
        return self.current_stock(part_id)

    def increment(self, part_id: int, quantity: int) -> int:
        self.conn.execute(
            "UPDATE inventory_parts SET stock = stock + ? WHERE part_id = ?",
            (int(quantity), part_id),
        )
        return self.current_stock(part_id)

    def set_stock(self, part_id: int, new_stock: int) -> int:
        """Overwrite; returns the previous value."""
        previous = self.current_stock(part_id)
        self.conn.execute(
            "UPDATE inventory_parts SET stock = ? WHERE part_id = ?",
            (int(new_stock), part_id),
        )
        return previous

    def insert_movement(
        self,
        part_id: int,
        delta: int,
        reason: str,
        stock_after: int,
        *,
        reference_table: Optional[str] = None,
        reference_id: Optional[int] = None,
        created_by: Optional[int] = None,
    ) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO stock_movements
                (part_id, delta, reason, reference_table, reference_id, stock_after, created_by)
            VALUES (?,?,?,?,?,?,?)
            """,
            (part_id, int(delta), reason, reference_table, reference_id, int(stock_after), created_by),
        )
        return int(cur.lastrowid)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def current_stock(self, part_id: int) -> int:
        row = self.conn.execute(
            "SELECT stock FROM inventory_parts WHERE part_id=?", (part_id,)
        ).fetchone()
        if row is None:
            raise NotFound(f"Part #{part_id} not found.")
        return int(row["stock"])

    def low_stock(self) -> list[Part]:
        rows = self.conn.execute(
            f"""
            SELECT {_COLUMNS} FROM inventory_parts
            WHERE stock <= minstock
            ORDER BY (stock - minstock), name COLLATE NOCASE
            """
        ).fetchall()
        return [Part(**r) for r in rows]

    def movements(self, part_id: int, limit: int = 100) -> List[Dict]:
        rows = self.conn.execute(
            """
            SELECT movement_id, part_id, delta, reason, reference_table, reference_id,
                   stock_after, created_by, created_at
            FROM stock_movements
            WHERE part_id = ?
            ORDER BY movement_id DESC
            LIMIT ?
            """,
            (part_id, max(1, min(int(limit), 1000))),
        ).fetchall()
        return [dict(r) for r in rows]

    def usage_history(self, part_id: int) -> List[Dict]:
        """
        Job lines and direct-sale lines that consumed this part, newest first.
        Columns: source, reference, client_name, quantity, unit_price, used_on
        """
        sql = """
            SELECT 'job'                        AS source,
                   j.job_code                   AS reference,
                   c.name                       AS client_name,
                   jp.quantity                  AS quantity,
                   CAST(jp.unit_price AS REAL)  AS unit_price,
                   DATE(jp.created_at)          AS used_on
            FROM job_parts jp
            JOIN jobs    j ON j.job_id    = jp.job_id
            JOIN clients c ON c.client_id = j.client_id
            WHERE jp.part_id = ?
            UNION ALL
            SELECT 'sale',
                   s.sale_code,
                   c.name,
                   i.quantity,
                   CAST(i.price AS REAL),
                   DATE(s.sale_date)
            FROM direct_sale_items i
            JOIN direct_sales s ON s.sale_id   = i.sale_id
            JOIN clients      c ON c.client_id = s.client_id
            WHERE i.part_id = ?
            ORDER BY used_on DESC, reference DESC
        """
        return [dict(r) for r in self.conn.execute(sql, (part_id, part_id)).fetchall()]
