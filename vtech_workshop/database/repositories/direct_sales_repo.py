from __future__ import annotations

import sqlite3
import time
from dataclasses import dataclass
from typing import Optional

from ...errors import NotFound


@dataclass
class DirectSale:
    sale_id: int
    sale_code: str
    client_id: int
    client_name: str | None
    payment_mode: str
    remarks: str | None
    total_amount: float
    sale_date: str


@dataclass
class DirectSaleItem:
    item_id: int
    sale_id: int
    part_id: int | None
    description: str
    quantity: int
    price: float

    @property
    def line_total(self) -> float:
        return round(self.quantity * self.price, 2)


_SALE_SELECT = """
    SELECT s.sale_id, s.sale_code, s.client_id, c.name AS client_name,
           s.payment_mode, s.remarks, CAST(s.total_amount AS REAL) AS total_amount,
           s.sale_date
    FROM direct_sales s
    LEFT JOIN clients c ON c.client_id = s.client_id
"""


class DirectSalesRepo:
    """Header + line rows for walk-in sales. Writers do not commit."""

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    def next_sale_code(self) -> str:
        """SALE-<epoch ms>; bumped by one on the (rare) same-millisecond clash."""
        ms = int(time.time() * 1000)
        while self.conn.execute(
            "SELECT 1 FROM direct_sales WHERE sale_code = ?", (f"SALE-{ms}",)
        ).fetchone():
            ms += 1
        return f"SALE-{ms}"

    def insert_header(
        self,
        *,
        sale_code: str,
        client_id: int,
        payment_mode: str,
        remarks: Optional[str],
        total_amount: float,
        sale_date: str,
        created_by: Optional[int],
    ) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO direct_sales
                (sale_code, client_id, payment_mode, remarks, total_amount, sale_date, created_by)
            VALUES (?,?,?,?,?,?,?)
            """,
            (sale_code, client_id, payment_mode, remarks, round(float(total_amount), 2),
             sale_date, created_by),
        )
        return int(cur.lastrowid)

    def insert_item(
        self,
        sale_id: int,
        *,
        description: str,
        quantity: int,
        price: float,
        part_id: Optional[int] = None,
    ) -> int:
        cur = self.conn.execute(
            "INSERT INTO direct_sale_items(sale_id, part_id, description, quantity, price) "
            "VALUES (?,?,?,?,?)",
            (sale_id, part_id, description, int(quantity), float(price)),
        )
        return int(cur.lastrowid)

    def get(self, sale_id: int) -> DirectSale | None:
        r = self.conn.execute(_SALE_SELECT + " WHERE s.sale_id = ?", (sale_id,)).fetchone()
        return DirectSale(**r) if r else None

    def require(self, sale_id: int) -> DirectSale:
        s = self.get(sale_id)
        if s is None:
            raise NotFound(f"Sale #{sale_id} not found.")
        return s

    def list_items(self, sale_id: int) -> list[DirectSaleItem]:
        rows = self.conn.execute(
            """
            SELECT item_id, sale_id, part_id, description, quantity,
                   CAST(price AS REAL) AS price
            FROM direct_sale_items WHERE sale_id = ? ORDER BY item_id
            """,
            (sale_id,),
        ).fetchall()
        return [DirectSaleItem(**r) for r in rows]

    def list_sales(
        self,
        *,
        client_id: Optional[int] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> list[DirectSale]:
        where: list[str] = []
        params: list = []
        if client_id is not None:
            where.append("s.client_id = ?")
            params.append(client_id)
        if date_from:
            where.append("DATE(s.sale_date) >= DATE(?)")
            params.append(date_from)
        if date_to:
            where.append("DATE(s.sale_date) <= DATE(?)")
            params.append(date_to)
        sql = _SALE_SELECT
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY DATE(s.sale_date) DESC, s.sale_id DESC"
        return [DirectSale(**r) for r in self.conn.execute(sql, params).fetchall()]
