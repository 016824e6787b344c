"""
Inventory stock ledger.

Owns every change to `inventory_parts.stock`. Consumption is a conditional
decrement (`... WHERE stock >= ?`) so stock can never go negative, even with
two writers racing for the last unit. Each change leaves a stock_movements row
and an audit line.
"""

from __future__ import annotations

import logging
import sqlite3
from functools import partial
from typing import Dict, List, Optional

from ...constants import DEFAULT_MIN_STOCK, PART_CATEGORIES
from ...database.repositories.inventory_repo import InventoryRepo, Part
from ...database.transactions import atomic, on_commit
from ...errors import InsufficientStock, ValidationError
from ...utils.loggers import get_audit_logger, log_event
from ...utils.validators import require_amount, require_quantity, require_text
from ..users.authz import Authorizer

_log = logging.getLogger(__name__)


class StockLedger:
    def __init__(self, conn: sqlite3.Connection, user_id: Optional[int] = None):
        self.conn = conn
        self.user_id = user_id
        self.repo = InventoryRepo(conn)
        self.authz = Authorizer(conn)

    # ------------------------------------------------------------------
    # Stock movements
    # ------------------------------------------------------------------
    def reserve(
        self,
        part_id: int,
        quantity: int,
        *,
        reason: str = "job",
        reference_table: Optional[str] = None,
        reference_id: Optional[int] = None,
    ) -> int:
        """
        Take `quantity` units out of stock and return the new level.

        Raises NotFound for an unknown part, ValidationError for a bad
        quantity, InsufficientStock when fewer units are on hand.
        """
        qty = require_quantity(quantity)
        with atomic(self.conn):
            self.repo.require(part_id)
            new_stock = self.repo.try_decrement(part_id, qty)
            if new_stock is None:
                available = self.repo.current_stock(part_id)
                log_event(
                    get_audit_logger(), op="stock.reserve", phase="refused",
                    message="insufficient stock",
                    extra={"part_id": part_id, "requested": qty, "available": available},
                    level=logging.WARNING,
                )
                raise InsufficientStock(part_id, qty, available)
            self.repo.insert_movement(
                part_id, -qty, reason, new_stock,
                reference_table=reference_table, reference_id=reference_id,
                created_by=self.user_id,
            )
        on_commit(self.conn, partial(
            log_event, get_audit_logger(), op="stock.reserve", phase="commit",
            message="stock reserved",
            extra={"part_id": part_id, "quantity": qty, "stock_after": new_stock, "reason": reason},
        ))
        return new_stock

    def release(
        self,
        part_id: int,
        quantity: int,
        *,
        reference_table: Optional[str] = None,
        reference_id: Optional[int] = None,
    ) -> int:
        """Put units back (a part line came off an open job)."""
        qty = require_quantity(quantity)
        with atomic(self.conn):
            self.repo.require(part_id)
            new_stock = self.repo.increment(part_id, qty)
            self.repo.insert_movement(
                part_id, qty, "release", new_stock,
                reference_table=reference_table, reference_id=reference_id,
                created_by=self.user_id,
            )
        on_commit(self.conn, partial(
            log_event, get_audit_logger(), op="stock.release", phase="commit",
            message="stock released",
            extra={"part_id": part_id, "quantity": qty, "stock_after": new_stock},
        ))
        return new_stock

    def restock(self, part_id: int, new_stock: int) -> int:
        """Overwrite the stock level (admin). Returns the new level."""
        self.authz.require(self.user_id, "inventory.edit")
        target = require_quantity(new_stock, "Stock", allow_zero=True)
        with atomic(self.conn):
            self.repo.require(part_id)
            previous = self.repo.set_stock(part_id, target)
            self.repo.insert_movement(
                part_id, target - previous, "restock", target, created_by=self.user_id
            )
        on_commit(self.conn, partial(
            log_event, get_audit_logger(), op="stock.restock", phase="commit",
            message="stock overwritten",
            extra={"part_id": part_id, "previous": previous, "stock_after": target},
        ))
        return target

    # ------------------------------------------------------------------
    # Parts
    # ------------------------------------------------------------------
    def create_part(
        self,
        name: str,
        price: float,
        stock: int,
        *,
        category: Optional[str] = None,
        minstock: int = DEFAULT_MIN_STOCK,
    ) -> int:
        self.authz.require(self.user_id, "inventory.create")
        name_n = require_text(name, "Part name")
        price_n = require_amount(price, "Price")
        stock_n = require_quantity(stock, "Stock", allow_zero=True)
        min_n = require_quantity(minstock, "Minimum stock", allow_zero=True)
        category_n = (category or "").strip() or PART_CATEGORIES[0]
        with atomic(self.conn):
            if self.repo.name_exists(name_n):
                raise ValidationError(f"A part named '{name_n}' already exists.")
            part_id = self.repo.insert(name_n, price_n, stock_n, category=category_n, minstock=min_n)
            if stock_n:
                self.repo.insert_movement(
                    part_id, stock_n, "adjustment", stock_n, created_by=self.user_id
                )
        _log.info("part %s created: %s", part_id, name_n)
        return part_id

    def update_part(
        self,
        part_id: int,
        *,
        name: str,
        price: float,
        stock: int,
        category: Optional[str] = None,
        minstock: int = DEFAULT_MIN_STOCK,
    ) -> None:
        """Edit form save: fields plus a stock overwrite (logged as restock)."""
        self.authz.require(self.user_id, "inventory.edit")
        name_n = require_text(name, "Part name")
        price_n = require_amount(price, "Price")
        stock_n = require_quantity(stock, "Stock", allow_zero=True)
        min_n = require_quantity(minstock, "Minimum stock", allow_zero=True)
        with atomic(self.conn):
            current = self.repo.require(part_id)
            if self.repo.name_exists(name_n, exclude_id=part_id):
                raise ValidationError(f"A part named '{name_n}' already exists.")
            self.repo.update_fields(
                part_id, name=name_n, category=(category or "").strip() or current.category,
                price=price_n, minstock=min_n,
            )
            if stock_n != current.stock:
                self.restock(part_id, stock_n)

    def delete_part(self, part_id: int) -> None:
        self.authz.require(self.user_id, "inventory.delete")
        self.repo.delete(part_id)
        _log.info("part %s deleted", part_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get_part(self, part_id: int) -> Part:
        return self.repo.require(part_id)

    def list_parts(self) -> list[Part]:
        return self.repo.list_parts()

    def search(self, term: str) -> list[Part]:
        return self.repo.search(term)

    def low_stock(self) -> list[Part]:
        return self.repo.low_stock()

    def usage_history(self, part_id: int) -> List[Dict]:
        self.repo.require(part_id)
        return self.repo.usage_history(part_id)

    def movements(self, part_id: int, limit: int = 100) -> List[Dict]:
        return self.repo.movements(part_id, limit)
