"""
Client balance ledger.

A client's balance is never stored; it is the signed sum of the client's
ledger events:

    balance = opening + delivered job bills + direct sales - payments - discounts

Every operation that changes what a client owes writes its source row
(payment, sale, ...) and its ledger event(s) in one transaction. Payment
edits and deletions append reversal events; ledger rows are never changed.
"""

from __future__ import annotations

import logging
import sqlite3
from functools import partial
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional, Union

from ...constants import PAYMENT_MODES
from ...database.repositories.client_payments_repo import ClientPayment, ClientPaymentsRepo
from ...database.repositories.clients_repo import Client, ClientsRepo
from ...database.repositories.direct_sales_repo import DirectSale, DirectSaleItem, DirectSalesRepo
from ...database.repositories.inventory_repo import InventoryRepo
from ...database.repositories.jobs_repo import JobsRepo
from ...database.repositories.ledger_repo import LedgerEvent, LedgerRepo
from ...database.repositories.reporting_repo import ReportingRepo
from ...database.transactions import atomic, on_commit
from ...errors import ValidationError
from ...utils.helpers import round_money, today_str
from ...utils.loggers import get_audit_logger, log_event
from ...utils.validators import optional_text, parse_date, require_amount, require_quantity
from ..inventory.stock import StockLedger
from ..users.authz import Authorizer

_log = logging.getLogger(__name__)


@dataclass
class SaleLine:
    description: str
    quantity: int
    price: float
    part_id: Optional[int] = None

    @property
    def line_total(self) -> float:
        return round_money(self.quantity * self.price)


@dataclass
class Reconciliation:
    client_id: int
    opening: float
    delivered_total: float
    direct_sales_total: float
    payments_total: float
    discounts_total: float
    ledger_balance: float

    @property
    def table_balance(self) -> float:
        """Balance re-derived from the source tables."""
        return round_money(
            self.opening + self.delivered_total + self.direct_sales_total
            - self.payments_total - self.discounts_total
        )

    @property
    def naive_outstanding(self) -> float:
        """delivered + sales - (payments - discounts); ignores opening balance."""
        return round_money(
            self.delivered_total + self.direct_sales_total
            - (self.payments_total - self.discounts_total)
        )

    @property
    def consistent(self) -> bool:
        return abs(self.ledger_balance - self.table_balance) < 0.005


@dataclass
class StatementLine:
    date: str
    kind: str
    description: str
    debit: float
    credit: float
    balance: float


@dataclass
class Statement:
    client: Client
    date_from: Optional[str]
    date_to: Optional[str]
    opening_balance: float
    lines: list[StatementLine] = field(default_factory=list)

    @property
    def closing_balance(self) -> float:
        return self.lines[-1].balance if self.lines else self.opening_balance

    @property
    def total_debit(self) -> float:
        return round_money(sum(l.debit for l in self.lines))

    @property
    def total_credit(self) -> float:
        return round_money(sum(l.credit for l in self.lines))


_KIND_LABELS = {
    "opening_balance": "Opening balance",
    "job_delivered": "Job delivered",
    "job_adjustment": "Job bill adjusted",
    "direct_sale": "Direct sale",
    "payment": "Payment received",
    "discount": "Discount",
}


class ClientLedger:
    def __init__(self, conn: sqlite3.Connection, user_id: Optional[int] = None):
        self.conn = conn
        self.user_id = user_id
        self.clients = ClientsRepo(conn)
        self.ledger = LedgerRepo(conn)
        self.payments = ClientPaymentsRepo(conn)
        self.sales = DirectSalesRepo(conn)
        self.jobs = JobsRepo(conn)
        self.reporting = ReportingRepo(conn)
        self.authz = Authorizer(conn)

    # ------------------------------------------------------------------
    # Clients
    # ------------------------------------------------------------------
    def create_client(self, name: str, mobile: str, **fields) -> int:
        client_id = self.clients.create(name, mobile, **fields)
        _log.info("client %s created", client_id)
        return client_id

    def update_client(self, client_id: int, name: str, mobile: str, **fields) -> None:
        self.clients.update(client_id, name, mobile, **fields)

    def delete_client(self, client_id: int) -> None:
        self.authz.require(self.user_id, "client.delete")
        self.clients.delete(client_id)
        _log.info("client %s deleted", client_id)

    def deactivate_client(self, client_id: int) -> None:
        """Hide a client from active lists; their history and balance stay."""
        self.authz.require(self.user_id, "client.delete")
        self.clients.set_active(client_id, False)
        _log.info("client %s deactivated", client_id)

    def reactivate_client(self, client_id: int) -> None:
        self.authz.require(self.user_id, "client.delete")
        self.clients.set_active(client_id, True)

    def get_client(self, client_id: int) -> Client:
        return self.clients.require(client_id)

    def list_clients(self, active_only: bool = True) -> list[Client]:
        return self.clients.list_clients(active_only)

    def search_clients(self, term: str) -> list[Client]:
        return self.clients.search(term)

    def summaries(self, active_only: bool = True) -> list[dict]:
        return self.reporting.client_summaries(active_only)

    # ------------------------------------------------------------------
    # Delivery crediting
    # ------------------------------------------------------------------
    def on_job_delivered(
        self,
        client_id: int,
        job_id: int,
        final_bill: float,
        *,
        event_date: Optional[str] = None,
        job_code: Optional[str] = None,
    ) -> float:
        """
        Post the job's final bill once. A second call for the same job is a
        no-op that returns the unchanged balance.
        """
        amount = require_amount(final_bill, "Final bill")
        with atomic(self.conn):
            if self.ledger.has_delivery_for_job(job_id):
                _log.info("job %s already credited to client %s", job_id, client_id)
                return self.ledger.balance(client_id)
            self.ledger.append(
                client_id=client_id, kind="job_delivered", amount=amount,
                event_date=event_date or today_str(), job_id=job_id,
                note=f"Job {job_code} delivered" if job_code else None,
            )
            balance = self.ledger.balance(client_id)
        on_commit(self.conn, partial(
            log_event, get_audit_logger(), op="ledger.job_delivered", phase="applied",
            message="job bill credited",
            extra={"client_id": client_id, "job_id": job_id, "amount": amount, "balance": balance},
        ))
        return balance

    def on_job_bill_changed(self, client_id: int, job_id: int, delta: float, *, job_code: Optional[str] = None) -> float:
        """Post a signed change to the bill of a job that is already on the ledger."""
        delta = round_money(delta)
        with atomic(self.conn):
            if delta:
                self.ledger.append(
                    client_id=client_id, kind="job_adjustment", amount=delta, job_id=job_id,
                    note=f"Job {job_code} bill adjusted" if job_code else None,
                )
            balance = self.ledger.balance(client_id)
        if delta:
            on_commit(self.conn, partial(
                log_event, get_audit_logger(), op="ledger.job_adjustment", phase="applied",
                message="delivered job bill adjusted",
                extra={"client_id": client_id, "job_id": job_id, "delta": delta, "balance": balance},
            ))
        return balance

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------
    def _validate_payment(
        self,
        client_id: int,
        amount,
        discount,
        mode: str,
        job_id: Optional[int],
    ) -> tuple[float, float]:
        amt = require_amount(amount, "Amount", allow_zero=False)
        disc = require_amount(discount or 0.0, "Discount")
        if mode not in PAYMENT_MODES:
            raise ValidationError(f"Payment mode must be one of: {', '.join(PAYMENT_MODES)}.")
        if job_id is not None:
            job = self.jobs.get(job_id)
            if job is None or job.client_id != client_id:
                raise ValidationError(f"Job #{job_id} does not belong to client #{client_id}.")
        return amt, disc

    def _post_payment_events(self, payment_id: int, client_id: int, amt: float, disc: float,
                             day: str, mode: str) -> None:
        self.ledger.append(
            client_id=client_id, kind="payment", amount=-amt, event_date=day,
            payment_id=payment_id, note=f"Payment ({mode})",
        )
        if disc:
            self.ledger.append(
                client_id=client_id, kind="discount", amount=-disc, event_date=day,
                payment_id=payment_id, note="Discount",
            )

    def record_payment(
        self,
        client_id: int,
        amount: float,
        discount: float = 0.0,
        mode: str = "Cash",
        date: Optional[str] = None,
        job_id: Optional[int] = None,
        bill_no: Optional[str] = None,
        remarks: Optional[str] = None,
    ) -> int:
        self.authz.require(self.user_id, "payment.record")
        amt, disc = self._validate_payment(client_id, amount, discount, mode, job_id)
        day = parse_date(date, "Date") or today_str()
        with atomic(self.conn):
            self.clients.require(client_id)
            payment_id = self.payments.insert(
                client_id=client_id, amount=amt, discount=disc, payment_mode=mode,
                payment_date=day, job_id=job_id, bill_no=optional_text(bill_no),
                remarks=optional_text(remarks), created_by=self.user_id,
            )
            self._post_payment_events(payment_id, client_id, amt, disc, day, mode)
        on_commit(self.conn, partial(
            log_event, get_audit_logger(), op="ledger.payment", phase="commit",
            message="payment recorded",
            extra={"client_id": client_id, "payment_id": payment_id, "amount": amt, "discount": disc},
        ))
        return payment_id

    def update_payment(
        self,
        payment_id: int,
        amount: float,
        discount: float = 0.0,
        mode: str = "Cash",
        date: Optional[str] = None,
        job_id: Optional[int] = None,
        bill_no: Optional[str] = None,
        remarks: Optional[str] = None,
    ) -> None:
        """Rewrite a payment: reverse its events, update the row, post fresh events."""
        self.authz.require(self.user_id, "payment.edit")
        with atomic(self.conn):
            current = self.payments.require(payment_id)
            amt, disc = self._validate_payment(current.client_id, amount, discount, mode, job_id)
            day = parse_date(date, "Date") or current.payment_date
            for ev in self.ledger.open_events_for_payment(payment_id):
                self.ledger.reverse(ev, note=f"Payment #{payment_id} edited")
            self.payments.update(
                payment_id, amount=amt, discount=disc, payment_mode=mode, payment_date=day,
                job_id=job_id, bill_no=optional_text(bill_no), remarks=optional_text(remarks),
            )
            self._post_payment_events(payment_id, current.client_id, amt, disc, day, mode)
        on_commit(self.conn, partial(
            log_event, get_audit_logger(), op="ledger.payment_edit", phase="commit",
            message="payment edited",
            extra={"payment_id": payment_id, "old_amount": current.amount, "amount": amt,
                   "old_discount": current.discount, "discount": disc},
        ))

    def delete_payment(self, payment_id: int) -> None:
        """Void the payment and reverse its ledger events."""
        self.authz.require(self.user_id, "payment.delete")
        with atomic(self.conn):
            current = self.payments.require(payment_id)
            for ev in self.ledger.open_events_for_payment(payment_id):
                self.ledger.reverse(ev, note=f"Payment #{payment_id} deleted")
            self.payments.void(payment_id)
        on_commit(self.conn, partial(
            log_event, get_audit_logger(), op="ledger.payment_delete", phase="commit",
            message="payment voided",
            extra={"payment_id": payment_id, "client_id": current.client_id, "amount": current.amount},
        ))

    def list_payments(self, client_id: int, **filters) -> list[ClientPayment]:
        return self.payments.list_for_client(client_id, **filters)

    # ------------------------------------------------------------------
    # Direct sales
    # ------------------------------------------------------------------
    def _normalize_lines(self, items: Iterable[Union[SaleLine, Mapping]]) -> list[SaleLine]:
        inventory = InventoryRepo(self.conn)
        lines: list[SaleLine] = []
        for raw in items or []:
            if isinstance(raw, SaleLine):
                line = SaleLine(raw.description, raw.quantity, raw.price, raw.part_id)
            else:
                line = SaleLine(
                    description=raw.get("description") or "",
                    quantity=raw.get("quantity"),
                    price=raw.get("price"),
                    part_id=raw.get("part_id"),
                )
            line.quantity = require_quantity(line.quantity)
            line.price = require_amount(line.price, "Price")
            desc = (line.description or "").strip()
            if not desc and line.part_id is not None:
                desc = inventory.require(line.part_id).name
            if not desc:
                raise ValidationError("Every sale line needs a description.")
            line.description = desc
            lines.append(line)
        if not lines:
            raise ValidationError("A sale needs at least one line item.")
        return lines

    def record_direct_sale(
        self,
        client_id: int,
        items: Iterable[Union[SaleLine, Mapping]],
        payment_mode: str = "Cash",
        remarks: Optional[str] = None,
        date: Optional[str] = None,
    ) -> int:
        """
        Record a walk-in sale: header, lines, stock for part-linked lines and
        the direct_sale ledger event, all or nothing.
        """
        self.authz.require(self.user_id, "sale.record")
        if payment_mode not in PAYMENT_MODES:
            raise ValidationError(f"Payment mode must be one of: {', '.join(PAYMENT_MODES)}.")
        lines = self._normalize_lines(items)
        total = round_money(sum(l.line_total for l in lines))
        day = parse_date(date, "Date") or today_str()
        stock = StockLedger(self.conn, self.user_id)

        with atomic(self.conn):
            self.clients.require(client_id)
            sale_code = self.sales.next_sale_code()
            sale_id = self.sales.insert_header(
                sale_code=sale_code, client_id=client_id, payment_mode=payment_mode,
                remarks=optional_text(remarks), total_amount=total, sale_date=day,
                created_by=self.user_id,
            )
            for line in lines:
                self.sales.insert_item(
                    sale_id, description=line.description, quantity=line.quantity,
                    price=line.price, part_id=line.part_id,
                )
                if line.part_id is not None:
                    stock.reserve(
                        line.part_id, line.quantity, reason="sale",
                        reference_table="direct_sales", reference_id=sale_id,
                    )
            self.ledger.append(
                client_id=client_id, kind="direct_sale", amount=total, event_date=day,
                sale_id=sale_id, note=f"Sale {sale_code}",
            )
        on_commit(self.conn, partial(
            log_event, get_audit_logger(), op="ledger.direct_sale", phase="commit",
            message="direct sale recorded",
            extra={"client_id": client_id, "sale_id": sale_id, "total": total},
        ))
        return sale_id

    def get_sale(self, sale_id: int) -> DirectSale:
        return self.sales.require(sale_id)

    def list_sale_items(self, sale_id: int) -> list[DirectSaleItem]:
        self.sales.require(sale_id)
        return self.sales.list_items(sale_id)

    def list_sales(self, client_id: Optional[int] = None, **filters) -> list[DirectSale]:
        return self.sales.list_sales(client_id=client_id, **filters)

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------
    def balance(self, client_id: int) -> float:
        self.clients.require(client_id)
        return self.ledger.balance(client_id)

    def reconciliation(self, client_id: int) -> Reconciliation:
        self.clients.require(client_id)
        t = self.reporting.client_source_totals(client_id)
        return Reconciliation(
            client_id=client_id,
            opening=t["opening"],
            delivered_total=t["delivered"],
            direct_sales_total=t["direct_sales"],
            payments_total=t["payments"],
            discounts_total=t["discounts"],
            ledger_balance=self.ledger.balance(client_id),
        )

    def statement(
        self,
        client_id: int,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> Statement:
        """
        Chronological lines with a running balance. The opening figure is the
        balance of everything dated before `date_from`.
        """
        client = self.clients.require(client_id)
        d_from = parse_date(date_from, "Start date")
        d_to = parse_date(date_to, "End date")
        if d_from and d_to and d_from > d_to:
            raise ValidationError("Start date must not be after end date.")

        opening = 0.0
        if d_from:
            opening = sum(
                e.amount for e in self.ledger.list_events(client_id) if e.event_date < d_from
            )
        running = round_money(opening)
        stmt = Statement(client=client, date_from=d_from, date_to=d_to, opening_balance=running)
        for ev in self.ledger.list_events(client_id, date_from=d_from, date_to=d_to):
            running = round_money(running + ev.amount)
            stmt.lines.append(
                StatementLine(
                    date=ev.event_date,
                    kind=ev.kind,
                    description=self._describe(ev),
                    debit=round_money(ev.amount) if ev.amount > 0 else 0.0,
                    credit=round_money(-ev.amount) if ev.amount < 0 else 0.0,
                    balance=running,
                )
            )
        return stmt

    @staticmethod
    def _describe(ev: LedgerEvent) -> str:
        return ev.note or _KIND_LABELS.get(ev.kind, ev.kind)

