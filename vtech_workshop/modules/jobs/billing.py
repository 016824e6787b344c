"""
Job billing.

A job's bill is its labour charge plus the cost of the parts consumed on it:

    final_bill = labour_charge + sum(quantity x unit_price for each part line)

Adding a part reserves the stock, writes the part line (with the unit price
as it was at the time) and raises the bill in one transaction. Delivery
stamps the completion date and credits the client ledger in that same
transaction; the ledger refuses a second credit for the same job.
"""

from __future__ import annotations

import logging
import sqlite3
from functools import partial
from typing import Optional

from ...config import Settings, load_settings
from ...constants import STATUS_DELIVERED
from ...database.repositories.clients_repo import ClientsRepo
from ...database.repositories.inventory_repo import InventoryRepo
from ...database.repositories.jobs_repo import Job, JobPart, JobsRepo
from ...database.repositories.payroll_repo import PayrollRepo
from ...database.transactions import atomic, on_commit
from ...errors import DomainError, InvalidTransition, NotFound, ValidationError
from ...utils.helpers import round_money, to_iso_date, today_str
from ...utils.loggers import get_audit_logger, log_event
from ...utils.validators import optional_text, require_amount, require_quantity, require_text
from ..clients.ledger import ClientLedger
from ..inventory.stock import StockLedger
from ..users.authz import Authorizer
from .notify import StatusMessage, status_message
from .status import check_transition, is_closed

_log = logging.getLogger(__name__)


class JobBilling:
    def __init__(
        self,
        conn: sqlite3.Connection,
        user_id: Optional[int] = None,
        settings: Optional[Settings] = None,
    ):
        self.conn = conn
        self.user_id = user_id
        self.settings = settings or load_settings()
        self.jobs = JobsRepo(conn)
        self.clients = ClientsRepo(conn)
        self.inventory = InventoryRepo(conn)
        self.payroll = PayrollRepo(conn)
        self.stock = StockLedger(conn, user_id)
        self.ledger = ClientLedger(conn, user_id)
        self.authz = Authorizer(conn)

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------
    def create_job(
        self,
        client_id: int,
        item_name: str,
        problem: str,
        serial: Optional[str] = None,
        labour_charge: float = 0.0,
        remarks: Optional[str] = None,
        staff_id: Optional[int] = None,
    ) -> int:
        self.authz.require(self.user_id, "job.edit")
        item = require_text(item_name, "Item name")
        problem_n = require_text(problem, "Problem")
        labour = require_amount(labour_charge or 0.0, "Labour charge")
        with atomic(self.conn):
            self.clients.require(client_id)
            if staff_id is not None:
                self._require_active_staff(staff_id)
            job_code = self.jobs.next_job_code(today_str())
            job_id = self.jobs.insert(
                job_code=job_code, client_id=client_id, item_name=item, problem=problem_n,
                serial_no=optional_text(serial), remarks=optional_text(remarks),
                labour_charge=labour, created_by=self.user_id, staff_id=staff_id,
            )
        _log.info("job %s (%s) created for client %s", job_id, job_code, client_id)
        return job_id

    def update_details(
        self,
        job_id: int,
        *,
        item_name: str,
        problem: str,
        serial: Optional[str] = None,
        remarks: Optional[str] = None,
    ) -> None:
        self.authz.require(self.user_id, "job.edit")
        item = require_text(item_name, "Item name")
        problem_n = require_text(problem, "Problem")
        with atomic(self.conn):
            self.jobs.require(job_id)
            self.jobs.update_details(
                job_id, item_name=item, problem=problem_n,
                serial_no=optional_text(serial), remarks=optional_text(remarks),
            )

    def _require_active_staff(self, staff_id: int) -> None:
        if not self.payroll.require_staff(staff_id).is_active:
            raise ValidationError(f"Staff #{staff_id} is not active.")

    def assign_staff(self, job_id: int, staff_id: Optional[int]) -> Job:
        """Put a mechanic on an open job; `None` clears the assignment."""
        self.authz.require(self.user_id, "job.edit")
        with atomic(self.conn):
            job = self.jobs.require(job_id)
            if is_closed(job.status):
                raise InvalidTransition(f"Job {job.job_code} is {job.status}.")
            if staff_id is not None:
                self._require_active_staff(staff_id)
            self.jobs.assign_staff(job_id, staff_id)
        _log.info("job %s assigned to staff %s", job_id, staff_id)
        return self.jobs.require(job_id)

    def status_message(self, job_id: int, **kwargs) -> StatusMessage:
        job = self.jobs.require(job_id)
        return status_message(job, self.clients.require(job.client_id), **kwargs)

    def get_job(self, job_id: int) -> Job:
        return self.jobs.require(job_id)

    def list_jobs(
        self,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        status: Optional[str] = None,
        hide_delivered: bool = False,
        search: Optional[str] = None,
        client_id: Optional[int] = None,
    ) -> list[Job]:
        return self.jobs.list_jobs(
            date_from=date_from, date_to=date_to, status=status,
            hide_delivered=hide_delivered, search=search, client_id=client_id,
        )

    def list_parts(self, job_id: int) -> list[JobPart]:
        self.jobs.require(job_id)
        return self.jobs.list_part_lines(job_id)

    def soft_delete(self, job_id: int) -> None:
        """Hide a job (admin). Delivered jobs are on the ledger and stay."""
        self.authz.require(self.user_id, "job.delete")
        with atomic(self.conn):
            job = self.jobs.require(job_id)
            if job.status == STATUS_DELIVERED:
                raise DomainError("Delivered jobs cannot be deleted.")
            self.jobs.soft_delete(job_id)
        _log.info("job %s soft-deleted", job_id)

    # ------------------------------------------------------------------
    # Bill
    # ------------------------------------------------------------------
    def _require_editable(self, job: Job) -> None:
        if is_closed(job.status) and not self.settings.allow_parts_on_closed_jobs:
            raise InvalidTransition(f"Job {job.job_code} is {job.status}; its bill is closed.")

    def _apply_bill(self, job: Job, new_total: float, *, labour_charge: Optional[float] = None) -> float:
        """Write the new bill; a delivered job also gets the difference on the ledger."""
        new_total = round_money(max(new_total, 0.0))
        self.jobs.set_bill(job.job_id, final_bill=new_total, labour_charge=labour_charge)
        if job.status == STATUS_DELIVERED:
            self.ledger.on_job_bill_changed(
                job.client_id, job.job_id, new_total - job.final_bill, job_code=job.job_code
            )
        return new_total

    def add_part(self, job_id: int, part_id: int, quantity: int) -> float:
        """
        Consume `quantity` of a part on the job. Returns the new bill total,
        current bill + unit price x quantity.
        """
        self.authz.require(self.user_id, "job.edit")
        qty = require_quantity(quantity)
        with atomic(self.conn):
            job = self.jobs.require(job_id)
            self._require_editable(job)
            part = self.inventory.require(part_id)
            unit_price = round_money(part.price)
            line_id = self.jobs.insert_part_line(job_id, part_id, qty, unit_price)
            self.stock.reserve(
                part_id, qty, reason="job", reference_table="job_parts", reference_id=line_id,
            )
            new_total = self._apply_bill(job, job.final_bill + unit_price * qty)
        on_commit(self.conn, partial(
            log_event, get_audit_logger(), op="job.add_part", phase="commit",
            message="part added to job",
            extra={"job_id": job_id, "part_id": part_id, "quantity": qty,
                   "unit_price": unit_price, "final_bill": new_total},
        ))
        return new_total

    def remove_part(self, job_part_id: int) -> float:
        """Take a part line off its job: stock goes back, bill goes down."""
        self.authz.require(self.user_id, "job.edit")
        with atomic(self.conn):
            line = self.jobs.get_part_line(job_part_id)
            if line is None:
                raise NotFound(f"Job part line #{job_part_id} not found.")
            job = self.jobs.require(line.job_id)
            self._require_editable(job)
            self.jobs.delete_part_line(job_part_id)
            self.stock.release(
                line.part_id, line.quantity,
                reference_table="job_parts", reference_id=job_part_id,
            )
            new_total = self._apply_bill(job, job.final_bill - line.line_total)
        on_commit(self.conn, partial(
            log_event, get_audit_logger(), op="job.remove_part", phase="commit",
            message="part removed from job",
            extra={"job_id": job.job_id, "job_part_id": job_part_id, "final_bill": new_total},
        ))
        return new_total

    def set_labour_charge(self, job_id: int, amount: float) -> float:
        """Set labour and recompute the bill from its parts: labour + sum(lines)."""
        self.authz.require(self.user_id, "job.edit")
        labour = require_amount(amount, "Labour charge")
        with atomic(self.conn):
            job = self.jobs.require(job_id)
            self._require_editable(job)
            parts = self.jobs.parts_total(job_id)
            new_total = self._apply_bill(job, labour + parts, labour_charge=labour)
        _log.info("job %s labour set to %.2f, bill %.2f", job_id, labour, new_total)
        return new_total

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    def set_status(self, job_id: int, status: str) -> Job:
        """
        Move the job to `status`. Re-applying the current status changes
        nothing. Delivered stamps the completion date and credits the client
        ledger with the final bill, atomically.
        """
        self.authz.require(self.user_id, "job.edit")
        with atomic(self.conn):
            job = self.jobs.require(job_id)
            if not check_transition(job.status, status):
                return job
            delivering = status == STATUS_DELIVERED
            self.jobs.set_status(job_id, status, completed=delivering)
            updated = self.jobs.require(job_id)
            balance = None
            if delivering:
                balance = self.ledger.on_job_delivered(
                    job.client_id, job_id, job.final_bill,
                    event_date=to_iso_date(updated.date_completed), job_code=job.job_code,
                )
        on_commit(self.conn, partial(
            log_event, get_audit_logger(), op="job.status", phase="commit",
            message=f"{job.status} -> {status}",
            extra={"job_id": job_id, "final_bill": job.final_bill, "balance": balance},
        ))
        return updated

    def deliver(self, job_id: int) -> Job:
        return self.set_status(job_id, STATUS_DELIVERED)
