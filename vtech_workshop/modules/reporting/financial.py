"""
Period financial report.

    totalSales   = delivered job bills (by completion date) + direct sales
    partsCost    = parts_cost_ratio x (part lines of those jobs + direct sale lines)
    grossProfit  = totalSales - partsCost
    totalOutflow = discounts + salary + loanPaid + expenses
    netProfit    = grossProfit - totalOutflow

Each term is fetched on its own. A term whose query fails is kept as a
TermResult with ok=False, counted as zero, and the summary is flagged
partial with the names of the estimated terms.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, Optional

from ...config import Settings, load_settings
from ...constants import (
    ATTENDANCE_MULTIPLIER,
    STATUS_DELIVERED,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
    STATUS_REPAIRED,
)
from ...database.repositories.reporting_repo import ReportingRepo
from ...errors import DomainError, ValidationError
from ...utils.helpers import month_bounds, round_money, today_str
from ...utils.validators import parse_date

_log = logging.getLogger(__name__)

TERM_NAMES = (
    "job_sales",
    "direct_sales",
    "parts_value",
    "discounts",
    "salary",
    "loan_paid",
    "expenses",
)


@dataclass(frozen=True)
class TermResult:
    name: str
    value: float = 0.0
    ok: bool = True
    error: Optional[str] = None

    @property
    def amount(self) -> float:
        """Value used in the arithmetic: zero when the fetch failed."""
        return self.value if self.ok else 0.0


@dataclass
class FinancialSummary:
    date_from: str
    date_to: str
    parts_cost_ratio: float
    terms: Dict[str, TermResult] = field(default_factory=dict)

    def _t(self, name: str) -> float:
        term = self.terms.get(name)
        return term.amount if term else 0.0

    @property
    def total_sales(self) -> float:
        return round_money(self._t("job_sales") + self._t("direct_sales"))

    @property
    def parts_cost(self) -> float:
        return round_money(self.parts_cost_ratio * self._t("parts_value"))

    @property
    def gross_profit(self) -> float:
        return round_money(self.total_sales - self.parts_cost)

    @property
    def discounts(self) -> float:
        return round_money(self._t("discounts"))

    @property
    def salary(self) -> float:
        return round_money(self._t("salary"))

    @property
    def loan_paid(self) -> float:
        return round_money(self._t("loan_paid"))

    @property
    def expenses(self) -> float:
        return round_money(self._t("expenses"))

    @property
    def total_outflow(self) -> float:
        return round_money(self.discounts + self.salary + self.loan_paid + self.expenses)

    @property
    def net_profit(self) -> float:
        return round_money(self.gross_profit - self.total_outflow)

    @property
    def estimated_terms(self) -> list[str]:
        return [name for name, t in self.terms.items() if not t.ok]

    @property
    def is_partial(self) -> bool:
        return bool(self.estimated_terms)

    def as_dict(self) -> dict:
        return {
            "date_from": self.date_from,
            "date_to": self.date_to,
            "total_sales": self.total_sales,
            "parts_cost": self.parts_cost,
            "gross_profit": self.gross_profit,
            "discounts": self.discounts,
            "salary": self.salary,
            "loan_paid": self.loan_paid,
            "expenses": self.expenses,
            "total_outflow": self.total_outflow,
            "net_profit": self.net_profit,
            "is_partial": self.is_partial,
            "estimated_terms": self.estimated_terms,
        }


@dataclass(frozen=True)
class DashboardStats:
    total_jobs: int
    pending: int
    completed: int
    todays_billing: float


class FinancialAggregator:
    def __init__(self, conn: sqlite3.Connection, settings: Optional[Settings] = None) -> None:
        self.conn = conn
        self.settings = settings or load_settings()
        self.repo = ReportingRepo(conn)

    # ---- helpers ----

    def _fetch(self, name: str, fn: Callable[[], float]) -> TermResult:
        try:
            return TermResult(name, round_money(fn()))
        except (sqlite3.Error, DomainError) as e:
            _log.warning("report term %s failed, counted as zero: %s", name, e)
            return TermResult(name, 0.0, ok=False, error=str(e))

    def _term_fetchers(self, d_from: str, d_to: str) -> Dict[str, Callable[[], float]]:
        r = self.repo
        return {
            "job_sales": lambda: r.delivered_jobs_total(d_from, d_to),
            "direct_sales": lambda: r.direct_sales_total(d_from, d_to),
            "parts_value": lambda: r.parts_value(d_from, d_to),
            "discounts": lambda: r.discounts_total(d_from, d_to),
            "salary": lambda: r.salary_total(d_from, d_to, ATTENDANCE_MULTIPLIER),
            "loan_paid": lambda: r.loan_paid_total(d_from, d_to),
            "expenses": lambda: r.expenses_total(d_from, d_to),
        }

    # ---- public API ----

    def compute_report(self, date_from, date_to) -> FinancialSummary:
        """
        Report for [date_from, date_to], both ends inclusive by calendar day.
        An inverted range selects nothing and yields an all-zero report.
        """
        d_from = parse_date(date_from, "Start date")
        d_to = parse_date(date_to, "End date")
        if not d_from or not d_to:
            raise ValidationError("Both report dates are required.")

        summary = FinancialSummary(d_from, d_to, self.settings.parts_cost_ratio)
        fetchers = self._term_fetchers(d_from, d_to)
        for name in TERM_NAMES:
            summary.terms[name] = self._fetch(name, fetchers[name])
        if summary.is_partial:
            _log.warning(
                "report %s..%s is partial; estimated terms: %s",
                d_from, d_to, ", ".join(summary.estimated_terms),
            )
        return summary

    def monthly_report(self, year: int, month: int) -> FinancialSummary:
        try:
            d_from, d_to = month_bounds(year, month)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        return self.compute_report(d_from, d_to)

    def dashboard_stats(self, today: Optional[date | str] = None) -> DashboardStats:
        """
        Totals for the landing page. Pending counts Pending + In-Progress,
        completed counts Repaired + Delivered, today's billing sums final
        bills of jobs created on `today`.
        """
        day = parse_date(today) or today_str()
        counts = self.repo.job_status_counts()
        return DashboardStats(
            total_jobs=sum(counts.values()),
            pending=counts.get(STATUS_PENDING, 0) + counts.get(STATUS_IN_PROGRESS, 0),
            completed=counts.get(STATUS_REPAIRED, 0) + counts.get(STATUS_DELIVERED, 0),
            todays_billing=round_money(self.repo.billing_for_jobs_created_on(day)),
        )

