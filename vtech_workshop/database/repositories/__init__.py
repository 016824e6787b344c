# database/repositories/__init__.py
"""
Repository layer public API.

Usage:
    from vtech_workshop.database.repositories import (
        ClientsRepo, Client,
        InventoryRepo, Part,
        JobsRepo, Job, JobPart,
        LedgerRepo, LedgerEvent,
        ...
    )
"""

# ---------------- Clients ------------------
from .clients_repo import ClientsRepo, Client

# --------------- Payments ------------------
from .client_payments_repo import ClientPaymentsRepo, ClientPayment

# ------------- Direct sales ----------------
from .direct_sales_repo import DirectSalesRepo, DirectSale, DirectSaleItem

# ---------------- Expenses -----------------
from .expenses_repo import ExpensesRepo, ExpenseCategory

# ---------------- Inventory ----------------
from .inventory_repo import InventoryRepo, Part

# ------------------ Jobs -------------------
from .jobs_repo import JobsRepo, Job, JobPart

# ----------------- Ledger ------------------
from .ledger_repo import LedgerRepo, LedgerEvent

# ---------------- Payroll ------------------
from .payroll_repo import PayrollRepo, Staff

# --------------- Reporting -----------------
from .reporting_repo import ReportingRepo

# ----------------- Users -------------------
from .users_repo import UsersRepo

__all__ = [
    "ClientsRepo",
    "Client",
    "ClientPaymentsRepo",
    "ClientPayment",
    "DirectSalesRepo",
    "DirectSale",
    "DirectSaleItem",
    "ExpensesRepo",
    "ExpenseCategory",
    "InventoryRepo",
    "Part",
    "JobsRepo",
    "Job",
    "JobPart",
    "LedgerRepo",
    "LedgerEvent",
    "PayrollRepo",
    "Staff",
    "ReportingRepo",
    "UsersRepo",
]
