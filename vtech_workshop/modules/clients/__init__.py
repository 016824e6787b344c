from .ledger import ClientLedger, Reconciliation, SaleLine, Statement, StatementLine
from .statement import render_statement_html, render_statement_pdf

__all__ = [
    "ClientLedger",
    "Reconciliation",
    "SaleLine",
    "Statement",
    "StatementLine",
    "render_statement_html",
    "render_statement_pdf",
]
