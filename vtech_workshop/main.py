"""
Command-line entry point (`vtech-workshop`).

    vtech-workshop init-db
    vtech-workshop report --from 2025-01-01 --to 2025-01-31 [--json]
    vtech-workshop monthly --year 2025 --month 1 [--json]
    vtech-workshop low-stock
    vtech-workshop statement CLIENT_ID [--from D] [--to D] [--out FILE]
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional, Sequence

from .config import Settings, load_settings
from .constants import APP_NAME
from .database import get_connection
from .errors import DomainError
from .modules.clients import ClientLedger, render_statement_html, render_statement_pdf
from .modules.inventory import StockLedger
from .modules.reporting import FinancialAggregator, FinancialSummary
from .utils.helpers import fmt_money
from .utils.loggers import configure_logging, get_logger

_log = logging.getLogger(__name__)


def _print_summary(summary: FinancialSummary, as_json: bool) -> None:
    if as_json:
        print(json.dumps(summary.as_dict(), indent=2))
        return
    rows = [
        ("Total sales", summary.total_sales),
        ("Parts cost", summary.parts_cost),
        ("Gross profit", summary.gross_profit),
        ("Discounts", summary.discounts),
        ("Salary", summary.salary),
        ("Loan paid", summary.loan_paid),
        ("Expenses", summary.expenses),
        ("Total outflow", summary.total_outflow),
        ("Net profit", summary.net_profit),
    ]
    print(f"Financial report {summary.date_from} .. {summary.date_to}")
    for label, value in rows:
        print(f"  {label:<14}{fmt_money(value):>16}")
    if summary.is_partial:
        print(f"  (partial: estimated terms {', '.join(summary.estimated_terms)})")


# ---- Commands ----

def cmd_init_db(conn, settings: Settings, args) -> int:
    print(f"Database ready at {settings.db_path}")
    return 0


def cmd_report(conn, settings: Settings, args) -> int:
    summary = FinancialAggregator(conn, settings).compute_report(args.date_from, args.date_to)
    _print_summary(summary, args.json)
    return 0


def cmd_monthly(conn, settings: Settings, args) -> int:
    summary = FinancialAggregator(conn, settings).monthly_report(args.year, args.month)
    _print_summary(summary, args.json)
    return 0


def cmd_low_stock(conn, settings: Settings, args) -> int:
    parts = StockLedger(conn).low_stock()
    if not parts:
        print("No parts at or below minimum stock.")
        return 0
    print(f"{'ID':>5}  {'Part':<30}{'Stock':>7}{'Min':>6}")
    for p in parts:
        print(f"{p.part_id:>5}  {p.name[:30]:<30}{p.stock:>7}{p.minstock:>6}")
    return 0


def cmd_statement(conn, settings: Settings, args) -> int:
    stmt = ClientLedger(conn).statement(args.client_id, args.date_from, args.date_to)
    if args.out and str(args.out).lower().endswith(".pdf"):
        try:
            render_statement_pdf(stmt, args.out)
        except ImportError:
            print("error: PDF output needs WeasyPrint (pip install vtech-workshop[pdf])", file=sys.stderr)
            return 1
        print(f"Statement written to {args.out}")
    elif args.out:
        Path(args.out).write_text(render_statement_html(stmt), encoding="utf-8")
        print(f"Statement written to {args.out}")
    else:
        print(render_statement_html(stmt))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vtech-workshop", description=APP_NAME)
    parser.add_argument("--db", type=Path, default=None, help="SQLite database file (overrides VTECH_DB_PATH)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init-db", help="create or upgrade the database")
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser("report", help="financial report for a date range")
    p.add_argument("--from", dest="date_from", required=True, help="YYYY-MM-DD, inclusive")
    p.add_argument("--to", dest="date_to", required=True, help="YYYY-MM-DD, inclusive")
    p.add_argument("--json", action="store_true")
    p.set_defaults(func=cmd_report)

    p = sub.add_parser("monthly", help="financial report for one calendar month")
    p.add_argument("--year", type=int, required=True)
    p.add_argument("--month", type=int, required=True)
    p.add_argument("--json", action="store_true")
    p.set_defaults(func=cmd_monthly)

    p = sub.add_parser("low-stock", help="parts at or below their minimum stock")
    p.set_defaults(func=cmd_low_stock)

    p = sub.add_parser("statement", help="client statement as HTML (or PDF with --out x.pdf)")
    p.add_argument("client_id", type=int)
    p.add_argument("--from", dest="date_from", default=None)
    p.add_argument("--to", dest="date_to", default=None)
    p.add_argument("--out", default=None)
    p.set_defaults(func=cmd_statement)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings()
    if args.db is not None:
        settings = replace(settings, db_path=args.db)

    get_logger()
    configure_logging(settings.log_level, settings.log_file)

    conn = get_connection(settings.db_path)
    try:
        return args.func(conn, settings, args)
    except DomainError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    finally:
        conn.close()


if __name__ == "__main__":
    sys.exit(main())
