# tests/test_reporting_financial.py
import sqlite3
from dataclasses import replace

import pytest

from vtech_workshop.database.repositories.expenses_repo import ExpensesRepo
from vtech_workshop.database.repositories.payroll_repo import PayrollRepo
from vtech_workshop.errors import ValidationError
from vtech_workshop.modules.reporting import TERM_NAMES, FinancialAggregator


def _delivered_job(conn, billing, client_id, part_id, *, labour, qty, completed_on):
    job_id = billing.create_job(client_id, "Moving head", "No lamp", labour_charge=labour)
    if qty:
        billing.add_part(job_id, part_id, qty)
    billing.deliver(job_id)
    # pin the completion date so the period is deterministic
    conn.execute(
        "UPDATE jobs SET date_completed=? WHERE job_id=?", (f"{completed_on} 17:45:00", job_id)
    )
    conn.commit()
    return job_id


@pytest.fixture
def march(conn, billing, ledger, client_id, part_id):
    """
    March 2025 for the shop:
      job A delivered 03-10: labour 300 + 2 x 50 parts = 400
      job B delivered 04-02 (out of range): labour 1000
      direct sale 03-15: 1 bulb @ 60 + service 140 = 200
      payment 03-20: 350 with 25 discount
      staff: 400/day, 03-03 full + 03-04 half
      loan 03-31: 500, expenses 03-01: 120 and 03-31 late evening: 80
    """
    _delivered_job(conn, billing, client_id, part_id, labour=300, qty=2, completed_on="2025-03-10")
    _delivered_job(conn, billing, client_id, part_id, labour=1000, qty=0, completed_on="2025-04-02")
    ledger.record_direct_sale(
        client_id,
        [
            {"part_id": part_id, "quantity": 1, "price": 60},
            {"description": "Service", "quantity": 1, "price": 140},
        ],
        date="2025-03-15",
    )
    ledger.record_payment(client_id, 350, discount=25, date="2025-03-20")

    payroll = PayrollRepo(conn)
    sid = payroll.create_staff("Mahesh", 400)
    payroll.mark_attendance(sid, "2025-03-03", "full")
    payroll.mark_attendance(sid, "2025-03-04", "half")
    payroll.mark_attendance(sid, "2025-03-05", "absent")
    payroll.record_loan_payment("Bank", 500, "2025-03-31")

    expenses = ExpensesRepo(conn)
    expenses.create_expense("Shop rent", 120, "2025-03-01")
    conn.execute(
        "INSERT INTO expenses(description, amount, date) VALUES (?,?,?)",
        ("Courier", 80, "2025-03-31 21:30:00"),
    )
    conn.commit()


def test_march_report(conn, settings, march):
    summary = FinancialAggregator(conn, settings).compute_report("2025-03-01", "2025-03-31")

    assert summary.terms["job_sales"].value == 400
    assert summary.terms["direct_sales"].value == 200
    assert summary.terms["parts_value"].value == 100 + 60 + 140
    assert summary.total_sales == 600
    assert summary.parts_cost == 270
    assert summary.gross_profit == 330
    assert summary.discounts == 25
    assert summary.salary == 600
    assert summary.loan_paid == 500
    assert summary.expenses == 200
    assert summary.total_outflow == 1325
    assert summary.net_profit == 330 - 1325
    assert not summary.is_partial


def test_report_identities_hold(conn, settings, march):
    s = FinancialAggregator(conn, settings).compute_report("2025-01-01", "2025-12-31")
    assert s.gross_profit == round(s.total_sales - s.parts_cost, 2)
    assert s.total_outflow == round(s.discounts + s.salary + s.loan_paid + s.expenses, 2)
    assert s.net_profit == round(s.gross_profit - s.total_outflow, 2)
    assert s.terms["job_sales"].value == 1400


def test_single_day_range_is_inclusive(conn, settings, march):
    s = FinancialAggregator(conn, settings).compute_report("2025-03-31", "2025-03-31")
    assert s.expenses == 80
    assert s.loan_paid == 500
    assert s.total_sales == 0


def test_parts_cost_ratio_comes_from_settings(conn, settings, march):
    agg = FinancialAggregator(conn, replace(settings, parts_cost_ratio=0.5))
    assert agg.compute_report("2025-03-01", "2025-03-31").parts_cost == 150


def test_empty_store_and_inverted_range_give_zeros(conn, settings):
    agg = FinancialAggregator(conn, settings)
    for d_from, d_to in (("2025-03-01", "2025-03-31"), ("2025-03-31", "2025-03-01")):
        s = agg.compute_report(d_from, d_to)
        assert s.total_sales == 0
        assert s.net_profit == 0
        assert not s.is_partial


def test_failed_term_is_estimated_not_fatal(conn, settings, march, monkeypatch):
    agg = FinancialAggregator(conn, settings)

    def boom(*args, **kwargs):
        raise sqlite3.OperationalError("no such table: expenses")

    monkeypatch.setattr(agg.repo, "expenses_total", boom)
    s = agg.compute_report("2025-03-01", "2025-03-31")

    assert s.is_partial
    assert s.estimated_terms == ["expenses"]
    assert s.terms["expenses"].ok is False
    assert "no such table" in s.terms["expenses"].error
    assert s.expenses == 0
    assert s.total_outflow == 25 + 600 + 500
    assert s.as_dict()["estimated_terms"] == ["expenses"]
    assert set(s.terms) == set(TERM_NAMES)


def test_report_dates_are_validated(conn, settings):
    agg = FinancialAggregator(conn, settings)
    with pytest.raises(ValidationError):
        agg.compute_report(None, "2025-03-31")
    with pytest.raises(ValidationError):
        agg.compute_report("2025-13-01", "2025-12-31")
    with pytest.raises(ValidationError):
        agg.monthly_report(2025, 13)


def test_monthly_report_covers_the_calendar_month(conn, settings, march):
    s = FinancialAggregator(conn, settings).monthly_report(2025, 3)
    assert (s.date_from, s.date_to) == ("2025-03-01", "2025-03-31")
    assert s.total_sales == 600

    feb = FinancialAggregator(conn, settings).monthly_report(2024, 2)
    assert feb.date_to == "2024-02-29"


def test_dashboard_stats(conn, settings, billing, client_id):
    a = billing.create_job(client_id, "Amp", "Dead", labour_charge=100)
    billing.create_job(client_id, "Mixer", "Hum", labour_charge=50)
    c = billing.create_job(client_id, "Fog machine", "No heat", labour_charge=75)
    billing.set_status(a, "Repaired")
    billing.deliver(c)
    today = conn.execute("SELECT DATE(date_created) AS d FROM jobs LIMIT 1").fetchone()["d"]

    stats = FinancialAggregator(conn, settings).dashboard_stats(today)
    assert stats.total_jobs == 3
    assert stats.pending == 1
    assert stats.completed == 2
    assert stats.todays_billing == 225
