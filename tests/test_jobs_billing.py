# tests/test_jobs_billing.py
import re
import time
from dataclasses import replace
from datetime import date, datetime, timedelta

import pytest

from vtech_workshop.errors import (
    DomainError,
    InsufficientStock,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from vtech_workshop.database.repositories.payroll_repo import PayrollRepo
from vtech_workshop.modules.clients import ClientLedger
from vtech_workshop.modules.inventory import StockLedger
from vtech_workshop.modules.jobs import JobBilling, check_transition, is_closed
from vtech_workshop.modules.reporting import FinancialAggregator


def _ledger_rows(conn, job_id):
    return [
        dict(r)
        for r in conn.execute(
            "SELECT kind, CAST(amount AS REAL) AS amount, event_date FROM ledger_events "
            "WHERE job_id=? ORDER BY event_id",
            (job_id,),
        ).fetchall()
    ]


# ---------------------------------------------------------------------------
# Bill arithmetic
# ---------------------------------------------------------------------------

def test_job_code_and_initial_bill(billing, client_id):
    job_id = billing.create_job(client_id, "PAR can", "Flickers", serial="PAR-0091", labour_charge=150)
    job = billing.get_job(job_id)
    assert re.fullmatch(r"JOB-\d{8}-0001", job.job_code)
    assert job.status == "Pending"
    assert job.labour_charge == 150
    assert job.final_bill == 150
    assert job.client_name == "Sound & Light Co"

    second = billing.get_job(billing.create_job(client_id, "Mixer", "Hum"))
    assert second.job_code.endswith("-0002")


def test_create_job_requires_fields_and_client(billing, client_id):
    with pytest.raises(ValidationError):
        billing.create_job(client_id, "", "Dead")
    with pytest.raises(ValidationError):
        billing.create_job(client_id, "Amp", "  ")
    with pytest.raises(ValidationError):
        billing.create_job(client_id, "Amp", "Dead", labour_charge=-5)
    with pytest.raises(NotFound):
        billing.create_job(424242, "Amp", "Dead")


def test_add_part_raises_bill_by_price_times_quantity(conn, billing, client_id, part_id):
    job_id = billing.create_job(client_id, "Moving head", "No lamp", labour_charge=100)
    other = StockLedger(conn).create_part("Cooling fan", 35.5, 6)

    assert billing.add_part(job_id, part_id, 2) == 200
    assert billing.add_part(job_id, other, 3) == 306.5

    lines = billing.list_parts(job_id)
    assert [(l.part_name, l.quantity, l.unit_price) for l in lines] == [
        ("Halogen bulb 575W", 2, 50),
        ("Cooling fan", 3, 35.5),
    ]
    job = billing.get_job(job_id)
    assert job.final_bill == job.labour_charge + sum(l.line_total for l in lines)
    assert StockLedger(conn).get_part(part_id).stock == 8


def test_add_part_without_stock_changes_nothing(conn, billing, client_id, part_id):
    job_id = billing.create_job(client_id, "Moving head", "No lamp", labour_charge=100)
    with pytest.raises(InsufficientStock):
        billing.add_part(job_id, part_id, 11)

    assert billing.get_job(job_id).final_bill == 100
    assert billing.list_parts(job_id) == []
    assert StockLedger(conn).get_part(part_id).stock == 10


def test_part_line_keeps_price_at_time_of_use(conn, billing, client_id, part_id, admin_id):
    job_id = billing.create_job(client_id, "Moving head", "No lamp")
    billing.add_part(job_id, part_id, 1)
    StockLedger(conn, admin_id).update_part(part_id, name="Halogen bulb 575W", price=80, stock=9)

    billing.add_part(job_id, part_id, 1)
    assert [l.unit_price for l in billing.list_parts(job_id)] == [50, 80]
    assert billing.get_job(job_id).final_bill == 130


def test_labour_charge_recomputes_from_parts(billing, client_id, part_id):
    job_id = billing.create_job(client_id, "Moving head", "No lamp", labour_charge=100)
    billing.add_part(job_id, part_id, 2)

    assert billing.set_labour_charge(job_id, 250) == 350
    assert billing.set_labour_charge(job_id, 0) == 100
    with pytest.raises(ValidationError):
        billing.set_labour_charge(job_id, -1)


def test_remove_part_returns_stock_and_lowers_bill(conn, billing, client_id, part_id):
    job_id = billing.create_job(client_id, "Moving head", "No lamp", labour_charge=100)
    billing.add_part(job_id, part_id, 3)
    line = billing.list_parts(job_id)[0]

    assert billing.remove_part(line.job_part_id) == 100
    assert billing.list_parts(job_id) == []
    assert StockLedger(conn).get_part(part_id).stock == 10
    with pytest.raises(NotFound):
        billing.remove_part(line.job_part_id)


# ---------------------------------------------------------------------------
# Status machine
# ---------------------------------------------------------------------------

def test_transition_rules():
    assert check_transition("Pending", "In-Progress")
    assert check_transition("Pending", "Repaired")
    assert check_transition("In-Progress", "Cancelled")
    assert check_transition("Repaired", "Repaired") is False

    with pytest.raises(InvalidTransition):
        check_transition("Repaired", "Pending")
    with pytest.raises(InvalidTransition):
        check_transition("Delivered", "Cancelled")
    with pytest.raises(InvalidTransition):
        check_transition("Cancelled", "Pending")
    with pytest.raises(ValidationError):
        check_transition("Pending", "Lost")

    assert is_closed("Delivered") and is_closed("Cancelled")
    assert not is_closed("Repaired")


def test_set_status_same_value_is_noop(billing, client_id):
    job_id = billing.create_job(client_id, "Amp", "Dead")
    billing.set_status(job_id, "In-Progress")
    before = billing.get_job(job_id)
    after = billing.set_status(job_id, "In-Progress")
    assert after.status == "In-Progress"
    assert after.date_updated == before.date_updated


def test_backward_move_is_refused(billing, client_id):
    job_id = billing.create_job(client_id, "Amp", "Dead")
    billing.set_status(job_id, "Repaired")
    with pytest.raises(InvalidTransition):
        billing.set_status(job_id, "In-Progress")
    assert billing.get_job(job_id).status == "Repaired"


def test_delivery_posts_final_bill_once(conn, billing, ledger, client_id, part_id):
    job_id = billing.create_job(client_id, "Moving head", "No lamp", labour_charge=100)
    billing.add_part(job_id, part_id, 2)

    delivered = billing.deliver(job_id)
    assert delivered.status == "Delivered"
    assert delivered.date_completed is not None
    assert ledger.balance(client_id) == 200

    # re-applying the status and re-posting the credit both leave one event
    billing.set_status(job_id, "Delivered")
    assert ledger.on_job_delivered(client_id, job_id, 200) == 200
    rows = _ledger_rows(conn, job_id)
    assert [r["kind"] for r in rows] == ["job_delivered"]
    assert rows[0]["event_date"] == delivered.date_completed[:10]


def test_closed_job_bill_is_frozen_by_default(billing, client_id, part_id):
    job_id = billing.create_job(client_id, "Amp", "Dead", labour_charge=100)
    billing.deliver(job_id)
    with pytest.raises(InvalidTransition):
        billing.add_part(job_id, part_id, 1)
    with pytest.raises(InvalidTransition):
        billing.set_labour_charge(job_id, 500)

    cancelled = billing.create_job(client_id, "Amp", "Dead")
    billing.set_status(cancelled, "Cancelled")
    with pytest.raises(InvalidTransition):
        billing.add_part(cancelled, part_id, 1)
    with pytest.raises(InvalidTransition):
        billing.set_status(cancelled, "Pending")


def test_parts_on_delivered_job_adjust_ledger_when_allowed(conn, staff_id, settings, client_id, part_id):
    billing = JobBilling(conn, staff_id, replace(settings, allow_parts_on_closed_jobs=True))
    ledger = ClientLedger(conn, staff_id)
    job_id = billing.create_job(client_id, "Amp", "Dead", labour_charge=100)
    billing.deliver(job_id)

    assert billing.add_part(job_id, part_id, 1) == 150
    assert ledger.balance(client_id) == 150
    line = billing.list_parts(job_id)[0]
    assert billing.remove_part(line.job_part_id) == 100
    assert ledger.balance(client_id) == 100

    kinds = [r["kind"] for r in _ledger_rows(conn, job_id)]
    assert kinds == ["job_delivered", "job_adjustment", "job_adjustment"]
    assert ledger.reconciliation(client_id).consistent


# ---------------------------------------------------------------------------
# Listing and deletion
# ---------------------------------------------------------------------------

def test_list_jobs_filters(billing, client_id):
    a = billing.create_job(client_id, "PAR can", "Flickers")
    b = billing.create_job(client_id, "Fog machine", "No heat")
    billing.deliver(b)

    assert [j.job_id for j in billing.list_jobs()] == [b, a]
    assert [j.job_id for j in billing.list_jobs(hide_delivered=True)] == [a]
    assert [j.job_id for j in billing.list_jobs(status="Delivered")] == [b]
    assert [j.job_id for j in billing.list_jobs(search="fog")] == [b]
    assert [j.job_id for j in billing.list_jobs(client_id=client_id + 1)] == []


def test_soft_delete_is_admin_only_and_spares_delivered(conn, billing, client_id, admin_id, settings):
    job_id = billing.create_job(client_id, "Amp", "Dead")
    with pytest.raises(PermissionDenied):
        billing.soft_delete(job_id)

    admin = JobBilling(conn, admin_id, settings)
    admin.soft_delete(job_id)
    assert admin.list_jobs() == []
    with pytest.raises(NotFound):
        admin.get_job(job_id)

    done = admin.create_job(client_id, "Amp", "Dead")
    admin.deliver(done)
    with pytest.raises(DomainError):
        admin.soft_delete(done)


def test_update_details_rewrites_description_fields(billing, client_id):
    job_id = billing.create_job(client_id, "Amp", "Hum")
    billing.update_details(
        job_id, item_name=" Amp 2000W ", problem="Hum on left channel", serial="SN-7", remarks=""
    )
    job = billing.get_job(job_id)
    assert (job.item_name, job.problem, job.serial_no, job.remarks) == (
        "Amp 2000W", "Hum on left channel", "SN-7", None,
    )
    assert job.date_updated is not None

    with pytest.raises(ValidationError):
        billing.update_details(job_id, item_name="", problem="Hum")
    with pytest.raises(NotFound):
        billing.update_details(999, item_name="Amp", problem="Hum")


# ---------------------------------------------------------------------------
# Money precision
# ---------------------------------------------------------------------------

def test_prices_carry_at_most_two_decimals(billing, stock, client_id):
    with pytest.raises(ValidationError):
        stock.create_part("Fuse 5A", 12.345, 10)
    fuse = stock.create_part("Fuse 5A", 12.34, 10)

    job_id = billing.create_job(client_id, "Dimmer pack", "Blown fuse", labour_charge=0.1)
    assert billing.add_part(job_id, fuse, 3) == pytest.approx(37.12)
    job = billing.get_job(job_id)
    lines = billing.list_parts(job_id)
    assert lines[0].unit_price == 12.34
    assert job.final_bill == pytest.approx(job.labour_charge + sum(l.line_total for l in lines))

    with pytest.raises(ValidationError):
        billing.set_labour_charge(job_id, "0.005")


# ---------------------------------------------------------------------------
# Local calendar dates
# ---------------------------------------------------------------------------

@pytest.fixture
def far_east_clock(monkeypatch):
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")
    monkeypatch.setenv("TZ", "Etc/GMT-14")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


def test_job_dates_follow_local_calendar(far_east_clock, conn, billing, settings, client_id):
    job_id = billing.create_job(client_id, "Strobe", "Dead", labour_charge=300)
    job = billing.get_job(job_id)
    today = date.today().isoformat()

    assert job.job_code == f"JOB-{today.replace('-', '')}-0001"
    assert job.date_created[:10] == today
    created = datetime.strptime(job.date_created, "%Y-%m-%d %H:%M:%S")
    assert abs(created - datetime.now()) < timedelta(minutes=5)
    assert FinancialAggregator(conn, settings).dashboard_stats().todays_billing == 300

    delivered = billing.deliver(job_id)
    assert delivered.date_completed[:10] == today
    assert _ledger_rows(conn, job_id) == [{"kind": "job_delivered", "amount": 300.0, "event_date": today}]


# ---------------------------------------------------------------------------
# Mechanics and client messages
# ---------------------------------------------------------------------------

def test_mechanic_assignment(conn, billing, client_id):
    payroll = PayrollRepo(conn)
    imran = payroll.create_staff("Imran", 500)

    job_id = billing.create_job(client_id, "Amp", "No sound", staff_id=imran)
    job = billing.get_job(job_id)
    assert (job.staff_id, job.staff_name) == (imran, "Imran")
    assert billing.assign_staff(job_id, None).staff_id is None

    with pytest.raises(NotFound):
        billing.assign_staff(job_id, 999)
    with pytest.raises(NotFound):
        billing.create_job(client_id, "Amp", "No sound", staff_id=999)

    conn.execute("UPDATE staff SET is_active=0 WHERE staff_id=?", (imran,))
    conn.commit()
    with pytest.raises(ValidationError):
        billing.assign_staff(job_id, imran)

    billing.set_status(job_id, "Cancelled")
    with pytest.raises(InvalidTransition):
        billing.assign_staff(job_id, None)


def test_status_message_per_status(conn, billing, client_id, part_id):
    job_id = billing.create_job(client_id, "Moving head", "No tilt", labour_charge=1200)
    billing.add_part(job_id, part_id, 1)

    msg = billing.status_message(job_id)
    assert msg.recipient == "9876543210"
    assert msg.text.startswith("Hello Sound & Light Co,")
    assert "registered for repair" in msg.text
    assert msg.link.startswith("https://wa.me/919876543210?text=Hello%20Sound%20%26%20Light")

    imran = PayrollRepo(conn).create_staff("Imran", 500)
    billing.assign_staff(job_id, imran)
    billing.set_status(job_id, "In-Progress")
    assert "Imran is working" in billing.status_message(job_id).text

    billing.set_status(job_id, "Repaired")
    repaired = billing.status_message(job_id).text
    assert "has been repaired" in repaired
    assert "Rs. 1,250.00" in repaired

    billing.deliver(job_id)
    assert "has been delivered" in billing.status_message(job_id).text

    other = billing.create_job(client_id, "Fogger", "Leaks")
    billing.set_status(other, "Cancelled")
    cancelled = billing.status_message(other).text
    assert "has been cancelled" in cancelled
    assert "{%" not in cancelled
