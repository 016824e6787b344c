# tests/test_payments.py
import pytest

from vtech_workshop.errors import NotFound, PermissionDenied, ValidationError


def _events(conn, payment_id):
    return [
        dict(r)
        for r in conn.execute(
            "SELECT event_id, kind, CAST(amount AS REAL) AS amount, reverses_event_id "
            "FROM ledger_events WHERE payment_id=? ORDER BY event_id",
            (payment_id,),
        ).fetchall()
    ]


def test_payment_validation(ledger, client_id, billing):
    with pytest.raises(ValidationError):
        ledger.record_payment(client_id, 0)
    with pytest.raises(ValidationError):
        ledger.record_payment(client_id, "abc")
    with pytest.raises(ValidationError):
        ledger.record_payment(client_id, 100, discount=-1)
    with pytest.raises(ValidationError):
        ledger.record_payment(client_id, 100, mode="Barter")
    with pytest.raises(ValidationError):
        ledger.record_payment(client_id, 100, date="31/01/2025")
    with pytest.raises(NotFound):
        ledger.record_payment(123456, 100)

    other = ledger.create_client("Someone Else", "9000000005")
    foreign_job = billing.create_job(other, "Amp", "Dead")
    with pytest.raises(ValidationError):
        ledger.record_payment(client_id, 100, job_id=foreign_job)
    assert ledger.list_payments(client_id) == []


def test_payment_and_discount_post_separate_events(conn, ledger, client_id):
    pid = ledger.record_payment(client_id, 150, discount=10, mode="Bank Transfer", bill_no="B-17")
    assert [(e["kind"], e["amount"]) for e in _events(conn, pid)] == [("payment", -150), ("discount", -10)]

    (p,) = ledger.list_payments(client_id)
    assert (p.amount, p.discount, p.payment_mode, p.bill_no) == (150, 10, "Bank Transfer", "B-17")


def test_edit_payment_reverses_then_reposts(conn, ledger, admin_ledger, client_id):
    pid = ledger.record_payment(client_id, 150, discount=10)
    with pytest.raises(PermissionDenied):
        ledger.update_payment(pid, 120)

    admin_ledger.update_payment(pid, 120, discount=0, mode="Cheque")
    events = _events(conn, pid)
    assert [(e["kind"], e["amount"]) for e in events] == [
        ("payment", -150),
        ("discount", -10),
        ("payment", 150),
        ("discount", 10),
        ("payment", -120),
    ]
    assert events[2]["reverses_event_id"] == events[0]["event_id"]
    assert events[3]["reverses_event_id"] == events[1]["event_id"]
    assert ledger.balance(client_id) == -120

    # a second edit only reverses what is still open
    admin_ledger.update_payment(pid, 100)
    assert ledger.balance(client_id) == -100
    assert len(_events(conn, pid)) == 7
    assert ledger.reconciliation(client_id).consistent


def test_delete_payment_voids_and_reverses(conn, ledger, admin_ledger, client_id):
    keep = ledger.record_payment(client_id, 40)
    gone = ledger.record_payment(client_id, 150, discount=10)
    with pytest.raises(PermissionDenied):
        ledger.delete_payment(gone)

    admin_ledger.delete_payment(gone)
    assert ledger.balance(client_id) == -40
    assert [p.payment_id for p in ledger.list_payments(client_id)] == [keep]
    row = conn.execute("SELECT is_void FROM client_payments WHERE payment_id=?", (gone,)).fetchone()
    assert row["is_void"] == 1
    assert sum(e["amount"] for e in _events(conn, gone)) == 0

    with pytest.raises(NotFound):
        admin_ledger.delete_payment(gone)
    with pytest.raises(NotFound):
        admin_ledger.update_payment(gone, 10)


def test_payment_dates_filter(ledger, client_id):
    ledger.record_payment(client_id, 10, date="2025-01-01")
    ledger.record_payment(client_id, 20, date="2025-01-31")
    ledger.record_payment(client_id, 30, date="2025-02-01")
    jan = ledger.list_payments(client_id, date_from="2025-01-01", date_to="2025-01-31")
    assert sorted(p.amount for p in jan) == [10, 20]
