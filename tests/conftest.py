# tests/conftest.py
import pytest

from vtech_workshop.config import Settings
from vtech_workshop.database import get_connection
from vtech_workshop.modules.clients import ClientLedger
from vtech_workshop.modules.inventory import StockLedger
from vtech_workshop.modules.jobs import JobBilling
from vtech_workshop.utils.auth import hash_password


@pytest.fixture(scope="session")
def password_hash():
    # bcrypt is slow on purpose; hash once for the whole run
    return hash_password("secret")


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "workshop.db"


@pytest.fixture
def conn(db_path, password_hash):
    """
    Fresh on-disk database per test, with one admin and one staff login
    (both with password 'secret').
    """
    c = get_connection(db_path, seed=False)
    c.executemany(
        "INSERT INTO users(username, password_hash, full_name, email, role) VALUES (?,?,?,?,?)",
        [
            ("boss", password_hash, "Shop Owner", "boss@example.com", "admin"),
            ("ravi", password_hash, "Ravi Kumar", "ravi@example.com", "staff"),
        ],
    )
    c.commit()
    try:
        yield c
    finally:
        c.close()


@pytest.fixture
def admin_id(conn):
    return conn.execute("SELECT user_id FROM users WHERE username='boss'").fetchone()["user_id"]


@pytest.fixture
def staff_id(conn):
    return conn.execute("SELECT user_id FROM users WHERE username='ravi'").fetchone()["user_id"]


@pytest.fixture
def settings(db_path):
    return Settings(db_path=db_path, service_key=None)


@pytest.fixture
def ledger(conn, staff_id):
    return ClientLedger(conn, staff_id)


@pytest.fixture
def admin_ledger(conn, admin_id):
    return ClientLedger(conn, admin_id)


@pytest.fixture
def stock(conn, staff_id):
    return StockLedger(conn, staff_id)


@pytest.fixture
def billing(conn, staff_id, settings):
    return JobBilling(conn, staff_id, settings)


@pytest.fixture
def client_id(ledger):
    return ledger.create_client("Sound & Light Co", "98765 43210", address="MG Road")


@pytest.fixture
def part_id(stock):
    """Stage-light bulb: price 50, 10 on hand, reorder at 2."""
    return stock.create_part("Halogen bulb 575W", 50, 10, minstock=2)
