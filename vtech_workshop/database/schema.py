from pathlib import Path
import logging
import sqlite3
import sys

_log = logging.getLogger(__name__)

SQL = r"""
PRAGMA foreign_keys = ON;

/* ======================== CORE TABLES ======================== */

/* -------- users / roles -------- */
CREATE TABLE IF NOT EXISTS users (
    user_id         INTEGER PRIMARY KEY AUTOINCREMENT,
    username        TEXT UNIQUE NOT NULL,
    email           TEXT,
    password_hash   TEXT NOT NULL,
    full_name       TEXT NOT NULL,
    role            TEXT NOT NULL DEFAULT 'staff' CHECK (role IN ('admin','staff')),
    is_active       INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1)),
    created_date    DATE DEFAULT (date('now','localtime')),
    last_login      TIMESTAMP,
    failed_attempts INTEGER NOT NULL DEFAULT 0,
    locked_until    TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_users_username ON users(username);
CREATE UNIQUE INDEX IF NOT EXISTS idx_users_email ON users(email) WHERE email IS NOT NULL;

CREATE TABLE IF NOT EXISTS sessions (
    session_id  TEXT PRIMARY KEY,
    user_id     INTEGER NOT NULL,
    created_at  TIMESTAMP NOT NULL DEFAULT (datetime('now','localtime')),
    expires_at  TIMESTAMP NOT NULL,
    revoked     INTEGER NOT NULL DEFAULT 0 CHECK (revoked IN (0,1)),
    FOREIGN KEY (user_id) REFERENCES users(user_id)
);

CREATE TABLE IF NOT EXISTS auth_logs (
    log_id     INTEGER PRIMARY KEY AUTOINCREMENT,
    username   TEXT NOT NULL,
    success    INTEGER NOT NULL CHECK (success IN (0,1)),
    reason     TEXT,
    created_at TIMESTAMP NOT NULL DEFAULT (datetime('now','localtime'))
);

/* -------- clients -------- */
CREATE TABLE IF NOT EXISTS clients (
    client_id       INTEGER PRIMARY KEY AUTOINCREMENT,
    name            TEXT NOT NULL,
    mobile          TEXT NOT NULL,
    email           TEXT,
    address         TEXT,
    gst_id          TEXT,
    opening_balance NUMERIC NOT NULL DEFAULT 0,
    is_active       INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1)),
    date_created    TIMESTAMP NOT NULL DEFAULT (datetime('now','localtime'))
);
CREATE INDEX IF NOT EXISTS idx_clients_name ON clients(name);

/* -------- inventory -------- */
CREATE TABLE IF NOT EXISTS inventory_parts (
    part_id    INTEGER PRIMARY KEY AUTOINCREMENT,
    name       TEXT UNIQUE NOT NULL,
    category   TEXT NOT NULL DEFAULT 'General',
    price      NUMERIC NOT NULL CHECK (CAST(price AS REAL) >= 0),
    stock      INTEGER NOT NULL DEFAULT 0 CHECK (stock >= 0),
    minstock   INTEGER NOT NULL DEFAULT 5 CHECK (minstock >= 0),
    created_at TIMESTAMP NOT NULL DEFAULT (datetime('now','localtime'))
);

CREATE TABLE IF NOT EXISTS stock_movements (
    movement_id     INTEGER PRIMARY KEY AUTOINCREMENT,
    part_id         INTEGER NOT NULL,
    delta           INTEGER NOT NULL,
    reason          TEXT NOT NULL CHECK (reason IN ('job','sale','restock','release','adjustment')),
    reference_table TEXT,
    reference_id    INTEGER,
    stock_after     INTEGER NOT NULL CHECK (stock_after >= 0),
    created_by      INTEGER,
    created_at      TIMESTAMP NOT NULL DEFAULT (datetime('now','localtime')),
    FOREIGN KEY (part_id) REFERENCES inventory_parts(part_id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_stock_movements_part ON stock_movements(part_id, movement_id);

/* -------- repair jobs -------- */
CREATE TABLE IF NOT EXISTS jobs (
    job_id         INTEGER PRIMARY KEY AUTOINCREMENT,
    job_code       TEXT UNIQUE NOT NULL,
    client_id      INTEGER NOT NULL,
    item_name      TEXT NOT NULL,
    serial_no      TEXT,
    problem        TEXT NOT NULL,
    remarks        TEXT,
    status         TEXT NOT NULL DEFAULT 'Pending'
                   CHECK (status IN ('Pending','In-Progress','Repaired','Delivered','Cancelled')),
    labour_charge  NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(labour_charge AS REAL) >= 0),
    final_bill     NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(final_bill AS REAL) >= 0),
    date_created   TIMESTAMP NOT NULL DEFAULT (datetime('now','localtime')),
    date_updated   TIMESTAMP,
    date_completed TIMESTAMP,
    del_status     INTEGER NOT NULL DEFAULT 0 CHECK (del_status IN (0,1)),
    staff_id       INTEGER,
    created_by     INTEGER,
    FOREIGN KEY (client_id) REFERENCES clients(client_id),
    FOREIGN KEY (staff_id)  REFERENCES staff(staff_id)
);
CREATE INDEX IF NOT EXISTS idx_jobs_client ON jobs(client_id);
CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs(status);

CREATE TABLE IF NOT EXISTS job_parts (
    job_part_id INTEGER PRIMARY KEY AUTOINCREMENT,
    job_id      INTEGER NOT NULL,
    part_id     INTEGER NOT NULL,
    quantity    INTEGER NOT NULL CHECK (quantity > 0),
    unit_price  NUMERIC NOT NULL CHECK (CAST(unit_price AS REAL) >= 0),
    created_at  TIMESTAMP NOT NULL DEFAULT (datetime('now','localtime')),
    FOREIGN KEY (job_id)  REFERENCES jobs(job_id),
    FOREIGN KEY (part_id) REFERENCES inventory_parts(part_id)
);
CREATE INDEX IF NOT EXISTS idx_job_parts_job ON job_parts(job_id, job_part_id);

/* -------- direct (walk-in) sales -------- */
CREATE TABLE IF NOT EXISTS direct_sales (
    sale_id      INTEGER PRIMARY KEY AUTOINCREMENT,
    sale_code    TEXT UNIQUE NOT NULL,
    client_id    INTEGER NOT NULL,
    payment_mode TEXT NOT NULL DEFAULT 'Cash',
    remarks      TEXT,
    total_amount NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(total_amount AS REAL) >= 0),
    sale_date    DATE NOT NULL DEFAULT (date('now','localtime')),
    created_at   TIMESTAMP NOT NULL DEFAULT (datetime('now','localtime')),
    created_by   INTEGER,
    FOREIGN KEY (client_id) REFERENCES clients(client_id)
);
CREATE INDEX IF NOT EXISTS idx_direct_sales_client ON direct_sales(client_id);

CREATE TABLE IF NOT EXISTS direct_sale_items (
    item_id     INTEGER PRIMARY KEY AUTOINCREMENT,
    sale_id     INTEGER NOT NULL,
    part_id     INTEGER,
    description TEXT NOT NULL,
    quantity    INTEGER NOT NULL CHECK (quantity > 0),
    price       NUMERIC NOT NULL CHECK (CAST(price AS REAL) >= 0),
    FOREIGN KEY (sale_id) REFERENCES direct_sales(sale_id) ON DELETE CASCADE,
    FOREIGN KEY (part_id) REFERENCES inventory_parts(part_id)
);

/* -------- client payments -------- */
CREATE TABLE IF NOT EXISTS client_payments (
    payment_id   INTEGER PRIMARY KEY AUTOINCREMENT,
    client_id    INTEGER NOT NULL,
    amount       NUMERIC NOT NULL CHECK (CAST(amount AS REAL) > 0),
    discount     NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(discount AS REAL) >= 0),
    payment_mode TEXT NOT NULL DEFAULT 'Cash',
    payment_date DATE NOT NULL DEFAULT (date('now','localtime')),
    job_id       INTEGER,
    bill_no      TEXT,
    remarks      TEXT,
    is_void      INTEGER NOT NULL DEFAULT 0 CHECK (is_void IN (0,1)),
    created_at   TIMESTAMP NOT NULL DEFAULT (datetime('now','localtime')),
    created_by   INTEGER,
    FOREIGN KEY (client_id) REFERENCES clients(client_id),
    FOREIGN KEY (job_id)    REFERENCES jobs(job_id)
);
CREATE INDEX IF NOT EXISTS idx_client_payments_client ON client_payments(client_id);

/* -------- client ledger (append-only, signed) --------
   amount > 0 : client owes more (opening balance, delivered job, direct sale)
   job_adjustment : signed change to an already delivered job's bill
   amount < 0 : settles (payment, discount)
*/
CREATE TABLE IF NOT EXISTS ledger_events (
    event_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    client_id         INTEGER NOT NULL,
    kind              TEXT NOT NULL
                      CHECK (kind IN ('opening_balance','job_delivered','job_adjustment','direct_sale','payment','discount')),
    amount            NUMERIC NOT NULL,
    event_date        DATE NOT NULL DEFAULT (date('now','localtime')),
    job_id            INTEGER,
    sale_id           INTEGER,
    payment_id        INTEGER,
    reverses_event_id INTEGER,
    note              TEXT,
    created_at        TIMESTAMP NOT NULL DEFAULT (datetime('now','localtime')),
    FOREIGN KEY (client_id)         REFERENCES clients(client_id),
    FOREIGN KEY (job_id)            REFERENCES jobs(job_id),
    FOREIGN KEY (sale_id)           REFERENCES direct_sales(sale_id),
    FOREIGN KEY (payment_id)        REFERENCES client_payments(payment_id),
    FOREIGN KEY (reverses_event_id) REFERENCES ledger_events(event_id)
);
CREATE INDEX IF NOT EXISTS idx_ledger_events_client ON ledger_events(client_id, event_date, event_id);
/* one delivery credit per job, ever */
CREATE UNIQUE INDEX IF NOT EXISTS idx_ledger_one_delivery_per_job
ON ledger_events(job_id) WHERE kind = 'job_delivered';
/* an event can be reversed at most once */
CREATE UNIQUE INDEX IF NOT EXISTS idx_ledger_one_reversal
ON ledger_events(reverses_event_id) WHERE reverses_event_id IS NOT NULL;

/* -------- payroll / outflows -------- */
CREATE TABLE IF NOT EXISTS staff (
    staff_id       INTEGER PRIMARY KEY AUTOINCREMENT,
    name           TEXT NOT NULL,
    per_day_salary NUMERIC NOT NULL DEFAULT 0 CHECK (CAST(per_day_salary AS REAL) >= 0),
    is_active      INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1))
);

CREATE TABLE IF NOT EXISTS attendance (
    attendance_id INTEGER PRIMARY KEY AUTOINCREMENT,
    staff_id      INTEGER NOT NULL,
    work_date     DATE NOT NULL,
    status        TEXT NOT NULL CHECK (status IN ('full','half','absent','leave')),
    UNIQUE (staff_id, work_date),
    FOREIGN KEY (staff_id) REFERENCES staff(staff_id)
);

CREATE TABLE IF NOT EXISTS loan_payments (
    loan_payment_id INTEGER PRIMARY KEY AUTOINCREMENT,
    lender          TEXT NOT NULL,
    amount_paid     NUMERIC NOT NULL CHECK (CAST(amount_paid AS REAL) >= 0),
    payment_date    DATE NOT NULL DEFAULT (date('now','localtime')),
    remarks         TEXT
);

CREATE TABLE IF NOT EXISTS expense_categories (
    category_id INTEGER PRIMARY KEY AUTOINCREMENT,
    name        TEXT UNIQUE NOT NULL
);

CREATE TABLE IF NOT EXISTS expenses (
    expense_id  INTEGER PRIMARY KEY AUTOINCREMENT,
    description TEXT    NOT NULL,
    amount      NUMERIC NOT NULL CHECK (CAST(amount AS REAL) >= 0),
    date        DATE    NOT NULL DEFAULT (date('now','localtime')),
    category_id INTEGER,
    FOREIGN KEY (category_id) REFERENCES expense_categories(category_id)
);


/* ======================== GUARDS ======================== */

/* ledger is append-only: corrections are reversal rows */
DROP TRIGGER IF EXISTS trg_ledger_events_no_update;
CREATE TRIGGER trg_ledger_events_no_update
BEFORE UPDATE ON ledger_events
BEGIN
  SELECT RAISE(ABORT, 'ledger_events is append-only');
END;

DROP TRIGGER IF EXISTS trg_ledger_events_no_delete;
CREATE TRIGGER trg_ledger_events_no_delete
BEFORE DELETE ON ledger_events
BEGIN
  SELECT RAISE(ABORT, 'ledger_events is append-only');
END;

/* Delivered and Cancelled are terminal */
DROP TRIGGER IF EXISTS trg_jobs_terminal_status;
CREATE TRIGGER trg_jobs_terminal_status
BEFORE UPDATE OF status ON jobs
FOR EACH ROW
WHEN OLD.status IN ('Delivered','Cancelled') AND NEW.status <> OLD.status
BEGIN
  SELECT RAISE(ABORT, 'Job is closed; status cannot change');
END;

/* delivered jobs are on the ledger and cannot be removed */
DROP TRIGGER IF EXISTS trg_jobs_no_delete_delivered;
CREATE TRIGGER trg_jobs_no_delete_delivered
BEFORE UPDATE OF del_status ON jobs
FOR EACH ROW
WHEN OLD.status = 'Delivered' AND NEW.del_status = 1
BEGIN
  SELECT RAISE(ABORT, 'Delivered jobs cannot be deleted');
END;
"""


# columns added after the first release: (table, column, declaration)
_LATE_COLUMNS = (
    ("jobs", "staff_id", "INTEGER REFERENCES staff(staff_id)"),
)


def _add_missing_columns(conn: sqlite3.Connection) -> None:
    for table, column, decl in _LATE_COLUMNS:
        have = {r["name"] for r in conn.execute(f"PRAGMA table_info({table})")}
        if column not in have:
            conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {decl}")
            _log.info("added column %s.%s", table, column)


def init_schema(db_path: Path | str = "workshop.db") -> None:
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_path) as conn:
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        # Apply (idempotent) schema
        conn.executescript(SQL)
        _add_missing_columns(conn)
        conn.commit()
    conn.close()
    _log.info("schema applied to %s", db_path)


if __name__ == "__main__":
    target = sys.argv[1] if len(sys.argv) > 1 else Path(__file__).resolve().parents[2] / "data" / "workshop.db"
    init_schema(target)
