from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Optional

from ...constants import STATUS_DELIVERED
from ...errors import NotFound
from ...utils.helpers import now_ts


@dataclass
class Job:
    job_id: int | None
    job_code: str
    client_id: int
    client_name: str | None
    item_name: str
    serial_no: str | None
    problem: str
    remarks: str | None
    status: str
    labour_charge: float
    final_bill: float
    date_created: str | None
    date_updated: str | None
    date_completed: str | None
    del_status: int
    staff_id: int | None = None
    staff_name: str | None = None


@dataclass
class JobPart:
    job_part_id: int
    job_id: int
    part_id: int
    part_name: str
    quantity: int
    unit_price: float
    created_at: str | None

    @property
    def line_total(self) -> float:
        return round(self.quantity * self.unit_price, 2)


_JOB_SELECT = """
    SELECT j.job_id, j.job_code, j.client_id, c.name AS client_name,
           j.item_name, j.serial_no, j.problem, j.remarks, j.status,
           CAST(j.labour_charge AS REAL) AS labour_charge,
           CAST(j.final_bill    AS REAL) AS final_bill,
           j.date_created, j.date_updated, j.date_completed, j.del_status,
           j.staff_id, s.name AS staff_name
    FROM jobs j
    LEFT JOIN clients c ON c.client_id = j.client_id
    LEFT JOIN staff s ON s.staff_id = j.staff_id
"""


class JobsRepo:
    """
    Row access for jobs and their part lines. Writers do not commit; the
    billing service owns the transaction boundary.
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ---- Codes ------------------------------------------------------------

    def next_job_code(self, date_str: str) -> str:
        """JOB-YYYYMMDD-NNNN, sequence restarting every day."""
        prefix = f"JOB-{date_str.replace('-', '')}-"
        row = self.conn.execute(
            "SELECT MAX(CAST(SUBSTR(job_code, ?) AS INTEGER)) AS seq FROM jobs WHERE job_code LIKE ?",
            (len(prefix) + 1, prefix + "%"),
        ).fetchone()
        seq = int(row["seq"] or 0) + 1
        return f"{prefix}{seq:04d}"

    # ---- Jobs -------------------------------------------------------------

    def insert(
        self,
        *,
        job_code: str,
        client_id: int,
        item_name: str,
        problem: str,
        serial_no: Optional[str],
        remarks: Optional[str],
        labour_charge: float,
        created_by: Optional[int],
        staff_id: Optional[int] = None,
    ) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO jobs
                (job_code, client_id, item_name, serial_no, problem, remarks,
                 labour_charge, final_bill, staff_id, created_by, date_created)
            VALUES (?,?,?,?,?,?,?,?,?,?,?)
            """,
            (job_code, client_id, item_name, serial_no, problem, remarks,
             float(labour_charge), float(labour_charge), staff_id, created_by, now_ts()),
        )
        return int(cur.lastrowid)

    def get(self, job_id: int) -> Job | None:
        r = self.conn.execute(_JOB_SELECT + " WHERE j.job_id = ?", (job_id,)).fetchone()
        return Job(**r) if r else None

    def require(self, job_id: int) -> Job:
        j = self.get(job_id)
        if j is None or j.del_status:
            raise NotFound(f"Job #{job_id} not found.")
        return j

    def list_jobs(
        self,
        *,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        status: Optional[str] = None,
        hide_delivered: bool = False,
        search: Optional[str] = None,
        client_id: Optional[int] = None,
    ) -> list[Job]:
        """Newest first; soft-deleted jobs are never listed."""
        where = ["j.del_status = 0"]
        params: list = []
        if date_from:
            where.append("DATE(j.date_created) >= DATE(?)")
            params.append(date_from)
        if date_to:
            where.append("DATE(j.date_created) <= DATE(?)")
            params.append(date_to)
        if status:
            where.append("j.status = ?")
            params.append(status)
        if hide_delivered:
            where.append("j.status <> ?")
            params.append(STATUS_DELIVERED)
        if client_id is not None:
            where.append("j.client_id = ?")
            params.append(client_id)
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            where.append(
                "(j.job_code LIKE ? OR j.item_name LIKE ? OR j.serial_no LIKE ? "
                "OR c.name LIKE ? OR c.mobile LIKE ?)"
            )
            params.extend([pattern] * 5)
        sql = _JOB_SELECT + " WHERE " + " AND ".join(where) + " ORDER BY j.job_id DESC"
        return [Job(**r) for r in self.conn.execute(sql, params).fetchall()]

    def set_status(self, job_id: int, status: str, *, completed: bool = False) -> None:
        ts = now_ts()
        if completed:
            self.conn.execute(
                "UPDATE jobs SET status=?, date_updated=?, date_completed=? WHERE job_id=?",
                (status, ts, ts, job_id),
            )
        else:
            self.conn.execute(
                "UPDATE jobs SET status=?, date_updated=? WHERE job_id=?",
                (status, ts, job_id),
            )

    def set_bill(self, job_id: int, *, final_bill: float, labour_charge: Optional[float] = None) -> None:
        if labour_charge is None:
            self.conn.execute(
                "UPDATE jobs SET final_bill=?, date_updated=? WHERE job_id=?",
                (round(float(final_bill), 2), now_ts(), job_id),
            )
        else:
            self.conn.execute(
                "UPDATE jobs SET labour_charge=?, final_bill=?, date_updated=? WHERE job_id=?",
                (float(labour_charge), round(float(final_bill), 2), now_ts(), job_id),
            )

    def update_details(
        self,
        job_id: int,
        *,
        item_name: str,
        problem: str,
        serial_no: Optional[str],
        remarks: Optional[str],
    ) -> None:
        self.conn.execute(
            "UPDATE jobs SET item_name=?, problem=?, serial_no=?, remarks=?, "
            "date_updated=? WHERE job_id=?",
            (item_name, problem, serial_no, remarks, now_ts(), job_id),
        )

    def assign_staff(self, job_id: int, staff_id: Optional[int]) -> None:
        self.conn.execute(
            "UPDATE jobs SET staff_id=?, date_updated=? WHERE job_id=?",
            (staff_id, now_ts(), job_id),
        )

    def soft_delete(self, job_id: int) -> None:
        self.conn.execute(
            "UPDATE jobs SET del_status=1, date_updated=? WHERE job_id=?",
            (now_ts(), job_id),
        )

    # ---- Part lines -------------------------------------------------------

    def insert_part_line(self, job_id: int, part_id: int, quantity: int, unit_price: float) -> int:
        cur = self.conn.execute(
            "INSERT INTO job_parts(job_id, part_id, quantity, unit_price) VALUES (?,?,?,?)",
            (job_id, part_id, int(quantity), float(unit_price)),
        )
        return int(cur.lastrowid)

    def get_part_line(self, job_part_id: int) -> JobPart | None:
        r = self.conn.execute(
            """
            SELECT jp.job_part_id, jp.job_id, jp.part_id, p.name AS part_name,
                   jp.quantity, CAST(jp.unit_price AS REAL) AS unit_price, jp.created_at
            FROM job_parts jp
            JOIN inventory_parts p ON p.part_id = jp.part_id
            WHERE jp.job_part_id = ?
            """,
            (job_part_id,),
        ).fetchone()
        return JobPart(**r) if r else None

    def delete_part_line(self, job_part_id: int) -> None:
        self.conn.execute("DELETE FROM job_parts WHERE job_part_id=?", (job_part_id,))

    def list_part_lines(self, job_id: int) -> list[JobPart]:
        rows = self.conn.execute(
            """
            SELECT jp.job_part_id, jp.job_id, jp.part_id, p.name AS part_name,
                   jp.quantity, CAST(jp.unit_price AS REAL) AS unit_price, jp.created_at
            FROM job_parts jp
            JOIN inventory_parts p ON p.part_id = jp.part_id
            WHERE jp.job_id = ?
            ORDER BY jp.job_part_id
            """,
            (job_id,),
        ).fetchall()
        return [JobPart(**r) for r in rows]

    def parts_total(self, job_id: int) -> float:
        row = self.conn.execute(
            "SELECT COALESCE(SUM(quantity * CAST(unit_price AS REAL)), 0.0) AS t "
            "FROM job_parts WHERE job_id=?",
            (job_id,),
        ).fetchone()
        return round(float(row["t"]), 2)

