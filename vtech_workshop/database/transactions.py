from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List

from ..errors import BackendFailure

# callbacks waiting for the outermost atomic() block of a connection
_after_commit: Dict[int, List[Callable[[], None]]] = {}


def on_commit(conn: sqlite3.Connection, fn: Callable[[], None]) -> None:
    """
    Run `fn` once the outermost atomic() block on `conn` has committed.

    Callbacks queued inside a block that rolls back are dropped. Outside any
    atomic() block `fn` runs immediately.
    """
    queue = _after_commit.get(id(conn))
    if queue is None:
        fn()
    else:
        queue.append(fn)


@contextmanager
def atomic(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    One logical operation = one transaction.

    - Opens the transaction with BEGIN IMMEDIATE so the write lock is taken
      before any read-then-write check runs (no lost updates across
      connections).
    - Nested use joins the outer transaction; only the outermost block
      commits or rolls back, then runs the on_commit() callbacks.
    - Any exception rolls back. sqlite3 errors are re-raised as
      BackendFailure; domain errors pass through unchanged.
    """
    if conn.in_transaction:
        try:
            yield conn
        except sqlite3.Error as e:
            raise BackendFailure(str(e)) from e
        return

    try:
        conn.execute("BEGIN IMMEDIATE")
    except sqlite3.Error as e:
        raise BackendFailure(str(e)) from e
    queue: List[Callable[[], None]] = []
    _after_commit[id(conn)] = queue
    try:
        try:
            yield conn
        except sqlite3.Error as e:
            conn.rollback()
            raise BackendFailure(str(e)) from e
        except BaseException:
            conn.rollback()
            raise
        try:
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise BackendFailure(str(e)) from e
    finally:
        _after_commit.pop(id(conn), None)

    for fn in queue:
        fn()
