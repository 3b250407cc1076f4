"""
Database transaction helpers.

Multi-statement writes (an image with its metadata and tag rows) go through
immediate_transaction() so the write lock is taken up front instead of on
the first write, which keeps concurrent ingestions from deadlocking on a
lock upgrade.
"""

from contextlib import contextmanager
from typing import Generator
import sqlite3


@contextmanager
def immediate_transaction(conn: sqlite3.Connection) -> Generator[sqlite3.Connection, None, None]:
    """
    Run a block inside BEGIN IMMEDIATE, committing on success and rolling
    back on any exception.

    Usage:
        with get_db_connection() as conn:
            with immediate_transaction(conn):
                conn.execute("INSERT ...")
                conn.execute("INSERT ...")

    Yields:
        sqlite3.Connection: the same connection, inside the transaction
    """
    if conn.in_transaction:
        conn.commit()
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    else:
        conn.commit()
