"""
core/database.py -- Engine factory shared by every store.

UserStore and AcademyStore are built on the same Engine so that writes which
span both aggregates (class creation flips the teacher's verification flag,
enrolment stamps the student row) can run inside one transaction.

SQLite specifics:
  check_same_thread=False -- FastAPI runs sync handlers in a thread pool.
  WAL journal mode       -- readers are not blocked during writes.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_db_engine(db_url: str) -> Engine:
    """Build an Engine for db_url with SQLite-specific connection settings."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite") and "mode=memory" not in db_url:
        event.listen(engine, "connect", _set_wal_mode)
    return engine


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
