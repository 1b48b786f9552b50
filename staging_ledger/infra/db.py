"""SQLite engine construction and PRAGMA handling for the staging ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import ContextManager, List, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Connection, Engine, make_url

from ..config import Settings, load_settings
from .logging import get_logger

__all__ = [
    "PragmaReport",
    "WRITE_TRANSACTION_OPTION",
    "create_ledger_engine",
    "get_engine",
    "is_memory_database",
    "verify_pragmas",
    "write_transaction",
]

logger = get_logger(__name__)

_SYNCHRONOUS_CODES = {"OFF": 0, "NORMAL": 1, "FULL": 2, "EXTRA": 3}

WRITE_TRANSACTION_OPTION = "ledger_write"

_engine_singleton: Engine | None = None


def is_memory_database(engine: Engine) -> bool:
    database = engine.url.database
    return not database or database == ":memory:" or database.startswith("file::memory:")


def create_ledger_engine(
    url: str,
    *,
    busy_timeout_ms: int = 5000,
    journal_mode: str = "WAL",
    synchronous: str = "NORMAL",
    echo: bool = False,
) -> Engine:
    """Return an Engine whose connections carry the ledger PRAGMAs.

    The pysqlite driver is switched to manual transaction control. Write
    transactions opened through :func:`write_transaction` start with
    ``BEGIN IMMEDIATE`` so the write lock is held before the capture row is
    read; every other transaction starts with a deferred ``BEGIN`` and reads
    alongside writers under WAL.
    """

    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        raise ValueError(f"staging ledger requires a SQLite URL, got '{parsed}'")
    connect_args = {}
    if parsed.database and parsed.database != ":memory:":
        Path(parsed.database).expanduser().parent.mkdir(parents=True, exist_ok=True)
        # pooled file connections are handed between threads
        connect_args["check_same_thread"] = False

    engine = create_engine(url, echo=echo, future=True, connect_args=connect_args)

    @event.listens_for(engine, "connect")
    def _apply_pragmas(dbapi_connection, connection_record):  # noqa: ARG001
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute(f"PRAGMA journal_mode = {journal_mode}")
            cursor.execute(f"PRAGMA synchronous = {synchronous}")
            cursor.execute("PRAGMA foreign_keys = ON")
            cursor.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
            cursor.execute("PRAGMA temp_store = MEMORY")
        finally:
            cursor.close()

    @event.listens_for(engine, "begin")
    def _begin(conn):
        if conn.get_execution_options().get(WRITE_TRANSACTION_OPTION):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")

    logger.info(
        "ledger_engine_created",
        extra={
            "database": parsed.database or ":memory:",
            "journal_mode": journal_mode,
            "busy_timeout_ms": busy_timeout_ms,
        },
    )
    return engine


def write_transaction(engine: Engine) -> ContextManager[Connection]:
    """``engine.begin()`` for a transaction that writes; takes the lock up front."""

    return engine.execution_options(**{WRITE_TRANSACTION_OPTION: True}).begin()


def get_engine(settings: Optional[Settings] = None) -> Engine:
    """Return the process-wide ledger engine, creating it on first use."""

    global _engine_singleton
    if _engine_singleton is None:
        settings = settings or load_settings()
        _engine_singleton = create_ledger_engine(
            settings.database.url,
            busy_timeout_ms=settings.database.busy_timeout_ms,
            journal_mode=settings.database.journal_mode,
            synchronous=settings.database.synchronous,
        )
    return _engine_singleton


@dataclass(frozen=True)
class PragmaReport:
    valid: bool
    issues: List[str] = field(default_factory=list)


def verify_pragmas(engine: Engine, *, busy_timeout_ms: int = 5000) -> PragmaReport:
    """Check that a live connection carries the expected PRAGMAs."""

    issues: List[str] = []
    with engine.connect() as conn:
        journal_mode = str(conn.exec_driver_sql("PRAGMA journal_mode").scalar())
        synchronous = int(conn.exec_driver_sql("PRAGMA synchronous").scalar())
        foreign_keys = int(conn.exec_driver_sql("PRAGMA foreign_keys").scalar())
        busy_timeout = int(conn.exec_driver_sql("PRAGMA busy_timeout").scalar())

    if not is_memory_database(engine) and journal_mode.lower() != "wal":
        issues.append(
            f"journal_mode is '{journal_mode}' but expected 'wal' for file-based database"
        )
    if synchronous != _SYNCHRONOUS_CODES["NORMAL"]:
        issues.append(f"synchronous is {synchronous} but expected 1 (NORMAL)")
    if foreign_keys != 1:
        issues.append(f"foreign_keys is {foreign_keys} but expected 1 (ON)")
    if busy_timeout != busy_timeout_ms:
        issues.append(f"busy_timeout is {busy_timeout} but expected {busy_timeout_ms}")

    return PragmaReport(valid=not issues, issues=issues)

