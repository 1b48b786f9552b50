"""Tests for SQLite engine construction and PRAGMA verification."""

from __future__ import annotations

import pytest
from sqlalchemy import event

from staging_ledger.config.loader import DatabaseConfig, Settings
from staging_ledger.infra import db
from staging_ledger.infra.db import (
    create_ledger_engine,
    is_memory_database,
    verify_pragmas,
    write_transaction,
)

pytestmark = [pytest.mark.infra]


def test_file_engine_applies_ledger_pragmas(tmp_path):
    engine = create_ledger_engine(f"sqlite+pysqlite:///{tmp_path / 'nested' / 'ledger.sqlite'}")

    report = verify_pragmas(engine)

    assert (tmp_path / "nested").is_dir()
    assert report.valid, report.issues
    assert not is_memory_database(engine)
    with engine.connect() as conn:
        assert conn.exec_driver_sql("PRAGMA journal_mode").scalar().lower() == "wal"
        assert conn.exec_driver_sql("PRAGMA temp_store").scalar() == 2


def test_memory_engine_skips_wal_check():
    engine = create_ledger_engine("sqlite+pysqlite:///:memory:")

    assert is_memory_database(engine)
    assert verify_pragmas(engine).valid


def test_verify_pragmas_reports_mismatches(tmp_path):
    engine = create_ledger_engine(
        f"sqlite+pysqlite:///{tmp_path / 'ledger.sqlite'}",
        busy_timeout_ms=250,
        journal_mode="DELETE",
        synchronous="FULL",
    )

    report = verify_pragmas(engine)

    assert not report.valid
    assert len(report.issues) == 3
    assert any("journal_mode" in issue for issue in report.issues)
    assert any("synchronous is 2" in issue for issue in report.issues)
    assert any("busy_timeout is 250" in issue for issue in report.issues)


def test_non_sqlite_url_is_rejected():
    with pytest.raises(ValueError, match="SQLite"):
        create_ledger_engine("postgresql+psycopg://user:pw@localhost/ledger")


def test_get_engine_is_a_process_wide_singleton(monkeypatch, tmp_path):
    monkeypatch.setattr(db, "_engine_singleton", None)
    settings = Settings(
        database=DatabaseConfig(url=f"sqlite+pysqlite:///{tmp_path / 'shared.sqlite'}")
    )

    first = db.get_engine(settings)
    second = db.get_engine()

    assert first is second
    assert first.url.database.endswith("shared.sqlite")


def _locking_engine(tmp_path):
    engine = create_ledger_engine(
        f"sqlite+pysqlite:///{tmp_path / 'ledger.sqlite'}", busy_timeout_ms=100
    )
    with write_transaction(engine) as conn:
        conn.exec_driver_sql("CREATE TABLE notes (id INTEGER PRIMARY KEY, body TEXT)")
        conn.exec_driver_sql("INSERT INTO notes (body) VALUES ('first')")
    return engine


def test_read_transactions_do_not_take_the_write_lock(tmp_path):
    engine = _locking_engine(tmp_path)

    with engine.connect() as reader, engine.connect() as other_reader:
        assert reader.exec_driver_sql("SELECT count(*) FROM notes").scalar() == 1
        assert other_reader.exec_driver_sql("SELECT count(*) FROM notes").scalar() == 1
        assert reader.in_transaction() and other_reader.in_transaction()

        with write_transaction(engine) as writer:
            writer.exec_driver_sql("INSERT INTO notes (body) VALUES ('second')")

        assert reader.exec_driver_sql("SELECT count(*) FROM notes").scalar() == 1

    with engine.connect() as conn:
        assert conn.exec_driver_sql("SELECT count(*) FROM notes").scalar() == 2


def test_only_write_transactions_begin_immediate(tmp_path):
    engine = _locking_engine(tmp_path)
    statements = []

    @event.listens_for(engine, "before_cursor_execute")
    def _record(conn, cursor, statement, parameters, context, executemany):  # noqa: ARG001
        if statement.startswith("BEGIN"):
            statements.append(statement)

    with engine.connect() as conn:
        conn.exec_driver_sql("SELECT count(*) FROM notes").scalar()
    with write_transaction(engine) as conn:
        conn.exec_driver_sql("DELETE FROM notes")

    assert statements == ["BEGIN", "BEGIN IMMEDIATE"]
