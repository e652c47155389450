import sqlite3
from datetime import date, datetime

import pytest

from smb_ledger.db import (
    DatabaseConfig,
    _get_table_columns,
    connect,
    init_database,
    now_utc_iso,
    read_scope,
    snapshot,
    to_iso_date,
    transaction,
    write_scope,
)


def make_tmp_db_cfg(tmp_path) -> DatabaseConfig:
    """Helper to build a DatabaseConfig pointing to a temporary SQLite file."""
    return DatabaseConfig(engine="sqlite", path=tmp_path / "nested" / "test_db.sqlite")


def _tables(cfg):
    conn = connect(cfg)
    try:
        cur = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table';")
        return {row[0] for row in cur.fetchall()}
    finally:
        conn.close()


def test_init_database_creates_file_and_schema(tmp_path):
    """init_database should create the SQLite file and the ledger schema."""
    cfg = make_tmp_db_cfg(tmp_path)

    assert not cfg.path.exists()
    init_database(cfg)
    assert cfg.path.exists()
    assert {
        "organizations",
        "accounts",
        "journal_entries",
        "journal_entry_lines",
    } <= _tables(cfg)


def test_init_database_is_idempotent(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    init_database(cfg)
    init_database(cfg)
    assert "journal_entries" in _tables(cfg)


def test_init_database_adds_tax_rate_to_older_layout(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    cfg.path.parent.mkdir(parents=True)
    conn = sqlite3.connect(cfg.path)
    try:
        conn.execute(
            """
            CREATE TABLE journal_entry_lines (
                id                INTEGER PRIMARY KEY AUTOINCREMENT,
                journal_entry_id  INTEGER NOT NULL,
                account_id        INTEGER NOT NULL,
                position          INTEGER NOT NULL,
                description       TEXT,
                debit_cents       INTEGER NOT NULL DEFAULT 0,
                credit_cents      INTEGER NOT NULL DEFAULT 0
            );
            """
        )
        conn.commit()
    finally:
        conn.close()

    init_database(cfg)

    conn = connect(cfg)
    try:
        assert "tax_rate" in _get_table_columns(conn, "journal_entry_lines")
    finally:
        conn.close()


def test_unsupported_engine(tmp_path):
    cfg = DatabaseConfig(engine="postgres", path=tmp_path / "x.db")
    with pytest.raises(ValueError):
        init_database(cfg)


def test_transaction_commits_or_rolls_back(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    init_database(cfg)

    with transaction(cfg) as conn:
        conn.execute(
            "INSERT INTO organizations (id, name, created_at) VALUES ('a', 'A', ?);",
            (now_utc_iso(),),
        )

    with pytest.raises(RuntimeError):
        with transaction(cfg) as conn:
            conn.execute(
                "INSERT INTO organizations (id, name, created_at) VALUES ('b', 'B', ?);",
                (now_utc_iso(),),
            )
            raise RuntimeError("boom")

    conn = connect(cfg)
    try:
        ids = [row[0] for row in conn.execute("SELECT id FROM organizations;")]
    finally:
        conn.close()
    assert ids == ["a"]


def test_write_scope_requires_an_open_transaction(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    init_database(cfg)

    conn = connect(cfg)
    try:
        with pytest.raises(ValueError):
            with write_scope(cfg, conn):
                pass
    finally:
        conn.close()


def test_snapshot_and_read_scope(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    init_database(cfg)

    with snapshot(cfg) as conn:
        assert conn.in_transaction
        (count,) = conn.execute("SELECT COUNT(*) FROM organizations;").fetchone()
        assert count == 0
    with pytest.raises(sqlite3.ProgrammingError):
        conn.execute("SELECT 1;")

    with transaction(cfg) as tx:
        tx.execute(
            "INSERT INTO organizations (id, name, created_at) VALUES ('a', 'A', ?);",
            (now_utc_iso(),),
        )
        with read_scope(cfg, tx) as reader:
            assert reader is tx
            (count,) = reader.execute("SELECT COUNT(*) FROM organizations;").fetchone()
        assert count == 1
        assert tx.in_transaction


def test_date_helpers():
    assert to_iso_date(date(2025, 3, 1)) == "2025-03-01"
    assert to_iso_date("2025-03-01") == "2025-03-01"
    assert datetime.fromisoformat(now_utc_iso()).tzinfo is not None
