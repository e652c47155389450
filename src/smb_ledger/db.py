# SMB Ledger - Double-entry accounting ledger for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.


"""
Database layer for SMB Ledger.

This module owns the SQLite schema and the connection/transaction helpers
used by the rest of the ledger core. Accounts, journal entries and their
lines are the only durable state owned by the core; documents, users and
business records belong to other components and are only referenced by
opaque identifiers (``reference_type``, ``reference_id``).

------------------------------------------------------------------------------
Schema Overview
------------------------------------------------------------------------------

1) organizations
   - id                 TEXT PRIMARY KEY
   - name               TEXT NOT NULL
   - next_entry_number  INTEGER NOT NULL DEFAULT 1
   - created_at         TEXT NOT NULL (ISO datetime, UTC)

   ``next_entry_number`` is the per-organization journal counter. It is
   incremented with a single UPDATE inside the write transaction of the
   entry that consumes it, never computed as "max + 1".

2) accounts
   Chart of accounts, scoped per organization.
   - id, organization_id, account_number (unique per organization), name
   - account_class      INTEGER 1..7
   - account_type       'asset' | 'liability' | 'equity' | 'income' | 'expense'
   - parent_account_number, is_system, is_active, created_at, updated_at

3) journal_entries
   One row per balanced entry.
   - id, organization_id, entry_number (unique per organization)
   - date               TEXT ISO 'YYYY-MM-DD'
   - description        TEXT NOT NULL
   - journal_type       'sales' | 'purchases' | 'bank' | 'general'
   - reference_type, reference_id  (originating business object, optional)
   - created_at

4) journal_entry_lines
   - id, journal_entry_id (ON DELETE CASCADE), account_id (ON DELETE RESTRICT)
   - position           order of the line inside its entry
   - description
   - debit_cents, credit_cents   non-negative, exactly one strictly positive
   - tax_rate           exact decimal text (e.g. '5.5'), NULL when untaxed

------------------------------------------------------------------------------
SQLite Notes
------------------------------------------------------------------------------

- Connections run in autocommit mode; writes go through ``transaction()``
  which issues ``BEGIN IMMEDIATE`` so that the entry counter update, the
  header insert and the line inserts are a single atomic unit.
- Triggers abort any UPDATE on journal tables: entries are append-only and
  corrections are made by reversal or delete-then-regenerate.
- Foreign key enforcement is explicitly enabled on every connection.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

# Lower bound used for "since the books were opened" queries.
EPOCH = date(1, 1, 1)

# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    """
    Database configuration for SMB Ledger.

    Attributes
    ----------
    engine:
        Database engine identifier. Only "sqlite" is supported.
    path:
        Path to the SQLite database file.
    """

    engine: str
    path: Path


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _ensure_sqlite(cfg: DatabaseConfig) -> None:
    """Raise if the configuration does not refer to a supported engine."""
    if cfg.engine.lower() != "sqlite":
        msg = (
            f"Unsupported database engine: {cfg.engine!r}. "
            "Only 'sqlite' is supported for now."
        )
        raise ValueError(msg)


def connect(cfg: DatabaseConfig) -> sqlite3.Connection:
    """
    Open an autocommit SQLite connection with foreign keys enabled.

    The caller is responsible for closing the connection.
    """
    _ensure_sqlite(cfg)
    conn = sqlite3.connect(cfg.path, timeout=30.0, isolation_level=None)
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def _get_table_columns(conn: sqlite3.Connection, table: str) -> set[str]:
    """Return the set of column names for the given table (empty if missing)."""
    cur = conn.execute(f"PRAGMA table_info({table});")
    return {row[1] for row in cur.fetchall()}


def _migrate_schema_if_needed(conn: sqlite3.Connection) -> None:
    """
    Bring an older database up to the current layout.

    Databases created before taxed lines were supported have no
    ``tax_rate`` column on ``journal_entry_lines``; it is added in place
    (existing lines stay untaxed).
    """
    line_columns = _get_table_columns(conn, "journal_entry_lines")
    if line_columns and "tax_rate" not in line_columns:
        logger.info("Migrating journal_entry_lines: adding tax_rate column")
        conn.execute("ALTER TABLE journal_entry_lines ADD COLUMN tax_rate TEXT;")


def _create_schema_if_needed(conn: sqlite3.Connection) -> None:
    """Create tables, triggers and indexes if they do not exist yet."""

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS organizations (
            id                 TEXT    PRIMARY KEY,
            name               TEXT    NOT NULL,
            next_entry_number  INTEGER NOT NULL DEFAULT 1,
            created_at         TEXT    NOT NULL
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS accounts (
            id                     INTEGER PRIMARY KEY AUTOINCREMENT,
            organization_id        TEXT    NOT NULL,
            account_number         TEXT    NOT NULL,
            name                   TEXT    NOT NULL,
            account_class          INTEGER NOT NULL
                CHECK (account_class BETWEEN 1 AND 7),
            account_type           TEXT    NOT NULL
                CHECK (account_type IN
                       ('asset', 'liability', 'equity', 'income', 'expense')),
            parent_account_number  TEXT,
            is_system              INTEGER NOT NULL DEFAULT 0,
            is_active              INTEGER NOT NULL DEFAULT 1,
            created_at             TEXT    NOT NULL,
            updated_at             TEXT,

            UNIQUE (organization_id, account_number),
            FOREIGN KEY (organization_id) REFERENCES organizations(id)
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS journal_entries (
            id               INTEGER PRIMARY KEY AUTOINCREMENT,
            organization_id  TEXT    NOT NULL,
            entry_number     INTEGER NOT NULL,
            date             TEXT    NOT NULL,  -- ISO date 'YYYY-MM-DD'
            description      TEXT    NOT NULL,
            journal_type     TEXT    NOT NULL
                CHECK (journal_type IN ('sales', 'purchases', 'bank', 'general')),
            reference_type   TEXT,
            reference_id     TEXT,
            created_at       TEXT    NOT NULL,

            UNIQUE (organization_id, entry_number),
            FOREIGN KEY (organization_id) REFERENCES organizations(id)
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS journal_entry_lines (
            id                INTEGER PRIMARY KEY AUTOINCREMENT,
            journal_entry_id  INTEGER NOT NULL,
            account_id        INTEGER NOT NULL,
            position          INTEGER NOT NULL,
            description       TEXT,
            debit_cents       INTEGER NOT NULL DEFAULT 0 CHECK (debit_cents >= 0),
            credit_cents      INTEGER NOT NULL DEFAULT 0 CHECK (credit_cents >= 0),
            tax_rate          TEXT,

            CHECK ((debit_cents > 0) + (credit_cents > 0) = 1),
            FOREIGN KEY (journal_entry_id)
                REFERENCES journal_entries(id) ON DELETE CASCADE,
            FOREIGN KEY (account_id)
                REFERENCES accounts(id) ON DELETE RESTRICT
        );
        """
    )

    _migrate_schema_if_needed(conn)

    # Append-only journal: no in-place edits.
    conn.execute(
        """
        CREATE TRIGGER IF NOT EXISTS trg_journal_entries_no_update
        BEFORE UPDATE ON journal_entries
        BEGIN
            SELECT RAISE(ABORT, 'journal entries are immutable');
        END;
        """
    )
    conn.execute(
        """
        CREATE TRIGGER IF NOT EXISTS trg_journal_entry_lines_no_update
        BEFORE UPDATE ON journal_entry_lines
        BEGIN
            SELECT RAISE(ABORT, 'journal entry lines are immutable');
        END;
        """
    )

    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_je_org_date
            ON journal_entries(organization_id, date, entry_number);
        """
    )
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_je_reference
            ON journal_entries(organization_id, reference_type, reference_id);
        """
    )
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_jel_entry
            ON journal_entry_lines(journal_entry_id);
        """
    )
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_jel_account
            ON journal_entry_lines(account_id);
        """
    )


def to_iso_date(value) -> str:
    """Convert a date-like value to ISO 'YYYY-MM-DD' string."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return date.fromisoformat(str(value)).isoformat()


def now_utc_iso() -> str:
    """Return the current UTC datetime as ISO string."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def init_database(cfg: DatabaseConfig) -> None:
    """
    Initialize the database schema if needed.

    - Creates the SQLite file (and its parent directory) if missing.
    - Creates tables, triggers and indexes.
    - Migrates older layouts in place.

    Idempotent: calling it multiple times is safe.

    Raises
    ------
    ValueError
        If cfg.engine is not supported.
    sqlite3.Error
        If schema creation fails.
    """
    cfg.path.parent.mkdir(parents=True, exist_ok=True)

    conn = connect(cfg)
    try:
        _create_schema_if_needed(conn)
    finally:
        conn.close()


@contextmanager
def transaction(cfg: DatabaseConfig) -> Iterator[sqlite3.Connection]:
    """
    Open a connection and run the block inside ``BEGIN IMMEDIATE`` / ``COMMIT``.

    Any exception raised inside the block rolls the whole transaction back
    and is re-raised. Event producers sharing the ledger database can use
    this to write their own record and its journal entry atomically, by
    passing the yielded connection to the ledger write functions.
    """
    conn = connect(cfg)
    try:
        conn.execute("BEGIN IMMEDIATE;")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK;")
            raise
        conn.execute("COMMIT;")
    finally:
        conn.close()


@contextmanager
def write_scope(
    cfg: DatabaseConfig, conn: sqlite3.Connection | None = None
) -> Iterator[sqlite3.Connection]:
    """
    Yield a connection inside a write transaction.

    If ``conn`` is given, the caller owns the transaction and it is reused
    as-is; otherwise a new transaction is opened for the block.
    """
    if conn is not None:
        if not conn.in_transaction:
            raise ValueError("Connection passed to a ledger write must be in a transaction.")
        yield conn
        return

    with transaction(cfg) as own:
        yield own


@contextmanager
def snapshot(cfg: DatabaseConfig) -> Iterator[sqlite3.Connection]:
    """
    Open a connection whose reads all see one consistent database state.

    The block runs inside a deferred read transaction, so a report built
    from several queries never mixes data from before and after a
    concurrent write.
    """
    conn = connect(cfg)
    try:
        conn.execute("BEGIN;")
        yield conn
    finally:
        if conn.in_transaction:
            conn.execute("COMMIT;")
        conn.close()


@contextmanager
def read_scope(
    cfg: DatabaseConfig, conn: sqlite3.Connection | None = None
) -> Iterator[sqlite3.Connection]:
    """Yield ``conn`` when given, otherwise a fresh snapshot connection."""
    if conn is not None:
        yield conn
        return

    with snapshot(cfg) as own:
        yield own
