# SMB Ledger - Double-entry accounting ledger for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.


"""
High-level services for posting business events and listing entries.

This module sits between:
- the ledger core (`journal.py`, `generators.py`, `accounts.py`), and
- callers that hold an `AppConfig`: the CLI and the event producers of the
  suite (expense, invoice, bill and payment modules).

Responsibilities
----------------
1) Organization bootstrap
   - Create the database schema and the organization row.
   - Seed the chart of accounts once (packaged PCG or configured CSV).

2) Event posting
   - post_event:   generate the lines of an event and create its entry.
   - repost_event: delete-then-regenerate after an edit that changes the
                   monetary effect of the event.
   - void_event:   delete every entry of a deleted/voided event.

   Each call runs in one transaction. A producer that wants its own record
   and the entry to commit together opens ``db.transaction(cfg.database)``
   and passes the connection as ``conn``.

3) Manual entries and listings
   - post_manual_entry for journal 'general' (OD) entries.
   - entries_for_period: one row per line, as a DataFrame, for display.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Sequence
from datetime import date
from typing import Optional

import pandas as pd

from .accounts import ensure_organization, load_list_of_accounts, seed_chart_of_accounts
from .config import AppConfig
from .db import write_scope
from .errors import ValidationError
from .generators import Event, generate, posting_for
from .journal import (
    JournalEntry,
    LineInput,
    count_entries_for_reference,
    create_entry,
    delete_entries_by_reference,
    list_entries,
    replace_entries_for_reference,
)
from .mapping import AccountMapping, load_account_mapping
from .periods import Period

logger = logging.getLogger(__name__)

ENTRY_LINE_COLUMNS = [
    "entry_ref",
    "date",
    "journal_type",
    "description",
    "account",
    "account_name",
    "debit",
    "credit",
    "line_description",
    "tax_rate",
    "reference_type",
    "reference_id",
]


def bootstrap_organization(cfg: AppConfig) -> int:
    """
    Make the configured organization ready to post entries.

    Returns
    -------
    int
        Number of accounts seeded (0 if the chart already existed).
    """
    org = cfg.organization
    ensure_organization(cfg.database, org.id, org.name)
    chart = load_list_of_accounts(cfg.chart_of_accounts)
    return seed_chart_of_accounts(cfg.database, org.id, chart)


def load_mapping(cfg: AppConfig) -> AccountMapping:
    """Account mapping of the configuration (built-in tables if none)."""
    return load_account_mapping(cfg.mapping_file)


def post_event(
    cfg: AppConfig,
    event: Event,
    mapping: Optional[AccountMapping] = None,
    conn: Optional[sqlite3.Connection] = None,
) -> JournalEntry:
    """
    Generate and post the entry of a business event.

    Raises
    ------
    MappingError
        If a category, payment method or tax rate has no account.
    ValidationError
        If the generated entry is rejected, or rule 'already_posted' when the
        event already has an entry (use repost_event after an edit).
    """
    mapping = mapping or load_mapping(cfg)
    posting = posting_for(event)
    lines = generate(event, mapping)
    org_id = cfg.organization.id

    with write_scope(cfg.database, conn) as tx:
        if count_entries_for_reference(tx, org_id, posting.reference):
            raise ValidationError(
                "already_posted",
                f"{posting.reference.type} {posting.reference.id!r} is already posted.",
            )
        return create_entry(
            cfg.database,
            org_id,
            event.date,
            posting.description,
            lines,
            reference=posting.reference,
            journal_type=posting.journal_type,
            conn=tx,
        )


def repost_event(
    cfg: AppConfig,
    event: Event,
    mapping: Optional[AccountMapping] = None,
    conn: Optional[sqlite3.Connection] = None,
) -> JournalEntry:
    """Delete the event's entries and post it again, in one transaction."""
    mapping = mapping or load_mapping(cfg)
    posting = posting_for(event)
    lines = generate(event, mapping)
    return replace_entries_for_reference(
        cfg.database,
        cfg.organization.id,
        posting.reference,
        event.date,
        posting.description,
        lines,
        journal_type=posting.journal_type,
        conn=conn,
    )


def void_event(
    cfg: AppConfig,
    reference_type: str,
    reference_id: str,
    conn: Optional[sqlite3.Connection] = None,
) -> int:
    """Delete every entry of a deleted or voided event. Idempotent."""
    return delete_entries_by_reference(
        cfg.database, cfg.organization.id, reference_type, reference_id, conn=conn
    )


def post_manual_entry(
    cfg: AppConfig,
    entry_date: date,
    description: str,
    lines: Sequence[LineInput],
    journal_type: str = "general",
) -> JournalEntry:
    """Post an entry typed by an accountant (no originating business object)."""
    return create_entry(
        cfg.database,
        cfg.organization.id,
        entry_date,
        description,
        lines,
        journal_type=journal_type,
    )


def entries_for_period(cfg: AppConfig, period: Period) -> pd.DataFrame:
    """
    Entries of the period flattened to one row per line.

    Rows are ordered by entry date, entry number, then line position.
    Amount columns hold Decimal values.
    """
    rows = [
        {
            "entry_ref": entry.entry_ref,
            "date": entry.date,
            "journal_type": entry.journal_type,
            "description": entry.description,
            "account": line.account_number,
            "account_name": line.account_name,
            "debit": line.debit,
            "credit": line.credit,
            "line_description": line.description,
            "tax_rate": line.tax_rate,
            "reference_type": entry.reference_type,
            "reference_id": entry.reference_id,
        }
        for entry in list_entries(cfg.database, cfg.organization.id, period)
        for line in entry.lines
    ]
    return pd.DataFrame(rows, columns=ENTRY_LINE_COLUMNS)
