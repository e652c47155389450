# SMB Ledger - Double-entry accounting ledger for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Ledger query engine.

Read-only computations over the journal:

- account_movements: the lines of one account over a period, ordered by
  (entry date, entry number, line position). This order is the basis of
  every running balance and never depends on insertion order or row ids.
- running_balance: balance after each movement, seeded by an opening
  balance (zero by default).
- period_balance / opening_balance / period_balances: sum(debit) -
  sum(credit), not adjusted for the account's normal side.
- account_totals, general_ledger, trial_balance: the same figures as
  pandas DataFrames for the report builders and the CLI.
- taxed_lines: lines tagged with a VAT rate, input of the VAT report.

Each query runs on a single connection, so it sees the journal either
before or after any entry's commit, never in between. account_totals and
taxed_lines also accept a caller's connection, so a report combining
several queries can read them all from one ``db.snapshot()``.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

import pandas as pd

from .accounts import resolve_account
from .db import EPOCH, DatabaseConfig, connect, read_scope, to_iso_date
from .journal import format_entry_ref
from .money import ZERO, from_cents
from .periods import Period


@dataclass(frozen=True)
class Movement:
    """One journal line on an account, with its entry header."""

    entry_id: int
    entry_number: int
    date: date
    journal_type: str
    entry_description: str
    position: int
    line_description: Optional[str]
    debit: Decimal
    credit: Decimal
    tax_rate: Optional[Decimal]

    @property
    def entry_ref(self) -> str:
        return format_entry_ref(self.entry_number)

    @property
    def description(self) -> str:
        return self.line_description or self.entry_description

    @property
    def amount(self) -> Decimal:
        """Signed effect on the account balance (debit positive)."""
        return self.debit - self.credit


def account_movements(
    cfg: DatabaseConfig, organization_id: str, account_code: str, period: Period
) -> list[Movement]:
    """
    Lines posted to one account within a period (inclusive bounds).

    Raises
    ------
    NotFoundError
        If the account does not exist.
    """
    resolve_account(cfg, organization_id, account_code)

    conn = connect(cfg)
    try:
        cur = conn.execute(
            """
            SELECT
                e.id,
                e.entry_number,
                e.date,
                e.journal_type,
                e.description,
                l.position,
                l.description,
                l.debit_cents,
                l.credit_cents,
                l.tax_rate
              FROM journal_entry_lines AS l
              JOIN journal_entries AS e
                ON e.id = l.journal_entry_id
              JOIN accounts AS a
                ON a.id = l.account_id
             WHERE e.organization_id = ?
               AND a.account_number = ?
               AND e.date BETWEEN ? AND ?
             ORDER BY e.date, e.entry_number, l.position;
            """,
            (
                organization_id,
                account_code,
                to_iso_date(period.start),
                to_iso_date(period.end),
            ),
        )
        rows = cur.fetchall()
    finally:
        conn.close()

    return [
        Movement(
            entry_id=entry_id,
            entry_number=number,
            date=date.fromisoformat(date_str),
            journal_type=journal_type,
            entry_description=entry_description,
            position=position,
            line_description=line_description,
            debit=from_cents(debit_cents),
            credit=from_cents(credit_cents),
            tax_rate=None if tax_rate is None else Decimal(tax_rate),
        )
        for (
            entry_id,
            number,
            date_str,
            journal_type,
            entry_description,
            position,
            line_description,
            debit_cents,
            credit_cents,
            tax_rate,
        ) in rows
    ]


def running_balance(
    movements: Iterable[Movement], opening: Decimal = ZERO
) -> Iterator[Decimal]:
    """Lazily yield the balance after each movement: previous + debit - credit."""
    balance = opening
    for movement in movements:
        balance = balance + movement.amount
        yield balance


def _sum_cents(
    cfg: DatabaseConfig,
    organization_id: str,
    account_code: str,
    start: str,
    end_clause: str,
    end: str,
) -> int:
    conn = connect(cfg)
    try:
        cur = conn.execute(
            f"""
            SELECT COALESCE(SUM(l.debit_cents), 0) - COALESCE(SUM(l.credit_cents), 0)
              FROM journal_entry_lines AS l
              JOIN journal_entries AS e
                ON e.id = l.journal_entry_id
              JOIN accounts AS a
                ON a.id = l.account_id
             WHERE e.organization_id = ?
               AND a.account_number = ?
               AND e.date >= ?
               AND e.date {end_clause} ?;
            """,
            (organization_id, account_code, start, end),
        )
        (cents,) = cur.fetchone()
    finally:
        conn.close()
    return int(cents)


def period_balance(
    cfg: DatabaseConfig, organization_id: str, account_code: str, period: Period
) -> Decimal:
    """sum(debit) - sum(credit) of an account over a period."""
    return from_cents(
        _sum_cents(
            cfg,
            organization_id,
            account_code,
            to_iso_date(period.start),
            "<=",
            to_iso_date(period.end),
        )
    )


def opening_balance(
    cfg: DatabaseConfig, organization_id: str, account_code: str, before: date
) -> Decimal:
    """Balance carried forward: every movement strictly before ``before``."""
    return from_cents(
        _sum_cents(
            cfg,
            organization_id,
            account_code,
            to_iso_date(EPOCH),
            "<",
            to_iso_date(before),
        )
    )


def account_totals(
    cfg: DatabaseConfig,
    organization_id: str,
    period: Period,
    classes: Optional[Sequence[int]] = None,
    conn: Optional[sqlite3.Connection] = None,
) -> pd.DataFrame:
    """
    Debit and credit totals per account over a period.

    Only accounts with at least one line in the period appear.

    Returns
    -------
    pandas.DataFrame
        Columns: account, name, account_class, account_type, debit, credit,
        balance (debit - credit), ordered by account. Amounts are Decimal.
    """
    with read_scope(cfg, conn) as reader:
        cur = reader.execute(
            """
            SELECT
                a.account_number,
                a.name,
                a.account_class,
                a.account_type,
                SUM(l.debit_cents),
                SUM(l.credit_cents)
              FROM journal_entry_lines AS l
              JOIN journal_entries AS e
                ON e.id = l.journal_entry_id
              JOIN accounts AS a
                ON a.id = l.account_id
             WHERE e.organization_id = ?
               AND e.date BETWEEN ? AND ?
             GROUP BY a.id
             ORDER BY a.account_number;
            """,
            (organization_id, to_iso_date(period.start), to_iso_date(period.end)),
        )
        rows = cur.fetchall()

    if classes is not None:
        wanted = set(classes)
        rows = [r for r in rows if int(r[2]) in wanted]

    return pd.DataFrame(
        [
            {
                "account": number,
                "name": name,
                "account_class": int(account_class),
                "account_type": account_type,
                "debit": from_cents(debit_cents),
                "credit": from_cents(credit_cents),
                "balance": from_cents(debit_cents - credit_cents),
            }
            for number, name, account_class, account_type, debit_cents, credit_cents in rows
        ],
        columns=[
            "account",
            "name",
            "account_class",
            "account_type",
            "debit",
            "credit",
            "balance",
        ],
    )


def period_balances(
    cfg: DatabaseConfig,
    organization_id: str,
    period: Period,
    classes: Optional[Sequence[int]] = None,
    conn: Optional[sqlite3.Connection] = None,
) -> dict[str, Decimal]:
    """Balance (debit - credit) of every account with lines in the period."""
    totals = account_totals(cfg, organization_id, period, classes, conn=conn)
    return dict(zip(totals["account"], totals["balance"]))


def general_ledger(
    cfg: DatabaseConfig,
    organization_id: str,
    period: Period,
    accounts: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """
    Grand livre: every movement of the period, account by account.

    The running balance of each account starts from its opening balance
    (all movements before the period).

    Returns
    -------
    pandas.DataFrame
        Columns: account, account_name, date, entry_ref, journal_type,
        description, debit, credit, balance.
    """
    columns = [
        "account",
        "account_name",
        "date",
        "entry_ref",
        "journal_type",
        "description",
        "debit",
        "credit",
        "balance",
    ]
    totals = account_totals(cfg, organization_id, period)
    if accounts is not None:
        totals = totals[totals["account"].isin([str(a) for a in accounts])]

    rows = []
    for account, name in zip(totals["account"], totals["name"]):
        movements = account_movements(cfg, organization_id, account, period)
        opening = opening_balance(cfg, organization_id, account, period.start)
        for movement, balance in zip(movements, running_balance(movements, opening)):
            rows.append(
                {
                    "account": account,
                    "account_name": name,
                    "date": movement.date,
                    "entry_ref": movement.entry_ref,
                    "journal_type": movement.journal_type,
                    "description": movement.description,
                    "debit": movement.debit,
                    "credit": movement.credit,
                    "balance": balance,
                }
            )
    return pd.DataFrame(rows, columns=columns)


def trial_balance(
    cfg: DatabaseConfig, organization_id: str, period: Period
) -> pd.DataFrame:
    """
    Balance générale: totals and closing side per account over the period.

    Returns
    -------
    pandas.DataFrame
        Columns: account, name, account_class, total_debit, total_credit,
        debit_balance, credit_balance. Column sums of total_debit and
        total_credit are equal on a consistent ledger.
    """
    totals = account_totals(cfg, organization_id, period)
    return pd.DataFrame(
        {
            "account": totals["account"],
            "name": totals["name"],
            "account_class": totals["account_class"],
            "total_debit": totals["debit"],
            "total_credit": totals["credit"],
            "debit_balance": [b if b > 0 else ZERO for b in totals["balance"]],
            "credit_balance": [-b if b < 0 else ZERO for b in totals["balance"]],
        },
        columns=[
            "account",
            "name",
            "account_class",
            "total_debit",
            "total_credit",
            "debit_balance",
            "credit_balance",
        ],
    )


def taxed_lines(
    cfg: DatabaseConfig,
    organization_id: str,
    period: Period,
    conn: Optional[sqlite3.Connection] = None,
) -> pd.DataFrame:
    """
    Every line of the period tagged with a tax rate.

    Returns
    -------
    pandas.DataFrame
        Columns: account, account_class, tax_rate, debit, credit, ordered by
        (entry date, entry number, line position). Amounts and rates are
        Decimal.
    """
    with read_scope(cfg, conn) as reader:
        cur = reader.execute(
            """
            SELECT
                a.account_number,
                a.account_class,
                l.tax_rate,
                l.debit_cents,
                l.credit_cents
              FROM journal_entry_lines AS l
              JOIN journal_entries AS e
                ON e.id = l.journal_entry_id
              JOIN accounts AS a
                ON a.id = l.account_id
             WHERE e.organization_id = ?
               AND e.date BETWEEN ? AND ?
               AND l.tax_rate IS NOT NULL
             ORDER BY e.date, e.entry_number, l.position;
            """,
            (organization_id, to_iso_date(period.start), to_iso_date(period.end)),
        )
        rows = cur.fetchall()

    return pd.DataFrame(
        [
            {
                "account": number,
                "account_class": int(account_class),
                "tax_rate": Decimal(tax_rate),
                "debit": from_cents(debit_cents),
                "credit": from_cents(credit_cents),
            }
            for number, account_class, tax_rate, debit_cents, credit_cents in rows
        ],
        columns=["account", "account_class", "tax_rate", "debit", "credit"],
    )
