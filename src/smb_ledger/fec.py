# SMB Ledger - Double-entry accounting ledger for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
FEC export (Fichier des Écritures Comptables).

The FEC is the statutory ledger export requested by the French tax
administration. Its layout is a fixed contract:

- UTF-8 text, CRLF line endings, '|' or tab separated,
- a header row then one row per journal line, ordered by entry date,
  entry number and line position,
- 18 columns, always all emitted (unused ones empty):

    JournalCode|JournalLib|EcritureNum|EcritureDate|CompteNum|CompteLib|
    CompAuxNum|CompAuxLib|PieceRef|PieceDate|EcritureLib|Debit|Credit|
    EcritureLet|DateLet|ValidDate|Montantdevise|Idevise

- dates as YYYYMMDD, amounts with a dot and exactly two decimals.

``read_fec`` and ``totals_by_account`` parse an export back so that
per-account balances can be recomputed from the file alone.
"""

from __future__ import annotations

import csv
import io
import logging
from datetime import date
from decimal import Decimal
from typing import Optional

import pandas as pd

from .db import DatabaseConfig, connect, to_iso_date
from .journal import format_entry_ref
from .money import ZERO, format_amount, from_cents
from .periods import Period

logger = logging.getLogger(__name__)

FEC_COLUMNS = [
    "JournalCode",
    "JournalLib",
    "EcritureNum",
    "EcritureDate",
    "CompteNum",
    "CompteLib",
    "CompAuxNum",
    "CompAuxLib",
    "PieceRef",
    "PieceDate",
    "EcritureLib",
    "Debit",
    "Credit",
    "EcritureLet",
    "DateLet",
    "ValidDate",
    "Montantdevise",
    "Idevise",
]

JOURNAL_CODES = {
    "sales": "VE",
    "purchases": "AC",
    "bank": "BQ",
    "general": "OD",
}

JOURNAL_LABELS = {
    "sales": "Journal des ventes",
    "purchases": "Journal des achats",
    "bank": "Journal de banque",
    "general": "Journal des OD",
}

SEPARATORS = ("|", "\t")
LINE_END = "\r\n"


def _check_separator(separator: str) -> None:
    if separator not in SEPARATORS:
        raise ValueError(f"Invalid FEC separator {separator!r}: expected '|' or a tab.")


def _fec_date(iso: str) -> str:
    return iso.replace("-", "")


def _clean(text: Optional[str], separator: str) -> str:
    """Free text on one field: no separator, no line break."""
    if not text:
        return ""
    for ch in (separator, "\r", "\n"):
        text = text.replace(ch, " ")
    return text.strip()


def fec_filename(siren: Optional[str], closing_date: date) -> str:
    """Statutory file name, e.g. '123456789FEC20251231.txt'."""
    return f"{siren or '000000000'}FEC{closing_date:%Y%m%d}.txt"


def export_fec(
    cfg: DatabaseConfig,
    organization_id: str,
    period: Period,
    separator: str = "|",
) -> bytes:
    """
    Serialize every journal line of the period to FEC.

    Returns
    -------
    bytes
        UTF-8 encoded file content (header row included, even when the
        period has no entries).

    Raises
    ------
    ValueError
        If the separator is neither '|' nor a tab.
    """
    _check_separator(separator)

    conn = connect(cfg)
    try:
        cur = conn.execute(
            """
            SELECT
                e.journal_type,
                e.entry_number,
                e.date,
                e.description,
                a.account_number,
                a.name,
                l.description,
                l.debit_cents,
                l.credit_cents
              FROM journal_entry_lines AS l
              JOIN journal_entries AS e
                ON e.id = l.journal_entry_id
              JOIN accounts AS a
                ON a.id = l.account_id
             WHERE e.organization_id = ?
               AND e.date BETWEEN ? AND ?
             ORDER BY e.date, e.entry_number, l.position;
            """,
            (organization_id, to_iso_date(period.start), to_iso_date(period.end)),
        )
        rows = cur.fetchall()
    finally:
        conn.close()

    out = io.StringIO()
    out.write(separator.join(FEC_COLUMNS) + LINE_END)
    for (
        journal_type,
        number,
        iso_date,
        entry_description,
        account_number,
        account_name,
        line_description,
        debit_cents,
        credit_cents,
    ) in rows:
        entry_ref = format_entry_ref(number)
        fec_date = _fec_date(iso_date)
        fields = [
            JOURNAL_CODES[journal_type],
            JOURNAL_LABELS[journal_type],
            entry_ref,
            fec_date,
            account_number,
            _clean(account_name, separator),
            "",  # CompAuxNum
            "",  # CompAuxLib
            entry_ref,  # PieceRef
            fec_date,  # PieceDate
            _clean(line_description or entry_description, separator),
            format_amount(from_cents(debit_cents)),
            format_amount(from_cents(credit_cents)),
            "",  # EcritureLet
            "",  # DateLet
            fec_date,  # ValidDate
            "",  # Montantdevise
            "",  # Idevise
        ]
        out.write(separator.join(fields) + LINE_END)

    logger.info(
        "Exported %d FEC line(s) for organization %s (%s to %s)",
        len(rows),
        organization_id,
        period.start,
        period.end,
    )
    return out.getvalue().encode("utf-8")


def read_fec(data: bytes | str, separator: str = "|") -> pd.DataFrame:
    """
    Parse FEC content into a DataFrame of strings (one column per field).

    Raises
    ------
    ValueError
        If the separator is invalid or the header is not the FEC header.
    """
    _check_separator(separator)
    text = data.decode("utf-8") if isinstance(data, bytes) else data

    frame = pd.read_csv(
        io.StringIO(text),
        sep=separator,
        dtype=str,
        keep_default_na=False,
        quoting=csv.QUOTE_NONE,
    )
    frame.columns = [str(c).strip() for c in frame.columns]
    if list(frame.columns) != FEC_COLUMNS:
        raise ValueError(
            f"Not a FEC file: expected {len(FEC_COLUMNS)} columns "
            f"{separator.join(FEC_COLUMNS)!r}."
        )
    return frame


def totals_by_account(frame: pd.DataFrame) -> dict[str, Decimal]:
    """Debit - credit per CompteNum, recomputed from a parsed FEC."""
    totals: dict[str, Decimal] = {}
    for account, debit, credit in zip(frame["CompteNum"], frame["Debit"], frame["Credit"]):
        totals[account] = totals.get(account, ZERO) + Decimal(debit) - Decimal(credit)
    return totals
