# SMB Ledger - Double-entry accounting ledger for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.


"""
Journal entry store.

A journal entry is a dated, described, sequentially numbered set of at
least two lines whose debits equal its credits. Entries are append-only:

- there is no update path (database triggers reject UPDATE statements),
- a posted entry is corrected either by a reversing entry
  (``reverse_entry``) or, for entries generated from a business object, by
  deleting every entry of that object and generating again
  (``replace_entries_for_reference``).

Numbering
---------
Each organization owns a counter (``organizations.next_entry_number``). A
new entry takes the counter value and increments it with a single UPDATE
inside the same transaction as the header and line inserts. Numbers are
therefore unique and increasing per organization, never reused, and gaps
are expected after deletions. Entries are displayed as ``EC-000042``.

Validation
----------
``create_entry`` rejects, without persisting anything:

- fewer than two lines                       (rule ``min_lines``)
- a negative amount                          (rule ``negative_amount``)
- an amount with more than two decimals      (rule ``precision``)
- a line that is not debit XOR credit        (rule ``line_sides``)
- total debit != total credit                (rule ``unbalanced``)
- an unknown / inactive / non-postable account

All write operations accept an optional ``conn``: an event producer that
already holds a transaction (see ``db.transaction``) passes it in so that
its own writes and the journal entry commit or roll back together.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from .accounts import require_postable_account
from .db import DatabaseConfig, connect, now_utc_iso, to_iso_date, write_scope
from .errors import NotFoundError, ValidationError
from .money import ZERO, from_cents, normalize_rate, to_cents, to_decimal
from .periods import Period

logger = logging.getLogger(__name__)

JOURNAL_TYPES = ("sales", "purchases", "bank", "general")
ENTRY_REF_PREFIX = "EC-"

# Reference type used to link a reversing entry to the entry it cancels.
REVERSAL_REFERENCE = "reversal"


def format_entry_ref(number: int) -> str:
    """Display form of an entry number: 42 -> 'EC-000042'."""
    return f"{ENTRY_REF_PREFIX}{number:06d}"


def parse_entry_ref(value: str | int) -> int:
    """Accept 42, '42' or 'EC-000042' and return the entry number."""
    text = str(value).strip().upper()
    if text.startswith(ENTRY_REF_PREFIX):
        text = text[len(ENTRY_REF_PREFIX) :]
    if not text.isdigit():
        raise ValueError(f"Invalid entry number: {value!r}")
    return int(text)


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Reference:
    """Opaque pointer to the business object an entry was generated from."""

    type: str
    id: str


@dataclass(frozen=True)
class LineInput:
    """
    A line to be posted.

    Exactly one of ``debit`` / ``credit`` must be strictly positive; the
    other is zero. ``tax_rate`` tags revenue/expense lines with the VAT rate
    they were taxed at, for the VAT report.
    """

    account: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: Optional[str] = None
    tax_rate: Optional[Decimal] = None


@dataclass(frozen=True)
class EntryLine:
    """A stored line of a journal entry."""

    id: int
    position: int
    account_number: str
    account_name: str
    debit: Decimal
    credit: Decimal
    description: Optional[str]
    tax_rate: Optional[Decimal]


@dataclass(frozen=True)
class JournalEntry:
    """A stored journal entry with its lines, in posting order."""

    id: int
    organization_id: str
    number: int
    date: date
    description: str
    journal_type: str
    reference_type: Optional[str]
    reference_id: Optional[str]
    created_at: datetime
    lines: tuple[EntryLine, ...] = field(default_factory=tuple)

    @property
    def entry_ref(self) -> str:
        return format_entry_ref(self.number)

    @property
    def reference(self) -> Optional[Reference]:
        if self.reference_type is None or self.reference_id is None:
            return None
        return Reference(self.reference_type, self.reference_id)

    @property
    def total_debit(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def total_credit(self) -> Decimal:
        return sum((line.credit for line in self.lines), ZERO)


@dataclass(frozen=True)
class _CheckedLine:
    account: str
    debit_cents: int
    credit_cents: int
    description: Optional[str]
    tax_rate: Optional[str]


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_lines(lines: Sequence[LineInput]) -> list[_CheckedLine]:
    """
    Check the structural rules of an entry (everything but the accounts).

    Returns the lines converted to integer cents, in input order.

    Raises
    ------
    ValidationError
        rule 'min_lines', 'invalid_amount', 'negative_amount', 'precision',
        'line_sides' or 'unbalanced'.
    """
    if len(lines) < 2:
        raise ValidationError(
            "min_lines",
            f"A journal entry needs at least two lines, got {len(lines)}.",
        )

    checked: list[_CheckedLine] = []
    for position, line in enumerate(lines, start=1):
        debit = to_decimal(line.debit)
        credit = to_decimal(line.credit)
        if debit < 0 or credit < 0:
            raise ValidationError(
                "negative_amount",
                f"Line {position} ({line.account}) has a negative amount.",
                position=position,
            )

        debit_cents = to_cents(debit)
        credit_cents = to_cents(credit)
        if (debit_cents > 0) == (credit_cents > 0):
            raise ValidationError(
                "line_sides",
                f"Line {position} ({line.account}) must have exactly one of "
                "debit or credit strictly positive.",
                position=position,
            )

        checked.append(
            _CheckedLine(
                account=str(line.account).strip(),
                debit_cents=debit_cents,
                credit_cents=credit_cents,
                description=line.description,
                tax_rate=None if line.tax_rate is None else normalize_rate(line.tax_rate),
            )
        )

    total_debit = sum(c.debit_cents for c in checked)
    total_credit = sum(c.credit_cents for c in checked)
    if total_debit != total_credit:
        raise ValidationError(
            "unbalanced",
            f"Entry is unbalanced: debit {from_cents(total_debit)} != "
            f"credit {from_cents(total_credit)}.",
            total_debit=from_cents(total_debit),
            total_credit=from_cents(total_credit),
        )

    return checked


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


_ENTRY_COLUMNS = """
    e.id,
    e.organization_id,
    e.entry_number,
    e.date,
    e.description,
    e.journal_type,
    e.reference_type,
    e.reference_id,
    e.created_at
"""


def _next_entry_number(conn: sqlite3.Connection, organization_id: str) -> int:
    """Consume the organization counter inside the caller's transaction."""
    cur = conn.execute(
        """
        UPDATE organizations
           SET next_entry_number = next_entry_number + 1
         WHERE id = ?;
        """,
        (organization_id,),
    )
    if cur.rowcount == 0:
        raise NotFoundError(f"Unknown organization {organization_id!r}.")

    cur = conn.execute(
        "SELECT next_entry_number - 1 FROM organizations WHERE id = ?;",
        (organization_id,),
    )
    (number,) = cur.fetchone()
    return int(number)


def _load_entries(
    conn: sqlite3.Connection, where: str, params: tuple
) -> list[JournalEntry]:
    """
    Load entries matching a WHERE clause on ``journal_entries AS e``, with
    their lines, ordered by (date, entry number).
    """
    cur = conn.execute(
        f"""
        SELECT {_ENTRY_COLUMNS}
          FROM journal_entries AS e
         WHERE {where}
         ORDER BY e.date, e.entry_number;
        """,
        params,
    )
    headers = cur.fetchall()
    if not headers:
        return []

    cur = conn.execute(
        f"""
        SELECT
            l.journal_entry_id,
            l.id,
            l.position,
            a.account_number,
            a.name,
            l.debit_cents,
            l.credit_cents,
            l.description,
            l.tax_rate
          FROM journal_entry_lines AS l
          JOIN accounts AS a
            ON a.id = l.account_id
          JOIN journal_entries AS e
            ON e.id = l.journal_entry_id
         WHERE {where}
         ORDER BY l.journal_entry_id, l.position;
        """,
        params,
    )
    lines_by_entry: dict[int, list[EntryLine]] = {}
    for (
        entry_id,
        line_id,
        position,
        account_number,
        account_name,
        debit_cents,
        credit_cents,
        description,
        tax_rate,
    ) in cur.fetchall():
        lines_by_entry.setdefault(entry_id, []).append(
            EntryLine(
                id=line_id,
                position=position,
                account_number=account_number,
                account_name=account_name,
                debit=from_cents(debit_cents),
                credit=from_cents(credit_cents),
                description=description,
                tax_rate=None if tax_rate is None else Decimal(tax_rate),
            )
        )

    entries: list[JournalEntry] = []
    for (
        entry_id,
        organization_id,
        number,
        date_str,
        description,
        journal_type,
        reference_type,
        reference_id,
        created_at_str,
    ) in headers:
        entries.append(
            JournalEntry(
                id=entry_id,
                organization_id=organization_id,
                number=number,
                date=date.fromisoformat(date_str),
                description=description,
                journal_type=journal_type,
                reference_type=reference_type,
                reference_id=reference_id,
                created_at=datetime.fromisoformat(created_at_str),
                lines=tuple(lines_by_entry.get(entry_id, ())),
            )
        )
    return entries


def _verify_entry_totals(conn: sqlite3.Connection, entry_id: int) -> None:
    """Re-read the lines just written and refuse to commit an unbalanced entry."""
    cur = conn.execute(
        """
        SELECT COUNT(*), COALESCE(SUM(debit_cents), 0), COALESCE(SUM(credit_cents), 0)
          FROM journal_entry_lines
         WHERE journal_entry_id = ?;
        """,
        (entry_id,),
    )
    line_count, debit_cents, credit_cents = cur.fetchone()
    if line_count < 2 or debit_cents != credit_cents:
        raise ValidationError(
            "unbalanced",
            f"Stored entry #{entry_id} does not balance "
            f"({from_cents(debit_cents)} / {from_cents(credit_cents)}).",
            total_debit=from_cents(debit_cents),
            total_credit=from_cents(credit_cents),
        )


# ---------------------------------------------------------------------------
# Public API: writes
# ---------------------------------------------------------------------------


def create_entry(
    cfg: DatabaseConfig,
    organization_id: str,
    entry_date: date,
    description: str,
    lines: Sequence[LineInput],
    reference: Optional[Reference] = None,
    journal_type: str = "general",
    conn: Optional[sqlite3.Connection] = None,
) -> JournalEntry:
    """
    Validate and persist a balanced journal entry.

    The counter update, header insert and line inserts happen in one
    transaction (the caller's when ``conn`` is given). Totals are re-read
    from storage before commit.

    Parameters
    ----------
    cfg:
        Database configuration.
    organization_id:
        Owner of the entry and of the accounts it posts to.
    entry_date:
        Accounting date of the entry.
    description:
        Non-empty label of the entry.
    lines:
        At least two LineInput, posted in the given order.
    reference:
        Optional originating business object.
    journal_type:
        One of 'sales', 'purchases', 'bank', 'general'.
    conn:
        Optional connection already inside a transaction.

    Returns
    -------
    JournalEntry
        The stored entry, with its number and lines.

    Raises
    ------
    ValidationError
        If any structural or account rule fails. Nothing is persisted.
    NotFoundError
        If the organization does not exist.
    """
    try:
        if journal_type not in JOURNAL_TYPES:
            raise ValidationError(
                "journal_type",
                f"Invalid journal type {journal_type!r}; expected one of "
                f"{', '.join(JOURNAL_TYPES)}.",
            )
        if not description or not str(description).strip():
            raise ValidationError("description", "A journal entry needs a description.")
        checked = validate_lines(lines)
    except ValidationError as exc:
        logger.warning("Rejected journal entry (%s): %s", exc.rule, exc)
        raise

    iso_date = to_iso_date(entry_date)

    with write_scope(cfg, conn) as tx:
        try:
            account_ids = [
                require_postable_account(tx, organization_id, line.account).id
                for line in checked
            ]
        except ValidationError as exc:
            logger.warning("Rejected journal entry (%s): %s", exc.rule, exc)
            raise

        number = _next_entry_number(tx, organization_id)
        cur = tx.execute(
            """
            INSERT INTO journal_entries (
                organization_id,
                entry_number,
                date,
                description,
                journal_type,
                reference_type,
                reference_id,
                created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                organization_id,
                number,
                iso_date,
                str(description).strip(),
                journal_type,
                None if reference is None else reference.type,
                None if reference is None else str(reference.id),
                now_utc_iso(),
            ),
        )
        entry_id = cur.lastrowid

        tx.executemany(
            """
            INSERT INTO journal_entry_lines (
                journal_entry_id,
                account_id,
                position,
                description,
                debit_cents,
                credit_cents,
                tax_rate
            )
            VALUES (?, ?, ?, ?, ?, ?, ?);
            """,
            [
                (
                    entry_id,
                    account_id,
                    position,
                    line.description,
                    line.debit_cents,
                    line.credit_cents,
                    line.tax_rate,
                )
                for position, (line, account_id) in enumerate(
                    zip(checked, account_ids), start=1
                )
            ],
        )

        _verify_entry_totals(tx, entry_id)
        (entry,) = _load_entries(tx, "e.id = ?", (entry_id,))

    logger.info(
        "Created entry %s (%s) for organization %s, reference %s",
        entry.entry_ref,
        journal_type,
        organization_id,
        entry.reference,
    )
    return entry


def _reversals_of(
    tx: sqlite3.Connection, organization_id: str, entry_ids: Sequence[int]
) -> list[tuple[int, int]]:
    placeholders = ", ".join("?" for _ in entry_ids)
    cur = tx.execute(
        f"""
        SELECT id, entry_number
          FROM journal_entries
         WHERE organization_id = ?
           AND reference_type = ?
           AND reference_id IN ({placeholders});
        """,
        (organization_id, REVERSAL_REFERENCE, *(str(i) for i in entry_ids)),
    )
    return cur.fetchall()


def delete_entries_by_reference(
    cfg: DatabaseConfig,
    organization_id: str,
    reference_type: str,
    reference_id: str,
    conn: Optional[sqlite3.Connection] = None,
) -> int:
    """
    Delete every entry generated from one business object, with its lines.

    Reversal entries of the deleted entries go with them (and reversals
    of those reversals), so no counter-entry is left orphaned. Deleting
    a reference that has no entries is a no-op.

    Returns
    -------
    int
        Number of entries deleted, reversals included.
    """
    with write_scope(cfg, conn) as tx:
        cur = tx.execute(
            """
            SELECT id, entry_number
              FROM journal_entries
             WHERE organization_id = ?
               AND reference_type = ?
               AND reference_id = ?;
            """,
            (organization_id, reference_type, str(reference_id)),
        )
        rows = cur.fetchall()
        seen = {entry_id for entry_id, _ in rows}
        frontier = [entry_id for entry_id, _ in rows]
        while frontier:
            found = [
                row
                for row in _reversals_of(tx, organization_id, frontier)
                if row[0] not in seen
            ]
            seen.update(entry_id for entry_id, _ in found)
            rows.extend(found)
            frontier = [entry_id for entry_id, _ in found]
        if rows:
            tx.executemany(
                "DELETE FROM journal_entries WHERE id = ?;",
                [(entry_id,) for entry_id, _ in rows],
            )
    if rows:
        logger.info(
            "Deleted %d entr%s (%s) for reference %s/%s",
            len(rows),
            "y" if len(rows) == 1 else "ies",
            ", ".join(format_entry_ref(number) for _, number in rows),
            reference_type,
            reference_id,
        )
    return len(rows)


def replace_entries_for_reference(
    cfg: DatabaseConfig,
    organization_id: str,
    reference: Reference,
    entry_date: date,
    description: str,
    lines: Sequence[LineInput],
    journal_type: str = "general",
    conn: Optional[sqlite3.Connection] = None,
) -> JournalEntry:
    """
    Delete the entries of a business object and post its new entry, atomically.

    This is how an edited invoice, bill or expense is re-posted: if the new
    entry is rejected, the old entries are kept.
    """
    with write_scope(cfg, conn) as tx:
        delete_entries_by_reference(
            cfg, organization_id, reference.type, reference.id, conn=tx
        )
        return create_entry(
            cfg,
            organization_id,
            entry_date,
            description,
            lines,
            reference=reference,
            journal_type=journal_type,
            conn=tx,
        )


def reverse_entry(
    cfg: DatabaseConfig,
    organization_id: str,
    entry_number: int,
    reversal_date: date,
    description: Optional[str] = None,
    conn: Optional[sqlite3.Connection] = None,
) -> JournalEntry:
    """
    Cancel a posted entry with a new entry swapping its debits and credits.

    The reversing entry is posted in the same journal and references
    ``("reversal", <original entry id>)``.

    Raises
    ------
    NotFoundError
        If the entry does not exist.
    ValidationError
        rule 'already_reversed' if a reversal was already posted.
    """
    with write_scope(cfg, conn) as tx:
        found = _load_entries(
            tx,
            "e.organization_id = ? AND e.entry_number = ?",
            (organization_id, int(entry_number)),
        )
        if not found:
            raise NotFoundError(f"Unknown entry {format_entry_ref(int(entry_number))}.")
        original = found[0]

        reversals = _load_entries(
            tx,
            "e.organization_id = ? AND e.reference_type = ? AND e.reference_id = ?",
            (organization_id, REVERSAL_REFERENCE, str(original.id)),
        )
        if reversals:
            raise ValidationError(
                "already_reversed",
                f"Entry {original.entry_ref} was already reversed by "
                f"{reversals[0].entry_ref}.",
            )

        lines = [
            LineInput(
                account=line.account_number,
                debit=line.credit,
                credit=line.debit,
                description=line.description,
                tax_rate=line.tax_rate,
            )
            for line in original.lines
        ]
        return create_entry(
            cfg,
            organization_id,
            reversal_date,
            description or f"Extourne {original.entry_ref} - {original.description}",
            lines,
            reference=Reference(REVERSAL_REFERENCE, str(original.id)),
            journal_type=original.journal_type,
            conn=tx,
        )


# ---------------------------------------------------------------------------
# Public API: reads
# ---------------------------------------------------------------------------


def get_entry(
    cfg: DatabaseConfig, organization_id: str, entry_number: int
) -> JournalEntry:
    """
    Load one entry by its number.

    Raises
    ------
    NotFoundError
        If the organization has no entry with this number.
    """
    conn = connect(cfg)
    try:
        found = _load_entries(
            conn,
            "e.organization_id = ? AND e.entry_number = ?",
            (organization_id, int(entry_number)),
        )
    finally:
        conn.close()

    if not found:
        raise NotFoundError(f"Unknown entry {format_entry_ref(int(entry_number))}.")
    return found[0]


def find_entries_by_reference(
    cfg: DatabaseConfig, organization_id: str, reference_type: str, reference_id: str
) -> list[JournalEntry]:
    """Entries generated from one business object (empty if none)."""
    conn = connect(cfg)
    try:
        return _load_entries(
            conn,
            "e.organization_id = ? AND e.reference_type = ? AND e.reference_id = ?",
            (organization_id, reference_type, str(reference_id)),
        )
    finally:
        conn.close()


def count_entries_for_reference(
    conn: sqlite3.Connection, organization_id: str, reference: Reference
) -> int:
    """Number of entries posted for a reference, seen from ``conn``."""
    cur = conn.execute(
        """
        SELECT COUNT(*)
          FROM journal_entries
         WHERE organization_id = ?
           AND reference_type = ?
           AND reference_id = ?;
        """,
        (organization_id, reference.type, str(reference.id)),
    )
    (count,) = cur.fetchone()
    return int(count)


def list_entries(
    cfg: DatabaseConfig,
    organization_id: str,
    period: Optional[Period] = None,
    journal_type: Optional[str] = None,
) -> list[JournalEntry]:
    """Entries of an organization, ordered by date then entry number."""
    where = ["e.organization_id = ?"]
    params: list = [organization_id]
    if period is not None:
        where.append("e.date BETWEEN ? AND ?")
        params.extend([to_iso_date(period.start), to_iso_date(period.end)])
    if journal_type is not None:
        where.append("e.journal_type = ?")
        params.append(journal_type)

    conn = connect(cfg)
    try:
        return _load_entries(conn, " AND ".join(where), tuple(params))
    finally:
        conn.close()


def find_unbalanced_entries(
    cfg: DatabaseConfig, organization_id: str
) -> list[tuple[int, Decimal, Decimal]]:
    """
    Audit storage for entries whose lines do not balance.

    Returns
    -------
    list[tuple[int, Decimal, Decimal]]
        (entry number, total debit, total credit) per offending entry.
    """
    conn = connect(cfg)
    try:
        cur = conn.execute(
            """
            SELECT
                e.entry_number,
                COALESCE(SUM(l.debit_cents), 0),
                COALESCE(SUM(l.credit_cents), 0)
              FROM journal_entries AS e
              LEFT JOIN journal_entry_lines AS l
                ON l.journal_entry_id = e.id
             WHERE e.organization_id = ?
             GROUP BY e.id, e.entry_number
            HAVING COALESCE(SUM(l.debit_cents), 0) != COALESCE(SUM(l.credit_cents), 0)
             ORDER BY e.entry_number;
            """,
            (organization_id,),
        )
        rows = cur.fetchall()
    finally:
        conn.close()

    return [(number, from_cents(d), from_cents(c)) for number, d, c in rows]
