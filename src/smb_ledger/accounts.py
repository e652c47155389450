# SMB Ledger - Double-entry accounting ledger for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Chart of accounts for SMB Ledger.

Accounts follow the French PCG: a short numeric code and exactly one of
seven classes:

    1 Equity/Capital        5 Financial/cash
    2 Fixed assets          6 Expenses
    3 Inventory             7 Income
    4 Third parties (receivables/payables)

Each account also has an ``account_type`` which fixes its normal side:
asset and expense accounts are debit-normal; liability, equity and income
accounts are credit-normal. Class 4 mixes both (411000 Clients is an asset,
401000 Fournisseurs a liability).

Responsibilities:
- Load a chart of accounts from CSV (the default PCG ships with the package).
- Seed the chart once per organization.
- Resolve account codes for entry generation. A missing, inactive or
  non-postable account is a hard error: no entry is ever created against it.
- Guard account deletion once an entry line references the account.

An account is *postable* when it is active and no other account declares
it as its parent (group accounts such as '60' or '44566' only aggregate).
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import pandas as pd

from .db import DatabaseConfig, connect, init_database, now_utc_iso, transaction
from .errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_CHART_PATH = Path(__file__).resolve().parent / "data" / "pcg.csv"

ACCOUNT_TYPES = ("asset", "liability", "equity", "income", "expense")
DEBIT_NORMAL_TYPES = frozenset({"asset", "expense"})

CLASS_LABELS = {
    1: "Equity/Capital",
    2: "Fixed assets",
    3: "Inventory",
    4: "Third parties",
    5: "Financial/cash",
    6: "Expenses",
    7: "Income",
}


@dataclass(frozen=True)
class Account:
    """A chart-of-accounts row, as stored for one organization."""

    id: int
    organization_id: str
    number: str
    name: str
    account_class: int
    account_type: str
    parent_number: Optional[str]
    is_system: bool
    is_active: bool
    is_postable: bool

    @property
    def normal_side(self) -> str:
        """'debit' for asset/expense accounts, 'credit' otherwise."""
        return "debit" if self.account_type in DEBIT_NORMAL_TYPES else "credit"


_ACCOUNT_COLUMNS = """
    a.id,
    a.organization_id,
    a.account_number,
    a.name,
    a.account_class,
    a.account_type,
    a.parent_account_number,
    a.is_system,
    a.is_active,
    NOT EXISTS (
        SELECT 1 FROM accounts AS c
         WHERE c.organization_id = a.organization_id
           AND c.parent_account_number = a.account_number
    ) AS is_leaf
"""


def _row_to_account(row: tuple) -> Account:
    (
        account_id,
        organization_id,
        number,
        name,
        account_class,
        account_type,
        parent_number,
        is_system,
        is_active,
        is_leaf,
    ) = row
    return Account(
        id=account_id,
        organization_id=organization_id,
        number=number,
        name=name,
        account_class=int(account_class),
        account_type=account_type,
        parent_number=parent_number,
        is_system=bool(is_system),
        is_active=bool(is_active),
        is_postable=bool(is_active) and bool(is_leaf),
    )


def _first_column(col_map: dict[str, str], candidates: list[str]) -> Optional[str]:
    for cand in candidates:
        if cand in col_map:
            return col_map[cand]
    return None


def load_list_of_accounts(path: str | Path | None = None) -> pd.DataFrame:
    """Load a chart of accounts from CSV.

    Expected structure
    ------------------
    Column names are matched case-insensitively and trimmed:
        - account code:  'account_number', 'account' or 'code'
        - account label: 'name', 'label' or 'description'
        - class:         'account_class' or 'class'
        - type:          'account_type' or 'type'
        - parent code:   'parent_account_number' or 'parent' (optional)

    Args:
        path: CSV path. Defaults to the packaged PCG chart.

    Returns:
        A DataFrame with columns account_number, name, account_class,
        account_type, parent_account_number (None when absent).

    Raises:
        ValueError: if a required column is missing or a row has an invalid
            class or type.
    """
    csv_path = DEFAULT_CHART_PATH if path is None else Path(path)
    df = pd.read_csv(csv_path, dtype=str, keep_default_na=False, encoding="utf-8")
    col_map = {str(c).strip().lower(): c for c in df.columns}

    code_col = _first_column(col_map, ["account_number", "account", "code"])
    name_col = _first_column(col_map, ["name", "label", "description"])
    class_col = _first_column(col_map, ["account_class", "class"])
    type_col = _first_column(col_map, ["account_type", "type"])
    parent_col = _first_column(col_map, ["parent_account_number", "parent"])

    missing = [
        label
        for label, col in (
            ("account code", code_col),
            ("account name", name_col),
            ("account class", class_col),
            ("account type", type_col),
        )
        if col is None
    ]
    if missing:
        raise ValueError(
            f"Chart of accounts {csv_path} is missing column(s): {', '.join(missing)}."
        )

    out = pd.DataFrame(
        {
            "account_number": df[code_col].astype(str).str.strip(),
            "name": df[name_col].astype(str).str.strip(),
            "account_class": pd.to_numeric(df[class_col], errors="coerce"),
            "account_type": df[type_col].astype(str).str.strip().str.lower(),
        }
    )
    if parent_col is not None:
        parents = df[parent_col].astype(str).str.strip()
        out["parent_account_number"] = parents.where(parents != "", None)
    else:
        out["parent_account_number"] = None

    bad_class = ~out["account_class"].isin(list(CLASS_LABELS))
    if bad_class.any():
        codes = ", ".join(out.loc[bad_class, "account_number"])
        raise ValueError(f"Invalid account class (expected 1-7) for: {codes}")
    out["account_class"] = out["account_class"].astype(int)

    bad_type = ~out["account_type"].isin(ACCOUNT_TYPES)
    if bad_type.any():
        codes = ", ".join(out.loc[bad_type, "account_number"])
        raise ValueError(f"Invalid account type for: {codes}")

    return out


# ---------------------------------------------------------------------------
# Organizations and seeding
# ---------------------------------------------------------------------------


def ensure_organization(cfg: DatabaseConfig, organization_id: str, name: str) -> None:
    """Create the organization row (and the schema) if it does not exist."""
    init_database(cfg)
    with transaction(cfg) as conn:
        conn.execute(
            """
            INSERT OR IGNORE INTO organizations (id, name, next_entry_number, created_at)
            VALUES (?, ?, 1, ?);
            """,
            (organization_id, name, now_utc_iso()),
        )


def seed_chart_of_accounts(
    cfg: DatabaseConfig,
    organization_id: str,
    accounts: Optional[pd.DataFrame] = None,
) -> int:
    """
    Seed the chart of accounts for an organization.

    Does nothing if the organization already has at least one account, so
    calling it again never duplicates or resets a chart.

    Args:
        accounts: Chart as returned by ``load_list_of_accounts``. Defaults to
            the packaged PCG chart.

    Returns:
        Number of accounts inserted (0 if the chart was already seeded).
    """
    chart = load_list_of_accounts() if accounts is None else accounts
    created_at = now_utc_iso()

    with transaction(cfg) as conn:
        cur = conn.execute(
            "SELECT 1 FROM accounts WHERE organization_id = ? LIMIT 1;",
            (organization_id,),
        )
        if cur.fetchone() is not None:
            return 0

        rows = [
            (
                organization_id,
                str(r.account_number),
                str(r.name),
                int(r.account_class),
                str(r.account_type),
                None if pd.isna(r.parent_account_number) else str(r.parent_account_number),
                created_at,
            )
            for r in chart.itertuples(index=False)
        ]
        conn.executemany(
            """
            INSERT INTO accounts (
                organization_id, account_number, name, account_class,
                account_type, parent_account_number, is_system, is_active,
                created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, 1, 1, ?);
            """,
            rows,
        )

    logger.info("Seeded %d accounts for organization %s", len(rows), organization_id)
    return len(rows)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def _fetch_account(
    conn: sqlite3.Connection, organization_id: str, code: str
) -> Optional[Account]:
    cur = conn.execute(
        f"""
        SELECT {_ACCOUNT_COLUMNS}
          FROM accounts AS a
         WHERE a.organization_id = ?
           AND a.account_number = ?;
        """,
        (organization_id, str(code).strip()),
    )
    row = cur.fetchone()
    return None if row is None else _row_to_account(row)


def resolve_account(cfg: DatabaseConfig, organization_id: str, code: str) -> Account:
    """
    Look up an account by exact code.

    Raises
    ------
    NotFoundError
        If the organization has no account with this code.
    """
    conn = connect(cfg)
    try:
        account = _fetch_account(conn, organization_id, code)
    finally:
        conn.close()

    if account is None:
        raise NotFoundError(f"Unknown account {code!r} for organization {organization_id}.")
    return account


def require_postable_account(
    conn: sqlite3.Connection, organization_id: str, code: str
) -> Account:
    """
    Resolve an account that entry lines may be posted to.

    Raises
    ------
    ValidationError
        rule 'unknown_account', 'inactive_account' or 'non_postable_account'.
    """
    account = _fetch_account(conn, organization_id, code)
    if account is None:
        raise ValidationError(
            "unknown_account", f"Unknown account {code!r}.", account=str(code)
        )
    if not account.is_active:
        raise ValidationError(
            "inactive_account", f"Account {code!r} is inactive.", account=str(code)
        )
    if not account.is_postable:
        raise ValidationError(
            "non_postable_account",
            f"Account {code!r} groups other accounts and cannot be posted to.",
            account=str(code),
        )
    return account


def list_accounts(
    cfg: DatabaseConfig,
    organization_id: str,
    *,
    include_inactive: bool = False,
) -> list[Account]:
    """All accounts of an organization, ordered by account number."""
    conn = connect(cfg)
    try:
        cur = conn.execute(
            f"""
            SELECT {_ACCOUNT_COLUMNS}
              FROM accounts AS a
             WHERE a.organization_id = ?
               AND (? OR a.is_active = 1)
             ORDER BY a.account_number;
            """,
            (organization_id, int(include_inactive)),
        )
        rows = cur.fetchall()
    finally:
        conn.close()
    return [_row_to_account(r) for r in rows]


def accounts_in_class(
    cfg: DatabaseConfig, organization_id: str, account_class: int
) -> list[Account]:
    """Active accounts of one class, ordered by account number."""
    if account_class not in CLASS_LABELS:
        raise ValueError(f"Invalid account class: {account_class!r} (expected 1-7).")
    return [
        a
        for a in list_accounts(cfg, organization_id)
        if a.account_class == account_class
    ]


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


def create_account(
    cfg: DatabaseConfig,
    organization_id: str,
    number: str,
    name: str,
    account_class: int,
    account_type: str,
    parent_number: Optional[str] = None,
) -> Account:
    """
    Add a user account to the chart.

    Raises
    ------
    ValidationError
        rule 'invalid_account' for a bad class/type, a code outside its class
        or a duplicate code.
    """
    number = str(number).strip()
    if account_class not in CLASS_LABELS:
        raise ValidationError(
            "invalid_account", f"Invalid account class: {account_class!r}."
        )
    if account_type not in ACCOUNT_TYPES:
        raise ValidationError(
            "invalid_account", f"Invalid account type: {account_type!r}."
        )
    if not number.isdigit() or number[0] != str(account_class):
        raise ValidationError(
            "invalid_account",
            f"Account code {number!r} must be numeric and start with its class "
            f"({account_class}).",
        )

    try:
        with transaction(cfg) as conn:
            conn.execute(
                """
                INSERT INTO accounts (
                    organization_id, account_number, name, account_class,
                    account_type, parent_account_number, is_system, is_active,
                    created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, 0, 1, ?);
                """,
                (
                    organization_id,
                    number,
                    name,
                    account_class,
                    account_type,
                    parent_number,
                    now_utc_iso(),
                ),
            )
    except sqlite3.IntegrityError as exc:
        raise ValidationError(
            "invalid_account", f"Account {number!r} already exists."
        ) from exc

    return resolve_account(cfg, organization_id, number)


def set_account_active(
    cfg: DatabaseConfig, organization_id: str, number: str, active: bool
) -> Account:
    """Activate or deactivate an account. Existing lines are untouched."""
    with transaction(cfg) as conn:
        cur = conn.execute(
            """
            UPDATE accounts
               SET is_active = ?, updated_at = ?
             WHERE organization_id = ? AND account_number = ?;
            """,
            (int(active), now_utc_iso(), organization_id, number),
        )
        if cur.rowcount == 0:
            raise NotFoundError(f"Unknown account {number!r}.")
    return resolve_account(cfg, organization_id, number)


def delete_account(cfg: DatabaseConfig, organization_id: str, number: str) -> None:
    """
    Delete an account that no entry line references.

    Raises
    ------
    NotFoundError
        If the account does not exist.
    ValidationError
        rule 'account_referenced' once any journal line uses the account.
    """
    with transaction(cfg) as conn:
        account = _fetch_account(conn, organization_id, number)
        if account is None:
            raise NotFoundError(f"Unknown account {number!r}.")

        cur = conn.execute(
            "SELECT COUNT(*) FROM journal_entry_lines WHERE account_id = ?;",
            (account.id,),
        )
        (line_count,) = cur.fetchone()
        if line_count:
            raise ValidationError(
                "account_referenced",
                f"Account {number!r} is referenced by {line_count} journal line(s).",
                account=number,
                lines=line_count,
            )

        conn.execute("DELETE FROM accounts WHERE id = ?;", (account.id,))

    logger.info("Deleted account %s for organization %s", number, organization_id)
