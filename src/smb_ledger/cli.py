# SMB Ledger - Double-entry accounting ledger for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Command-Line Interface (CLI) for SMB Ledger.

The CLI is intentionally thin: it loads the TOML configuration, configures
logging, and hands each subcommand to the ledger core, printing the
resulting tables.

Subcommands
-----------
init              create the database and seed the chart of accounts
accounts          list the chart of accounts
entries           list journal lines of the period
ledger            general ledger (grand livre), optionally for one account
trial-balance     trial balance (balance générale)
income-statement  income statement (compte de résultat)
balance-sheet     balance sheet (bilan) as of a date
vat               VAT report per rate
kpis              dashboard indicators and treasury trend as of a date
fec               write the FEC export of the period
reverse           post the reversing entry of an entry

Exit status: 0 on success, 1 on a ledger or configuration error, 2 when a
report detects an inconsistent ledger.

Examples
--------
    python -m smb_ledger.cli init
    python -m smb_ledger.cli --period ytd income-statement
    python -m smb_ledger.cli balance-sheet --as-of 2025-06-30
    python -m smb_ledger.cli --from-date 2025-01-01 --to-date 2025-03-31 vat
    python -m smb_ledger.cli kpis --as-of 2025-06-30
    python -m smb_ledger.cli fec --output exports/
    python -m smb_ledger.cli reverse EC-000042 --date 2025-07-01
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Optional

import pandas as pd

from . import __version__
from .accounts import CLASS_LABELS, list_accounts
from .config import AppConfig, load_app_config
from .db import init_database
from .entries_service import bootstrap_organization, entries_for_period
from .errors import ConsistencyError, LedgerError
from .fec import export_fec, fec_filename
from .journal import parse_entry_ref, reverse_entry
from .ledger import general_ledger, trial_balance
from .periods import PREDEFINED_PERIODS, Period, determine_period_from_args
from .reports import balance_sheet, income_statement, kpis, treasury_trend, vat_report

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the CLI."""
    ap = argparse.ArgumentParser(
        prog="python -m smb_ledger.cli",
        description=(
            "SMB Ledger - Double-entry accounting ledger for SMBs. "
            "Keeps the journal, computes ledgers and statutory reports and "
            "exports the FEC."
        ),
    )

    ap.add_argument(
        "--version",
        action="store_true",
        help="Show the installed version of smb_ledger and exit.",
    )
    ap.add_argument(
        "--config",
        dest="config_path",
        help=(
            "Path to the main TOML configuration file. "
            "If omitted, 'smb_ledger_config.toml' in the current directory is used."
        ),
    )

    # Period selection
    ap.add_argument(
        "--period",
        choices=list(PREDEFINED_PERIODS),
        help=(
            "Predefined reporting period. "
            "If not provided, the full fiscal year from config is used."
        ),
    )
    ap.add_argument(
        "--from-date",
        dest="from_date",
        help=(
            "Custom period start date (YYYY-MM-DD). If provided without "
            "--to-date, the fiscal year end_date from config is used."
        ),
    )
    ap.add_argument(
        "--to-date",
        dest="to_date",
        help=(
            "Custom period end date (YYYY-MM-DD). If provided without "
            "--from-date, the fiscal year start_date from config is used."
        ),
    )
    ap.add_argument(
        "--csv",
        dest="csv_path",
        metavar="CSV_PATH",
        help="Also write the printed table to this CSV file.",
    )

    subparsers = ap.add_subparsers(dest="command", metavar="command")

    subparsers.add_parser(
        "init",
        help="Create the database and seed the chart of accounts.",
    )

    accounts_parser = subparsers.add_parser("accounts", help="List the chart of accounts.")
    accounts_parser.add_argument(
        "--class",
        dest="account_class",
        type=int,
        choices=sorted(CLASS_LABELS),
        help="Only show accounts of this class.",
    )
    accounts_parser.add_argument(
        "--all",
        dest="include_inactive",
        action="store_true",
        help="Include inactive accounts.",
    )

    subparsers.add_parser("entries", help="List the journal lines of the period.")

    ledger_parser = subparsers.add_parser(
        "ledger", help="General ledger with running balances."
    )
    ledger_parser.add_argument(
        "--account",
        dest="accounts",
        action="append",
        metavar="CODE",
        help="Restrict to this account (repeatable).",
    )

    subparsers.add_parser("trial-balance", help="Trial balance of the period.")
    subparsers.add_parser("income-statement", help="Income statement of the period.")

    bs_parser = subparsers.add_parser("balance-sheet", help="Balance sheet as of a date.")
    bs_parser.add_argument(
        "--as-of",
        dest="as_of",
        help="Balance sheet date (YYYY-MM-DD). Defaults to the end of the period.",
    )

    subparsers.add_parser("vat", help="VAT report of the period.")

    kpis_parser = subparsers.add_parser(
        "kpis", help="Dashboard indicators and treasury trend as of a date."
    )
    kpis_parser.add_argument(
        "--as-of",
        dest="as_of",
        help="Reference date (YYYY-MM-DD). Defaults to the end of the period.",
    )
    kpis_parser.add_argument(
        "--months",
        type=int,
        default=6,
        help="Number of months in the treasury trend (default: 6).",
    )

    fec_parser = subparsers.add_parser("fec", help="Write the FEC export of the period.")
    fec_parser.add_argument(
        "--output",
        dest="output",
        help=(
            "Output file, or directory for the statutory file name "
            "(SIRENFECYYYYMMDD.txt). Defaults to the current directory."
        ),
    )

    reverse_parser = subparsers.add_parser(
        "reverse", help="Post the reversing entry of a journal entry."
    )
    reverse_parser.add_argument("entry", help="Entry number, e.g. 42 or EC-000042.")
    reverse_parser.add_argument(
        "--date",
        dest="reversal_date",
        help="Date of the reversing entry (YYYY-MM-DD). Defaults to today.",
    )
    reverse_parser.add_argument(
        "--description",
        help="Label of the reversing entry.",
    )

    return ap


def _parse_optional_date(value: Optional[str]) -> Optional[date]:
    """Parse an optional YYYY-MM-DD argument."""
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"Invalid date {value!r}, expected YYYY-MM-DD.") from exc


def _print_frame(df: pd.DataFrame, csv_path: Optional[str], empty_message: str) -> None:
    if df.empty:
        print(empty_message)
    else:
        print(df.to_string(index=False))
    if csv_path:
        Path(csv_path).parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(csv_path, index=False)
        print(f"Written: {csv_path}")


def _print_period(period: Period) -> None:
    print(
        f"Applied period: {period.label} "
        f"({period.start.isoformat()} → {period.end.isoformat()})"
    )
    print()


def _run(args: argparse.Namespace, config: AppConfig) -> None:
    db = config.database
    org_id = config.organization.id
    command = args.command

    init_database(db)

    if command == "init":
        seeded = bootstrap_organization(config)
        print(f"Database ready: {db.path}")
        print(f"Organization: {config.organization.name} ({org_id})")
        print(f"Accounts seeded: {seeded}")
        return

    if command == "accounts":
        accounts = list_accounts(db, org_id, include_inactive=args.include_inactive)
        if args.account_class is not None:
            accounts = [a for a in accounts if a.account_class == args.account_class]
        df = pd.DataFrame(
            [
                {
                    "account": a.number,
                    "name": a.name,
                    "class": a.account_class,
                    "type": a.account_type,
                    "postable": "yes" if a.is_postable else "no",
                    "active": "yes" if a.is_active else "no",
                }
                for a in accounts
            ],
            columns=["account", "name", "class", "type", "postable", "active"],
        )
        _print_frame(df, args.csv_path, "No accounts found. Run 'init' first.")
        return

    if command == "reverse":
        reversal_date = _parse_optional_date(args.reversal_date) or date.today()
        entry = reverse_entry(
            db,
            org_id,
            parse_entry_ref(args.entry),
            reversal_date,
            description=args.description,
        )
        print(f"Posted {entry.entry_ref} on {entry.date}: {entry.description}")
        return

    if command == "balance-sheet":
        period = determine_period_from_args(args, config.fiscal_year)
        as_of = _parse_optional_date(args.as_of) or period.end
        sheet = balance_sheet(db, org_id, as_of)
        print(f"Balance sheet as of {as_of.isoformat()} ({config.currency})")
        print()
        _print_frame(sheet.to_frame(), args.csv_path, "No entries.")
        return

    if command == "kpis":
        period = determine_period_from_args(args, config.fiscal_year)
        as_of = _parse_optional_date(args.as_of) or period.end
        fy = config.fiscal_year
        year_start = fy.start_date if fy.start_date <= as_of <= fy.end_date else None
        indicators = kpis(db, org_id, as_of, year_start=year_start)
        print(f"Indicators as of {as_of.isoformat()} ({config.currency})")
        print()
        _print_frame(indicators.to_frame(), args.csv_path, "No entries.")
        print()
        print("Treasury trend")
        _print_frame(
            treasury_trend(db, org_id, as_of, months=args.months),
            None,
            "No bank movements.",
        )
        return

    period = determine_period_from_args(args, config.fiscal_year)
    _print_period(period)

    if command == "entries":
        _print_frame(
            entries_for_period(config, period),
            args.csv_path,
            "No entries found for the selected period.",
        )
    elif command == "ledger":
        _print_frame(
            general_ledger(db, org_id, period, args.accounts),
            args.csv_path,
            "No movements found for the selected period.",
        )
    elif command == "trial-balance":
        _print_frame(
            trial_balance(db, org_id, period),
            args.csv_path,
            "No movements found for the selected period.",
        )
    elif command == "income-statement":
        statement = income_statement(db, org_id, period)
        _print_frame(statement.to_frame(), args.csv_path, "No entries.")
    elif command == "vat":
        report = vat_report(db, org_id, period)
        _print_frame(
            report.to_frame(),
            args.csv_path,
            "No taxed lines found for the selected period.",
        )
        print()
        print(f"Net VAT due: {report.net_vat_due} {config.currency}")
        print(
            f"Posted VAT accounts: collected {report.collected_account_balance}, "
            f"deductible {report.deductible_account_balance}"
        )
    elif command == "fec":
        content = export_fec(db, org_id, period, separator=config.fec_separator)
        target = Path(args.output) if args.output else Path.cwd()
        if target.is_dir() or (args.output and args.output.endswith(("/", "\\"))):
            target = target / fec_filename(config.organization.siren, period.end)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        print(f"FEC written: {target}")


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the SMB Ledger CLI.

    Parses command-line arguments, loads the configuration, configures
    logging and runs the selected subcommand. Returns the process exit
    status.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    # --version: short-circuit and exit early.
    if args.version:
        print(f"smb_ledger version {__version__}")
        return 0

    if not args.command:
        parser.print_help()
        return 0

    try:
        config = load_app_config(args.config_path)
    except (FileNotFoundError, ValueError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        _run(args, config)
    except ConsistencyError as exc:
        print(f"Ledger inconsistency: {exc}", file=sys.stderr)
        for key, value in exc.details.items():
            print(f"  {key}: {value}", file=sys.stderr)
        return 2
    except LedgerError as exc:
        print(f"Error [{exc.code}]: {exc}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
