# SMB Ledger - Double-entry accounting ledger for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Configuration helpers for SMB Ledger.

This module is responsible for:
- loading the application configuration from a TOML file,
- resolving file paths relative to that file,
- exposing typed dataclasses used by the service layer and the CLI.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Optional

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover - fallback for older Python
    import tomli as tomllib  # type: ignore[import]

from .db import DatabaseConfig

DEFAULT_CONFIG_FILENAME = "smb_ledger_config.toml"
FEC_SEPARATORS = ("|", "\t")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class FiscalYear:
    """Represents a fiscal year with a start and end date."""

    start_date: date
    end_date: date


@dataclass(frozen=True)
class OrganizationConfig:
    """The organization whose books this configuration opens."""

    id: str
    name: str
    siren: Optional[str]


@dataclass(frozen=True)
class AppConfig:
    """
    Application-wide configuration for SMB Ledger.

    This aggregates:
    - the fiscal year definition,
    - the organization and its currency,
    - the chart of accounts and account mapping sources,
    - the database configuration (where entries are stored),
    - FEC export and logging options.
    """

    fiscal_year: FiscalYear
    organization: OrganizationConfig
    currency: str
    chart_of_accounts: Optional[Path]
    mapping_file: Optional[Path]
    database: DatabaseConfig
    fec_separator: str
    log_level: str


def _load_toml(path: Path) -> dict[str, Any]:
    """
    Load a TOML file and return its content as a dictionary.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the TOML content cannot be parsed.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Failed to parse TOML config file: {path}") from exc


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, Mapping):
        raise ValueError(f"[{name}] must be a table.")
    return section


def _parse_fiscal_year(config_data: Mapping[str, Any]) -> FiscalYear:
    """
    Extract and validate the fiscal year from raw TOML configuration data.

    Raises:
        ValueError: if the fiscal year section or dates are missing/invalid.
    """
    fiscal_data = _section(config_data, "fiscal_year")

    try:
        start_raw = fiscal_data["start_date"]
        end_raw = fiscal_data["end_date"]
    except KeyError as exc:
        raise ValueError(
            "Config file is missing [fiscal_year].start_date or end_date."
        ) from exc

    try:
        start = date.fromisoformat(str(start_raw))
        end = date.fromisoformat(str(end_raw))
    except ValueError as exc:
        raise ValueError(
            "Invalid fiscal year dates, expected YYYY-MM-DD format."
        ) from exc

    if end < start:
        raise ValueError("Fiscal year end_date cannot be before start_date.")

    return FiscalYear(start_date=start, end_date=end)


def _parse_organization(config_data: Mapping[str, Any]) -> OrganizationConfig:
    org_section = _section(config_data, "organization")

    org_id = str(org_section.get("id") or "").strip()
    if not org_id:
        raise ValueError("Config file is missing [organization].id.")

    name = str(org_section.get("name") or org_id)

    siren_raw = org_section.get("siren")
    siren: Optional[str] = None
    if siren_raw not in (None, ""):
        siren = str(siren_raw).strip()
        if len(siren) != 9 or not siren.isdigit():
            raise ValueError(
                f"Invalid [organization].siren {siren!r}: expected 9 digits."
            )

    return OrganizationConfig(id=org_id, name=name, siren=siren)


def load_app_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Load the SMB Ledger application configuration from a TOML file.

    Expected top-level sections in the TOML file
    --------------------------------------------
    [fiscal_year]
        start_date / end_date of the current fiscal year (YYYY-MM-DD).

    [organization]
        id (required), name, and optional 9-digit siren used to name FEC
        export files.

    [accounting]
        currency (default "EUR"), optional chart_of_accounts CSV and
        optional mapping_file TOML overriding the built-in account mapping.

    [database]
        engine (only "sqlite") and the SQLite file path.

    [export]
        separator for FEC files: "|" (default) or a tab.

    [logging]
        level (default "INFO").

    Notes
    -----
    All file paths in the TOML are resolved relative to the directory of the
    TOML file itself.

    Parameters
    ----------
    config_path : str, optional
        Path to the TOML configuration file. Defaults to
        ``smb_ledger_config.toml`` in the current directory.

    Returns
    -------
    AppConfig
        Parsed and validated application configuration.
    """
    if config_path is None:
        config_file = Path(DEFAULT_CONFIG_FILENAME).resolve()
    else:
        config_file = Path(config_path).resolve()

    raw = _load_toml(config_file)
    base_dir = config_file.parent

    def _resolve_optional(rel: Optional[str]) -> Optional[Path]:
        if not rel:
            return None
        return (base_dir / str(rel)).resolve()

    # 1) Fiscal year and organization
    fiscal_year = _parse_fiscal_year(raw)
    organization = _parse_organization(raw)

    # 2) Accounting section
    accounting_section = _section(raw, "accounting")
    currency = str(accounting_section.get("currency") or "EUR").upper()
    chart_of_accounts = _resolve_optional(accounting_section.get("chart_of_accounts"))
    mapping_file = _resolve_optional(accounting_section.get("mapping_file"))

    # 3) Database section
    database_section = _section(raw, "database")
    db_engine = str(database_section.get("engine") or "sqlite")
    if db_engine.lower() != "sqlite":
        raise ValueError(
            f"Unsupported database engine: {db_engine!r}. Only 'sqlite' is supported."
        )
    db_path_raw = database_section.get("path") or "data/db/smb_ledger.sqlite"
    database_config = DatabaseConfig(
        engine=db_engine, path=(base_dir / str(db_path_raw)).resolve()
    )

    # 4) Export options
    export_section = _section(raw, "export")
    fec_separator = str(export_section.get("separator", "|"))
    if fec_separator not in FEC_SEPARATORS:
        raise ValueError(
            f"Invalid [export].separator {fec_separator!r}: expected '|' or a tab."
        )

    # 5) Logging
    logging_section = _section(raw, "logging")
    log_level = str(logging_section.get("level", "INFO")).upper()
    if log_level not in LOG_LEVELS:
        raise ValueError(
            f"Invalid [logging].level {log_level!r}: expected one of {', '.join(LOG_LEVELS)}."
        )

    return AppConfig(
        fiscal_year=fiscal_year,
        organization=organization,
        currency=currency,
        chart_of_accounts=chart_of_accounts,
        mapping_file=mapping_file,
        database=database_config,
        fec_separator=fec_separator,
        log_level=log_level,
    )
