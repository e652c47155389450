"""
Pytest fixtures for the SMB Ledger test suite.

Every test gets its own SQLite file under pytest's tmp_path:
- db_cfg:  a DatabaseConfig with the schema created,
- ledger:  db_cfg with organization ORG and the packaged PCG chart seeded,
- app_cfg: an AppConfig for ORG pointing at the same kind of database.
"""

from datetime import date

import pytest

from smb_ledger.accounts import ensure_organization, seed_chart_of_accounts
from smb_ledger.config import AppConfig, FiscalYear, OrganizationConfig
from smb_ledger.db import DatabaseConfig, init_database
from smb_ledger.entries_service import bootstrap_organization

ORG = "acme"


def make_tmp_db_cfg(tmp_path) -> DatabaseConfig:
    """DatabaseConfig pointing to a temporary SQLite file."""
    return DatabaseConfig(engine="sqlite", path=tmp_path / "ledger.sqlite")


@pytest.fixture
def db_cfg(tmp_path) -> DatabaseConfig:
    cfg = make_tmp_db_cfg(tmp_path)
    init_database(cfg)
    return cfg


@pytest.fixture
def ledger(db_cfg) -> DatabaseConfig:
    ensure_organization(db_cfg, ORG, "ACME SARL")
    seed_chart_of_accounts(db_cfg, ORG)
    return db_cfg


@pytest.fixture
def app_cfg(tmp_path) -> AppConfig:
    cfg = AppConfig(
        fiscal_year=FiscalYear(date(2025, 1, 1), date(2025, 12, 31)),
        organization=OrganizationConfig(id=ORG, name="ACME SARL", siren="123456789"),
        currency="EUR",
        chart_of_accounts=None,
        mapping_file=None,
        database=make_tmp_db_cfg(tmp_path),
        fec_separator="|",
        log_level="INFO",
    )
    bootstrap_organization(cfg)
    return cfg
