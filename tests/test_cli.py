from datetime import date
from decimal import Decimal

import pytest

from smb_ledger import __version__
from smb_ledger.cli import main
from smb_ledger.config import load_app_config
from smb_ledger.db import connect
from smb_ledger.entries_service import post_event
from smb_ledger.generators import ExpenseEvent

CONFIG = """
[fiscal_year]
start_date = "2025-01-01"
end_date = "2025-12-31"

[organization]
id = "acme"
name = "ACME SARL"
siren = "123456789"

[database]
path = "db/ledger.sqlite"
"""


@pytest.fixture
def config_path(tmp_path) -> str:
    path = tmp_path / "smb_ledger_config.toml"
    path.write_text(CONFIG, encoding="utf-8")
    assert main(["--config", str(path), "init"]) == 0
    return str(path)


@pytest.fixture
def with_expense(config_path) -> str:
    post_event(
        load_app_config(config_path),
        ExpenseEvent(
            id="exp-1",
            date=date(2025, 3, 10),
            category="fournitures",
            amount=Decimal("120.00"),
            payment_method="card",
            tax_rate=Decimal("20"),
        ),
    )
    return config_path


def test_version(capsys):
    assert main(["--version"]) == 0
    assert __version__ in capsys.readouterr().out


def test_no_command_prints_help(capsys):
    assert main([]) == 0
    assert "usage:" in capsys.readouterr().out


def test_missing_config_file(tmp_path, capsys):
    assert main(["--config", str(tmp_path / "missing.toml"), "init"]) == 1
    assert "Configuration error" in capsys.readouterr().err


def test_init_and_accounts(config_path, capsys):
    capsys.readouterr()
    assert main(["--config", config_path, "init"]) == 0
    assert "Accounts seeded: 0" in capsys.readouterr().out

    assert main(["--config", config_path, "accounts", "--class", "5"]) == 0
    out = capsys.readouterr().out
    assert "512000" in out
    assert "606000" not in out


def test_reports_print_and_write_csv(with_expense, tmp_path, capsys):
    csv_path = tmp_path / "out" / "is.csv"

    assert (
        main(["--config", with_expense, "--csv", str(csv_path), "income-statement"])
        == 0
    )
    assert csv_path.is_file()
    assert "Applied period" in capsys.readouterr().out

    for command in ("entries", "ledger", "trial-balance", "balance-sheet", "vat"):
        assert main(["--config", with_expense, command]) == 0

    assert "Net VAT due: -20.00 EUR" in capsys.readouterr().out


def test_fec_export_to_directory(with_expense, tmp_path):
    out_dir = tmp_path / "exports"
    out_dir.mkdir()

    assert main(["--config", with_expense, "fec", "--output", str(out_dir)]) == 0

    content = (out_dir / "123456789FEC20251231.txt").read_bytes()
    assert content.startswith(b"JournalCode|JournalLib|")
    assert content.count(b"\r\n") == 4


def test_reverse(with_expense, capsys):
    assert (
        main(["--config", with_expense, "reverse", "EC-000001", "--date", "2025-07-01"])
        == 0
    )
    assert "Posted EC-000002 on 2025-07-01" in capsys.readouterr().out

    assert main(["--config", with_expense, "reverse", "1"]) == 1
    assert "already reversed by EC-000002" in capsys.readouterr().err
    assert main(["--config", with_expense, "reverse", "EC-000099"]) == 1


def test_invalid_custom_period(with_expense, capsys):
    args = ["--config", with_expense, "--from-date", "2025-06-01"]
    assert main(args + ["--to-date", "2025-01-01", "vat"]) == 1
    assert "Error" in capsys.readouterr().err


def test_inconsistent_ledger_exits_with_2(with_expense, capsys):
    cfg = load_app_config(with_expense)
    conn = connect(cfg.database)
    try:
        conn.execute("DELETE FROM journal_entry_lines WHERE position = 3;")
    finally:
        conn.close()

    assert main(["--config", with_expense, "balance-sheet"]) == 2
    err = capsys.readouterr().err
    assert "Ledger inconsistency" in err
    assert "EC-000001" in err


def test_kpis(with_expense, capsys):
    assert main(["--config", with_expense, "kpis", "--as-of", "2025-03-31"]) == 0
    out = capsys.readouterr().out
    assert "Indicators as of 2025-03-31 (EUR)" in out
    assert "Décaissements du mois" in out
    assert "-120.00" in out
    assert "Treasury trend" in out
    assert "2024-10" in out and "2025-03" in out

    assert main(["--config", with_expense, "kpis", "--months", "0"]) == 1
    assert "months must be at least 1" in capsys.readouterr().err
