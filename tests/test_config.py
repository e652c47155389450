from datetime import date
from pathlib import Path

import pytest

from smb_ledger.config import load_app_config

VALID_CONFIG = """
[fiscal_year]
start_date = "2025-01-01"
end_date = "2025-12-31"

[organization]
id = "acme"
name = "ACME SARL"
siren = "123456789"

[accounting]
currency = "eur"
mapping_file = "mapping.toml"

[database]
engine = "sqlite"
path = "db/ledger.sqlite"

[export]
separator = "\\t"

[logging]
level = "debug"
"""


def _write(tmp_path: Path, content: str) -> str:
    path = tmp_path / "smb_ledger_config.toml"
    path.write_text(content, encoding="utf-8")
    return str(path)


def test_load_valid_config(tmp_path) -> None:
    cfg = load_app_config(_write(tmp_path, VALID_CONFIG))

    assert cfg.fiscal_year.start_date == date(2025, 1, 1)
    assert cfg.fiscal_year.end_date == date(2025, 12, 31)
    assert cfg.organization.id == "acme"
    assert cfg.organization.siren == "123456789"
    assert cfg.currency == "EUR"
    assert cfg.chart_of_accounts is None
    assert cfg.mapping_file == (tmp_path / "mapping.toml").resolve()
    assert cfg.database.path == (tmp_path / "db" / "ledger.sqlite").resolve()
    assert cfg.fec_separator == "\t"
    assert cfg.log_level == "DEBUG"


def test_minimal_config_uses_defaults(tmp_path) -> None:
    cfg = load_app_config(
        _write(
            tmp_path,
            '[fiscal_year]\nstart_date = "2025-01-01"\nend_date = "2025-12-31"\n'
            '[organization]\nid = "acme"\n',
        )
    )

    assert cfg.organization.name == "acme"
    assert cfg.organization.siren is None
    assert cfg.currency == "EUR"
    assert cfg.fec_separator == "|"
    assert cfg.log_level == "INFO"
    assert cfg.database.path == (tmp_path / "data/db/smb_ledger.sqlite").resolve()


@pytest.mark.parametrize(
    "old, new",
    [
        ('siren = "123456789"', 'siren = "12345"'),
        ('engine = "sqlite"', 'engine = "postgres"'),
        ('separator = "\\t"', 'separator = ";"'),
        ('level = "debug"', 'level = "verbose"'),
        ('id = "acme"', 'id = ""'),
        ('end_date = "2025-12-31"', 'end_date = "2024-12-31"'),
        ('start_date = "2025-01-01"', 'start_date = "01/01/2025"'),
    ],
)
def test_invalid_config_values(tmp_path, old, new) -> None:
    assert old in VALID_CONFIG
    with pytest.raises(ValueError):
        load_app_config(_write(tmp_path, VALID_CONFIG.replace(old, new)))


def test_unparsable_toml(tmp_path) -> None:
    with pytest.raises(ValueError):
        load_app_config(_write(tmp_path, "[fiscal_year\n"))


def test_missing_config_file(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_app_config(str(tmp_path / "missing.toml"))
