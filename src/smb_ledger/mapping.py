# SMB Ledger - Double-entry accounting ledger for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Mapping data for SMB Ledger.

Two kinds of mapping live here, both pure configuration:

1) Account mapping tables used by the entry generators to turn business
   keys (expense category, payment method, revenue/purchase category, tax
   rate) into PCG account codes. A key missing from its table raises
   MappingError; there is never a silent default account.

2) Report groups used by the report builders to aggregate accounts into
   statement lines. Groups are described with semicolon-separated account
   patterns, e.g. include="61*;62*", exclude="6228*":

    - '70*' matches any account starting with '70' (e.g. '701000'),
    - '627000' matches only the exact code '627000'.

The built-in account mapping can be overridden, table by table, from a
TOML file:

    [expense_categories]
    restauration = "625000"

    [payment_methods]
    cash = "531000"

    [tax_rates."20"]
    collected = "445710"
    deductible = "445660"

    [accounts]
    receivable = "411000"
    payable = "401000"
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover - fallback for older Python
    import tomli as tomllib  # type: ignore[import]

from .errors import MappingError
from .money import normalize_rate

# ---------------------------------------------------------------------------
# Pattern matching
# ---------------------------------------------------------------------------


def _to_patterns(s: Optional[str]) -> list[str]:
    """Convert a semicolon-separated pattern string into a list.

    Examples:
        "70*;71*" → ["70*", "71*"]
        None or "" → []
    """
    if s is None or str(s).strip() == "":
        return []
    return [p.strip() for p in str(s).split(";") if p.strip()]


def _match(code: str, patterns: list[str]) -> bool:
    """Return True if an account code matches at least one pattern."""
    for p in patterns:
        if p.endswith("*"):
            if code.startswith(p[:-1]):
                return True
        elif code == p:
            return True
    return False


@dataclass(frozen=True)
class ReportGroup:
    """A statement line aggregating every account matching its patterns.

    Attributes:
        key: Stable identifier (e.g. 'sales', 'external').
        label: Human-readable label.
        include: Semicolon-separated patterns of accounts to include.
        exclude: Semicolon-separated patterns of accounts to exclude.
    """

    key: str
    label: str
    include: str
    exclude: str = ""

    def matches(self, code: str) -> bool:
        return _match(code, _to_patterns(self.include)) and not _match(
            code, _to_patterns(self.exclude)
        )


def assign_group(code: str, groups: tuple[ReportGroup, ...]) -> Optional[ReportGroup]:
    """Return the first group an account code falls into, if any."""
    for group in groups:
        if group.matches(code):
            return group
    return None


# Income statement: income is credit - debit, expenses debit - credit.
INCOME_GROUPS: tuple[ReportGroup, ...] = (
    ReportGroup("sales", "Ventes (chiffre d'affaires)", "70*"),
    ReportGroup("other", "Autres produits", "7*", "70*"),
)

EXPENSE_GROUPS: tuple[ReportGroup, ...] = (
    ReportGroup("purchases", "Achats", "60*"),
    ReportGroup("external", "Charges externes", "61*;62*"),
    ReportGroup("taxes", "Impôts et taxes", "63*"),
    ReportGroup("personnel", "Charges de personnel", "64*"),
    ReportGroup("other", "Autres charges", "6*", "60*;61*;62*;63*;64*"),
)

# Balance sheet, classes 1 to 5. Assets are debit-normal accounts,
# liabilities and equity credit-normal ones.
ASSET_GROUPS: tuple[ReportGroup, ...] = (
    ReportGroup("fixed", "Actif immobilisé", "2*"),
    ReportGroup("current", "Actif circulant", "3*;4*"),
    ReportGroup("cash", "Trésorerie", "5*"),
    ReportGroup("other", "Autres actifs", "1*"),
)

LIABILITY_GROUPS: tuple[ReportGroup, ...] = (
    ReportGroup("provisions", "Provisions", "15*"),
    ReportGroup("equity", "Capitaux propres", "1*", "15*"),
    ReportGroup("debts", "Dettes", "4*"),
    ReportGroup("other", "Autres passifs", "2*;3*;5*"),
)

# VAT accounts, whose posted balances are shown beside the VAT report.
VAT_COLLECTED_GROUP = ReportGroup("collected", "TVA collectée", "44571*")
VAT_DEDUCTIBLE_GROUP = ReportGroup("deductible", "TVA déductible", "44566*")

# Treasury accounts followed by the dashboard indicators.
BANK_GROUP = ReportGroup("bank", "Banque", "512*")
CASH_GROUP = ReportGroup("cash", "Caisse", "53*")


# ---------------------------------------------------------------------------
# Account mapping tables
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TaxAccounts:
    """Collected (sales) and deductible (purchases) VAT accounts for one rate."""

    collected: str
    deductible: str


DEFAULT_EXPENSE_CATEGORIES = {
    "restauration": "625000",
    "transport": "625000",
    "hebergement": "625000",
    "fournitures": "606000",
    "telecom": "626000",
    "abonnements": "613000",
    "frais_bancaires": "627000",
    "marketing": "623000",
    "formation": "618000",
    "autre": "618000",
}

DEFAULT_PAYMENT_METHODS = {
    "cash": "531000",
    "bank_transfer": "512000",
    "card": "512000",
    "check": "512000",
    "other": "512000",
}

DEFAULT_REVENUE_CATEGORIES = {
    "goods": "707000",
    "services": "706000",
    "products": "701000",
    "ancillary": "708000",
}

DEFAULT_PURCHASE_CATEGORIES = {
    "goods": "607000",
    "supplies": "606000",
    "subcontracting": "604000",
    "raw_materials": "601000",
}

DEFAULT_TAX_RATES = {
    rate: TaxAccounts(collected="445710", deductible="445660")
    for rate in ("0", "2.1", "5.5", "10", "20")
}


@dataclass(frozen=True)
class AccountMapping:
    """Business keys to account codes, as used by the entry generators."""

    expense_categories: Mapping[str, str] = field(
        default_factory=lambda: dict(DEFAULT_EXPENSE_CATEGORIES)
    )
    payment_methods: Mapping[str, str] = field(
        default_factory=lambda: dict(DEFAULT_PAYMENT_METHODS)
    )
    revenue_categories: Mapping[str, str] = field(
        default_factory=lambda: dict(DEFAULT_REVENUE_CATEGORIES)
    )
    purchase_categories: Mapping[str, str] = field(
        default_factory=lambda: dict(DEFAULT_PURCHASE_CATEGORIES)
    )
    tax_rates: Mapping[str, TaxAccounts] = field(
        default_factory=lambda: dict(DEFAULT_TAX_RATES)
    )
    receivable_account: str = "411000"
    payable_account: str = "401000"

    @staticmethod
    def _lookup(table: Mapping[str, str], name: str, key: str) -> str:
        try:
            return table[key]
        except KeyError:
            raise MappingError(name, key) from None

    def expense_account(self, category: str) -> str:
        return self._lookup(self.expense_categories, "expense category", category)

    def payment_account(self, method: str) -> str:
        return self._lookup(self.payment_methods, "payment method", method)

    def revenue_account(self, category: str) -> str:
        return self._lookup(self.revenue_categories, "revenue category", category)

    def purchase_account(self, category: str) -> str:
        return self._lookup(self.purchase_categories, "purchase category", category)

    def tax_accounts(self, rate) -> TaxAccounts:
        key = normalize_rate(rate)
        try:
            return self.tax_rates[key]
        except KeyError:
            raise MappingError("tax rate", key) from None


def _str_table(raw: Mapping[str, Any], name: str) -> dict[str, str]:
    table = raw.get(name) or {}
    if not isinstance(table, Mapping):
        raise ValueError(f"[{name}] must be a table of key = \"account\".")
    return {str(k): str(v).strip() for k, v in table.items()}


def load_account_mapping(path: Optional[str | Path] = None) -> AccountMapping:
    """
    Load the account mapping, starting from the built-in tables.

    Each table present in the TOML file updates the built-in table of the
    same name key by key; absent tables keep their defaults.

    Args:
        path: Optional mapping TOML file. None returns the built-in mapping.

    Raises:
        FileNotFoundError: if ``path`` does not exist.
        ValueError: if the file is not valid TOML or a table is malformed.
    """
    if path is None:
        return AccountMapping()

    mapping_path = Path(path)
    if not mapping_path.is_file():
        raise FileNotFoundError(f"Mapping file not found: {mapping_path}")

    try:
        raw = tomllib.loads(mapping_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Failed to parse mapping file: {mapping_path}") from exc

    tax_rates = dict(DEFAULT_TAX_RATES)
    raw_rates = raw.get("tax_rates") or {}
    if not isinstance(raw_rates, Mapping):
        raise ValueError("[tax_rates] must be a table.")
    for rate, accounts in raw_rates.items():
        if not isinstance(accounts, Mapping) or not {
            "collected",
            "deductible",
        } <= set(accounts):
            raise ValueError(
                f"[tax_rates.\"{rate}\"] needs both 'collected' and 'deductible'."
            )
        tax_rates[normalize_rate(rate)] = TaxAccounts(
            collected=str(accounts["collected"]).strip(),
            deductible=str(accounts["deductible"]).strip(),
        )

    accounts_section = raw.get("accounts") or {}
    if not isinstance(accounts_section, Mapping):
        raise ValueError("[accounts] must be a table.")

    return AccountMapping(
        expense_categories={
            **DEFAULT_EXPENSE_CATEGORIES,
            **_str_table(raw, "expense_categories"),
        },
        payment_methods={
            **DEFAULT_PAYMENT_METHODS,
            **_str_table(raw, "payment_methods"),
        },
        revenue_categories={
            **DEFAULT_REVENUE_CATEGORIES,
            **_str_table(raw, "revenue_categories"),
        },
        purchase_categories={
            **DEFAULT_PURCHASE_CATEGORIES,
            **_str_table(raw, "purchase_categories"),
        },
        tax_rates=tax_rates,
        receivable_account=str(accounts_section.get("receivable", "411000")),
        payable_account=str(accounts_section.get("payable", "401000")),
    )
