# SMB Ledger - Double-entry accounting ledger for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Report builders: income statement, balance sheet, VAT report and the
dashboard indicators (KPIs, treasury trend).

Each report is a pure aggregation of ledger query output (``ledger.py``)
through the report groups of ``mapping.py``. Reports carry Decimal
amounts and expose ``to_frame()`` for display and CSV export.

Sign conventions:
- Income statement: income = credit - debit, expense = debit - credit,
  result = total income - total expense.
- Balance sheet (as of a date, since the books were opened): assets are
  the debit balances of debit-normal accounts of classes 1-5, liabilities
  and equity the credit balances of credit-normal ones, cumulative result
  is class 7 - class 6. The identity
      total assets == total liabilities and equity + cumulative result
  holds on any balanced ledger; a failure raises ConsistencyError.
- VAT report: taxed lines on class-7 accounts are "collected" (base =
  credit - debit), taxed lines elsewhere are "deductible" (base = debit -
  credit). Tax is accumulated at full precision and rounded half-up to the
  cent only on each bucket total.
- KPIs: treasury is the balance of 512* (bank) plus 53* (cash), VAT
  collected is credit - debit on 44571*, VAT deductible debit - credit on
  44566*, revenue and expenses follow the income statement signs.
"""

from __future__ import annotations

import logging
from calendar import monthrange
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

import pandas as pd

from .accounts import DEBIT_NORMAL_TYPES
from .db import DatabaseConfig, snapshot
from .errors import ConsistencyError
from .journal import find_unbalanced_entries, format_entry_ref
from .ledger import account_totals, taxed_lines
from .mapping import (
    ASSET_GROUPS,
    BANK_GROUP,
    CASH_GROUP,
    EXPENSE_GROUPS,
    INCOME_GROUPS,
    LIABILITY_GROUPS,
    VAT_COLLECTED_GROUP,
    VAT_DEDUCTIBLE_GROUP,
    ReportGroup,
    assign_group,
)
from .money import ZERO, round_money
from .periods import Period, period_as_of

logger = logging.getLogger(__name__)

GROUP_FRAME_COLUMNS = ["section", "group", "label", "account", "name", "amount"]


@dataclass(frozen=True)
class AccountAmount:
    account: str
    name: str
    amount: Decimal


@dataclass(frozen=True)
class GroupTotal:
    """A report group with its non-zero accounts."""

    key: str
    label: str
    accounts: tuple[AccountAmount, ...]

    @property
    def total(self) -> Decimal:
        return sum((a.amount for a in self.accounts), ZERO)


def _build_groups(
    groups: tuple[ReportGroup, ...], amounts: list[AccountAmount]
) -> tuple[GroupTotal, ...]:
    """Distribute accounts over groups; unmatched accounts go to the last one."""
    buckets: dict[str, list[AccountAmount]] = {g.key: [] for g in groups}
    for item in amounts:
        group = assign_group(item.account, groups) or groups[-1]
        buckets[group.key].append(item)
    return tuple(
        GroupTotal(key=g.key, label=g.label, accounts=tuple(buckets[g.key]))
        for g in groups
    )


def _groups_frame(section: str, groups: tuple[GroupTotal, ...]) -> list[dict]:
    rows = []
    for group in groups:
        for item in group.accounts:
            rows.append(
                {
                    "section": section,
                    "group": group.key,
                    "label": group.label,
                    "account": item.account,
                    "name": item.name,
                    "amount": item.amount,
                }
            )
        rows.append(
            {
                "section": section,
                "group": group.key,
                "label": group.label,
                "account": "",
                "name": f"Total {group.label}",
                "amount": group.total,
            }
        )
    return rows


def _total(section: str, label: str, amount: Decimal) -> dict:
    return {
        "section": section,
        "group": "",
        "label": label,
        "account": "",
        "name": label,
        "amount": amount,
    }


# ---------------------------------------------------------------------------
# Income statement
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IncomeStatement:
    period: Period
    income: tuple[GroupTotal, ...]
    expenses: tuple[GroupTotal, ...]

    @property
    def total_income(self) -> Decimal:
        return sum((g.total for g in self.income), ZERO)

    @property
    def total_expense(self) -> Decimal:
        return sum((g.total for g in self.expenses), ZERO)

    @property
    def result(self) -> Decimal:
        return self.total_income - self.total_expense

    def group(self, key: str, section: str = "expenses") -> GroupTotal:
        groups = self.income if section == "income" else self.expenses
        for g in groups:
            if g.key == key:
                return g
        raise KeyError(key)

    def to_frame(self) -> pd.DataFrame:
        rows = _groups_frame("income", self.income)
        rows.append(_total("income", "Total produits", self.total_income))
        rows += _groups_frame("expenses", self.expenses)
        rows.append(_total("expenses", "Total charges", self.total_expense))
        rows.append(_total("result", "Résultat", self.result))
        return pd.DataFrame(rows, columns=GROUP_FRAME_COLUMNS)


def income_statement(
    cfg: DatabaseConfig, organization_id: str, period: Period
) -> IncomeStatement:
    """Income statement (compte de résultat) over a period."""
    totals = account_totals(cfg, organization_id, period, classes=(6, 7))

    income: list[AccountAmount] = []
    expenses: list[AccountAmount] = []
    for row in totals.itertuples(index=False):
        if row.balance == 0:
            continue
        if row.account_class == 7:
            income.append(AccountAmount(row.account, row.name, -row.balance))
        else:
            expenses.append(AccountAmount(row.account, row.name, row.balance))

    return IncomeStatement(
        period=period,
        income=_build_groups(INCOME_GROUPS, income),
        expenses=_build_groups(EXPENSE_GROUPS, expenses),
    )


# ---------------------------------------------------------------------------
# Balance sheet
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BalanceSheet:
    as_of: date
    assets: tuple[GroupTotal, ...]
    liabilities: tuple[GroupTotal, ...]
    cumulative_result: Decimal

    @property
    def total_assets(self) -> Decimal:
        return sum((g.total for g in self.assets), ZERO)

    @property
    def total_liabilities_and_equity(self) -> Decimal:
        return sum((g.total for g in self.liabilities), ZERO)

    @property
    def difference(self) -> Decimal:
        return self.total_assets - (
            self.total_liabilities_and_equity + self.cumulative_result
        )

    @property
    def is_balanced(self) -> bool:
        return self.difference == 0

    def to_frame(self) -> pd.DataFrame:
        rows = _groups_frame("assets", self.assets)
        rows.append(_total("assets", "Total actif", self.total_assets))
        rows += _groups_frame("liabilities", self.liabilities)
        rows.append(_total("liabilities", "Résultat cumulé", self.cumulative_result))
        rows.append(
            _total(
                "liabilities",
                "Total passif",
                self.total_liabilities_and_equity + self.cumulative_result,
            )
        )
        return pd.DataFrame(rows, columns=GROUP_FRAME_COLUMNS)


def balance_sheet(
    cfg: DatabaseConfig, organization_id: str, as_of: date
) -> BalanceSheet:
    """
    Balance sheet (bilan) as of a date.

    Raises
    ------
    ConsistencyError
        If total assets != total liabilities and equity + cumulative result.
        The error details list the unbalanced entries found in storage.
    """
    totals = account_totals(cfg, organization_id, period_as_of(as_of))

    assets: list[AccountAmount] = []
    liabilities: list[AccountAmount] = []
    cumulative_result = ZERO
    for row in totals.itertuples(index=False):
        if row.account_class >= 6:
            cumulative_result -= row.balance
        elif row.balance == 0:
            continue
        elif row.account_type in DEBIT_NORMAL_TYPES:
            assets.append(AccountAmount(row.account, row.name, row.balance))
        else:
            liabilities.append(AccountAmount(row.account, row.name, -row.balance))

    sheet = BalanceSheet(
        as_of=as_of,
        assets=_build_groups(ASSET_GROUPS, assets),
        liabilities=_build_groups(LIABILITY_GROUPS, liabilities),
        cumulative_result=cumulative_result,
    )

    if not sheet.is_balanced:
        unbalanced = find_unbalanced_entries(cfg, organization_id)
        refs = [format_entry_ref(number) for number, _, _ in unbalanced]
        logger.error(
            "Balance sheet of %s as of %s does not reconcile: assets %s, "
            "liabilities and equity %s, result %s (difference %s). "
            "Unbalanced entries: %s",
            organization_id,
            as_of,
            sheet.total_assets,
            sheet.total_liabilities_and_equity,
            sheet.cumulative_result,
            sheet.difference,
            ", ".join(refs) or "none",
        )
        raise ConsistencyError(
            f"Balance sheet as of {as_of} does not reconcile "
            f"(difference {sheet.difference}).",
            total_assets=sheet.total_assets,
            total_liabilities_and_equity=sheet.total_liabilities_and_equity,
            cumulative_result=sheet.cumulative_result,
            difference=sheet.difference,
            unbalanced_entries=refs,
        )

    return sheet


# ---------------------------------------------------------------------------
# VAT report
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VatBucket:
    """Bases and taxes of one VAT rate, rounded once."""

    rate: Decimal
    collected_base: Decimal
    collected_tax: Decimal
    deductible_base: Decimal
    deductible_tax: Decimal

    @property
    def net_due(self) -> Decimal:
        return self.collected_tax - self.deductible_tax


@dataclass(frozen=True)
class VatReport:
    period: Period
    buckets: tuple[VatBucket, ...]
    collected_account_balance: Decimal
    deductible_account_balance: Decimal

    @property
    def total_collected(self) -> Decimal:
        return sum((b.collected_tax for b in self.buckets), ZERO)

    @property
    def total_deductible(self) -> Decimal:
        return sum((b.deductible_tax for b in self.buckets), ZERO)

    @property
    def net_vat_due(self) -> Decimal:
        return self.total_collected - self.total_deductible

    def bucket(self, rate) -> VatBucket:
        wanted = Decimal(str(rate))
        for b in self.buckets:
            if b.rate == wanted:
                return b
        raise KeyError(rate)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {
                    "rate": b.rate,
                    "collected_base": b.collected_base,
                    "collected_tax": b.collected_tax,
                    "deductible_base": b.deductible_base,
                    "deductible_tax": b.deductible_tax,
                    "net_due": b.net_due,
                }
                for b in self.buckets
            ],
            columns=[
                "rate",
                "collected_base",
                "collected_tax",
                "deductible_base",
                "deductible_tax",
                "net_due",
            ],
        )


def vat_report(cfg: DatabaseConfig, organization_id: str, period: Period) -> VatReport:
    """VAT report (déclaration de TVA) over a period, one bucket per rate."""
    with snapshot(cfg) as conn:
        lines = taxed_lines(cfg, organization_id, period, conn=conn)
        vat_totals = account_totals(
            cfg, organization_id, period, classes=(4,), conn=conn
        )

    # rate -> [collected base, collected tax, deductible base, deductible tax]
    acc: dict[Decimal, list[Decimal]] = {}
    for line in lines.itertuples(index=False):
        sums = acc.setdefault(line.tax_rate, [ZERO, ZERO, ZERO, ZERO])
        if line.account_class == 7:
            base = line.credit - line.debit
            sums[0] += base
            sums[1] += base * line.tax_rate / 100
        else:
            base = line.debit - line.credit
            sums[2] += base
            sums[3] += base * line.tax_rate / 100

    buckets = tuple(
        VatBucket(
            rate=rate,
            collected_base=round_money(sums[0]),
            collected_tax=round_money(sums[1]),
            deductible_base=round_money(sums[2]),
            deductible_tax=round_money(sums[3]),
        )
        for rate, sums in sorted(acc.items())
    )

    collected_balance = ZERO
    deductible_balance = ZERO
    for row in vat_totals.itertuples(index=False):
        if VAT_COLLECTED_GROUP.matches(row.account):
            collected_balance -= row.balance
        elif VAT_DEDUCTIBLE_GROUP.matches(row.account):
            deductible_balance += row.balance

    return VatReport(
        period=period,
        buckets=buckets,
        collected_account_balance=collected_balance,
        deductible_account_balance=deductible_balance,
    )


# ---------------------------------------------------------------------------
# Dashboard indicators
# ---------------------------------------------------------------------------

KPI_LABELS = {
    "monthly_receipts": "Encaissements du mois",
    "monthly_disbursements": "Décaissements du mois",
    "monthly_balance": "Solde du mois",
    "bank_balance": "Solde banque",
    "cash_balance": "Solde caisse",
    "total_treasury": "Trésorerie totale",
    "vat_collected": "TVA collectée",
    "vat_deductible": "TVA déductible",
    "vat_due": "TVA à payer",
    "monthly_revenue": "Chiffre d'affaires du mois",
    "monthly_expenses": "Charges du mois",
    "monthly_result": "Résultat du mois",
    "ytd_revenue": "Chiffre d'affaires de l'exercice",
    "ytd_expenses": "Charges de l'exercice",
    "ytd_result": "Résultat de l'exercice",
}


@dataclass(frozen=True)
class Kpis:
    """
    Headline figures of the accounting dashboard.

    Receipts and disbursements are the debits and credits posted on bank
    accounts (512*) during the month. Treasury and VAT figures are balances
    since the books were opened; revenue and expenses cover the month and
    the year to date.
    """

    as_of: date
    month: Period
    year_to_date: Period
    monthly_receipts: Decimal
    monthly_disbursements: Decimal
    bank_balance: Decimal
    cash_balance: Decimal
    vat_collected: Decimal
    vat_deductible: Decimal
    monthly_revenue: Decimal
    monthly_expenses: Decimal
    ytd_revenue: Decimal
    ytd_expenses: Decimal

    @property
    def monthly_balance(self) -> Decimal:
        return self.monthly_receipts - self.monthly_disbursements

    @property
    def total_treasury(self) -> Decimal:
        return self.bank_balance + self.cash_balance

    @property
    def vat_due(self) -> Decimal:
        return self.vat_collected - self.vat_deductible

    @property
    def monthly_result(self) -> Decimal:
        return self.monthly_revenue - self.monthly_expenses

    @property
    def ytd_result(self) -> Decimal:
        return self.ytd_revenue - self.ytd_expenses

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {"kpi": key, "label": label, "amount": getattr(self, key)}
                for key, label in KPI_LABELS.items()
            ],
            columns=["kpi", "label", "amount"],
        )


def _group_sums(totals: pd.DataFrame, group: ReportGroup) -> tuple[Decimal, Decimal]:
    """(debit, credit) posted on the accounts of a group."""
    debit = ZERO
    credit = ZERO
    for row in totals.itertuples(index=False):
        if group.matches(row.account):
            debit += row.debit
            credit += row.credit
    return debit, credit


def _class_sums(totals: pd.DataFrame, account_class: int) -> tuple[Decimal, Decimal]:
    selected = totals[totals["account_class"] == account_class]
    return sum(selected["debit"], ZERO), sum(selected["credit"], ZERO)


def _month_of(day: date, months_back: int = 0) -> Period:
    """Calendar month ``months_back`` months before ``day``, cut at ``day``."""
    index = day.year * 12 + day.month - 1 - months_back
    year, month = divmod(index, 12)
    start = date(year, month + 1, 1)
    end = min(date(year, month + 1, monthrange(year, month + 1)[1]), day)
    return Period(start=start, end=end, label=start.strftime("%Y-%m"))


def kpis(
    cfg: DatabaseConfig,
    organization_id: str,
    as_of: date,
    year_start: date | None = None,
) -> Kpis:
    """
    Dashboard indicators as of a date.

    The month runs from the first of ``as_of``'s month to ``as_of``; the
    year to date from ``year_start`` (1 January of ``as_of``'s year by
    default) to ``as_of``. Every figure is read from one snapshot.
    """
    if year_start is None:
        year_start = date(as_of.year, 1, 1)
    month = _month_of(as_of)
    year_to_date = Period(start=year_start, end=as_of, label="Year to date")

    with snapshot(cfg) as conn:
        month_totals = account_totals(cfg, organization_id, month, conn=conn)
        ytd_totals = account_totals(
            cfg, organization_id, year_to_date, classes=(6, 7), conn=conn
        )
        all_totals = account_totals(
            cfg, organization_id, period_as_of(as_of), classes=(4, 5), conn=conn
        )

    receipts, disbursements = _group_sums(month_totals, BANK_GROUP)
    bank_debit, bank_credit = _group_sums(all_totals, BANK_GROUP)
    cash_debit, cash_credit = _group_sums(all_totals, CASH_GROUP)
    collected_debit, collected_credit = _group_sums(all_totals, VAT_COLLECTED_GROUP)
    deductible_debit, deductible_credit = _group_sums(all_totals, VAT_DEDUCTIBLE_GROUP)
    month_income_debit, month_income_credit = _class_sums(month_totals, 7)
    month_expense_debit, month_expense_credit = _class_sums(month_totals, 6)
    ytd_income_debit, ytd_income_credit = _class_sums(ytd_totals, 7)
    ytd_expense_debit, ytd_expense_credit = _class_sums(ytd_totals, 6)

    result = Kpis(
        as_of=as_of,
        month=month,
        year_to_date=year_to_date,
        monthly_receipts=receipts,
        monthly_disbursements=disbursements,
        bank_balance=bank_debit - bank_credit,
        cash_balance=cash_debit - cash_credit,
        vat_collected=collected_credit - collected_debit,
        vat_deductible=deductible_debit - deductible_credit,
        monthly_revenue=month_income_credit - month_income_debit,
        monthly_expenses=month_expense_debit - month_expense_credit,
        ytd_revenue=ytd_income_credit - ytd_income_debit,
        ytd_expenses=ytd_expense_debit - ytd_expense_credit,
    )
    logger.debug(
        "KPIs of %s as of %s: treasury %s, VAT due %s, YTD result %s",
        organization_id,
        as_of,
        result.total_treasury,
        result.vat_due,
        result.ytd_result,
    )
    return result


def treasury_trend(
    cfg: DatabaseConfig, organization_id: str, as_of: date, months: int = 6
) -> pd.DataFrame:
    """
    Bank receipts and disbursements of the last ``months`` calendar months.

    Returns
    -------
    pandas.DataFrame
        Columns: month ('YYYY-MM'), receipts, disbursements, balance
        (receipts - disbursements), oldest month first. The current month
        stops at ``as_of``.
    """
    if months < 1:
        raise ValueError("months must be at least 1")

    rows = []
    with snapshot(cfg) as conn:
        for back in range(months - 1, -1, -1):
            month = _month_of(as_of, back)
            totals = account_totals(cfg, organization_id, month, classes=(5,), conn=conn)
            receipts, disbursements = _group_sums(totals, BANK_GROUP)
            rows.append(
                {
                    "month": month.label,
                    "receipts": receipts,
                    "disbursements": disbursements,
                    "balance": receipts - disbursements,
                }
            )
    return pd.DataFrame(rows, columns=["month", "receipts", "disbursements", "balance"])
