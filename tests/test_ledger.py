from datetime import date
from decimal import Decimal

import pytest

from smb_ledger.errors import NotFoundError
from smb_ledger.journal import LineInput, create_entry
from smb_ledger.ledger import (
    account_movements,
    account_totals,
    general_ledger,
    opening_balance,
    period_balance,
    period_balances,
    running_balance,
    taxed_lines,
    trial_balance,
)
from smb_ledger.periods import Period

ORG = "acme"
D = Decimal
FY = Period(date(2025, 1, 1), date(2025, 12, 31))


def _post(cfg, day, amount, debit="512000", credit="706000", **kwargs):
    return create_entry(
        cfg,
        ORG,
        day,
        f"Mouvement {amount}",
        [
            LineInput(debit, debit=D(amount), tax_rate=kwargs.get("debit_rate")),
            LineInput(credit, credit=D(amount), tax_rate=kwargs.get("credit_rate")),
        ],
    )


@pytest.fixture
def books(ledger):
    # Posted out of date order on purpose.
    _post(ledger, date(2025, 3, 1), "300.00")
    _post(ledger, date(2025, 1, 15), "100.00")
    _post(ledger, date(2025, 3, 1), "50.00", debit="606000", credit="512000")
    _post(ledger, date(2024, 12, 31), "1000.00", debit="512000", credit="101000")
    return ledger


def test_movements_are_ordered_by_date_then_number(books):
    movements = account_movements(books, ORG, "512000", FY)

    assert [(m.date, m.entry_number) for m in movements] == [
        (date(2025, 1, 15), 2),
        (date(2025, 3, 1), 1),
        (date(2025, 3, 1), 3),
    ]
    assert [m.amount for m in movements] == [D("100.00"), D("300.00"), D("-50.00")]
    assert movements[0].entry_ref == "EC-000002"


def test_movements_of_unknown_account(books):
    with pytest.raises(NotFoundError):
        account_movements(books, ORG, "999999", FY)


def test_running_balance_is_seeded_by_opening_balance(books):
    movements = account_movements(books, ORG, "512000", FY)
    opening = opening_balance(books, ORG, "512000", FY.start)

    assert opening == D("1000.00")
    assert [m.amount for m in movements] == [D("100.00"), D("300.00"), D("-50.00")]
    assert list(running_balance(movements)) == [
        D("100.00"),
        D("400.00"),
        D("350.00"),
    ]
    assert list(running_balance(movements, opening))[-1] == D("1350.00")


def test_running_balance_is_stable_across_calls(books):
    first = list(running_balance(account_movements(books, ORG, "512000", FY)))
    second = list(running_balance(account_movements(books, ORG, "512000", FY)))
    assert first == second


def test_period_balance_uses_inclusive_bounds(books):
    march = Period(date(2025, 3, 1), date(2025, 3, 1))

    assert period_balance(books, ORG, "512000", march) == D("250.00")
    assert period_balance(books, ORG, "706000", FY) == D("-400.00")
    assert period_balance(books, ORG, "607000", FY) == D("0.00")


def test_account_totals_and_period_balances(books):
    totals = account_totals(books, ORG, FY)

    assert list(totals["account"]) == ["512000", "606000", "706000"]
    assert dict(zip(totals["account"], totals["balance"])) == period_balances(
        books, ORG, FY
    )
    assert list(account_totals(books, ORG, FY, classes=(6, 7))["account"]) == [
        "606000",
        "706000",
    ]


def test_general_ledger_carries_opening_balance(books):
    frame = general_ledger(books, ORG, FY, accounts=["512000"])

    assert list(frame["entry_ref"]) == ["EC-000002", "EC-000001", "EC-000003"]
    assert list(frame["balance"]) == [D("1100.00"), D("1400.00"), D("1350.00")]
    assert set(frame["account"]) == {"512000"}


def test_trial_balance_totals_match(books):
    frame = trial_balance(books, ORG, FY)

    assert frame["total_debit"].sum() == frame["total_credit"].sum() == D("450.00")
    bank = frame[frame["account"] == "512000"].iloc[0]
    assert bank["debit_balance"] == D("350.00")
    assert bank["credit_balance"] == D("0")
    sales = frame[frame["account"] == "706000"].iloc[0]
    assert sales["credit_balance"] == D("400.00")
    assert not any(str(v).startswith("-") for v in frame["credit_balance"])


def test_trial_balance_of_empty_period(ledger):
    frame = trial_balance(ledger, ORG, FY)
    assert frame.empty


def test_taxed_lines_only_returns_tagged_lines(ledger):
    _post(ledger, date(2025, 2, 1), "100.00", credit_rate=D("20"))
    _post(ledger, date(2025, 2, 2), "40.00")

    frame = taxed_lines(ledger, ORG, FY)

    assert list(frame["account"]) == ["706000"]
    assert frame.iloc[0]["tax_rate"] == D("20")
    assert frame.iloc[0]["credit"] == D("100.00")
