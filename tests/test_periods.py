from argparse import Namespace
from datetime import date

import pytest

import smb_ledger.periods as periods
from smb_ledger.config import FiscalYear

FY = FiscalYear(start_date=date(2025, 1, 1), end_date=date(2025, 12, 31))


def _args(period=None, from_date=None, to_date=None) -> Namespace:
    return Namespace(period=period, from_date=from_date, to_date=to_date)


def test_period_contains_inclusive_bounds() -> None:
    p = periods.Period(start=date(2025, 2, 1), end=date(2025, 4, 1))

    assert p.contains(date(2025, 2, 1))
    assert p.contains(date(2025, 4, 1))
    assert not p.contains(date(2025, 4, 2))


def test_period_rejects_end_before_start() -> None:
    with pytest.raises(ValueError):
        periods.Period(start=date(2025, 2, 1), end=date(2025, 1, 31))


def test_default_is_full_fiscal_year() -> None:
    p = periods.determine_period_from_args(_args(), FY)
    assert (p.start, p.end) == (FY.start_date, FY.end_date)


def test_ytd_is_clamped_to_fiscal_year(monkeypatch) -> None:
    monkeypatch.setattr(periods, "_today", lambda: date(2025, 6, 15))
    p = periods.determine_period_from_args(_args("ytd"), FY)
    assert (p.start, p.end) == (date(2025, 1, 1), date(2025, 6, 15))

    monkeypatch.setattr(periods, "_today", lambda: date(2026, 2, 1))
    assert periods.period_ytd(FY).end == date(2025, 12, 31)


def test_last_month(monkeypatch) -> None:
    monkeypatch.setattr(periods, "_today", lambda: date(2025, 3, 10))
    p = periods.determine_period_from_args(_args("last-month"), FY)
    assert (p.start, p.end) == (date(2025, 2, 1), date(2025, 2, 28))


def test_last_month_outside_fiscal_year_falls_back_to_fy(monkeypatch) -> None:
    monkeypatch.setattr(periods, "_today", lambda: date(2025, 1, 10))
    p = periods.period_last_month(FY)
    assert (p.start, p.end) == (FY.start_date, FY.end_date)


def test_last_fy_shifts_both_bounds() -> None:
    p = periods.determine_period_from_args(_args("last-fy"), FY)
    assert (p.start, p.end) == (date(2024, 1, 1), date(2024, 12, 31))

    leap = FiscalYear(start_date=date(2024, 3, 1), end_date=date(2025, 2, 28))
    shifted = periods.period_last_fy(leap)
    assert (shifted.start, shifted.end) == (date(2023, 3, 1), date(2024, 2, 29))

    from_leap_day = FiscalYear(start_date=date(2023, 3, 1), end_date=date(2024, 2, 29))
    assert periods.period_last_fy(from_leap_day).end == date(2023, 2, 28)


def test_custom_period_uses_fiscal_year_for_missing_bound() -> None:
    p = periods.determine_period_from_args(_args(from_date="2025-04-01"), FY)
    assert (p.start, p.end) == (date(2025, 4, 1), date(2025, 12, 31))

    p = periods.determine_period_from_args(_args(to_date="2025-03-31"), FY)
    assert (p.start, p.end) == (date(2025, 1, 1), date(2025, 3, 31))


def test_custom_period_errors() -> None:
    with pytest.raises(ValueError):
        periods.determine_period_from_args(
            _args(from_date="2025-05-01", to_date="2025-04-01"), FY
        )
    with pytest.raises(ValueError):
        periods.determine_period_from_args(_args(from_date="01/05/2025"), FY)


def test_period_as_of_starts_at_epoch() -> None:
    p = periods.period_as_of(date(2025, 6, 30))
    assert p.end == date(2025, 6, 30)
    assert p.contains(date(1990, 1, 1))
