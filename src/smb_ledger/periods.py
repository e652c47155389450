# SMB Ledger - Double-entry accounting ledger for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Period helpers for SMB Ledger.

This module defines a Period value object (an inclusive date range) and
helpers to derive reporting periods (fiscal year, YTD, last month, last
fiscal year, custom range) from the configured fiscal year and CLI
arguments.
"""

from calendar import monthrange
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from .config import FiscalYear
from .db import EPOCH


@dataclass(frozen=True)
class Period:
    """An inclusive date range with a human-readable label."""

    start: date
    end: date
    label: str = ""

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(
                f"Period end {self.end} cannot be before start {self.start}."
            )

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


def _today() -> date:
    """Return today's date as a date object (isolated for easier testing)."""
    return datetime.today().date()


def period_fy(fy: FiscalYear) -> Period:
    """Full current fiscal year."""
    return Period(
        start=fy.start_date,
        end=fy.end_date,
        label=f"Fiscal year {fy.start_date.year}",
    )


def period_ytd(fy: FiscalYear) -> Period:
    """Year-to-date within the fiscal year."""
    today = _today()
    end = min(max(today, fy.start_date), fy.end_date)
    return Period(start=fy.start_date, end=end, label="Year to date")


def period_last_month(fy: FiscalYear) -> Period:
    """Full previous calendar month, clamped to the fiscal year if needed."""
    today = _today()

    if today.month == 1:
        year, month = today.year - 1, 12
    else:
        year, month = today.year, today.month - 1

    start = date(year, month, 1)
    end = date(year, month, monthrange(year, month)[1])

    # No overlap with the fiscal year: fall back to the full year.
    if end < fy.start_date or start > fy.end_date:
        return period_fy(fy)

    return Period(
        start=max(start, fy.start_date),
        end=min(end, fy.end_date),
        label="Last month",
    )


def period_last_fy(fy: FiscalYear) -> Period:
    """
    Previous fiscal year, same length and anchor as the current one.

    A fiscal year running 2024-07-01 to 2025-06-30 gives 2023-07-01 to
    2024-06-30.
    """
    start = _shift_year(fy.start_date, -1)
    end = _shift_year(fy.end_date, -1)
    return Period(
        start=start,
        end=end,
        label=f"Previous fiscal year ({start.year})",
    )


def _shift_year(day: date, years: int) -> date:
    year = day.year + years
    last_day = monthrange(year, day.month)[1]
    # A month-end stays a month-end (28 and 29 February map to each other).
    if day.day == monthrange(day.year, day.month)[1]:
        return date(year, day.month, last_day)
    return date(year, day.month, min(day.day, last_day))


def period_as_of(as_of: date) -> Period:
    """Everything posted since the books were opened, up to ``as_of``."""
    return Period(start=EPOCH, end=as_of, label=f"As of {as_of}")


PREDEFINED_PERIODS = {
    "fy": period_fy,
    "ytd": period_ytd,
    "last-month": period_last_month,
    "last-fy": period_last_fy,
}


def _custom_period(
    fy: FiscalYear, from_raw: Optional[str], to_raw: Optional[str]
) -> Period:
    """Custom range; a missing bound falls back to the fiscal year's."""
    try:
        start = date.fromisoformat(from_raw) if from_raw else fy.start_date
        end = date.fromisoformat(to_raw) if to_raw else fy.end_date
    except ValueError as exc:
        raise ValueError("Invalid custom period date, expected YYYY-MM-DD.") from exc
    if end < start:
        raise ValueError(f"Custom period ends ({end}) before it starts ({start}).")
    return Period(start=start, end=end, label=f"Custom period ({start} → {end})")


def determine_period_from_args(args, fy: FiscalYear) -> Period:
    """
    Reporting period selected on the command line.

    ``args.period`` (a PREDEFINED_PERIODS name) wins over
    ``args.from_date`` / ``args.to_date``; with neither, the full fiscal
    year is used.
    """
    name = getattr(args, "period", None)
    if name:
        try:
            builder = PREDEFINED_PERIODS[name]
        except KeyError:
            raise ValueError(f"Unknown period: {name!r}") from None
        return builder(fy)

    from_raw = getattr(args, "from_date", None)
    to_raw = getattr(args, "to_date", None)
    if from_raw or to_raw:
        return _custom_period(fy, from_raw, to_raw)
    return period_fy(fy)
