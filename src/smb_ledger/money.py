# SMB Ledger - Double-entry accounting ledger for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Monetary helpers.

Amounts cross the public API as ``Decimal`` and are stored as integer cents.
Conversion to cents is exact: an amount with more than two decimals is
rejected rather than rounded.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .errors import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value) -> Decimal:
    """
    Convert int, str, float or Decimal to a finite Decimal (floats via their repr).

    Raises
    ------
    ValidationError
        rule 'invalid_amount' for non-numeric input, NaN or infinity.
    """
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, float):
        amount = Decimal(repr(value))
    else:
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValidationError(
                "invalid_amount", f"Invalid amount: {value!r}"
            ) from exc
    if not amount.is_finite():
        raise ValidationError("invalid_amount", f"Invalid amount: {value!r}")
    return amount


def to_cents(value) -> int:
    """
    Convert an amount to integer cents without rounding.

    Raises
    ------
    ValidationError
        If the amount is not finite or has a sub-cent residue.
    """
    amount = to_decimal(value)
    cents = amount * 100
    if cents != cents.to_integral_value():
        raise ValidationError(
            "precision",
            f"Amount {amount} has more than two decimal places.",
            amount=str(amount),
        )
    return int(cents)


def from_cents(cents: int) -> Decimal:
    """Convert integer cents back to a two-decimal Decimal."""
    return (Decimal(int(cents)) / 100).quantize(CENT)


def round_money(value: Decimal) -> Decimal:
    """Round half-up to the cent."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(value: Decimal) -> str:
    """Dot decimal, exactly two decimals, no thousands separator."""
    return f"{round_money(value):.2f}"


def normalize_rate(rate) -> str:
    """Canonical text of a tax rate: 20 / '20.0' / 20.00 -> '20', 5.50 -> '5.5'."""
    value = to_decimal(rate)
    if value < 0:
        raise ValidationError("invalid_amount", f"Invalid tax rate: {rate!r}")
    if value == 0:
        return "0"
    return format(value.normalize(), "f")
