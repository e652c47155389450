# SMB Ledger - Double-entry accounting ledger for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Entry generators.

One pure function per business event, shaped ``generate(event, mapping) ->
list[LineInput]``. Generators never touch the database: accounts are
picked from the AccountMapping tables, and posting (with account
validation) is done by ``entries_service.post_event``.

Postings (PCG):

    Expense           D expense category (net)   C payment account (gross)
                      D deductible VAT
    Invoice           D 411000 (gross)           C revenue category (net)
                                                 C collected VAT
    Payment received  D payment account          C 411000
    Bill              D purchase category (net)  C 401000 (gross)
                      D deductible VAT
    Bill payment      D 401000                   C payment account

Tax policy
----------
VAT is always broken out on its own line, on the collected (445710) or
deductible (445660) account of its rate; the revenue/expense line carries
the net amount and is tagged with the rate.

- Tax-inclusive amounts (expenses): net = gross / (1 + rate/100) rounded
  half-up to the cent, VAT = gross - net. The entry balances exactly.
- Net amounts (invoice and bill items): nets are summed per (account, rate)
  and VAT is computed once per rate, round(sum_net * rate / 100).

A negative bucket (credit note) is posted on the opposite side; a zero
bucket produces no line.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional, Union

from .journal import LineInput, Reference
from .mapping import AccountMapping
from .money import ZERO, round_money, to_decimal

# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TaxableAmount:
    """One invoice or bill item: a net amount in a category at a VAT rate."""

    category: str
    net: Decimal
    tax_rate: Decimal = ZERO


@dataclass(frozen=True)
class ExpenseEvent:
    """An expense paid immediately; ``amount`` is tax-inclusive."""

    id: str
    date: date
    category: str
    amount: Decimal
    payment_method: str
    tax_rate: Optional[Decimal] = None
    vendor_name: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class InvoiceEvent:
    """A sales invoice issued to a client."""

    id: str
    date: date
    invoice_number: str
    items: tuple[TaxableAmount, ...]
    client_name: Optional[str] = None


@dataclass(frozen=True)
class PaymentReceivedEvent:
    """A client payment settling (part of) an invoice."""

    id: str
    date: date
    invoice_number: str
    amount: Decimal
    payment_method: str
    client_name: Optional[str] = None


@dataclass(frozen=True)
class BillEvent:
    """A supplier bill received."""

    id: str
    date: date
    bill_number: str
    items: tuple[TaxableAmount, ...]
    vendor_name: Optional[str] = None


@dataclass(frozen=True)
class BillPaymentEvent:
    """A payment to a supplier settling (part of) a bill."""

    id: str
    date: date
    bill_number: str
    amount: Decimal
    payment_method: str
    vendor_name: Optional[str] = None


Event = Union[
    ExpenseEvent, InvoiceEvent, PaymentReceivedEvent, BillEvent, BillPaymentEvent
]


@dataclass(frozen=True)
class Posting:
    """Where and how an event is posted."""

    reference: Reference
    journal_type: str
    description: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def split_tax_inclusive(gross, rate) -> tuple[Decimal, Decimal]:
    """Split a tax-inclusive amount into (net, VAT); net + VAT == gross."""
    gross = to_decimal(gross)
    rate = to_decimal(rate)
    if rate == 0:
        return gross, ZERO
    net = round_money(gross / (1 + rate / 100))
    return net, gross - net


def _line(
    account: str,
    amount: Decimal,
    natural_side: str,
    description: Optional[str] = None,
    tax_rate: Optional[Decimal] = None,
) -> Optional[LineInput]:
    """A line on its natural side, flipped if negative, None if zero."""
    if amount == 0:
        return None
    on_debit = (natural_side == "debit") == (amount > 0)
    value = abs(amount)
    return LineInput(
        account=account,
        debit=value if on_debit else ZERO,
        credit=ZERO if on_debit else value,
        description=description,
        tax_rate=tax_rate,
    )


def _with_name(label: str, name: Optional[str]) -> str:
    return f"{label} - {name}" if name else label


def _taxed_items(
    items: Sequence[TaxableAmount],
    account_for,
    mapping: AccountMapping,
) -> tuple[dict[tuple[str, Decimal], Decimal], dict[Decimal, Decimal]]:
    """
    Bucket item nets per (account, rate) and compute VAT per rate.

    Returns (net per (account, rate), VAT per rate), both in first-seen
    order.
    """
    nets: dict[tuple[str, Decimal], Decimal] = {}
    net_per_rate: dict[Decimal, Decimal] = {}
    for item in items:
        account = account_for(item.category)
        rate = to_decimal(item.tax_rate)
        mapping.tax_accounts(rate)
        net = to_decimal(item.net)
        nets[(account, rate)] = nets.get((account, rate), ZERO) + net
        net_per_rate[rate] = net_per_rate.get(rate, ZERO) + net

    vat_per_rate = {
        rate: round_money(net * rate / 100) for rate, net in net_per_rate.items()
    }
    return nets, vat_per_rate


def _compact(lines: Sequence[Optional[LineInput]]) -> list[LineInput]:
    return [line for line in lines if line is not None]


# ---------------------------------------------------------------------------
# Generators
# ---------------------------------------------------------------------------


def expense_lines(event: ExpenseEvent, mapping: AccountMapping) -> list[LineInput]:
    """Expense: debit the category account, credit bank or cash."""
    expense_account = mapping.expense_account(event.category)
    payment_account = mapping.payment_account(event.payment_method)
    ref = event.vendor_name or event.description or "Dépense"
    gross = to_decimal(event.amount)

    if event.tax_rate is None:
        net, vat, rate, vat_account = gross, ZERO, None, None
    else:
        rate = to_decimal(event.tax_rate)
        vat_account = mapping.tax_accounts(rate).deductible
        net, vat = split_tax_inclusive(gross, rate)

    return _compact(
        [
            _line(expense_account, net, "debit", f"Charge - {ref}", rate),
            _line(vat_account, vat, "debit", f"TVA déductible - {ref}")
            if vat_account
            else None,
            _line(payment_account, gross, "credit", f"Règlement - {ref}"),
        ]
    )


def invoice_lines(event: InvoiceEvent, mapping: AccountMapping) -> list[LineInput]:
    """Sales invoice: debit the receivable, credit revenue and collected VAT."""
    ref = event.invoice_number
    nets, vat_per_rate = _taxed_items(event.items, mapping.revenue_account, mapping)
    gross = sum(nets.values(), ZERO) + sum(vat_per_rate.values(), ZERO)

    lines = [_line(mapping.receivable_account, gross, "debit", f"Client - {ref}")]
    lines += [
        _line(account, net, "credit", f"Ventes - {ref}", rate)
        for (account, rate), net in nets.items()
    ]
    lines += [
        _line(
            mapping.tax_accounts(rate).collected,
            vat,
            "credit",
            f"TVA collectée - {ref}",
        )
        for rate, vat in vat_per_rate.items()
    ]
    return _compact(lines)


def payment_received_lines(
    event: PaymentReceivedEvent, mapping: AccountMapping
) -> list[LineInput]:
    """Client payment: debit bank or cash, credit the receivable."""
    ref = event.invoice_number
    amount = to_decimal(event.amount)
    return _compact(
        [
            _line(
                mapping.payment_account(event.payment_method),
                amount,
                "debit",
                f"Encaissement - {ref}",
            ),
            _line(
                mapping.receivable_account,
                amount,
                "credit",
                f"Règlement client - {ref}",
            ),
        ]
    )


def bill_lines(event: BillEvent, mapping: AccountMapping) -> list[LineInput]:
    """Supplier bill: debit purchases and deductible VAT, credit the payable."""
    ref = event.bill_number
    nets, vat_per_rate = _taxed_items(event.items, mapping.purchase_account, mapping)
    gross = sum(nets.values(), ZERO) + sum(vat_per_rate.values(), ZERO)

    lines = [
        _line(account, net, "debit", f"Achats - {ref}", rate)
        for (account, rate), net in nets.items()
    ]
    lines += [
        _line(
            mapping.tax_accounts(rate).deductible,
            vat,
            "debit",
            f"TVA déductible - {ref}",
        )
        for rate, vat in vat_per_rate.items()
    ]
    lines.append(_line(mapping.payable_account, gross, "credit", f"Fournisseur - {ref}"))
    return _compact(lines)


def bill_payment_lines(
    event: BillPaymentEvent, mapping: AccountMapping
) -> list[LineInput]:
    """Supplier payment: debit the payable, credit bank or cash."""
    ref = event.bill_number
    amount = to_decimal(event.amount)
    return _compact(
        [
            _line(mapping.payable_account, amount, "debit", f"Règlement - {ref}"),
            _line(
                mapping.payment_account(event.payment_method),
                amount,
                "credit",
                f"Décaissement - {ref}",
            ),
        ]
    )


_GENERATORS = {
    ExpenseEvent: expense_lines,
    InvoiceEvent: invoice_lines,
    PaymentReceivedEvent: payment_received_lines,
    BillEvent: bill_lines,
    BillPaymentEvent: bill_payment_lines,
}


def generate(event: Event, mapping: AccountMapping) -> list[LineInput]:
    """Build the lines of an event's entry."""
    try:
        generator = _GENERATORS[type(event)]
    except KeyError:
        raise TypeError(f"No entry generator for {type(event).__name__}.") from None
    return generator(event, mapping)


def posting_for(event: Event) -> Posting:
    """Reference, journal and entry label of an event."""
    if isinstance(event, ExpenseEvent):
        ref = event.vendor_name or event.description or "Dépense"
        return Posting(Reference("expense", event.id), "bank", f"Dépense - {ref}")
    if isinstance(event, InvoiceEvent):
        return Posting(
            Reference("invoice", event.id),
            "sales",
            _with_name(f"Facture {event.invoice_number}", event.client_name),
        )
    if isinstance(event, PaymentReceivedEvent):
        return Posting(
            Reference("payment", event.id),
            "bank",
            _with_name(
                f"Paiement reçu - Facture {event.invoice_number}", event.client_name
            ),
        )
    if isinstance(event, BillEvent):
        return Posting(
            Reference("bill", event.id),
            "purchases",
            _with_name(f"Achat {event.bill_number}", event.vendor_name),
        )
    if isinstance(event, BillPaymentEvent):
        return Posting(
            Reference("bill_payment", event.id),
            "bank",
            _with_name(f"Paiement fournisseur - {event.bill_number}", event.vendor_name),
        )
    raise TypeError(f"No entry generator for {type(event).__name__}.")
