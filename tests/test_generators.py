from datetime import date
from decimal import Decimal

import pytest

from smb_ledger.errors import MappingError
from smb_ledger.generators import (
    BillEvent,
    BillPaymentEvent,
    ExpenseEvent,
    InvoiceEvent,
    PaymentReceivedEvent,
    TaxableAmount,
    generate,
    posting_for,
    split_tax_inclusive,
)
from smb_ledger.journal import Reference
from smb_ledger.mapping import AccountMapping

D = Decimal
MAPPING = AccountMapping()


def _tuples(lines):
    return [(l.account, l.debit, l.credit) for l in lines]


def _balanced(lines):
    return sum(l.debit for l in lines) == sum(l.credit for l in lines)


def test_split_tax_inclusive():
    assert split_tax_inclusive(D("120.00"), D("20")) == (D("100.00"), D("20.00"))
    assert split_tax_inclusive(D("10.00"), D("5.5")) == (D("9.48"), D("0.52"))
    assert split_tax_inclusive(D("50.00"), D("0")) == (D("50.00"), D("0"))
    net, vat = split_tax_inclusive(D("0.07"), D("20"))
    assert net + vat == D("0.07")


def test_untaxed_expense_paid_by_bank():
    event = ExpenseEvent(
        id="exp-1",
        date=date(2025, 3, 1),
        category="frais_bancaires",
        amount=D("12.50"),
        payment_method="card",
    )

    lines = generate(event, MAPPING)

    assert _tuples(lines) == [
        ("627000", D("12.50"), D("0")),
        ("512000", D("0"), D("12.50")),
    ]
    assert lines[0].tax_rate is None


def test_taxed_expense_breaks_out_vat():
    event = ExpenseEvent(
        id="exp-2",
        date=date(2025, 3, 1),
        category="fournitures",
        amount=D("120.00"),
        payment_method="bank_transfer",
        tax_rate=D("20"),
        vendor_name="Bureau Vallée",
    )

    lines = generate(event, MAPPING)

    assert _tuples(lines) == [
        ("606000", D("100.00"), D("0")),
        ("445660", D("20.00"), D("0")),
        ("512000", D("0"), D("120.00")),
    ]
    assert lines[0].tax_rate == D("20")
    assert _balanced(lines)

    posting = posting_for(event)
    assert posting.reference == Reference("expense", "exp-2")
    assert posting.journal_type == "bank"
    assert posting.description == "Dépense - Bureau Vallée"


def test_cash_expense_uses_cash_account():
    event = ExpenseEvent(
        id="exp-3",
        date=date(2025, 3, 1),
        category="restauration",
        amount=D("30.00"),
        payment_method="cash",
        tax_rate=D("10"),
    )

    lines = generate(event, MAPPING)

    assert [l.account for l in lines] == ["625000", "445660", "531000"]
    assert _balanced(lines)


@pytest.mark.parametrize(
    "event, table",
    [
        (
            ExpenseEvent("e", date(2025, 1, 1), "voyage_lune", D("10"), "cash"),
            "expense category",
        ),
        (
            ExpenseEvent("e", date(2025, 1, 1), "telecom", D("10"), "crypto"),
            "payment method",
        ),
        (
            ExpenseEvent("e", date(2025, 1, 1), "telecom", D("10"), "cash", D("7")),
            "tax rate",
        ),
        (
            InvoiceEvent(
                "i", date(2025, 1, 1), "FA-1", (TaxableAmount("licences", D("10")),)
            ),
            "revenue category",
        ),
        (
            BillEvent("b", date(2025, 1, 1), "F-1", (TaxableAmount("energy", D("10")),)),
            "purchase category",
        ),
    ],
)
def test_unmapped_keys_raise_mapping_error(event, table):
    with pytest.raises(MappingError) as excinfo:
        generate(event, MAPPING)
    assert excinfo.value.table == table


def test_invoice_buckets_items_per_account_and_rate():
    event = InvoiceEvent(
        id="inv-1",
        date=date(2025, 4, 1),
        invoice_number="FA-2025-001",
        items=(
            TaxableAmount("services", D("500.00"), D("20")),
            TaxableAmount("goods", D("100.00"), D("5.5")),
            TaxableAmount("services", D("250.00"), D("20")),
        ),
        client_name="Dupont",
    )

    lines = generate(event, MAPPING)

    assert _tuples(lines) == [
        ("411000", D("1005.50"), D("0")),
        ("706000", D("0"), D("750.00")),
        ("707000", D("0"), D("100.00")),
        ("445710", D("0"), D("150.00")),
        ("445710", D("0"), D("5.50")),
    ]
    assert [l.tax_rate for l in lines[1:3]] == [D("20"), D("5.5")]
    assert _balanced(lines)

    posting = posting_for(event)
    assert posting.reference == Reference("invoice", "inv-1")
    assert posting.journal_type == "sales"
    assert posting.description == "Facture FA-2025-001 - Dupont"


def test_invoice_vat_is_computed_once_per_rate():
    items = tuple(TaxableAmount("goods", D("0.10"), D("5.5")) for _ in range(10))
    lines = generate(InvoiceEvent("inv-2", date(2025, 4, 1), "FA-2", items), MAPPING)

    # 10 x 0.10 = 1.00 at 5.5 % -> 0.055 -> 0.06, not 10 x round(0.0055).
    assert _tuples(lines) == [
        ("411000", D("1.06"), D("0")),
        ("707000", D("0"), D("1.00")),
        ("445710", D("0"), D("0.06")),
    ]


def test_credit_note_items_flip_sides():
    event = InvoiceEvent(
        id="avoir-1",
        date=date(2025, 4, 2),
        invoice_number="AV-1",
        items=(TaxableAmount("services", D("-100.00"), D("20")),),
    )

    lines = generate(event, MAPPING)

    assert _tuples(lines) == [
        ("411000", D("0"), D("120.00")),
        ("706000", D("100.00"), D("0")),
        ("445710", D("20.00"), D("0")),
    ]


def test_payment_received():
    event = PaymentReceivedEvent(
        id="pay-1",
        date=date(2025, 4, 15),
        invoice_number="FA-2025-001",
        amount=D("1005.50"),
        payment_method="bank_transfer",
    )

    assert _tuples(generate(event, MAPPING)) == [
        ("512000", D("1005.50"), D("0")),
        ("411000", D("0"), D("1005.50")),
    ]
    posting = posting_for(event)
    assert posting.reference == Reference("payment", "pay-1")
    assert posting.journal_type == "bank"


def test_bill_and_bill_payment():
    bill = BillEvent(
        id="bill-1",
        date=date(2025, 5, 1),
        bill_number="F-778",
        items=(
            TaxableAmount("goods", D("1000.00"), D("20")),
            TaxableAmount("subcontracting", D("300.00"), D("20")),
        ),
        vendor_name="Grossiste SA",
    )

    assert _tuples(generate(bill, MAPPING)) == [
        ("607000", D("1000.00"), D("0")),
        ("604000", D("300.00"), D("0")),
        ("445660", D("260.00"), D("0")),
        ("401000", D("0"), D("1560.00")),
    ]
    assert posting_for(bill).journal_type == "purchases"
    assert posting_for(bill).reference == Reference("bill", "bill-1")

    payment = BillPaymentEvent(
        id="bp-1",
        date=date(2025, 5, 31),
        bill_number="F-778",
        amount=D("1560.00"),
        payment_method="check",
    )
    assert _tuples(generate(payment, MAPPING)) == [
        ("401000", D("1560.00"), D("0")),
        ("512000", D("0"), D("1560.00")),
    ]
    assert posting_for(payment).reference == Reference("bill_payment", "bp-1")


def test_custom_mapping_is_data_not_code():
    mapping = AccountMapping(expense_categories={"cloud": "613000"})
    event = ExpenseEvent("e", date(2025, 1, 1), "cloud", D("49.00"), "card")

    assert generate(event, mapping)[0].account == "613000"
    with pytest.raises(MappingError):
        generate(ExpenseEvent("e", date(2025, 1, 1), "telecom", D("1"), "card"), mapping)


def test_generate_rejects_unknown_event_type():
    with pytest.raises(TypeError):
        generate(object(), MAPPING)
