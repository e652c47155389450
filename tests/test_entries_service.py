from datetime import date
from decimal import Decimal

import pytest

from smb_ledger.db import transaction
from smb_ledger.entries_service import (
    ENTRY_LINE_COLUMNS,
    bootstrap_organization,
    entries_for_period,
    post_event,
    post_manual_entry,
    repost_event,
    void_event,
)
from smb_ledger.errors import MappingError, ValidationError
from smb_ledger.generators import ExpenseEvent, InvoiceEvent, TaxableAmount
from smb_ledger.journal import (
    LineInput,
    find_entries_by_reference,
    list_entries,
    reverse_entry,
)
from smb_ledger.ledger import period_balance
from smb_ledger.periods import Period

ORG = "acme"
D = Decimal
FY = Period(date(2025, 1, 1), date(2025, 12, 31))


def _expense(amount="120.00", **overrides):
    fields = dict(
        id="exp-1",
        date=date(2025, 3, 10),
        category="fournitures",
        amount=D(amount),
        payment_method="bank_transfer",
        tax_rate=D("20"),
        vendor_name="Bureau Vallée",
    )
    fields.update(overrides)
    return ExpenseEvent(**fields)


def test_bootstrap_is_idempotent(app_cfg):
    assert bootstrap_organization(app_cfg) == 0


def test_post_event_creates_one_entry(app_cfg):
    entry = post_event(app_cfg, _expense())

    assert entry.journal_type == "bank"
    assert entry.reference_type == "expense"
    assert entry.reference_id == "exp-1"
    assert entry.description == "Dépense - Bureau Vallée"
    assert entry.total_debit == entry.total_credit == D("120.00")

    db = app_cfg.database
    assert period_balance(db, ORG, "606000", FY) == D("100.00")
    assert period_balance(db, ORG, "445660", FY) == D("20.00")
    assert period_balance(db, ORG, "512000", FY) == D("-120.00")


def test_posting_the_same_event_twice_is_rejected(app_cfg):
    post_event(app_cfg, _expense())

    with pytest.raises(ValidationError) as excinfo:
        post_event(app_cfg, _expense())

    assert excinfo.value.rule == "already_posted"
    assert len(list_entries(app_cfg.database, ORG)) == 1


def test_unmapped_event_posts_nothing(app_cfg):
    with pytest.raises(MappingError):
        post_event(app_cfg, _expense(category="inconnue"))
    assert list_entries(app_cfg.database, ORG) == []


def test_repost_replaces_the_entry_of_an_edited_event(app_cfg):
    first = post_event(app_cfg, _expense())
    second = repost_event(app_cfg, _expense(amount="60.00"))

    entries = find_entries_by_reference(app_cfg.database, ORG, "expense", "exp-1")
    assert [e.number for e in entries] == [second.number]
    assert second.number > first.number
    assert period_balance(app_cfg.database, ORG, "606000", FY) == D("50.00")


def test_void_event_removes_its_entries(app_cfg):
    post_event(app_cfg, _expense())

    assert void_event(app_cfg, "expense", "exp-1") == 1
    assert void_event(app_cfg, "expense", "exp-1") == 0
    assert period_balance(app_cfg.database, ORG, "512000", FY) == D("0.00")


def test_void_event_also_removes_reversals_of_its_entries(app_cfg):
    db = app_cfg.database
    entry = post_event(app_cfg, _expense())
    reverse_entry(db, ORG, entry.number, date(2025, 3, 31))

    assert void_event(app_cfg, "expense", "exp-1") == 2
    assert list_entries(db, ORG) == []
    assert period_balance(db, ORG, "606000", FY) == D("0.00")


def test_repost_after_reversal_leaves_only_the_new_entry(app_cfg):
    db = app_cfg.database
    entry = post_event(app_cfg, _expense())
    reverse_entry(db, ORG, entry.number, date(2025, 3, 31))

    reposted = repost_event(app_cfg, _expense())

    assert [e.number for e in list_entries(db, ORG)] == [reposted.number]
    assert period_balance(db, ORG, "606000", FY) == D("100.00")


def test_producer_transaction_rolls_back_the_entry(app_cfg):
    with pytest.raises(RuntimeError):
        with transaction(app_cfg.database) as conn:
            post_event(app_cfg, _expense(), conn=conn)
            raise RuntimeError("producer record could not be saved")

    assert list_entries(app_cfg.database, ORG) == []


def test_post_manual_entry_defaults_to_general_journal(app_cfg):
    entry = post_manual_entry(
        app_cfg,
        date(2025, 1, 1),
        "Apport en capital",
        [
            LineInput("512000", debit=D("5000.00")),
            LineInput("101000", credit=D("5000.00")),
        ],
    )

    assert entry.journal_type == "general"
    assert entry.reference_type is None


def test_entries_for_period_flattens_lines(app_cfg):
    post_event(app_cfg, _expense())
    post_event(
        app_cfg,
        InvoiceEvent(
            id="inv-1",
            date=date(2025, 2, 1),
            invoice_number="FA-001",
            items=(TaxableAmount("services", D("1000.00"), D("20")),),
        ),
    )
    post_event(app_cfg, _expense(id="exp-2", date=date(2026, 1, 5)))

    frame = entries_for_period(app_cfg, FY)

    assert list(frame.columns) == ENTRY_LINE_COLUMNS
    assert list(frame["entry_ref"]) == ["EC-000002"] * 3 + ["EC-000001"] * 3
    assert list(frame["account"][:3]) == ["411000", "706000", "445710"]
    assert frame["debit"].sum() == frame["credit"].sum() == D("1320.00")


def test_entries_for_empty_period(app_cfg):
    frame = entries_for_period(app_cfg, FY)
    assert frame.empty
    assert list(frame.columns) == ENTRY_LINE_COLUMNS
