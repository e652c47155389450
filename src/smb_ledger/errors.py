# SMB Ledger - Double-entry accounting ledger for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Exception hierarchy for SMB Ledger.

All errors raised by the ledger core derive from ``LedgerError`` and carry a
machine-readable ``code`` so that callers (CLI, event producers) can react
by type instead of parsing messages:

    LedgerError
    +-- ValidationError   caller bug; nothing was persisted
    +-- NotFoundError     lookup of an entry or account failed
    +-- MappingError      no account mapping for a category / method / rate
    +-- ConsistencyError  ledger corruption detected by a report

Errors are never retried inside the core: retrying a failed entry creation
blindly could double-post. Callers use the reference key to check whether
an event was already posted.
"""

from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """Base class for all ledger errors."""

    code = "LEDGER_ERROR"


class ValidationError(LedgerError):
    """
    An entry, line or account operation was rejected.

    Attributes
    ----------
    rule:
        Identifier of the rule that failed, e.g. ``"unbalanced"``,
        ``"line_sides"``, ``"unknown_account"``.
    details:
        Optional structured data about the failure (amounts, codes...).
    """

    code = "VALIDATION_ERROR"

    def __init__(self, rule: str, message: str, **details: Any) -> None:
        super().__init__(message)
        self.rule = rule
        self.details = details


class NotFoundError(LedgerError):
    """An account or journal entry could not be found."""

    code = "NOT_FOUND"


class MappingError(LedgerError):
    """
    No account is mapped for a business key.

    Raised by entry generators; a missing mapping is a configuration bug and
    never falls back to a default account.
    """

    code = "MAPPING_ERROR"

    def __init__(self, table: str, key: str) -> None:
        super().__init__(f"No account mapping for {table} {key!r}.")
        self.table = table
        self.key = key


class ConsistencyError(LedgerError):
    """
    A ledger-wide identity does not hold.

    Attributes
    ----------
    details:
        The figures involved (totals, difference, unbalanced entry numbers).
    """

    code = "CONSISTENCY_ERROR"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.details = details
