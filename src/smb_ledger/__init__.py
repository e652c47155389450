# SMB Ledger - Double-entry accounting ledger for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
SMB Ledger
----------

The accounting ledger engine of a small-business management suite
(invoicing, expenses, banking). It turns business events into balanced
double-entry journal entries and derives statutory reports from the ledger
alone.

Main capabilities:
- French PCG chart of accounts (seven classes), seeded per organization,
- append-only journal with per-organization sequential entry numbers,
- entry generators for expenses, sales invoices, supplier bills and
  payments, driven by explicit account mapping tables,
- ledger queries: account movements, running balances, period balances,
  general ledger and trial balance,
- income statement, balance sheet (with reconciliation check) and VAT
  report,
- FEC (Fichier des Écritures Comptables) regulatory export.

Usage:
    python -m smb_ledger.cli --help
"""

__all__ = [
    "accounts",
    "fec",
    "generators",
    "journal",
    "ledger",
    "reports",
]

__version__ = "0.1.0"
