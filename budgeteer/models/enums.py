"""
Shared Enumerations for Budgeteer Models.

All string enumerations for type-safe field constraints.
StrEnum values compare equal to their string equivalents, so rows read
back from any backend can be compared against plain strings.
"""

from __future__ import annotations
from enum import StrEnum


class StorageMode(StrEnum):
    """Which storage backend the repositories are bound to.

    ``DEMO`` is ephemeral: its data lives in memory, is seeded on entry,
    discarded on exit, and the mode itself is never persisted.
    """

    CLOUD = "cloud"
    LOCAL = "local"
    DEMO = "demo"


class TableName(StrEnum):
    """Persisted entity tables, in import dependency order."""

    ACCOUNT_CATEGORIES = "account_categories"
    TRANSACTION_GROUPS = "transaction_groups"
    TRANSACTION_CATEGORIES = "transaction_categories"
    ACCOUNTS = "accounts"
    TRANSACTIONS = "transactions"
    RECURRINGS = "recurrings"


class AccountType(StrEnum):
    """Balance-sheet side of an account category."""

    ASSET = "Asset"
    LIABILITY = "Liability"


class TransactionType(StrEnum):
    """Kind of money movement recorded by a transaction."""

    EXPENSE = "Expense"
    INCOME = "Income"
    TRANSFER = "Transfer"
    ADJUSTMENT = "Adjustment"
    INITIAL = "Initial"
    REFUND = "Refund"


class RecurringType(StrEnum):
    """How a recurring definition is materialized."""

    STANDARD = "Standard"
    TRANSFER = "Transfer"
    CREDIT_CARD_PAYMENT = "CreditCardPayment"


class CatchUpPolicy(StrEnum):
    """What the engine does when several occurrences were missed.

    ``COLLAPSE`` materializes one transaction at the oldest missed date,
    counts the intermediate ones in ``failed_attempts`` and leaves the
    latest due occurrence pending.  ``ADVANCE_PAST_NOW`` also creates one
    transaction but jumps past today.  ``BACKFILL`` creates every missed
    occurrence.  Only ``COLLAPSE`` feeds ``failed_attempts``; the other
    policies reset it on success.
    """

    COLLAPSE = "collapse"
    ADVANCE_PAST_NOW = "advance_past_now"
    BACKFILL = "backfill"


class OutcomeStatus(StrEnum):
    """Per-recurring result of a scan."""

    APPLIED = "APPLIED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


class RowClassification(StrEnum):
    """Import validator verdict for a single payload row."""

    NEW = "new"
    UPDATE = "update"
    ERROR = "error"
