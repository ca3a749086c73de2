"""
Recurring Model.

A Recurring is a template the recurrence engine turns into concrete
transactions every ``interval_months`` months.
"""

from __future__ import annotations

import datetime as dt
from typing import ClassVar, Optional

from pydantic import Field, model_validator

from budgeteer.models.account import Account
from budgeteer.models.base import AuditedEntity
from budgeteer.models.enums import RecurringType, TableName, TransactionType
from budgeteer.models.transaction import TransactionCategory

# ---------------------------------------------------------------------------
# Bounds shared by the model, the interval helpers and the import validator
# ---------------------------------------------------------------------------
MIN_INTERVAL_MONTHS: int = 1
MAX_INTERVAL_MONTHS: int = 24
DEFAULT_INTERVAL_MONTHS: int = 1

MIN_FAILED_ATTEMPTS: int = 1
MAX_FAILED_ATTEMPTS: int = 10
DEFAULT_MAX_FAILED_ATTEMPTS: int = 3

MIN_AMOUNT: float = 0.01

_TRANSFER_TYPES: frozenset[RecurringType] = frozenset({
    RecurringType.TRANSFER,
    RecurringType.CREDIT_CARD_PAYMENT,
})


class Recurring(AuditedEntity):
    """Template describing a periodically generated transaction."""

    TABLE: ClassVar[TableName] = TableName.RECURRINGS
    REFERENCES: ClassVar[dict[str, TableName]] = {
        "source_account_id": TableName.ACCOUNTS,
        "transfer_account_id": TableName.ACCOUNTS,
        "category_id": TableName.TRANSACTION_CATEGORIES,
    }
    JOINS: ClassVar[dict[str, str]] = {
        "source_account": "source_account_id",
        "transfer_account": "transfer_account_id",
        "category": "category_id",
    }

    name: str = Field(min_length=1, max_length=255)
    source_account_id: str = Field(min_length=1)
    transfer_account_id: Optional[str] = None
    category_id: Optional[str] = None
    amount: Optional[float] = Field(default=None, ge=MIN_AMOUNT)
    type: TransactionType = TransactionType.EXPENSE
    recurring_type: RecurringType = RecurringType.STANDARD
    description: Optional[str] = None
    payee_name: Optional[str] = None
    notes: Optional[str] = None
    currency_code: str = Field(default="USD", min_length=3, max_length=3)

    interval_months: int = Field(
        default=DEFAULT_INTERVAL_MONTHS,
        ge=MIN_INTERVAL_MONTHS,
        le=MAX_INTERVAL_MONTHS,
    )
    next_occurrence_date: dt.date
    end_date: Optional[dt.date] = None

    is_active: bool = True
    is_amount_flexible: bool = False
    is_date_flexible: bool = False
    auto_apply_enabled: bool = False
    last_auto_applied_at: Optional[dt.datetime] = None
    last_executed_at: Optional[dt.datetime] = None
    failed_attempts: int = Field(default=0, ge=0)
    max_failed_attempts: int = Field(
        default=DEFAULT_MAX_FAILED_ATTEMPTS,
        ge=MIN_FAILED_ATTEMPTS,
        le=MAX_FAILED_ATTEMPTS,
    )

    source_account: Optional[Account] = Field(default=None, exclude=True)
    transfer_account: Optional[Account] = Field(default=None, exclude=True)
    category: Optional[TransactionCategory] = Field(default=None, exclude=True)

    @model_validator(mode="after")
    def _check_consistency(self) -> "Recurring":
        if self.recurring_type in _TRANSFER_TYPES:
            if not self.transfer_account_id:
                raise ValueError(
                    f"{self.recurring_type} recurrings require a transfer_account_id"
                )
            if self.transfer_account_id == self.source_account_id:
                raise ValueError(
                    "transfer_account_id must differ from source_account_id"
                )
        if self.amount is None and not self.is_amount_flexible:
            raise ValueError("amount is required unless the amount is flexible")
        return self

    @property
    def is_transfer(self) -> bool:
        """``True`` for Transfer and CreditCardPayment recurrings."""
        return self.recurring_type in _TRANSFER_TYPES

    @property
    def has_exhausted_attempts(self) -> bool:
        """``True`` once auto-apply must wait for a manual reset."""
        return self.failed_attempts >= self.max_failed_attempts
