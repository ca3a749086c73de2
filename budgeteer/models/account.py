"""
Account and AccountCategory Models.

An Account belongs to exactly one AccountCategory; the category's
``type`` decides whether the account is an asset or a liability.
"""

from __future__ import annotations

from typing import ClassVar, Optional

from pydantic import Field

from budgeteer.models.base import AuditedEntity
from budgeteer.models.enums import AccountType, TableName


class AccountCategory(AuditedEntity):
    """Groups accounts (bank, credit card, cash, ...)."""

    TABLE: ClassVar[TableName] = TableName.ACCOUNT_CATEGORIES

    name: str = Field(min_length=1, max_length=255)
    type: AccountType = AccountType.ASSET
    display_order: int = 0
    color: Optional[str] = None
    icon: Optional[str] = None


class Account(AuditedEntity):
    """A ledger account with opening and current balances."""

    TABLE: ClassVar[TableName] = TableName.ACCOUNTS
    REFERENCES: ClassVar[dict[str, TableName]] = {
        "category_id": TableName.ACCOUNT_CATEGORIES,
    }
    JOINS: ClassVar[dict[str, str]] = {"category": "category_id"}

    name: str = Field(min_length=1, max_length=255)
    category_id: str = Field(min_length=1)
    currency_code: str = Field(default="USD", min_length=3, max_length=3)
    open_balance: float = 0.0
    balance: float = 0.0
    notes: Optional[str] = None
    display_order: int = 0

    # Join decoration, never persisted.
    category: Optional[AccountCategory] = Field(default=None, exclude=True)

    @property
    def is_liability(self) -> bool:
        """``True`` when the joined category is a liability."""
        return self.category is not None and self.category.type == AccountType.LIABILITY
