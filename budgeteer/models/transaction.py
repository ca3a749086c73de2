"""
Transaction, TransactionCategory and TransactionGroup Models.

``Transaction.amount`` is signed: negative amounts leave the account,
positive amounts enter it.  A transfer is two transactions, one per
account, cross-linked through ``transfer_id``.
"""

from __future__ import annotations

import datetime as dt
from typing import ClassVar, Optional

from pydantic import Field, field_validator

from budgeteer.models.base import AuditedEntity
from budgeteer.models.account import Account
from budgeteer.models.enums import TableName, TransactionType


class TransactionGroup(AuditedEntity):
    """Top-level grouping of transaction categories (Bills, Groceries, ...)."""

    TABLE: ClassVar[TableName] = TableName.TRANSACTION_GROUPS

    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    display_order: int = 0


class TransactionCategory(AuditedEntity):
    """A category inside a transaction group."""

    TABLE: ClassVar[TableName] = TableName.TRANSACTION_CATEGORIES
    REFERENCES: ClassVar[dict[str, TableName]] = {
        "group_id": TableName.TRANSACTION_GROUPS,
    }
    JOINS: ClassVar[dict[str, str]] = {"group": "group_id"}

    name: str = Field(min_length=1, max_length=255)
    group_id: str = Field(min_length=1)
    type: TransactionType = TransactionType.EXPENSE
    icon: Optional[str] = None
    color: Optional[str] = None
    display_order: int = 0

    group: Optional[TransactionGroup] = Field(default=None, exclude=True)


class Transaction(AuditedEntity):
    """A single signed money movement on one account."""

    TABLE: ClassVar[TableName] = TableName.TRANSACTIONS
    REFERENCES: ClassVar[dict[str, TableName]] = {
        "account_id": TableName.ACCOUNTS,
        "category_id": TableName.TRANSACTION_CATEGORIES,
        "transfer_account_id": TableName.ACCOUNTS,
    }
    JOINS: ClassVar[dict[str, str]] = {
        "account": "account_id",
        "category": "category_id",
    }

    name: Optional[str] = None
    amount: float
    date: dt.date
    account_id: str = Field(min_length=1)
    category_id: Optional[str] = None
    type: TransactionType = TransactionType.EXPENSE
    transfer_account_id: Optional[str] = None
    transfer_id: Optional[str] = None
    recurring_id: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    payee_name: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    is_void: bool = False

    account: Optional[Account] = Field(default=None, exclude=True)
    category: Optional[TransactionCategory] = Field(default=None, exclude=True)

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, value: list[str]) -> list[str]:
        """Tags are a set; keep first-seen order."""
        return list(dict.fromkeys(tag.strip() for tag in value if tag and tag.strip()))
