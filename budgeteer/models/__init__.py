"""
Data Models Package.

Re-exports all Pydantic models:
    from budgeteer.models import Account, Transaction, Recurring
    from budgeteer.models import StorageMode, TableName, RecurringType
"""

from budgeteer.models.enums import (
    AccountType,
    CatchUpPolicy,
    OutcomeStatus,
    RecurringType,
    RowClassification,
    StorageMode,
    TableName,
    TransactionType,
)
from budgeteer.models.base import AuditedEntity
from budgeteer.models.account import Account, AccountCategory
from budgeteer.models.transaction import Transaction, TransactionCategory, TransactionGroup
from budgeteer.models.recurring import Recurring

# Table -> model class, in import dependency order.
ENTITY_MODELS: dict[TableName, type[AuditedEntity]] = {
    TableName.ACCOUNT_CATEGORIES: AccountCategory,
    TableName.TRANSACTION_GROUPS: TransactionGroup,
    TableName.TRANSACTION_CATEGORIES: TransactionCategory,
    TableName.ACCOUNTS: Account,
    TableName.TRANSACTIONS: Transaction,
    TableName.RECURRINGS: Recurring,
}

__all__ = [
    "ENTITY_MODELS",
    "Account",
    "AccountCategory",
    "AccountType",
    "AuditedEntity",
    "CatchUpPolicy",
    "OutcomeStatus",
    "Recurring",
    "RecurringType",
    "RowClassification",
    "StorageMode",
    "TableName",
    "Transaction",
    "TransactionCategory",
    "TransactionGroup",
    "TransactionType",
]
