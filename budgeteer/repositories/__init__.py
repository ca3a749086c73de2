"""
Repositories Package.

One repository per entity, each composed over a single StorageAdapter.
"""

from budgeteer.repositories.base_repository import BaseRepository, group_by
from budgeteer.repositories.account_category_repository import AccountCategoryRepository
from budgeteer.repositories.account_repository import AccountRepository
from budgeteer.repositories.recurring_repository import RecurringRepository
from budgeteer.repositories.transaction_category_repository import TransactionCategoryRepository
from budgeteer.repositories.transaction_group_repository import TransactionGroupRepository
from budgeteer.repositories.transaction_repository import TransactionRepository

__all__ = [
    "AccountCategoryRepository",
    "AccountRepository",
    "BaseRepository",
    "RecurringRepository",
    "TransactionCategoryRepository",
    "TransactionGroupRepository",
    "TransactionRepository",
    "group_by",
]
