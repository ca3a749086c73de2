"""
Account Category Repository.

Handles data access for AccountCategory entities.
"""

from __future__ import annotations

from budgeteer.models.account import AccountCategory
from budgeteer.repositories.base_repository import BaseRepository


class AccountCategoryRepository(BaseRepository[AccountCategory]):
    """Data access layer for AccountCategory entities."""

    MODEL = AccountCategory
