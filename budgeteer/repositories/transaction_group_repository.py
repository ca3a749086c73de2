"""
Transaction Group Repository.

Handles data access for TransactionGroup entities.
"""

from __future__ import annotations

from budgeteer.models.transaction import TransactionGroup
from budgeteer.repositories.base_repository import BaseRepository


class TransactionGroupRepository(BaseRepository[TransactionGroup]):
    """Data access layer for TransactionGroup entities."""

    MODEL = TransactionGroup
