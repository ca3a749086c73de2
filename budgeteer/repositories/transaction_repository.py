"""
Transaction Repository.

Handles data access for Transaction entities, including the occurrence
lookup the recurrence engine uses to stay idempotent.
"""

from __future__ import annotations

import datetime as dt

from budgeteer.models.transaction import Transaction
from budgeteer.repositories.base_repository import BaseRepository


class TransactionRepository(BaseRepository[Transaction]):
    """Data access layer for Transaction entities."""

    MODEL = Transaction

    def _sorted(self, items: list[Transaction]) -> list[Transaction]:
        """Newest first."""
        return sorted(items, key=lambda t: t.date, reverse=True)

    def find_for_occurrence(
        self, recurring_id: str, occurrence_date: dt.date, tenant_id: str
    ) -> list[Transaction]:
        """Every transaction already generated for one recurring occurrence.

        Soft-deleted legs are included: a user deleting a generated
        transaction must not cause the engine to recreate it.
        """
        return self.list(
            tenant_id,
            filters={"recurring_id": recurring_id, "date": occurrence_date},
            show_deleted=True,
        )
