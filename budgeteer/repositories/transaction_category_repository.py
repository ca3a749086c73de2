"""
Transaction Category Repository.

Handles data access for TransactionCategory entities and their grouping
under TransactionGroups.
"""

from __future__ import annotations

from budgeteer.models.transaction import TransactionCategory
from budgeteer.repositories.base_repository import BaseRepository, group_by

UNGROUPED: str = "Ungrouped"


class TransactionCategoryRepository(BaseRepository[TransactionCategory]):
    """Data access layer for TransactionCategory entities."""

    MODEL = TransactionCategory

    def list_grouped_by_group(
        self, tenant_id: str, *, show_deleted: bool = False
    ) -> dict[str, list[TransactionCategory]]:
        """Categories keyed by their group's name.

        Groups appear in group ``display_order`` (descending); categories
        whose group is missing land under ``"Ungrouped"``.
        """
        categories = self.list(tenant_id, show_deleted=show_deleted)
        ordered = sorted(
            categories,
            key=lambda c: (
                c.group is None,
                -(c.group.display_order if c.group else 0),
                (c.group.name.lower() if c.group else ""),
            ),
        )
        return group_by(ordered, lambda c: c.group.name if c.group else UNGROUPED)
