"""
Recurring Repository.

Handles data access for Recurring templates.
"""

from __future__ import annotations

from budgeteer.models.recurring import Recurring
from budgeteer.repositories.base_repository import BaseRepository


class RecurringRepository(BaseRepository[Recurring]):
    """Data access layer for Recurring entities."""

    MODEL = Recurring

    def _sorted(self, items: list[Recurring]) -> list[Recurring]:
        """Soonest occurrence first, then name."""
        return sorted(items, key=lambda r: (r.next_occurrence_date, r.name.lower()))

    def list_active(self, tenant_id: str) -> list[Recurring]:
        """Live recurrings with ``is_active`` set, soonest first."""
        return self.list(tenant_id, filters={"is_active": True})
