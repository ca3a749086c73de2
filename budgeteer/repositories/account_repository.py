"""
Account Repository.

Handles data access for Account entities, their grouping by category,
and the running balance derived from transactions.
"""

from __future__ import annotations

from budgeteer.models.account import Account
from budgeteer.models.enums import TableName
from budgeteer.repositories.base_repository import BaseRepository, group_by

UNCATEGORIZED: str = "Uncategorized"


class AccountRepository(BaseRepository[Account]):
    """Data access layer for Account entities."""

    MODEL = Account

    def list_grouped_by_category(
        self, tenant_id: str, *, show_deleted: bool = False
    ) -> dict[str, list[Account]]:
        """Accounts keyed by category name, categories in display order."""
        accounts = self.list(tenant_id, show_deleted=show_deleted)
        ordered = sorted(
            accounts,
            key=lambda a: (
                a.category is None,
                -(a.category.display_order if a.category else 0),
                (a.category.name.lower() if a.category else ""),
            ),
        )
        return group_by(ordered, lambda a: a.category.name if a.category else UNCATEGORIZED)

    def running_balance(self, account_id: str, tenant_id: str) -> float:
        """Opening balance plus every live, non-void transaction on the account.

        Raises:
            NotFoundError: The account does not exist for this tenant.
        """
        account = self.find_by_id(account_id, tenant_id, show_deleted=True)
        rows = self._adapter.list(
            TableName.TRANSACTIONS, tenant_id, {"account_id": account_id}
        )
        total = sum(float(row.get("amount") or 0) for row in rows if not row.get("is_void"))
        return round(account.open_balance + total, 2)

    def refresh_balance(self, account_id: str, tenant_id: str, actor_id: str) -> Account:
        """Persist the running balance into ``Account.balance``."""
        return self.update(
            account_id,
            {"balance": self.running_balance(account_id, tenant_id)},
            tenant_id,
            actor_id,
        )
