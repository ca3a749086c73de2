"""
Storage Adapter Interface.

A ``StorageAdapter`` executes tenant-scoped CRUD against one physical
backend and knows nothing about joins, models or sorting; repositories
depend on this interface only, never on a concrete variant.

Rows are plain JSON-safe dicts keyed by column name.  Every adapter:

- generates ``id`` and stamps ``created_at``/``updated_at`` on insert;
- hides rows of other tenants entirely.  Touching one raises
  ``NotFoundError``, exactly like a missing id;
- never physically deletes: ``soft_delete`` and ``restore`` flip
  ``is_deleted`` and maintain the deletion audit columns.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Optional

from budgeteer.errors import NotFoundError, ValidationError, record_not_found
from budgeteer.logger import StructuredLogger
from budgeteer.models.base import IMMUTABLE_FIELDS
from budgeteer.models.enums import StorageMode
from budgeteer.utils.string_helpers import JsonValue

Row = dict[str, JsonValue]
Filters = Mapping[str, JsonValue]
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StorageAdapter(ABC):
    """Abstract CRUD capability over one backend."""

    MODE: StorageMode

    def __init__(
        self,
        logger: StructuredLogger,
        *,
        demo_tenant_id: Optional[str] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._logger = logger
        self._demo_tenant_id = demo_tenant_id
        self._clock = clock

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    @abstractmethod
    def list(
        self,
        table: str,
        tenant_id: str,
        filters: Optional[Filters] = None,
        include_deleted: bool = False,
    ) -> list[Row]:
        """Return the tenant's rows matching every equality filter."""

    @abstractmethod
    def get_by_id(self, table: str, record_id: str, tenant_id: str) -> Row:
        """Return one row, deleted or not.  Raises ``NotFoundError``."""

    @abstractmethod
    def insert(self, table: str, row: Mapping[str, JsonValue]) -> Row:
        """Store a new row and return it with generated id and timestamps."""

    @abstractmethod
    def update(
        self,
        table: str,
        record_id: str,
        patch: Mapping[str, JsonValue],
        tenant_id: str,
        *,
        expected_updated_at: Optional[str] = None,
    ) -> Row:
        """Apply *patch* and return the updated row.  Raises ``NotFoundError``."""

    def soft_delete(
        self, table: str, record_id: str, tenant_id: str, actor_id: str
    ) -> Row:
        """Flag the row deleted and record who deleted it and when."""
        now = self._timestamp()
        return self.update(
            table,
            record_id,
            {
                "is_deleted": True,
                "deleted_at": now,
                "deleted_by": actor_id,
                "updated_by": actor_id,
            },
            tenant_id,
        )

    def restore(
        self, table: str, record_id: str, tenant_id: str, actor_id: str
    ) -> Row:
        """Clear the deletion flag and deletion audit fields.

        Restoring a row that is not deleted returns it unchanged.
        """
        current = self.get_by_id(table, record_id, tenant_id)
        if not current.get("is_deleted"):
            return current
        return self.update(
            table,
            record_id,
            {
                "is_deleted": False,
                "deleted_at": None,
                "deleted_by": None,
                "updated_by": actor_id,
            },
            tenant_id,
        )

    def close(self) -> None:
        """Release backend resources.  Default is a no-op."""

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def visible_tenants(self, tenant_id: str) -> tuple[str, ...]:
        """Tenants whose rows *tenant_id* may see on this adapter."""
        if self._demo_tenant_id and self._demo_tenant_id != tenant_id:
            return (tenant_id, self._demo_tenant_id)
        return (tenant_id,)

    def _timestamp(self) -> str:
        return self._clock().isoformat()

    def _prepare_insert(self, row: Mapping[str, JsonValue]) -> Row:
        """Fill id, timestamps and the deletion flag for a new row."""
        prepared: Row = dict(row)
        if not prepared.get("tenant_id"):
            raise ValidationError("tenant_id is required", details={"operation": "insert"})
        now = self._timestamp()
        prepared["id"] = prepared.get("id") or str(uuid.uuid4())
        prepared["created_at"] = prepared.get("created_at") or now
        prepared["updated_at"] = prepared.get("updated_at") or now
        prepared.setdefault("is_deleted", False)
        return prepared

    def _prepare_patch(self, patch: Mapping[str, JsonValue]) -> Row:
        """Drop immutable keys and stamp ``updated_at``."""
        prepared: Row = {k: v for k, v in patch.items() if k not in IMMUTABLE_FIELDS}
        prepared["updated_at"] = self._timestamp()
        return prepared

    @staticmethod
    def _not_found(table: str, record_id: str) -> NotFoundError:
        return NotFoundError(
            record_not_found(table, record_id),
            details={"table": table, "record_id": record_id},
        )
