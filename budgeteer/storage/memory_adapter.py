"""
In-Memory Storage Adapter (demo mode).

Rows live in a per-table dict guarded by a lock and are deep-copied on the
way in and out, so callers never share mutable state with the store.
The ``"demo"`` sentinel tenant is visible to every caller.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Mapping
from typing import Optional

from budgeteer.errors import ValidationError, id_unavailable
from budgeteer.logger import StructuredLogger
from budgeteer.models.enums import StorageMode
from budgeteer.storage.base import Clock, Filters, Row, StorageAdapter, utc_now
from budgeteer.utils.string_helpers import JsonValue


class MemoryAdapter(StorageAdapter):
    """Volatile store backing the demo mode."""

    MODE = StorageMode.DEMO

    def __init__(
        self,
        logger: StructuredLogger,
        *,
        demo_tenant_id: Optional[str] = "demo",
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(logger, demo_tenant_id=demo_tenant_id, clock=clock)
        self._tables: dict[str, dict[str, Row]] = {}
        self._lock = threading.RLock()

    def list(
        self,
        table: str,
        tenant_id: str,
        filters: Optional[Filters] = None,
        include_deleted: bool = False,
    ) -> list[Row]:
        tenants = self.visible_tenants(tenant_id)
        with self._lock:
            rows = list(self._tables.get(table, {}).values())
            return [
                copy.deepcopy(row)
                for row in rows
                if row.get("tenant_id") in tenants
                and (include_deleted or not row.get("is_deleted"))
                and all(row.get(key) == value for key, value in (filters or {}).items())
            ]

    def get_by_id(self, table: str, record_id: str, tenant_id: str) -> Row:
        with self._lock:
            return copy.deepcopy(self._locate(table, record_id, tenant_id))

    def insert(self, table: str, row: Mapping[str, JsonValue]) -> Row:
        prepared = self._prepare_insert(row)
        with self._lock:
            store = self._tables.setdefault(table, {})
            if prepared["id"] in store:
                raise ValidationError(
                    id_unavailable(table, str(prepared["id"])),
                    details={"table": table, "record_id": prepared["id"]},
                )
            store[str(prepared["id"])] = copy.deepcopy(prepared)
        return prepared

    def update(
        self,
        table: str,
        record_id: str,
        patch: Mapping[str, JsonValue],
        tenant_id: str,
        *,
        expected_updated_at: Optional[str] = None,
    ) -> Row:
        # Optimistic concurrency is a cloud-only guarantee; the token is ignored.
        prepared = self._prepare_patch(patch)
        with self._lock:
            stored = self._locate(table, record_id, tenant_id)
            stored.update(copy.deepcopy(prepared))
            return copy.deepcopy(stored)

    # ------------------------------------------------------------------
    # Demo lifecycle
    # ------------------------------------------------------------------

    def is_empty(self) -> bool:
        with self._lock:
            return not any(self._tables.values())

    def clear(self) -> None:
        """Discard every row."""
        with self._lock:
            discarded = sum(len(rows) for rows in self._tables.values())
            self._tables.clear()
        self._logger.info("Demo store cleared (%d rows discarded).", discarded)

    def close(self) -> None:
        self.clear()

    def _locate(self, table: str, record_id: str, tenant_id: str) -> Row:
        row = self._tables.get(table, {}).get(record_id)
        if row is None or row.get("tenant_id") not in self.visible_tenants(tenant_id):
            raise self._not_found(table, record_id)
        return row
