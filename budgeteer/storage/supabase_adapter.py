"""
Supabase Storage Adapter (cloud mode).

Talks to the PostgREST API through the supabase-py client held by
:class:`~budgeteer.database.DatabaseManager`.  This is the only adapter
with optimistic concurrency: an update carrying ``expected_updated_at``
only matches while the stored ``updated_at`` is unchanged, and a miss on
an existing row raises ``ConflictError``.

PostgREST error codes are mapped onto the error taxonomy; anything else
(offline client, network failure, timeouts) is ``BackendUnavailableError``.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Optional, TypeVar

from supabase import Client as SupabaseClient

from budgeteer.database import DatabaseManager
from budgeteer.errors import (
    BackendUnavailableError,
    BudgeteerError,
    ConflictError,
    ReferentialError,
    ValidationError,
    id_unavailable,
    stale_record,
)
from budgeteer.logger import StructuredLogger
from budgeteer.models.enums import StorageMode
from budgeteer.storage.base import Clock, Filters, Row, StorageAdapter, utc_now
from budgeteer.utils.string_helpers import JsonValue

T = TypeVar("T")

# PostgreSQL SQLSTATE codes surfaced by PostgREST.
_UNIQUE_VIOLATION: str = "23505"
_FOREIGN_KEY_VIOLATION: str = "23503"


class SupabaseAdapter(StorageAdapter):
    """Cloud relational store."""

    MODE = StorageMode.CLOUD

    def __init__(
        self,
        db: DatabaseManager,
        logger: StructuredLogger,
        *,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(logger, clock=clock)
        self._db = db

    @property
    def supabase(self) -> SupabaseClient:
        return self._db.supabase

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    def list(
        self,
        table: str,
        tenant_id: str,
        filters: Optional[Filters] = None,
        include_deleted: bool = False,
    ) -> list[Row]:
        def _query() -> list[Row]:
            query = self.supabase.table(table).select("*").eq("tenant_id", tenant_id)
            if not include_deleted:
                query = query.eq("is_deleted", False)
            for column, value in (filters or {}).items():
                query = query.is_(column, "null") if value is None else query.eq(column, value)
            response = query.execute()
            return list(response.data or [])

        return self._run(_query, operation=f"list ({table})", table=table)

    def get_by_id(self, table: str, record_id: str, tenant_id: str) -> Row:
        def _query() -> list[Row]:
            response = (
                self.supabase.table(table)
                .select("*")
                .eq("id", record_id)
                .eq("tenant_id", tenant_id)
                .limit(1)
                .execute()
            )
            return list(response.data or [])

        rows = self._run(_query, operation=f"get_by_id ({table})", table=table, record_id=record_id)
        if not rows:
            raise self._not_found(table, record_id)
        return rows[0]

    def insert(self, table: str, row: Mapping[str, JsonValue]) -> Row:
        prepared = self._prepare_insert(row)

        def _query() -> list[Row]:
            response = self.supabase.table(table).insert(prepared).execute()
            return list(response.data or [])

        rows = self._run(_query, operation=f"insert ({table})", table=table, record_id=str(prepared["id"]))
        return rows[0] if rows else prepared

    def update(
        self,
        table: str,
        record_id: str,
        patch: Mapping[str, JsonValue],
        tenant_id: str,
        *,
        expected_updated_at: Optional[str] = None,
    ) -> Row:
        prepared = self._prepare_patch(patch)

        def _query() -> list[Row]:
            query = (
                self.supabase.table(table)
                .update(prepared)
                .eq("id", record_id)
                .eq("tenant_id", tenant_id)
            )
            if expected_updated_at is not None:
                query = query.eq("updated_at", expected_updated_at)
            response = query.execute()
            return list(response.data or [])

        rows = self._run(_query, operation=f"update ({table})", table=table, record_id=record_id)
        if rows:
            return rows[0]

        # Zero rows matched: either the row is gone/invisible or it changed.
        self.get_by_id(table, record_id, tenant_id)
        if expected_updated_at is not None:
            raise ConflictError(
                stale_record(table, record_id),
                details={
                    "table": table,
                    "record_id": record_id,
                    "expected_updated_at": expected_updated_at,
                },
            )
        raise self._not_found(table, record_id)

    # ------------------------------------------------------------------
    # Error mapping
    # ------------------------------------------------------------------

    def _run(
        self,
        operation_fn: Callable[[], T],
        *,
        operation: str,
        table: str,
        record_id: Optional[str] = None,
    ) -> T:
        try:
            return operation_fn()
        except BudgeteerError:
            raise
        except Exception as exc:
            code = str(getattr(exc, "code", "") or "")
            if code == _UNIQUE_VIOLATION:
                raise ValidationError(
                    id_unavailable(table, record_id or "?"),
                    details={"table": table, "record_id": record_id},
                ) from exc
            if code == _FOREIGN_KEY_VIOLATION:
                raise ReferentialError(
                    table, "foreign key", record_id or "?",
                    details={"backend_message": str(exc)},
                ) from exc
            self._logger.warning("Supabase unavailable for %s: %s", operation, exc)
            raise BackendUnavailableError(
                f"Cloud storage unavailable during {operation}: {exc}",
                details={"operation": operation, "table": table},
            ) from exc
