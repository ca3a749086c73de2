"""
Base Repository.

Provides shared infrastructure for all repositories:
- StorageAdapter reference (the only storage dependency)
- Logger reference
- Pydantic validation of every write, mapped onto ``ValidationError``
- Foreign-key checks driven by the model's ``REFERENCES``
- Join resolution driven by the model's ``JOINS``
- Soft delete / restore with audit events

Repositories never know which backend the adapter talks to.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable, Mapping
from typing import Generic, Optional, TypeVar, Union

from pydantic import BaseModel, ValidationError as PydanticValidationError
from pydantic_core import to_jsonable_python

from budgeteer.errors import NotFoundError, ReferentialError, ValidationError
from budgeteer.logger import StructuredLogger
from budgeteer.models import ENTITY_MODELS, AuditedEntity, TableName
from budgeteer.models.base import IMMUTABLE_FIELDS
from budgeteer.storage.base import Filters, Row, StorageAdapter
from budgeteer.utils.audit import log_audit_event
from budgeteer.utils.string_helpers import JsonValue

ModelT = TypeVar("ModelT", bound=AuditedEntity)
T = TypeVar("T")
K = TypeVar("K", bound=Hashable)

EntityInput = Union[Mapping[str, object], BaseModel]


def group_by(items: Iterable[T], key: Callable[[T], K]) -> dict[K, list[T]]:
    """Bucket *items* by ``key(item)``, keeping first-seen key order."""
    groups: dict[K, list[T]] = {}
    for item in items:
        groups.setdefault(key(item), []).append(item)
    return groups


class BaseRepository(Generic[ModelT]):
    """Base class for all repositories. Receives dependencies via __init__."""

    MODEL: type[ModelT]

    def __init__(self, adapter: StorageAdapter, logger: StructuredLogger) -> None:
        self._adapter = adapter
        self._logger = logger

    @property
    def table(self) -> TableName:
        return self.MODEL.TABLE

    @property
    def adapter(self) -> StorageAdapter:
        return self._adapter

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list(
        self,
        tenant_id: str,
        *,
        filters: Optional[Mapping[str, object]] = None,
        show_deleted: bool = False,
    ) -> list[ModelT]:
        """Return the tenant's entities, joined and sorted."""
        rows = self._adapter.list(
            self.table,
            tenant_id,
            self._json_filters(filters),
            include_deleted=show_deleted,
        )
        items = [self._to_model(row) for row in rows]
        self._attach_joins(items, tenant_id)
        return self._sorted(items)

    def find_by_id(
        self, record_id: str, tenant_id: str, *, show_deleted: bool = False
    ) -> ModelT:
        """Return one entity.  Soft-deleted rows are ``NotFoundError`` by default."""
        row = self._adapter.get_by_id(self.table, record_id, tenant_id)
        if row.get("is_deleted") and not show_deleted:
            raise NotFoundError(
                f"{self.table} record '{record_id}' not found",
                details={"table": str(self.table), "record_id": record_id},
            )
        item = self._to_model(row)
        self._attach_joins([item], tenant_id)
        return item

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, data: EntityInput, tenant_id: str, actor_id: str) -> ModelT:
        """Validate, check references, and insert a new entity."""
        payload = self._as_dict(data)
        payload["tenant_id"] = tenant_id
        payload["created_by"] = payload.get("created_by") or actor_id
        entity = self._validate(payload)
        self._check_references(entity.to_row(), tenant_id)

        stored = self._adapter.insert(self.table, entity.to_row())
        created = self._to_model(stored)
        log_audit_event(
            self._logger, "CREATE", self.table, str(created.id), actor_id, tenant_id
        )
        return created

    def update(
        self,
        record_id: str,
        patch: EntityInput,
        tenant_id: str,
        actor_id: str,
        *,
        expected_updated_at: Optional[str] = None,
    ) -> ModelT:
        """Apply a partial update after validating the merged entity.

        Keys in ``IMMUTABLE_FIELDS`` are ignored.  Only the references
        named in *patch* are re-checked.
        """
        changes = {
            k: v for k, v in self._as_dict(patch).items() if k not in IMMUTABLE_FIELDS
        }
        current = self._adapter.get_by_id(self.table, record_id, tenant_id)
        merged = self._validate({**current, **changes}).model_dump(mode="json")

        row_patch: Row = {k: merged[k] for k in changes if k in merged}
        row_patch["updated_by"] = actor_id
        self._check_references(row_patch, tenant_id)

        stored = self._adapter.update(
            self.table,
            record_id,
            row_patch,
            tenant_id,
            expected_updated_at=expected_updated_at,
        )
        log_audit_event(
            self._logger,
            "UPDATE",
            self.table,
            record_id,
            actor_id,
            tenant_id,
            details={"fields": ",".join(sorted(changes))},
        )
        return self._to_model(stored)

    def soft_delete(self, record_id: str, tenant_id: str, actor_id: str) -> ModelT:
        """Hide the entity from default reads.  Nothing is physically removed."""
        stored = self._adapter.soft_delete(self.table, record_id, tenant_id, actor_id)
        log_audit_event(
            self._logger, "SOFT_DELETE", self.table, record_id, actor_id, tenant_id
        )
        return self._to_model(stored)

    def restore(self, record_id: str, tenant_id: str, actor_id: str) -> ModelT:
        stored = self._adapter.restore(self.table, record_id, tenant_id, actor_id)
        log_audit_event(
            self._logger, "RESTORE", self.table, record_id, actor_id, tenant_id
        )
        return self._to_model(stored)

    def existing_ids(self, tenant_id: str) -> set[str]:
        """Ids of every row the tenant owns, deleted ones included."""
        rows = self._adapter.list(self.table, tenant_id, include_deleted=True)
        return {str(row["id"]) for row in rows if row.get("tenant_id") == tenant_id}

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def _sorted(self, items: list[ModelT]) -> list[ModelT]:
        """Default order: ``display_order`` descending, then name."""
        return sorted(
            items,
            key=lambda item: (
                -getattr(item, "display_order", 0),
                str(getattr(item, "name", "") or "").lower(),
            ),
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _validate(self, data: Mapping[str, object]) -> ModelT:
        try:
            return self.MODEL.model_validate(dict(data))
        except PydanticValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or None
            raise ValidationError(
                f"Invalid {self.table} record: {first.get('msg', exc)}",
                details={
                    "table": str(self.table),
                    "field": field,
                    "error_count": exc.error_count(),
                },
            ) from exc

    def _to_model(self, row: Row) -> ModelT:
        return self._validate(row)

    def _check_references(self, row: Mapping[str, JsonValue], tenant_id: str) -> None:
        """Raise ``ReferentialError`` for any foreign id not visible to the tenant."""
        for field, target in self.MODEL.REFERENCES.items():
            value = row.get(field)
            if not value:
                continue
            try:
                self._adapter.get_by_id(target, str(value), tenant_id)
            except NotFoundError as exc:
                raise ReferentialError(
                    str(self.table), field, str(value),
                    details={"referenced_table": str(target)},
                ) from exc

    def _attach_joins(self, items: list[ModelT], tenant_id: str) -> None:
        """Populate join fields with one adapter read per distinct foreign id."""
        if not items or not self.MODEL.JOINS:
            return
        cache: dict[tuple[TableName, str], Optional[AuditedEntity]] = {}
        for join_field, fk_field in self.MODEL.JOINS.items():
            target = self.MODEL.REFERENCES[fk_field]
            for item in items:
                foreign_id = getattr(item, fk_field)
                if not foreign_id:
                    setattr(item, join_field, None)
                    continue
                key = (target, foreign_id)
                if key not in cache:
                    cache[key] = self._load_foreign(target, foreign_id, tenant_id)
                setattr(item, join_field, cache[key])

    def _load_foreign(
        self, target: TableName, foreign_id: str, tenant_id: str
    ) -> Optional[AuditedEntity]:
        try:
            row = self._adapter.get_by_id(target, foreign_id, tenant_id)
        except NotFoundError:
            self._logger.debug("Join target %s/%s missing.", target, foreign_id)
            return None
        return ENTITY_MODELS[target].model_validate(row)

    @staticmethod
    def _as_dict(data: EntityInput) -> dict[str, object]:
        if isinstance(data, BaseModel):
            return data.model_dump(exclude_unset=True)
        return dict(data)

    @staticmethod
    def _json_filters(filters: Optional[Mapping[str, object]]) -> Optional[Filters]:
        if not filters:
            return None
        return {k: to_jsonable_python(v) for k, v in filters.items()}
