"""
Audited Entity Base Model.

Every persisted entity shares the same identity, tenant-scoping,
soft-delete and audit columns.  Subclasses declare their own fields plus
two pieces of class-level metadata used by repositories and the import
validator:

- ``REFERENCES``: foreign-key field name -> referenced table.
- ``JOINS``: join attribute -> foreign-key field it is resolved from.
"""

from __future__ import annotations

import datetime as dt
from typing import ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field

from budgeteer.models.enums import TableName
from budgeteer.utils.string_helpers import JsonValue

# Columns every table carries.  Import/export and the SQLite adapter treat
# these as managed audit fields.
AUDIT_FIELDS: frozenset[str] = frozenset({
    "id",
    "tenant_id",
    "is_deleted",
    "created_at",
    "created_by",
    "updated_at",
    "updated_by",
    "deleted_at",
    "deleted_by",
})

# Fields a patch may never change.
IMMUTABLE_FIELDS: frozenset[str] = frozenset({"id", "tenant_id", "created_at", "created_by"})


class AuditedEntity(BaseModel):
    """Common identity, scoping and audit fields."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    TABLE: ClassVar[TableName]
    REFERENCES: ClassVar[dict[str, TableName]] = {}
    JOINS: ClassVar[dict[str, str]] = {}

    id: Optional[str] = None
    tenant_id: str = Field(min_length=1)
    is_deleted: bool = False
    created_at: Optional[dt.datetime] = None
    created_by: Optional[str] = None
    updated_at: Optional[dt.datetime] = None
    updated_by: Optional[str] = None
    deleted_at: Optional[dt.datetime] = None
    deleted_by: Optional[str] = None

    @classmethod
    def storage_fields(cls) -> frozenset[str]:
        """Names of the fields that are persisted (join fields excluded)."""
        return frozenset(
            name for name, info in cls.model_fields.items() if not info.exclude
        )

    def to_row(self) -> dict[str, JsonValue]:
        """Dump to a JSON-safe storage row.

        Join decorations are excluded by their field definitions.  A missing
        ``id`` is left out so the adapter generates one.
        """
        row: dict[str, JsonValue] = self.model_dump(mode="json")
        if row.get("id") is None:
            row.pop("id", None)
        return row
