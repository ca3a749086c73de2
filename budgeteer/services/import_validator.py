"""
Import Payload Validator.

Checks a bulk payload (``{table name: [row, ...]}``) before anything is
written.  Validation runs in two passes:

1. Collect the incoming ids of every known table, so a row may reference
   a row that appears later in the same payload.
2. Normalise and validate every row, in dependency order, and classify it
   as ``new``, ``update`` or ``error``.

The validator is pure: it reads nothing from storage.  The caller passes
the ids that already exist for the tenant.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from budgeteer.config import AppConfig
from budgeteer.logger import StructuredLogger
from budgeteer.models import ENTITY_MODELS, AuditedEntity, RowClassification, TableName
from budgeteer.models.service_models import RowValidation, ValidationReport
from budgeteer.utils.string_helpers import JsonValue, normalize_keys, normalize_value, to_snake_case

ExistingIds = Mapping[str, Collection[str]]


class ImportValidator:
    """Validates import payloads against the entity models.

    Parameters
    ----------
    logger:
        Structured logger instance.
    supported_versions:
        Accepted ``format_version`` values.
    """

    def __init__(
        self,
        logger: StructuredLogger,
        supported_versions: Collection[str] = AppConfig.SUPPORTED_IMPORT_FORMAT_VERSIONS,
    ) -> None:
        self._logger = logger
        self._supported_versions = frozenset(supported_versions)

    def validate(
        self,
        payload: Mapping[str, JsonValue],
        existing_ids: ExistingIds,
        format_version: str,
        *,
        tenant_id: Optional[str] = None,
    ) -> ValidationReport:
        """Return a report covering every row of every known table.

        When *tenant_id* is given it overrides whatever tenant the rows
        carry; otherwise each row must name its own tenant.
        """
        report = ValidationReport(format_version=format_version)
        if format_version not in self._supported_versions:
            report.errors.append(
                f"Unsupported format version '{format_version}'; expected one of "
                f"{', '.join(sorted(self._supported_versions))}"
            )
            return report

        tables = self._known_tables(payload, report)

        # Pass 1: every id the payload brings, per table.
        incoming: dict[TableName, set[str]] = {table: set() for table in TableName}
        for table, rows in tables.items():
            for row in rows:
                if isinstance(row, dict):
                    row_id = normalize_value(normalize_keys(row).get("id"))
                    if isinstance(row_id, str):
                        incoming[table].add(row_id)

        # Pass 2: row-level validation in dependency order.
        for table in TableName:
            seen: set[str] = set()
            for index, row in enumerate(tables.get(table, [])):
                report.rows.append(
                    self._validate_row(
                        table, index, row, seen, incoming, existing_ids, tenant_id
                    )
                )

        counts = report.counts()
        self._logger.info(
            "Import validation: %d new, %d update, %d error row(s).",
            counts[RowClassification.NEW],
            counts[RowClassification.UPDATE],
            counts[RowClassification.ERROR],
        )
        return report

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _known_tables(
        payload: Mapping[str, JsonValue], report: ValidationReport
    ) -> dict[TableName, list[JsonValue]]:
        tables: dict[TableName, list[JsonValue]] = {}
        for key, rows in payload.items():
            name = to_snake_case(key)
            try:
                table = TableName(name)
            except ValueError:
                report.warnings.append(f"Unknown table '{key}' ignored")
                continue
            if not isinstance(rows, list):
                report.errors.append(f"Table '{key}' must be a list of rows")
                continue
            tables[table] = rows
        return tables

    def _validate_row(
        self,
        table: TableName,
        index: int,
        raw: JsonValue,
        seen: set[str],
        incoming: Mapping[TableName, set[str]],
        existing_ids: ExistingIds,
        tenant_id: Optional[str],
    ) -> RowValidation:
        errors: list[str] = []
        warnings: list[str] = []

        if not isinstance(raw, dict):
            return RowValidation(
                table=table.value,
                index=index,
                classification=RowClassification.ERROR,
                errors=["Row must be an object"],
            )

        model = ENTITY_MODELS[table]
        data: dict[str, JsonValue] = {
            key: normalize_value(value) for key, value in normalize_keys(raw).items()
        }
        unknown = sorted(set(data) - model.storage_fields())
        if unknown:
            warnings.append(f"Unknown field(s) dropped: {', '.join(unknown)}")
            for key in unknown:
                data.pop(key)

        row_id = data.get("id")
        if not isinstance(row_id, str) or not row_id:
            errors.append("Missing required field: id")
            row_id = None
        elif row_id in seen:
            errors.append(f"Duplicate id '{row_id}' in {table.value}")
        else:
            seen.add(row_id)

        if tenant_id:
            data["tenant_id"] = tenant_id

        row: dict[str, JsonValue] = {}
        entity = self._validate_model(model, data, errors)
        if entity is not None:
            dumped = entity.model_dump(mode="json")
            row = {key: dumped[key] for key in data if key in dumped}

        for field, target in model.REFERENCES.items():
            value = data.get(field)
            if not value:
                continue
            if value not in incoming[target] and value not in existing_ids.get(target.value, ()):
                errors.append(f"{field} '{value}' does not match any {target.value} record")

        if errors:
            classification = RowClassification.ERROR
        elif row_id in existing_ids.get(table.value, ()):
            classification = RowClassification.UPDATE
        else:
            classification = RowClassification.NEW

        return RowValidation(
            table=table.value,
            index=index,
            row_id=row_id,
            classification=classification,
            errors=errors,
            warnings=warnings,
            row=row,
        )

    @staticmethod
    def _validate_model(
        model: type[AuditedEntity], data: Mapping[str, JsonValue], errors: list[str]
    ) -> Optional[AuditedEntity]:
        try:
            return model.model_validate(dict(data))
        except PydanticValidationError as exc:
            for err in exc.errors():
                location = ".".join(str(part) for part in err.get("loc", ())) or "row"
                errors.append(f"{location}: {err.get('msg', 'invalid value')}")
            return None
