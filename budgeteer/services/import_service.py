"""
Import Service.

Applies a validated bulk payload to the active store.  Import is
partial-success: rows the validator rejects, and rows the repositories
reject while writing, are reported in ``ImportSummary.errors`` while
their siblings are imported.  Ids from the payload are preserved.

A ``BackendUnavailableError`` stops the import; rows already written stay
written and the error propagates so the caller can retry.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Optional

from budgeteer.config import AppConfig
from budgeteer.errors import BackendUnavailableError, BudgeteerError, ValidationError
from budgeteer.factory import RepositoryFactory
from budgeteer.logger import StructuredLogger
from budgeteer.models.enums import RowClassification, TableName
from budgeteer.models.service_models import ImportSummary, RowError, TableImportCounts
from budgeteer.services.base_service import BaseService
from budgeteer.services.import_validator import ImportValidator
from budgeteer.utils.audit import log_audit_event
from budgeteer.utils.string_helpers import JsonValue


class ImportService(BaseService):
    """Bulk import into the active repository set."""

    def __init__(
        self,
        factory: RepositoryFactory,
        config: AppConfig,
        logger: StructuredLogger,
        validator: Optional[ImportValidator] = None,
    ) -> None:
        super().__init__(factory, logger)
        self._config = config
        self._validator = validator or ImportValidator(
            logger, config.SUPPORTED_IMPORT_FORMAT_VERSIONS
        )

    def import_payload(
        self,
        payload: Mapping[str, JsonValue],
        tenant_id: str,
        actor_id: str,
        *,
        format_version: Optional[str] = None,
        validate_only: bool = False,
    ) -> ImportSummary:
        """Validate *payload* and write every valid row in dependency order.

        Args:
            payload: ``{table name: [row, ...]}``.  Keys may be camelCase.
            tenant_id: Tenant every row is imported into.
            actor_id: Recorded as creator / updater.
            format_version: Defaults to ``IMPORT_FORMAT_VERSION``.
            validate_only: Report what would happen without writing.

        Raises:
            ValidationError: The payload as a whole is unusable (for
                example an unsupported format version).
            BackendUnavailableError: Storage failed mid-import.
        """
        repos = self.repos
        version = format_version or self._config.IMPORT_FORMAT_VERSION
        existing = {
            table.value: repos.for_table(table).existing_ids(tenant_id)
            for table in TableName
        }
        report = self._validator.validate(payload, existing, version, tenant_id=tenant_id)
        if report.errors:
            raise ValidationError(
                "; ".join(report.errors),
                details={"format_version": version},
            )

        summary = ImportSummary(validate_only=validate_only, warnings=list(report.warnings))
        for table in TableName:
            counts = TableImportCounts()
            repo = repos.for_table(table)
            for row in report.rows_for(table.value):
                summary.warnings.extend(
                    f"{table.value}[{row.index}]: {warning}" for warning in row.warnings
                )
                if row.classification == RowClassification.ERROR:
                    summary.errors.append(
                        RowError(table=table.value, index=row.index, row_id=row.row_id, errors=row.errors)
                    )
                    counts.skipped += 1
                    continue

                if not validate_only:
                    try:
                        if row.classification == RowClassification.NEW:
                            repo.create(row.row, tenant_id, actor_id)
                        else:
                            repo.update(str(row.row_id), row.row, tenant_id, actor_id)
                    except BackendUnavailableError:
                        self._logger.error(
                            "Import aborted at %s[%d]; backend unavailable.",
                            table.value,
                            row.index,
                        )
                        raise
                    except BudgeteerError as exc:
                        summary.errors.append(
                            RowError(
                                table=table.value,
                                index=row.index,
                                row_id=row.row_id,
                                errors=[exc.message],
                            )
                        )
                        counts.skipped += 1
                        continue

                if row.classification == RowClassification.NEW:
                    counts.created += 1
                else:
                    counts.updated += 1

            summary.per_table[table.value] = counts
            summary.created += counts.created
            summary.updated += counts.updated
            summary.skipped += counts.skipped

        summary.succeeded = summary.created + summary.updated
        if not validate_only:
            log_audit_event(
                self._logger,
                "IMPORT",
                "import",
                version,
                actor_id,
                tenant_id,
                details={
                    "created": summary.created,
                    "updated": summary.updated,
                    "skipped": summary.skipped,
                },
            )
        return summary

    def import_file(
        self,
        path: Path,
        tenant_id: str,
        actor_id: str,
        *,
        validate_only: bool = False,
    ) -> ImportSummary:
        """Import a JSON file written by ``ExportService.export_to_file``.

        A bare ``{table: rows}`` object is accepted too and read with the
        configured format version.
        """
        try:
            document = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ValidationError(
                f"Cannot read import file '{path}': {exc}",
                details={"path": str(path)},
            ) from exc
        if not isinstance(document, dict):
            raise ValidationError(
                "Import file must contain a JSON object", details={"path": str(path)}
            )

        if "tables" in document:
            tables = document["tables"]
            version = str(document.get("format_version") or self._config.IMPORT_FORMAT_VERSION)
        else:
            tables = document
            version = self._config.IMPORT_FORMAT_VERSION
        if not isinstance(tables, dict):
            raise ValidationError(
                "'tables' must be an object keyed by table name",
                details={"path": str(path)},
            )
        return self.import_payload(
            tables,
            tenant_id,
            actor_id,
            format_version=version,
            validate_only=validate_only,
        )
