"""
Export Service.

Dumps every table of one tenant into an :class:`ExportDocument`, the
envelope ``ImportService`` reads back.  Rows keep their ids and audit
columns, so exporting and importing into an empty store reproduces the
same records.
"""

from __future__ import annotations

from pathlib import Path

from budgeteer.config import AppConfig
from budgeteer.factory import RepositoryFactory
from budgeteer.logger import StructuredLogger
from budgeteer.models import ENTITY_MODELS, TableName
from budgeteer.models.service_models import ExportDocument
from budgeteer.services.base_service import BaseService
from budgeteer.storage.base import Clock, utc_now


class ExportService(BaseService):
    """Serialises a tenant's data from the active repository set."""

    def __init__(
        self,
        factory: RepositoryFactory,
        config: AppConfig,
        logger: StructuredLogger,
        *,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(factory, logger)
        self._config = config
        self._clock = clock

    def export(self, tenant_id: str, *, include_deleted: bool = True) -> ExportDocument:
        """Collect the tenant's rows table by table, in dependency order.

        Only rows owned by *tenant_id* are exported; shared demo rows are not.
        """
        adapter = self.repos.adapter
        document = ExportDocument(
            format_version=self._config.IMPORT_FORMAT_VERSION,
            exported_at=self._clock(),
            tenant_id=tenant_id,
        )
        for table in TableName:
            model = ENTITY_MODELS[table]
            rows = adapter.list(table, tenant_id, include_deleted=include_deleted)
            document.tables[table.value] = [
                model.model_validate(row).model_dump(mode="json")
                for row in rows
                if row.get("tenant_id") == tenant_id
            ]

        total = sum(len(rows) for rows in document.tables.values())
        self._logger.info("Exported %d row(s) for tenant %s.", total, tenant_id)
        return document

    def export_to_file(
        self, path: Path, tenant_id: str, *, include_deleted: bool = True
    ) -> ExportDocument:
        """Write the export as pretty-printed JSON and return it."""
        document = self.export(tenant_id, include_deleted=include_deleted)
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(document.model_dump_json(indent=2), encoding="utf-8")
        self._logger.info("Export written to %s.", target)
        return document
