"""
Business Logic Services Package.

Services depend on the ``RepositoryFactory`` for data access and read the
active repository set once per operation.

The ``create_services()`` factory wires the settings store, the
repository factory and every service together, returning a typed dict
that the application layer (CLI commands) can consume without knowing
the internal dependency graph.
"""

from __future__ import annotations

from typing import Optional, TypedDict

from budgeteer.config import AppConfig
from budgeteer.database import DatabaseManager
from budgeteer.demo_seed import seed_demo_data
from budgeteer.factory import RepositoryFactory
from budgeteer.logger import get_logger
from budgeteer.models.enums import StorageMode
from budgeteer.services.app_settings_service import AppSettingsService
from budgeteer.services.export_service import ExportService
from budgeteer.services.import_service import ImportService
from budgeteer.services.import_validator import ImportValidator
from budgeteer.services.recurrence_engine import RecurrenceEngine


class ServiceContainer(TypedDict):
    """Typed container for all application services."""

    # --- Infrastructure ---
    app_settings_service: AppSettingsService
    repository_factory: RepositoryFactory

    # --- Domain ---
    recurrence_engine: RecurrenceEngine
    import_service: ImportService
    export_service: ExportService


def create_services(
    db: DatabaseManager,
    config: AppConfig,
    *,
    initial_mode: Optional[StorageMode] = None,
) -> ServiceContainer:
    """
    Wire the repository factory and all services together.

    This is the single composition root for the service layer.  The
    application entry-point calls this once at startup.

    Args:
        db: Initialised DatabaseManager (SQLite ready, Supabase optional).
        config: Application configuration.
        initial_mode: Overrides the persisted storage mode for this run.

    Returns:
        ServiceContainer mapping service names to fully-wired instances.
    """
    logger = get_logger("budgeteer.services")

    # ------------------------------------------------------------------
    # 1. Settings + repository factory (data-access layer)
    # ------------------------------------------------------------------
    app_settings_service = AppSettingsService(db=db, logger=logger)
    factory = RepositoryFactory(
        db,
        config,
        app_settings_service,
        get_logger("budgeteer.storage"),
        demo_seeder=seed_demo_data,
        initial_mode=initial_mode,
    )

    # ------------------------------------------------------------------
    # 2. Domain services
    # ------------------------------------------------------------------
    recurrence_engine = RecurrenceEngine(factory=factory, config=config, logger=logger)
    import_service = ImportService(
        factory=factory,
        config=config,
        logger=logger,
        validator=ImportValidator(logger, config.SUPPORTED_IMPORT_FORMAT_VERSIONS),
    )
    export_service = ExportService(factory=factory, config=config, logger=logger)

    return ServiceContainer(
        app_settings_service=app_settings_service,
        repository_factory=factory,
        recurrence_engine=recurrence_engine,
        import_service=import_service,
        export_service=export_service,
    )
