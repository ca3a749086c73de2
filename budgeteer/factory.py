"""
Repository Factory and Storage Mode Switch.

The factory owns the one live :class:`RepositorySet`: a frozen bundle of
the active mode, its adapter and every repository bound to that adapter.
Switching modes builds a complete new set first and then swaps the single
reference under a lock, so a caller that already took ``factory.current``
finishes its work against the old adapter.

Mode lifecycle:

- Startup reads the persisted preference from ``app_settings`` and falls
  back to ``DEFAULT_STORAGE_MODE``.  It never starts in demo.
- Entering demo creates a fresh ``MemoryAdapter`` and seeds sample data.
  Leaving demo (or closing the factory) discards it.
- Cloud and local choices are persisted; demo never is.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from budgeteer.config import AppConfig
from budgeteer.database import DatabaseManager
from budgeteer.logger import StructuredLogger
from budgeteer.models.enums import StorageMode, TableName
from budgeteer.models.service_models import ModeSwitchResult
from budgeteer.repositories import (
    AccountCategoryRepository,
    AccountRepository,
    BaseRepository,
    RecurringRepository,
    TransactionCategoryRepository,
    TransactionGroupRepository,
    TransactionRepository,
)
from budgeteer.storage import MemoryAdapter, SQLiteAdapter, StorageAdapter, SupabaseAdapter
from budgeteer.storage.base import Clock, utc_now
from budgeteer.storage.mode_validator import validate_mode
from budgeteer.utils.audit import log_audit_event

if TYPE_CHECKING:
    from budgeteer.services.app_settings_service import AppSettingsService

DemoSeeder = Callable[[StorageAdapter, str], None]

_LOCALITY_WARNINGS: dict[tuple[StorageMode, StorageMode], str] = {
    (StorageMode.CLOUD, StorageMode.LOCAL): (
        "Switching to local storage. Cloud data stays in the cloud and is "
        "not copied to this device."
    ),
    (StorageMode.LOCAL, StorageMode.CLOUD): (
        "Switching to cloud storage. Data on this device is not uploaded; "
        "export and import it to move it."
    ),
    (StorageMode.CLOUD, StorageMode.DEMO): (
        "Switching to demo mode. Sample data is kept in memory and "
        "discarded when you leave demo mode."
    ),
    (StorageMode.LOCAL, StorageMode.DEMO): (
        "Switching to demo mode. Sample data is kept in memory and "
        "discarded when you leave demo mode."
    ),
    (StorageMode.DEMO, StorageMode.CLOUD): (
        "Leaving demo mode. All demo data will be discarded."
    ),
    (StorageMode.DEMO, StorageMode.LOCAL): (
        "Leaving demo mode. All demo data will be discarded."
    ),
}


@dataclass(frozen=True)
class RepositorySet:
    """Every repository bound to one adapter.  Attribute names match tables."""

    mode: StorageMode
    adapter: StorageAdapter
    account_categories: AccountCategoryRepository
    transaction_groups: TransactionGroupRepository
    transaction_categories: TransactionCategoryRepository
    accounts: AccountRepository
    transactions: TransactionRepository
    recurrings: RecurringRepository

    @classmethod
    def bind(cls, adapter: StorageAdapter, logger: StructuredLogger) -> "RepositorySet":
        return cls(
            mode=adapter.MODE,
            adapter=adapter,
            account_categories=AccountCategoryRepository(adapter, logger),
            transaction_groups=TransactionGroupRepository(adapter, logger),
            transaction_categories=TransactionCategoryRepository(adapter, logger),
            accounts=AccountRepository(adapter, logger),
            transactions=TransactionRepository(adapter, logger),
            recurrings=RecurringRepository(adapter, logger),
        )

    def for_table(self, table: TableName | str) -> BaseRepository:
        """Repository for *table*, in the ``TableName`` vocabulary."""
        return getattr(self, TableName(table).value)


class RepositoryFactory:
    """State machine over :class:`StorageMode`.

    Parameters
    ----------
    db:
        Connection manager shared by the cloud and local adapters.
    config:
        Application configuration.
    settings:
        Persists the chosen mode.
    logger:
        Structured logger shared by adapters and repositories.
    demo_seeder:
        Called with a fresh, empty ``MemoryAdapter`` and the demo tenant.
    initial_mode:
        Overrides the persisted preference.  Demo is coerced to local.
    """

    def __init__(
        self,
        db: DatabaseManager,
        config: AppConfig,
        settings: AppSettingsService,
        logger: StructuredLogger,
        *,
        demo_seeder: Optional[DemoSeeder] = None,
        initial_mode: Optional[StorageMode] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._db = db
        self._config = config
        self._settings = settings
        self._logger = logger
        self._demo_seeder = demo_seeder
        self._clock = clock
        self._lock = threading.Lock()
        self._durable: dict[StorageMode, StorageAdapter] = {}

        mode = initial_mode or settings.get_storage_mode() or config.DEFAULT_STORAGE_MODE
        if mode == StorageMode.DEMO:
            mode = StorageMode.LOCAL
        self._current: RepositorySet = self._build(mode)
        self._logger.info("Repository factory started in %s mode.", mode.value)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def current(self) -> RepositorySet:
        """The active repository set.  Capture once per operation."""
        return self._current

    @property
    def mode(self) -> StorageMode:
        return self._current.mode

    def switch_mode(
        self, target: StorageMode | str, *, actor_id: Optional[str] = None
    ) -> ModeSwitchResult:
        """Rebind every repository to the adapter for *target*.

        Every mode is accepted; readiness problems only add warnings.
        Re-selecting the active mode is a no-op without a warning.
        """
        target = StorageMode(target)
        validation = validate_mode(target, self._db, self._config)

        with self._lock:
            previous_set = self._current
            previous = previous_set.mode
            if target == previous:
                return ModeSwitchResult(
                    previous=previous, current=target, changed=False, validation=validation
                )
            new_set = self._build(target)
            self._current = new_set

        notes = [_LOCALITY_WARNINGS[(previous, target)], *validation.warnings]
        warning = " ".join(notes)
        self._logger.warning("Storage mode switch %s -> %s: %s", previous.value, target.value, warning)

        if previous == StorageMode.DEMO:
            previous_set.adapter.close()
        if target != StorageMode.DEMO:
            self._settings.set_storage_mode(target)

        log_audit_event(
            self._logger,
            "MODE_SWITCH",
            "storage_mode",
            target.value,
            actor_id or self._config.SYSTEM_ACTOR_ID,
            details={"previous": previous.value, "current": target.value},
        )
        return ModeSwitchResult(
            previous=previous,
            current=target,
            changed=True,
            warning=warning,
            validation=validation,
        )

    def close(self) -> None:
        """Discard demo data.  Durable adapters are owned by ``DatabaseManager``."""
        with self._lock:
            if self._current.mode == StorageMode.DEMO:
                self._current.adapter.close()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _build(self, mode: StorageMode) -> RepositorySet:
        return RepositorySet.bind(self._adapter_for(mode), self._logger)

    def _adapter_for(self, mode: StorageMode) -> StorageAdapter:
        if mode == StorageMode.DEMO:
            adapter = MemoryAdapter(
                self._logger,
                demo_tenant_id=self._config.DEMO_TENANT_ID,
                clock=self._clock,
            )
            if self._demo_seeder is not None and adapter.is_empty():
                self._demo_seeder(adapter, self._config.DEMO_TENANT_ID)
            return adapter

        if mode not in self._durable:
            if mode == StorageMode.CLOUD:
                self._durable[mode] = SupabaseAdapter(self._db, self._logger, clock=self._clock)
            else:
                self._durable[mode] = SQLiteAdapter(self._db, self._logger, clock=self._clock)
        return self._durable[mode]
