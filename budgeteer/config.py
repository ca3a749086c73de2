"""
Application Configuration.

Pydantic Settings model for the Budgeteer data layer.
All configuration is loaded from environment variables and .env files.
Inject an AppConfig instance via dependency injection where needed.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import ClassVar, Optional

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings

from budgeteer.models.enums import CatchUpPolicy, StorageMode


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Supabase (cloud mode) ---
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: SecretStr = SecretStr("")

    # --- Local store ---
    SQLITE_PATH: str = "budgeteer_local.db"

    # --- Storage mode ---
    # Used only when no preference has been persisted yet.  Demo is never
    # restored on startup regardless of this value.
    DEFAULT_STORAGE_MODE: StorageMode = StorageMode.LOCAL
    DEMO_TENANT_ID: str = "demo"

    # --- Recurrence engine ---
    DATE_FLEX_WINDOW_DAYS: int = Field(default=3, ge=0, le=31)
    CATCH_UP_POLICY: CatchUpPolicy = CatchUpPolicy.COLLAPSE
    AMOUNT_TOLERANCE_PERCENT: float = Field(default=20.0, ge=0)
    AUTO_APPLY_BATCH_SIZE: int = Field(default=50, ge=1)
    SYSTEM_ACTOR_ID: str = "system:auto-apply"

    # --- Import / export ---
    IMPORT_FORMAT_VERSION: str = "1"
    SUPPORTED_IMPORT_FORMAT_VERSIONS: ClassVar[frozenset[str]] = frozenset({"1"})

    # --- Logging ---
    LOG_FILE: str = "budgeteer.log"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _warn_missing_env(self) -> "AppConfig":
        """Emit a startup warning when cloud configuration is empty.

        Pydantic silently falls back to defaults when ``.env`` is missing.
        Cloud mode stays selectable without credentials, so the warning is
        the only early signal that it will report the backend unavailable.
        """
        _log = logging.getLogger("budgeteer.config")

        if not Path(".env").exists():
            _log.debug(
                "No .env file found; configuration loaded from "
                "environment variables or defaults."
            )

        if self.DEFAULT_STORAGE_MODE == StorageMode.CLOUD and not self.has_cloud_credentials:
            _log.warning(
                "DEFAULT_STORAGE_MODE is 'cloud' but SUPABASE_URL or "
                "SUPABASE_ANON_KEY is empty. Cloud operations will fail "
                "with BackendUnavailableError."
            )

        return self

    @property
    def has_cloud_credentials(self) -> bool:
        """``True`` when both Supabase settings are populated."""
        return bool(self.SUPABASE_URL and self.SUPABASE_ANON_KEY.get_secret_value())


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` singleton.

    Uses a check-lock-check pattern so the fast path takes no lock while
    first initialisation stays thread-safe.  Prefer constructor injection
    of ``AppConfig`` in services; this factory serves the logger and the
    entry point.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance
