"""Tests for the repository factory, storage modes and settings."""

import pytest

from budgeteer.database import DatabaseManager
from budgeteer.demo_seed import ACC_CHECKING, seed_demo_data
from budgeteer.factory import RepositoryFactory
from budgeteer.models import StorageMode
from budgeteer.storage.memory_adapter import MemoryAdapter
from budgeteer.storage.mode_validator import (
    format_validation_report,
    recommended_mode,
    validate_mode,
)
from budgeteer.storage.sqlite_adapter import SQLiteAdapter
from budgeteer.storage.supabase_adapter import SupabaseAdapter

from conftest import ACTOR, TENANT


def _factory(db, config, settings, logger, **kwargs):
    return RepositoryFactory(db, config, settings, logger, demo_seeder=seed_demo_data, **kwargs)


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------

def test_starts_in_configured_default(db, config, settings, logger):
    """Test startup falls back to DEFAULT_STORAGE_MODE without a saved mode."""
    factory = _factory(db, config, settings, logger)

    assert factory.mode == StorageMode.LOCAL
    assert isinstance(factory.current.adapter, SQLiteAdapter)


def test_starts_in_persisted_mode(db, config, settings, logger):
    """Test a saved preference wins over the default."""
    settings.set_storage_mode(StorageMode.CLOUD)

    factory = _factory(db, config, settings, logger)

    assert factory.mode == StorageMode.CLOUD
    assert isinstance(factory.current.adapter, SupabaseAdapter)


def test_never_starts_in_demo(db, config, settings, logger):
    """Test demo is refused both as an override and as a saved value."""
    settings.set("storage_mode", "demo")

    assert _factory(db, config, settings, logger).mode == StorageMode.LOCAL
    assert _factory(db, config, settings, logger, initial_mode=StorageMode.DEMO).mode == StorageMode.LOCAL


# ---------------------------------------------------------------------------
# Switching
# ---------------------------------------------------------------------------

def test_same_mode_is_noop(factory):
    """Test re-selecting the active mode changes nothing and warns nothing."""
    before = factory.current

    result = factory.switch_mode(StorageMode.LOCAL)

    assert result.changed is False
    assert result.warning is None
    assert factory.current is before


def test_switch_to_demo_seeds_shared_data(factory, settings):
    """Test entering demo exposes seeded sample data to any tenant."""
    result = factory.switch_mode("demo", actor_id=ACTOR)

    assert result.changed is True
    assert result.previous == StorageMode.LOCAL
    assert "demo" in result.warning.lower()
    assert factory.mode == StorageMode.DEMO
    accounts = factory.current.accounts.list(TENANT)
    assert len(accounts) == 4
    assert ACC_CHECKING in {a.id for a in accounts}
    assert settings.get_storage_mode() is None


def test_leaving_demo_discards_its_data(factory, settings):
    """Test leaving demo clears the memory store and persists the new mode."""
    factory.switch_mode(StorageMode.DEMO)
    demo_adapter = factory.current.adapter
    assert isinstance(demo_adapter, MemoryAdapter)

    result = factory.switch_mode(StorageMode.LOCAL)

    assert "discarded" in result.warning
    assert demo_adapter.is_empty()
    assert settings.get_storage_mode() == StorageMode.LOCAL


def test_reentering_demo_builds_a_fresh_store(factory):
    """Test demo data written in one session is gone in the next."""
    factory.switch_mode(StorageMode.DEMO)
    first = factory.current
    first.transaction_groups.create({"name": "Scratch"}, TENANT, ACTOR)
    factory.switch_mode(StorageMode.LOCAL)

    factory.switch_mode(StorageMode.DEMO)

    assert factory.current.adapter is not first.adapter
    assert "Scratch" not in {g.name for g in factory.current.transaction_groups.list(TENANT)}


def test_switch_to_offline_cloud_warns_but_switches(factory, settings):
    """Test readiness problems add warnings without blocking the switch."""
    result = factory.switch_mode(StorageMode.CLOUD)

    assert result.changed is True
    assert factory.mode == StorageMode.CLOUD
    assert result.validation.is_available is False
    assert "offline" in result.warning
    assert "not uploaded" in result.warning
    assert settings.get_storage_mode() == StorageMode.CLOUD


def test_captured_set_survives_switch(factory, ledger):
    """Test a caller holding the old set keeps talking to the old adapter."""
    local = factory.current

    factory.switch_mode(StorageMode.DEMO)

    assert factory.current is not local
    assert [a.name for a in local.accounts.list(TENANT)] == ["Checking", "Savings", "Visa"]


def test_durable_adapters_are_reused(factory):
    """Test switching back to local reuses the same SQLite adapter."""
    local_adapter = factory.current.adapter

    factory.switch_mode(StorageMode.DEMO)
    factory.switch_mode(StorageMode.LOCAL)

    assert factory.current.adapter is local_adapter


def test_unknown_mode_rejected(factory):
    """Test an unknown mode name raises before anything changes."""
    with pytest.raises(ValueError):
        factory.switch_mode("ftp")
    assert factory.mode == StorageMode.LOCAL


def test_close_discards_demo(factory):
    """Test closing the factory while in demo clears the store."""
    factory.switch_mode(StorageMode.DEMO)
    adapter = factory.current.adapter

    factory.close()

    assert adapter.is_empty()


# ---------------------------------------------------------------------------
# Mode validation
# ---------------------------------------------------------------------------

def test_validate_local_mode(db, config):
    """Test the local store reports ready."""
    report = validate_mode(StorageMode.LOCAL, db, config)

    assert report.is_valid
    assert report.is_available
    assert report.warnings == []


def test_validate_cloud_without_credentials(db, config):
    """Test cloud without credentials is supported but unavailable."""
    report = validate_mode("cloud", db, config)

    assert report.is_supported
    assert report.is_available is False
    assert len(report.warnings) == 2


def test_validate_unknown_mode(db, config):
    """Test unknown names produce an unsupported report instead of raising."""
    report = validate_mode("ftp", db, config)

    assert report.is_supported is False
    assert report.errors == ["Unknown storage mode: ftp"]


def test_validate_local_with_closed_connection(tmp_path, config, logger):
    """Test a closed SQLite connection makes local unavailable."""
    db = DatabaseManager("", "", tmp_path / "closed.db", logger)
    db.close()

    report = validate_mode(StorageMode.LOCAL, db, config)

    assert report.is_available is False
    assert report.errors


def test_recommended_mode_prefers_local(db, config):
    """Test local is recommended when it works."""
    assert recommended_mode(db, config) == StorageMode.LOCAL


def test_format_validation_report(db, config):
    """Test the plain-text rendering lists each populated section."""
    text = format_validation_report(validate_mode(StorageMode.CLOUD, db, config))

    assert text.startswith("Storage Mode: CLOUD\nSupported: Yes\nAvailable: No")
    assert "Requirements:\n  - Supabase project URL and anon key" in text
    assert "Warnings:\n  - Supabase credentials are not configured" in text
    assert "Errors:" not in text


# ---------------------------------------------------------------------------
# App settings
# ---------------------------------------------------------------------------

def test_settings_get_and_set(settings):
    """Test the generic key-value store."""
    assert settings.get("theme") is None
    assert settings.set("theme", "dark") is True
    assert settings.set("theme", "light") is True
    assert settings.get("theme") == "light"


def test_settings_ignore_unknown_mode(settings):
    """Test a garbage persisted mode reads as unset."""
    settings.set("storage_mode", "floppy")

    assert settings.get_storage_mode() is None


def test_settings_refuse_to_persist_demo(settings):
    """Test demo is never written as the saved mode."""
    assert settings.set_storage_mode(StorageMode.DEMO) is False
    assert settings.get("storage_mode") is None
