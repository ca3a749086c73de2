"""Tests for the Supabase (cloud) storage adapter against an in-memory client."""

from pathlib import Path

import pytest

from budgeteer.database import DatabaseManager
from budgeteer.errors import (
    BackendUnavailableError,
    ConflictError,
    NotFoundError,
    ReferentialError,
    ValidationError,
)
from budgeteer.storage.supabase_adapter import SupabaseAdapter

from conftest import OTHER_TENANT, TENANT, FakeAPIError

GROUPS = "transaction_groups"


@pytest.fixture
def cloud_adapter(cloud_db, logger):
    return SupabaseAdapter(cloud_db, logger)


def test_insert_and_get(cloud_adapter, fake_supabase):
    """Test insert prepares the row and get_by_id reads it back."""
    row = cloud_adapter.insert(GROUPS, {"tenant_id": TENANT, "name": "Bills"})

    assert row["id"]
    assert row["is_deleted"] is False
    assert fake_supabase.tables[GROUPS][0]["name"] == "Bills"
    assert cloud_adapter.get_by_id(GROUPS, row["id"], TENANT)["name"] == "Bills"


def test_list_is_tenant_scoped_and_hides_deleted(cloud_adapter):
    """Test list filters by tenant and skips soft-deleted rows by default."""
    kept = cloud_adapter.insert(GROUPS, {"tenant_id": TENANT, "name": "Bills"})
    gone = cloud_adapter.insert(GROUPS, {"tenant_id": TENANT, "name": "Old"})
    cloud_adapter.insert(GROUPS, {"tenant_id": OTHER_TENANT, "name": "Theirs"})
    cloud_adapter.soft_delete(GROUPS, gone["id"], TENANT, "user-1")

    assert [r["id"] for r in cloud_adapter.list(GROUPS, TENANT)] == [kept["id"]]
    assert len(cloud_adapter.list(GROUPS, TENANT, include_deleted=True)) == 2
    assert [r["name"] for r in cloud_adapter.list(GROUPS, TENANT, {"description": None})] == ["Bills"]


def test_wrong_tenant_is_not_found(cloud_adapter):
    """Test another tenant's row cannot be read."""
    row = cloud_adapter.insert(GROUPS, {"tenant_id": OTHER_TENANT, "name": "Theirs"})

    with pytest.raises(NotFoundError):
        cloud_adapter.get_by_id(GROUPS, row["id"], TENANT)


def test_update_with_matching_version(cloud_adapter):
    """Test an update carrying the current updated_at succeeds."""
    row = cloud_adapter.insert(GROUPS, {"tenant_id": TENANT, "name": "Bills"})

    updated = cloud_adapter.update(
        GROUPS, row["id"], {"name": "Utilities"}, TENANT,
        expected_updated_at=row["updated_at"],
    )

    assert updated["name"] == "Utilities"


def test_update_with_stale_version_conflicts(cloud_adapter):
    """Test a stale updated_at raises ConflictError and changes nothing."""
    row = cloud_adapter.insert(GROUPS, {"tenant_id": TENANT, "name": "Bills"})

    with pytest.raises(ConflictError):
        cloud_adapter.update(
            GROUPS, row["id"], {"name": "Utilities"}, TENANT,
            expected_updated_at="2000-01-01T00:00:00+00:00",
        )

    assert cloud_adapter.get_by_id(GROUPS, row["id"], TENANT)["name"] == "Bills"


def test_update_missing_row_is_not_found(cloud_adapter):
    """Test a zero-row update on an unknown id is NotFoundError, not a conflict."""
    with pytest.raises(NotFoundError):
        cloud_adapter.update(
            GROUPS, "missing", {"name": "x"}, TENANT, expected_updated_at="2000-01-01"
        )


def test_restore_round_trip(cloud_adapter):
    """Test soft delete then restore through the cloud adapter."""
    row = cloud_adapter.insert(GROUPS, {"tenant_id": TENANT, "name": "Bills"})
    cloud_adapter.soft_delete(GROUPS, row["id"], TENANT, "user-1")

    restored = cloud_adapter.restore(GROUPS, row["id"], TENANT, "user-1")

    assert restored["is_deleted"] is False
    assert restored["deleted_at"] is None


def test_duplicate_key_maps_to_validation_error(cloud_adapter):
    """Test SQLSTATE 23505 is reported as a duplicate record."""
    cloud_adapter.insert(GROUPS, {"tenant_id": TENANT, "name": "Bills", "id": "g-1"})

    with pytest.raises(ValidationError) as excinfo:
        cloud_adapter.insert(GROUPS, {"tenant_id": TENANT, "name": "Again", "id": "g-1"})

    assert excinfo.value.message == "transaction_groups id 'g-1' is not available; use a different id"


def test_foreign_key_violation_maps_to_referential_error(cloud_adapter, fake_supabase):
    """Test SQLSTATE 23503 is reported as ReferentialError."""
    fake_supabase.fail_with = FakeAPIError("violates foreign key constraint", "23503")

    with pytest.raises(ReferentialError):
        cloud_adapter.insert(
            "accounts", {"tenant_id": TENANT, "name": "Checking", "category_id": "missing"}
        )


def test_network_failure_is_backend_unavailable(cloud_adapter, fake_supabase):
    """Test any other failure is retryable BackendUnavailableError."""
    fake_supabase.fail_with = ConnectionError("connection reset")

    with pytest.raises(BackendUnavailableError) as excinfo:
        cloud_adapter.list(GROUPS, TENANT)

    assert excinfo.value.is_retryable is True
    assert excinfo.value.details["table"] == GROUPS


def test_offline_client_is_backend_unavailable(tmp_path: Path, logger):
    """Test a manager without credentials makes every cloud call unavailable."""
    db = DatabaseManager(
        supabase_url="", supabase_key="", sqlite_path=tmp_path / "offline.db", logger=logger
    )
    try:
        adapter = SupabaseAdapter(db, logger)
        assert db.is_online is False
        with pytest.raises(BackendUnavailableError):
            adapter.list(GROUPS, TENANT)
        with pytest.raises(BackendUnavailableError):
            adapter.insert(GROUPS, {"tenant_id": TENANT, "name": "Bills"})
    finally:
        db.close()
