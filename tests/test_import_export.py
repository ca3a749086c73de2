"""Tests for import validation, the import service and export."""

import datetime as dt
import json

import pytest

from budgeteer.errors import BackendUnavailableError, ValidationError
from budgeteer.models import RowClassification, StorageMode
from budgeteer.services.import_validator import ImportValidator

from conftest import ACTOR, OTHER_TENANT, TENANT, make_recurring


@pytest.fixture
def validator(logger):
    return ImportValidator(logger)


def _payload(ledger):
    return {
        "transactions": [
            {
                "id": "txn-good",
                "amount": -42.0,
                "date": "2025-03-01",
                "account_id": ledger.checking,
                "category_id": ledger.rent_category,
            },
            {
                "id": "txn-bad",
                "amount": -10.0,
                "date": "2025-03-02",
                "account_id": ledger.checking,
                "category_id": "no-such-category",
            },
        ]
    }


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------

def test_validator_classifies_rows(validator):
    """Test new, update and error classification."""
    payload = {
        "transaction_groups": [
            {"id": "g-new", "name": "Travel"},
            {"id": "g-old", "name": "Bills"},
            {"id": "g-bad", "name": ""},
        ]
    }

    report = validator.validate(
        payload, {"transaction_groups": {"g-old"}}, "1", tenant_id=TENANT
    )

    classes = {r.row_id: r.classification for r in report.rows}
    assert classes == {
        "g-new": RowClassification.NEW,
        "g-old": RowClassification.UPDATE,
        "g-bad": RowClassification.ERROR,
    }
    assert report.is_valid is False
    assert report.counts()[RowClassification.NEW] == 1


def test_validator_resolves_references_within_payload(validator):
    """Test a row may reference a row that appears later in the payload."""
    payload = {
        "accounts": [{"id": "a-1", "name": "Checking", "category_id": "c-1"}],
        "account_categories": [{"id": "c-1", "name": "Bank", "type": "Asset"}],
    }

    report = validator.validate(payload, {}, "1", tenant_id=TENANT)

    assert report.is_valid
    # Rows come back in dependency order.
    assert [r.table for r in report.rows] == ["account_categories", "accounts"]


def test_validator_reports_missing_reference(validator):
    """Test a foreign id found neither in payload nor store is an error."""
    payload = {"accounts": [{"id": "a-1", "name": "Checking", "category_id": "c-9"}]}

    [row] = validator.validate(payload, {}, "1", tenant_id=TENANT).rows

    assert row.classification == RowClassification.ERROR
    assert row.errors == ["category_id 'c-9' does not match any account_categories record"]


def test_validator_normalises_keys_and_values(validator):
    """Test camelCase tables and keys, padded strings and unknown fields."""
    payload = {
        "transactionGroups": [
            {"id": " g-1 ", "name": "  Bills ", "displayOrder": 5, "legacyField": "x"}
        ]
    }

    [row] = validator.validate(payload, {}, "1", tenant_id=TENANT).rows

    assert row.classification == RowClassification.NEW
    assert row.row_id == "g-1"
    assert row.row["name"] == "Bills"
    assert row.row["display_order"] == 5
    assert "legacy_field" not in row.row
    assert row.warnings == ["Unknown field(s) dropped: legacy_field"]


def test_validator_rejects_duplicates_and_missing_ids(validator):
    """Test duplicate ids within a table and rows without ids."""
    payload = {
        "transaction_groups": [
            {"id": "g-1", "name": "Bills"},
            {"id": "g-1", "name": "Bills again"},
            {"name": "No id"},
            "not a row",
        ]
    }

    rows = validator.validate(payload, {}, "1", tenant_id=TENANT).rows

    assert rows[0].classification == RowClassification.NEW
    assert rows[1].errors == ["Duplicate id 'g-1' in transaction_groups"]
    assert rows[2].errors == ["Missing required field: id"]
    assert rows[3].errors == ["Row must be an object"]


def test_validator_unknown_table_and_bad_shape(validator):
    """Test unknown tables warn and non-list tables are global errors."""
    report = validator.validate(
        {"payees": [], "accounts": {"id": "x"}}, {}, "1", tenant_id=TENANT
    )

    assert report.warnings == ["Unknown table 'payees' ignored"]
    assert report.errors == ["Table 'accounts' must be a list of rows"]


def test_validator_rejects_unsupported_version(validator):
    """Test an unknown format version stops validation."""
    report = validator.validate({"accounts": []}, {}, "99", tenant_id=TENANT)

    assert report.rows == []
    assert report.errors[0].startswith("Unsupported format version '99'")


# ---------------------------------------------------------------------------
# Import service
# ---------------------------------------------------------------------------

def test_import_partial_success(import_service, repos, ledger):
    """Test a bad reference skips its row while siblings import."""
    summary = import_service.import_payload(_payload(ledger), TENANT, ACTOR)

    assert summary.created == 1
    assert summary.skipped == 1
    assert summary.succeeded == 1
    assert [(e.row_id, e.table) for e in summary.errors] == [("txn-bad", "transactions")]
    assert "does not match any transaction_categories" in summary.errors[0].errors[0]
    txn = repos.transactions.find_by_id("txn-good", TENANT)
    assert txn.created_by == ACTOR
    assert txn.amount == -42.0


def test_import_validate_only_writes_nothing(import_service, repos, ledger):
    """Test validate_only reports counts without touching the store."""
    summary = import_service.import_payload(
        _payload(ledger), TENANT, ACTOR, validate_only=True
    )

    assert summary.validate_only is True
    assert summary.created == 1
    assert repos.transactions.list(TENANT) == []


def test_import_updates_existing_rows(import_service, repos, ledger):
    """Test rows whose id already exists are updated in place."""
    summary = import_service.import_payload(
        {"accounts": [{"id": ledger.savings, "name": "Rainy Day", "category_id": ledger.bank_category}]},
        TENANT,
        ACTOR,
    )

    assert summary.updated == 1
    assert summary.per_table["accounts"].updated == 1
    account = repos.accounts.find_by_id(ledger.savings, TENANT)
    assert account.name == "Rainy Day"
    assert account.updated_by == ACTOR


def test_import_forces_target_tenant(import_service, repos):
    """Test rows are imported into the caller's tenant whatever they claim."""
    import_service.import_payload(
        {"transaction_groups": [{"id": "g-1", "name": "Bills", "tenant_id": OTHER_TENANT}]},
        TENANT,
        ACTOR,
    )

    assert repos.transaction_groups.find_by_id("g-1", TENANT).tenant_id == TENANT
    assert repos.transaction_groups.list(OTHER_TENANT) == []


def test_import_unsupported_version_raises(import_service):
    """Test a globally invalid payload raises instead of importing."""
    with pytest.raises(ValidationError):
        import_service.import_payload({"accounts": []}, TENANT, ACTOR, format_version="2")


def test_import_aborts_when_backend_unavailable(import_service, repos, monkeypatch):
    """Test BackendUnavailableError stops the import and propagates."""
    def _down(*args, **kwargs):
        raise BackendUnavailableError("database is locked")

    monkeypatch.setattr(repos.adapter, "insert", _down)

    with pytest.raises(BackendUnavailableError):
        import_service.import_payload(
            {"transaction_groups": [{"id": "g-1", "name": "Bills"}]}, TENANT, ACTOR
        )


def test_import_file_reads_export_envelope(import_service, repos, tmp_path):
    """Test import_file accepts the export envelope."""
    path = tmp_path / "payload.json"
    path.write_text(
        json.dumps({"format_version": "1", "tables": {"transactionGroups": [{"id": "g-1", "name": "Bills"}]}}),
        encoding="utf-8",
    )

    summary = import_service.import_file(path, TENANT, ACTOR)

    assert summary.created == 1
    assert repos.transaction_groups.find_by_id("g-1", TENANT).name == "Bills"


def test_import_file_rejects_bad_json(import_service, tmp_path):
    """Test unreadable files are a validation error."""
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ValidationError):
        import_service.import_file(path, TENANT, ACTOR)
    with pytest.raises(ValidationError):
        import_service.import_file(tmp_path / "missing.json", TENANT, ACTOR)


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

def test_export_includes_deleted_rows_by_default(export_service, repos, ledger):
    """Test soft-deleted rows are exported unless live_only is asked for."""
    repos.accounts.soft_delete(ledger.savings, TENANT, ACTOR)

    full = export_service.export(TENANT)
    live = export_service.export(TENANT, include_deleted=False)

    assert len(full.tables["accounts"]) == 3
    assert len(live.tables["accounts"]) == 2
    assert list(full.tables) == [
        "account_categories",
        "transaction_groups",
        "transaction_categories",
        "accounts",
        "transactions",
        "recurrings",
    ]
    assert full.tenant_id == TENANT
    assert full.format_version == "1"


def test_export_round_trip_into_empty_store(factory, export_service, import_service, repos, ledger, tmp_path):
    """Test export then import into an empty store reproduces the entities."""
    make_recurring(repos, ledger)
    repos.transactions.create(
        {"amount": -12.5, "date": dt.date(2025, 3, 3), "account_id": ledger.checking, "tags": ["a", "b"]},
        TENANT,
        ACTOR,
    )
    repos.transaction_groups.soft_delete(ledger.bills_group, TENANT, ACTOR)
    path = tmp_path / "export.json"
    original = export_service.export_to_file(path, TENANT)

    factory.switch_mode(StorageMode.DEMO)
    summary = import_service.import_file(path, TENANT, ACTOR)
    copied = export_service.export(TENANT)

    assert summary.errors == []
    assert summary.created == sum(len(rows) for rows in original.tables.values())
    for table, rows in original.tables.items():
        by_id = {row["id"]: row for row in copied.tables[table]}
        assert set(by_id) == {row["id"] for row in rows}
        for row in rows:
            assert by_id[row["id"]] == row
