"""Tests for the repositories on top of the local store."""

import datetime as dt

import pytest

from budgeteer.errors import NotFoundError, ReferentialError, ValidationError
from budgeteer.factory import RepositorySet
from budgeteer.models import Account, TableName, TransactionType
from budgeteer.repositories import AccountRepository
from budgeteer.storage.memory_adapter import MemoryAdapter

from conftest import ACTOR, OTHER_TENANT, TENANT, build_ledger, make_recurring


def _txn(repos, account_id, amount, day, **extra):
    data = {"amount": amount, "date": dt.date(2025, 3, day), "account_id": account_id}
    data.update(extra)
    return repos.transactions.create(data, TENANT, ACTOR)


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------

def test_create_stamps_tenant_and_creator(repos, ledger):
    """Test create fills tenant, creator and timestamps."""
    account = repos.accounts.find_by_id(ledger.checking, TENANT)

    assert account.tenant_id == TENANT
    assert account.created_by == ACTOR
    assert account.created_at is not None
    assert account.open_balance == 1000.0


def test_create_accepts_model_instance(repos, ledger):
    """Test a pydantic model is accepted as input."""
    draft = Account(tenant_id="ignored", name="Brokerage", category_id=ledger.bank_category)

    created = repos.accounts.create(draft, TENANT, ACTOR)

    assert created.tenant_id == TENANT
    assert created.name == "Brokerage"


def test_create_invalid_data_raises_validation_error(repos):
    """Test schema violations map onto our ValidationError."""
    with pytest.raises(ValidationError) as excinfo:
        repos.account_categories.create({"name": ""}, TENANT, ACTOR)

    assert excinfo.value.details["field"] == "name"
    assert excinfo.value.details["table"] == "account_categories"


def test_create_with_unknown_reference(repos):
    """Test a dangling foreign id raises ReferentialError naming the field."""
    with pytest.raises(ReferentialError) as excinfo:
        repos.accounts.create({"name": "Checking", "category_id": "missing"}, TENANT, ACTOR)

    assert excinfo.value.field == "category_id"
    assert excinfo.value.details["referenced_table"] == "account_categories"


def test_reference_to_other_tenant_is_rejected(repos, ledger):
    """Test a tenant cannot point at another tenant's rows."""
    with pytest.raises(ReferentialError):
        repos.accounts.create(
            {"name": "Sneaky", "category_id": ledger.bank_category}, OTHER_TENANT, ACTOR
        )


def test_find_by_id_other_tenant_is_not_found(repos, ledger):
    """Test reads are tenant scoped."""
    with pytest.raises(NotFoundError):
        repos.accounts.find_by_id(ledger.checking, OTHER_TENANT)


# ---------------------------------------------------------------------------
# Joins, sorting and grouping
# ---------------------------------------------------------------------------

def test_list_attaches_joins(repos, ledger):
    """Test joined rows are resolved onto the join attributes."""
    _txn(repos, ledger.checking, -50.0, 2, category_id=ledger.rent_category)

    account = repos.accounts.find_by_id(ledger.card, TENANT)
    txn = repos.transactions.list(TENANT)[0]

    assert account.category.name == "Credit Card"
    assert account.is_liability is True
    assert txn.account.name == "Checking"
    assert txn.category.name == "Rent"


def test_join_keeps_soft_deleted_foreign_row(repos, ledger):
    """Test an account still shows its category after the category is deleted."""
    repos.account_categories.soft_delete(ledger.card_category, TENANT, ACTOR)

    account = repos.accounts.find_by_id(ledger.card, TENANT)

    assert account.category is not None
    assert account.category.is_deleted is True


def test_join_to_missing_row_is_none(logger):
    """Test a foreign id with no row leaves the join empty."""
    adapter = MemoryAdapter(logger, demo_tenant_id=None)
    repos = RepositorySet.bind(adapter, logger)
    adapter.insert(
        TableName.ACCOUNTS, {"tenant_id": TENANT, "name": "Loose", "category_id": "gone"}
    )

    [account] = repos.accounts.list(TENANT)

    assert account.category is None


def test_default_sort_is_display_order_then_name(repos, ledger):
    """Test higher display_order comes first."""
    assert [a.name for a in repos.accounts.list(TENANT)] == ["Checking", "Savings", "Visa"]
    assert [c.name for c in repos.account_categories.list(TENANT)] == ["Bank", "Credit Card"]


def test_transactions_sorted_newest_first(repos, ledger):
    """Test transactions list by date descending."""
    _txn(repos, ledger.checking, -1.0, 1, name="first")
    _txn(repos, ledger.checking, -1.0, 20, name="last")
    _txn(repos, ledger.checking, -1.0, 10, name="middle")

    assert [t.name for t in repos.transactions.list(TENANT)] == ["last", "middle", "first"]


def test_accounts_grouped_by_category(repos, ledger):
    """Test accounts are bucketed by category name in category order."""
    grouped = repos.accounts.list_grouped_by_category(TENANT)

    assert list(grouped) == ["Bank", "Credit Card"]
    assert [a.name for a in grouped["Bank"]] == ["Checking", "Savings"]
    assert [a.name for a in grouped["Credit Card"]] == ["Visa"]


def test_categories_grouped_by_group(repos, ledger):
    """Test transaction categories are bucketed under their group."""
    grouped = repos.transaction_categories.list_grouped_by_group(TENANT)

    assert list(grouped) == ["Bills"]
    assert [c.name for c in grouped["Bills"]] == ["Rent", "Salary"]


def test_categories_without_group_are_ungrouped(logger):
    """Test a category whose group is missing lands under Ungrouped."""
    adapter = MemoryAdapter(logger, demo_tenant_id=None)
    repos = RepositorySet.bind(adapter, logger)
    adapter.insert(
        TableName.TRANSACTION_CATEGORIES,
        {"tenant_id": TENANT, "name": "Stray", "group_id": "gone", "type": "Expense"},
    )

    assert list(repos.transaction_categories.list_grouped_by_group(TENANT)) == ["Ungrouped"]


def test_recurrings_list_active(repos, ledger):
    """Test list_active drops inactive recurrings and sorts by next date."""
    make_recurring(repos, ledger, name="Later", next_occurrence_date=dt.date(2025, 6, 1))
    make_recurring(repos, ledger, name="Sooner", next_occurrence_date=dt.date(2025, 2, 1))
    make_recurring(repos, ledger, name="Paused", is_active=False)

    assert [r.name for r in repos.recurrings.list_active(TENANT)] == ["Sooner", "Later"]


# ---------------------------------------------------------------------------
# Update / delete / restore
# ---------------------------------------------------------------------------

def test_update_changes_fields_and_ignores_immutables(repos, ledger):
    """Test update applies the patch but never the identity fields."""
    updated = repos.accounts.update(
        ledger.checking,
        {"name": "Main Checking", "tenant_id": OTHER_TENANT, "created_by": "intruder"},
        TENANT,
        "user-2",
    )

    assert updated.name == "Main Checking"
    assert updated.tenant_id == TENANT
    assert updated.created_by == ACTOR
    assert updated.updated_by == "user-2"


def test_update_validates_merged_entity(repos, ledger):
    """Test an out-of-range patch is rejected."""
    recurring = make_recurring(repos, ledger)

    with pytest.raises(ValidationError):
        repos.recurrings.update(str(recurring.id), {"interval_months": 30}, TENANT, ACTOR)


def test_update_rechecks_changed_references(repos, ledger):
    """Test a patch moving an account to an unknown category fails."""
    with pytest.raises(ReferentialError):
        repos.accounts.update(ledger.checking, {"category_id": "missing"}, TENANT, ACTOR)


def test_soft_delete_and_restore(repos, ledger):
    """Test deleted entities vanish from reads until restored."""
    repos.accounts.soft_delete(ledger.savings, TENANT, ACTOR)

    assert ledger.savings not in [a.id for a in repos.accounts.list(TENANT)]
    with pytest.raises(NotFoundError):
        repos.accounts.find_by_id(ledger.savings, TENANT)
    deleted = repos.accounts.find_by_id(ledger.savings, TENANT, show_deleted=True)
    assert deleted.deleted_by == ACTOR

    restored = repos.accounts.restore(ledger.savings, TENANT, ACTOR)

    assert restored.is_deleted is False
    assert repos.accounts.find_by_id(ledger.savings, TENANT).name == "Savings"


def test_existing_ids_include_deleted_rows_of_tenant_only(repos, ledger):
    """Test existing_ids covers deleted rows and ignores other tenants."""
    repos.accounts.soft_delete(ledger.savings, TENANT, ACTOR)
    other = build_ledger(repos, OTHER_TENANT)

    ids = repos.accounts.existing_ids(TENANT)

    assert ids == {ledger.checking, ledger.savings, ledger.card}
    assert other.checking not in ids


# ---------------------------------------------------------------------------
# Transactions and balances
# ---------------------------------------------------------------------------

def test_tags_are_deduplicated(repos, ledger):
    """Test tags behave as a set and survive storage."""
    txn = _txn(repos, ledger.checking, -5.0, 3, tags=["coffee", " coffee ", "work", ""])

    assert txn.tags == ["coffee", "work"]
    assert repos.transactions.find_by_id(str(txn.id), TENANT).tags == ["coffee", "work"]


def test_running_balance_ignores_void_and_deleted(repos, ledger):
    """Test balance is opening balance plus live, non-void amounts."""
    _txn(repos, ledger.checking, -200.0, 1)
    _txn(repos, ledger.checking, 50.25, 2, type=TransactionType.INCOME)
    _txn(repos, ledger.checking, -999.0, 3, is_void=True)
    deleted = _txn(repos, ledger.checking, -75.0, 4)
    repos.transactions.soft_delete(str(deleted.id), TENANT, ACTOR)

    assert repos.accounts.running_balance(ledger.checking, TENANT) == 850.25


def test_refresh_balance_persists(repos, ledger):
    """Test refresh_balance writes the running balance onto the account."""
    _txn(repos, ledger.card, -320.1, 5)

    account = repos.accounts.refresh_balance(ledger.card, TENANT, ACTOR)

    assert account.balance == -320.1
    assert repos.accounts.find_by_id(ledger.card, TENANT).balance == -320.1


def test_running_balance_unknown_account(repos):
    """Test the balance of a missing account is NotFoundError."""
    with pytest.raises(NotFoundError):
        repos.accounts.running_balance("missing", TENANT)


def test_find_for_occurrence_includes_deleted(repos, ledger):
    """Test generated transactions are found even after soft delete."""
    recurring = make_recurring(repos, ledger)
    txn = _txn(repos, ledger.checking, -1200.0, 1, recurring_id=str(recurring.id))
    repos.transactions.soft_delete(str(txn.id), TENANT, ACTOR)

    found = repos.transactions.find_for_occurrence(
        str(recurring.id), dt.date(2025, 3, 1), TENANT
    )

    assert [t.id for t in found] == [txn.id]
    assert repos.transactions.find_for_occurrence(
        str(recurring.id), dt.date(2025, 3, 2), TENANT
    ) == []


def test_repository_set_for_table(repos):
    """Test for_table resolves repositories by table name."""
    assert isinstance(repos.for_table("accounts"), AccountRepository)
    assert repos.for_table(TableName.RECURRINGS) is repos.recurrings
    with pytest.raises(ValueError):
        repos.for_table("payees")
