"""Shared pytest fixtures for budgeteer tests."""

from __future__ import annotations

import copy
import datetime as dt
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import pytest

from budgeteer.config import AppConfig
from budgeteer.database import DatabaseManager
from budgeteer.demo_seed import seed_demo_data
from budgeteer.factory import RepositoryFactory, RepositorySet
from budgeteer.logger import StructuredLogger
from budgeteer.models.enums import AccountType, StorageMode, TransactionType
from budgeteer.schema import initialize_schema
from budgeteer.services.app_settings_service import AppSettingsService
from budgeteer.services.export_service import ExportService
from budgeteer.services.import_service import ImportService
from budgeteer.services.recurrence_engine import RecurrenceEngine
from budgeteer.storage.memory_adapter import MemoryAdapter
from budgeteer.storage.sqlite_adapter import SQLiteAdapter

TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"
ACTOR = "user-1"


# ---------------------------------------------------------------------------
# Fake Supabase client
# ---------------------------------------------------------------------------

class FakeAPIError(Exception):
    """Mimics a PostgREST error carrying a SQLSTATE ``code``."""

    def __init__(self, message: str, code: str) -> None:
        super().__init__(message)
        self.code = code


class FakeResponse:
    def __init__(self, data: list[dict]) -> None:
        self.data = data


class FakeQuery:
    """Chainable query builder over one in-memory table."""

    def __init__(self, client: "FakeSupabaseClient", table: str) -> None:
        self._client = client
        self._table = table
        self._op = "select"
        self._payload: Optional[dict] = None
        self._filters: list = []
        self._limit: Optional[int] = None

    def select(self, _columns: str = "*") -> "FakeQuery":
        self._op = "select"
        return self

    def insert(self, row: dict) -> "FakeQuery":
        self._op = "insert"
        self._payload = copy.deepcopy(row)
        return self

    def update(self, patch: dict) -> "FakeQuery":
        self._op = "update"
        self._payload = copy.deepcopy(patch)
        return self

    def eq(self, column: str, value) -> "FakeQuery":
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def is_(self, column: str, value: str) -> "FakeQuery":
        assert value == "null"
        self._filters.append(lambda row: row.get(column) is None)
        return self

    def limit(self, count: int) -> "FakeQuery":
        self._limit = count
        return self

    def execute(self) -> FakeResponse:
        self._client.calls.append((self._table, self._op))
        if self._client.fail_with is not None:
            raise self._client.fail_with
        rows = self._client.tables.setdefault(self._table, [])

        if self._op == "insert":
            if any(r["id"] == self._payload["id"] for r in rows):
                raise FakeAPIError("duplicate key value", "23505")
            rows.append(self._payload)
            return FakeResponse([copy.deepcopy(self._payload)])

        matched = [r for r in rows if all(f(r) for f in self._filters)]
        if self._op == "update":
            for row in matched:
                row.update(self._payload)
        if self._limit is not None:
            matched = matched[: self._limit]
        return FakeResponse([copy.deepcopy(r) for r in matched])


class FakeSupabaseClient:
    """Just enough of ``supabase.Client`` for the cloud adapter."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict]] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_with: Optional[Exception] = None

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)


# ---------------------------------------------------------------------------
# Infrastructure fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def logger(tmp_path_factory) -> StructuredLogger:
    """A logger writing to a temporary file."""
    log_file = tmp_path_factory.mktemp("logs") / "budgeteer-test.log"
    return StructuredLogger(name="budgeteer.tests", log_file=str(log_file))


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    """Configuration isolated from the developer's environment."""
    return AppConfig(
        _env_file=None,
        SUPABASE_URL="",
        SUPABASE_ANON_KEY="",
        SQLITE_PATH=str(tmp_path / "budgeteer.db"),
        DEFAULT_STORAGE_MODE=StorageMode.LOCAL,
    )


@pytest.fixture
def fake_supabase() -> FakeSupabaseClient:
    return FakeSupabaseClient()


@pytest.fixture
def db(config: AppConfig, logger: StructuredLogger):
    """A DatabaseManager over a temporary SQLite file, schema applied."""
    manager = DatabaseManager(
        supabase_url="",
        supabase_key="",
        sqlite_path=Path(config.SQLITE_PATH),
        logger=logger,
    )
    initialize_schema(manager.sqlite, logger)
    yield manager
    manager.close()


@pytest.fixture
def cloud_db(tmp_path: Path, logger: StructuredLogger, fake_supabase: FakeSupabaseClient):
    """A DatabaseManager whose Supabase client is the in-memory fake."""
    manager = DatabaseManager(
        supabase_url="",
        supabase_key="",
        sqlite_path=tmp_path / "cloud-cache.db",
        logger=logger,
        supabase_client=fake_supabase,
    )
    yield manager
    manager.close()


@pytest.fixture
def memory_adapter(logger: StructuredLogger) -> MemoryAdapter:
    return MemoryAdapter(logger)


@pytest.fixture
def sqlite_adapter(db: DatabaseManager, logger: StructuredLogger) -> SQLiteAdapter:
    return SQLiteAdapter(db, logger)


@pytest.fixture(params=["memory", "sqlite"])
def adapter(request, logger: StructuredLogger):
    """Each local adapter in turn, for contract tests."""
    if request.param == "memory":
        return MemoryAdapter(logger, demo_tenant_id=None)
    return request.getfixturevalue("sqlite_adapter")


@pytest.fixture
def settings(db: DatabaseManager, logger: StructuredLogger) -> AppSettingsService:
    return AppSettingsService(db, logger)


@pytest.fixture
def factory(db, config, settings, logger) -> RepositoryFactory:
    factory = RepositoryFactory(
        db,
        config,
        settings,
        logger,
        demo_seeder=seed_demo_data,
        initial_mode=StorageMode.LOCAL,
    )
    yield factory
    factory.close()


@pytest.fixture
def repos(factory: RepositoryFactory) -> RepositorySet:
    return factory.current


@pytest.fixture
def engine(factory, config, logger) -> RecurrenceEngine:
    return RecurrenceEngine(factory, config, logger)


@pytest.fixture
def import_service(factory, config, logger) -> ImportService:
    return ImportService(factory, config, logger)


@pytest.fixture
def export_service(factory, config, logger) -> ExportService:
    return ExportService(factory, config, logger)


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

@dataclass
class Ledger:
    """Ids of a minimal tenant ledger."""

    bank_category: str
    card_category: str
    bills_group: str
    rent_category: str
    salary_category: str
    checking: str
    savings: str
    card: str


def build_ledger(repos: RepositorySet, tenant_id: str = TENANT) -> Ledger:
    bank = repos.account_categories.create(
        {"name": "Bank", "type": AccountType.ASSET, "display_order": 2}, tenant_id, ACTOR
    )
    credit = repos.account_categories.create(
        {"name": "Credit Card", "type": AccountType.LIABILITY, "display_order": 1}, tenant_id, ACTOR
    )
    bills = repos.transaction_groups.create({"name": "Bills"}, tenant_id, ACTOR)
    rent = repos.transaction_categories.create(
        {"name": "Rent", "group_id": bills.id, "type": TransactionType.EXPENSE}, tenant_id, ACTOR
    )
    salary = repos.transaction_categories.create(
        {"name": "Salary", "group_id": bills.id, "type": TransactionType.INCOME}, tenant_id, ACTOR
    )
    checking = repos.accounts.create(
        {"name": "Checking", "category_id": bank.id, "open_balance": 1000.0, "display_order": 3},
        tenant_id,
        ACTOR,
    )
    savings = repos.accounts.create(
        {"name": "Savings", "category_id": bank.id, "display_order": 2}, tenant_id, ACTOR
    )
    card = repos.accounts.create(
        {"name": "Visa", "category_id": credit.id, "display_order": 1}, tenant_id, ACTOR
    )
    return Ledger(
        bank_category=str(bank.id),
        card_category=str(credit.id),
        bills_group=str(bills.id),
        rent_category=str(rent.id),
        salary_category=str(salary.id),
        checking=str(checking.id),
        savings=str(savings.id),
        card=str(card.id),
    )


@pytest.fixture
def ledger(repos: RepositorySet) -> Ledger:
    return build_ledger(repos)


def make_recurring(
    repos: RepositorySet,
    ledger: Ledger,
    *,
    tenant_id: str = TENANT,
    **overrides,
):
    """Create a monthly rent recurring, auto-apply on, with *overrides*."""
    data = {
        "name": "Rent",
        "source_account_id": ledger.checking,
        "category_id": ledger.rent_category,
        "amount": 1200.0,
        "type": TransactionType.EXPENSE,
        "next_occurrence_date": dt.date(2025, 1, 1),
        "auto_apply_enabled": True,
    }
    data.update(overrides)
    return repos.recurrings.create(data, tenant_id, ACTOR)


def new_id() -> str:
    return str(uuid.uuid4())
