"""
Local SQLite Schema and Migrations.

Defines the canonical schema of the local store and the single entry
point, :func:`initialize_schema`, that brings any database up to
:data:`CURRENT_SCHEMA_VERSION` before the local adapter serves a request.

Migration Strategy
~~~~~~~~~~~~~~~~~~
- **Fresh databases** (version 0): every table is created in one shot
  from :data:`_TABLE_DEFINITIONS`, which always describes the latest
  version.
- **Existing databases** (version N > 0): the migrations registered in
  :data:`_MIGRATIONS` for versions ``(N, CURRENT]`` run in ascending
  order.  Migrations are additive only (``ADD COLUMN``, ``CREATE INDEX``);
  nothing is ever dropped or rewritten.
- The whole upgrade plus the version bump runs in one transaction.  On
  failure it rolls back to version N and the next startup retries.

Adding a New Migration
~~~~~~~~~~~~~~~~~~~~~~
1. Bump :data:`CURRENT_SCHEMA_VERSION`.
2. Update the DDL in :data:`_TABLE_DEFINITIONS` (for fresh installs).
3. Write ``_migrate_vN_to_vN+1()`` guarded by :func:`_column_exists`.
4. Register it in :data:`_MIGRATIONS`.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable

from budgeteer.logger import StructuredLogger

__all__ = [
    "BOOLEAN_COLUMNS",
    "CURRENT_SCHEMA_VERSION",
    "ENTITY_TABLES",
    "JSON_COLUMNS",
    "get_schema_version",
    "initialize_schema",
    "table_columns",
]

# ---------------------------------------------------------------------------
# Schema version -- bump this whenever a migration is added.
# ---------------------------------------------------------------------------
CURRENT_SCHEMA_VERSION: int = 4

# Audit/scoping columns shared by every entity table.
_AUDIT_COLUMNS: str = """
        tenant_id TEXT NOT NULL,
        is_deleted INTEGER NOT NULL DEFAULT 0,
        created_at TEXT,
        created_by TEXT,
        updated_at TEXT,
        updated_by TEXT,
        deleted_at TEXT,
        deleted_by TEXT
"""

# ---------------------------------------------------------------------------
# DDL statements for every table, at the current version.
# ---------------------------------------------------------------------------
_TABLE_DEFINITIONS: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        version INTEGER NOT NULL,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # -- local preferences (storage mode, ...) -------------------------------
    """
    CREATE TABLE IF NOT EXISTS app_settings (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS account_categories (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        type TEXT NOT NULL CHECK (type IN ('Asset', 'Liability')),
        display_order INTEGER NOT NULL DEFAULT 0,
        color TEXT,
        icon TEXT,
        {_AUDIT_COLUMNS}
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS accounts (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        category_id TEXT NOT NULL REFERENCES account_categories(id),
        currency_code TEXT NOT NULL DEFAULT 'USD',
        open_balance REAL NOT NULL DEFAULT 0,
        balance REAL NOT NULL DEFAULT 0,
        notes TEXT,
        display_order INTEGER NOT NULL DEFAULT 0,
        {_AUDIT_COLUMNS}
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS transaction_groups (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        icon TEXT,
        color TEXT,
        display_order INTEGER NOT NULL DEFAULT 0,
        {_AUDIT_COLUMNS}
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS transaction_categories (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        group_id TEXT NOT NULL REFERENCES transaction_groups(id),
        type TEXT NOT NULL DEFAULT 'Expense',
        icon TEXT,
        color TEXT,
        display_order INTEGER NOT NULL DEFAULT 0,
        {_AUDIT_COLUMNS}
    )
    """,
    # transfer_id and recurring_id are provenance links, not enforced FKs:
    # transfer legs reference each other before both exist.
    f"""
    CREATE TABLE IF NOT EXISTS transactions (
        id TEXT PRIMARY KEY,
        name TEXT,
        amount REAL NOT NULL,
        date TEXT NOT NULL,
        account_id TEXT NOT NULL REFERENCES accounts(id),
        category_id TEXT REFERENCES transaction_categories(id),
        type TEXT NOT NULL DEFAULT 'Expense'
            CHECK (type IN ('Expense', 'Income', 'Transfer', 'Adjustment', 'Initial', 'Refund')),
        transfer_account_id TEXT REFERENCES accounts(id),
        transfer_id TEXT,
        recurring_id TEXT,
        tags TEXT NOT NULL DEFAULT '[]',
        payee_name TEXT,
        description TEXT,
        notes TEXT,
        is_void INTEGER NOT NULL DEFAULT 0,
        {_AUDIT_COLUMNS}
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS recurrings (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        source_account_id TEXT NOT NULL REFERENCES accounts(id),
        transfer_account_id TEXT REFERENCES accounts(id),
        category_id TEXT REFERENCES transaction_categories(id),
        amount REAL,
        type TEXT NOT NULL DEFAULT 'Expense',
        recurring_type TEXT NOT NULL DEFAULT 'Standard'
            CHECK (recurring_type IN ('Standard', 'Transfer', 'CreditCardPayment')),
        description TEXT,
        payee_name TEXT,
        notes TEXT,
        currency_code TEXT NOT NULL DEFAULT 'USD',
        interval_months INTEGER NOT NULL DEFAULT 1,
        next_occurrence_date TEXT NOT NULL,
        end_date TEXT,
        is_active INTEGER NOT NULL DEFAULT 1,
        is_amount_flexible INTEGER NOT NULL DEFAULT 0,
        is_date_flexible INTEGER NOT NULL DEFAULT 0,
        auto_apply_enabled INTEGER NOT NULL DEFAULT 0,
        last_auto_applied_at TEXT,
        last_executed_at TEXT,
        failed_attempts INTEGER NOT NULL DEFAULT 0,
        max_failed_attempts INTEGER NOT NULL DEFAULT 3,
        {_AUDIT_COLUMNS}
    )
    """,
    *[
        f"CREATE INDEX IF NOT EXISTS idx_{table}_tenant ON {table}(tenant_id, is_deleted)"
        for table in (
            "account_categories",
            "accounts",
            "transaction_groups",
            "transaction_categories",
            "transactions",
            "recurrings",
        )
    ],
    "CREATE INDEX IF NOT EXISTS idx_transactions_occurrence ON transactions(recurring_id, date)",
    "CREATE INDEX IF NOT EXISTS idx_recurrings_next_occurrence ON recurrings(tenant_id, next_occurrence_date)",
]

ENTITY_TABLES: tuple[str, ...] = (
    "account_categories",
    "accounts",
    "transaction_groups",
    "transaction_categories",
    "transactions",
    "recurrings",
)

# SQLite has no boolean or array types; the adapter converts these columns
# on the way in and out.
BOOLEAN_COLUMNS: dict[str, frozenset[str]] = {
    table: frozenset({"is_deleted"}) for table in ENTITY_TABLES
}
BOOLEAN_COLUMNS["transactions"] = frozenset({"is_deleted", "is_void"})
BOOLEAN_COLUMNS["recurrings"] = frozenset({
    "is_deleted",
    "is_active",
    "is_amount_flexible",
    "is_date_flexible",
    "auto_apply_enabled",
})

JSON_COLUMNS: dict[str, frozenset[str]] = {
    "transactions": frozenset({"tags"}),
}


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------

def _ensure_version_table(conn: sqlite3.Connection) -> None:
    """Create the ``schema_version`` table if it does not yet exist."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            version INTEGER NOT NULL,
            applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    conn.commit()


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Return the stored schema version, or ``0`` for a fresh database."""
    _ensure_version_table(conn)
    row = conn.execute("SELECT version FROM schema_version WHERE id = 1").fetchone()
    return int(row[0]) if row is not None else 0


def _set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    """Upsert the single-row version tracker.  Does **not** commit."""
    conn.execute(
        """
        INSERT INTO schema_version (id, version) VALUES (1, ?)
        ON CONFLICT(id) DO UPDATE SET version = excluded.version,
                                      applied_at = CURRENT_TIMESTAMP
        """,
        (version,),
    )


def _create_all_tables(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Execute every DDL statement.  Does **not** commit."""
    for ddl in _TABLE_DEFINITIONS:
        conn.execute(ddl)
    logger.info(f"{len(_TABLE_DEFINITIONS)} schema statements applied.")


_ALLOWED_TABLES: frozenset[str] = frozenset({"schema_version", "app_settings", *ENTITY_TABLES})
"""Tables that may appear in dynamic PRAGMA queries (injection guard)."""


def table_columns(conn: sqlite3.Connection, table: str) -> list[str]:
    """Return the column names of *table* in declaration order.

    Raises:
        ValueError: If *table* is not in :data:`_ALLOWED_TABLES`.
    """
    if table not in _ALLOWED_TABLES:
        raise ValueError(
            f"Invalid table name: {table!r}. "
            f"Allowed tables: {sorted(_ALLOWED_TABLES)}"
        )
    cursor = conn.execute(f"PRAGMA table_info({table})")
    return [row[1] for row in cursor.fetchall()]


def _column_exists(conn: sqlite3.Connection, table: str, column: str) -> bool:
    return column in table_columns(conn, table)


def _add_column(
    conn: sqlite3.Connection,
    logger: StructuredLogger,
    table: str,
    column: str,
    definition: str,
) -> None:
    """``ALTER TABLE ... ADD COLUMN`` unless the column already exists."""
    if not _column_exists(conn, table, column):
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")
        logger.info(f"Added column {table}.{column}.")


def _migrate_v1_to_v2(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Add deletion audit columns so restore can clear who/when deleted."""
    for table in ENTITY_TABLES:
        _add_column(conn, logger, table, "deleted_at", "TEXT")
        _add_column(conn, logger, table, "deleted_by", "TEXT")
    logger.info("Migration v1→v2: deletion audit columns added.")


def _migrate_v2_to_v3(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Add auto-apply state to ``recurrings`` and provenance to ``transactions``."""
    recurring_columns: list[tuple[str, str]] = [
        ("recurring_type", "TEXT NOT NULL DEFAULT 'Standard'"),
        ("interval_months", "INTEGER NOT NULL DEFAULT 1"),
        ("is_amount_flexible", "INTEGER NOT NULL DEFAULT 0"),
        ("is_date_flexible", "INTEGER NOT NULL DEFAULT 0"),
        ("auto_apply_enabled", "INTEGER NOT NULL DEFAULT 0"),
        ("last_auto_applied_at", "TEXT"),
        ("failed_attempts", "INTEGER NOT NULL DEFAULT 0"),
        ("max_failed_attempts", "INTEGER NOT NULL DEFAULT 3"),
    ]
    for column, definition in recurring_columns:
        _add_column(conn, logger, "recurrings", column, definition)
    _add_column(conn, logger, "transactions", "recurring_id", "TEXT")
    logger.info("Migration v2→v3: recurring auto-apply columns added.")


def _migrate_v3_to_v4(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Create tenant and occurrence-lookup indexes."""
    index_statements: list[str] = [
        f"CREATE INDEX IF NOT EXISTS idx_{table}_tenant ON {table}(tenant_id, is_deleted)"
        for table in ENTITY_TABLES
    ]
    index_statements += [
        "CREATE INDEX IF NOT EXISTS idx_transactions_occurrence ON transactions(recurring_id, date)",
        "CREATE INDEX IF NOT EXISTS idx_recurrings_next_occurrence ON recurrings(tenant_id, next_occurrence_date)",
    ]
    for stmt in index_statements:
        conn.execute(stmt)
    logger.info(f"Migration v3→v4: created {len(index_statements)} indexes.")


# ---------------------------------------------------------------------------
# Migration registry -- maps *target* version to its migration function.
# ---------------------------------------------------------------------------

MigrationFunc = Callable[[sqlite3.Connection, StructuredLogger], None]

_MIGRATIONS: dict[int, MigrationFunc] = {
    2: _migrate_v1_to_v2,
    3: _migrate_v2_to_v3,
    4: _migrate_v3_to_v4,
}


def _run_incremental_migrations(
    conn: sqlite3.Connection,
    logger: StructuredLogger,
    from_version: int,
    to_version: int,
) -> None:
    """Run registered migrations in ``(from_version, to_version]``, ascending.

    Does **not** commit.
    """
    versions_to_apply: list[int] = sorted(
        v for v in _MIGRATIONS if from_version < v <= to_version
    )

    if not versions_to_apply:
        logger.info("No incremental migrations to apply.")
        return

    logger.info(
        f"Applying {len(versions_to_apply)} migration(s): "
        f"{' → '.join(str(v) for v in versions_to_apply)}"
    )
    for version in versions_to_apply:
        logger.info(f"Running migration to version {version} …")
        _MIGRATIONS[version](conn, logger)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def initialize_schema(conn: sqlite3.Connection, logger: StructuredLogger) -> int:
    """Bring the local database up to :data:`CURRENT_SCHEMA_VERSION`.

    Idempotent; called at startup and again by the local adapter before
    its first operation.

    Args:
        conn: An open SQLite connection.
        logger: Structured logger for progress output.

    Returns:
        The schema version after initialisation.

    Raises:
        sqlite3.Error: If the upgrade fails.  The database is left at its
            previous version.
    """
    current: int = get_schema_version(conn)

    if current >= CURRENT_SCHEMA_VERSION:
        logger.debug(f"Schema is up to date (version {current}).")
        return current

    logger.info(
        f"Upgrading schema from version {current} to {CURRENT_SCHEMA_VERSION} …"
    )

    try:
        if current == 0:
            _create_all_tables(conn, logger)
        else:
            _run_incremental_migrations(conn, logger, current, CURRENT_SCHEMA_VERSION)

        _set_schema_version(conn, CURRENT_SCHEMA_VERSION)
        conn.commit()
    except Exception:
        conn.rollback()
        logger.error(f"Schema migration failed; rolled back to version {current}.")
        raise

    logger.info(f"Schema initialised at version {CURRENT_SCHEMA_VERSION}.")
    return CURRENT_SCHEMA_VERSION
