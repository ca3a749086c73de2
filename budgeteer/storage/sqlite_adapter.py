"""
SQLite Storage Adapter (local mode).

Runs against the connection owned by :class:`~budgeteer.database.DatabaseManager`.
The schema is brought to the current version in the constructor, so no
operation can reach a database that has pending migrations.

Column names are validated against ``PRAGMA table_info`` before they are
interpolated into SQL; values always travel as ``?`` parameters.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Mapping
from contextlib import suppress
from typing import Optional

from budgeteer.database import DatabaseManager
from budgeteer.errors import (
    BackendUnavailableError,
    ReferentialError,
    ValidationError,
    id_unavailable,
)
from budgeteer.logger import StructuredLogger
from budgeteer.models.enums import StorageMode
from budgeteer.schema import (
    BOOLEAN_COLUMNS,
    ENTITY_TABLES,
    JSON_COLUMNS,
    initialize_schema,
    table_columns,
)
from budgeteer.storage.base import Clock, Filters, Row, StorageAdapter, utc_now
from budgeteer.utils.string_helpers import JsonValue


class SQLiteAdapter(StorageAdapter):
    """Durable single-device store."""

    MODE = StorageMode.LOCAL

    def __init__(
        self,
        db: DatabaseManager,
        logger: StructuredLogger,
        *,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(logger, clock=clock)
        self._db = db
        with db.write_lock:
            initialize_schema(db.sqlite, logger)
            self._columns: dict[str, frozenset[str]] = {
                table: frozenset(table_columns(db.sqlite, table))
                for table in ENTITY_TABLES
            }

    @property
    def sqlite(self) -> sqlite3.Connection:
        return self._db.sqlite

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    def list(
        self,
        table: str,
        tenant_id: str,
        filters: Optional[Filters] = None,
        include_deleted: bool = False,
    ) -> list[Row]:
        self._check_columns(table, filters or {})
        clauses: list[str] = ["tenant_id = ?"]
        params: list[object] = [tenant_id]
        if not include_deleted:
            clauses.append("is_deleted = 0")
        for column, value in (filters or {}).items():
            if value is None:
                clauses.append(f"{column} IS NULL")
            else:
                clauses.append(f"{column} = ?")
                params.append(self._to_sql(table, column, value))

        rows = self._fetch(
            f"SELECT * FROM {table} WHERE {' AND '.join(clauses)}",
            params,
            operation=f"list ({table})",
        )
        return [self._from_sql(table, row) for row in rows]

    def get_by_id(self, table: str, record_id: str, tenant_id: str) -> Row:
        self._check_columns(table, {})
        rows = self._fetch(
            f"SELECT * FROM {table} WHERE id = ? AND tenant_id = ?",
            [record_id, tenant_id],
            operation=f"get_by_id ({table})",
        )
        if not rows:
            raise self._not_found(table, record_id)
        return self._from_sql(table, rows[0])

    def insert(self, table: str, row: Mapping[str, JsonValue]) -> Row:
        prepared = self._prepare_insert(row)
        self._check_columns(table, prepared)
        columns = list(prepared)
        placeholders = ", ".join("?" for _ in columns)
        params = [self._to_sql(table, c, prepared[c]) for c in columns]
        self._write(
            table,
            str(prepared["id"]),
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
            params,
        )
        return self.get_by_id(table, str(prepared["id"]), str(prepared["tenant_id"]))

    def update(
        self,
        table: str,
        record_id: str,
        patch: Mapping[str, JsonValue],
        tenant_id: str,
        *,
        expected_updated_at: Optional[str] = None,
    ) -> Row:
        # Optimistic concurrency is a cloud-only guarantee; the token is ignored.
        prepared = self._prepare_patch(patch)
        self._check_columns(table, prepared)
        assignments = ", ".join(f"{column} = ?" for column in prepared)
        params = [self._to_sql(table, c, v) for c, v in prepared.items()]
        params += [record_id, tenant_id]
        changed = self._write(
            table,
            record_id,
            f"UPDATE {table} SET {assignments} WHERE id = ? AND tenant_id = ?",
            params,
        )
        if changed == 0:
            raise self._not_found(table, record_id)
        return self.get_by_id(table, record_id, tenant_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _check_columns(self, table: str, row: Mapping[str, object]) -> None:
        known = self._columns.get(table)
        if known is None:
            raise ValidationError(
                f"Unknown table: {table!r}", details={"table": table}
            )
        unknown = sorted(set(row) - known)
        if unknown:
            raise ValidationError(
                f"Unknown column(s) for {table}: {', '.join(unknown)}",
                details={"table": table, "field": unknown[0]},
            )

    def _fetch(
        self, sql: str, params: list[object], *, operation: str
    ) -> list[sqlite3.Row]:
        try:
            return self.sqlite.execute(sql, params).fetchall()
        except (sqlite3.OperationalError, sqlite3.ProgrammingError) as exc:
            self._logger.error("SQLite read failed for %s: %s", operation, exc)
            raise BackendUnavailableError(
                f"Local database unavailable: {exc}",
                details={"operation": operation},
            ) from exc

    def _write(
        self, table: str, record_id: str, sql: str, params: list[object]
    ) -> int:
        """Execute one write and commit it.  Returns the affected row count."""
        with self._db.write_lock:
            try:
                cursor = self.sqlite.execute(sql, params)
                self.sqlite.commit()
                return cursor.rowcount
            except sqlite3.IntegrityError as exc:
                self.sqlite.rollback()
                raise self._integrity_error(table, record_id, exc) from exc
            except (sqlite3.OperationalError, sqlite3.ProgrammingError) as exc:
                with suppress(sqlite3.ProgrammingError):
                    self.sqlite.rollback()
                self._logger.error("SQLite write failed for %s/%s: %s", table, record_id, exc)
                raise BackendUnavailableError(
                    f"Local database unavailable: {exc}",
                    details={"table": table, "record_id": record_id},
                ) from exc

    @staticmethod
    def _integrity_error(
        table: str, record_id: str, exc: sqlite3.IntegrityError
    ) -> Exception:
        message = str(exc)
        if "UNIQUE" in message or "PRIMARY KEY" in message:
            return ValidationError(
                id_unavailable(table, record_id),
                details={"table": table, "record_id": record_id},
            )
        if "FOREIGN KEY" in message:
            return ReferentialError(table, "foreign key", record_id)
        return ValidationError(
            f"Constraint violated on {table}: {message}",
            details={"table": table, "record_id": record_id},
        )

    @staticmethod
    def _to_sql(table: str, column: str, value: JsonValue) -> object:
        if column in JSON_COLUMNS.get(table, frozenset()):
            return json.dumps(value if value is not None else [])
        if isinstance(value, bool):
            return int(value)
        return value

    @staticmethod
    def _from_sql(table: str, row: sqlite3.Row) -> Row:
        data: Row = dict(row)
        for column in BOOLEAN_COLUMNS.get(table, frozenset()):
            if column in data and data[column] is not None:
                data[column] = bool(data[column])
        for column in JSON_COLUMNS.get(table, frozenset()):
            raw = data.get(column)
            data[column] = json.loads(raw) if isinstance(raw, str) and raw else []
        return data
