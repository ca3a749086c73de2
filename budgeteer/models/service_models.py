"""
Service Layer Data Transfer Objects.

Pydantic models returned across the service boundary: mode switching,
recurrence scans and import/export reports.
"""

from __future__ import annotations

import datetime as dt
from typing import Optional

from pydantic import BaseModel, Field, JsonValue

from budgeteer.models.enums import OutcomeStatus, RowClassification, StorageMode

__all__ = [
    "ExportDocument",
    "ImportSummary",
    "ModeSwitchResult",
    "ModeValidation",
    "PendingRecurring",
    "ProcessResult",
    "RecurringOutcome",
    "RowError",
    "RowValidation",
    "TableImportCounts",
    "ValidationReport",
]


# ---------------------------------------------------------------------------
# Storage mode
# ---------------------------------------------------------------------------

class ModeValidation(BaseModel):
    """Readiness report for one storage mode."""

    mode: StorageMode
    is_supported: bool = True
    is_available: bool = True
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    requirements: list[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.is_supported and not self.errors


class ModeSwitchResult(BaseModel):
    """Outcome of ``RepositoryFactory.switch_mode``."""

    previous: StorageMode
    current: StorageMode
    changed: bool
    warning: Optional[str] = None
    validation: Optional[ModeValidation] = None


# ---------------------------------------------------------------------------
# Recurrence engine
# ---------------------------------------------------------------------------

class RecurringOutcome(BaseModel):
    """What happened to one recurring during a scan."""

    recurring_id: str
    name: str
    status: OutcomeStatus
    occurrence_date: Optional[dt.date] = None
    next_occurrence_date: Optional[dt.date] = None
    transaction_ids: list[str] = Field(default_factory=list)
    amount: Optional[float] = None
    skipped_occurrences: int = 0
    reason: Optional[str] = None


class ProcessResult(BaseModel):
    """Return value of ``process_due_recurrings``."""

    applied: list[RecurringOutcome] = Field(default_factory=list)
    skipped: list[RecurringOutcome] = Field(default_factory=list)
    failed: list[RecurringOutcome] = Field(default_factory=list)

    def add(self, outcome: RecurringOutcome) -> None:
        bucket = {
            OutcomeStatus.APPLIED: self.applied,
            OutcomeStatus.SKIPPED: self.skipped,
            OutcomeStatus.FAILED: self.failed,
        }[outcome.status]
        bucket.append(outcome)

    @property
    def transaction_ids(self) -> list[str]:
        return [tid for outcome in self.applied for tid in outcome.transaction_ids]


class PendingRecurring(BaseModel):
    """A due recurring awaiting manual confirmation."""

    recurring_id: str
    name: str
    next_occurrence_date: dt.date
    reason: str
    is_overdue: bool = False


# ---------------------------------------------------------------------------
# Import / export
# ---------------------------------------------------------------------------

class RowValidation(BaseModel):
    """Validator verdict for one payload row."""

    table: str
    index: int
    row_id: Optional[str] = None
    classification: RowClassification
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    row: dict[str, JsonValue] = Field(default_factory=dict)


class ValidationReport(BaseModel):
    """Structured result of ``ImportValidator.validate``."""

    format_version: str
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    rows: list[RowValidation] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors and all(
            r.classification != RowClassification.ERROR for r in self.rows
        )

    def rows_for(self, table: str) -> list[RowValidation]:
        return [r for r in self.rows if r.table == table]

    def counts(self) -> dict[RowClassification, int]:
        totals = {c: 0 for c in RowClassification}
        for r in self.rows:
            totals[r.classification] += 1
        return totals


class RowError(BaseModel):
    """One skipped row in an import."""

    table: str
    index: int
    row_id: Optional[str] = None
    errors: list[str]


class TableImportCounts(BaseModel):
    created: int = 0
    updated: int = 0
    skipped: int = 0


class ImportSummary(BaseModel):
    """Partial-success import report."""

    succeeded: int = 0
    skipped: int = 0
    created: int = 0
    updated: int = 0
    errors: list[RowError] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    per_table: dict[str, TableImportCounts] = Field(default_factory=dict)
    validate_only: bool = False


class ExportDocument(BaseModel):
    """Serialisable export envelope."""

    format_version: str
    exported_at: dt.datetime
    tenant_id: str
    tables: dict[str, list[dict[str, JsonValue]]] = Field(default_factory=dict)
