"""
Error Taxonomy.

Every failure the data layer reports is a :class:`BudgeteerError`.  The
subclasses are the semantic categories callers branch on:

- ``NotFoundError`` / ``ValidationError`` / ``ReferentialError`` are
  user-correctable and never retried automatically.
- ``BackendUnavailableError`` is the only retryable kind; the retry policy
  belongs to the caller.
- ``ConflictError`` asks the caller to re-fetch and re-apply.
- ``MaterializationFailure`` is recorded on the Recurring by the engine
  and reported in its result, never raised out of a scan.
"""

from __future__ import annotations

from typing import Optional, Union

DetailValue = Union[str, int, float, bool, None]


class BudgeteerError(Exception):
    """Base class for all data-layer errors.

    Attributes:
        code: Stable machine-readable error code.
        details: Flat context mapping (table, id, field, ...).
        is_retryable: Whether repeating the same call may succeed.
    """

    code: str = "UNKNOWN_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        details: Optional[dict[str, DetailValue]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, DetailValue] = dict(details or {})

    def to_dict(self) -> dict[str, object]:
        """Serialise for reports and log lines."""
        return {
            "error": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "is_retryable": self.is_retryable,
        }


class NotFoundError(BudgeteerError):
    """Row absent, soft-deleted, or owned by another tenant.

    Wrong-tenant access deliberately reports the same error as a missing
    id so tenants cannot be enumerated.
    """

    code = "RECORD_NOT_FOUND"


class ValidationError(BudgeteerError):
    """Row fails a schema, type, or required-field check before a write."""

    code = "INVALID_DATA"


class ReferentialError(BudgeteerError):
    """A foreign id does not resolve."""

    code = "REFERENTIAL_INTEGRITY_ERROR"

    def __init__(
        self,
        table: str,
        field: str,
        value: str,
        *,
        details: Optional[dict[str, DetailValue]] = None,
    ) -> None:
        merged: dict[str, DetailValue] = {"table": table, "field": field, "value": value}
        merged.update(details or {})
        super().__init__(
            f"Referenced record not found: {table}.{field} = {value}",
            details=merged,
        )
        self.table = table
        self.field = field
        self.value = value


class ConflictError(BudgeteerError):
    """Optimistic concurrency check failed; the row changed since it was read."""

    code = "CONCURRENT_UPDATE"


class BackendUnavailableError(BudgeteerError):
    """Network or storage backend unreachable."""

    code = "SERVICE_UNAVAILABLE"
    is_retryable = True


class MaterializationFailure(BudgeteerError):
    """A recurring could not be turned into transactions."""

    code = "MATERIALIZATION_FAILED"


# ---------------------------------------------------------------------------
# Message helpers
# ---------------------------------------------------------------------------

def record_not_found(table: str, record_id: str) -> str:
    """Return message for a missing or invisible row."""
    return f"{table} record '{record_id}' not found"


def id_unavailable(table: str, record_id: str) -> str:
    """Return message for an insert that reuses an id.

    Worded the same whichever tenant owns the existing row.
    """
    return f"{table} id '{record_id}' is not available; use a different id"


def stale_record(table: str, record_id: str) -> str:
    """Return message for an optimistic concurrency violation."""
    return (
        f"{table} record '{record_id}' was modified by another writer; "
        "re-fetch and re-apply the change"
    )
