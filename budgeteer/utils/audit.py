"""
Structured Audit Logging Utility.

Every state change in the data layer (writes, soft deletes, restores,
mode switches, recurring materializations) is logged as a validated
JSON object through :func:`log_audit_event`.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from budgeteer.errors import DetailValue
from budgeteer.logger import StructuredLogger

__all__ = ["AuditEvent", "log_audit_event"]


class AuditEvent(BaseModel):
    """Schema-validated representation of a single audit trail entry."""

    timestamp: str
    action: str
    entity_type: str
    entity_id: str
    tenant_id: Optional[str] = None
    actor_id: str
    details: dict[str, DetailValue] = Field(default_factory=dict)


def log_audit_event(
    logger: StructuredLogger,
    action: str,
    entity_type: str,
    entity_id: str,
    actor_id: str,
    tenant_id: Optional[str] = None,
    details: Optional[dict[str, DetailValue]] = None,
) -> AuditEvent:
    """Log a structured JSON audit event and return it.

    Args:
        logger: The logger instance to write to.
        action: What happened (``"CREATE"``, ``"SOFT_DELETE"``,
            ``"MODE_SWITCH"``, ``"MATERIALIZE"``, ...).
        entity_type: Table or subsystem affected.
        entity_id: Primary key of the affected entity.
        actor_id: Who performed the action.
        tenant_id: Tenant the entity belongs to, when applicable.
        details: Optional flat context (old/new values, counts).
    """
    event = AuditEvent(
        timestamp=datetime.now(timezone.utc).isoformat(),
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        tenant_id=tenant_id,
        actor_id=actor_id,
        details=details or {},
    )
    logger.info("AUDIT: %s", json.dumps(event.model_dump(), default=str))
    return event
