"""
Storage Mode Readiness Checks.

Diagnostics only: a failed check never blocks a mode switch.  The
factory attaches the report to ``ModeSwitchResult`` and copies its
warnings into the switch warning.
"""

from __future__ import annotations

import sqlite3

from budgeteer.config import AppConfig
from budgeteer.database import DatabaseManager
from budgeteer.models.enums import StorageMode
from budgeteer.models.service_models import ModeValidation


def validate_mode(
    mode: StorageMode | str, db: DatabaseManager, config: AppConfig
) -> ModeValidation:
    """Report whether *mode* is supported and currently usable."""
    try:
        target = StorageMode(mode)
    except ValueError:
        return ModeValidation(
            mode=StorageMode.DEMO,
            is_supported=False,
            is_available=False,
            errors=[f"Unknown storage mode: {mode}"],
        )

    if target == StorageMode.CLOUD:
        return _validate_cloud(db, config)
    if target == StorageMode.LOCAL:
        return _validate_local(db)
    return ModeValidation(
        mode=StorageMode.DEMO,
        requirements=["In-memory storage (always available)"],
    )


def _validate_cloud(db: DatabaseManager, config: AppConfig) -> ModeValidation:
    result = ModeValidation(
        mode=StorageMode.CLOUD,
        requirements=["Supabase project URL and anon key", "Network connection"],
    )
    if not config.has_cloud_credentials:
        result.warnings.append(
            "Supabase credentials are not configured; cloud operations "
            "will report the backend unavailable."
        )
    if not db.is_online:
        result.is_available = False
        result.warnings.append("Supabase client is offline.")
    return result


def _validate_local(db: DatabaseManager) -> ModeValidation:
    result = ModeValidation(
        mode=StorageMode.LOCAL,
        requirements=["Writable SQLite database file"],
    )
    try:
        db.sqlite.execute("SELECT 1").fetchone()
    except sqlite3.Error as exc:
        result.is_available = False
        result.errors.append(f"Local database is not usable: {exc}")
    return result


def recommended_mode(db: DatabaseManager, config: AppConfig) -> StorageMode:
    """Local first, then cloud when reachable, demo as the last resort."""
    for mode in (StorageMode.LOCAL, StorageMode.CLOUD):
        report = validate_mode(mode, db, config)
        if report.is_valid and report.is_available and not report.warnings:
            return mode
    return StorageMode.DEMO


def format_validation_report(result: ModeValidation) -> str:
    """Render a report as indented plain text for the CLI."""
    lines: list[str] = [
        f"Storage Mode: {result.mode.value.upper()}",
        f"Supported: {'Yes' if result.is_supported else 'No'}",
        f"Available: {'Yes' if result.is_available else 'No'}",
    ]
    for title, items in (
        ("Requirements", result.requirements),
        ("Warnings", result.warnings),
        ("Errors", result.errors),
    ):
        if items:
            lines.append("")
            lines.append(f"{title}:")
            lines.extend(f"  - {item}" for item in items)
    return "\n".join(lines)
