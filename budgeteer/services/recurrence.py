"""
Interval Arithmetic for Recurrings.

Pure date helpers shared by the recurrence engine, the CLI and the
import validator.  Month arithmetic uses ``dateutil.relativedelta``,
which clamps to the last day of shorter months (Jan 31 + 1 month is
Feb 28 or Feb 29).
"""

from __future__ import annotations

import datetime as dt
from typing import Optional

from dateutil.relativedelta import relativedelta

from budgeteer.models.recurring import MAX_INTERVAL_MONTHS, MIN_INTERVAL_MONTHS

_INTERVAL_LABELS: dict[int, str] = {
    1: "Monthly",
    3: "Quarterly",
    6: "Semi-annually",
    12: "Annually",
}

_INTERVAL_SHORT_LABELS: dict[int, str] = {
    1: "Monthly",
    3: "Quarterly",
    6: "Semi-annual",
    12: "Annual",
}


# ---------------------------------------------------------------------------
# Month arithmetic
# ---------------------------------------------------------------------------

def add_months(value: dt.date, months: int) -> dt.date:
    """Shift *value* by whole months, clamping to the end of the month."""
    return value + relativedelta(months=months)


def months_between(start: dt.date, end: dt.date) -> int:
    """Whole months ``m`` such that ``add_months(start, m) <= end``.

    Returns 0 when *end* precedes *start*.
    """
    if end <= start:
        return 0
    delta = relativedelta(end, start)
    months = delta.years * 12 + delta.months
    # relativedelta counts Jan 31 -> Feb 28 as 0 months; clamped arithmetic
    # already reaches Feb 28 after one.
    if add_months(start, months + 1) <= end:
        months += 1
    return months


def occurrences_due(next_date: dt.date, today: dt.date, interval_months: int) -> int:
    """How many scheduled occurrences fall on or before *today*."""
    if next_date > today:
        return 0
    return months_between(next_date, today) // interval_months + 1


def calculate_next_occurrence(
    current: dt.date, interval_months: int, *, periods: int = 1
) -> dt.date:
    """The occurrence *periods* intervals after *current*."""
    return add_months(current, interval_months * periods)


def calculate_future_occurrences(
    start: dt.date, interval_months: int, count: int
) -> list[dt.date]:
    """The next *count* occurrences after *start* (exclusive)."""
    occurrences: list[dt.date] = []
    current = start
    for _ in range(max(0, count)):
        current = add_months(current, interval_months)
        occurrences.append(current)
    return occurrences


# ---------------------------------------------------------------------------
# Due / overdue
# ---------------------------------------------------------------------------

def is_due(
    next_date: dt.date,
    today: dt.date,
    *,
    date_flexible: bool = False,
    flex_window_days: int = 0,
) -> bool:
    """``True`` when the occurrence may be materialized today.

    Date-flexible recurrings open *flex_window_days* early.
    """
    window = dt.timedelta(days=flex_window_days if date_flexible else 0)
    return next_date - window <= today


def is_overdue(
    next_date: dt.date,
    today: dt.date,
    *,
    date_flexible: bool = False,
    flex_window_days: int = 0,
) -> bool:
    """``True`` once the occurrence (plus any flexibility window) has passed."""
    window = dt.timedelta(days=flex_window_days if date_flexible else 0)
    return today > next_date + window


def days_until(next_date: dt.date, today: dt.date) -> int:
    """Signed day count; negative for past occurrences."""
    return (next_date - today).days


def next_occurrence_description(next_date: dt.date, today: dt.date) -> str:
    days = days_until(next_date, today)
    if days == 0:
        return "Due today"
    if days == 1:
        return "Due tomorrow"
    if days == -1:
        return "Due yesterday"
    if days < 0:
        return f"Due {-days} days ago"
    return f"Due in {days} days"


# ---------------------------------------------------------------------------
# Interval validation and labels
# ---------------------------------------------------------------------------

def validate_interval(interval_months: int) -> Optional[str]:
    """Return an error message, or ``None`` when the interval is allowed."""
    if interval_months < MIN_INTERVAL_MONTHS:
        return f"Interval months must be at least {MIN_INTERVAL_MONTHS}"
    if interval_months > MAX_INTERVAL_MONTHS:
        return f"Interval months cannot exceed {MAX_INTERVAL_MONTHS}"
    return None


def interval_display_text(interval_months: int) -> str:
    return _INTERVAL_LABELS.get(interval_months, f"Every {interval_months} months")


def interval_short_text(interval_months: int) -> str:
    return _INTERVAL_SHORT_LABELS.get(interval_months, f"{interval_months}mo")
