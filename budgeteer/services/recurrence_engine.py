"""
Recurrence Engine.

Turns due Recurring templates into concrete transactions.

Scheduler entry point is :meth:`RecurrenceEngine.process_due_recurrings`.
A scan never raises for a single bad recurring: the failure is wrapped in
``MaterializationFailure``, counted on the recurring's ``failed_attempts``
and reported in ``ProcessResult.failed`` while the scan moves on.

Idempotency key is ``(recurring_id, occurrence date)``.  Before writing,
the engine looks up transactions already generated for the occurrence
(soft-deleted ones included) and only creates what is missing, so a
retry after a crash between the two legs of a transfer completes the
pair instead of duplicating it.

Balances are never posted by the engine.  An account's balance is its
opening balance plus its live transactions (see
``AccountRepository.running_balance``).
"""

from __future__ import annotations

import datetime as dt
import uuid
from collections.abc import Callable
from typing import Optional

from budgeteer.config import AppConfig
from budgeteer.errors import (
    BudgeteerError,
    MaterializationFailure,
    NotFoundError,
    ValidationError,
)
from budgeteer.factory import RepositoryFactory, RepositorySet
from budgeteer.logger import StructuredLogger
from budgeteer.models.enums import (
    CatchUpPolicy,
    OutcomeStatus,
    RecurringType,
    TransactionType,
)
from budgeteer.models.recurring import Recurring
from budgeteer.models.service_models import PendingRecurring, ProcessResult, RecurringOutcome
from budgeteer.services.base_service import BaseService
from budgeteer.services.recurrence import (
    calculate_next_occurrence,
    is_due,
    is_overdue,
    occurrences_due,
)
from budgeteer.utils.audit import log_audit_event

AmountEstimator = Callable[[Recurring], Optional[float]]

_PAST_END_DATE: str = "past end date"

# Transaction types booked as money coming in; every other type is an outflow.
_INFLOW_TYPES: frozenset[TransactionType] = frozenset({
    TransactionType.INCOME,
    TransactionType.REFUND,
})


class RecurrenceEngine(BaseService):
    """Materializes due recurrings against the active repository set."""

    def __init__(
        self,
        factory: RepositoryFactory,
        config: AppConfig,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(factory, logger)
        self._config = config

    # ------------------------------------------------------------------
    # Scheduler entry point
    # ------------------------------------------------------------------

    def process_due_recurrings(
        self,
        tenant_id: str,
        now: dt.datetime,
        *,
        actor_id: Optional[str] = None,
        amount_estimator: Optional[AmountEstimator] = None,
    ) -> ProcessResult:
        """Auto-apply every eligible due recurring of *tenant_id*.

        At most ``AUTO_APPLY_BATCH_SIZE`` recurrings are applied, oldest
        occurrence first; the rest are reported as skipped and picked up
        by the next scan.
        """
        repos = self.repos
        actor = actor_id or self._config.SYSTEM_ACTOR_ID
        today = now.date()
        result = ProcessResult()
        applied = 0

        for recurring in self._due(repos, tenant_id, today):
            amount, reason = self._auto_apply_amount(recurring, amount_estimator)
            if reason == _PAST_END_DATE:
                self._deactivate(repos, recurring, tenant_id, actor)
            if reason is None and applied >= self._config.AUTO_APPLY_BATCH_SIZE:
                reason = "batch limit reached; deferred to the next scan"
            if reason is not None:
                result.add(self._skipped(recurring, reason))
                continue

            outcome = self._materialize(
                repos, recurring, tenant_id, now, actor, amount, automatic=True
            )
            result.add(outcome)
            if outcome.status == OutcomeStatus.APPLIED:
                applied += 1

        self._logger.info(
            "Recurring scan for tenant %s: %d applied, %d skipped, %d failed.",
            tenant_id,
            len(result.applied),
            len(result.skipped),
            len(result.failed),
        )
        return result

    def list_pending_confirmation(
        self,
        tenant_id: str,
        now: dt.datetime,
        *,
        amount_estimator: Optional[AmountEstimator] = None,
    ) -> list[PendingRecurring]:
        """Due recurrings the scheduler will not apply on its own."""
        repos = self.repos
        today = now.date()
        window = self._config.DATE_FLEX_WINDOW_DAYS
        pending: list[PendingRecurring] = []
        for recurring in self._due(repos, tenant_id, today):
            _, reason = self._auto_apply_amount(recurring, amount_estimator)
            if reason is None or reason == _PAST_END_DATE:
                continue
            pending.append(
                PendingRecurring(
                    recurring_id=str(recurring.id),
                    name=recurring.name,
                    next_occurrence_date=recurring.next_occurrence_date,
                    reason=reason,
                    is_overdue=is_overdue(
                        recurring.next_occurrence_date,
                        today,
                        date_flexible=recurring.is_date_flexible,
                        flex_window_days=window,
                    ),
                )
            )
        return pending

    # ------------------------------------------------------------------
    # Manual operations
    # ------------------------------------------------------------------

    def apply_now(
        self,
        recurring_id: str,
        tenant_id: str,
        now: dt.datetime,
        *,
        actor_id: str,
        amount: Optional[float] = None,
    ) -> RecurringOutcome:
        """Confirm one occurrence by hand.

        Bypasses the auto-apply flag and the failed-attempt threshold.  A
        flexible recurring without a stored amount needs *amount*.

        Raises:
            NotFoundError: Unknown recurring.
            ValidationError: Inactive recurring, or no usable amount.
        """
        repos = self.repos
        recurring = repos.recurrings.find_by_id(recurring_id, tenant_id)
        if not recurring.is_active:
            raise ValidationError(
                f"Recurring '{recurring.name}' is not active",
                details={"recurring_id": recurring_id},
            )
        resolved = abs(amount) if amount is not None else recurring.amount
        if (
            resolved is None
            and recurring.recurring_type != RecurringType.CREDIT_CARD_PAYMENT
        ):
            raise ValidationError(
                f"Recurring '{recurring.name}' has a flexible amount; provide one",
                details={"recurring_id": recurring_id, "field": "amount"},
            )
        return self._materialize(
            repos, recurring, tenant_id, now, actor_id, resolved, automatic=False
        )

    def reset_failed_attempts(
        self, recurring_id: str, tenant_id: str, actor_id: str
    ) -> Recurring:
        """Re-enable auto-apply for a recurring that hit its failure ceiling."""
        return self.repos.recurrings.update(
            recurring_id, {"failed_attempts": 0}, tenant_id, actor_id
        )

    # ------------------------------------------------------------------
    # Selection and eligibility
    # ------------------------------------------------------------------

    def _due(
        self, repos: RepositorySet, tenant_id: str, today: dt.date
    ) -> list[Recurring]:
        window = self._config.DATE_FLEX_WINDOW_DAYS
        due = [
            r
            for r in repos.recurrings.list_active(tenant_id)
            if is_due(
                r.next_occurrence_date,
                today,
                date_flexible=r.is_date_flexible,
                flex_window_days=window,
            )
        ]
        return sorted(due, key=lambda r: (r.next_occurrence_date, r.name.lower()))

    def _auto_apply_amount(
        self, recurring: Recurring, estimator: Optional[AmountEstimator]
    ) -> tuple[Optional[float], Optional[str]]:
        """Return ``(amount, None)`` when eligible, else ``(None, reason)``.

        A flexible credit-card payment may return ``(None, None)``: the
        amount is then the card's outstanding balance.
        """
        if recurring.end_date and recurring.next_occurrence_date > recurring.end_date:
            return None, _PAST_END_DATE
        if not recurring.auto_apply_enabled:
            return None, "auto-apply disabled"
        if recurring.has_exhausted_attempts:
            return None, (
                f"failed {recurring.failed_attempts} of "
                f"{recurring.max_failed_attempts} attempts; reset required"
            )
        if not recurring.is_amount_flexible:
            return recurring.amount, None

        estimate = estimator(recurring) if estimator is not None else None
        if estimate is None:
            if recurring.amount is not None:
                return recurring.amount, None
            if recurring.recurring_type == RecurringType.CREDIT_CARD_PAYMENT:
                return None, None
            return None, "flexible amount needs confirmation"

        estimate = round(abs(estimate), 2)
        reference = recurring.amount
        if reference is not None:
            tolerance = reference * self._config.AMOUNT_TOLERANCE_PERCENT / 100
            if abs(estimate - reference) > tolerance:
                return None, (
                    f"estimated amount {estimate:.2f} is outside "
                    f"{self._config.AMOUNT_TOLERANCE_PERCENT:g}% of {reference:.2f}"
                )
        return estimate, None

    # ------------------------------------------------------------------
    # Materialization
    # ------------------------------------------------------------------

    def _materialize(
        self,
        repos: RepositorySet,
        recurring: Recurring,
        tenant_id: str,
        now: dt.datetime,
        actor_id: str,
        amount: Optional[float],
        *,
        automatic: bool,
    ) -> RecurringOutcome:
        """Create the occurrence(s) and advance the schedule.

        Any exception becomes a FAILED outcome; the recurring's date is
        left unchanged and ``failed_attempts`` is incremented.
        """
        recurring_id = str(recurring.id)
        today = now.date()
        try:
            self._validate_execution(repos, recurring, tenant_id)
            dates, next_date, skipped = self._plan(recurring, today)

            if recurring.recurring_type == RecurringType.CREDIT_CARD_PAYMENT:
                outstanding = self._outstanding(repos, recurring, tenant_id)
                if outstanding <= 0:
                    repos.recurrings.update(
                        recurring_id,
                        self._schedule_patch(recurring, next_date),
                        tenant_id,
                        actor_id,
                    )
                    return self._skipped(
                        recurring, "nothing outstanding on the card", next_date=next_date
                    )
                if recurring.is_amount_flexible:
                    amount = min(amount if amount is not None else outstanding, outstanding)

            if amount is None:
                raise MaterializationFailure(
                    f"No amount available for recurring '{recurring.name}'",
                    details={"recurring_id": recurring_id},
                )
            amount = round(abs(amount), 2)

            transaction_ids: list[str] = []
            for occurrence in dates:
                transaction_ids += self._materialize_occurrence(
                    repos, recurring, occurrence, amount, tenant_id, actor_id
                )

            # Only collapsed occurrences count against the failure ceiling.
            collapsed = skipped if self._config.CATCH_UP_POLICY == CatchUpPolicy.COLLAPSE else 0
            patch = self._schedule_patch(recurring, next_date)
            patch["failed_attempts"] = collapsed
            patch["last_executed_at"] = now
            if automatic:
                patch["last_auto_applied_at"] = now
            repos.recurrings.update(recurring_id, patch, tenant_id, actor_id)
        except Exception as exc:
            return self._record_failure(repos, recurring, tenant_id, actor_id, exc)

        log_audit_event(
            self._logger,
            "MATERIALIZE",
            "recurrings",
            recurring_id,
            actor_id,
            tenant_id,
            details={
                "occurrences": ",".join(d.isoformat() for d in dates),
                "transaction_ids": ",".join(transaction_ids),
                "next_occurrence_date": next_date.isoformat(),
                "skipped_occurrences": skipped,
                "automatic": automatic,
            },
        )
        return RecurringOutcome(
            recurring_id=recurring_id,
            name=recurring.name,
            status=OutcomeStatus.APPLIED,
            occurrence_date=dates[0],
            next_occurrence_date=next_date,
            transaction_ids=transaction_ids,
            amount=amount,
            skipped_occurrences=skipped,
        )

    def _plan(
        self, recurring: Recurring, today: dt.date
    ) -> tuple[list[dt.date], dt.date, int]:
        """Occurrence dates to create, the new next date, and the skip count."""
        start = recurring.next_occurrence_date
        interval = recurring.interval_months
        # Zero when a date-flexible recurring is applied inside its window.
        missed = max(0, occurrences_due(start, today, interval) - 1)
        policy = self._config.CATCH_UP_POLICY

        if policy == CatchUpPolicy.BACKFILL:
            dates = [
                calculate_next_occurrence(start, interval, periods=k)
                for k in range(missed + 1)
            ]
            if recurring.end_date:
                dates = [d for d in dates if d <= recurring.end_date] or [start]
            return dates, calculate_next_occurrence(start, interval, periods=missed + 1), 0
        if policy == CatchUpPolicy.ADVANCE_PAST_NOW:
            return [start], calculate_next_occurrence(start, interval, periods=missed + 1), missed
        # Collapse: the latest due occurrence stays pending for the next scan.
        next_date = calculate_next_occurrence(start, interval, periods=max(1, missed))
        return [start], next_date, max(0, missed - 1)

    @staticmethod
    def _schedule_patch(recurring: Recurring, next_date: dt.date) -> dict[str, object]:
        """Advance to *next_date*; a schedule that runs past its end date ends."""
        patch: dict[str, object] = {"next_occurrence_date": next_date}
        if recurring.end_date and next_date > recurring.end_date:
            patch["is_active"] = False
        return patch

    def _deactivate(
        self, repos: RepositorySet, recurring: Recurring, tenant_id: str, actor_id: str
    ) -> None:
        try:
            repos.recurrings.update(str(recurring.id), {"is_active": False}, tenant_id, actor_id)
        except BudgeteerError as exc:
            self._logger.error(
                "Could not deactivate ended recurring %s: %s", recurring.id, exc
            )

    def _materialize_occurrence(
        self,
        repos: RepositorySet,
        recurring: Recurring,
        occurrence: dt.date,
        amount: float,
        tenant_id: str,
        actor_id: str,
    ) -> list[str]:
        recurring_id = str(recurring.id)
        existing = repos.transactions.find_for_occurrence(recurring_id, occurrence, tenant_id)
        base: dict[str, object] = {
            "name": recurring.name,
            "date": occurrence,
            "category_id": recurring.category_id,
            "recurring_id": recurring_id,
            "payee_name": recurring.payee_name,
            "description": recurring.description,
            "notes": recurring.notes,
        }

        if not recurring.is_transfer:
            if existing:
                return [str(existing[0].id)]
            signed = amount if recurring.type in _INFLOW_TYPES else -amount
            created = repos.transactions.create(
                {
                    **base,
                    "amount": signed,
                    "account_id": recurring.source_account_id,
                    "type": recurring.type,
                },
                tenant_id,
                actor_id,
            )
            return [str(created.id)]

        source_account = recurring.source_account_id
        dest_account = str(recurring.transfer_account_id)
        by_account = {t.account_id: t for t in existing}
        source_leg = by_account.get(source_account)
        dest_leg = by_account.get(dest_account)

        # Reuse any id a surviving leg already points at.
        source_id = str(
            source_leg.id if source_leg
            else (dest_leg.transfer_id if dest_leg and dest_leg.transfer_id else uuid.uuid4())
        )
        dest_id = str(
            dest_leg.id if dest_leg
            else (source_leg.transfer_id if source_leg and source_leg.transfer_id else uuid.uuid4())
        )

        if source_leg is None:
            repos.transactions.create(
                {
                    **base,
                    "id": source_id,
                    "amount": -amount,
                    "account_id": source_account,
                    "transfer_account_id": dest_account,
                    "transfer_id": dest_id,
                    "type": TransactionType.TRANSFER,
                },
                tenant_id,
                actor_id,
            )
        if dest_leg is None:
            repos.transactions.create(
                {
                    **base,
                    "id": dest_id,
                    "amount": amount,
                    "account_id": dest_account,
                    "transfer_account_id": source_account,
                    "transfer_id": source_id,
                    "type": TransactionType.TRANSFER,
                },
                tenant_id,
                actor_id,
            )
        return [source_id, dest_id]

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_execution(
        repos: RepositorySet, recurring: Recurring, tenant_id: str
    ) -> None:
        """Referenced accounts exist; Standard recurrings carry a category."""
        checks: list[tuple[str, Optional[str]]] = [
            ("source account", recurring.source_account_id),
        ]
        if recurring.is_transfer:
            checks.append(("transfer account", recurring.transfer_account_id))
        for label, account_id in checks:
            try:
                repos.accounts.find_by_id(str(account_id), tenant_id)
            except NotFoundError as exc:
                raise MaterializationFailure(
                    f"{label.capitalize()} '{account_id}' not found",
                    details={"recurring_id": str(recurring.id), "field": label},
                ) from exc

        if recurring.recurring_type == RecurringType.STANDARD:
            if not recurring.category_id:
                raise MaterializationFailure(
                    f"Recurring '{recurring.name}' has no category",
                    details={"recurring_id": str(recurring.id), "field": "category_id"},
                )
            try:
                repos.transaction_categories.find_by_id(recurring.category_id, tenant_id)
            except NotFoundError as exc:
                raise MaterializationFailure(
                    f"Category '{recurring.category_id}' not found",
                    details={"recurring_id": str(recurring.id), "field": "category_id"},
                ) from exc

    @staticmethod
    def _outstanding(repos: RepositorySet, recurring: Recurring, tenant_id: str) -> float:
        """Amount owed on the card: negated running balance, floored at 0."""
        balance = repos.accounts.running_balance(str(recurring.transfer_account_id), tenant_id)
        return max(0.0, round(-balance, 2))

    def _record_failure(
        self,
        repos: RepositorySet,
        recurring: Recurring,
        tenant_id: str,
        actor_id: str,
        exc: Exception,
    ) -> RecurringOutcome:
        recurring_id = str(recurring.id)
        failure = (
            exc
            if isinstance(exc, MaterializationFailure)
            else MaterializationFailure(
                f"Recurring '{recurring.name}' failed: {exc}",
                details={"recurring_id": recurring_id, "cause": type(exc).__name__},
            )
        )
        self._logger.error(
            "Materialization failed for recurring %s: %s", recurring_id, failure.message
        )
        attempts = recurring.failed_attempts + 1
        try:
            repos.recurrings.update(
                recurring_id, {"failed_attempts": attempts}, tenant_id, actor_id
            )
        except BudgeteerError as record_exc:
            self._logger.error(
                "Could not record failed attempt on recurring %s: %s",
                recurring_id,
                record_exc,
            )
        return RecurringOutcome(
            recurring_id=recurring_id,
            name=recurring.name,
            status=OutcomeStatus.FAILED,
            occurrence_date=recurring.next_occurrence_date,
            next_occurrence_date=recurring.next_occurrence_date,
            reason=failure.message,
        )

    @staticmethod
    def _skipped(
        recurring: Recurring, reason: str, *, next_date: Optional[dt.date] = None
    ) -> RecurringOutcome:
        return RecurringOutcome(
            recurring_id=str(recurring.id),
            name=recurring.name,
            status=OutcomeStatus.SKIPPED,
            occurrence_date=recurring.next_occurrence_date,
            next_occurrence_date=next_date or recurring.next_occurrence_date,
            reason=reason,
        )
