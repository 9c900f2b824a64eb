"""
Daily recurring-expense batch.

Triggered once per calendar day (before the reporting jobs). Flow:

1. Reserve (RECURRING_EXPENSES, today) in the idempotency ledger; an
   existing RUNNING/SUCCESS run means "already executed" -> skipped.
2. Fetch active configurations that still have installments left.
3. For each: installment n = installments_generated + 1 is due
   installments_generated calendar months after start_date. Generate only
   when today >= due date.
4. Each generation runs in its own SAVEPOINT; a failing configuration is
   recorded and the loop moves on.
5. Finalize the run (SUCCESS / PARTIAL) and send one summary notification.

Only a failure to fetch the configurations is fatal (run FAILED).
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import ExpenseInstallment, RecurringExpenseConfig
from ..models.finance import RECURRENCE_ACTIVE
from ..models.runs import RUN_SUCCESS, RUN_PARTIAL, RUN_FAILED
from ..time_utils import add_months, business_today
from ..validation import StateError, ValidationError
from . import idempotency_service, installment_service, notification_service
from .concurrency import run_with_retry


JOB_TYPE = "RECURRING_EXPENSES"

# Errors kept on the run row / returned to the trigger
RUN_ERRORS_LIMIT = 10
RESPONSE_ERRORS_LIMIT = 5

# Matches idempotency_runs.correlation_id
CORRELATION_ID_MAX_LENGTH = 64

InstallmentGenerator = Callable[[int], "list[ExpenseInstallment]"]
Notifier = Callable[[str], object]


class BatchSetupError(Exception):
    """The batch could not start (e.g., configurations could not be fetched)."""

    def __init__(self, message: str, *, run_id: int | None, correlation_id: str):
        super().__init__(message)
        self.run_id = run_id
        self.correlation_id = correlation_id


@dataclass
class BatchResult:
    success: bool
    skipped: bool
    run_date: date
    correlation_id: str
    status: str | None = None
    run_id: int | None = None
    existing_run_id: int | None = None
    processed: int = 0
    generated: int = 0
    recovered: int = 0
    errors: int = 0
    errors_list: list[dict] = field(default_factory=list)
    duration_ms: int = 0
    message: str = ""

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "skipped": self.skipped,
            "status": self.status,
            "message": self.message,
            "runDate": self.run_date.isoformat(),
            "processed": self.processed,
            "generated": self.generated,
            "recovered": self.recovered,
            "errors": self.errors,
            "errorsList": self.errors_list[:RESPONSE_ERRORS_LIMIT],
            "correlationId": self.correlation_id,
            "runId": self.run_id,
            "duration": self.duration_ms,
        }
        if self.existing_run_id is not None:
            data["existingRunId"] = self.existing_run_id
        return data


def _fetch_pending_configs() -> list[RecurringExpenseConfig]:
    return db.session.query(RecurringExpenseConfig).filter(
        RecurringExpenseConfig.status == RECURRENCE_ACTIVE,
        RecurringExpenseConfig.installments_generated < RecurringExpenseConfig.total_installments,
    ).order_by(RecurringExpenseConfig.id).all()


def _advance_counter(config_id: int, expected_generated: int) -> None:
    """Atomic +1 guarded by the value we read; a mismatch means someone else moved it."""
    updated = db.session.query(RecurringExpenseConfig).filter(
        RecurringExpenseConfig.id == config_id,
        RecurringExpenseConfig.installments_generated == expected_generated,
        RecurringExpenseConfig.installments_generated < RecurringExpenseConfig.total_installments,
    ).update(
        {RecurringExpenseConfig.installments_generated: RecurringExpenseConfig.installments_generated + 1},
        synchronize_session=False,
    )
    if updated != 1:
        raise StateError(
            "Installment counter changed concurrently",
            details={"config_id": config_id, "expected": expected_generated},
        )


def _installment_exists(config_id: int, number: int) -> bool:
    return db.session.query(ExpenseInstallment.id).filter_by(
        config_id=config_id,
        installment_number=number,
    ).first() is not None


def _summary_message(result: BatchResult) -> str:
    return (
        f"*Recurring expenses* ({result.run_date.isoformat()})\n\n"
        f"Processed: {result.processed}\n"
        f"Generated: {result.generated}\n"
        f"Recovered: {result.recovered}\n"
        f"Errors: {result.errors}\n"
        f"Duration: {result.duration_ms / 1000:.2f}s"
    )


def run_recurring_expenses(
    today: date | None = None,
    *,
    generator: InstallmentGenerator | None = None,
    notifier: Notifier | None = None,
    trigger_source: str = "cron",
    correlation_id: str | None = None,
) -> BatchResult:
    """
    Run the daily batch for `today` (defaults to the business calendar day).

    Returns a BatchResult; `skipped=True` is the normal answer on a
    re-trigger. Raises ValidationError for a run date after the current
    business day and BatchSetupError when the batch could not start.
    """
    started = time.monotonic()
    correlation_id = (correlation_id or f"recurring-{uuid.uuid4().hex[:12]}")[:CORRELATION_ID_MAX_LENGTH]
    business_day = business_today(current_app.config.get("BUSINESS_TIMEZONE", "UTC"))
    if today is None:
        today = business_day
    elif isinstance(today, datetime):
        today = today.date()

    # A later date would generate installments before they fall due.
    if today > business_day:
        raise ValidationError(
            "Run date cannot be after the current business day",
            details={"run_date": today.isoformat(), "business_day": business_day.isoformat()},
        )

    generate = generator or installment_service.generate_next_installment
    notify = notifier or notification_service.send_notification
    log = current_app.logger

    log.info(
        "Recurring expense generation started",
        extra={"correlation_id": correlation_id, "run_date": today.isoformat(), "trigger_source": trigger_source},
    )

    reservation = idempotency_service.check_and_reserve(
        JOB_TYPE,
        today,
        trigger_source=trigger_source,
        correlation_id=correlation_id,
    )
    if not reservation.can_proceed:
        log.info(
            "Recurring expense generation already executed or in progress, skipping",
            extra={
                "correlation_id": correlation_id,
                "existing_run_id": reservation.existing_run_id,
                "reason": reservation.reason,
            },
        )
        return BatchResult(
            success=True,
            skipped=True,
            run_date=today,
            correlation_id=correlation_id,
            existing_run_id=reservation.existing_run_id,
            duration_ms=int((time.monotonic() - started) * 1000),
            message=f"Already executed for {today.isoformat()}",
        )

    run_id = reservation.run_id

    try:
        configs = _fetch_pending_configs()
        # Plain values: a rolled-back savepoint expires ORM instances.
        pending = [(c.id, c.start_date, c.installments_generated) for c in configs]
    except SQLAlchemyError as exc:
        db.session.rollback()
        message = f"Failed to fetch recurring expense configurations: {exc.__class__.__name__}"
        log.exception("Recurring expense batch could not start", extra={"correlation_id": correlation_id})
        idempotency_service.finalize(
            run_id,
            RUN_FAILED,
            {"correlationId": correlation_id, "processed": 0, "generated": 0, "errors": 0},
            error_message=message,
        )
        raise BatchSetupError(message, run_id=run_id, correlation_id=correlation_id) from exc

    result = BatchResult(
        success=True,
        skipped=False,
        run_date=today,
        correlation_id=correlation_id,
        run_id=run_id,
    )

    for config_id, start_date, generated_so_far in pending:
        result.processed += 1

        due_date = add_months(start_date, generated_so_far)
        if today < due_date:
            log.debug(
                "Installment not yet due, skipping",
                extra={"config_id": config_id, "due_date": due_date.isoformat()},
            )
            continue

        def _process(config_id=config_id, generated_so_far=generated_so_far):
            with db.session.begin_nested():
                present = _installment_exists(config_id, generated_so_far + 1)
                generated_rows = generate(config_id)
                if generated_rows:
                    _advance_counter(config_id, generated_so_far)
            db.session.commit()
            return present, generated_rows

        try:
            # SQLite cannot upgrade a read lock under contention; the step restarts on lock errors.
            already_present, rows = run_with_retry(_process)
        except Exception as exc:  # Isolate per-configuration failures
            db.session.rollback()
            result.errors += 1
            result.errors_list.append({"id": config_id, "error": str(exc) or exc.__class__.__name__})
            log.error(
                "Failed to process recurring expense configuration",
                extra={"correlation_id": correlation_id, "config_id": config_id, "error": str(exc)},
            )
            continue

        if rows and already_present:
            result.recovered += 1
            log.info(
                "Installment counter caught up with an existing row",
                extra={
                    "correlation_id": correlation_id,
                    "config_id": config_id,
                    "installment_number": generated_so_far + 1,
                },
            )
        elif rows:
            result.generated += 1
            log.info(
                "Installment generated",
                extra={
                    "correlation_id": correlation_id,
                    "config_id": config_id,
                    "installment_number": generated_so_far + 1,
                    "due_date": due_date.isoformat(),
                },
            )
        else:
            log.info(
                "No installment generated (series finished)",
                extra={"correlation_id": correlation_id, "config_id": config_id},
            )

    result.status = RUN_SUCCESS if result.errors == 0 else RUN_PARTIAL
    result.duration_ms = int((time.monotonic() - started) * 1000)
    result.message = (
        f"Processed {result.processed} configurations, {result.generated} installments generated"
        + (f", {result.recovered} recovered" if result.recovered else "")
    )

    idempotency_service.finalize(
        run_id,
        result.status,
        {
            "correlationId": correlation_id,
            "processed": result.processed,
            "generated": result.generated,
            "recovered": result.recovered,
            "errors": result.errors,
            "errorsList": result.errors_list[:RUN_ERRORS_LIMIT],
            "duration": result.duration_ms,
        },
    )

    try:
        notify(_summary_message(result))
    except Exception:
        log.exception("Failed to send batch notification", extra={"correlation_id": correlation_id})

    log.info(
        "Recurring expense generation finished",
        extra={
            "correlation_id": correlation_id,
            "run_id": run_id,
            "processed": result.processed,
            "generated": result.generated,
            "recovered": result.recovered,
            "errors": result.errors,
            "status": result.status,
        },
    )
    return result
