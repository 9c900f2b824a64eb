"""
Idempotency ledger for scheduled batch jobs.

Guarantees at most one RUNNING-or-SUCCESS run per (job_type, run_date).
The reservation is the INSERT of a RUNNING row against the partial unique
index on idempotency_runs; losing that race is the "already running /
already executed" answer, so there is no separate check-then-act window.

A RUNNING row older than IDEMPOTENCY_STALE_MINUTES is treated as a crashed
attempt: it is marked FAILED (timeout) and the day may be retried.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta, timezone

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import IdempotencyRun
from ..models.runs import RUN_RUNNING, RUN_SUCCESS, RUN_FAILED, FINAL_STATUSES
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, StateError, ValidationError
from .concurrency import insert_reserving, run_with_retry


@dataclass(frozen=True)
class Reservation:
    can_proceed: bool
    run: IdempotencyRun | None = None
    existing_run_id: int | None = None
    reason: str | None = None

    @property
    def run_id(self) -> int | None:
        return self.run.id if self.run is not None else None


class _SlotTaken(Exception):
    pass


def _active_run(job_type: str, run_date: date) -> IdempotencyRun | None:
    return db.session.query(IdempotencyRun).filter(
        IdempotencyRun.job_type == job_type,
        IdempotencyRun.run_date == run_date,
        IdempotencyRun.status.in_((RUN_RUNNING, RUN_SUCCESS)),
    ).order_by(IdempotencyRun.id.desc()).first()


def _is_stale(run: IdempotencyRun) -> bool:
    minutes = current_app.config.get("IDEMPOTENCY_STALE_MINUTES", 10)
    started = run.started_at
    if started.tzinfo is not None:
        started = started.astimezone(timezone.utc).replace(tzinfo=None)
    return run.status == RUN_RUNNING and started < utcnow() - timedelta(minutes=minutes)


def _try_insert(job_type: str, run_date: date, trigger_source: str, correlation_id: str | None) -> IdempotencyRun:
    run = IdempotencyRun(
        job_type=job_type,
        run_date=run_date,
        status=RUN_RUNNING,
        trigger_source=trigger_source,
        correlation_id=correlation_id,
        started_at=utcnow(),
    )
    insert_reserving(run, lambda exc: _SlotTaken())
    db.session.commit()
    return run


def check_and_reserve(
    job_type: str,
    run_date: date,
    *,
    trigger_source: str = "cron",
    correlation_id: str | None = None,
) -> Reservation:
    """
    Reserve (job_type, run_date) for the caller.

    Returns Reservation(can_proceed=True, run=<RUNNING row>) when the caller
    owns the day, or can_proceed=False with the blocking run's id.
    """
    if not job_type:
        raise ValidationError("job_type is required")

    # Two passes: the second only after a stale RUNNING row was expired.
    for _ in range(2):
        try:
            run = _try_insert(job_type, run_date, trigger_source, correlation_id)
        except _SlotTaken:
            db.session.rollback()
        else:
            return Reservation(can_proceed=True, run=run, reason="No run found for this date, proceeding")

        existing = _active_run(job_type, run_date)
        if existing is None:
            # The blocking row was finalized between our insert and this read.
            continue

        if existing.status == RUN_SUCCESS:
            return Reservation(
                can_proceed=False,
                existing_run_id=existing.id,
                reason=f"Successful run already exists for {run_date.isoformat()}",
            )

        if not _is_stale(existing):
            return Reservation(
                can_proceed=False,
                existing_run_id=existing.id,
                reason=f"Run in progress since {existing.started_at.isoformat()}",
            )

        current_app.logger.warning(
            "Expiring stale run",
            extra={"run_id": existing.id, "job_type": job_type, "run_date": run_date.isoformat()},
        )
        existing.status = RUN_FAILED
        existing.finished_at = utcnow()
        existing.error_message = "Timeout - run stuck in RUNNING state"
        db.session.commit()

    existing = _active_run(job_type, run_date)
    raise ConflictError(
        "Could not reserve batch run; another attempt holds the slot",
        details={"job_type": job_type, "existing_run_id": existing.id if existing else None},
    )


def finalize(run_id: int, status: str, summary: dict | None = None, error_message: str | None = None) -> IdempotencyRun:
    """Move a RUNNING run to SUCCESS / PARTIAL / FAILED."""
    if status not in FINAL_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(FINAL_STATUSES)}")

    def _op():
        run = db.session.get(IdempotencyRun, run_id)
        if not run:
            raise NotFoundError("Run not found")

        if run.status != RUN_RUNNING:
            raise StateError("Run already finalized", details={"run_id": run_id, "status": run.status})

        run.status = status
        run.finished_at = utcnow()
        run.result_summary = summary
        run.error_message = error_message

        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise ConflictError("Another run already succeeded for this date", details={"run_id": run_id}) from exc
        return run

    return run_with_retry(_op)


def list_runs(job_type: str | None = None, limit: int = 30) -> list[IdempotencyRun]:
    query = db.session.query(IdempotencyRun)
    if job_type:
        query = query.filter_by(job_type=job_type)
    return query.order_by(IdempotencyRun.run_date.desc(), IdempotencyRun.id.desc()).limit(limit).all()
