from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date


RUN_RUNNING = "RUNNING"
RUN_SUCCESS = "SUCCESS"
RUN_PARTIAL = "PARTIAL"
RUN_FAILED = "FAILED"

FINAL_STATUSES = (RUN_SUCCESS, RUN_PARTIAL, RUN_FAILED)


class IdempotencyRun(db.Model):
    """
    One attempt of a scheduled batch job for a calendar day.

    INVARIANT: at most one row per (job_type, run_date) is RUNNING or
    SUCCESS. The partial unique index enforces it, so inserting a RUNNING
    row *is* the reservation; a violation means another attempt owns the day.
    FAILED and PARTIAL rows fall outside the index and can be retried.
    """
    __tablename__ = "idempotency_runs"
    __table_args__ = (
        db.Index(
            "uq_idempotency_runs_active_job_day",
            "job_type",
            "run_date",
            unique=True,
            sqlite_where=db.text("status IN ('RUNNING', 'SUCCESS')"),
            postgresql_where=db.text("status IN ('RUNNING', 'SUCCESS')"),
        ),
        db.Index("ix_idempotency_runs_job_day", "job_type", "run_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    job_type = db.Column(db.String(64), nullable=False)
    run_date = db.Column(db.Date, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=RUN_RUNNING, index=True)
    trigger_source = db.Column(db.String(32), nullable=False, default="cron")  # cron, manual, api
    correlation_id = db.Column(db.String(64), nullable=True)

    started_at = db.Column(db.DateTime(timezone=True), nullable=False)
    finished_at = db.Column(db.DateTime(timezone=True), nullable=True)

    result_summary = db.Column(db.JSON, nullable=True)
    error_message = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "job_type": self.job_type,
            "run_date": to_iso_date(self.run_date),
            "status": self.status,
            "trigger_source": self.trigger_source,
            "correlation_id": self.correlation_id,
            "started_at": to_utc_z(self.started_at),
            "finished_at": to_utc_z(self.finished_at) if self.finished_at else None,
            "result_summary": self.result_summary,
            "error_message": self.error_message,
        }
