"""
Idempotency ledger tests.

Verifies:
- First reservation proceeds, the second for the same day does not
- FAILED/PARTIAL runs leave the day retryable
- Stale RUNNING rows are expired and the day is retried
- finalize only moves RUNNING runs
"""

from datetime import date, timedelta

import pytest

from barbercore.extensions import db
from barbercore.models import IdempotencyRun
from barbercore.services import idempotency_service
from barbercore.time_utils import utcnow
from barbercore.validation import StateError, ValidationError


JOB = "TEST_JOB"
DAY = date(2025, 1, 15)


class TestReserve:

    def test_first_reservation_proceeds(self, db_session):
        reservation = idempotency_service.check_and_reserve(JOB, DAY, correlation_id="c-1")

        assert reservation.can_proceed is True
        assert reservation.run.status == "RUNNING"
        assert reservation.run.correlation_id == "c-1"
        assert reservation.run_id == reservation.run.id

    def test_running_run_blocks(self, db_session):
        first = idempotency_service.check_and_reserve(JOB, DAY)
        second = idempotency_service.check_and_reserve(JOB, DAY)

        assert second.can_proceed is False
        assert second.existing_run_id == first.run_id
        assert second.run_id is None

    def test_success_run_blocks(self, db_session):
        first = idempotency_service.check_and_reserve(JOB, DAY)
        idempotency_service.finalize(first.run_id, "SUCCESS", {"processed": 0})

        second = idempotency_service.check_and_reserve(JOB, DAY)
        assert second.can_proceed is False
        assert second.existing_run_id == first.run_id

    @pytest.mark.parametrize("final_status", ["FAILED", "PARTIAL"])
    def test_failed_or_partial_run_can_be_retried(self, db_session, final_status):
        first = idempotency_service.check_and_reserve(JOB, DAY)
        idempotency_service.finalize(first.run_id, final_status, error_message="boom")

        second = idempotency_service.check_and_reserve(JOB, DAY)
        assert second.can_proceed is True
        assert second.run_id != first.run_id

    def test_other_day_and_job_are_independent(self, db_session):
        idempotency_service.check_and_reserve(JOB, DAY)

        assert idempotency_service.check_and_reserve(JOB, DAY + timedelta(days=1)).can_proceed
        assert idempotency_service.check_and_reserve("OTHER_JOB", DAY).can_proceed

    def test_stale_running_run_is_expired(self, db_session):
        first = idempotency_service.check_and_reserve(JOB, DAY)
        stuck = db.session.get(IdempotencyRun, first.run_id)
        stuck.started_at = utcnow() - timedelta(minutes=11)
        db.session.commit()

        second = idempotency_service.check_and_reserve(JOB, DAY)

        assert second.can_proceed is True
        expired = db.session.get(IdempotencyRun, first.run_id)
        assert expired.status == "FAILED"
        assert "Timeout" in expired.error_message

    def test_recent_running_run_is_not_stale(self, db_session):
        first = idempotency_service.check_and_reserve(JOB, DAY)
        recent = db.session.get(IdempotencyRun, first.run_id)
        recent.started_at = utcnow() - timedelta(minutes=9)
        db.session.commit()

        assert idempotency_service.check_and_reserve(JOB, DAY).can_proceed is False

    def test_job_type_required(self, db_session):
        with pytest.raises(ValidationError):
            idempotency_service.check_and_reserve("", DAY)


class TestFinalize:

    def test_finalize_records_summary(self, db_session):
        reservation = idempotency_service.check_and_reserve(JOB, DAY)
        run = idempotency_service.finalize(reservation.run_id, "PARTIAL", {"errors": 2})

        assert run.status == "PARTIAL"
        assert run.finished_at is not None
        assert run.result_summary == {"errors": 2}

    def test_finalize_twice(self, db_session):
        reservation = idempotency_service.check_and_reserve(JOB, DAY)
        idempotency_service.finalize(reservation.run_id, "SUCCESS")

        with pytest.raises(StateError):
            idempotency_service.finalize(reservation.run_id, "FAILED")

    def test_finalize_rejects_non_final_status(self, db_session):
        reservation = idempotency_service.check_and_reserve(JOB, DAY)
        with pytest.raises(ValidationError):
            idempotency_service.finalize(reservation.run_id, "RUNNING")

    def test_list_runs(self, db_session):
        idempotency_service.check_and_reserve(JOB, DAY)
        idempotency_service.check_and_reserve(JOB, DAY + timedelta(days=1))
        idempotency_service.check_and_reserve("OTHER_JOB", DAY)

        runs = idempotency_service.list_runs(JOB)
        assert [r.run_date for r in runs] == [DAY + timedelta(days=1), DAY]
