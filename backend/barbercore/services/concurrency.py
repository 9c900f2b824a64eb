# Overview: Transaction helpers shared by the services: row locks, retries, and unique-index reservations.

from __future__ import annotations

import time
from typing import Callable, TypeVar

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


T = TypeVar("T")


def lock_for_update(query):
    """
    Apply row-level locking so a status read and the write that depends on
    it happen in the same transaction.

    NOTE: SQLite ignores SELECT ... FOR UPDATE (it serializes writers on the
    database file instead); PostgreSQL/MySQL honor it.
    """
    return query.with_for_update()


def run_with_retry(func: Callable[[], T], *, attempts: int = 3, backoff_base: float = 0.1) -> T:
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (version_id mismatch: someone else changed the row first). Business
    errors raised by `func` propagate untouched after a rollback.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying after concurrency failure (attempt %s/%s): %s",
                attempt + 1, attempts, exc.__class__.__name__,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc
    raise RuntimeError("run_with_retry called with attempts < 1")


def commit_with_retry(*, attempts: int = 3, backoff_base: float = 0.1) -> None:
    """Commit current session with retry handling."""
    def _op():
        db.session.commit()
    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)


def insert_reserving(instance, on_conflict: Callable[[IntegrityError], Exception]):
    """
    Insert `instance` inside a SAVEPOINT and flush immediately.

    Used where a unique index is the serialization point (one OPEN cash
    session per location, one active run per job/day): the insert either
    wins the slot or the IntegrityError is translated by `on_conflict`.
    The outer transaction survives a lost race.
    """
    try:
        with db.session.begin_nested():
            db.session.add(instance)
    except IntegrityError as exc:
        raise on_conflict(exc) from exc
    return instance
