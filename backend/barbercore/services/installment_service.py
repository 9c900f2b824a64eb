# Overview: Recurring-expense setup and the installment-generation collaborator used by the daily batch.

from __future__ import annotations

from datetime import date

from flask import current_app

from ..extensions import db
from ..models import Expense, ExpenseInstallment, RecurringExpenseConfig
from ..models.finance import RECURRENCE_ACTIVE, RECURRENCE_INACTIVE, INSTALLMENT_PENDING
from ..time_utils import add_months
from ..validation import NotFoundError, ValidationError, parse_amount, require_text


def next_due_date(config: RecurringExpenseConfig) -> date:
    """
    Due date of installment number installments_generated + 1.

    Installment n is due (n - 1) calendar months after start_date, on the
    same day-of-month, clamped to the month's length.
    """
    return add_months(config.start_date, config.installments_generated)


def create_recurring_expense(
    location_id: int,
    description: str,
    amount,
    start_date: date,
    total_installments: int,
) -> RecurringExpenseConfig:
    """Record the originating expense and its monthly recurrence (nothing generated yet)."""
    description = require_text(description, "description", max_length=255)
    amount = parse_amount(amount, "amount")
    if amount <= 0:
        raise ValidationError("amount must be > 0")
    if not isinstance(start_date, date):
        raise ValidationError("start_date must be a date")
    if isinstance(total_installments, bool) or not isinstance(total_installments, int) or total_installments < 1:
        raise ValidationError("total_installments must be a positive integer")

    expense = Expense(
        location_id=location_id,
        description=description,
        amount=amount,
        due_date=start_date,
    )
    db.session.add(expense)
    db.session.flush()

    config = RecurringExpenseConfig(
        expense_id=expense.id,
        location_id=location_id,
        status=RECURRENCE_ACTIVE,
        start_date=start_date,
        day_of_month=start_date.day,
        installments_generated=0,
        total_installments=total_installments,
        amount=amount,
        description=description,
    )
    db.session.add(config)
    db.session.commit()
    return config


def deactivate(config_id: int) -> RecurringExpenseConfig:
    config = db.session.get(RecurringExpenseConfig, config_id)
    if not config:
        raise NotFoundError("Recurring expense configuration not found")
    config.status = RECURRENCE_INACTIVE
    db.session.commit()
    return config


def generate_next_installment(config_id: int) -> list[ExpenseInstallment]:
    """
    Installment-generation collaborator.

    Returns zero or one rows. An empty list means the series is exhausted
    or inactive, which is not an error. Does not commit and does not touch
    installments_generated; the batch owns the counter and the transaction.
    """
    config = db.session.get(RecurringExpenseConfig, config_id)
    if not config:
        raise NotFoundError(f"Recurring expense configuration {config_id} not found")

    if config.status != RECURRENCE_ACTIVE or config.is_exhausted:
        return []

    number = config.installments_generated + 1

    existing = db.session.query(ExpenseInstallment).filter_by(
        config_id=config.id,
        installment_number=number,
    ).first()
    if existing:
        # Row exists but the counter lagged behind; hand it back so the counter catches up.
        current_app.logger.warning(
            "Installment already present, not regenerating",
            extra={"config_id": config.id, "installment_number": number},
        )
        return [existing]

    installment = ExpenseInstallment(
        config_id=config.id,
        installment_number=number,
        due_date=next_due_date(config),
        amount=config.amount,
        status=INSTALLMENT_PENDING,
    )
    db.session.add(installment)
    db.session.flush()
    return [installment]


def list_installments(config_id: int) -> list[ExpenseInstallment]:
    return db.session.query(ExpenseInstallment).filter_by(
        config_id=config_id
    ).order_by(ExpenseInstallment.installment_number).all()
