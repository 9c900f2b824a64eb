from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date
from ..validation import format_amount


RECURRENCE_ACTIVE = "active"
RECURRENCE_INACTIVE = "inactive"

INSTALLMENT_PENDING = "PENDING"


class Revenue(db.Model):
    """
    Revenue record posted when an order closes.

    One revenue per order at most (unique order_id), so a retried posting
    cannot book the same ticket twice.
    """
    __tablename__ = "revenues"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, unique=True)
    location_id = db.Column(db.Integer, nullable=False, index=True)
    client_id = db.Column(db.Integer, nullable=True)
    professional_id = db.Column(db.Integer, nullable=True, index=True)
    payment_method_id = db.Column(db.Integer, nullable=False)
    account_id = db.Column(db.Integer, nullable=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    revenue_date = db.Column(db.Date, nullable=False, index=True)
    note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "location_id": self.location_id,
            "client_id": self.client_id,
            "professional_id": self.professional_id,
            "payment_method_id": self.payment_method_id,
            "account_id": self.account_id,
            "amount": format_amount(self.amount),
            "revenue_date": to_iso_date(self.revenue_date),
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }


class Expense(db.Model):
    """Expense occurrence; the first one of a recurring series carries its config."""
    __tablename__ = "expenses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, nullable=False, index=True)
    description = db.Column(db.String(255), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    due_date = db.Column(db.Date, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "description": self.description,
            "amount": format_amount(self.amount),
            "due_date": to_iso_date(self.due_date),
            "created_at": to_utc_z(self.created_at),
        }


class RecurringExpenseConfig(db.Model):
    """
    Monthly recurrence for an expense ("always charge on day N of month").

    installments_generated only moves forward and never passes
    total_installments; an exhausted series stays in place (soft-exhausted).
    """
    __tablename__ = "recurring_expense_configs"
    __table_args__ = (
        db.CheckConstraint(
            "installments_generated <= total_installments",
            name="ck_recurring_expense_configs_not_over_generated",
        ),
        db.CheckConstraint("total_installments >= 1", name="ck_recurring_expense_configs_total_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    expense_id = db.Column(db.Integer, db.ForeignKey("expenses.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=RECURRENCE_ACTIVE, index=True)  # active, inactive

    start_date = db.Column(db.Date, nullable=False)
    day_of_month = db.Column(db.Integer, nullable=False)  # Cadence anchor; matches start_date.day

    installments_generated = db.Column(db.Integer, nullable=False, default=0)
    total_installments = db.Column(db.Integer, nullable=False)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    description = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    expense = db.relationship("Expense", backref=db.backref("recurrence", uselist=False, lazy=True))

    @property
    def is_exhausted(self) -> bool:
        return self.installments_generated >= self.total_installments

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "expense_id": self.expense_id,
            "location_id": self.location_id,
            "status": self.status,
            "start_date": to_iso_date(self.start_date),
            "day_of_month": self.day_of_month,
            "installments_generated": self.installments_generated,
            "total_installments": self.total_installments,
            "amount": format_amount(self.amount),
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ExpenseInstallment(db.Model):
    """One generated occurrence of a recurring expense."""
    __tablename__ = "expense_installments"
    __table_args__ = (
        db.UniqueConstraint("config_id", "installment_number", name="uq_expense_installments_config_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    config_id = db.Column(db.Integer, db.ForeignKey("recurring_expense_configs.id"), nullable=False, index=True)
    installment_number = db.Column(db.Integer, nullable=False)
    due_date = db.Column(db.Date, nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=INSTALLMENT_PENDING)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    config = db.relationship("RecurringExpenseConfig", backref=db.backref("installments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "config_id": self.config_id,
            "installment_number": self.installment_number,
            "due_date": to_iso_date(self.due_date),
            "amount": format_amount(self.amount),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
