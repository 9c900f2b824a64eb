"""Commerce core: cash sessions, orders, commissions, recurring expenses, batch runs

Revision ID: 20261019_commerce_core
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_commerce_core"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def upgrade():
    op.create_table(
        "cash_register_sessions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("opening_balance", sa.Numeric(12, 2), nullable=False),
        sa.Column("closing_balance", sa.Numeric(12, 2), nullable=True),
        sa.Column("expected_balance", sa.Numeric(12, 2), nullable=True),
        sa.Column("difference", sa.Numeric(12, 2), nullable=True),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("opened_by", sa.Integer(), nullable=True),
        sa.Column("closed_by", sa.Integer(), nullable=True),
        sa.Column("opening_notes", sa.Text(), nullable=True),
        sa.Column("closing_notes", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_cash_register_sessions_location_id", "cash_register_sessions", ["location_id"])
    op.create_index("ix_cash_register_sessions_status", "cash_register_sessions", ["status"])
    op.create_index("ix_cash_register_sessions_opened_at", "cash_register_sessions", ["opened_at"])
    op.create_index(
        "ix_cash_register_sessions_location_opened", "cash_register_sessions", ["location_id", "opened_at"]
    )
    op.create_index(
        "uq_cash_register_sessions_open_location",
        "cash_register_sessions",
        ["location_id"],
        unique=True,
        sqlite_where=sa.text("status = 'OPEN'"),
        postgresql_where=sa.text("status = 'OPEN'"),
    )

    op.create_table(
        "services",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("commission_percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _timestamps(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_services_location_id", "services", ["location_id"])
    op.create_index("ix_services_is_active", "services", ["is_active"])

    op.create_table(
        "professional_service_commissions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("professional_id", sa.Integer(), nullable=False),
        sa.Column("service_id", sa.Integer(), sa.ForeignKey("services.id"), nullable=False),
        sa.Column("commission_percentage", sa.Numeric(5, 2), nullable=False),
        _timestamps(),
        sa.UniqueConstraint("professional_id", "service_id", name="uq_commission_professional_service"),
        sqlite_autoincrement=True,
    )
    op.create_index(
        "ix_professional_service_commissions_professional_id", "professional_service_commissions", ["professional_id"]
    )
    op.create_index(
        "ix_professional_service_commissions_service_id", "professional_service_commissions", ["service_id"]
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=False),
        sa.Column("professional_id", sa.Integer(), nullable=False),
        sa.Column("cash_session_id", sa.Integer(), sa.ForeignKey("cash_register_sessions.id"), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        _timestamps(),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_method_id", sa.Integer(), nullable=True),
        sa.Column("account_id", sa.Integer(), nullable=True),
        sa.Column("revenue_id", sa.Integer(), nullable=True),
        sa.Column("revenue_error", sa.Text(), nullable=True),
        sa.Column("cancel_reason", sa.String(length=500), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_orders_location_id", "orders", ["location_id"])
    op.create_index("ix_orders_client_id", "orders", ["client_id"])
    op.create_index("ix_orders_professional_id", "orders", ["professional_id"])
    op.create_index("ix_orders_cash_session_id", "orders", ["cash_session_id"])
    op.create_index("ix_orders_status", "orders", ["status"])
    op.create_index("ix_orders_location_status_created", "orders", ["location_id", "status", "created_at"])

    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("service_id", sa.Integer(), sa.ForeignKey("services.id"), nullable=False),
        sa.Column("professional_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("commission_percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("commission_value", sa.Numeric(12, 2), nullable=False),
        _timestamps(),
        sa.CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])
    op.create_index("ix_order_items_professional_id", "order_items", ["professional_id"])

    op.create_table(
        "revenues",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=True, unique=True),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=True),
        sa.Column("professional_id", sa.Integer(), nullable=True),
        sa.Column("payment_method_id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("revenue_date", sa.Date(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        _timestamps(),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_revenues_location_id", "revenues", ["location_id"])
    op.create_index("ix_revenues_professional_id", "revenues", ["professional_id"])
    op.create_index("ix_revenues_revenue_date", "revenues", ["revenue_date"])

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        _timestamps(),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_expenses_location_id", "expenses", ["location_id"])

    op.create_table(
        "recurring_expense_configs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("expense_id", sa.Integer(), sa.ForeignKey("expenses.id"), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("day_of_month", sa.Integer(), nullable=False),
        sa.Column("installments_generated", sa.Integer(), nullable=False),
        sa.Column("total_installments", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=True),
        _timestamps(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "installments_generated <= total_installments",
            name="ck_recurring_expense_configs_not_over_generated",
        ),
        sa.CheckConstraint("total_installments >= 1", name="ck_recurring_expense_configs_total_positive"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_recurring_expense_configs_expense_id", "recurring_expense_configs", ["expense_id"])
    op.create_index("ix_recurring_expense_configs_location_id", "recurring_expense_configs", ["location_id"])
    op.create_index("ix_recurring_expense_configs_status", "recurring_expense_configs", ["status"])

    op.create_table(
        "expense_installments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("config_id", sa.Integer(), sa.ForeignKey("recurring_expense_configs.id"), nullable=False),
        sa.Column("installment_number", sa.Integer(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        _timestamps(),
        sa.UniqueConstraint("config_id", "installment_number", name="uq_expense_installments_config_number"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_expense_installments_config_id", "expense_installments", ["config_id"])
    op.create_index("ix_expense_installments_due_date", "expense_installments", ["due_date"])

    op.create_table(
        "idempotency_runs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("job_type", sa.String(length=64), nullable=False),
        sa.Column("run_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("trigger_source", sa.String(length=32), nullable=False),
        sa.Column("correlation_id", sa.String(length=64), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("result_summary", sa.JSON(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_idempotency_runs_status", "idempotency_runs", ["status"])
    op.create_index("ix_idempotency_runs_job_day", "idempotency_runs", ["job_type", "run_date"])
    op.create_index(
        "uq_idempotency_runs_active_job_day",
        "idempotency_runs",
        ["job_type", "run_date"],
        unique=True,
        sqlite_where=sa.text("status IN ('RUNNING', 'SUCCESS')"),
        postgresql_where=sa.text("status IN ('RUNNING', 'SUCCESS')"),
    )


def downgrade():
    op.drop_table("idempotency_runs")
    op.drop_table("expense_installments")
    op.drop_table("recurring_expense_configs")
    op.drop_table("expenses")
    op.drop_table("revenues")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("professional_service_commissions")
    op.drop_table("services")
    op.drop_table("cash_register_sessions")
