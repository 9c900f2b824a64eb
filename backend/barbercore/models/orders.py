from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import format_amount


ORDER_OPEN = "OPEN"
ORDER_CLOSED = "CLOSED"
ORDER_CANCELED = "CANCELED"


class Order(db.Model):
    """
    Order (ticket / comanda) for one client visit.

    LIFECYCLE:
    - OPEN: Items may be added, updated, removed
    - CLOSED: Paid; revenue posted (or revenue_error recorded)
    - CANCELED: Abandoned with a reason

    CLOSED and CANCELED are terminal. total_amount is always the sum of
    the items' unit_price * quantity and is recomputed on every item change.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_location_status_created", "location_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, nullable=False, index=True)
    client_id = db.Column(db.Integer, nullable=False, index=True)
    professional_id = db.Column(db.Integer, nullable=False, index=True)  # Primary professional

    # Fixed at creation
    cash_session_id = db.Column(db.Integer, db.ForeignKey("cash_register_sessions.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=ORDER_OPEN, index=True)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)  # Close or cancel time

    # Close data
    payment_method_id = db.Column(db.Integer, nullable=True)
    account_id = db.Column(db.Integer, nullable=True)
    revenue_id = db.Column(db.Integer, nullable=True)
    revenue_error = db.Column(db.Text, nullable=True)  # Set when posting failed after close

    cancel_reason = db.Column(db.String(500), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    cash_session = db.relationship("CashRegisterSession", backref=db.backref("orders", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.status == ORDER_OPEN

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "location_id": self.location_id,
            "client_id": self.client_id,
            "professional_id": self.professional_id,
            "cash_session_id": self.cash_session_id,
            "status": self.status,
            "total_amount": format_amount(self.total_amount),
            "created_at": to_utc_z(self.created_at),
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "payment_method_id": self.payment_method_id,
            "account_id": self.account_id,
            "revenue_id": self.revenue_id,
            "revenue_error": self.revenue_error,
            "cancel_reason": self.cancel_reason,
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """
    Service line on an order.

    unit_price and commission_percentage are snapshots taken when the item
    was added, so historical tickets keep the price and rate that applied.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=False)
    professional_id = db.Column(db.Integer, nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    commission_percentage = db.Column(db.Numeric(5, 2), nullable=False)
    commission_value = db.Column(db.Numeric(12, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("items", lazy=True, order_by="OrderItem.id"))
    service = db.relationship("Service")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "service_id": self.service_id,
            "professional_id": self.professional_id,
            "quantity": self.quantity,
            "unit_price": format_amount(self.unit_price),
            "commission_percentage": format_amount(self.commission_percentage),
            "commission_value": format_amount(self.commission_value),
            "created_at": to_utc_z(self.created_at),
        }
