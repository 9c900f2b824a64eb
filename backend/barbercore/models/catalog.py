from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import format_amount


class Service(db.Model):
    """
    Sellable service (haircut, beard trim, ...).

    Price and commission_percentage are the *current* values. Order items
    snapshot them at add time; later edits here never touch past tickets.
    """
    __tablename__ = "services"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)

    price = db.Column(db.Numeric(12, 2), nullable=False)
    commission_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    duration_minutes = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "name": self.name,
            "price": format_amount(self.price),
            "commission_percentage": format_amount(self.commission_percentage),
            "duration_minutes": self.duration_minutes,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CommissionOverride(db.Model):
    """Professional-specific commission rate for one service."""
    __tablename__ = "professional_service_commissions"
    __table_args__ = (
        db.UniqueConstraint("professional_id", "service_id", name="uq_commission_professional_service"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    professional_id = db.Column(db.Integer, nullable=False, index=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=False, index=True)
    commission_percentage = db.Column(db.Numeric(5, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    service = db.relationship("Service", backref=db.backref("commission_overrides", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "professional_id": self.professional_id,
            "service_id": self.service_id,
            "commission_percentage": format_amount(self.commission_percentage),
            "created_at": to_utc_z(self.created_at),
        }
