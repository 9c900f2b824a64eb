from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import format_amount


SESSION_OPEN = "OPEN"
SESSION_CLOSED = "CLOSED"


class CashRegisterSession(db.Model):
    """
    Cash drawer session for one location and business day.

    LIFECYCLE:
    - OPEN: Drawer is active; orders for the location bind to this session
    - CLOSED: Counted, difference calculated

    IMMUTABLE: Once closed, session cannot be reopened or modified.

    The partial unique index is the storage-level guarantee that a location
    never has two OPEN sessions, even under concurrent open requests.
    """
    __tablename__ = "cash_register_sessions"
    __table_args__ = (
        db.Index(
            "uq_cash_register_sessions_open_location",
            "location_id",
            unique=True,
            sqlite_where=db.text("status = 'OPEN'"),
            postgresql_where=db.text("status = 'OPEN'"),
        ),
        db.Index("ix_cash_register_sessions_location_opened", "location_id", "opened_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.Integer, nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=SESSION_OPEN, index=True)  # OPEN, CLOSED

    opening_balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    closing_balance = db.Column(db.Numeric(12, 2), nullable=True)  # Counted at close

    # Frozen at close: opening + cash movements, and counted - expected
    expected_balance = db.Column(db.Numeric(12, 2), nullable=True)
    difference = db.Column(db.Numeric(12, 2), nullable=True)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    opened_by = db.Column(db.Integer, nullable=True)
    closed_by = db.Column(db.Integer, nullable=True)

    opening_notes = db.Column(db.Text, nullable=True)
    closing_notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.status == SESSION_OPEN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "status": self.status,
            "opening_balance": format_amount(self.opening_balance),
            "closing_balance": format_amount(self.closing_balance),
            "expected_balance": format_amount(self.expected_balance),
            "difference": format_amount(self.difference),
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "opened_by": self.opened_by,
            "closed_by": self.closed_by,
            "opening_notes": self.opening_notes,
            "closing_notes": self.closing_notes,
            "version_id": self.version_id,
        }
