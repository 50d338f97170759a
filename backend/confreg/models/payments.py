from __future__ import annotations

from ..extensions import db
from confreg.time_utils import to_utc_z


class Payment(db.Model):
    """
    One row per payment attempt (gateway order).

    LIFECYCLE: CREATED -> SUCCESS | FAILED. SUCCESS is terminal; a FAILED
    attempt may still be captured later by the gateway (late capture).

    WHY: The set of SUCCESS rows for a registration is the ledger that
    registration.total_paid is summed from.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.UniqueConstraint("gateway_order_id", name="uq_payments_gateway_order"),
        db.Index("ix_payments_registration_status", "registration_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    registration_id = db.Column(db.Integer, db.ForeignKey("registrations.id"), nullable=True)
    accommodation_booking_id = db.Column(db.Integer, db.ForeignKey("accommodation_bookings.id"), nullable=True, index=True)

    amount = db.Column(db.Integer, nullable=False)  # whole rupees
    currency = db.Column(db.String(8), nullable=False, default="INR")
    payment_type = db.Column(db.String(16), nullable=False)  # REGISTRATION, ACCOMMODATION
    status = db.Column(db.String(16), nullable=False, default="CREATED", index=True)  # CREATED, SUCCESS, FAILED

    gateway_order_id = db.Column(db.String(64), nullable=False)
    gateway_payment_id = db.Column(db.String(64), nullable=True)
    gateway_signature = db.Column(db.String(128), nullable=True)

    # How SUCCESS was reached: VERIFY, WEBHOOK, RECONCILE, MANUAL
    captured_via = db.Column(db.String(16), nullable=True)
    captured_at = db.Column(db.DateTime(timezone=True), nullable=True)
    failure_reason = db.Column(db.String(255), nullable=True)
    failed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("payments", lazy=True))
    registration = db.relationship("Registration", backref=db.backref("payments", lazy=True))
    accommodation_booking = db.relationship("AccommodationBooking", backref=db.backref("payments", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "registration_id": self.registration_id,
            "accommodation_booking_id": self.accommodation_booking_id,
            "amount": self.amount,
            "currency": self.currency,
            "payment_type": self.payment_type,
            "status": self.status,
            "gateway_order_id": self.gateway_order_id,
            "gateway_payment_id": self.gateway_payment_id,
            "captured_via": self.captured_via,
            "captured_at": to_utc_z(self.captured_at) if self.captured_at else None,
            "failure_reason": self.failure_reason,
            "failed_at": to_utc_z(self.failed_at) if self.failed_at else None,
            "created_at": to_utc_z(self.created_at),
        }
