from __future__ import annotations

from ..extensions import db
from confreg.time_utils import to_utc_z


class Registration(db.Model):
    """
    A delegate's priced conference package and its payment aggregate.

    WHY: One row per user holds the selection, the frozen booking phase, the
    full price breakdown and the balance against the payment ledger.

    INVARIANTS:
    - payment_status is PAID iff total_paid >= total_amount
    - total_paid is always re-derived from SUCCESS payments, never incremented
    - registration_number is assigned once, at creation, and never changed
    - total_amount is only ever written from a pricing recompute

    CONCURRENCY: version_id gives optimistic locking on read-modify-write
    updates (StaleDataError on a lost update, retried by run_with_retry).
    """
    __tablename__ = "registrations"
    __table_args__ = (
        db.UniqueConstraint("user_id", name="uq_registrations_user"),
        db.UniqueConstraint("registration_number", name="uq_registrations_number"),
        db.Index("ix_registrations_status_phase", "payment_status", "booking_phase"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    # Human-readable sequential number (e.g., "AOA2026-0001")
    registration_number = db.Column(db.String(32), nullable=False)

    # CONFERENCE_ONLY, WORKSHOP_CONFERENCE, AOA_CERTIFIED_COURSE
    registration_type = db.Column(db.String(32), nullable=False, default="CONFERENCE_ONLY")

    # Selections
    add_workshop = db.Column(db.Boolean, nullable=False, default=False)
    selected_workshop = db.Column(db.String(64), nullable=True)
    add_aoa_course = db.Column(db.Boolean, nullable=False, default=False, index=True)
    add_life_membership = db.Column(db.Boolean, nullable=False, default=False)
    accompanying_persons = db.Column(db.Integer, nullable=False, default=0)
    lifetime_membership_id = db.Column(db.String(32), nullable=True, unique=True)

    # Phase the registration was priced in (frozen once PAID)
    booking_phase = db.Column(db.String(16), nullable=False)

    # Price breakdown (whole rupees)
    base_price = db.Column(db.Integer, nullable=False, default=0)
    workshop_add_on = db.Column(db.Integer, nullable=False, default=0)
    aoa_course_base = db.Column(db.Integer, nullable=False, default=0)
    aoa_course_gst = db.Column(db.Integer, nullable=False, default=0)
    life_membership_base = db.Column(db.Integer, nullable=False, default=0)
    accompanying_base = db.Column(db.Integer, nullable=False, default=0)
    accompanying_gst = db.Column(db.Integer, nullable=False, default=0)
    coupon_code = db.Column(db.String(32), nullable=True)
    coupon_discount = db.Column(db.Integer, nullable=False, default=0)
    coupon_applied_at = db.Column(db.DateTime(timezone=True), nullable=True)
    package_base = db.Column(db.Integer, nullable=False, default=0)
    package_gst = db.Column(db.Integer, nullable=False, default=0)
    total_base = db.Column(db.Integer, nullable=False, default=0)
    total_gst = db.Column(db.Integer, nullable=False, default=0)
    subtotal_with_gst = db.Column(db.Integer, nullable=False, default=0)
    processing_fee = db.Column(db.Integer, nullable=False, default=0)
    total_amount = db.Column(db.Integer, nullable=False)

    # Payment aggregate
    total_paid = db.Column(db.Integer, nullable=False, default=0)
    payment_status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)  # PENDING, PAID
    gateway_order_id = db.Column(db.String(64), nullable=True)
    gateway_payment_id = db.Column(db.String(64), nullable=True)

    # Confirmation email bookkeeping (manual resend only, no automatic retry)
    payment_email_sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    payment_email_failed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    payment_email_error = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    user = db.relationship("User", backref=db.backref("registration", uselist=False, lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def balance_due(self) -> int:
        return max(0, (self.total_amount or 0) - (self.total_paid or 0))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "registration_number": self.registration_number,
            "registration_type": self.registration_type,
            "add_workshop": self.add_workshop,
            "selected_workshop": self.selected_workshop,
            "add_aoa_course": self.add_aoa_course,
            "add_life_membership": self.add_life_membership,
            "accompanying_persons": self.accompanying_persons,
            "lifetime_membership_id": self.lifetime_membership_id,
            "booking_phase": self.booking_phase,
            "base_price": self.base_price,
            "workshop_add_on": self.workshop_add_on,
            "aoa_course_base": self.aoa_course_base,
            "aoa_course_gst": self.aoa_course_gst,
            "life_membership_base": self.life_membership_base,
            "accompanying_base": self.accompanying_base,
            "accompanying_gst": self.accompanying_gst,
            "coupon_code": self.coupon_code,
            "coupon_discount": self.coupon_discount,
            "coupon_applied_at": to_utc_z(self.coupon_applied_at) if self.coupon_applied_at else None,
            "package_base": self.package_base,
            "package_gst": self.package_gst,
            "total_base": self.total_base,
            "total_gst": self.total_gst,
            "subtotal_with_gst": self.subtotal_with_gst,
            "processing_fee": self.processing_fee,
            "total_amount": self.total_amount,
            "total_paid": self.total_paid,
            "balance_due": self.balance_due,
            "payment_status": self.payment_status,
            "gateway_order_id": self.gateway_order_id,
            "gateway_payment_id": self.gateway_payment_id,
            "payment_email_sent_at": to_utc_z(self.payment_email_sent_at) if self.payment_email_sent_at else None,
            "payment_email_failed_at": to_utc_z(self.payment_email_failed_at) if self.payment_email_failed_at else None,
            "payment_email_error": self.payment_email_error,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Counter(db.Model):
    """
    Named monotonically increasing sequence.

    WHY: Registration numbers are allocated with an atomic increment on this
    row. seq is always >= the highest suffix actually in use.
    """
    __tablename__ = "counters"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_counters_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    seq = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "seq": self.seq,
            "updated_at": to_utc_z(self.updated_at),
        }
