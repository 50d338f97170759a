from __future__ import annotations

from ..extensions import db
from confreg.time_utils import to_utc_z


class Accommodation(db.Model):
    """Partner hotel with a nightly rate and a pool of bookable rooms."""
    __tablename__ = "accommodations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    location = db.Column(db.String(255), nullable=True)
    description = db.Column(db.Text, nullable=True)
    price_per_night = db.Column(db.Integer, nullable=False)
    total_rooms = db.Column(db.Integer, nullable=False, default=0)
    available_rooms = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "description": self.description,
            "price_per_night": self.price_per_night,
            "total_rooms": self.total_rooms,
            "available_rooms": self.available_rooms,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class AccommodationBooking(db.Model):
    """
    Room booking paid through the same gateway/ledger as registrations.

    payment_status: PENDING, PAID
    booking_status: PENDING, CONFIRMED, CANCELLED
    """
    __tablename__ = "accommodation_bookings"
    __table_args__ = (
        db.UniqueConstraint("booking_number", name="uq_accommodation_bookings_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    booking_number = db.Column(db.String(32), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    accommodation_id = db.Column(db.Integer, db.ForeignKey("accommodations.id"), nullable=False, index=True)

    check_in_date = db.Column(db.Date, nullable=False)
    check_out_date = db.Column(db.Date, nullable=False)
    number_of_nights = db.Column(db.Integer, nullable=False)
    number_of_guests = db.Column(db.Integer, nullable=False, default=1)
    rooms_booked = db.Column(db.Integer, nullable=False, default=1)
    total_amount = db.Column(db.Integer, nullable=False)
    special_requests = db.Column(db.Text, nullable=True)

    payment_status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    booking_status = db.Column(db.String(16), nullable=False, default="PENDING")
    gateway_order_id = db.Column(db.String(64), nullable=True)
    gateway_payment_id = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("accommodation_bookings", lazy=True))
    accommodation = db.relationship("Accommodation", backref=db.backref("bookings", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "booking_number": self.booking_number,
            "user_id": self.user_id,
            "accommodation_id": self.accommodation_id,
            "accommodation": self.accommodation.to_dict() if self.accommodation else None,
            "check_in_date": self.check_in_date.isoformat() if self.check_in_date else None,
            "check_out_date": self.check_out_date.isoformat() if self.check_out_date else None,
            "number_of_nights": self.number_of_nights,
            "number_of_guests": self.number_of_guests,
            "rooms_booked": self.rooms_booked,
            "total_amount": self.total_amount,
            "special_requests": self.special_requests,
            "payment_status": self.payment_status,
            "booking_status": self.booking_status,
            "gateway_order_id": self.gateway_order_id,
            "gateway_payment_id": self.gateway_payment_id,
            "created_at": to_utc_z(self.created_at),
        }
