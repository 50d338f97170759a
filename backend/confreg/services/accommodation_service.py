# Overview: Partner-hotel inventory and room bookings.

from __future__ import annotations

import math
from datetime import date

from flask import current_app

from ..extensions import db
from ..models import Accommodation, AccommodationBooking
from confreg.time_utils import parse_iso_date
from .concurrency import lock_for_update, run_with_retry
from .registration_number_service import increment_counter


BOOKING_COUNTER = "accommodationBookingNumber"
BOOKING_PREFIX = "ACC-"


class AccommodationError(Exception):
    """Raised for invalid accommodation or booking requests."""
    pass


class AccommodationNotFoundError(AccommodationError):
    pass


def _parse_date(value, field: str) -> date:
    try:
        parsed = parse_iso_date(value)
    except ValueError:
        raise AccommodationError(f"{field} must be an ISO date") from None
    if parsed is None:
        raise AccommodationError(f"{field} is required")
    return parsed


def _positive_int(value, field: str, default: int | None = None) -> int:
    if value in (None, "") and default is not None:
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise AccommodationError(f"{field} must be an integer") from None
    if number < 1:
        raise AccommodationError(f"{field} must be at least 1")
    return number


def count_nights(check_in: date, check_out: date) -> int:
    return math.ceil((check_out - check_in).total_seconds() / 86400)


def list_accommodations(include_inactive: bool = False):
    query = Accommodation.query
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(Accommodation.name.asc()).all()


def get_accommodation(accommodation_id: int) -> Accommodation:
    accommodation = db.session.get(Accommodation, accommodation_id)
    if accommodation is None:
        raise AccommodationNotFoundError("Accommodation not found")
    return accommodation


def book_accommodation(user, payload: dict) -> AccommodationBooking:
    """
    Reserve rooms and price the stay.

    total = price_per_night * nights * rooms. Rooms are taken from the pool
    at booking time under a row lock; the booking awaits payment.
    """
    payload = payload or {}
    if not payload.get("accommodation_id"):
        raise AccommodationError("accommodation_id is required")
    check_in = _parse_date(payload.get("check_in_date"), "check_in_date")
    check_out = _parse_date(payload.get("check_out_date"), "check_out_date")
    nights = count_nights(check_in, check_out)
    if nights <= 0:
        raise AccommodationError("Invalid date range")
    rooms = _positive_int(payload.get("rooms_booked"), "rooms_booked", default=1)
    guests = _positive_int(payload.get("number_of_guests"), "number_of_guests", default=1)

    def _op() -> AccommodationBooking:
        accommodation = lock_for_update(
            Accommodation.query.filter_by(id=int(payload["accommodation_id"]))
        ).first()
        if accommodation is None or not accommodation.is_active:
            raise AccommodationNotFoundError("Accommodation not found")
        if accommodation.available_rooms < rooms:
            raise AccommodationError("Not enough rooms available")

        seq = increment_counter(BOOKING_COUNTER)
        booking = AccommodationBooking(
            booking_number=f"{BOOKING_PREFIX}{seq:04d}",
            user_id=user.id,
            accommodation_id=accommodation.id,
            check_in_date=check_in,
            check_out_date=check_out,
            number_of_nights=nights,
            number_of_guests=guests,
            rooms_booked=rooms,
            total_amount=accommodation.price_per_night * nights * rooms,
            special_requests=payload.get("special_requests"),
        )
        db.session.add(booking)
        accommodation.available_rooms -= rooms
        db.session.commit()
        return booking

    booking = run_with_retry(_op, label=f"booking (accommodation {payload['accommodation_id']})")
    current_app.logger.info(
        "Booking %s: user %s, %s room(s) x %s night(s), INR %s",
        booking.booking_number,
        user.id,
        rooms,
        nights,
        booking.total_amount,
    )
    return booking


def list_bookings_for_user(user_id: int):
    return (
        AccommodationBooking.query.filter_by(user_id=user_id)
        .order_by(AccommodationBooking.id.desc())
        .all()
    )


def list_bookings(payment_status: str | None = None, accommodation_id: int | None = None):
    query = AccommodationBooking.query
    if payment_status:
        query = query.filter(AccommodationBooking.payment_status == payment_status.upper())
    if accommodation_id:
        query = query.filter(AccommodationBooking.accommodation_id == accommodation_id)
    return query.order_by(AccommodationBooking.id.desc()).all()


_EDITABLE_FIELDS = ("name", "location", "description", "price_per_night", "total_rooms", "available_rooms", "is_active")


def create_accommodation(payload: dict) -> Accommodation:
    payload = payload or {}
    name = (payload.get("name") or "").strip()
    if not name:
        raise AccommodationError("name is required")
    price = payload.get("price_per_night")
    if price is None or int(price) < 0:
        raise AccommodationError("price_per_night must be a non-negative integer")
    total_rooms = int(payload.get("total_rooms") or 0)
    available = payload.get("available_rooms")
    available = total_rooms if available is None else int(available)
    if total_rooms < 0 or available < 0:
        raise AccommodationError("Room counts cannot be negative")

    accommodation = Accommodation(
        name=name,
        location=payload.get("location"),
        description=payload.get("description"),
        price_per_night=int(price),
        total_rooms=total_rooms,
        available_rooms=available,
        is_active=bool(payload.get("is_active", True)),
    )
    db.session.add(accommodation)
    db.session.commit()
    return accommodation


def update_accommodation(accommodation_id: int, payload: dict) -> Accommodation:
    def _op() -> Accommodation:
        accommodation = get_accommodation(accommodation_id)
        for field in _EDITABLE_FIELDS:
            if field not in (payload or {}):
                continue
            value = payload[field]
            if field in ("price_per_night", "total_rooms", "available_rooms"):
                value = int(value)
                if value < 0:
                    raise AccommodationError(f"{field} cannot be negative")
            elif field == "is_active":
                value = bool(value)
            setattr(accommodation, field, value)
        db.session.commit()
        return accommodation

    return run_with_retry(_op, label=f"accommodation update ({accommodation_id})")


def delete_accommodation(accommodation_id: int) -> None:
    accommodation = get_accommodation(accommodation_id)
    if AccommodationBooking.query.filter_by(accommodation_id=accommodation.id).count():
        raise AccommodationError("Accommodation has bookings; deactivate it instead")
    db.session.delete(accommodation)
    db.session.commit()
