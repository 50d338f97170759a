# Overview: Flask API routes for hotel listings and delegate room bookings.

# backend/confreg/routes/accommodation.py
from flask import Blueprint, request, jsonify, g, current_app

from ..services import accommodation_service
from ..services.accommodation_service import AccommodationError, AccommodationNotFoundError
from ..decorators import require_auth, require_profile_complete


accommodation_bp = Blueprint("accommodation", __name__, url_prefix="/api/accommodation")


@accommodation_bp.get("/")
def list_accommodations_route():
    try:
        accommodations = accommodation_service.list_accommodations()
        return jsonify({"accommodations": [a.to_dict() for a in accommodations]}), 200
    except Exception:
        current_app.logger.exception("Failed to list accommodations")
        return jsonify({"error": "Internal server error"}), 500


@accommodation_bp.get("/<int:accommodation_id>")
def get_accommodation_route(accommodation_id: int):
    try:
        accommodation = accommodation_service.get_accommodation(accommodation_id)
        return jsonify({"accommodation": accommodation.to_dict()}), 200
    except AccommodationNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load accommodation")
        return jsonify({"error": "Internal server error"}), 500


@accommodation_bp.get("/my-bookings")
@require_auth
def my_bookings_route():
    try:
        bookings = accommodation_service.list_bookings_for_user(g.current_user.id)
        return jsonify({"bookings": [b.to_dict() for b in bookings]}), 200
    except Exception:
        current_app.logger.exception("Failed to list bookings")
        return jsonify({"error": "Internal server error"}), 500


@accommodation_bp.post("/book")
@require_auth
@require_profile_complete
def book_route():
    """
    Request body:
    {
        "accommodation_id": 1,
        "check_in_date": "2026-11-20",
        "check_out_date": "2026-11-22",
        "rooms_booked": 1,
        "number_of_guests": 2,
        "special_requests": "ground floor"
    }

    Returns:
        201: Booking created (payment pending)
        400: Invalid dates or not enough rooms
        404: Unknown or inactive accommodation
    """
    try:
        booking = accommodation_service.book_accommodation(
            g.current_user, request.get_json(silent=True) or {}
        )
        return jsonify({"booking": booking.to_dict()}), 201

    except AccommodationNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except AccommodationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to book accommodation")
        return jsonify({"error": "Internal server error"}), 500
