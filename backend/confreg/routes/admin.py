# Overview: Flask API routes for conference administration; parses input and returns JSON responses.

# backend/confreg/routes/admin.py
"""
Admin API Routes

All endpoints require an admin session.

- Registration-number counter (view / set, never below highest used)
- Desk (manual) registrations: number availability, quote, create
- Registration and payment listings, delete, confirmation email resend
- Accommodation inventory and bookings
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import (
    accommodation_service,
    manual_registration_service,
    payment_service,
    registration_number_service,
    registration_service,
)
from ..services.accommodation_service import AccommodationError, AccommodationNotFoundError
from ..services.payment_service import PaymentError, PaymentNotFoundError
from ..services.registration_number_service import RegistrationNumberError
from ..services.registration_service import RegistrationError, RegistrationNotFoundError
from ..decorators import require_auth, require_admin
from ..extensions import db


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


# =============================================================================
# REGISTRATION NUMBER COUNTER
# =============================================================================

@admin_bp.get("/counters/registration-number")
@require_auth
@require_admin
def get_counter_route():
    try:
        info = registration_number_service.get_counter_info()
        db.session.commit()
        return jsonify(info), 200
    except Exception:
        current_app.logger.exception("Failed to read registration counter")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.put("/counters/registration-number")
@require_auth
@require_admin
def set_counter_route():
    """
    Request body: {"seq": 120}

    Returns:
        200: Counter updated
        400: Negative, non-integer, or below the highest used number
    """
    try:
        data = request.get_json(silent=True) or {}
        info = registration_number_service.set_counter(data.get("seq"))
        current_app.logger.warning(
            "Registration counter set to %s by admin %s", info["counter"], g.current_user.id
        )
        return jsonify(info), 200

    except RegistrationNumberError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to set registration counter")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# MANUAL REGISTRATIONS
# =============================================================================

@admin_bp.get("/manual-registrations/availability")
@require_auth
@require_admin
def manual_availability_route():
    """Query params: start, end (default 1..14)."""
    try:
        result = registration_number_service.availability_in_range(
            request.args.get("start"), request.args.get("end")
        )
        return jsonify(result), 200

    except (RegistrationNumberError, ValueError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to compute number availability")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/manual-registrations/quote")
@require_auth
@require_admin
def manual_quote_route():
    try:
        data = request.get_json(silent=True) or {}
        return jsonify(manual_registration_service.quote_manual_registration(data)), 200

    except RegistrationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to quote manual registration")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/manual-registrations")
@require_auth
@require_admin
def manual_create_route():
    try:
        data = request.get_json(silent=True) or {}
        result = manual_registration_service.create_manual_registration(data, admin=g.current_user)
        return jsonify(result), 201

    except RegistrationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create manual registration")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# REGISTRATIONS & PAYMENTS
# =============================================================================

@admin_bp.get("/registrations")
@require_auth
@require_admin
def list_registrations_route():
    """Query params: payment_status, booking_phase, search."""
    try:
        registrations = registration_service.list_registrations(
            payment_status=request.args.get("payment_status"),
            booking_phase=request.args.get("booking_phase"),
            search=request.args.get("search"),
        )
        items = []
        for registration in registrations:
            data = registration.to_dict()
            data["user"] = registration.user.to_dict() if registration.user else None
            data["package_label"] = registration_service.build_package_label(registration)
            items.append(data)
        return jsonify({"registrations": items, "count": len(items)}), 200

    except Exception:
        current_app.logger.exception("Failed to list registrations")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/registrations/<int:registration_id>/payments")
@require_auth
@require_admin
def registration_payments_route(registration_id: int):
    try:
        return jsonify(payment_service.get_payment_summary(registration_id)), 200

    except PaymentNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load payment summary")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.delete("/registrations/<int:registration_id>")
@require_auth
@require_admin
def delete_registration_route(registration_id: int):
    try:
        result = registration_service.delete_registration(registration_id)
        return jsonify(result), 200

    except RegistrationNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to delete registration")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/registrations/<int:registration_id>/resend-email")
@require_auth
@require_admin
def resend_email_route(registration_id: int):
    try:
        result = payment_service.resend_payment_email(registration_id)
        return jsonify(result), 200 if result["sent"] else 502

    except PaymentNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PaymentError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to resend payment email")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/payments")
@require_auth
@require_admin
def list_payments_route():
    """Query params: status, payment_type, user_id."""
    try:
        payments = payment_service.list_payments(
            status=request.args.get("status"),
            payment_type=request.args.get("payment_type"),
            user_id=request.args.get("user_id", type=int),
        )
        return jsonify({"payments": [p.to_dict() for p in payments], "count": len(payments)}), 200

    except Exception:
        current_app.logger.exception("Failed to list payments")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# ACCOMMODATION
# =============================================================================

@admin_bp.post("/accommodations")
@require_auth
@require_admin
def create_accommodation_route():
    try:
        accommodation = accommodation_service.create_accommodation(request.get_json(silent=True) or {})
        return jsonify({"accommodation": accommodation.to_dict()}), 201

    except (AccommodationError, ValueError, TypeError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create accommodation")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.put("/accommodations/<int:accommodation_id>")
@require_auth
@require_admin
def update_accommodation_route(accommodation_id: int):
    try:
        accommodation = accommodation_service.update_accommodation(
            accommodation_id, request.get_json(silent=True) or {}
        )
        return jsonify({"accommodation": accommodation.to_dict()}), 200

    except AccommodationNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (AccommodationError, ValueError, TypeError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update accommodation")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.delete("/accommodations/<int:accommodation_id>")
@require_auth
@require_admin
def delete_accommodation_route(accommodation_id: int):
    try:
        accommodation_service.delete_accommodation(accommodation_id)
        return jsonify({"message": "Accommodation deleted"}), 200

    except AccommodationNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except AccommodationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to delete accommodation")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/accommodation-bookings")
@require_auth
@require_admin
def list_accommodation_bookings_route():
    try:
        bookings = accommodation_service.list_bookings(
            payment_status=request.args.get("payment_status"),
            accommodation_id=request.args.get("accommodation_id", type=int),
        )
        items = []
        for booking in bookings:
            data = booking.to_dict()
            data["user"] = booking.user.to_dict() if booking.user else None
            items.append(data)
        return jsonify({"bookings": items, "count": len(items)}), 200

    except Exception:
        current_app.logger.exception("Failed to list accommodation bookings")
        return jsonify({"error": "Internal server error"}), 500
