# Overview: Flask API routes for the delegate's registration; parses input and returns JSON responses.

# backend/confreg/routes/registration.py
"""
Registration API Routes

DESIGN:
- Price preview is side-effect free (phase optional, defaults to today)
- POST / creates or updates the caller's single registration
- Coupons can be applied to, and revalidated on, a stored registration
- Accepts JSON or form-encoded bodies
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import pricing_service, registration_service
from ..services.pricing_service import PricingError
from ..services.registration_service import RegistrationError, RegistrationNotFoundError
from ..decorators import require_auth, require_profile_complete


registration_bp = Blueprint("registration", __name__, url_prefix="/api/registration")


def _request_data() -> dict:
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


@registration_bp.get("/pricing")
@require_auth
def pricing_route():
    """
    Price sheet for the caller's role.

    Query params:
    - phase: EARLY_BIRD | REGULAR | SPOT (optional)
    """
    try:
        phase = request.args.get("phase") or None
        preview = pricing_service.get_pricing_preview(
            g.current_user.role,
            phase=phase.upper() if phase else None,
            seats_taken=registration_service.count_course_seats(),
        )
        return jsonify(preview), 200

    except PricingError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to build pricing preview")
        return jsonify({"error": "Internal server error"}), 500


@registration_bp.post("/")
@require_auth
@require_profile_complete
def upsert_registration_route():
    """
    Create or update the caller's registration.

    Request body:
    {
        "add_workshop": true,
        "selected_workshop": "pocus",
        "add_aoa_course": false,
        "add_life_membership": false,
        "accompanying_persons": 1,
        "coupon_code": "AOACON5123"   (optional)
    }

    Returns:
        201: Registration created
        200: Registration updated
        400: Ineligible, unavailable or full selection
    """
    try:
        registration, created = registration_service.upsert_registration(
            g.current_user, _request_data()
        )
        return jsonify({
            "message": "Registration created successfully" if created else "Registration updated successfully",
            "registration": registration.to_dict(),
        }), 201 if created else 200

    except RegistrationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to save registration")
        return jsonify({"error": "Internal server error"}), 500


@registration_bp.post("/apply-coupon")
@require_auth
@require_profile_complete
def apply_coupon_route():
    try:
        data = _request_data()
        registration = registration_service.apply_coupon(g.current_user, data.get("coupon_code"))
        return jsonify({"registration": registration.to_dict()}), 200

    except RegistrationNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except RegistrationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to apply coupon")
        return jsonify({"error": "Internal server error"}), 500


@registration_bp.post("/validate-coupon")
@require_auth
@require_profile_complete
def validate_coupon_route():
    try:
        registration, coupon_valid = registration_service.revalidate_coupon(g.current_user)
        return jsonify({
            "registration": registration.to_dict(),
            "coupon_valid": coupon_valid,
        }), 200

    except RegistrationNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except RegistrationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to validate coupon")
        return jsonify({"error": "Internal server error"}), 500


@registration_bp.get("/my-registration")
@require_auth
def my_registration_route():
    try:
        registration = registration_service.get_registration_for_user(g.current_user.id)
        if not registration:
            return jsonify({"error": "No registration found"}), 404

        data = registration.to_dict()
        data["package_label"] = registration_service.build_package_label(registration)
        return jsonify({"registration": data}), 200

    except Exception:
        current_app.logger.exception("Failed to fetch registration")
        return jsonify({"error": "Internal server error"}), 500
