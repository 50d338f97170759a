# Overview: Flask API routes for delegate accounts; parses input and returns JSON responses.

# backend/confreg/routes/auth.py
"""
Authentication API routes

Signup is open to delegates (role required). Admin accounts are created
from the CLI: flask users create-admin.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..services.auth_service import AuthError, PasswordValidationError
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _session_payload(user, session, token) -> dict:
    return {
        "user": user.to_dict(),
        "token": token,
        "session": session.to_dict(),
    }


@auth_bp.post("/register")
def register_route():
    """
    Delegate signup.

    Request body: name, email, phone, password, role (AOA | NON_AOA | PGS)
    plus any profile fields.

    Returns:
        201: Account created, session token issued
        400: Missing/duplicate fields, weak password, invalid role
    """
    try:
        data = request.get_json(silent=True) or {}
        profile = {k: data[k] for k in auth_service.PROFILE_FIELDS if k in data}
        profile.pop("name", None)

        user = auth_service.create_user(
            name=data.get("name"),
            email=data.get("email"),
            phone=data.get("phone"),
            password=data.get("password") or "",
            role=data.get("role"),
            **profile,
        )
        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        current_app.logger.info("Delegate account created: %s (%s)", user.email, user.role)
        return jsonify(_session_payload(user, session, token)), 201

    except (AuthError, PasswordValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    """Authenticate by email or phone and issue a session token."""
    try:
        data = request.get_json(silent=True) or {}
        identifier = data.get("email") or data.get("phone") or data.get("identifier")
        password = data.get("password")

        if not all([identifier, password]):
            return jsonify({"error": "email/phone and password required"}), 400

        user = auth_service.authenticate(identifier, password)
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        payload = _session_payload(user, session, token)
        payload["message"] = "Login successful"
        return jsonify(payload), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        session_service.revoke_session(g.session_token)
        return jsonify({"message": "Logged out"}), 200
    except Exception:
        current_app.logger.exception("Failed to logout")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200


@auth_bp.put("/profile")
@require_auth
def update_profile_route():
    """Update profile fields. Email and phone cannot change."""
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.update_profile(g.current_user, data)
        return jsonify({"user": user.to_dict()}), 200

    except AuthError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update profile")
        return jsonify({"error": "Internal server error"}), 500
