# Overview: Flask API routes for entry passes and venue scanning.

# backend/confreg/routes/attendance.py
"""
Attendance API Routes

- GET  /api/attendance/my-qr       Delegate's entry pass (paid registrations only)
- POST /api/attendance/scan/check  Admin: look up a pass without recording
- POST /api/attendance/scan/mark   Admin: record entries (max 10 per pass)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import attendance_service
from ..services.attendance_service import AttendanceError, AttendanceNotFoundError
from ..decorators import require_auth, require_admin


attendance_bp = Blueprint("attendance", __name__, url_prefix="/api/attendance")


@attendance_bp.get("/my-qr")
@require_auth
def my_qr_route():
    try:
        return jsonify(attendance_service.get_my_qr(g.current_user)), 200

    except AttendanceNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except AttendanceError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to load entry pass")
        return jsonify({"error": "Internal server error"}), 500


@attendance_bp.post("/scan/check")
@require_auth
@require_admin
def scan_check_route():
    """Request body: {"qr_code": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        return jsonify(attendance_service.check_scan(data.get("qr_code"))), 200

    except AttendanceNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except AttendanceError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to check pass")
        return jsonify({"error": "Internal server error"}), 500


@attendance_bp.post("/scan/mark")
@require_auth
@require_admin
def scan_mark_route():
    """
    Request body: {"qr_code": "...", "count": 1, "location": "Hall A", "notes": null}

    Returns:
        200: Scan recorded, with remaining_scans
        400: Inactive/unpaid pass or scan limit exceeded
        404: Unknown QR code
    """
    try:
        data = request.get_json(silent=True) or {}
        result = attendance_service.mark_scan(
            data.get("qr_code"),
            g.current_user,
            count=data.get("count", 1),
            location=data.get("location"),
            notes=data.get("notes"),
        )
        return jsonify(result), 200

    except AttendanceNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except AttendanceError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record scan")
        return jsonify({"error": "Internal server error"}), 500
