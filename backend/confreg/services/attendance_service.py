# Overview: Entry passes and gate scans for paid registrations.

"""
Attendance Service

The QR payload is the registration number. A pass is issued once per
registration (first successful payment) and reused afterwards. Each gate
scan appends to attendance_scans; a pass allows MAX_SCANS entries in total.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Attendance, AttendanceScan, Registration
from confreg.time_utils import utcnow


MAX_SCANS = 10


class AttendanceError(Exception):
    """Raised for unknown, inactive or exhausted passes."""
    pass


class AttendanceNotFoundError(AttendanceError):
    pass


def ensure_attendance(registration: Registration) -> Attendance:
    """Return the registration's pass, creating it on first call."""
    attendance = Attendance.query.filter_by(registration_id=registration.id).first()
    if attendance is not None:
        return attendance

    attendance = Attendance(
        registration_id=registration.id,
        qr_code_data=registration.registration_number,
        is_active=True,
        total_scans=0,
    )
    db.session.add(attendance)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        attendance = Attendance.query.filter_by(registration_id=registration.id).first()
        if attendance is None:
            raise
    return attendance


def get_my_qr(user) -> dict:
    registration = Registration.query.filter_by(user_id=user.id).first()
    if registration is None:
        raise AttendanceNotFoundError("No registration found")
    if registration.payment_status != "PAID":
        raise AttendanceError("Payment not completed")

    attendance = ensure_attendance(registration)
    return {
        "qr_code_data": attendance.qr_code_data,
        "registration_number": registration.registration_number,
        "is_active": attendance.is_active,
        "total_scans": attendance.total_scans,
    }


def _load_pass(qr_code: str) -> tuple[Attendance, Registration]:
    if not qr_code or not str(qr_code).strip():
        raise AttendanceError("QR code is required")
    attendance = Attendance.query.filter_by(qr_code_data=str(qr_code).strip()).first()
    if attendance is None:
        raise AttendanceNotFoundError("Invalid QR code")
    if not attendance.is_active:
        raise AttendanceError("QR code is inactive")

    registration = attendance.registration
    if registration is None or registration.payment_status != "PAID":
        raise AttendanceError("Registration is not paid")
    return attendance, registration


def _summary(attendance: Attendance, registration: Registration) -> dict:
    user = registration.user
    return {
        "attendance": attendance.to_dict(include_scans=True),
        "registration_number": registration.registration_number,
        "delegate": {
            "name": user.name if user else None,
            "email": user.email if user else None,
            "role": user.role if user else None,
        },
        "remaining_scans": max(0, MAX_SCANS - (attendance.total_scans or 0)),
        "max_scans": MAX_SCANS,
    }


def check_scan(qr_code: str) -> dict:
    attendance, registration = _load_pass(qr_code)
    return _summary(attendance, registration)


def mark_scan(qr_code: str, admin, count=1, location: str | None = None, notes: str | None = None) -> dict:
    """Record count entries against a pass. Raises AttendanceError past MAX_SCANS."""
    try:
        count = 1 if count in (None, "") else int(count)
    except (TypeError, ValueError):
        raise AttendanceError("count must be an integer") from None
    if count < 1:
        raise AttendanceError("count must be at least 1")

    attendance, registration = _load_pass(qr_code)
    remaining = MAX_SCANS - (attendance.total_scans or 0)
    if count > remaining:
        raise AttendanceError(f"Scan limit exceeded ({remaining} remaining)")

    db.session.add(AttendanceScan(
        attendance_id=attendance.id,
        scanned_by_user_id=admin.id if admin else None,
        scanned_at=utcnow(),
        location=location,
        notes=notes,
        count=count,
    ))
    attendance.total_scans = (attendance.total_scans or 0) + count
    db.session.commit()

    current_app.logger.info(
        "Scan recorded for %s: +%s (total %s)",
        registration.registration_number,
        count,
        attendance.total_scans,
    )
    return _summary(attendance, registration)
