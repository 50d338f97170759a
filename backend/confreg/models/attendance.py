from __future__ import annotations

from ..extensions import db
from confreg.time_utils import to_utc_z


class Attendance(db.Model):
    """
    Entry pass for a paid registration.

    The QR payload is the registration number; rendering the image is left
    to the client. Scans are appended to the attendance_scans ledger.
    """
    __tablename__ = "attendance"
    __table_args__ = (
        db.UniqueConstraint("registration_id", name="uq_attendance_registration"),
        db.UniqueConstraint("qr_code_data", name="uq_attendance_qr"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    registration_id = db.Column(db.Integer, db.ForeignKey("registrations.id"), nullable=False)
    qr_code_data = db.Column(db.String(64), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    total_scans = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    registration = db.relationship("Registration", backref=db.backref("attendance", uselist=False, lazy=True))

    def to_dict(self, include_scans: bool = False) -> dict:
        data = {
            "id": self.id,
            "registration_id": self.registration_id,
            "qr_code_data": self.qr_code_data,
            "is_active": self.is_active,
            "total_scans": self.total_scans,
            "created_at": to_utc_z(self.created_at),
        }
        if include_scans:
            data["scan_history"] = [s.to_dict() for s in sorted(self.scans, key=lambda s: s.id)]
        return data


class AttendanceScan(db.Model):
    """Single gate scan (append-only)."""
    __tablename__ = "attendance_scans"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    attendance_id = db.Column(db.Integer, db.ForeignKey("attendance.id"), nullable=False, index=True)
    scanned_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    scanned_at = db.Column(db.DateTime(timezone=True), nullable=False)
    location = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.String(255), nullable=True)
    count = db.Column(db.Integer, nullable=False, default=1)

    attendance = db.relationship("Attendance", backref=db.backref("scans", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "attendance_id": self.attendance_id,
            "scanned_by_user_id": self.scanned_by_user_id,
            "scanned_at": to_utc_z(self.scanned_at),
            "location": self.location,
            "notes": self.notes,
            "count": self.count,
        }
