from __future__ import annotations

from ..extensions import db
from confreg.time_utils import to_utc_z


# Canonical delegate roles; each one selects a pricing tier.
ROLE_AOA = "AOA"
ROLE_NON_AOA = "NON_AOA"
ROLE_PGS = "PGS"
VALID_ROLES = [ROLE_AOA, ROLE_NON_AOA, ROLE_PGS]

# Professional profile fields that must be present before checkout.
PROFILE_REQUIRED_FIELDS = [
    "gender",
    "country",
    "state",
    "city",
    "address",
    "pincode",
    "institute_hospital",
    "designation",
    "medical_council_name",
]


class User(db.Model):
    """
    Delegate (or admin) account.

    WHY: Every registration, payment and scan must be attributable to a person.
    Email and phone are the identity keys and are immutable after signup.
    The role decides the pricing tier; admins carry is_admin and no tier.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_users_email"),
        db.UniqueConstraint("phone", name="uq_users_phone"),
        db.UniqueConstraint("membership_id", name="uq_users_membership_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), nullable=False, index=True)
    phone = db.Column(db.String(32), nullable=False)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    # Pricing tier: AOA, NON_AOA, PGS (null for admin accounts)
    role = db.Column(db.String(16), nullable=True, index=True)

    # Demographic / professional profile
    gender = db.Column(db.String(16), nullable=True)
    meal_preference = db.Column(db.String(32), nullable=True)
    country = db.Column(db.String(64), nullable=True, default="India")
    state = db.Column(db.String(64), nullable=True)
    city = db.Column(db.String(64), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    pincode = db.Column(db.String(16), nullable=True)
    institute_hospital = db.Column(db.String(255), nullable=True)
    designation = db.Column(db.String(128), nullable=True)
    medical_council_name = db.Column(db.String(128), nullable=True)
    medical_council_number = db.Column(db.String(64), nullable=True)
    membership_id = db.Column(db.String(64), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    is_profile_complete = db.Column(db.Boolean, nullable=False, default=False)
    is_admin = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "gender": self.gender,
            "meal_preference": self.meal_preference,
            "country": self.country,
            "state": self.state,
            "city": self.city,
            "address": self.address,
            "pincode": self.pincode,
            "institute_hospital": self.institute_hospital,
            "designation": self.designation,
            "medical_council_name": self.medical_council_name,
            "medical_council_number": self.medical_council_number,
            "membership_id": self.membership_id,
            "is_active": self.is_active,
            "is_verified": self.is_verified,
            "is_profile_complete": self.is_profile_complete,
            "is_admin": self.is_admin,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class SessionToken(db.Model):
    """
    Opaque bearer session.

    Only the SHA-256 hash of the token is stored. Sessions expire on an
    absolute deadline and after an idle window, and are revocable.
    """
    __tablename__ = "session_tokens"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(128), nullable=True)

    user_agent = db.Column(db.String(255), nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
        }
