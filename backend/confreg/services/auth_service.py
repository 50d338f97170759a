# Overview: Delegate accounts: signup, login and profile maintenance.

"""
Authentication Service

WHY: Registrations and payments belong to a person. Email and phone are the
identity keys and cannot change after signup; the role picks the pricing
tier.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters with upper, lower, digit and special character
- Session tokens managed separately (see session_service.py)
"""

import re
import secrets

import bcrypt
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import User
from ..models.auth import PROFILE_REQUIRED_FIELDS, ROLE_AOA, VALID_ROLES
from confreg.time_utils import utcnow
from .pricing_service import normalize_role


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class AuthError(Exception):
    """Raised for invalid signup or profile data."""
    pass


PROFILE_FIELDS = (
    "name",
    "gender",
    "meal_preference",
    "country",
    "state",
    "city",
    "address",
    "pincode",
    "institute_hospital",
    "designation",
    "medical_council_name",
    "medical_council_number",
    "membership_id",
)


def validate_password_strength(password: str) -> None:
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")
    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")
    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")
    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str, validate: bool = True) -> str:
    if validate:
        validate_password_strength(password)
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=12))
    return hashed.decode('utf-8')


def generate_temporary_password() -> str:
    return secrets.token_hex(10)


def verify_password(password: str, password_hash: str) -> bool:
    """bcrypt.checkpw is timing-safe. Malformed hashes never verify."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def normalize_email(email) -> str:
    return str(email or "").strip().lower()


def refresh_profile_complete(user: User) -> bool:
    """Profile is complete when every professional field is filled (AOA also needs a membership id)."""
    complete = all(str(getattr(user, f) or "").strip() for f in PROFILE_REQUIRED_FIELDS)
    if user.role == ROLE_AOA and not str(user.membership_id or "").strip():
        complete = False
    user.is_profile_complete = complete
    return complete


def create_user(
    name: str,
    email: str,
    phone: str,
    password: str,
    role: str | None = None,
    is_admin: bool = False,
    **profile,
) -> User:
    """
    Create an account.

    Raises AuthError for missing/duplicate identity fields or an unknown role,
    PasswordValidationError for a weak password.
    """
    email = normalize_email(email)
    phone = str(phone or "").strip()
    name = str(name or "").strip()
    if not name or not email or not phone:
        raise AuthError("Name, email and phone are required")

    role = normalize_role(role) if role else None
    if not is_admin and role not in VALID_ROLES:
        raise AuthError("Role must be one of AOA, NON_AOA, PGS")

    existing = db.session.query(User).filter(
        db.or_(User.email == email, User.phone == phone)
    ).first()
    if existing:
        raise AuthError("Email or phone already registered")

    user = User(
        name=name,
        email=email,
        phone=phone,
        password_hash=hash_password(password),
        role=role,
        is_admin=is_admin,
    )
    for field in PROFILE_FIELDS:
        if field in profile and field != "name":
            setattr(user, field, profile[field])
    refresh_profile_complete(user)

    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise AuthError("Email, phone or membership id already registered") from None
    return user


def authenticate(identifier: str, password: str) -> User | None:
    """
    Check credentials (email or phone).

    Returns the user and stamps last_login_at, or None.
    """
    identifier = str(identifier or "").strip()
    user = db.session.query(User).filter(
        db.or_(User.email == identifier.lower(), User.phone == identifier),
        User.is_active.is_(True),
    ).first()
    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user
    return None


def update_profile(user: User, payload: dict) -> User:
    """Update profile fields. Email and phone are immutable; role is fixed once registered."""
    payload = payload or {}
    for immutable in ("email", "phone"):
        if immutable in payload and str(payload[immutable]).strip().lower() != str(getattr(user, immutable)).lower():
            raise AuthError(f"{immutable} cannot be changed")

    if "role" in payload:
        role = normalize_role(payload["role"])
        if role not in VALID_ROLES:
            raise AuthError("Role must be one of AOA, NON_AOA, PGS")
        if role != user.role and user.registration is not None:
            raise AuthError("Role cannot be changed after registering")
        user.role = role

    for field in PROFILE_FIELDS:
        if field in payload:
            value = payload[field]
            setattr(user, field, value.strip() if isinstance(value, str) else value)
    refresh_profile_complete(user)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise AuthError("Membership id already registered") from None
    return user
