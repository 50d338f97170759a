# Overview: Admin desk registrations paid outside the gateway (cash, bank transfer).

"""
Manual Registration Service

WHY: Delegates who pay at the desk or by bank transfer still need a
registration number, a ledger entry and an entry pass.

FLOW:
1. Same role/add-on rules and phase availability as self-service
   (no accompanying persons, no coupon)
2. Number reserved by probing forward from the preferred number or range
   start, then the shared counter is raised to it
3. Registration is stored PAID against a SUCCESS payment
   (order id manual_<unix ms>_<number>, optional UTR as payment id)
4. Attendance pass + confirmation email, best effort

A concurrent desk registration can take the scanned number first; the
unique constraint then rejects the insert and the admin retries.
"""

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Payment, Registration, User
from ..models.auth import ROLE_AOA, VALID_ROLES
from confreg.time_utils import utcnow
from .auth_service import generate_temporary_password, hash_password, normalize_email
from .payment_service import (
    CAPTURED_VIA_MANUAL,
    STATUS_SUCCESS,
    TYPE_REGISTRATION,
    send_registration_confirmation,
)
from .pricing_service import Selections, get_booking_phase, normalize_role
from .pricing_tables import VALID_PHASES
from .registration_number_service import (
    DEFAULT_RANGE_START,
    RegistrationNumberError,
    find_next_available,
    parse_registration_seq,
    raise_counter_to,
)
from .registration_service import (
    WORKSHOPS,
    RegistrationError,
    as_bool,
    apply_breakdown,
    check_availability,
    check_course_capacity,
    check_eligibility,
    generate_lifetime_membership_id,
    price_registration,
    registration_type_for,
)


# (payload key, label) in the order they are reported
MANUAL_REQUIRED_FIELDS = [
    ("gender", "gender"),
    ("meal_preference", "meal preference"),
    ("country", "country"),
    ("state", "state"),
    ("city", "city"),
    ("address", "address"),
    ("pincode", "pincode"),
    ("institute_hospital", "institute/hospital"),
    ("designation", "designation"),
    ("medical_council_name", "medical council name"),
    ("medical_council_number", "medical council number"),
]


def _selections(payload: dict) -> Selections:
    return Selections(
        add_workshop=as_bool(payload.get("add_workshop")),
        add_aoa_course=as_bool(payload.get("add_aoa_course")),
        add_life_membership=as_bool(payload.get("add_life_membership")),
    )


def _role(payload: dict) -> str:
    if not payload.get("role"):
        raise RegistrationError("Role is required")
    role = normalize_role(str(payload["role"]).upper())
    if role not in VALID_ROLES:
        raise RegistrationError("Invalid role")
    return role


def _phase(payload: dict) -> str:
    phase = str(payload.get("booking_phase") or "").strip().upper() or get_booking_phase()
    if phase not in VALID_PHASES:
        raise RegistrationError("Invalid booking phase")
    return phase


def quote_manual_registration(payload: dict) -> dict:
    """Price a desk registration without persisting anything."""
    payload = payload or {}
    role = _role(payload)
    selections = _selections(payload)
    check_eligibility(role, selections)
    phase = _phase(payload)
    check_availability(role, phase, selections)
    return price_registration(role, phase, selections).to_dict()


def _start_seq(payload: dict) -> int:
    preferred = payload.get("preferred_registration_number")
    if preferred not in (None, ""):
        seq = parse_registration_seq(preferred)
        if seq is None:
            try:
                seq = int(str(preferred).strip())
            except ValueError:
                raise RegistrationError("Invalid preferred registration number") from None
        return seq
    try:
        return int(payload.get("range_start") or DEFAULT_RANGE_START)
    except (TypeError, ValueError):
        raise RegistrationError("Invalid range start") from None


def create_manual_registration(payload: dict, admin=None) -> dict:
    """
    Register and mark paid in one step.

    Returns the registration, the payment and whether the email went out.
    """
    payload = payload or {}
    name = str(payload.get("name") or "").strip()
    email = normalize_email(payload.get("email"))
    phone = str(payload.get("phone") or "").strip()
    if not name or not email or not phone or not payload.get("role"):
        raise RegistrationError("Name, email, phone, and role are required")

    role = _role(payload)
    selections = _selections(payload)
    workshop = (payload.get("selected_workshop") or "").strip() or None
    if selections.add_workshop:
        if not workshop:
            raise RegistrationError("Workshop selection is required")
        if workshop not in WORKSHOPS:
            raise RegistrationError(f"Unknown workshop: {workshop}")
    else:
        workshop = None
    check_eligibility(role, selections)

    for key, label in MANUAL_REQUIRED_FIELDS:
        if not str(payload.get(key) or "").strip():
            raise RegistrationError(f"Missing required field: {label}")
    membership_id = str(payload.get("membership_id") or "").strip() or None
    if role == ROLE_AOA and not membership_id:
        raise RegistrationError("AOA membership ID is required for AOA members")

    user = User.query.filter(db.or_(User.email == email, User.phone == phone)).first()
    if user is not None and user.registration is not None:
        raise RegistrationError("User already has a registration")

    phase = _phase(payload)
    check_availability(role, phase, selections)
    check_course_capacity(None, selections)
    breakdown = price_registration(role, phase, selections)

    try:
        seq, registration_number = find_next_available(_start_seq(payload))
    except RegistrationNumberError as e:
        raise RegistrationError(str(e)) from e

    if user is None:
        user = User(
            email=email,
            phone=phone,
            password_hash=hash_password(generate_temporary_password(), validate=False),
        )
        db.session.add(user)
    user.name = name
    user.role = role
    for key, _label in MANUAL_REQUIRED_FIELDS:
        setattr(user, key, str(payload.get(key)).strip())
    user.membership_id = membership_id if role == ROLE_AOA else user.membership_id
    user.is_active = True
    user.is_verified = True
    user.is_profile_complete = True

    order_id = f"manual_{int(time.time() * 1000)}_{registration_number}"
    utr = str(payload.get("utr") or "").strip() or None

    try:
        db.session.flush()
        registration = Registration(
            user_id=user.id,
            registration_number=registration_number,
            registration_type=registration_type_for(selections),
            add_workshop=selections.add_workshop,
            selected_workshop=workshop,
            add_aoa_course=selections.add_aoa_course,
            add_life_membership=selections.add_life_membership,
            total_paid=breakdown.total_amount,
            gateway_order_id=order_id,
            gateway_payment_id=utr,
            lifetime_membership_id=(
                generate_lifetime_membership_id() if selections.add_life_membership else None
            ),
        )
        apply_breakdown(registration, breakdown)
        db.session.add(registration)
        db.session.flush()

        payment = Payment(
            user_id=user.id,
            registration_id=registration.id,
            amount=breakdown.total_amount,
            currency=current_app.config.get("PAYMENT_CURRENCY", "INR"),
            payment_type=TYPE_REGISTRATION,
            status=STATUS_SUCCESS,
            gateway_order_id=order_id,
            gateway_payment_id=utr,
            captured_via=CAPTURED_VIA_MANUAL,
            captured_at=utcnow(),
        )
        db.session.add(payment)
        raise_counter_to(seq)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise RegistrationError(
            "Registration number or user details already in use; please retry"
        ) from None

    current_app.logger.info(
        "Manual registration %s created by admin %s: INR %s",
        registration_number,
        admin.id if admin else None,
        breakdown.total_amount,
    )

    email_sent = send_registration_confirmation(registration, breakdown.total_amount)
    return {
        "registration": registration.to_dict(),
        "payment": payment.to_dict(),
        "user": user.to_dict(),
        "email_sent": email_sent,
    }
