# Overview: Service-layer operations for the per-user registration aggregate.

"""
Registration Service

WHY: A registration is repriced every time the delegate edits it, but money
already paid must never be lost and paid-for add-ons must never disappear.

RULES:
- One registration per user.
- Sticky add-ons: once PAID, owned add-ons stay selected (union merge) and
  the stored workshop choice is kept.
- Booking phase is frozen once PAID; otherwise it follows the clock.
- total_paid is preserved across edits; payment_status is re-derived.
- Validation failures raise RegistrationError and leave the row untouched.

CONCURRENCY:
- Registration writes are optimistic (version_id) and retried.
- The certified course seat cap is a count immediately before the write.
  Two concurrent first-time course requests can both pass the count, so the
  cap is not linearizable. Accepted at human-paced sign-up volumes.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Registration, Payment, Attendance, AttendanceScan, User
from ..models.auth import ROLE_AOA, ROLE_NON_AOA, ROLE_PGS, VALID_ROLES
from confreg.time_utils import utcnow
from .concurrency import run_with_retry
from .pricing_service import (
    PricingError,
    PriceBreakdown,
    Selections,
    compute_totals,
    get_add_on_pricing,
    get_booking_phase,
    normalize_coupon_code,
    normalize_role,
)
from .pricing_tables import PHASE_SPOT
from . import registration_number_service


STATUS_PENDING = "PENDING"
STATUS_PAID = "PAID"

TYPE_CONFERENCE_ONLY = "CONFERENCE_ONLY"
TYPE_WORKSHOP_CONFERENCE = "WORKSHOP_CONFERENCE"
TYPE_AOA_CERTIFIED_COURSE = "AOA_CERTIFIED_COURSE"

WORKSHOPS = {
    "labour-analgesia": "Labour Analgesia",
    "critical-incidents": "Critical Incidents in Obstetrics",
    "pocus": "POCUS in Obstetrics",
    "maternal-collapse": "Maternal Collapse & Resuscitation",
}


class RegistrationError(Exception):
    """Raised for invalid registration requests (client errors)."""
    pass


class RegistrationNotFoundError(RegistrationError):
    pass


@dataclass(frozen=True)
class RegistrationRequest:
    selections: Selections
    selected_workshop: str | None = None
    accompanying_persons: int = 0
    coupon_code: str | None = None


def as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


def parse_registration_form(form: dict) -> RegistrationRequest:
    """Normalize a JSON or form-encoded registration payload."""
    form = form or {}
    raw_persons = form.get("accompanying_persons", 0)
    try:
        accompanying = int(raw_persons or 0)
    except (TypeError, ValueError):
        raise RegistrationError("accompanying_persons must be an integer") from None
    if accompanying < 0:
        raise RegistrationError("accompanying_persons cannot be negative")

    workshop = form.get("selected_workshop") or None
    if workshop is not None:
        workshop = str(workshop).strip() or None

    return RegistrationRequest(
        selections=Selections(
            add_workshop=as_bool(form.get("add_workshop")),
            add_aoa_course=as_bool(form.get("add_aoa_course")),
            add_life_membership=as_bool(form.get("add_life_membership")),
        ),
        selected_workshop=workshop,
        accompanying_persons=accompanying,
        coupon_code=form.get("coupon_code") or None,
    )


def derive_payment_status(total_paid, total_amount) -> str:
    return STATUS_PAID if int(total_paid or 0) >= int(total_amount or 0) else STATUS_PENDING


def merge_sticky_selections(
    existing: Registration | None,
    requested: Selections,
    selected_workshop: str | None,
) -> tuple[Selections, str | None]:
    """
    Union the requested add-ons with those already paid for.

    Applies only when the existing registration is PAID. The stored workshop
    choice wins over a new one.
    """
    if existing is None or existing.payment_status != STATUS_PAID:
        return requested, selected_workshop

    merged = Selections(
        add_workshop=requested.add_workshop or bool(existing.add_workshop),
        add_aoa_course=requested.add_aoa_course or bool(existing.add_aoa_course),
        add_life_membership=requested.add_life_membership or bool(existing.add_life_membership),
    )
    if existing.add_workshop and existing.selected_workshop:
        selected_workshop = existing.selected_workshop
    return merged, selected_workshop


def check_eligibility(role: str, selections: Selections) -> None:
    """Role based add-on rules. Raises RegistrationError."""
    if role not in VALID_ROLES:
        raise RegistrationError("A valid membership category is required before registering")
    if selections.add_aoa_course and role == ROLE_PGS:
        raise RegistrationError("AOA Certified Course is only available for AOA and Non-AOA members")
    if selections.add_life_membership and role != ROLE_NON_AOA:
        raise RegistrationError("AOA Life Membership is only available for Non-AOA members")
    if role == ROLE_AOA and selections.add_workshop and selections.add_aoa_course:
        raise RegistrationError("AOA members can choose either Workshop or AOA Certified Course")


def check_availability(
    role: str,
    phase: str,
    selections: Selections,
    existing: Registration | None = None,
) -> None:
    """Reject add-ons not sold in the phase, unless already owned."""
    add_ons = get_add_on_pricing(role, phase)
    if selections.add_workshop and add_ons["workshop"] <= 0 and not (existing and existing.add_workshop):
        raise RegistrationError("Workshops are not available in this phase")
    if selections.add_aoa_course and phase == PHASE_SPOT and not (existing and existing.add_aoa_course):
        raise RegistrationError("AOA Certified Course is not available for spot registration")
    if (
        selections.add_life_membership
        and add_ons["life_membership"] <= 0
        and not (existing and existing.add_life_membership)
    ):
        raise RegistrationError("AOA Life Membership is not available in this phase")


def count_course_seats() -> int:
    return Registration.query.filter(
        or_(
            Registration.registration_type == TYPE_AOA_CERTIFIED_COURSE,
            Registration.add_aoa_course.is_(True),
        )
    ).count()


def _course_seat_limit() -> int:
    return int(current_app.config.get("AOA_COURSE_SEAT_LIMIT", 40))


def check_course_capacity(existing: Registration | None, selections: Selections) -> None:
    """Seat cap applies only when the course is newly requested."""
    if not selections.add_aoa_course:
        return
    already_held = existing is not None and (
        existing.add_aoa_course or existing.registration_type == TYPE_AOA_CERTIFIED_COURSE
    )
    if already_held:
        return
    if count_course_seats() >= _course_seat_limit():
        raise RegistrationError("AOA Certified Course seats are full")


def resolve_booking_phase(existing: Registration | None, now: datetime | None = None) -> str:
    if existing is not None and existing.payment_status == STATUS_PAID and existing.booking_phase:
        return existing.booking_phase
    return get_booking_phase(now)


def generate_lifetime_membership_id() -> str:
    return f"AOA-LM-{secrets.token_hex(4).upper()}"


def registration_type_for(selections: Selections) -> str:
    return TYPE_WORKSHOP_CONFERENCE if selections.add_workshop else TYPE_CONFERENCE_ONLY


def price_registration(
    role: str,
    phase: str,
    selections: Selections,
    accompanying_persons: int = 0,
    coupon_code: str | None = None,
) -> PriceBreakdown:
    try:
        return compute_totals(role, phase, selections, accompanying_persons, coupon_code)
    except PricingError as e:
        raise RegistrationError(str(e)) from e


def apply_breakdown(registration: Registration, breakdown: PriceBreakdown, now: datetime | None = None) -> None:
    """Copy a price breakdown onto the row and re-derive payment_status."""
    registration.booking_phase = breakdown.booking_phase
    registration.base_price = breakdown.base_price
    registration.workshop_add_on = breakdown.workshop_add_on
    registration.aoa_course_base = breakdown.aoa_course_base
    registration.aoa_course_gst = breakdown.aoa_course_gst
    registration.life_membership_base = breakdown.life_membership_base
    registration.accompanying_persons = breakdown.accompanying_persons
    registration.accompanying_base = breakdown.accompanying_base
    registration.accompanying_gst = breakdown.accompanying_gst
    registration.package_base = breakdown.package_base
    registration.package_gst = breakdown.package_gst
    registration.total_base = breakdown.total_base
    registration.total_gst = breakdown.total_gst
    registration.subtotal_with_gst = breakdown.subtotal_with_gst
    registration.processing_fee = breakdown.processing_fee
    registration.total_amount = breakdown.total_amount

    if breakdown.coupon_code:
        if registration.coupon_code != breakdown.coupon_code or registration.coupon_applied_at is None:
            registration.coupon_applied_at = now or utcnow()
    else:
        registration.coupon_applied_at = None
    registration.coupon_code = breakdown.coupon_code
    registration.coupon_discount = breakdown.coupon_discount

    registration.total_paid = registration.total_paid or 0
    registration.payment_status = derive_payment_status(registration.total_paid, registration.total_amount)


def get_registration_for_user(user_id: int) -> Registration | None:
    return Registration.query.filter_by(user_id=user_id).first()


def upsert_registration(user: User, form: dict, now: datetime | None = None) -> tuple[Registration, bool]:
    """
    Create or update the user's registration from a selection form.

    Returns (registration, created).
    """
    request_data = parse_registration_form(form)
    role = normalize_role(user.role)
    check_eligibility(role, request_data.selections)

    requested_coupon = normalize_coupon_code(request_data.coupon_code)
    if requested_coupon and not current_app.config.get("COUPONS_ENABLED", True):
        raise RegistrationError("Coupons are currently disabled")

    def _op() -> tuple[Registration, bool]:
        existing = get_registration_for_user(user.id)

        selections, workshop = merge_sticky_selections(
            existing, request_data.selections, request_data.selected_workshop
        )
        check_eligibility(role, selections)

        if selections.add_workshop:
            if not workshop:
                raise RegistrationError("Workshop selection is required")
            if workshop not in WORKSHOPS:
                raise RegistrationError(f"Unknown workshop: {workshop}")
        else:
            workshop = None

        check_course_capacity(existing, selections)

        phase = resolve_booking_phase(existing, now)
        check_availability(role, phase, selections, existing)

        breakdown = price_registration(
            role, phase, selections, request_data.accompanying_persons, requested_coupon or None
        )
        if requested_coupon and not breakdown.coupon_code:
            raise RegistrationError("Invalid coupon code")

        created = existing is None
        if created:
            registration = Registration(
                user_id=user.id,
                registration_number=registration_number_service.allocate_registration_number(),
                total_paid=0,
            )
            db.session.add(registration)
        else:
            registration = existing

        registration.registration_type = registration_type_for(selections)
        registration.add_workshop = selections.add_workshop
        registration.selected_workshop = workshop
        registration.add_aoa_course = selections.add_aoa_course
        registration.add_life_membership = selections.add_life_membership
        if selections.add_life_membership:
            registration.lifetime_membership_id = (
                registration.lifetime_membership_id or generate_lifetime_membership_id()
            )
        else:
            registration.lifetime_membership_id = None

        apply_breakdown(registration, breakdown, now)
        db.session.commit()
        return registration, created

    try:
        registration, created = run_with_retry(_op, label=f"registration upsert (user {user.id})")
    except IntegrityError:
        # Double submit or a registration number already taken out of band
        db.session.rollback()
        current_app.logger.warning("Registration write conflict for user %s", user.id)
        raise RegistrationError(
            "Registration conflicts with an existing record; please retry"
        ) from None
    current_app.logger.info(
        "Registration %s %s for user %s: total INR %s (%s)",
        registration.registration_number,
        "created" if created else "updated",
        user.id,
        registration.total_amount,
        registration.payment_status,
    )
    return registration, created


def apply_coupon(user: User, coupon_code, now: datetime | None = None) -> Registration:
    """Attach a coupon to an existing registration and reprice it."""
    if not current_app.config.get("COUPONS_ENABLED", True):
        raise RegistrationError("Coupons are currently disabled")
    normalized = normalize_coupon_code(coupon_code)
    if not normalized:
        raise RegistrationError("Coupon code is required")

    def _op() -> Registration:
        registration = get_registration_for_user(user.id)
        if registration is None:
            raise RegistrationNotFoundError("No registration found")

        role = normalize_role(user.role)
        phase = registration.booking_phase or get_booking_phase(now)
        breakdown = price_registration(
            role, phase, _stored_selections(registration), registration.accompanying_persons, normalized
        )
        if not breakdown.coupon_code:
            raise RegistrationError("Invalid coupon code")

        apply_breakdown(registration, breakdown, now)
        db.session.commit()
        return registration

    return run_with_retry(_op, label=f"coupon apply (user {user.id})")


def revalidate_coupon(user: User, now: datetime | None = None) -> tuple[Registration, bool]:
    """
    Reprice a stored registration with its stored coupon.

    Returns (registration, coupon_valid). A coupon that no longer resolves is
    dropped from the registration.
    """
    def _op() -> tuple[Registration, bool]:
        registration = get_registration_for_user(user.id)
        if registration is None:
            raise RegistrationNotFoundError("No registration found")

        role = normalize_role(user.role)
        phase = registration.booking_phase or get_booking_phase(now)
        breakdown = price_registration(
            role,
            phase,
            _stored_selections(registration),
            registration.accompanying_persons,
            registration.coupon_code,
        )
        apply_breakdown(registration, breakdown, now)
        db.session.commit()
        return registration, bool(breakdown.coupon_code)

    return run_with_retry(_op, label=f"coupon revalidate (user {user.id})")


def _stored_selections(registration: Registration) -> Selections:
    return Selections(
        add_workshop=bool(registration.add_workshop),
        add_aoa_course=bool(registration.add_aoa_course),
        add_life_membership=bool(registration.add_life_membership),
    )


def delete_registration(registration_id: int) -> dict:
    """Admin cleanup: remove a registration with its payments and attendance."""
    registration = db.session.get(Registration, registration_id)
    if registration is None:
        raise RegistrationNotFoundError("Registration not found")

    number = registration.registration_number
    attendance = Attendance.query.filter_by(registration_id=registration.id).first()
    scans_deleted = 0
    if attendance is not None:
        scans_deleted = AttendanceScan.query.filter_by(attendance_id=attendance.id).delete(
            synchronize_session=False
        )
        db.session.delete(attendance)
    payments_deleted = Payment.query.filter_by(registration_id=registration.id).delete(
        synchronize_session=False
    )
    db.session.delete(registration)
    db.session.commit()

    current_app.logger.warning(
        "Registration %s deleted with %s payments and %s scans",
        number,
        payments_deleted,
        scans_deleted,
    )
    return {
        "registration_number": number,
        "payments_deleted": payments_deleted,
        "attendance_deleted": attendance is not None,
        "scans_deleted": scans_deleted,
    }


def build_package_label(registration: Registration) -> str:
    """Human summary of what was bought, e.g. "Conference + Workshop (POCUS in Obstetrics)"."""
    parts = ["Conference"]
    if registration.add_workshop:
        name = WORKSHOPS.get(registration.selected_workshop or "", registration.selected_workshop)
        parts.append(f"Workshop ({name})" if name else "Workshop")
    if registration.add_aoa_course:
        parts.append("AOA Certified Course")
    if registration.add_life_membership:
        parts.append("AOA Life Membership")
    if registration.accompanying_persons:
        parts.append(f"{registration.accompanying_persons} Accompanying Person(s)")
    return " + ".join(parts)


def list_registrations(payment_status: str | None = None, booking_phase: str | None = None, search: str | None = None):
    query = Registration.query.join(User, Registration.user_id == User.id)
    if payment_status:
        query = query.filter(Registration.payment_status == payment_status.upper())
    if booking_phase:
        query = query.filter(Registration.booking_phase == booking_phase.upper())
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Registration.registration_number.ilike(like),
                User.name.ilike(like),
                User.email.ilike(like),
                User.phone.ilike(like),
            )
        )
    return query.order_by(Registration.id.desc()).all()
