# Overview: Service-layer pricing calculator; pure functions over the active pricing table.

"""
Registration Pricing Calculator

WHY: The total a delegate is charged must be reproducible from
(role, booking phase, selections, accompanying persons, coupon) alone, so
the price preview, checkout and admin quote can never disagree.

ORDER OF OPERATIONS (fixed, rounding depends on it):
1. base price - coupon discount + add-on increments = package base
2. + accompanying-person charge = total base
3. + GST on total base (rounded half up) = subtotal with GST
4. + processing fee on subtotal with GST (rounded half up) = total amount

ADD-ON PRICES: derived as (published package total - base conference
price), floored at 0. Never hardcode the increments.

ELIGIBILITY (who may buy what) is enforced by the registration service,
not here. The only exception is availability: a package that resolves to
price 0 raises PricingError instead of being sold for free.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app, has_app_context

from confreg.models.auth import ROLE_AOA, ROLE_NON_AOA, ROLE_PGS, VALID_ROLES
from confreg.time_utils import utcnow
from .pricing_tables import (
    PHASE_EARLY_BIRD,
    PHASE_REGULAR,
    PHASE_SPOT,
    VALID_PHASES,
    PricingTable,
    get_pricing_table,
)


class PricingError(Exception):
    """Raised when a package cannot be priced (unknown role/phase, offer unavailable)."""
    pass


# Legacy display strings seen on old forms and imports -> canonical role
_ROLE_ALIASES = {
    "aoa": ROLE_AOA,
    "aoa member": ROLE_AOA,
    "non_aoa": ROLE_NON_AOA,
    "non-aoa": ROLE_NON_AOA,
    "non aoa": ROLE_NON_AOA,
    "non-aoa member": ROLE_NON_AOA,
    "non aoa member": ROLE_NON_AOA,
    "pgs": ROLE_PGS,
    "pgs & fellows": ROLE_PGS,
    "pgs and fellows": ROLE_PGS,
}

ROLE_DISPLAY_NAMES = {
    ROLE_AOA: "AOA Member",
    ROLE_NON_AOA: "Non-AOA Member",
    ROLE_PGS: "PGS & Fellows",
}


@dataclass(frozen=True)
class Selections:
    add_workshop: bool = False
    add_aoa_course: bool = False
    add_life_membership: bool = False


@dataclass(frozen=True)
class PackagePrice:
    """Pre-tax package: base conference price plus add-on increments."""
    booking_phase: str
    base_price: int
    workshop_add_on: int
    aoa_course_add_on: int
    life_membership_add_on: int

    @property
    def package_base(self) -> int:
        return self.base_price + self.workshop_add_on + self.aoa_course_add_on + self.life_membership_add_on


@dataclass(frozen=True)
class PriceBreakdown:
    booking_phase: str
    base_price: int
    workshop_add_on: int
    aoa_course_base: int
    aoa_course_gst: int
    life_membership_base: int
    coupon_code: str | None
    coupon_discount: int
    package_base: int
    package_gst: int
    accompanying_persons: int
    accompanying_base: int
    accompanying_gst: int
    total_base: int
    total_gst: int
    subtotal_with_gst: int
    processing_fee: int
    total_amount: int

    def to_dict(self) -> dict:
        return asdict(self)


def round_half_up(value) -> int:
    """Round to the nearest rupee, halves away from zero (1.5 -> 2, 2.5 -> 3)."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def get_active_pricing_table() -> PricingTable:
    """Pricing table selected by PRICING_EVENT_YEAR (default table outside an app context)."""
    if has_app_context():
        return get_pricing_table(current_app.config.get("PRICING_EVENT_YEAR"))
    return get_pricing_table()


def normalize_role(role) -> str | None:
    """
    Map any accepted role spelling to AOA / NON_AOA / PGS.

    Unknown values are returned trimmed (callers reject them); None stays None.
    """
    if role is None:
        return None
    trimmed = str(role).strip()
    return _ROLE_ALIASES.get(trimmed.lower(), trimmed)


def get_booking_phase(now: datetime | None = None, table: PricingTable | None = None) -> str:
    """
    Booking phase for a moment in time.

    Cutoffs are inclusive: EARLY_BIRD up to early_bird_end, REGULAR up to
    regular_end, SPOT afterwards.
    """
    table = table or get_active_pricing_table()
    now = now or utcnow()
    if now <= table.early_bird_end:
        return PHASE_EARLY_BIRD
    if now <= table.regular_end:
        return PHASE_REGULAR
    return PHASE_SPOT


def _lookup(prices: dict, role: str, phase: str) -> int:
    return int(prices.get(normalize_role(role), {}).get(phase, 0) or 0)


def get_conference_price(role: str, phase: str, table: PricingTable | None = None) -> int:
    table = table or get_active_pricing_table()
    return _lookup(table.conference, role, phase)


def _derived_add_on(package_total: int, base: int) -> int:
    if package_total <= 0:
        return 0
    return max(0, package_total - base)


def get_workshop_add_on_price(role: str, phase: str, table: PricingTable | None = None) -> int:
    table = table or get_active_pricing_table()
    return _derived_add_on(
        _lookup(table.workshop_total, role, phase),
        get_conference_price(role, phase, table),
    )


def get_life_membership_add_on_price(role: str, phase: str, table: PricingTable | None = None) -> int:
    table = table or get_active_pricing_table()
    return _derived_add_on(
        _lookup(table.combo_total, role, phase),
        get_conference_price(role, phase, table),
    )


def get_aoa_course_add_on_price(role: str, table: PricingTable | None = None) -> int:
    """Certified course price; phase independent (SPOT is blocked by business rule, not price)."""
    table = table or get_active_pricing_table()
    return int(table.aoa_course.get(normalize_role(role), 0) or 0)


def get_add_on_pricing(role: str, phase: str, table: PricingTable | None = None) -> dict:
    """Per add-on pre-GST price as offered in a phase (0 = not offered)."""
    table = table or get_active_pricing_table()
    return {
        "workshop": get_workshop_add_on_price(role, phase, table),
        "aoa_course": 0 if phase == PHASE_SPOT else get_aoa_course_add_on_price(role, table),
        "life_membership": get_life_membership_add_on_price(role, phase, table),
    }


def calculate_package(
    role: str,
    phase: str,
    selections: Selections,
    table: PricingTable | None = None,
) -> PackagePrice:
    """Base conference price plus the increments of the selected add-ons."""
    table = table or get_active_pricing_table()
    return PackagePrice(
        booking_phase=phase,
        base_price=get_conference_price(role, phase, table),
        workshop_add_on=get_workshop_add_on_price(role, phase, table) if selections.add_workshop else 0,
        aoa_course_add_on=get_aoa_course_add_on_price(role, table) if selections.add_aoa_course else 0,
        life_membership_add_on=(
            get_life_membership_add_on_price(role, phase, table) if selections.add_life_membership else 0
        ),
    )


def normalize_coupon_code(code) -> str:
    return str(code).strip().upper() if code else ""


def resolve_coupon(code, base_price: int, table: PricingTable | None = None) -> tuple[str | None, int]:
    """
    Resolve a coupon against the base conference price.

    Returns (normalized_code, discount) for a known code, (None, 0) otherwise.
    The flat discount is clamped to [0, base_price].
    """
    table = table or get_active_pricing_table()
    if has_app_context() and not current_app.config.get("COUPONS_ENABLED", True):
        return None, 0
    normalized = normalize_coupon_code(code)
    if not normalized or normalized not in table.coupons:
        return None, 0
    discount = max(0, min(int(table.coupons[normalized]), int(base_price or 0)))
    return normalized, discount


def _gst(amount: int, table: PricingTable) -> int:
    return round_half_up(Decimal(amount) * table.gst_rate)


def compute_totals(
    role: str,
    phase: str,
    selections: Selections,
    accompanying_persons: int = 0,
    coupon_code: str | None = None,
    table: PricingTable | None = None,
) -> PriceBreakdown:
    """
    Full price breakdown for a registration.

    Raises PricingError when the role or phase is unknown or the package
    resolves to 0 (offer not available in this phase).
    """
    table = table or get_active_pricing_table()
    role = normalize_role(role)
    if role not in VALID_ROLES:
        raise PricingError(f"Invalid role: {role}")
    if phase not in VALID_PHASES:
        raise PricingError(f"Invalid booking phase: {phase}")

    package = calculate_package(role, phase, selections, table)
    if package.package_base <= 0:
        raise PricingError("Pricing not available for this package in current phase")

    accompanying_count = max(0, int(accompanying_persons or 0))
    accompanying_base = accompanying_count * table.accompanying_person_charge

    applied_code, coupon_discount = resolve_coupon(coupon_code, package.base_price, table)

    package_base = package.package_base - coupon_discount
    total_base = package_base + accompanying_base
    total_gst = _gst(total_base, table)
    subtotal_with_gst = total_base + total_gst
    processing_fee = round_half_up(Decimal(subtotal_with_gst) * table.processing_fee_rate)

    return PriceBreakdown(
        booking_phase=phase,
        base_price=package.base_price,
        workshop_add_on=package.workshop_add_on,
        aoa_course_base=package.aoa_course_add_on,
        aoa_course_gst=_gst(package.aoa_course_add_on, table) if package.aoa_course_add_on > 0 else 0,
        life_membership_base=package.life_membership_add_on,
        coupon_code=applied_code,
        coupon_discount=coupon_discount,
        package_base=package_base,
        package_gst=_gst(package_base, table),
        accompanying_persons=accompanying_count,
        accompanying_base=accompanying_base,
        accompanying_gst=_gst(accompanying_base, table),
        total_base=total_base,
        total_gst=total_gst,
        subtotal_with_gst=subtotal_with_gst,
        processing_fee=processing_fee,
        total_amount=subtotal_with_gst + processing_fee,
    )


def _with_gst(amount: int, table: PricingTable) -> dict:
    gst = _gst(amount, table)
    return {"price_without_gst": amount, "gst": gst, "total_amount": amount + gst}


def get_pricing_preview(
    role: str,
    phase: str | None = None,
    now: datetime | None = None,
    seats_taken: int = 0,
    table: PricingTable | None = None,
) -> dict:
    """
    Side-effect-free price sheet for a role.

    Add-ons the role may never buy are reported as None; add-ons not sold in
    the phase report a price of 0.
    """
    table = table or get_active_pricing_table()
    role = normalize_role(role)
    if role not in VALID_ROLES:
        raise PricingError(f"Invalid role: {role}")
    phase = phase or get_booking_phase(now, table)
    if phase not in VALID_PHASES:
        raise PricingError(f"Invalid booking phase: {phase}")

    add_ons = get_add_on_pricing(role, phase, table)
    seat_limit = table.aoa_course_seat_limit
    if has_app_context():
        seat_limit = current_app.config.get("AOA_COURSE_SEAT_LIMIT", seat_limit)

    return {
        "role": role,
        "role_display": ROLE_DISPLAY_NAMES[role],
        "booking_phase": phase,
        "event_year": table.event_year,
        "base": {
            "conference": _with_gst(get_conference_price(role, phase, table), table),
        },
        "add_ons": {
            "workshop": _with_gst(add_ons["workshop"], table),
            "aoa_course": (
                _with_gst(add_ons["aoa_course"], table) if role in (ROLE_AOA, ROLE_NON_AOA) else None
            ),
            "life_membership": (
                _with_gst(add_ons["life_membership"], table) if role == ROLE_NON_AOA else None
            ),
        },
        "accompanying_person": _with_gst(table.accompanying_person_charge, table),
        "meta": {
            "aoa_course_count": seats_taken,
            "aoa_course_limit": seat_limit,
            "aoa_course_full": seats_taken >= seat_limit,
        },
    }
