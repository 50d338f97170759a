"""
Pricing calculator tests.

Verifies:
- Published example totals are reproduced exactly
- Add-on increments are derived from package totals
- Phase cutoffs, rounding and coupon clamping
- The preview reports per-role add-ons and course seat state
"""

from dataclasses import replace
from datetime import datetime
from decimal import Decimal

import pytest

from confreg.services.pricing_service import (
    PricingError,
    Selections,
    compute_totals,
    get_add_on_pricing,
    get_booking_phase,
    get_life_membership_add_on_price,
    get_pricing_preview,
    get_workshop_add_on_price,
    normalize_role,
    resolve_coupon,
    round_half_up,
)
from confreg.services.pricing_tables import AOACON_2026, get_pricing_table


# =============================================================================
# TOTALS
# =============================================================================


class TestComputeTotals:

    def test_non_aoa_early_bird_workshop_with_accompanying_person(self, app):
        breakdown = compute_totals(
            "NON_AOA", "EARLY_BIRD", Selections(add_workshop=True), accompanying_persons=1
        )

        assert breakdown.base_price == 11000
        assert breakdown.workshop_add_on == 2000
        assert breakdown.package_base == 13000
        assert breakdown.accompanying_base == 7000
        assert breakdown.total_base == 20000
        assert breakdown.total_gst == 3600
        assert breakdown.subtotal_with_gst == 23600
        assert breakdown.processing_fee == 460
        assert breakdown.total_amount == 24060

    def test_conference_only_rounds_fee_half_up(self, app):
        breakdown = compute_totals("AOA", "EARLY_BIRD", Selections())

        assert breakdown.total_gst == 1440
        assert breakdown.subtotal_with_gst == 9440
        # 9440 * 1.95% = 184.08
        assert breakdown.processing_fee == 184
        assert breakdown.total_amount == 9624

    def test_aoa_course_is_priced_with_its_own_gst_line(self, app):
        breakdown = compute_totals("AOA", "REGULAR", Selections(add_aoa_course=True))

        assert breakdown.aoa_course_base == 5000
        assert breakdown.aoa_course_gst == 900
        assert breakdown.package_base == 15000

    def test_same_inputs_give_same_breakdown(self, app):
        args = ("NON_AOA", "REGULAR", Selections(add_workshop=True, add_life_membership=True), 2, "AOACON5123")
        assert compute_totals(*args) == compute_totals(*args)

    def test_accompanying_charge_scales_per_head(self, app):
        one = compute_totals("PGS", "REGULAR", Selections(), accompanying_persons=1)
        three = compute_totals("PGS", "REGULAR", Selections(), accompanying_persons=3)
        assert three.accompanying_base - one.accompanying_base == 14000

    def test_unknown_role_rejected(self, app):
        with pytest.raises(PricingError):
            compute_totals("STUDENT", "EARLY_BIRD", Selections())

    def test_unknown_phase_rejected(self, app):
        with pytest.raises(PricingError):
            compute_totals("AOA", "LATE", Selections())

    def test_package_priced_at_zero_is_not_sold(self, app):
        table = replace(
            AOACON_2026,
            conference={**AOACON_2026.conference, "PGS": {"EARLY_BIRD": 0, "REGULAR": 0, "SPOT": 0}},
        )
        with pytest.raises(PricingError, match="not available"):
            compute_totals("PGS", "SPOT", Selections(), table=table)


# =============================================================================
# ADD-ONS
# =============================================================================


class TestAddOns:

    def test_workshop_increment_is_total_minus_base(self, app):
        assert get_workshop_add_on_price("AOA", "EARLY_BIRD") == 2000
        assert get_workshop_add_on_price("PGS", "REGULAR") == 2000

    def test_workshop_not_sold_at_spot(self, app):
        assert get_workshop_add_on_price("NON_AOA", "SPOT") == 0

    def test_life_membership_only_priced_for_non_aoa(self, app):
        assert get_life_membership_add_on_price("NON_AOA", "EARLY_BIRD") == 3000
        assert get_life_membership_add_on_price("AOA", "EARLY_BIRD") == 0
        assert get_life_membership_add_on_price("NON_AOA", "SPOT") == 0

    def test_course_reported_as_unavailable_at_spot(self, app):
        assert get_add_on_pricing("AOA", "REGULAR")["aoa_course"] == 5000
        assert get_add_on_pricing("AOA", "SPOT")["aoa_course"] == 0


# =============================================================================
# PHASES, ROLES, ROUNDING, COUPONS
# =============================================================================


class TestBookingPhase:

    @pytest.mark.parametrize(
        "now,expected",
        [
            (datetime(2026, 5, 1), "EARLY_BIRD"),
            (datetime(2026, 8, 15), "EARLY_BIRD"),
            (datetime(2026, 8, 15, 0, 0, 1), "REGULAR"),
            (datetime(2026, 10, 15), "REGULAR"),
            (datetime(2026, 10, 16), "SPOT"),
        ],
    )
    def test_cutoffs_are_inclusive(self, app, now, expected):
        assert get_booking_phase(now) == expected


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("AOA Member", "AOA"),
        ("Non-AOA Member", "NON_AOA"),
        ("non-aoa", "NON_AOA"),
        ("PGS & Fellows", "PGS"),
        ("  pgs ", "PGS"),
        ("NON_AOA", "NON_AOA"),
    ],
)
def test_normalize_role(raw, expected):
    assert normalize_role(raw) == expected


def test_normalize_role_keeps_unknown_values():
    assert normalize_role("Visitor") == "Visitor"
    assert normalize_role(None) is None


def test_round_half_up():
    assert round_half_up(Decimal("2.5")) == 3
    assert round_half_up(Decimal("0.5")) == 1
    assert round_half_up(Decimal("460.49")) == 460


class TestCoupons:

    def test_known_coupon_is_case_insensitive(self, app):
        assert resolve_coupon(" aoacon5123 ", 11000) == ("AOACON5123", 500)

    def test_unknown_coupon_resolves_to_nothing(self, app):
        assert resolve_coupon("FREEBIE", 11000) == (None, 0)

    def test_discount_clamped_to_base_price(self, app):
        table = replace(AOACON_2026, coupons={"BIG": 50000})
        breakdown = compute_totals(
            "NON_AOA", "EARLY_BIRD", Selections(add_workshop=True), coupon_code="big", table=table
        )
        assert breakdown.coupon_discount == 11000
        assert breakdown.package_base == 2000

    def test_coupon_applies_before_gst(self, app):
        breakdown = compute_totals("NON_AOA", "EARLY_BIRD", Selections(), coupon_code="AOACON5123")
        assert breakdown.package_base == 10500
        assert breakdown.total_gst == 1890
        assert breakdown.total_amount == 12632

    def test_disabled_coupons_resolve_to_nothing(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "COUPONS_ENABLED", False)
        assert resolve_coupon("AOACON5123", 11000) == (None, 0)


# =============================================================================
# PREVIEW
# =============================================================================


class TestPricingPreview:

    def test_pgs_cannot_see_course_or_membership(self, app):
        preview = get_pricing_preview("PGS", phase="REGULAR")
        assert preview["add_ons"]["aoa_course"] is None
        assert preview["add_ons"]["life_membership"] is None
        assert preview["base"]["conference"] == {
            "price_without_gst": 9000,
            "gst": 1620,
            "total_amount": 10620,
        }

    def test_non_aoa_sees_membership(self, app):
        preview = get_pricing_preview("Non-AOA Member", now=datetime(2026, 7, 1))
        assert preview["role"] == "NON_AOA"
        assert preview["booking_phase"] == "EARLY_BIRD"
        assert preview["add_ons"]["life_membership"]["price_without_gst"] == 3000
        assert preview["accompanying_person"]["total_amount"] == 8260

    def test_course_seat_meta(self, app):
        preview = get_pricing_preview("AOA", phase="REGULAR", seats_taken=40)
        assert preview["meta"] == {
            "aoa_course_count": 40,
            "aoa_course_limit": 40,
            "aoa_course_full": True,
        }

    def test_unknown_role_rejected(self, app):
        with pytest.raises(PricingError):
            get_pricing_preview("GUEST", phase="REGULAR")


def test_unknown_event_year_rejected():
    with pytest.raises(ValueError):
        get_pricing_table(1999)
