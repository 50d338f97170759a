# Overview: Versioned per-event-year pricing configuration (prices, cutoffs, coupons).

"""
Pricing tables

WHY: Tier prices and phase cutoffs change every conference year. Keeping
them as data lets a new year be added without touching the calculator.

Workshop and combo entries are TOTAL package prices (conference included),
exactly as published on the fee sheet. The calculator derives the add-on
increment by subtracting the base conference price. A 0 entry means the
package is not sold in that phase.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal


PHASE_EARLY_BIRD = "EARLY_BIRD"
PHASE_REGULAR = "REGULAR"
PHASE_SPOT = "SPOT"
VALID_PHASES = [PHASE_EARLY_BIRD, PHASE_REGULAR, PHASE_SPOT]


@dataclass(frozen=True)
class PricingTable:
    event_year: int
    registration_prefix: str

    # Phase cutoffs (inclusive, naive UTC)
    early_bird_end: datetime
    regular_end: datetime

    # role -> phase -> price (whole rupees, pre-GST)
    conference: dict
    workshop_total: dict
    combo_total: dict

    # role -> certified course price (phase independent)
    aoa_course: dict

    accompanying_person_charge: int = 7000
    gst_rate: Decimal = Decimal("0.18")
    processing_fee_rate: Decimal = Decimal("0.0195")
    aoa_course_seat_limit: int = 40
    coupons: dict = field(default_factory=dict)


AOACON_2026 = PricingTable(
    event_year=2026,
    registration_prefix="AOA2026-",
    early_bird_end=datetime(2026, 8, 15),
    regular_end=datetime(2026, 10, 15),
    conference={
        "AOA": {PHASE_EARLY_BIRD: 8000, PHASE_REGULAR: 10000, PHASE_SPOT: 13000},
        "NON_AOA": {PHASE_EARLY_BIRD: 11000, PHASE_REGULAR: 13000, PHASE_SPOT: 16000},
        "PGS": {PHASE_EARLY_BIRD: 7000, PHASE_REGULAR: 9000, PHASE_SPOT: 12000},
    },
    workshop_total={
        "AOA": {PHASE_EARLY_BIRD: 10000, PHASE_REGULAR: 12000, PHASE_SPOT: 0},
        "NON_AOA": {PHASE_EARLY_BIRD: 13000, PHASE_REGULAR: 15000, PHASE_SPOT: 0},
        "PGS": {PHASE_EARLY_BIRD: 9000, PHASE_REGULAR: 11000, PHASE_SPOT: 0},
    },
    combo_total={
        "AOA": {PHASE_EARLY_BIRD: 0, PHASE_REGULAR: 0, PHASE_SPOT: 0},
        "NON_AOA": {PHASE_EARLY_BIRD: 14000, PHASE_REGULAR: 16000, PHASE_SPOT: 0},
        "PGS": {PHASE_EARLY_BIRD: 0, PHASE_REGULAR: 0, PHASE_SPOT: 0},
    },
    aoa_course={"AOA": 5000, "NON_AOA": 5000, "PGS": 0},
    coupons={
        "AOACON5123": 500,
        "DISCOUNT10002026": 1000,
    },
)


PRICING_TABLES = {
    AOACON_2026.event_year: AOACON_2026,
}

DEFAULT_EVENT_YEAR = AOACON_2026.event_year


def get_pricing_table(event_year: int | None = None) -> PricingTable:
    """Return the pricing table for an event year. Raises ValueError for an unknown year."""
    year = event_year or DEFAULT_EVENT_YEAR
    try:
        return PRICING_TABLES[int(year)]
    except (KeyError, TypeError, ValueError):
        raise ValueError(f"No pricing table configured for event year {event_year}") from None
