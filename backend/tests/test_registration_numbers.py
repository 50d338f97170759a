"""
Registration number allocator tests.

Verifies:
- Automatic allocation is sequential and never reuses a number
- Desk registrations scan for free numbers and raise the counter
- Counter overrides cannot go below the highest number in use
"""

from datetime import datetime

import pytest

from confreg.extensions import db
from confreg.models import Counter, Payment, Registration
from confreg.services import (
    manual_registration_service,
    registration_number_service,
    registration_service,
)
from confreg.services.registration_number_service import (
    REGISTRATION_COUNTER,
    RegistrationNumberError,
)
from confreg.services.registration_service import RegistrationError


REGULAR = datetime(2026, 9, 1)


def manual_payload(**overrides):
    payload = {
        "name": "Walk In",
        "email": "walkin@example.com",
        "phone": "9111111111",
        "role": "NON_AOA",
        "booking_phase": "REGULAR",
        "gender": "Male",
        "meal_preference": "Non-Vegetarian",
        "country": "India",
        "state": "Tamil Nadu",
        "city": "Chennai",
        "address": "4 Anna Salai",
        "pincode": "600002",
        "institute_hospital": "City Hospital",
        "designation": "Resident",
        "medical_council_name": "TNMC",
        "medical_council_number": "TN-998",
    }
    payload.update(overrides)
    return payload


def counter_value():
    db.session.expire_all()
    return db.session.query(Counter.seq).filter_by(name=REGISTRATION_COUNTER).scalar()


class TestFormatting:

    def test_format_and_parse(self, app):
        assert registration_number_service.format_registration_number(7) == "AOA2026-0007"
        assert registration_number_service.parse_registration_seq("AOA2026-0042") == 42
        assert registration_number_service.parse_registration_seq("AOA2026-12345") == 12345
        assert registration_number_service.parse_registration_seq("XYZ-0001") is None
        assert registration_number_service.parse_registration_seq(None) is None


class TestAllocation:

    def test_counter_seeded_from_existing_numbers(self, delegate):
        db.session.add(Registration(
            user_id=delegate.id,
            registration_number="AOA2026-0041",
            booking_phase="REGULAR",
            total_amount=1,
        ))
        db.session.commit()

        assert registration_number_service.allocate_registration_number() == "AOA2026-0042"

    def test_increment_counter_creates_missing_row(self, db_session):
        assert registration_number_service.increment_counter("accommodationBookingNumber") == 1
        assert registration_number_service.increment_counter("accommodationBookingNumber") == 2

    def test_automatic_path_skips_manual_numbers(self, make_user):
        registration_service.upsert_registration(make_user("PGS"), {}, now=REGULAR)
        manual_registration_service.create_manual_registration(
            manual_payload(preferred_registration_number="AOA2026-0005")
        )

        assert counter_value() >= 5
        registration, _ = registration_service.upsert_registration(make_user("PGS"), {}, now=REGULAR)
        assert registration.registration_number == "AOA2026-0006"


class TestFindNextAvailable:

    def test_find_next_available_skips_used(self, make_user):
        for _ in range(3):
            registration_service.upsert_registration(make_user("PGS"), {}, now=REGULAR)

        assert registration_number_service.find_next_available(2) == (4, "AOA2026-0004")

    def test_start_must_be_positive(self, db_session):
        with pytest.raises(RegistrationNumberError):
            registration_number_service.find_next_available(0)

    def test_scan_is_bounded(self, db_session, monkeypatch):
        monkeypatch.setattr(registration_number_service, "MAX_REGISTRATION_SEQ", 3)
        monkeypatch.setattr(registration_number_service, "_is_used", lambda number: True)

        with pytest.raises(RegistrationNumberError, match="No registration numbers available"):
            registration_number_service.find_next_available(1)

    def test_raise_counter_never_lowers(self, db_session):
        registration_number_service.raise_counter_to(10)
        registration_number_service.raise_counter_to(4)
        db.session.commit()
        assert counter_value() == 10


class TestCounterAdmin:

    def test_info(self, make_user):
        registration_service.upsert_registration(make_user("PGS"), {}, now=REGULAR)

        info = registration_number_service.get_counter_info()

        assert info["counter"] == 1
        assert info["max_used"] == 1
        assert info["suggested_next_number"] == "AOA2026-0002"
        assert info["prefix"] == "AOA2026-"

    @pytest.mark.parametrize("value", [-1, "abc", None, 2.5j])
    def test_set_counter_rejects_bad_values(self, db_session, value):
        with pytest.raises(RegistrationNumberError):
            registration_number_service.set_counter(value)

    def test_set_counter_rejects_below_max_used(self, make_user):
        for _ in range(3):
            registration_service.upsert_registration(make_user("PGS"), {}, now=REGULAR)

        with pytest.raises(RegistrationNumberError, match="highest used number"):
            registration_number_service.set_counter(2)

    def test_set_counter_moves_automatic_path(self, make_user):
        registration_number_service.set_counter(99)
        registration, _ = registration_service.upsert_registration(make_user("PGS"), {}, now=REGULAR)
        assert registration.registration_number == "AOA2026-0100"

    def test_availability_in_range(self, make_user):
        manual_registration_service.create_manual_registration(
            manual_payload(preferred_registration_number="3")
        )

        result = registration_number_service.availability_in_range(1, 5)

        assert result["used"] == ["AOA2026-0003"]
        assert result["available"] == ["AOA2026-0001", "AOA2026-0002", "AOA2026-0004", "AOA2026-0005"]
        assert result["next_in_range"] == "AOA2026-0001"
        assert result["next_after_range"] == "AOA2026-0006"

    def test_availability_defaults(self, db_session):
        result = registration_number_service.availability_in_range()
        assert (result["start"], result["end"]) == (1, 14)
        assert len(result["available"]) == 14

    def test_availability_rejects_inverted_range(self, db_session):
        with pytest.raises(RegistrationNumberError):
            registration_number_service.availability_in_range(10, 2)


class TestManualRegistration:

    def test_creates_paid_registration(self, admin):
        result = manual_registration_service.create_manual_registration(
            manual_payload(add_workshop=True, selected_workshop="pocus", utr="UTR123"),
            admin=admin,
        )

        registration = result["registration"]
        assert registration["registration_number"] == "AOA2026-0001"
        assert registration["payment_status"] == "PAID"
        assert registration["total_paid"] == registration["total_amount"]
        assert registration["booking_phase"] == "REGULAR"
        assert result["payment"]["captured_via"] == "MANUAL"
        assert result["payment"]["gateway_order_id"].startswith("manual_")
        assert result["payment"]["gateway_order_id"].endswith("_AOA2026-0001")
        assert result["payment"]["gateway_payment_id"] == "UTR123"
        assert result["user"]["is_profile_complete"] is True
        assert result["email_sent"] is True
        assert counter_value() == 1

    def test_requires_professional_fields(self, db_session):
        with pytest.raises(RegistrationError, match="medical council number"):
            manual_registration_service.create_manual_registration(
                manual_payload(medical_council_number="")
            )

    def test_aoa_requires_membership_id(self, db_session):
        with pytest.raises(RegistrationError, match="membership ID"):
            manual_registration_service.create_manual_registration(manual_payload(role="AOA"))

    def test_rejects_existing_registration(self, delegate):
        registration_service.upsert_registration(delegate, {}, now=REGULAR)
        with pytest.raises(RegistrationError, match="already has a registration"):
            manual_registration_service.create_manual_registration(
                manual_payload(email=delegate.email)
            )

    def test_spot_workshop_rejected(self, db_session):
        with pytest.raises(RegistrationError, match="not available"):
            manual_registration_service.create_manual_registration(
                manual_payload(booking_phase="SPOT", add_workshop=True, selected_workshop="pocus")
            )
        assert Payment.query.count() == 0

    def test_quote_matches_calculator(self, db_session):
        quote = manual_registration_service.quote_manual_registration(
            {"role": "Non-AOA Member", "booking_phase": "EARLY_BIRD", "add_workshop": True}
        )
        assert quote["package_base"] == 13000
        assert quote["accompanying_base"] == 0
        assert quote["total_amount"] == 15639

    def test_phase_is_case_insensitive(self, db_session):
        quote = manual_registration_service.quote_manual_registration(
            {"role": "NON_AOA", "booking_phase": " regular ", "add_workshop": True}
        )
        assert quote["booking_phase"] == "REGULAR"

        result = manual_registration_service.create_manual_registration(
            manual_payload(booking_phase="early_bird")
        )
        assert result["registration"]["booking_phase"] == "EARLY_BIRD"

    def test_quote_rejects_ineligible_add_on(self, db_session):
        with pytest.raises(RegistrationError):
            manual_registration_service.quote_manual_registration(
                {"role": "PGS", "booking_phase": "REGULAR", "add_aoa_course": True}
            )


# =============================================================================
# RACES
# =============================================================================


def lose_seed_race_once(monkeypatch):
    """Make the next counter read miss, as if another writer seeded the row after our check."""
    real_read = registration_number_service._read_counter
    calls = {"n": 0}

    def _read():
        calls["n"] += 1
        return None if calls["n"] == 1 else real_read()

    monkeypatch.setattr(registration_number_service, "_read_counter", _read)


def walk_in(n, **overrides):
    return manual_payload(email=f"walkin{n}@example.com", phone=f"91000000{n:02d}", **overrides)


class TestAllocationRaces:

    def test_lost_seed_keeps_callers_pending_rows(self, delegate, monkeypatch):
        registration_number_service.ensure_counter()
        db.session.commit()
        db.session.add(Registration(
            user_id=delegate.id,
            registration_number="AOA2026-0007",
            booking_phase="REGULAR",
            total_amount=1,
        ))
        db.session.flush()
        lose_seed_race_once(monkeypatch)

        assert registration_number_service.ensure_counter() == 0
        db.session.commit()

        assert Registration.query.filter_by(registration_number="AOA2026-0007").count() == 1
        assert Counter.query.filter_by(name=REGISTRATION_COUNTER).count() == 1

    def test_lost_seed_during_desk_registration(self, db_session, monkeypatch):
        registration_number_service.ensure_counter()
        db.session.commit()
        lose_seed_race_once(monkeypatch)

        result = manual_registration_service.create_manual_registration(
            walk_in(1, preferred_registration_number="AOA2026-0005")
        )

        db.session.expire_all()
        stored = Registration.query.filter_by(registration_number="AOA2026-0005").one()
        assert result["registration"]["registration_number"] == "AOA2026-0005"
        assert stored.payment_status == "PAID"
        assert Payment.query.filter_by(registration_id=stored.id).count() == 1
        assert result["email_sent"] is True
        assert counter_value() == 5

    def test_interleaved_automatic_and_desk_allocations(self, make_user):
        steps = [
            None,
            "AOA2026-0004",
            None,
            None,
            "",
            None,
            "AOA2026-0003",
        ]
        issued = []
        for n, preferred in enumerate(steps):
            if preferred is None:
                registration, _ = registration_service.upsert_registration(
                    make_user("PGS"), {}, now=REGULAR
                )
                issued.append(registration.registration_number)
            else:
                result = manual_registration_service.create_manual_registration(
                    walk_in(n, preferred_registration_number=preferred)
                )
                issued.append(result["registration"]["registration_number"])

            assert len(set(issued)) == len(issued)
            assert counter_value() >= registration_number_service.max_used_seq()

        assert issued == [
            "AOA2026-0001",
            "AOA2026-0004",
            "AOA2026-0005",
            "AOA2026-0006",
            "AOA2026-0002",
            "AOA2026-0007",
            "AOA2026-0003",
        ]

    def test_stale_availability_check_cannot_duplicate_a_number(self, db_session, monkeypatch):
        manual_registration_service.create_manual_registration(
            walk_in(1, preferred_registration_number="AOA2026-0005")
        )
        # Second desk checked availability before the first one committed
        monkeypatch.setattr(registration_number_service, "_is_used", lambda number: False)

        with pytest.raises(RegistrationError, match="already in use"):
            manual_registration_service.create_manual_registration(
                walk_in(2, preferred_registration_number="AOA2026-0005")
            )

        assert Registration.query.filter_by(registration_number="AOA2026-0005").count() == 1
        assert Payment.query.count() == 1

    def test_automatic_collision_is_a_validation_error(self, make_user, monkeypatch):
        registration_service.upsert_registration(make_user("PGS"), {}, now=REGULAR)
        # Number reused out of band: the allocator hands back one already stored
        monkeypatch.setattr(
            registration_number_service,
            "allocate_registration_number",
            lambda: "AOA2026-0001",
        )
        second = make_user("PGS")

        with pytest.raises(RegistrationError, match="conflicts"):
            registration_service.upsert_registration(second, {}, now=REGULAR)

        assert Registration.query.count() == 1
        assert registration_service.get_registration_for_user(second.id) is None
