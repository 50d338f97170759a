"""
Pytest fixtures for the conference registration backend.

Provides the in-memory database, a fake payment gateway, delegate/admin
accounts and auth header helpers.
"""

import pytest

from confreg import create_app
from confreg.extensions import db
from confreg.models import Payment
from confreg.services import payment_service, session_service
from confreg.services.auth_service import create_user
from confreg.services.gateway_service import compute_hmac


TEST_KEY_SECRET = "test_key_secret"
TEST_WEBHOOK_SECRET = "test_webhook_secret"

PROFILE = {
    "gender": "Female",
    "meal_preference": "Vegetarian",
    "country": "India",
    "state": "Kerala",
    "city": "Kochi",
    "address": "12 Marine Drive",
    "pincode": "682031",
    "institute_hospital": "General Hospital",
    "designation": "Consultant",
    "medical_council_name": "TCMC",
    "medical_council_number": "KL-12345",
}


class FakeGateway:
    """Stands in for RazorpayGateway; records orders and serves canned payment lists."""

    def __init__(self):
        self.orders = []
        self.order_payments = {}
        self.fail_with = None

    def create_order(self, amount_paise, currency, receipt, notes=None):
        if self.fail_with is not None:
            raise self.fail_with
        order = {
            "id": f"order_test_{len(self.orders) + 1}",
            "amount": amount_paise,
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        self.orders.append(order)
        return order

    def fetch_order_payments(self, order_id):
        if self.fail_with is not None:
            raise self.fail_with
        return self.order_payments.get(order_id, [])


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'MAIL_SUPPRESS_SEND': True,
        'MAIL_DEFAULT_SENDER': 'registrations@test.local',
        'RAZORPAY_KEY_ID': 'rzp_test_key',
        'RAZORPAY_KEY_SECRET': TEST_KEY_SECRET,
        'RAZORPAY_WEBHOOK_SECRET': TEST_WEBHOOK_SECRET,
        'COUPONS_ENABLED': True,
        'AOA_COURSE_SEAT_LIMIT': 40,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def gateway(app):
    """Install a fresh fake gateway for the test."""
    fake = FakeGateway()
    app.extensions["payment_gateway"] = fake
    yield fake
    app.extensions.pop("payment_gateway", None)


@pytest.fixture(scope='function')
def make_user(db_session):
    """Factory for delegates with a complete profile."""
    counter = {"n": 0}

    def _make(role="NON_AOA", complete=True, **overrides):
        counter["n"] += 1
        n = counter["n"]
        profile = dict(PROFILE) if complete else {}
        if role == "AOA" and complete:
            profile.setdefault("membership_id", f"AOA-{1000 + n}")
        profile.update(overrides)
        return create_user(
            name=profile.pop("name", f"Delegate {n}"),
            email=profile.pop("email", f"delegate{n}@example.com"),
            phone=profile.pop("phone", f"98765{n:05d}"),
            password="Password123!",
            role=role,
            **profile,
        )

    return _make


@pytest.fixture(scope='function')
def delegate(make_user):
    return make_user("NON_AOA")


@pytest.fixture(scope='function')
def admin(db_session):
    return create_user(
        name="Desk Admin",
        email="admin@example.com",
        phone="9000000000",
        password="Password123!",
        is_admin=True,
    )


def auth_headers(user) -> dict:
    """Helper to create Authorization headers for a user."""
    _session, token = session_service.create_session(user.id)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def delegate_headers(delegate):
    return auth_headers(delegate)


@pytest.fixture(scope='function')
def admin_headers(admin):
    return auth_headers(admin)


def sign_checkout(order_id: str, payment_id: str) -> str:
    return compute_hmac(TEST_KEY_SECRET, f"{order_id}|{payment_id}")


def sign_webhook(raw_body: bytes) -> str:
    return compute_hmac(TEST_WEBHOOK_SECRET, raw_body)


def mark_paid(registration, amount=None):
    """Record a SUCCESS payment for the balance and converge the aggregate."""
    payment = Payment(
        user_id=registration.user_id,
        registration_id=registration.id,
        amount=registration.balance_due if amount is None else amount,
        payment_type="REGISTRATION",
        status="SUCCESS",
        gateway_order_id=f"order_paid_{registration.id}_{Payment.query.count()}",
    )
    db.session.add(payment)
    db.session.commit()
    return payment_service.recompute_registration_payment(registration.id)
