"""
Payment ledger tests.

Verifies:
- Orders are opened for the balance due only
- Verify, webhook and reconcile converge to one SUCCESS capture
- total_paid always equals the sum of SUCCESS payments
- Tampered signatures and failure reports never change paid state
- Email failures are recorded without undoing the capture
"""

import json
from datetime import datetime

import pytest

from confreg.extensions import db, mail
from confreg.models import Attendance, Payment, Registration
from confreg.services import payment_service, registration_service
from confreg.services.gateway_service import GatewayError
from confreg.services.notification_service import NotificationError
from confreg.services.payment_service import PaymentError, PaymentNotFoundError, SignatureError

from conftest import sign_checkout, sign_webhook


EARLY_BIRD = datetime(2026, 7, 1)


@pytest.fixture
def registration(delegate):
    registration, _ = registration_service.upsert_registration(
        delegate,
        {"add_workshop": True, "selected_workshop": "pocus", "accompanying_persons": 1},
        now=EARLY_BIRD,
    )
    return registration


@pytest.fixture
def order(delegate, registration, gateway):
    return payment_service.create_registration_order(delegate)


def webhook_body(event: str, order_id: str, payment_id: str = "pay_hook_1") -> bytes:
    return json.dumps({
        "event": event,
        "payload": {"payment": {"entity": {"id": payment_id, "order_id": order_id, "status": "captured"}}},
    }).encode("utf-8")


def reload(model, pk):
    db.session.expire_all()
    return db.session.get(model, pk)


# =============================================================================
# ORDERS
# =============================================================================


class TestCreateOrder:

    def test_order_for_full_amount(self, delegate, registration, gateway):
        order = payment_service.create_registration_order(delegate)

        assert order["amount"] == 24060
        assert order["amount_paise"] == 2406000
        assert order["currency"] == "INR"
        assert gateway.orders[0]["receipt"] == f"reg_{registration.id}"
        payment = Payment.query.filter_by(gateway_order_id=order["order_id"]).one()
        assert payment.status == "CREATED"
        assert payment.amount == 24060

    def test_no_order_without_registration(self, delegate, gateway):
        with pytest.raises(PaymentNotFoundError):
            payment_service.create_registration_order(delegate)

    def test_no_order_when_fully_paid(self, delegate, order):
        payment_service.verify_payment(
            order["order_id"], "pay_1", sign_checkout(order["order_id"], "pay_1")
        )
        with pytest.raises(PaymentError, match="already fully paid"):
            payment_service.create_registration_order(delegate)

    def test_gateway_failure_leaves_no_payment(self, delegate, registration, gateway):
        gateway.fail_with = GatewayError("Payment gateway timed out")
        with pytest.raises(GatewayError):
            payment_service.create_registration_order(delegate)
        assert Payment.query.count() == 0


# =============================================================================
# VERIFY
# =============================================================================


class TestVerify:

    def test_verify_captures_and_issues_pass(self, registration, order):
        with mail.record_messages() as outbox:
            result = payment_service.verify_payment(
                order["order_id"], "pay_1", sign_checkout(order["order_id"], "pay_1")
            )

        assert result["status"] == "captured"
        assert result["payment"]["status"] == "SUCCESS"
        registration = reload(Registration, registration.id)
        assert registration.total_paid == 24060
        assert registration.payment_status == "PAID"
        assert registration.gateway_payment_id == "pay_1"
        assert registration.payment_email_sent_at is not None
        assert Attendance.query.filter_by(registration_id=registration.id).one().qr_code_data == "AOA2026-0001"
        assert len(outbox) == 1
        assert "AOA2026-0001" in outbox[0].subject

    def test_repeat_verify_is_idempotent(self, registration, order):
        signature = sign_checkout(order["order_id"], "pay_1")
        payment_service.verify_payment(order["order_id"], "pay_1", signature)

        with mail.record_messages() as outbox:
            result = payment_service.verify_payment(order["order_id"], "pay_1", signature)

        assert result["status"] == "already_processed"
        assert reload(Registration, registration.id).total_paid == 24060
        assert outbox == []

    def test_tampered_payment_id_changes_nothing(self, registration, order):
        signature = sign_checkout(order["order_id"], "pay_1")

        with pytest.raises(SignatureError):
            payment_service.verify_payment(order["order_id"], "pay_2", signature)

        payment = Payment.query.filter_by(gateway_order_id=order["order_id"]).one()
        assert payment.status == "CREATED"
        assert payment.gateway_payment_id is None
        registration = reload(Registration, registration.id)
        assert registration.payment_status == "PENDING"
        assert registration.total_paid == 0

    def test_unknown_order(self, db_session):
        with pytest.raises(PaymentNotFoundError):
            payment_service.verify_payment("order_x", "pay_x", sign_checkout("order_x", "pay_x"))

    def test_missing_fields(self, db_session):
        with pytest.raises(PaymentError):
            payment_service.verify_payment("order_x", None, "sig")


# =============================================================================
# WEBHOOK
# =============================================================================


class TestWebhook:

    def test_captured_event(self, registration, order):
        body = webhook_body("payment.captured", order["order_id"])

        assert payment_service.handle_webhook(body, sign_webhook(body)) == "captured"

        payment = Payment.query.filter_by(gateway_order_id=order["order_id"]).one()
        assert payment.status == "SUCCESS"
        assert payment.captured_via == "WEBHOOK"
        assert reload(Registration, registration.id).payment_status == "PAID"

    def test_duplicate_delivery(self, registration, order):
        body = webhook_body("payment.captured", order["order_id"])
        payment_service.handle_webhook(body, sign_webhook(body))

        order_paid = json.dumps({
            "event": "order.paid",
            "payload": {"order": {"entity": {"id": order["order_id"]}}},
        }).encode("utf-8")
        assert payment_service.handle_webhook(order_paid, sign_webhook(order_paid)) == "already_processed"
        assert reload(Registration, registration.id).total_paid == 24060

    def test_webhook_after_verify(self, registration, order):
        payment_service.verify_payment(order["order_id"], "pay_1", sign_checkout(order["order_id"], "pay_1"))
        body = webhook_body("payment.captured", order["order_id"], "pay_1")

        assert payment_service.handle_webhook(body, sign_webhook(body)) == "already_processed"
        payment = Payment.query.filter_by(gateway_order_id=order["order_id"]).one()
        assert payment.captured_via == "VERIFY"

    def test_bad_signature_rejected(self, registration, order):
        body = webhook_body("payment.captured", order["order_id"])
        with pytest.raises(SignatureError):
            payment_service.handle_webhook(body, "0" * 64)
        assert Payment.query.filter_by(gateway_order_id=order["order_id"]).one().status == "CREATED"

    def test_other_events_ignored(self, registration, order):
        body = webhook_body("payment.failed", order["order_id"])
        assert payment_service.handle_webhook(body, sign_webhook(body)) == "ignored"

    def test_unknown_order(self, db_session):
        body = webhook_body("payment.captured", "order_missing")
        assert payment_service.handle_webhook(body, sign_webhook(body)) == "unknown_order"

    def test_non_json_body(self, db_session):
        body = b"not json"
        assert payment_service.handle_webhook(body, sign_webhook(body)) == "invalid_payload"

    def test_route_acknowledges_and_rejects(self, client, registration, order):
        body = webhook_body("payment.captured", order["order_id"])

        bad = client.post("/api/payment/webhook", data=body, headers={"X-Razorpay-Signature": "bad"})
        assert bad.status_code == 400

        ok = client.post(
            "/api/payment/webhook",
            data=body,
            headers={"X-Razorpay-Signature": sign_webhook(body), "Content-Type": "application/json"},
        )
        assert ok.status_code == 200
        assert ok.get_json() == {"status": "captured"}


# =============================================================================
# FAILURE REPORTS
# =============================================================================


class TestFailureReports:

    def test_failure_never_touches_registration(self, registration, order):
        payment = payment_service.record_failed_payment(order["order_id"], "Card declined")

        assert payment.status == "FAILED"
        assert payment.failure_reason == "Card declined"
        registration = reload(Registration, registration.id)
        assert registration.payment_status == "PENDING"
        assert registration.total_paid == 0

    def test_failure_after_success_is_ignored(self, registration, order):
        payment_service.verify_payment(order["order_id"], "pay_1", sign_checkout(order["order_id"], "pay_1"))

        payment = payment_service.record_failed_payment(order["order_id"], "late failure callback")

        assert payment.status == "SUCCESS"
        assert reload(Registration, registration.id).payment_status == "PAID"

    def test_failed_order_can_still_be_captured(self, registration, order):
        payment_service.record_failed_payment(order["order_id"])
        body = webhook_body("payment.captured", order["order_id"])

        assert payment_service.handle_webhook(body, sign_webhook(body)) == "captured"
        assert reload(Registration, registration.id).payment_status == "PAID"

    def test_failure_for_someone_elses_order(self, make_user, order):
        with pytest.raises(PaymentNotFoundError):
            payment_service.record_failed_payment(order["order_id"], user=make_user("PGS"))


# =============================================================================
# LEDGER INVARIANT
# =============================================================================


class TestLedger:

    def test_total_paid_is_sum_of_successes(self, delegate, registration, order, gateway):
        payment_service.verify_payment(order["order_id"], "pay_1", sign_checkout(order["order_id"], "pay_1"))

        registration_service.upsert_registration(delegate, {"accompanying_persons": 2}, now=EARLY_BIRD)
        top_up = payment_service.create_registration_order(delegate)
        registration = reload(Registration, registration.id)
        assert top_up["amount"] == registration.total_amount - 24060

        abandoned = payment_service.create_registration_order(delegate)
        payment_service.record_failed_payment(abandoned["order_id"])
        payment_service.verify_payment(
            top_up["order_id"], "pay_2", sign_checkout(top_up["order_id"], "pay_2")
        )

        registration = reload(Registration, registration.id)
        successes = Payment.query.filter_by(registration_id=registration.id, status="SUCCESS").all()
        assert registration.total_paid == sum(p.amount for p in successes)
        assert registration.total_paid == payment_service.ledger_total(registration.id)
        assert registration.payment_status == "PAID"

    def test_summary(self, registration, order):
        summary = payment_service.get_payment_summary(registration.id)
        assert summary["balance_due"] == 24060
        assert summary["ledger_total"] == 0
        assert [p["status"] for p in summary["payments"]] == ["CREATED"]


# =============================================================================
# RECONCILE
# =============================================================================


class TestReconcile:

    def test_not_captured(self, order, gateway):
        gateway.order_payments[order["order_id"]] = [{"id": "pay_r", "status": "failed"}]

        result = payment_service.reconcile_order(order["order_id"])

        assert result["status"] == "not_captured"
        assert result["gateway_statuses"] == ["failed"]

    def test_captured(self, registration, order, gateway):
        gateway.order_payments[order["order_id"]] = [
            {"id": "pay_a", "status": "failed"},
            {"id": "pay_b", "status": "captured"},
        ]

        result = payment_service.reconcile_order(order["order_id"])

        assert result["status"] == "captured"
        assert result["gateway_payment_id"] == "pay_b"
        assert result["payment"]["captured_via"] == "RECONCILE"
        assert reload(Registration, registration.id).payment_status == "PAID"

    def test_already_processed(self, order, gateway):
        payment_service.verify_payment(order["order_id"], "pay_1", sign_checkout(order["order_id"], "pay_1"))
        assert payment_service.reconcile_order(order["order_id"])["status"] == "already_processed"

    def test_gateway_down(self, order, gateway):
        gateway.fail_with = GatewayError("Payment gateway timed out")
        with pytest.raises(GatewayError):
            payment_service.reconcile_order(order["order_id"])
        assert Payment.query.filter_by(gateway_order_id=order["order_id"]).one().status == "CREATED"


# =============================================================================
# CONFIRMATION EMAIL
# =============================================================================


class TestConfirmationEmail:

    def test_email_failure_is_recorded_not_rolled_back(self, registration, order, monkeypatch):
        def _fail(*args, **kwargs):
            raise NotificationError("SMTP connection refused")

        monkeypatch.setattr(payment_service, "send_payment_success_email", _fail)

        result = payment_service.verify_payment(
            order["order_id"], "pay_1", sign_checkout(order["order_id"], "pay_1")
        )

        assert result["status"] == "captured"
        registration = reload(Registration, registration.id)
        assert registration.payment_status == "PAID"
        assert registration.payment_email_failed_at is not None
        assert registration.payment_email_error == "SMTP connection refused"
        assert registration.payment_email_sent_at is None

    def test_resend_after_failure(self, registration, order, monkeypatch):
        def _fail(*args, **kwargs):
            raise NotificationError("SMTP connection refused")

        monkeypatch.setattr(payment_service, "send_payment_success_email", _fail)
        payment_service.verify_payment(order["order_id"], "pay_1", sign_checkout(order["order_id"], "pay_1"))
        monkeypatch.undo()

        with mail.record_messages() as outbox:
            result = payment_service.resend_payment_email(registration.id)

        assert result["sent"] is True
        assert len(outbox) == 1
        registration = reload(Registration, registration.id)
        assert registration.payment_email_error is None

    def test_resend_requires_payment(self, registration):
        with pytest.raises(PaymentError):
            payment_service.resend_payment_email(registration.id)
