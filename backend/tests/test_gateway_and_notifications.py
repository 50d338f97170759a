"""
Gateway client, signature and email helper tests.
"""

import httpx
import pytest

from confreg.extensions import mail
from confreg.services.gateway_service import (
    GatewayError,
    RazorpayGateway,
    compute_hmac,
    get_gateway,
    verify_payment_signature,
    verify_webhook_signature,
)
from confreg.services.notification_service import (
    NotificationError,
    format_inr,
    send_payment_success_email,
)

from conftest import TEST_KEY_SECRET, TEST_WEBHOOK_SECRET


# =============================================================================
# SIGNATURES
# =============================================================================


class TestSignatures:

    def test_checkout_signature(self, app):
        signature = compute_hmac(TEST_KEY_SECRET, "order_1|pay_1")
        assert verify_payment_signature("order_1", "pay_1", signature)
        assert not verify_payment_signature("order_1", "pay_2", signature)
        assert not verify_payment_signature("order_1", "pay_1", signature.upper())

    def test_webhook_signature_is_over_raw_body(self, app):
        body = b'{"event":"payment.captured"}'
        signature = compute_hmac(TEST_WEBHOOK_SECRET, body)
        assert verify_webhook_signature(body, signature)
        assert not verify_webhook_signature(body + b" ", signature)

    def test_explicit_secret(self):
        signature = compute_hmac("other", "o|p")
        assert verify_payment_signature("o", "p", signature, secret="other")


# =============================================================================
# HTTP CLIENT
# =============================================================================


@pytest.fixture
def client_under_test():
    return RazorpayGateway("rzp_key", "rzp_secret", "https://gateway.test/v1/", timeout=2.5)


class TestRazorpayGateway:

    def test_create_order_request(self, client_under_test, monkeypatch):
        calls = []

        def _fake_request(method, url, **kwargs):
            calls.append((method, url, kwargs))
            return httpx.Response(200, json={"id": "order_abc", "amount": kwargs["json"]["amount"]})

        monkeypatch.setattr(httpx, "request", _fake_request)

        order = client_under_test.create_order(2406000, "INR", "reg_1", {"registration_id": "1"})

        assert order["id"] == "order_abc"
        method, url, kwargs = calls[0]
        assert (method, url) == ("POST", "https://gateway.test/v1/orders")
        assert kwargs["auth"] == ("rzp_key", "rzp_secret")
        assert kwargs["timeout"] == 2.5
        assert kwargs["json"]["receipt"] == "reg_1"

    def test_fetch_order_payments(self, client_under_test, monkeypatch):
        monkeypatch.setattr(
            httpx,
            "request",
            lambda method, url, **kw: httpx.Response(200, json={"items": [{"id": "pay_1", "status": "captured"}]}),
        )
        assert client_under_test.fetch_order_payments("order_abc") == [{"id": "pay_1", "status": "captured"}]

    def test_timeout_is_gateway_error(self, client_under_test, monkeypatch):
        def _timeout(method, url, **kwargs):
            raise httpx.ReadTimeout("timed out")

        monkeypatch.setattr(httpx, "request", _timeout)
        with pytest.raises(GatewayError, match="timed out"):
            client_under_test.create_order(100, "INR", "r")

    def test_connection_failure_is_gateway_error(self, client_under_test, monkeypatch):
        def _refused(method, url, **kwargs):
            raise httpx.ConnectError("connection refused")

        monkeypatch.setattr(httpx, "request", _refused)
        with pytest.raises(GatewayError, match="unreachable"):
            client_under_test.fetch_order_payments("order_abc")

    def test_error_response_uses_gateway_description(self, client_under_test, monkeypatch):
        monkeypatch.setattr(
            httpx,
            "request",
            lambda method, url, **kw: httpx.Response(400, json={"error": {"description": "Amount too low"}}),
        )
        with pytest.raises(GatewayError, match="Amount too low"):
            client_under_test.create_order(1, "INR", "r")

    def test_gateway_built_from_config(self, app):
        app.extensions.pop("payment_gateway", None)
        gateway = get_gateway()
        assert isinstance(gateway, RazorpayGateway)
        assert gateway.key_secret == TEST_KEY_SECRET
        assert get_gateway() is gateway
        app.extensions.pop("payment_gateway", None)


# =============================================================================
# EMAIL
# =============================================================================


class TestEmail:

    def test_message_contents(self, delegate):
        with mail.record_messages() as outbox:
            send_payment_success_email(
                delegate,
                subject="AOACON 2026 Payment Successful - AOA2026-0001",
                summary_lines=["Registration No: AOA2026-0001", "Amount Paid: INR 24,060"],
                qr_payload="AOA2026-0001",
            )

        assert len(outbox) == 1
        message = outbox[0]
        assert message.recipients == [delegate.email]
        assert "Amount Paid: INR 24,060" in message.body
        assert "AOA2026-0001" in message.html

    def test_missing_address(self, app):
        with pytest.raises(NotificationError):
            send_payment_success_email(None, subject="x", summary_lines=[])

    def test_transport_failure_is_notification_error(self, delegate, monkeypatch):
        def _broken_connect():
            raise OSError("Connection refused")

        monkeypatch.setattr(mail, "connect", _broken_connect)
        with pytest.raises(NotificationError, match="Connection refused"):
            send_payment_success_email(delegate, subject="x", summary_lines=[])


@pytest.mark.parametrize(
    "amount,expected",
    [(0, "0"), (999, "999"), (24060, "24,060"), (2406000, "24,06,000"), (-150000, "-1,50,000")],
)
def test_format_inr(amount, expected):
    assert format_inr(amount) == expected
