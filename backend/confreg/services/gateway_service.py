# Overview: Razorpay REST client and HMAC signature helpers.

"""
Payment Gateway Client

WHY: Every outbound gateway call carries a bounded timeout so a slow
gateway cannot pin a request worker. A timeout or connection failure is a
GatewayError; the local Payment stays CREATED and can be reconciled later.

SIGNATURES:
- Checkout callback: HMAC-SHA256("<order_id>|<payment_id>", key_secret)
- Webhook: HMAC-SHA256(raw request body, webhook_secret)
Both are compared in constant time.
"""

from __future__ import annotations

import hashlib
import hmac

import httpx
from flask import current_app


class GatewayError(Exception):
    """Raised when the gateway is unreachable or rejects a request."""
    pass


def compute_hmac(secret: str, message) -> str:
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def _matches(expected: str, provided) -> bool:
    if not provided:
        return False
    return hmac.compare_digest(expected, str(provided))


def verify_payment_signature(order_id: str, payment_id: str, signature: str, secret: str | None = None) -> bool:
    secret = secret or current_app.config["RAZORPAY_KEY_SECRET"]
    return _matches(compute_hmac(secret, f"{order_id}|{payment_id}"), signature)


def verify_webhook_signature(raw_body: bytes, signature: str, secret: str | None = None) -> bool:
    secret = secret or current_app.config["RAZORPAY_WEBHOOK_SECRET"]
    return _matches(compute_hmac(secret, raw_body or b""), signature)


class RazorpayGateway:
    """Thin client over the two Razorpay endpoints the ledger needs."""

    def __init__(self, key_id: str, key_secret: str, api_base: str, timeout: float = 10.0):
        self.key_id = key_id
        self.key_secret = key_secret
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_config(cls, config) -> "RazorpayGateway":
        return cls(
            key_id=config["RAZORPAY_KEY_ID"],
            key_secret=config["RAZORPAY_KEY_SECRET"],
            api_base=config.get("RAZORPAY_API_BASE", "https://api.razorpay.com/v1"),
            timeout=float(config.get("GATEWAY_TIMEOUT_SECONDS", 10)),
        )

    def _request(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self.api_base}{path}"
        try:
            response = httpx.request(
                method,
                url,
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
                **kwargs,
            )
        except httpx.TimeoutException as e:
            raise GatewayError(f"Payment gateway timed out: {method} {path}") from e
        except httpx.HTTPError as e:
            raise GatewayError(f"Payment gateway unreachable: {e}") from e

        if response.status_code >= 400:
            try:
                detail = response.json().get("error", {}).get("description")
            except ValueError:
                detail = None
            raise GatewayError(detail or f"Payment gateway error ({response.status_code})")
        return response.json()

    def create_order(self, amount_paise: int, currency: str, receipt: str, notes: dict | None = None) -> dict:
        return self._request(
            "POST",
            "/orders",
            json={
                "amount": int(amount_paise),
                "currency": currency,
                "receipt": receipt,
                "notes": notes or {},
            },
        )

    def fetch_order_payments(self, order_id: str) -> list[dict]:
        data = self._request("GET", f"/orders/{order_id}/payments")
        return data.get("items", []) or []


def get_gateway():
    """Gateway for the current app (tests install a fake under extensions["payment_gateway"])."""
    gateway = current_app.extensions.get("payment_gateway")
    if gateway is None:
        gateway = RazorpayGateway.from_config(current_app.config)
        current_app.extensions["payment_gateway"] = gateway
    return gateway
