# Overview: Payment ledger, gateway orders and the three capture paths.

"""
Payment Ledger & Reconciliation

WHY: A payment can be confirmed three ways (checkout callback, gateway
webhook, admin reconcile). Delivery is at-least-once and the paths race
each other, so every path funnels into one idempotent capture step.

CAPTURE:
1. Payment CREATED/FAILED -> SUCCESS (SUCCESS is terminal; a repeat is a no-op)
2. registration.total_paid = SUM(amount of SUCCESS payments), recomputed
   from the ledger every time, never incremented
3. payment_status derived from total_paid vs total_amount
4. Best-effort side effects (attendance pass, confirmation email). Their
   failures are recorded on the registration for a manual resend and never
   undo the capture.

FAILURE REPORTS: a client-reported failure only marks a CREATED payment
FAILED. Registration status is never written from a payment attempt.
"""

from __future__ import annotations

import json

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Payment, Registration, AccommodationBooking
from confreg.time_utils import utcnow
from .concurrency import run_with_retry
from .gateway_service import (
    get_gateway,
    verify_payment_signature,
    verify_webhook_signature,
)
from .registration_service import (
    STATUS_PAID,
    build_package_label,
    derive_payment_status,
    get_registration_for_user,
)
from .attendance_service import ensure_attendance
from .notification_service import (
    EVENT_NAME,
    NotificationError,
    format_inr,
    send_payment_success_email,
)


STATUS_CREATED = "CREATED"
STATUS_SUCCESS = "SUCCESS"
STATUS_FAILED = "FAILED"

TYPE_REGISTRATION = "REGISTRATION"
TYPE_ACCOMMODATION = "ACCOMMODATION"

CAPTURED_VIA_VERIFY = "VERIFY"
CAPTURED_VIA_WEBHOOK = "WEBHOOK"
CAPTURED_VIA_RECONCILE = "RECONCILE"
CAPTURED_VIA_MANUAL = "MANUAL"

WEBHOOK_CAPTURE_EVENTS = {"payment.captured", "order.paid"}


class PaymentError(Exception):
    """Raised for invalid payment operations (client errors)."""
    pass


class PaymentNotFoundError(PaymentError):
    pass


class SignatureError(PaymentError):
    """Raised when a gateway signature does not match."""
    pass


def _currency() -> str:
    return current_app.config.get("PAYMENT_CURRENCY", "INR")


def _get_payment_by_order(order_id: str) -> Payment | None:
    return Payment.query.filter_by(gateway_order_id=order_id).first()


# =============================================================================
# Ledger
# =============================================================================

def ledger_total(registration_id: int) -> int:
    """Sum of SUCCESS payments for a registration."""
    total = (
        db.session.query(func.coalesce(func.sum(Payment.amount), 0))
        .filter(
            Payment.registration_id == registration_id,
            Payment.payment_type == TYPE_REGISTRATION,
            Payment.status == STATUS_SUCCESS,
        )
        .scalar()
    )
    return int(total or 0)


def recompute_registration_payment(registration_id: int, gateway_payment_id: str | None = None) -> Registration:
    """Re-derive total_paid and payment_status from the ledger."""
    def _op() -> Registration:
        registration = db.session.get(Registration, registration_id)
        if registration is None:
            raise PaymentNotFoundError("Registration not found")

        registration.total_paid = ledger_total(registration.id)
        registration.payment_status = derive_payment_status(registration.total_paid, registration.total_amount)
        if gateway_payment_id:
            registration.gateway_payment_id = gateway_payment_id
        db.session.commit()
        return registration

    return run_with_retry(_op, label=f"ledger recompute (registration {registration_id})")


# =============================================================================
# Orders
# =============================================================================

def create_registration_order(user) -> dict:
    """
    Open a gateway order for the balance due on the user's registration.

    The ledger is recomputed first so a stale total_paid cannot produce an
    order for money already received.
    """
    registration = get_registration_for_user(user.id)
    if registration is None:
        raise PaymentNotFoundError("No registration found")

    registration = recompute_registration_payment(registration.id)
    amount = registration.balance_due
    if amount <= 0:
        raise PaymentError("Registration is already fully paid")

    order = get_gateway().create_order(
        amount_paise=amount * 100,
        currency=_currency(),
        receipt=f"reg_{registration.id}",
        notes={
            "registration_id": str(registration.id),
            "registration_number": registration.registration_number,
            "user_id": str(user.id),
        },
    )

    payment = Payment(
        user_id=user.id,
        registration_id=registration.id,
        amount=amount,
        currency=_currency(),
        payment_type=TYPE_REGISTRATION,
        status=STATUS_CREATED,
        gateway_order_id=order["id"],
    )
    db.session.add(payment)
    registration.gateway_order_id = order["id"]
    db.session.commit()

    current_app.logger.info(
        "Order %s created for %s: INR %s", order["id"], registration.registration_number, amount
    )
    return {
        "order_id": order["id"],
        "amount": amount,
        "amount_paise": amount * 100,
        "currency": payment.currency,
        "key_id": current_app.config.get("RAZORPAY_KEY_ID"),
        "payment": payment.to_dict(),
    }


def create_accommodation_order(user, booking_id: int) -> dict:
    booking = AccommodationBooking.query.filter_by(id=booking_id, user_id=user.id).first()
    if booking is None:
        raise PaymentNotFoundError("Booking not found")
    if booking.payment_status == STATUS_PAID:
        raise PaymentError("Booking is already paid")

    order = get_gateway().create_order(
        amount_paise=booking.total_amount * 100,
        currency=_currency(),
        receipt=f"acc_{booking.id}",
        notes={
            "booking_id": str(booking.id),
            "booking_number": booking.booking_number or "",
            "user_id": str(user.id),
        },
    )

    payment = Payment(
        user_id=user.id,
        accommodation_booking_id=booking.id,
        amount=booking.total_amount,
        currency=_currency(),
        payment_type=TYPE_ACCOMMODATION,
        status=STATUS_CREATED,
        gateway_order_id=order["id"],
    )
    db.session.add(payment)
    booking.gateway_order_id = order["id"]
    db.session.commit()

    current_app.logger.info("Order %s created for booking %s", order["id"], booking.booking_number)
    return {
        "order_id": order["id"],
        "amount": booking.total_amount,
        "amount_paise": booking.total_amount * 100,
        "currency": payment.currency,
        "key_id": current_app.config.get("RAZORPAY_KEY_ID"),
        "payment": payment.to_dict(),
    }


# =============================================================================
# Capture (shared by verify, webhook and reconcile)
# =============================================================================

def _mark_success(payment_id: int, gateway_payment_id: str | None, signature: str | None, via: str) -> tuple[Payment, bool]:
    def _op() -> tuple[Payment, bool]:
        payment = db.session.get(Payment, payment_id)
        if payment.status == STATUS_SUCCESS:
            return payment, False
        payment.status = STATUS_SUCCESS
        payment.gateway_payment_id = gateway_payment_id or payment.gateway_payment_id
        payment.gateway_signature = signature or payment.gateway_signature
        payment.captured_via = via
        payment.captured_at = utcnow()
        db.session.commit()
        return payment, True

    return run_with_retry(_op, label=f"payment capture ({payment_id})")


def _capture_payment(payment: Payment, gateway_payment_id: str | None, signature: str | None, via: str) -> bool:
    """
    Move a payment to SUCCESS and converge the aggregate it pays for.

    Returns True when this call performed the transition, False for a repeat.
    The aggregate is recomputed on repeats too; side effects run only once.
    """
    payment, changed = _mark_success(payment.id, gateway_payment_id, signature, via)

    if payment.payment_type == TYPE_REGISTRATION and payment.registration_id:
        recompute_registration_payment(payment.registration_id, payment.gateway_payment_id)
    elif payment.payment_type == TYPE_ACCOMMODATION and payment.accommodation_booking_id:
        booking = db.session.get(AccommodationBooking, payment.accommodation_booking_id)
        if booking is not None:
            booking.payment_status = STATUS_PAID
            booking.booking_status = "CONFIRMED"
            booking.gateway_payment_id = payment.gateway_payment_id
            db.session.commit()

    if changed:
        current_app.logger.info(
            "Payment %s captured via %s: INR %s", payment.gateway_order_id, via, payment.amount
        )
        _after_payment_success(payment)
    return changed


def _after_payment_success(payment: Payment) -> None:
    """Attendance pass and confirmation email. Never raises."""
    if payment.payment_type == TYPE_REGISTRATION:
        registration = db.session.get(Registration, payment.registration_id)
        if registration is not None:
            send_registration_confirmation(registration, payment.amount)
    elif payment.payment_type == TYPE_ACCOMMODATION:
        booking = db.session.get(AccommodationBooking, payment.accommodation_booking_id)
        if booking is None or booking.user is None:
            return
        try:
            send_payment_success_email(
                booking.user,
                subject=f"{EVENT_NAME} Payment Successful - {booking.booking_number or 'Booking'}",
                summary_lines=[
                    f"Booking No: {booking.booking_number or 'N/A'}",
                    f"Hotel: {booking.accommodation.name if booking.accommodation else 'N/A'}",
                    f"Amount Paid: INR {format_inr(booking.total_amount)}",
                    "Payment Status: PAID",
                ],
            )
        except NotificationError as e:
            current_app.logger.warning("Booking email failed for %s: %s", booking.booking_number, e)


def send_registration_confirmation(registration: Registration, amount_paid: int) -> bool:
    """
    Issue the attendance pass and email the confirmation.

    Outcome is recorded on the registration (sent_at, or failed_at + error).
    Returns True when the email went out.
    """
    qr_payload = None
    try:
        qr_payload = ensure_attendance(registration).qr_code_data
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.warning(
            "Attendance pass not issued for %s: %s", registration.registration_number, e
        )

    try:
        send_payment_success_email(
            registration.user,
            subject=f"{EVENT_NAME} Payment Successful - {registration.registration_number}",
            summary_lines=[
                f"Registration No: {registration.registration_number or 'N/A'}",
                f"Package: {build_package_label(registration)}",
                f"Amount Paid: INR {format_inr(amount_paid)}",
                f"Payment Status: {registration.payment_status}",
            ],
            qr_payload=qr_payload,
        )
    except NotificationError as e:
        registration.payment_email_failed_at = utcnow()
        registration.payment_email_error = str(e)[:1000]
        db.session.commit()
        current_app.logger.warning(
            "Payment email failed for %s: %s", registration.registration_number, e
        )
        return False

    registration.payment_email_sent_at = utcnow()
    registration.payment_email_failed_at = None
    registration.payment_email_error = None
    db.session.commit()
    return True


# =============================================================================
# Entry points
# =============================================================================

def verify_payment(order_id: str, payment_id: str, signature: str) -> dict:
    """Checkout callback. Signature mismatch raises SignatureError before any write."""
    if not order_id or not payment_id or not signature:
        raise PaymentError("order_id, payment_id and signature are required")
    if not verify_payment_signature(order_id, payment_id, signature):
        current_app.logger.warning("Invalid payment signature for order %s", order_id)
        raise SignatureError("Invalid payment signature")

    payment = _get_payment_by_order(order_id)
    if payment is None:
        raise PaymentNotFoundError("Payment record not found")

    changed = _capture_payment(payment, payment_id, signature, CAPTURED_VIA_VERIFY)
    return {
        "status": "captured" if changed else "already_processed",
        "payment": db.session.get(Payment, payment.id).to_dict(),
    }


def _webhook_ids(event: dict) -> tuple[str | None, str | None]:
    payload = event.get("payload") or {}
    payment_entity = (payload.get("payment") or {}).get("entity") or {}
    order_entity = (payload.get("order") or {}).get("entity") or {}
    order_id = payment_entity.get("order_id") or order_entity.get("id")
    return order_id, payment_entity.get("id")


def handle_webhook(raw_body: bytes, signature: str) -> str:
    """
    Gateway push. Returns an outcome string.

    Only a bad signature raises (SignatureError); everything else is
    acknowledged so the gateway stops redelivering.
    """
    if not verify_webhook_signature(raw_body, signature):
        current_app.logger.warning("Webhook rejected: invalid signature")
        raise SignatureError("Invalid webhook signature")

    try:
        event = json.loads(raw_body or b"{}")
    except ValueError:
        current_app.logger.warning("Webhook ignored: body is not JSON")
        return "invalid_payload"

    event_type = event.get("event")
    if event_type not in WEBHOOK_CAPTURE_EVENTS:
        current_app.logger.info("Webhook ignored: %s", event_type)
        return "ignored"

    order_id, gateway_payment_id = _webhook_ids(event)
    if not order_id:
        current_app.logger.warning("Webhook %s has no order id", event_type)
        return "ignored"

    payment = _get_payment_by_order(order_id)
    if payment is None:
        current_app.logger.warning("Webhook for unknown order %s", order_id)
        return "unknown_order"

    changed = _capture_payment(payment, gateway_payment_id, None, CAPTURED_VIA_WEBHOOK)
    return "captured" if changed else "already_processed"


def reconcile_order(order_id: str) -> dict:
    """
    Admin recovery: ask the gateway whether the order was captured.

    GatewayError propagates and the payment stays as it was.
    """
    if not order_id:
        raise PaymentError("order_id is required")
    payment = _get_payment_by_order(order_id)
    if payment is None:
        raise PaymentNotFoundError("Payment record not found")

    if payment.status == STATUS_SUCCESS:
        _capture_payment(payment, payment.gateway_payment_id, None, CAPTURED_VIA_RECONCILE)
        return {"status": "already_processed", "payment": payment.to_dict()}

    items = get_gateway().fetch_order_payments(order_id)
    captured = next((item for item in items if item.get("status") == "captured"), None)
    if captured is None:
        return {
            "status": "not_captured",
            "gateway_statuses": [item.get("status") for item in items],
            "payment": payment.to_dict(),
        }

    _capture_payment(payment, captured.get("id"), None, CAPTURED_VIA_RECONCILE)
    return {
        "status": "captured",
        "gateway_payment_id": captured.get("id"),
        "payment": db.session.get(Payment, payment.id).to_dict(),
    }


def record_failed_payment(order_id: str, reason: str | None = None, user=None) -> Payment:
    """Client failure telemetry. Only a CREATED payment becomes FAILED."""
    if not order_id:
        raise PaymentError("order_id is required")

    def _op() -> Payment:
        payment = _get_payment_by_order(order_id)
        if payment is None or (user is not None and payment.user_id != user.id):
            raise PaymentNotFoundError("Payment record not found")
        if payment.status != STATUS_CREATED:
            return payment
        payment.status = STATUS_FAILED
        payment.failure_reason = (reason or "Payment failed")[:255]
        payment.failed_at = utcnow()
        db.session.commit()
        return payment

    payment = run_with_retry(_op, label=f"failure report ({order_id})")
    current_app.logger.info("Payment %s reported %s: %s", order_id, payment.status, reason)
    return payment


# =============================================================================
# Admin
# =============================================================================

def resend_payment_email(registration_id: int) -> dict:
    registration = db.session.get(Registration, registration_id)
    if registration is None:
        raise PaymentNotFoundError("Registration not found")
    if not registration.total_paid:
        raise PaymentError("Registration has no successful payment")

    sent = send_registration_confirmation(registration, registration.total_paid)
    return {
        "sent": sent,
        "registration": registration.to_dict(),
    }


def list_payments(status: str | None = None, payment_type: str | None = None, user_id: int | None = None):
    query = Payment.query
    if status:
        query = query.filter(Payment.status == status.upper())
    if payment_type:
        query = query.filter(Payment.payment_type == payment_type.upper())
    if user_id:
        query = query.filter(Payment.user_id == user_id)
    return query.order_by(Payment.id.desc()).all()


def get_payment_summary(registration_id: int) -> dict:
    registration = db.session.get(Registration, registration_id)
    if registration is None:
        raise PaymentNotFoundError("Registration not found")
    payments = (
        Payment.query.filter_by(registration_id=registration.id)
        .order_by(Payment.id.asc())
        .all()
    )
    return {
        "registration_number": registration.registration_number,
        "total_amount": registration.total_amount,
        "total_paid": registration.total_paid,
        "ledger_total": ledger_total(registration.id),
        "balance_due": registration.balance_due,
        "payment_status": registration.payment_status,
        "payments": [p.to_dict() for p in payments],
    }
