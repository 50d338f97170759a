# Overview: Flask API routes for gateway orders and payment capture; parses input and returns JSON responses.

# backend/confreg/routes/payments.py
"""
Payment API Routes

CAPTURE PATHS (all idempotent, see payment_service):
- POST /verify      checkout callback, signature checked with the key secret
- POST /webhook     gateway push, signature over the raw body
- POST /reconcile/order   admin pulls the order's payments from the gateway

WEBHOOK CONTRACT: 400 only for a bad signature. Every other outcome,
including internal errors, is acknowledged with 200 and logged, so the
gateway does not retry forever.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import payment_service
from ..services.gateway_service import GatewayError
from ..services.payment_service import PaymentError, PaymentNotFoundError, SignatureError
from ..decorators import require_auth, require_admin, require_profile_complete


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payment")


@payments_bp.post("/create-order/registration")
@require_auth
@require_profile_complete
def create_registration_order_route():
    """
    Open a gateway order for the balance due.

    Returns:
        201: order_id, amount, currency, key_id
        400: Nothing to pay
        404: No registration
        502: Gateway unreachable
    """
    try:
        order = payment_service.create_registration_order(g.current_user)
        return jsonify(order), 201

    except PaymentNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PaymentError as e:
        return jsonify({"error": str(e)}), 400
    except GatewayError as e:
        current_app.logger.warning("Gateway order failed: %s", e)
        return jsonify({"error": "Payment gateway unavailable"}), 502
    except Exception:
        current_app.logger.exception("Failed to create registration order")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/create-order/accommodation")
@require_auth
@require_profile_complete
def create_accommodation_order_route():
    try:
        data = request.get_json(silent=True) or {}
        booking_id = data.get("booking_id")
        if not booking_id:
            return jsonify({"error": "booking_id is required"}), 400

        order = payment_service.create_accommodation_order(g.current_user, int(booking_id))
        return jsonify(order), 201

    except PaymentNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (PaymentError, ValueError) as e:
        return jsonify({"error": str(e)}), 400
    except GatewayError as e:
        current_app.logger.warning("Gateway order failed: %s", e)
        return jsonify({"error": "Payment gateway unavailable"}), 502
    except Exception:
        current_app.logger.exception("Failed to create accommodation order")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/verify")
@require_auth
def verify_payment_route():
    """
    Checkout callback.

    Request body:
    {
        "razorpay_order_id": "order_...",
        "razorpay_payment_id": "pay_...",
        "razorpay_signature": "<hex hmac>"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        result = payment_service.verify_payment(
            data.get("razorpay_order_id") or data.get("order_id"),
            data.get("razorpay_payment_id") or data.get("payment_id"),
            data.get("razorpay_signature") or data.get("signature"),
        )
        result["message"] = "Payment verified successfully"
        return jsonify(result), 200

    except PaymentNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PaymentError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Payment verification failed")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/webhook")
def webhook_route():
    raw_body = request.get_data(cache=False)
    signature = request.headers.get("X-Razorpay-Signature", "")
    try:
        outcome = payment_service.handle_webhook(raw_body, signature)
        return jsonify({"status": outcome}), 200

    except SignatureError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Webhook processing failed")
        return jsonify({"status": "error"}), 200


@payments_bp.post("/failed")
@require_auth
def payment_failed_route():
    """Client-reported failure. Marks only a CREATED payment FAILED."""
    try:
        data = request.get_json(silent=True) or {}
        payment = payment_service.record_failed_payment(
            data.get("razorpay_order_id") or data.get("order_id"),
            reason=data.get("reason") or data.get("error_description"),
            user=g.current_user,
        )
        return jsonify({"payment": payment.to_dict()}), 200

    except PaymentNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PaymentError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record payment failure")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/reconcile/order")
@require_auth
@require_admin
def reconcile_order_route():
    try:
        data = request.get_json(silent=True) or {}
        result = payment_service.reconcile_order(data.get("order_id") or data.get("razorpay_order_id"))
        return jsonify(result), 200

    except PaymentNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PaymentError as e:
        return jsonify({"error": str(e)}), 400
    except GatewayError as e:
        current_app.logger.warning("Reconcile failed, gateway error: %s", e)
        return jsonify({"error": "Payment gateway unavailable"}), 502
    except Exception:
        current_app.logger.exception("Reconcile failed")
        return jsonify({"error": "Internal server error"}), 500
