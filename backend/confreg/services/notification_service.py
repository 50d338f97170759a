# Overview: Outbound confirmation email via Flask-Mail.

from __future__ import annotations

from flask import current_app
from flask_mail import Message

from ..extensions import mail


EVENT_NAME = "AOACON 2026"


class NotificationError(Exception):
    """Raised when a confirmation email cannot be sent."""
    pass


def _render_text(user, summary_lines: list[str], qr_payload: str | None) -> str:
    lines = [f"Hello {user.name},", "", "Your payment was successful.", *summary_lines]
    if qr_payload:
        lines += ["", f"Entry QR code: {qr_payload} (show this at the registration desk)"]
    lines += ["", "Thanks,", f"{EVENT_NAME} Team"]
    return "\n".join(lines)


def _render_html(user, summary_lines: list[str], qr_payload: str | None) -> str:
    summary = "".join(f'<div style="margin:0 0 6px;">{line}</div>' for line in summary_lines)
    qr_section = ""
    if qr_payload:
        qr_section = (
            '<div style="margin-top:14px;padding:12px;border:1px dashed #e5e7eb;text-align:center;">'
            f'<div style="font-weight:600;">Your Entry Code</div><div>{qr_payload}</div></div>'
        )
    return (
        f'<p>Hello {user.name},</p>'
        '<p>Your payment was successful.</p>'
        f'<div style="background:#f8fafc;border:1px solid #e5e7eb;padding:12px 14px;">{summary}</div>'
        f"{qr_section}"
    )


def send_payment_success_email(user, subject: str, summary_lines: list[str], qr_payload: str | None = None) -> None:
    """
    Send the payment confirmation.

    Raises NotificationError on any delivery failure; callers decide whether
    the failure matters. With MAIL_SUPPRESS_SEND the message is only recorded.
    """
    if not user or not user.email:
        raise NotificationError("User has no email address")

    msg = Message(
        subject=subject,
        recipients=[user.email],
        body=_render_text(user, summary_lines, qr_payload),
        html=_render_html(user, summary_lines, qr_payload),
    )
    try:
        with mail.connect() as conn:
            # Bound SMTP reads/writes once connected
            if getattr(conn, "host", None) is not None and conn.host.sock is not None:
                conn.host.sock.settimeout(current_app.config.get("MAIL_TIMEOUT_SECONDS", 15))
            conn.send(msg)
    except Exception as e:
        raise NotificationError(str(e) or e.__class__.__name__) from e

    current_app.logger.info("Payment email sent to %s: %s", user.email, subject)


def format_inr(amount) -> str:
    """Indian digit grouping, e.g. 2406000 -> 24,06,000."""
    digits = str(int(amount or 0))
    sign = ""
    if digits.startswith("-"):
        sign, digits = "-", digits[1:]
    if len(digits) <= 3:
        return sign + digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return sign + ",".join(groups + [tail])
