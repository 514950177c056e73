"""
Outgoing e-mail over SMTP.

Credentials come from the email settings section, falling back to the
EMAIL_* environment variables. When nothing is configured the message is
logged and skipped. Senders return True/False and never raise, they run
as background tasks after the response has gone out.
"""

import logging
import os
import smtplib
from email.message import EmailMessage
from typing import Any, Dict, Optional

from schemas import EmailSettings, StoreSettings

logger = logging.getLogger(__name__)

SMTP_TIMEOUT = 15


def _smtp_config(email: EmailSettings) -> Dict[str, Any]:
    return {
        "host": email.email_host or os.getenv("EMAIL_HOST", "smtp.gmail.com"),
        "port": email.email_port or int(os.getenv("EMAIL_PORT", "587")),
        "user": email.email_user or os.getenv("EMAIL_USER"),
        "password": email.email_pass or os.getenv("EMAIL_PASS"),
        "sender": email.email_from or os.getenv("EMAIL_FROM"),
        "secure": email.email_secure,
    }


def is_configured(email: EmailSettings) -> bool:
    config = _smtp_config(email)
    return bool(config["user"] and config["password"])


def _connect(config: Dict[str, Any]) -> smtplib.SMTP:
    if config["secure"]:
        server = smtplib.SMTP_SSL(config["host"], config["port"], timeout=SMTP_TIMEOUT)
    else:
        server = smtplib.SMTP(config["host"], config["port"], timeout=SMTP_TIMEOUT)
    try:
        if not config["secure"]:
            server.starttls()
        server.login(config["user"], config["password"])
    except Exception:
        server.close()
        raise
    return server


def send_email(settings: StoreSettings, to: str, subject: str, html: str, text: Optional[str] = None) -> bool:
    if not settings.notifications.email_notifications:
        logger.info("E-mail notifications disabled, not sending '%s' to %s", subject, to)
        return False
    if not is_configured(settings.email):
        logger.warning("E-mail not configured, skipping '%s' to %s", subject, to)
        return False

    config = _smtp_config(settings.email)
    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = config["sender"] or config["user"]
    message["To"] = to
    message.set_content(text or subject)
    message.add_alternative(html, subtype="html")

    try:
        with _connect(config) as server:
            server.send_message(message)
    except (smtplib.SMTPException, OSError):
        logger.exception("Failed to send '%s' to %s", subject, to)
        return False
    logger.info("Sent '%s' to %s", subject, to)
    return True


def check_connection(email: EmailSettings) -> None:
    """Log in to the SMTP server and quit. Raises on failure."""
    if not is_configured(email):
        raise ValueError("Email credentials are not configured")
    with _connect(_smtp_config(email)) as server:
        server.noop()


def _money(amount: float) -> str:
    return f"₹{amount:,.2f}"


def send_order_confirmation(settings: StoreSettings, user: Dict[str, Any], order: Dict[str, Any]) -> bool:
    if not settings.notifications.order_notifications:
        return False
    rows = "".join(
        f"<tr><td>{item['name']} ({item['size']})</td><td>{item['quantity']}</td><td>{_money(item['total'])}</td></tr>"
        for item in order["items"]
    )
    html = f"""
    <h2>Thanks for your order, {user.get('first_name', '')}!</h2>
    <p>Order <strong>{order['order_number']}</strong> has been placed.</p>
    <table>{rows}</table>
    <p>Subtotal: {_money(order['subtotal'])}<br>
    Shipping: {_money(order['shipping_cost'])}<br>
    Discount: {_money(order.get('discount_amount', 0) + order.get('coins_discount', 0))}<br>
    <strong>Total: {_money(order['total'])}</strong></p>
    <p>You will earn {order.get('coins_earned', 0)} BRELIS coins when it is delivered.</p>
    <p>{settings.general.store_name}</p>
    """
    return send_email(settings, user["email"], f"Order Confirmation - {order['order_number']}", html)


def send_order_status_update(settings: StoreSettings, user: Dict[str, Any], order: Dict[str, Any]) -> bool:
    if not settings.notifications.order_notifications:
        return False
    status = order["status"].replace("_", " ").title()
    tracking = (
        f"<p>Tracking number: <strong>{order['tracking_number']}</strong></p>"
        if order.get("tracking_number")
        else ""
    )
    html = f"""
    <h2>Your order is now {status}</h2>
    <p>Hi {user.get('first_name', '')}, order <strong>{order['order_number']}</strong> was updated.</p>
    {tracking}
    <p>{settings.general.store_name}</p>
    """
    return send_email(settings, user["email"], f"Order {order['order_number']} - {status}", html)


def send_reset_otp(settings: StoreSettings, email: str, otp: str, first_name: str = "") -> bool:
    html = f"""
    <h2>Password reset</h2>
    <p>Hi {first_name}, use this code to reset your password:</p>
    <p style="font-size:24px;letter-spacing:4px"><strong>{otp}</strong></p>
    <p>The code expires in 10 minutes. If you did not ask for it, ignore this e-mail.</p>
    """
    return send_email(settings, email, "Your BRELIS password reset code", html, text=f"Your code is {otp}")


def send_contact_message(settings: StoreSettings, name: str, email: str, subject: str, message: str) -> bool:
    html = f"""
    <h2>New contact message</h2>
    <p><strong>From:</strong> {name} &lt;{email}&gt;</p>
    <p><strong>Subject:</strong> {subject}</p>
    <p>{message}</p>
    """
    delivered = send_email(settings, settings.general.contact_email, f"Contact: {subject}", html)
    confirmation = f"""
    <h2>We got your message</h2>
    <p>Hi {name}, thanks for reaching out. We will reply to {email} soon.</p>
    <p>{settings.general.store_name}</p>
    """
    send_email(settings, email, "We received your message", confirmation)
    return delivered
