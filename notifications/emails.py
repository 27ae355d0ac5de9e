import logging
from typing import List

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string

logger = logging.getLogger(__name__)


def _fail_silently() -> bool:
    return getattr(settings, "EMAIL_FAIL_SILENTLY", True)


def admin_recipients() -> List[str]:
    """Addresses from ``PAYMENTS_ADMIN_EMAILS``, case-insensitively unique."""
    raw = getattr(settings, "PAYMENTS_ADMIN_EMAILS", "") or ""
    recipients: dict = {}
    for address in raw.split(","):
        address = address.strip()
        if address:
            recipients.setdefault(address.lower(), address)
    return list(recipients.values())


def send_admin_notification(notification) -> None:
    """Email a payment notification to the configured admin recipients.

    Never raises; the notification row is already stored when this runs.
    """
    try:
        admins = admin_recipients()
        if not admins:
            return
        context = {
            "message": notification.message,
            "type": notification.type,
            "data": notification.data or {},
        }
        from_email = getattr(settings, "DEFAULT_FROM_EMAIL", None) or getattr(settings, "EMAIL_HOST_USER", None)
        subject = f"[{notification.type}] {notification.message}"
        text = render_to_string("emails/payment_notification_admin.txt", context)
        html = render_to_string("emails/payment_notification_admin.html", context)
        msg = EmailMultiAlternatives(subject, text, from_email, admins)
        msg.attach_alternative(html, "text/html")
        msg.send(fail_silently=_fail_silently())
    except Exception:
        logger.exception("Failed to email admin notification id=%s", getattr(notification, "pk", None))
