import json
import logging
from enum import Enum

from django.db import transaction

from .exceptions import InvalidSignature

logger = logging.getLogger(__name__)


class WebhookEvent(str, Enum):
    PAYMENT_CAPTURED = "payment.captured"
    PAYMENT_FAILED = "payment.failed"
    REFUND_CREATED = "refund.created"


def _entity(payload: dict, kind: str) -> dict:
    wrapper = (payload.get("payload") or {}).get(kind) or {}
    entity = wrapper.get("entity") if isinstance(wrapper, dict) else None
    return entity if isinstance(entity, dict) else {}


HANDLERS = {
    WebhookEvent.PAYMENT_CAPTURED: lambda reconciler, payload: reconciler.record_captured(_entity(payload, "payment")),
    WebhookEvent.PAYMENT_FAILED: lambda reconciler, payload: reconciler.record_failed(_entity(payload, "payment")),
    WebhookEvent.REFUND_CREATED: lambda reconciler, payload: reconciler.record_refund(_entity(payload, "refund")),
}

_unhandled = set(WebhookEvent) - set(HANDLERS)
if _unhandled:
    raise RuntimeError(f"Webhook events without a handler: {sorted(e.value for e in _unhandled)}")


def process_webhook(body: bytes, signature: str | None, reconciler) -> WebhookEvent | None:
    """Verify and dispatch one Razorpay webhook delivery.

    Raises InvalidSignature when the body was not signed with the webhook
    secret. Anything that goes wrong after that is logged and swallowed: the
    gateway retries on non-2xx, and retries must not cascade. Returns the
    handled event, or None when nothing was dispatched.
    """
    if not reconciler.gateway.verify_webhook_signature(body, signature):
        logger.error("INVALID WEBHOOK SIGNATURE (signature header present: %s)", bool(signature))
        raise InvalidSignature("Invalid signature")

    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        logger.error("Signed webhook body is not valid JSON; acknowledging")
        return None
    if not isinstance(payload, dict):
        logger.error("Signed webhook body is not a JSON object; acknowledging")
        return None

    name = payload.get("event")
    try:
        event = WebhookEvent(name)
    except ValueError:
        logger.info("Unhandled webhook event: %s", name)
        return None

    logger.info("Processing webhook event: %s", event.value)
    try:
        with transaction.atomic():
            HANDLERS[event](reconciler, payload)
    except Exception:
        logger.exception("Error handling webhook event %s", event.value)
    return event
