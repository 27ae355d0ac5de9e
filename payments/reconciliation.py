"""Order/payment reconciliation against the Razorpay gateway.

Every state change is a conditional single-row ``UPDATE ... WHERE status IN
(...)`` so the synchronous verify call and the asynchronous webhooks can race
without a lock: both compute the same fields from the gateway's payment entity
and converge on the same terminal state.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import Case, F, Value, When
from django.utils import timezone

from notifications.services import create_notification
from orders.models import Order

from .exceptions import (
    GatewayError,
    InvalidInput,
    InvalidSignature,
    InvalidTransition,
    MissingFields,
    NotFound,
    PaymentInitiationFailed,
)
from .methods import PaymentMethod, build_detail, detail_as_dict, parse_amount, resolve_method, to_minor_units
from .models import COMPLETED, FAILED, PENDING, REFUNDED, Payment, sources_for

logger = logging.getLogger(__name__)

# what Order.payment_method holds once the gateway is involved; also what
# checkout clients send when they have no specific instrument in mind
GATEWAY_NAME = "razorpay"


@dataclass
class Initiation:
    gateway_order_id: str
    amount: int
    currency: str
    payment_method: str


@dataclass
class Verification:
    payment: Payment
    message: str


def _major(minor) -> Decimal:
    try:
        return (Decimal(str(minor)) / 100).quantize(Decimal("0.01"))
    except Exception:
        return Decimal("0.00")


class PaymentReconciler:
    def __init__(self, gateway, notify=None):
        self.gateway = gateway
        self.notify = notify or create_notification

    # ---------- 1. gateway order initiation ----------
    def initiate(self, *, order_id, amount, currency=None, method=None, user=None) -> Initiation:
        missing = [name for name, value in (("amount", amount), ("orderId", order_id)) if value in (None, "")]
        if missing:
            raise InvalidInput(f"Missing required fields: {' or '.join(missing)}")
        amount_major = parse_amount(amount)
        amount_minor = to_minor_units(amount_major)

        currency = str(currency or getattr(settings, "PAYMENTS_DEFAULT_CURRENCY", "INR")).strip().upper()
        if len(currency) != 3 or not currency.isalpha():
            raise InvalidInput("Invalid currency: must be a 3-letter code")

        requested = PaymentMethod.parse(method)
        if method and method != GATEWAY_NAME and requested is None:
            raise InvalidInput(f"Unsupported payment method: {method}")

        order = Order.objects.filter(order_id=str(order_id)).first()
        if order is None:
            raise NotFound("Order not found")
        if order.total and amount_major != order.total:
            raise InvalidInput("Amount does not match the order total",
                               details={"amount": str(amount_major), "total": str(order.total)})

        existing = Payment.objects.filter(order=order).order_by("-created_at").first()
        if existing is not None and existing.status in (COMPLETED, REFUNDED):
            raise InvalidTransition(f"Order is already paid (payment {existing.status})")

        logger.info("Creating Razorpay order for order_id=%s amount=%s %s", order.order_id, amount_minor, currency)
        try:
            gw_order = self.gateway.create_order(amount=amount_minor, currency=currency, receipt=order.order_id)
        except GatewayError as e:
            logger.error("Razorpay order creation failed for order_id=%s: %s", order.order_id, e.message)
            raise PaymentInitiationFailed(
                e.message or "Payment initialization failed", http_status=e.http_status, details=e.details
            ) from e

        gateway_order_id = gw_order["id"]
        resolved = requested or PaymentMethod.parse(getattr(existing, "method", None)) or PaymentMethod.CARD
        now = timezone.now()
        with transaction.atomic():
            if existing is not None:
                fields = {
                    "gateway_order_id": gateway_order_id,
                    "amount": amount_major,
                    "currency": currency,
                    "status": PENDING,
                    "error_description": "",
                    "updated_at": now,
                }
                if requested is not None:
                    fields["method"] = requested.value
                updated = Payment.objects.filter(pk=existing.pk, status__in=(PENDING, FAILED)).update(**fields)
                if not updated:
                    raise InvalidTransition("Payment changed state while initiating; retry")
                logger.info("Updated payment record id=%s -> %s", existing.pk, gateway_order_id)
            else:
                created = Payment.objects.create(
                    order=order,
                    user=user or order.user,
                    gateway_order_id=gateway_order_id,
                    amount=amount_major,
                    currency=currency,
                    status=PENDING,
                    method=resolved.value,
                )
                logger.info("Created payment record id=%s for %s", created.pk, gateway_order_id)

            Order.objects.filter(pk=order.pk).update(
                payment_method=GATEWAY_NAME,
                payment_status=PENDING,
                payment_gateway_order_id=gateway_order_id,
                payment_amount=amount_major,
                payment_error="",
                updated_at=now,
            )

        return Initiation(
            gateway_order_id=gateway_order_id,
            amount=int(gw_order.get("amount", amount_minor)),
            currency=gw_order.get("currency", currency),
            payment_method=resolved.value,
        )

    # ---------- 2. synchronous verification ----------
    def verify(self, *, gateway_order_id, gateway_payment_id, signature, order_id, method_hint=None) -> Verification:
        missing = [
            name for name, value in (
                ("razorpay_order_id", gateway_order_id),
                ("razorpay_payment_id", gateway_payment_id),
                ("razorpay_signature", signature),
                ("order_id", order_id),
            ) if not value
        ]
        if missing:
            logger.warning("Payment verification missing fields: %s", missing)
            raise MissingFields(missing)

        if not self.gateway.verify_payment_signature(gateway_order_id, gateway_payment_id, signature):
            logger.error("SIGNATURE MISMATCH on payment verification: razorpay_order_id=%s razorpay_payment_id=%s",
                         gateway_order_id, gateway_payment_id)
            raise InvalidSignature()

        payment = Payment.objects.select_related("order").filter(gateway_order_id=gateway_order_id).first()
        if payment is None:
            logger.error("Payment record not found for razorpay_order_id=%s", gateway_order_id)
            raise NotFound("Payment not found")
        if payment.order.order_id != str(order_id):
            raise InvalidInput("order_id does not match the payment record")
        if payment.status == REFUNDED:
            raise InvalidTransition("Payment has already been refunded")

        # the gateway's entity is the source of truth over the client-declared method
        entity = self.gateway.fetch_payment(gateway_payment_id)
        method = resolve_method(entity.get("method"), method_hint)
        self._apply_completed(payment, gateway_payment_id, entity, method, signature=signature)

        payment.refresh_from_db()
        logger.info("Payment verified: %s via %s", gateway_order_id, method.value)
        return Verification(payment=payment, message=f"Payment successful via {method.value}")

    # ---------- 3. webhook-driven state ----------
    def record_captured(self, entity: dict) -> bool:
        gateway_order_id = entity.get("order_id")
        order = Order.objects.filter(payment_gateway_order_id=gateway_order_id).first() if gateway_order_id else None
        if order is None:
            logger.warning("Order not found for captured payment %s (razorpay_order_id=%s)",
                           entity.get("id"), gateway_order_id)
            return False
        payment = Payment.objects.filter(gateway_order_id=gateway_order_id).first()
        if payment is None:
            logger.warning("No payment record for captured payment %s; updating order %s only",
                           entity.get("id"), order.order_id)
            return self._mirror_completed(order, entity)

        method = resolve_method(entity.get("method"), payment.method)
        try:
            transitioned = self._apply_completed(payment, entity.get("id") or "", entity, method)
        except InvalidTransition:
            logger.warning("Ignoring payment.captured for %s: payment is %s", gateway_order_id, payment.status)
            return False

        if transitioned:
            amount = _major(entity.get("amount"))
            self._notify(
                "payment",
                f"Payment of {payment.currency} {amount} received for order #{order.order_id}",
                {"paymentId": entity.get("id"), "orderId": order.order_id, "amount": str(amount), "status": "success"},
            )
        return transitioned

    def record_failed(self, entity: dict) -> bool:
        gateway_order_id = entity.get("order_id")
        order = Order.objects.filter(payment_gateway_order_id=gateway_order_id).first() if gateway_order_id else None
        if order is None:
            logger.warning("Order not found for failed payment (razorpay_order_id=%s)", gateway_order_id)
            return False

        error = entity.get("error_description") or ""
        prior = Payment.objects.filter(gateway_order_id=gateway_order_id).values_list("status", flat=True).first()
        now = timezone.now()
        with transaction.atomic():
            updated = Payment.objects.filter(
                gateway_order_id=gateway_order_id, status__in=sources_for(FAILED)
            ).update(status=FAILED, error_description=error, updated_at=now)
            if prior is not None and not updated:
                logger.warning("Ignoring payment.failed for %s: payment is %s", gateway_order_id, prior)
                return False
            Order.objects.filter(pk=order.pk, payment_status__in=("",) + sources_for(FAILED)).update(
                payment_status=FAILED, payment_error=error, updated_at=now
            )

        if prior != FAILED:
            amount = _major(entity.get("amount"))
            self._notify(
                "payment",
                f"Payment of {entity.get('currency') or 'INR'} {amount} failed for order #{order.order_id}",
                {"paymentId": entity.get("id"), "orderId": order.order_id, "amount": str(amount),
                 "status": "failed", "error": error},
            )
        return prior != FAILED

    def record_refund(self, entity: dict) -> bool:
        payment_id = entity.get("payment_id")
        payment = Payment.objects.select_related("order").filter(gateway_payment_id=payment_id).first() if payment_id else None
        if payment is None:
            logger.warning("Payment not found for refund %s (payment_id=%s)", entity.get("id"), payment_id)
            return False
        order = payment.order

        now = timezone.now()
        with transaction.atomic():
            updated = Payment.objects.filter(pk=payment.pk, status__in=sources_for(REFUNDED)).update(
                status=REFUNDED, refund_details=entity, updated_at=now
            )
            if not updated:
                logger.warning("Ignoring refund.created for %s: payment is %s", payment_id, payment.status)
                return False
            Order.objects.filter(pk=order.pk, payment_status__in=sources_for(REFUNDED)).update(
                payment_status=REFUNDED, updated_at=now
            )

        if payment.status == REFUNDED:
            return False
        amount = _major(entity.get("amount"))
        self._notify(
            "payment",
            f"Refund of {payment.currency} {amount} processed for order #{order.order_id}",
            {"paymentId": payment.pk, "orderId": order.order_id, "amount": str(amount), "status": "refunded"},
        )
        return True

    # ---------- operator sync ----------
    def sync_from_gateway(self, payment: Payment) -> str:
        """Pull the gateway's attempts for a pending payment and apply the outcome."""
        items = self.gateway.fetch_order_payments(payment.gateway_order_id)
        captured = next((i for i in items if i.get("status") == "captured"), None)
        if captured is not None:
            self.record_captured(captured)
        elif items and all(i.get("status") == "failed" for i in items):
            self.record_failed(items[-1])
        payment.refresh_from_db()
        return payment.status

    # ---------- internals ----------
    def _apply_completed(self, payment: Payment, gateway_payment_id: str, entity: dict,
                         method: PaymentMethod, signature: str | None = None) -> bool:
        """Move the payment (and the order's mirror) to completed.

        Returns False when the record was already completed (a republish).
        """
        detail = detail_as_dict(build_detail(method, entity))
        now = timezone.now()
        fields = {
            "status": COMPLETED,
            "gateway_payment_id": gateway_payment_id,
            "method": method.value,
            "details": detail,
            "gateway_payload": entity,
            "error_description": "",
            "updated_at": now,
        }
        order_fields = {
            "payment_method": GATEWAY_NAME,
            "payment_status": COMPLETED,
            "payment_gateway_payment_id": gateway_payment_id,
            "payment_instrument": method.value,
            "payment_details": detail,
            "payment_error": "",
            "status": Case(When(status=Order.STATUS_PENDING, then=Value(Order.STATUS_CONFIRMED)), default=F("status")),
            "updated_at": now,
        }
        if signature:
            fields["signature"] = signature
            order_fields["payment_signature"] = signature

        with transaction.atomic():
            updated = Payment.objects.filter(pk=payment.pk, status__in=sources_for(COMPLETED)).update(**fields)
            if not updated:
                current = Payment.objects.filter(pk=payment.pk).values_list("status", flat=True).first()
                raise InvalidTransition(f"Cannot complete a payment that is {current}")
            Order.objects.filter(
                pk=payment.order_id, payment_status__in=("",) + sources_for(COMPLETED)
            ).update(**order_fields)
        return payment.status != COMPLETED

    def _mirror_completed(self, order: Order, entity: dict) -> bool:
        method = resolve_method(entity.get("method"), order.payment_instrument or None)
        updated = Order.objects.filter(
            pk=order.pk, payment_status__in=("",) + sources_for(COMPLETED)
        ).exclude(payment_status=COMPLETED).update(
            payment_method=GATEWAY_NAME,
            payment_status=COMPLETED,
            payment_gateway_payment_id=entity.get("id") or "",
            payment_instrument=method.value,
            payment_details=detail_as_dict(build_detail(method, entity)),
            payment_error="",
            status=Case(When(status=Order.STATUS_PENDING, then=Value(Order.STATUS_CONFIRMED)), default=F("status")),
            updated_at=timezone.now(),
        )
        return bool(updated)

    def _notify(self, type: str, message: str, data: dict) -> None:
        try:
            with transaction.atomic():
                self.notify(type, message, data)
        except Exception:
            logger.exception("Failed to record %s notification: %s", type, message)
