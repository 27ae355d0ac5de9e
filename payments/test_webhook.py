import json
from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase
from django.urls import reverse

from notifications.models import Notification
from orders.models import Order

from .models import COMPLETED, FAILED, PENDING, REFUNDED, Payment
from .reconciliation import PaymentReconciler
from .testing import FakeGateway, sign_body, sign_payment
from .webhooks import HANDLERS, WebhookEvent


def payment_event(event, **entity):
    return {"entity": "event", "event": event, "payload": {"payment": {"entity": entity}}}


def refund_event(**entity):
    return {"entity": "event", "event": "refund.created", "payload": {"refund": {"entity": entity}}}


class RazorpayWebhookTests(TestCase):
    def setUp(self):
        self.order = Order.objects.create(order_id="O1", total=Decimal("499.00"))
        self.gateway = FakeGateway(payments={
            "pay_1": {"id": "pay_1", "order_id": "order_TEST0001", "amount": 49900, "method": "upi",
                      "vpa": "alice@okbank"},
        })
        PaymentReconciler(self.gateway).initiate(order_id="O1", amount="499.00")

    def _post(self, payload, signature=None, raw=None):
        body = raw if raw is not None else json.dumps(payload).encode("utf-8")
        return self.client.post(
            reverse("payments:webhook"),
            data=body,
            content_type="application/json",
            HTTP_X_RAZORPAY_SIGNATURE=signature if signature is not None else sign_body(body),
        )

    def _captured(self, **extra):
        entity = {"id": "pay_1", "order_id": "order_TEST0001", "amount": 49900, "currency": "INR",
                  "status": "captured", "method": "upi", "vpa": "alice@okbank"}
        entity.update(extra)
        return payment_event("payment.captured", **entity)

    def test_every_event_has_a_handler(self):
        self.assertEqual(set(HANDLERS), set(WebhookEvent))

    def test_invalid_signature_is_rejected_without_changes(self):
        resp = self._post(self._captured(), signature="deadbeef")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"error": "Invalid signature"})
        self.assertEqual(Payment.objects.get().status, PENDING)
        self.assertFalse(Notification.objects.exists())

    def test_non_ascii_signature_is_rejected(self):
        resp = self._post(self._captured(), signature="ébad")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"error": "Invalid signature"})
        self.assertEqual(Payment.objects.get().status, PENDING)

    def test_missing_signature_is_rejected(self):
        body = json.dumps(self._captured()).encode("utf-8")
        resp = self.client.post(reverse("payments:webhook"), data=body, content_type="application/json")
        self.assertEqual(resp.status_code, 400)

    def test_signature_covers_raw_body(self):
        # same JSON, different whitespace: the signature of the compact form must not validate
        compact = json.dumps(self._captured(), separators=(",", ":")).encode("utf-8")
        spaced = json.dumps(self._captured(), indent=2).encode("utf-8")
        resp = self._post(None, signature=sign_body(compact), raw=spaced)
        self.assertEqual(resp.status_code, 400)

    def test_captured_completes_payment_and_order(self):
        resp = self._post(self._captured())
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"received": True})

        payment = Payment.objects.get()
        self.assertEqual(payment.status, COMPLETED)
        self.assertEqual(payment.gateway_payment_id, "pay_1")
        self.assertEqual(payment.details, {"type": "upi", "vpa": "alice@okbank"})
        self.assertEqual(payment.gateway_payload["status"], "captured")
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, COMPLETED)
        self.assertEqual(self.order.status, Order.STATUS_CONFIRMED)
        self.assertEqual(Notification.objects.filter(type="payment").count(), 1)

    def test_duplicate_captured_is_a_no_op(self):
        self._post(self._captured())
        resp = self._post(self._captured())
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(Payment.objects.get().status, COMPLETED)
        self.assertEqual(Notification.objects.count(), 1)

    def test_captured_for_unknown_order_is_acknowledged(self):
        resp = self._post(self._captured(order_id="order_UNKNOWN", id="pay_x"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"received": True})
        self.assertEqual(Payment.objects.count(), 1)
        self.assertEqual(Order.objects.count(), 1)
        self.assertEqual(Payment.objects.get().status, PENDING)

    def test_captured_and_verify_converge(self):
        self._post(self._captured())
        webhook_state = Payment.objects.values("status", "method", "details", "gateway_payment_id").get()

        PaymentReconciler(self.gateway).verify(
            gateway_order_id="order_TEST0001",
            gateway_payment_id="pay_1",
            signature=sign_payment("order_TEST0001", "pay_1"),
            order_id="O1",
        )
        verify_state = Payment.objects.values("status", "method", "details", "gateway_payment_id").get()
        self.assertEqual(webhook_state, verify_state)

    def test_captured_without_payment_record_still_completes_order(self):
        order = Order.objects.create(order_id="O2", total=Decimal("250.00"),
                                     payment_gateway_order_id="order_ORPHAN", payment_status=PENDING)
        resp = self._post(self._captured(order_id="order_ORPHAN", id="pay_9", amount=25000,
                                         method="wallet", wallet="paytm"))
        self.assertEqual(resp.status_code, 200)
        order.refresh_from_db()
        self.assertEqual(order.payment_status, COMPLETED)
        self.assertEqual(order.payment_gateway_payment_id, "pay_9")
        self.assertEqual(order.payment_details, {"type": "wallet", "name": "paytm"})
        self.assertEqual(order.status, Order.STATUS_CONFIRMED)
        self.assertFalse(Payment.objects.filter(gateway_order_id="order_ORPHAN").exists())
        self.assertEqual(Payment.objects.get().status, PENDING)

    def test_failed_marks_payment_failed(self):
        resp = self._post(payment_event(
            "payment.failed", id="pay_2", order_id="order_TEST0001", amount=49900,
            status="failed", error_description="Payment was declined by the bank",
        ))
        self.assertEqual(resp.status_code, 200)
        payment = Payment.objects.get()
        self.assertEqual(payment.status, FAILED)
        self.assertEqual(payment.error_description, "Payment was declined by the bank")
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, FAILED)
        self.assertEqual(self.order.payment_error, "Payment was declined by the bank")
        self.assertEqual(Notification.objects.count(), 1)

    def test_late_failure_does_not_demote_completed(self):
        self._post(self._captured())
        self._post(payment_event("payment.failed", id="pay_0", order_id="order_TEST0001", amount=49900,
                                 error_description="timeout"))
        self.assertEqual(Payment.objects.get().status, COMPLETED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, COMPLETED)

    def test_failed_for_unknown_order_is_acknowledged(self):
        resp = self._post(payment_event("payment.failed", id="pay_2", order_id="order_NOPE"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(Payment.objects.get().status, PENDING)

    def test_refund_then_duplicate_refund(self):
        self._post(self._captured())
        refund = refund_event(id="rfnd_1", payment_id="pay_1", amount=49900, status="processed")

        first = self._post(refund)
        second = self._post(refund)

        self.assertEqual(first.status_code, 200)
        self.assertEqual(second.status_code, 200)
        payment = Payment.objects.get()
        self.assertEqual(payment.status, REFUNDED)
        self.assertEqual(payment.refund_details["id"], "rfnd_1")
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, REFUNDED)
        # one for the capture, one for the refund
        self.assertEqual(Notification.objects.count(), 2)

    def test_nothing_leaves_refunded(self):
        self._post(self._captured())
        self._post(refund_event(id="rfnd_1", payment_id="pay_1", amount=49900))
        self._post(self._captured())
        self._post(payment_event("payment.failed", id="pay_1", order_id="order_TEST0001"))
        self.assertEqual(Payment.objects.get().status, REFUNDED)

    def test_refund_for_unknown_payment_is_acknowledged(self):
        resp = self._post(refund_event(id="rfnd_1", payment_id="pay_missing", amount=100))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(Payment.objects.get().status, PENDING)

    def test_unhandled_event_is_acknowledged(self):
        resp = self._post({"event": "order.paid", "payload": {}})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"received": True})

    def test_signed_garbage_is_acknowledged(self):
        resp = self._post(None, raw=b"not json at all")
        self.assertEqual(resp.status_code, 200)

    def test_handler_errors_are_swallowed(self):
        with patch.object(PaymentReconciler, "record_captured", side_effect=RuntimeError("db hiccup")), \
                self.assertLogs("payments.webhooks", level="ERROR") as cm:
            resp = self._post(self._captured())
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"received": True})
        self.assertIn("payment.captured", cm.output[0])

    def test_missing_entity_fields_are_tolerated(self):
        resp = self._post({"event": "payment.captured", "payload": {"payment": {}}})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(Payment.objects.get().status, PENDING)
