import json
from decimal import Decimal
from unittest.mock import MagicMock, patch

import requests
from django.core.exceptions import ImproperlyConfigured
from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse

from orders.models import Order
from notifications.models import Notification

from . import methods
from .checks import razorpay_credentials_check
from .exceptions import (
    GatewayError,
    InvalidInput,
    InvalidSignature,
    InvalidTransition,
    MissingFields,
    NotFound,
    PaymentInitiationFailed,
)
from .gateway import RazorpayClient
from .methods import PaymentMethod, build_detail, detail_as_dict, resolve_method, to_minor_units
from .models import COMPLETED, FAILED, PENDING, REFUNDED, Payment
from .reconciliation import PaymentReconciler
from .testing import FakeGateway, sign_payment


class MethodResolutionTests(SimpleTestCase):
    def test_upi_intent_normalizes_to_upi(self):
        self.assertIs(resolve_method("upi_intent", "card"), PaymentMethod.UPI)

    def test_gateway_method_wins_over_hint(self):
        self.assertIs(resolve_method("netbanking", "wallet"), PaymentMethod.NETBANKING)

    def test_unrecognized_method_falls_back_to_hint(self):
        self.assertIs(resolve_method("cardless_emi", "wallet"), PaymentMethod.WALLET)

    def test_unrecognized_method_without_hint_is_card(self):
        self.assertIs(resolve_method(None, None), PaymentMethod.CARD)
        self.assertIs(resolve_method("paylater", "razorpay"), PaymentMethod.CARD)


class PaymentDetailTests(SimpleTestCase):
    def test_upi_detail_reads_nested_vpa(self):
        detail = build_detail(PaymentMethod.UPI, {"upi": {"vpa": "alice@okbank"}})
        self.assertEqual(detail_as_dict(detail), {"type": "upi", "vpa": "alice@okbank"})

    def test_netbanking_missing_fields_are_unknown(self):
        detail = build_detail(PaymentMethod.NETBANKING, {"bank": "HDFC"})
        self.assertEqual(detail_as_dict(detail), {"type": "netbanking", "bank": "HDFC", "ifsc": "unknown"})

    def test_wallet_name_from_string(self):
        detail = build_detail(PaymentMethod.WALLET, {"wallet": "paytm"})
        self.assertEqual(detail_as_dict(detail), {"type": "wallet", "name": "paytm"})

    def test_card_detail_alternate_keys(self):
        entity = {"card": {"last4_digits": "4242", "card_network": "Visa"}}
        detail = build_detail(PaymentMethod.CARD, entity)
        self.assertEqual(
            detail_as_dict(detail),
            {"type": "card", "last4": "4242", "network": "Visa", "issuer": "unknown"},
        )

    def test_emi_uses_card_detail(self):
        detail = build_detail(PaymentMethod.EMI, {})
        self.assertIsInstance(detail, methods.CardDetail)

    def test_every_method_has_a_detail_variant(self):
        for method in PaymentMethod:
            build_detail(method, {})


class MinorUnitTests(SimpleTestCase):
    def test_matches_rounded_times_hundred(self):
        for amount in ("499.00", "1", "0.01", "1234.56", 99.99, 10, 1.005, 2.675, "10.125", "0.004"):
            self.assertEqual(to_minor_units(amount), round(float(amount) * 100), msg=repr(amount))

    def test_sub_paise_amounts_round_like_floats(self):
        self.assertEqual(to_minor_units(1.005), 100)

    def test_499_is_49900(self):
        self.assertEqual(to_minor_units(499.00), 49900)

    def test_rejects_non_positive_and_non_numeric(self):
        for bad in (0, -5, "abc", "NaN", "Infinity", True, None, ""):
            with self.assertRaises(InvalidInput, msg=repr(bad)):
                to_minor_units(bad)


class RazorpayClientTests(SimpleTestCase):
    def setUp(self):
        self.client_ = RazorpayClient("rzp_test_key", "secret", "whsec", base_url="https://gateway.test/v1/")

    def _response(self, status, data):
        resp = MagicMock(status_code=status, text=json.dumps(data))
        resp.json.return_value = data
        return resp

    def test_create_order_posts_minor_amount_with_basic_auth(self):
        with patch("payments.gateway.requests.request", return_value=self._response(200, {"id": "order_1"})) as req:
            data = self.client_.create_order(amount=49900, currency="INR", receipt="O1")

        self.assertEqual(data, {"id": "order_1"})
        args, kwargs = req.call_args
        self.assertEqual(args, ("POST", "https://gateway.test/v1/orders"))
        self.assertEqual(kwargs["json"], {"amount": 49900, "currency": "INR", "receipt": "O1"})
        self.assertEqual(kwargs["auth"].username, "rzp_test_key")
        self.assertEqual(kwargs["timeout"], 30)

    def test_gateway_error_description_is_surfaced(self):
        body = {"error": {"code": "BAD_REQUEST_ERROR", "description": "amount must be at least INR 1.00"}}
        with patch("payments.gateway.requests.request", return_value=self._response(400, body)):
            with self.assertRaises(GatewayError) as cm:
                self.client_.create_order(amount=1, currency="INR", receipt="O1")
        self.assertEqual(cm.exception.message, "amount must be at least INR 1.00")
        self.assertEqual(cm.exception.http_status, 400)

    def test_network_failure_becomes_gateway_error(self):
        with patch("payments.gateway.requests.request", side_effect=requests.ConnectionError("boom")):
            with self.assertRaises(GatewayError):
                self.client_.fetch_payment("pay_1")

    def test_payment_signature(self):
        good = sign_payment("order_1", "pay_1", secret="secret")
        self.assertTrue(self.client_.verify_payment_signature("order_1", "pay_1", good))
        self.assertFalse(self.client_.verify_payment_signature("order_1", "pay_2", good))
        self.assertFalse(self.client_.verify_payment_signature("order_1", "pay_1", None))

    def test_malformed_signatures_do_not_match(self):
        for bad in ("ébad", 12345, ["sig"], {"sig": 1}):
            self.assertFalse(self.client_.verify_payment_signature("order_1", "pay_1", bad), msg=repr(bad))
            self.assertFalse(self.client_.verify_webhook_signature(b"{}", bad), msg=repr(bad))

    def test_missing_secret_is_improperly_configured(self):
        client = RazorpayClient("rzp_test_key", "", "")
        with self.assertRaises(ImproperlyConfigured):
            client.verify_payment_signature("order_1", "pay_1", "sig")
        with self.assertRaises(ImproperlyConfigured):
            client.verify_webhook_signature(b"{}", "sig")


class InitiationTests(TestCase):
    def setUp(self):
        self.order = Order.objects.create(order_id="O1", subtotal=Decimal("499.00"), total=Decimal("499.00"))
        self.gateway = FakeGateway()
        self.reconciler = PaymentReconciler(self.gateway)

    def test_creates_pending_payment_keyed_by_gateway_order(self):
        result = self.reconciler.initiate(order_id="O1", amount="499.00")

        self.assertEqual(self.gateway.created, [{"amount": 49900, "currency": "INR", "receipt": "O1"}])
        payment = Payment.objects.get(gateway_order_id=result.gateway_order_id)
        self.assertEqual(payment.status, PENDING)
        self.assertEqual(payment.amount, Decimal("499.00"))
        self.assertEqual(payment.method, "card")
        self.assertEqual((result.amount, result.currency, result.payment_method), (49900, "INR", "card"))

        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, PENDING)
        self.assertEqual(self.order.payment_gateway_order_id, result.gateway_order_id)
        self.assertEqual(self.order.payment_amount, Decimal("499.00"))
        self.assertEqual(self.order.payment_method, "razorpay")

    def test_existing_record_is_updated_in_place(self):
        first = self.reconciler.initiate(order_id="O1", amount=499, method="upi")
        second = self.reconciler.initiate(order_id="O1", amount=499, method="razorpay")

        self.assertEqual(Payment.objects.count(), 1)
        payment = Payment.objects.get()
        self.assertEqual(payment.gateway_order_id, second.gateway_order_id)
        self.assertNotEqual(first.gateway_order_id, second.gateway_order_id)
        # the generic gateway name does not overwrite an explicit method
        self.assertEqual(payment.method, "upi")
        self.assertEqual(second.payment_method, "upi")

    def test_explicit_method_overwrites_existing(self):
        self.reconciler.initiate(order_id="O1", amount=499, method="upi")
        self.reconciler.initiate(order_id="O1", amount=499, method="wallet")
        self.assertEqual(Payment.objects.get().method, "wallet")

    def test_failed_attempt_can_be_reinitiated(self):
        self.reconciler.initiate(order_id="O1", amount=499)
        Payment.objects.update(status=FAILED, error_description="declined")

        self.reconciler.initiate(order_id="O1", amount=499)

        payment = Payment.objects.get()
        self.assertEqual(payment.status, PENDING)
        self.assertEqual(payment.error_description, "")

    def test_gateway_failure_mutates_nothing(self):
        self.gateway.fail_with = GatewayError("Authentication failed", http_status=401)
        with self.assertRaises(PaymentInitiationFailed) as cm:
            self.reconciler.initiate(order_id="O1", amount=499)

        self.assertEqual(cm.exception.message, "Authentication failed")
        self.assertFalse(Payment.objects.exists())
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, "")

    def test_invalid_input(self):
        cases = [
            {"order_id": "O1", "amount": None},
            {"order_id": "", "amount": 499},
            {"order_id": "O1", "amount": -1},
            {"order_id": "O1", "amount": "abc"},
            {"order_id": "O1", "amount": 499, "currency": "RUPEES"},
            {"order_id": "O1", "amount": 499, "method": "cheque"},
            {"order_id": "O1", "amount": 500},
        ]
        for kwargs in cases:
            with self.assertRaises(InvalidInput, msg=repr(kwargs)):
                self.reconciler.initiate(**kwargs)
        self.assertEqual(self.gateway.created, [])

    def test_unknown_order(self):
        with self.assertRaises(NotFound):
            self.reconciler.initiate(order_id="NOPE", amount=499)

    def test_paid_order_cannot_be_reinitiated(self):
        self.reconciler.initiate(order_id="O1", amount=499)
        Payment.objects.update(status=COMPLETED)
        with self.assertRaises(InvalidTransition):
            self.reconciler.initiate(order_id="O1", amount=499)
        self.assertEqual(len(self.gateway.created), 1)


class VerificationTests(TestCase):
    def setUp(self):
        self.order = Order.objects.create(order_id="O1", total=Decimal("499.00"))
        self.gateway = FakeGateway(payments={
            "pay_1": {"id": "pay_1", "order_id": "order_TEST0001", "amount": 49900, "currency": "INR",
                      "status": "captured", "method": "upi_intent", "upi": {"vpa": "alice@okbank"}},
        })
        self.reconciler = PaymentReconciler(self.gateway)
        self.reconciler.initiate(order_id="O1", amount="499.00", method="card")
        self.signature = sign_payment("order_TEST0001", "pay_1")

    def _verify(self, **overrides):
        kwargs = {
            "gateway_order_id": "order_TEST0001",
            "gateway_payment_id": "pay_1",
            "signature": self.signature,
            "order_id": "O1",
            "method_hint": "card",
        }
        kwargs.update(overrides)
        return self.reconciler.verify(**kwargs)

    def _snapshot(self):
        payment = Payment.objects.values().get()
        order = Order.objects.values().get(pk=self.order.pk)
        return payment, order

    def test_marks_payment_completed_and_order_confirmed(self):
        result = self._verify()

        self.assertEqual(result.payment.status, COMPLETED)
        self.assertEqual(result.payment.method, "upi")
        self.assertEqual(result.payment.gateway_payment_id, "pay_1")
        self.assertEqual(result.payment.signature, self.signature)
        self.assertEqual(result.payment.details, {"type": "upi", "vpa": "alice@okbank"})
        self.assertEqual(result.message, "Payment successful via upi")

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_CONFIRMED)
        self.assertEqual(self.order.payment_status, COMPLETED)
        self.assertEqual(self.order.payment_instrument, "upi")
        self.assertEqual(self.order.payment_signature, self.signature)

    def test_tampered_signature_changes_nothing(self):
        before = self._snapshot()
        with self.assertRaises(InvalidSignature):
            self._verify(signature="0" * 64)
        self.assertEqual(self._snapshot(), before)
        self.assertEqual(self.gateway.fetched, [])

    def test_verification_is_idempotent(self):
        first = self._verify()
        second = self._verify()
        self.assertEqual(second.payment.status, COMPLETED)
        self.assertEqual(first.payment.details, second.payment.details)
        self.assertEqual(first.payment.method, second.payment.method)

    def test_repeat_verification_still_checks_signature(self):
        self._verify()
        with self.assertRaises(InvalidSignature):
            self._verify(signature="bad")

    def test_missing_fields_are_named(self):
        with self.assertRaises(MissingFields) as cm:
            self._verify(gateway_payment_id="", signature=None)
        self.assertEqual(cm.exception.fields, ["razorpay_payment_id", "razorpay_signature"])

    def test_unknown_gateway_order(self):
        with self.assertRaises(NotFound):
            self._verify(gateway_order_id="order_OTHER", signature=sign_payment("order_OTHER", "pay_1"))

    def test_order_id_must_match(self):
        Order.objects.create(order_id="O2", total=Decimal("499.00"))
        with self.assertRaises(InvalidInput):
            self._verify(order_id="O2")

    def test_refunded_payment_is_not_regressed(self):
        self._verify()
        Payment.objects.update(status=REFUNDED)
        with self.assertRaises(InvalidTransition):
            self._verify()
        self.assertEqual(Payment.objects.get().status, REFUNDED)

    def test_delivered_order_is_not_moved_back_to_confirmed(self):
        self._verify()
        Order.objects.filter(pk=self.order.pk).update(status=Order.STATUS_DELIVERED)
        self._verify()
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_DELIVERED)

    def test_unrecognized_gateway_method_keeps_hint(self):
        self.gateway.payments["pay_1"]["method"] = "paylater"
        result = self._verify(method_hint="wallet")
        self.assertEqual(result.payment.method, "wallet")
        self.assertEqual(result.payment.details, {"type": "wallet", "name": "unknown"})


class PaymentViewTests(TestCase):
    def setUp(self):
        self.order = Order.objects.create(order_id="O1", total=Decimal("499.00"))
        self.gateway = FakeGateway(payments={
            "pay_1": {"id": "pay_1", "order_id": "order_TEST0001", "amount": 49900, "method": "card",
                      "card": {"last4": "1111", "network": "Visa", "issuer": "HDFC"}},
        })
        patcher = patch("payments.views.get_gateway_client", return_value=self.gateway)
        patcher.start()
        self.addCleanup(patcher.stop)

    def _post(self, name, payload):
        return self.client.post(reverse(name), data=json.dumps(payload), content_type="application/json")

    def test_create_order_endpoint(self):
        resp = self._post("payments:create_order", {"orderId": "O1", "amount": 499, "paymentMethod": "card"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {
            "success": True,
            "data": {"orderId": "order_TEST0001", "amount": 49900, "currency": "INR", "paymentMethod": "card"},
        })

    def test_create_order_invalid_amount(self):
        resp = self._post("payments:create_order", {"orderId": "O1", "amount": "zero"})
        self.assertEqual(resp.status_code, 400)
        self.assertFalse(resp.json()["success"])

    def test_create_order_gateway_failure(self):
        self.gateway.fail_with = GatewayError("Gateway down", http_status=503)
        resp = self._post("payments:create_order", {"orderId": "O1", "amount": 499})
        self.assertEqual(resp.status_code, 502)
        self.assertEqual(resp.json()["error"], "Gateway down")

    def test_verify_endpoint(self):
        self._post("payments:create_order", {"orderId": "O1", "amount": 499})
        resp = self._post("payments:verify", {
            "razorpay_order_id": "order_TEST0001",
            "razorpay_payment_id": "pay_1",
            "razorpay_signature": sign_payment("order_TEST0001", "pay_1"),
            "order_id": "O1",
        })
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["message"], "Payment successful via card")
        self.assertEqual(body["data"]["status"], "completed")
        self.assertEqual(body["data"]["paymentDetails"]["last4"], "1111")

    def test_verify_reports_missing_fields(self):
        resp = self._post("payments:verify", {"razorpay_order_id": "order_TEST0001"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(
            resp.json()["details"]["missing_fields"],
            ["razorpay_payment_id", "razorpay_signature", "order_id"],
        )

    def test_verify_bad_signature_is_400(self):
        self._post("payments:create_order", {"orderId": "O1", "amount": 499})
        resp = self._post("payments:verify", {
            "razorpay_order_id": "order_TEST0001",
            "razorpay_payment_id": "pay_1",
            "razorpay_signature": "forged",
            "order_id": "O1",
        })
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"], "Invalid payment signature")

    def test_verify_non_ascii_or_non_string_signature_is_400(self):
        self._post("payments:create_order", {"orderId": "O1", "amount": 499})
        for bad in ("ébad", 12345):
            resp = self._post("payments:verify", {
                "razorpay_order_id": "order_TEST0001",
                "razorpay_payment_id": "pay_1",
                "razorpay_signature": bad,
                "order_id": "O1",
            })
            self.assertEqual(resp.status_code, 400, msg=repr(bad))
            self.assertEqual(resp.json()["error"], "Invalid payment signature")
        self.assertEqual(Payment.objects.get().status, PENDING)

    def test_unexpected_error_does_not_leak_internals(self):
        with patch.object(PaymentReconciler, "verify", side_effect=RuntimeError("db password is hunter2")), \
                self.assertLogs("payments.views", level="ERROR"):
            resp = self._post("payments:verify", {
                "razorpay_order_id": "order_TEST0001",
                "razorpay_payment_id": "pay_1",
                "razorpay_signature": "sig",
                "order_id": "O1",
            })
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json(), {"success": False, "error": "Payment verification failed"})

    def test_invalid_json_body(self):
        resp = self.client.post(reverse("payments:verify"), data="not json", content_type="application/json")
        self.assertEqual(resp.status_code, 400)


class ConfigDiagnosticTests(TestCase):
    def test_reports_configured(self):
        resp = self.client.get(reverse("payments:config_check"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["keySecret"], True)

    @override_settings(RAZORPAY_WEBHOOK_SECRET="", RAZORPAY_KEY_SECRET="")
    def test_reports_missing_without_values(self):
        resp = self.client.get(reverse("payments:config_check"))
        self.assertEqual(resp.status_code, 500)
        body = resp.json()
        self.assertEqual(body["missing"], ["keySecret", "webhookSecret"])
        self.assertNotIn("rzp_test_key", json.dumps(body))

    @override_settings(RAZORPAY_KEY_ID="")
    def test_system_check_names_missing_setting(self):
        ids = [w.id for w in razorpay_credentials_check(None)]
        self.assertEqual(ids, ["payments.W001"])


class NotificationGuardTests(TestCase):
    def test_notification_failure_does_not_fail_capture(self):
        order = Order.objects.create(order_id="O1", total=Decimal("499.00"))
        notify = MagicMock(side_effect=RuntimeError("notification store down"))
        reconciler = PaymentReconciler(FakeGateway(), notify=notify)
        init = reconciler.initiate(order_id="O1", amount=499)

        with self.assertLogs("payments.reconciliation", level="ERROR"):
            changed = reconciler.record_captured(
                {"id": "pay_9", "order_id": init.gateway_order_id, "amount": 49900, "method": "card"}
            )

        self.assertTrue(changed)
        notify.assert_called_once()
        self.assertEqual(Payment.objects.get().status, COMPLETED)
        self.assertFalse(Notification.objects.exists())
        order.refresh_from_db()
        self.assertEqual(order.status, Order.STATUS_CONFIRMED)
