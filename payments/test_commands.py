from datetime import timedelta
from decimal import Decimal
from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone

from orders.models import Order

from .exceptions import GatewayError
from .models import COMPLETED, FAILED, PENDING, Payment
from .reconciliation import PaymentReconciler
from .testing import FakeGateway

COMMAND_MODULE = "payments.management.commands.reconcile_pending_payments"


class ReconcilePendingPaymentsTests(TestCase):
    def setUp(self):
        self.gateway = FakeGateway()
        for oid in ("O1", "O2"):
            Order.objects.create(order_id=oid, total=Decimal("100.00"))
            PaymentReconciler(self.gateway).initiate(order_id=oid, amount=100)
        Payment.objects.update(updated_at=timezone.now() - timedelta(hours=1))

    def _run(self, **opts):
        out = StringIO()
        with patch(f"{COMMAND_MODULE}.get_gateway_client", return_value=self.gateway):
            call_command("reconcile_pending_payments", sleep=0, stdout=out, **opts)
        return out.getvalue()

    def test_applies_captured_and_failed_outcomes(self):
        self.gateway.order_payments = {
            "order_TEST0001": [
                {"id": "pay_a", "order_id": "order_TEST0001", "status": "failed", "amount": 10000},
                {"id": "pay_b", "order_id": "order_TEST0001", "status": "captured", "amount": 10000,
                 "method": "netbanking", "bank": "SBIN"},
            ],
            "order_TEST0002": [
                {"id": "pay_c", "order_id": "order_TEST0002", "status": "failed", "amount": 10000,
                 "error_description": "Insufficient funds"},
            ],
        }
        out = self._run()

        first = Payment.objects.get(gateway_order_id="order_TEST0001")
        second = Payment.objects.get(gateway_order_id="order_TEST0002")
        self.assertEqual(first.status, COMPLETED)
        self.assertEqual(first.details, {"type": "netbanking", "bank": "SBIN", "ifsc": "unknown"})
        self.assertEqual(second.status, FAILED)
        self.assertEqual(second.error_description, "Insufficient funds")
        self.assertIn("order_TEST0001 -> completed", out)

    def test_no_attempts_leaves_payment_pending(self):
        self._run()
        self.assertEqual(set(Payment.objects.values_list("status", flat=True)), {PENDING})

    def test_recent_payments_are_skipped(self):
        Payment.objects.update(updated_at=timezone.now())
        out = self._run()
        self.assertIn("No pending payments to reconcile.", out)

    def test_gateway_errors_are_reported(self):
        with patch.object(FakeGateway, "fetch_order_payments", side_effect=GatewayError("rate limited")):
            out = self._run(max=1)
        self.assertIn("rate limited", out)
