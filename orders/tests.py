from decimal import Decimal

from django.contrib.admin.sites import AdminSite
from django.test import RequestFactory, TestCase
from unittest.mock import patch

from .admin import OrderAdmin
from .models import Order, OrderItem
from .utils import generate_order_id


class OrderTotalsTests(TestCase):
    def test_total_is_subtotal_plus_tax(self):
        order = Order.objects.create(order_id="O1", tax=Decimal("18.00"))
        OrderItem.objects.create(order=order, product_ref="SKU-1", quantity=2, unit_price=Decimal("100.00"))
        OrderItem.objects.create(order=order, product_ref="SKU-2", quantity=1, unit_price=Decimal("50.50"))

        order.recalculate_totals()

        self.assertEqual(order.subtotal, Decimal("250.50"))
        self.assertEqual(order.total, Decimal("268.50"))

    def test_tax_rate_recomputes_tax(self):
        order = Order.objects.create(order_id="O2")
        OrderItem.objects.create(order=order, product_ref="SKU-1", quantity=1, unit_price=Decimal("200.00"))

        order.recalculate_totals(tax_rate=Decimal("0.18"))

        self.assertEqual(order.tax, Decimal("36.00"))
        self.assertEqual(order.total, Decimal("236.00"))

    def test_generated_order_id_is_alphanumeric(self):
        oid = generate_order_id()
        self.assertTrue(oid.startswith("ORD"))
        self.assertTrue(oid.isalnum())


class OrderAdminActionTests(TestCase):
    def setUp(self):
        self.admin = OrderAdmin(Order, AdminSite())
        self.request = RequestFactory().get("/admin/orders/order/")

    def test_only_confirmed_orders_are_delivered(self):
        confirmed = Order.objects.create(order_id="C1", status=Order.STATUS_CONFIRMED)
        pending = Order.objects.create(order_id="P1")

        with patch.object(self.admin, "message_user"):
            self.admin.mark_delivered(self.request, Order.objects.all())

        confirmed.refresh_from_db()
        pending.refresh_from_db()
        self.assertEqual(confirmed.status, Order.STATUS_DELIVERED)
        self.assertEqual(pending.status, Order.STATUS_PENDING)

    def test_delivered_orders_are_not_cancelled(self):
        delivered = Order.objects.create(order_id="D1", status=Order.STATUS_DELIVERED)
        pending = Order.objects.create(order_id="P2")

        with patch.object(self.admin, "message_user"):
            self.admin.mark_cancelled(self.request, Order.objects.all())

        delivered.refresh_from_db()
        pending.refresh_from_db()
        self.assertEqual(delivered.status, Order.STATUS_DELIVERED)
        self.assertEqual(pending.status, Order.STATUS_CANCELLED)
