from decimal import Decimal

from django.conf import settings
from django.db import models

from .utils import generate_order_id


class Order(models.Model):
    STATUS_PENDING = "pending"
    STATUS_CONFIRMED = "confirmed"
    STATUS_DELIVERED = "delivered"
    STATUS_CANCELLED = "cancelled"
    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_CONFIRMED, "Confirmed"),
        (STATUS_DELIVERED, "Delivered"),
        (STATUS_CANCELLED, "Cancelled"),
    ]
    PAYMENT_STATUS_CHOICES = [
        ("pending", "Pending"),
        ("completed", "Completed"),
        ("failed", "Failed"),
        ("refunded", "Refunded"),
    ]

    order_id = models.CharField(max_length=40, unique=True, default=generate_order_id)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="orders"
    )
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)

    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    # embedded payment sub-record, written by payments.reconciliation
    payment_method = models.CharField(max_length=32, blank=True, default="")
    payment_status = models.CharField(max_length=16, choices=PAYMENT_STATUS_CHOICES, blank=True, default="")
    payment_gateway_order_id = models.CharField(max_length=64, blank=True, default="", db_index=True)
    payment_gateway_payment_id = models.CharField(max_length=64, blank=True, default="")
    payment_signature = models.CharField(max_length=128, blank=True, default="")
    payment_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    payment_instrument = models.CharField(max_length=16, blank=True, default="")
    payment_error = models.TextField(blank=True, default="")
    payment_details = models.JSONField(blank=True, default=dict)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-created_at",)

    def __str__(self):
        return f"{self.order_id} ({self.status})"

    def recalculate_totals(self, tax_rate: Decimal | None = None) -> None:
        """Recompute subtotal from the line items and keep total = subtotal + tax.

        When ``tax_rate`` is given the tax is recomputed as well, otherwise
        the stored tax is kept.
        """
        subtotal = sum((item.line_total for item in self.items.all()), Decimal("0.00"))
        self.subtotal = subtotal
        if tax_rate is not None:
            self.tax = (subtotal * tax_rate).quantize(Decimal("0.01"))
        self.total = self.subtotal + self.tax

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "completed"


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    product_ref = models.CharField(max_length=64)
    name = models.CharField(max_length=200, blank=True, default="")
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)

    def __str__(self):
        return f"{self.product_ref} x{self.quantity}"

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity
