from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models

from .methods import PaymentMethod

PENDING = "pending"
COMPLETED = "completed"
FAILED = "failed"
REFUNDED = "refunded"

# target -> states a record may move from; re-applying the target is always allowed
ALLOWED_SOURCES = {
    COMPLETED: (PENDING, FAILED),
    FAILED: (PENDING,),
    REFUNDED: (COMPLETED,),
}


def sources_for(target: str) -> tuple:
    return ALLOWED_SOURCES.get(target, ()) + (target,)


class Payment(models.Model):
    STATUS_CHOICES = [
        (PENDING, "Pending"),
        (COMPLETED, "Completed"),
        (FAILED, "Failed"),
        (REFUNDED, "Refunded"),
    ]

    order = models.ForeignKey("orders.Order", on_delete=models.PROTECT, related_name="payments")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="payments"
    )
    gateway_order_id = models.CharField(max_length=64, unique=True)
    gateway_payment_id = models.CharField(max_length=64, blank=True, default="", db_index=True)
    signature = models.CharField(max_length=128, blank=True, default="")

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="INR")
    method = models.CharField(max_length=16, choices=PaymentMethod.choices(), default=PaymentMethod.CARD.value)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=PENDING, db_index=True)

    details = models.JSONField(blank=True, default=dict)
    refund_details = models.JSONField(blank=True, default=dict)
    error_description = models.TextField(blank=True, default="")
    gateway_payload = models.JSONField(blank=True, default=dict, encoder=DjangoJSONEncoder)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-created_at",)

    def __str__(self):
        return f"{self.gateway_order_id} {self.status} {self.currency} {self.amount}"

    @property
    def is_terminal(self) -> bool:
        return self.status != PENDING

    def as_dict(self) -> dict:
        return {
            "id": self.pk,
            "orderId": self.order.order_id,
            "userId": self.user_id,
            "razorpayOrderId": self.gateway_order_id,
            "razorpayPaymentId": self.gateway_payment_id or None,
            "amount": str(self.amount),
            "currency": self.currency,
            "paymentMethod": self.method,
            "status": self.status,
            "paymentDetails": self.details,
            "refundDetails": self.refund_details or None,
            "error": self.error_description or None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
