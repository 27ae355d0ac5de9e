from django.core.serializers.json import DjangoJSONEncoder
from django.db import models


class Notification(models.Model):
    TYPE_CHOICES = [
        ("order", "Order"),
        ("payment", "Payment"),
        ("system", "System"),
    ]
    type = models.CharField(max_length=16, choices=TYPE_CHOICES)
    message = models.TextField()
    data = models.JSONField(default=dict, encoder=DjangoJSONEncoder)
    read = models.BooleanField(default=False, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("-created_at", "-id")

    def __str__(self):
        return f"[{self.type}] {self.message}"

    def as_dict(self) -> dict:
        return {
            "id": self.pk,
            "type": self.type,
            "message": self.message,
            "data": self.data,
            "read": self.read,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
