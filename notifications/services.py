from django.db import transaction

from .emails import send_admin_notification
from .models import Notification


def create_notification(type: str, message: str, data: dict | None = None) -> Notification:
    """Store a notification and, for payment events, email the admins after commit.

    Persistence errors propagate; callers in the payment flow guard this call.
    """
    notification = Notification.objects.create(type=type, message=message, data=data or {})
    if type == "payment":
        transaction.on_commit(lambda: send_admin_notification(notification))
    return notification
