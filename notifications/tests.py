from django.contrib.auth import get_user_model
from django.core import mail
from django.test import TestCase, override_settings
from django.urls import reverse

from .models import Notification
from .services import create_notification


class CreateNotificationTests(TestCase):
    def test_payment_notification_emails_admins_after_commit(self):
        with self.captureOnCommitCallbacks(execute=True):
            n = create_notification("payment", "Payment of ₹499.00 received for order #O1", {"orderId": "O1"})

        self.assertEqual(Notification.objects.get().pk, n.pk)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ["ops@example.com"])
        self.assertIn("O1", mail.outbox[0].body)

    def test_system_notification_is_not_emailed(self):
        with self.captureOnCommitCallbacks(execute=True):
            create_notification("system", "Nightly job finished")
        self.assertEqual(len(mail.outbox), 0)

    @override_settings(PAYMENTS_ADMIN_EMAILS="a@example.com, A@example.com,b@example.com")
    def test_admin_recipients_are_deduplicated(self):
        from .emails import admin_recipients
        self.assertEqual(admin_recipients(), ["a@example.com", "b@example.com"])

    @override_settings(PAYMENTS_ADMIN_EMAILS="", DEFAULT_FROM_EMAIL="shop@example.com")
    def test_no_admins_configured_sends_nothing(self):
        with self.captureOnCommitCallbacks(execute=True):
            create_notification("payment", "Payment of ₹10.00 received for order #O2")
        self.assertEqual(Notification.objects.count(), 1)
        self.assertEqual(len(mail.outbox), 0)


class NotificationViewTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.staff = User.objects.create_user("ops", password="pw", is_staff=True)
        self.first = Notification.objects.create(type="payment", message="first", data={})
        self.second = Notification.objects.create(type="order", message="second", data={})

    def test_requires_staff(self):
        resp = self.client.get(reverse("notifications:list"))
        self.assertEqual(resp.status_code, 403)

    def test_lists_newest_first(self):
        self.client.force_login(self.staff)
        resp = self.client.get(reverse("notifications:list"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([n["message"] for n in resp.json()], ["second", "first"])

    def test_mark_read(self):
        self.client.force_login(self.staff)
        resp = self.client.post(reverse("notifications:read", kwargs={"pk": self.first.pk}))
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["read"])

    def test_mark_read_unknown_is_404(self):
        self.client.force_login(self.staff)
        resp = self.client.post(reverse("notifications:read", kwargs={"pk": 9999}))
        self.assertEqual(resp.status_code, 404)

    def test_mark_all_read(self):
        self.client.force_login(self.staff)
        resp = self.client.post(reverse("notifications:read_all"))
        self.assertEqual(resp.json()["updated"], 2)
        self.assertFalse(Notification.objects.filter(read=False).exists())
