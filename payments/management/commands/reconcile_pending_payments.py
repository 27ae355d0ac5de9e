import time
from datetime import timedelta

from django.core.management.base import BaseCommand
from django.utils import timezone

from payments.exceptions import GatewayError
from payments.gateway import get_gateway_client
from payments.models import PENDING, Payment
from payments.reconciliation import PaymentReconciler


class Command(BaseCommand):
    help = "Poll Razorpay for payments still pending and apply captured/failed outcomes"

    def add_arguments(self, parser):
        parser.add_argument("--max", type=int, default=50)
        parser.add_argument("--sleep", type=float, default=0.5)
        parser.add_argument("--older-than-minutes", type=int, default=15)

    def handle(self, *args, **opts):
        cutoff = timezone.now() - timedelta(minutes=opts["older_than_minutes"])
        qs = list(Payment.objects.filter(status=PENDING, updated_at__lt=cutoff).order_by("updated_at")[:opts["max"]])

        if not qs:
            self.stdout.write(self.style.SUCCESS("No pending payments to reconcile."))
            return

        reconciler = PaymentReconciler(get_gateway_client())
        for p in qs:
            try:
                status = reconciler.sync_from_gateway(p)
                self.stdout.write(self.style.SUCCESS(f"{p.gateway_order_id} -> {status}"))
            except GatewayError as e:
                self.stdout.write(self.style.WARNING(f"{p.gateway_order_id}: {e}"))
            time.sleep(opts["sleep"])
