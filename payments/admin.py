from django.contrib import admin
from .models import Payment

@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("gateway_order_id", "status", "method", "amount", "currency", "order", "created_at", "updated_at")
    search_fields = ("gateway_order_id", "gateway_payment_id", "order__order_id")
    list_filter = ("status", "method", "currency", "created_at")
    readonly_fields = ("created_at", "updated_at", "details", "refund_details", "gateway_payload", "signature")
