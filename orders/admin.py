from django.contrib import admin

from .models import Order, OrderItem


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("order_id", "status", "total", "payment_status", "payment_instrument", "created_at")
    search_fields = ("order_id", "payment_gateway_order_id", "payment_gateway_payment_id")
    list_filter = ("status", "payment_status", "created_at")
    readonly_fields = ("created_at", "updated_at", "payment_details")
    inlines = [OrderItemInline]
    actions = ["mark_delivered", "mark_cancelled"]

    @admin.action(description="Mark selected confirmed orders as delivered")
    def mark_delivered(self, request, queryset):
        updated = queryset.filter(status=Order.STATUS_CONFIRMED).update(status=Order.STATUS_DELIVERED)
        self.message_user(request, f"{updated} order(s) marked delivered.")

    @admin.action(description="Cancel selected orders")
    def mark_cancelled(self, request, queryset):
        updated = queryset.exclude(status=Order.STATUS_DELIVERED).update(status=Order.STATUS_CANCELLED)
        self.message_user(request, f"{updated} order(s) cancelled.")
