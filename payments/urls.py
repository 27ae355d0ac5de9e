from django.urls import path
from . import views
app_name = "payments"
urlpatterns = [
    path("create-order", views.create_order_view, name="create_order"),
    path("verify", views.verify_payment_view, name="verify"),
    path("webhook", views.webhook_view, name="webhook"),
    path("config", views.config_check_view, name="config_check"),
]
