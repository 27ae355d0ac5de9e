from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/payments/", include("payments.urls")),
    path("api/notifications/", include("notifications.urls")),
]

handler404 = "storefront.views.error_404_view"
handler500 = "storefront.views.error_500_view"
