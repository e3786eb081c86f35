from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include("accounts.urls", namespace="accounts")),
    path("api/", include("billing.urls", namespace="billing")),
    path("api/", include("bookings.urls", namespace="bookings")),
    path("api/", include("disputes.urls", namespace="disputes")),
    path("api/", include("payouts.urls", namespace="payouts")),
]
