from django.urls import path
from . import views

app_name = "billing"

urlpatterns = [
    path("payments/cashfree/webhook/", views.cashfree_webhook, name="cashfree_webhook"),
    path("billing/wallet/", views.wallet_detail, name="wallet_detail"),
    path("billing/wallet/topup/", views.wallet_topup, name="wallet_topup"),
    path("billing/stripe-webhook/", views.stripe_webhook, name="stripe_webhook"),
]
