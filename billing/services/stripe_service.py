"""
Reusable Stripe service: initializes the SDK from settings.

Stripe is used only for wallet top-ups; booking payments go through Cashfree.
Secret key is never exposed; only backend code uses this.
"""
import stripe
from django.conf import settings


def is_configured() -> bool:
    """Return True if Stripe secret key is set and non-empty."""
    key = getattr(settings, "STRIPE_SECRET_KEY", None) or ""
    return bool(key.strip())


def get_client():
    """
    Return the Stripe SDK module (stripe) with API key set.
    Use for Stripe API calls, e.g. stripe_service.get_client().PaymentIntent.create(...)
    """
    if not is_configured():
        raise RuntimeError("Stripe is not configured: STRIPE_SECRET_KEY is missing or empty.")
    stripe.api_key = settings.STRIPE_SECRET_KEY
    return stripe


def construct_webhook_event(payload: bytes, sig_header: str, webhook_secret: str):
    """Verify the Stripe-Signature header and return the event. Raises ValueError or SignatureVerificationError."""
    return stripe.Webhook.construct_event(payload, sig_header, webhook_secret)
