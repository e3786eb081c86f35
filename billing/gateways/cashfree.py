"""
Cashfree payment gateway: order creation and webhook signature verification.

All Cashfree PG calls live here; services receive a client instance so tests can
pass a stand-in with the same ``create_order`` signature.
"""
import base64
import hashlib
import hmac
import logging
import time

import httpx
from django.conf import settings
from django.utils.crypto import get_random_string

from billing import config
from general.errors import ExternalServiceError

logger = logging.getLogger(__name__)

CHECKOUT_URL = "https://payments.cashfree.com/pay/order?session-id={session_id}"


class CashfreeError(ExternalServiceError):
    """Cashfree rejected the request or could not be reached."""
    pass


def is_configured() -> bool:
    """Return True if both Cashfree PG credentials are set."""
    return bool(getattr(settings, "CASHFREE_APP_ID", "") and getattr(settings, "CASHFREE_SECRET_KEY", ""))


def generate_order_id(booking_id) -> str:
    return f"ORDER_{booking_id}_{int(time.time() * 1000)}_{get_random_string(6)}".upper()


def compute_webhook_signature(raw_body: bytes, timestamp: str, secret: str) -> str:
    """base64(HMAC-SHA256(secret, timestamp + raw_body))"""
    message = timestamp.encode("utf-8") + raw_body
    digest = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_webhook_signature(raw_body: bytes, signature: str, timestamp: str, secret: str) -> bool:
    if not signature or not timestamp or not secret:
        return False
    expected = compute_webhook_signature(raw_body, timestamp, secret)
    return hmac.compare_digest(expected, signature)


class CashfreeClient:
    """Thin synchronous client for the Cashfree PG orders API."""

    def __init__(self, app_id=None, secret_key=None, base_url=None, api_version=None, timeout=30.0):
        self.app_id = app_id if app_id is not None else settings.CASHFREE_APP_ID
        self.secret_key = secret_key if secret_key is not None else settings.CASHFREE_SECRET_KEY
        self.base_url = (base_url or settings.CASHFREE_BASE_URL).rstrip("/")
        self.api_version = api_version or settings.CASHFREE_API_VERSION
        self.timeout = timeout

    def _headers(self) -> dict:
        if not (self.app_id and self.secret_key):
            raise CashfreeError("Payment gateway is not configured. Please contact support.")
        return {
            "Content-Type": "application/json",
            "x-api-version": self.api_version,
            "x-client-id": self.app_id,
            "x-client-secret": self.secret_key,
        }

    def create_order(self, *, booking, customer) -> dict:
        """
        Create a Cashfree order for ``booking`` paid by ``customer``.

        Returns:
            {"order_id": ..., "payment_session_id": ..., "payment_url": ...}

        Raises:
            CashfreeError: gateway not configured, unreachable, or rejected the order.
        """
        headers = self._headers()
        order_id = generate_order_id(booking.pk)
        profile = getattr(customer, "profile", None)
        payload = {
            "order_id": order_id,
            "order_amount": booking.amount,
            "order_currency": config.CURRENCY,
            "customer_details": {
                "customer_id": str(customer.pk),
                "customer_name": profile.first_name if profile else customer.email,
                "customer_email": customer.email,
                "customer_phone": customer.phone or "9999999999",
            },
            "order_meta": {
                "return_url": settings.CASHFREE_RETURN_URL or None,
                "notify_url": settings.CASHFREE_NOTIFY_URL or None,
                "payment_methods": "cc,dc,upi,nb,paylater,emi",
            },
            "order_note": f"{settings.SITE_NAME} consultation booking - {booking.pk}",
        }
        try:
            with httpx.Client(timeout=self.timeout) as http_client:
                response = http_client.post(f"{self.base_url}/orders", json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("cashfree: create_order request failed booking=%s: %s", booking.pk, e)
            raise CashfreeError("Payment gateway is unreachable. Please try again.")

        if response.status_code >= 400:
            logger.warning(
                "cashfree: create_order rejected booking=%s status=%s body=%s",
                booking.pk, response.status_code, response.text[:500],
            )
            message = "Payment session creation failed"
            try:
                detail = response.json().get("message")
            except ValueError:
                detail = None
            if detail:
                message = f"{message}: {detail}"
            raise CashfreeError(message)

        data = response.json()
        session_id = data.get("payment_session_id", "")
        logger.info("cashfree: order created order=%s booking=%s", data.get("order_id", order_id), booking.pk)
        return {
            "order_id": data.get("order_id", order_id),
            "payment_session_id": session_id,
            "payment_url": CHECKOUT_URL.format(session_id=session_id),
        }
