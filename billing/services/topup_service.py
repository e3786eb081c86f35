"""
Wallet top-up through a Stripe PaymentIntent.

The intent carries ``payment_type=wallet_topup`` and the user id in its metadata;
the Stripe webhook credits the wallet once per PaymentIntent.
"""
import logging

from django.contrib.auth import get_user_model
from django.db import transaction

from billing import config
from billing.models import Transaction
from billing.services import wallet_service
from billing.services.stripe_service import get_client, is_configured
from general.errors import ExternalServiceError, ValidationError

logger = logging.getLogger(__name__)

WALLET_TOPUP = "wallet_topup"


class TopupError(ExternalServiceError):
    """Stripe could not create the PaymentIntent; message is safe to show to user."""
    pass


def create_topup_intent(user, amount: int, attempt_id: str = None) -> dict:
    """
    Create a Stripe PaymentIntent for a wallet top-up of ``amount`` (billing unit).
    Stripe amounts are in the smallest currency unit, hence the x100.
    """
    if not is_configured():
        raise TopupError("Payment is not configured. Please try again later.")
    if not (config.WALLET_TOPUP_MIN_AMOUNT <= amount <= config.WALLET_TOPUP_MAX_AMOUNT):
        raise ValidationError(
            f"Top-up amount must be between {config.WALLET_TOPUP_MIN_AMOUNT} and {config.WALLET_TOPUP_MAX_AMOUNT}."
        )
    stripe = get_client()
    metadata = {
        "payment_type": WALLET_TOPUP,
        "user_id": str(user.pk),
        "wallet_amount": str(amount),
    }
    create_kwargs = dict(
        amount=amount * 100,
        currency=config.CURRENCY.lower(),
        confirm=False,
        capture_method="automatic",
        description="Wallet top-up",
        metadata=metadata,
        payment_method_types=["card"],
    )
    if (attempt_id or "").strip():
        create_kwargs["idempotency_key"] = f"{WALLET_TOPUP}:{user.pk}:{attempt_id.strip()[:64]}"
    try:
        intent = stripe.PaymentIntent.create(**create_kwargs)
    except stripe.StripeError as e:
        err = getattr(e, "error", e)
        msg = getattr(err, "user_message", None) or str(e)
        if not msg or "api" in msg.lower():
            msg = "Could not start wallet top-up. Please try again."
        logger.warning("topup_service: PaymentIntent create failed user=%s: %s", user.pk, e)
        raise TopupError(msg)
    return {
        "payment_intent_id": intent.id,
        "client_secret": intent.client_secret,
        "amount": amount,
    }


@transaction.atomic()
def apply_topup_succeeded(payment_intent) -> bool:
    """
    Credit the wallet for a succeeded top-up PaymentIntent.
    Returns False if the intent is not a top-up or was already credited.
    """
    pi_id = payment_intent.get("id")
    metadata = payment_intent.get("metadata") or {}
    if not pi_id or metadata.get("payment_type") != WALLET_TOPUP:
        return False
    if Transaction.objects.select_for_update().filter(gateway_order_id=pi_id).exists():
        logger.info("stripe_webhook: wallet_topup already credited pi=%s", pi_id)
        return False
    try:
        user = get_user_model().objects.get(pk=int(metadata.get("user_id")))
    except (ValueError, TypeError, get_user_model().DoesNotExist):
        logger.warning("stripe_webhook: wallet_topup user not found user_id=%s pi=%s", metadata.get("user_id"), pi_id)
        return False
    amount = int(metadata.get("wallet_amount") or 0) or (payment_intent.get("amount") or 0) // 100
    if amount <= 0:
        logger.warning("stripe_webhook: wallet_topup without amount pi=%s", pi_id)
        return False
    wallet_service.credit_wallet(
        user,
        amount,
        Transaction.TOPUP,
        description="Wallet top-up",
        gateway_order_id=pi_id,
    )
    logger.info("stripe_webhook: wallet_topup credited user=%s amount=%s pi=%s", user.pk, amount, pi_id)
    return True
