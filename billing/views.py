"""
Billing views: Cashfree payment webhook, Stripe wallet top-up and wallet summary.
"""
import json
import logging

from django.conf import settings
from django.http import HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from billing.forms import WalletTopupForm
from billing.gateways.cashfree import verify_webhook_signature
from billing.models import Transaction
from billing.services import payment_webhook_service, topup_service, wallet_service
from billing.services.stripe_service import construct_webhook_event
from billing.webhook_events import parse_event
from general.decorators import api_login_required, json_api, parse_json_body, validate_form
from general.errors import ValidationError

logger = logging.getLogger(__name__)

RECENT_TRANSACTIONS = 20


def _transaction_dict(txn: Transaction) -> dict:
    return {
        "id": txn.pk,
        "type": txn.type,
        "amount": txn.amount,
        "status": txn.status,
        "booking_id": txn.booking_id,
        "description": txn.description,
        "created_at": txn.created_at.isoformat(),
    }


@csrf_exempt
@require_http_methods(["POST"])
def cashfree_webhook(request):
    """
    POST /api/payments/cashfree/webhook/
    Verifies x-webhook-signature, then dispatches the typed event. Every processed or
    ignored event is acknowledged with 200 so the gateway does not redeliver.
    """
    raw_body = request.body
    signature = request.headers.get("x-webhook-signature", "")
    timestamp = request.headers.get("x-webhook-timestamp", "")

    if not verify_webhook_signature(raw_body, signature, timestamp, settings.CASHFREE_WEBHOOK_SECRET):
        logger.warning("cashfree_webhook: invalid signature ts=%s", timestamp)
        return JsonResponse({"error": "Invalid signature"}, status=401)

    try:
        payload = json.loads(raw_body)
        event = parse_event(payload)
    except ValidationError as e:
        logger.warning("cashfree_webhook: malformed event %s", e.message)
        return JsonResponse({"status": "success", "message": "Webhook ignored"})
    except Exception:
        logger.exception("cashfree_webhook: could not read payload")
        return JsonResponse({"error": "Webhook processing failed"}, status=500)

    outcome = payment_webhook_service.handle_event(event)
    logger.info("cashfree_webhook: %s -> %s", type(event).__name__, outcome)
    return JsonResponse({"status": "success", "message": "Webhook processed"})


@csrf_exempt
@require_http_methods(["POST"])
def stripe_webhook(request):
    """
    POST /api/billing/stripe-webhook/
    Stripe webhook endpoint. Verifies signature and credits wallet top-ups on
    payment_intent.succeeded. Idempotent per PaymentIntent.
    """
    payload = request.body
    sig_header = request.META.get("HTTP_STRIPE_SIGNATURE", "")
    webhook_secret = getattr(settings, "STRIPE_WEBHOOK_SECRET", "") or ""

    if not webhook_secret or not sig_header:
        logger.warning("stripe_webhook: missing STRIPE_WEBHOOK_SECRET or Stripe-Signature header")
        return HttpResponse(status=400)

    try:
        event = construct_webhook_event(payload, sig_header, webhook_secret)
    except ValueError as e:
        logger.warning("stripe_webhook: invalid payload %s", e)
        return HttpResponse(status=400)
    except Exception as e:
        logger.warning("stripe_webhook: signature verification failed %s", e)
        return HttpResponse(status=400)

    if event.type == "payment_intent.succeeded":
        topup_service.apply_topup_succeeded(event.data.object)
    elif event.type == "payment_intent.payment_failed":
        obj = event.data.object
        logger.info("stripe_webhook: payment failed pi=%s", obj.get("id"))

    return HttpResponse(status=200)


@csrf_exempt
@require_http_methods(["POST"])
@json_api
@api_login_required
def wallet_topup(request):
    """POST /api/billing/wallet/topup/  {"amount": 500} -> PaymentIntent client secret"""
    data = validate_form(WalletTopupForm, parse_json_body(request))
    intent = topup_service.create_topup_intent(request.user, data["amount"], attempt_id=data.get("attempt_id"))
    return JsonResponse({"success": True, **intent})


@require_http_methods(["GET"])
@json_api
@api_login_required
def wallet_detail(request):
    """GET /api/billing/wallet/"""
    wallet = wallet_service.get_wallet(request.user)
    transactions = Transaction.objects.filter(user=request.user)[:RECENT_TRANSACTIONS]
    return JsonResponse({
        "balance": wallet.balance,
        "pending_amount": wallet.pending_amount,
        "available": wallet.balance,
        "transactions": [_transaction_dict(t) for t in transactions],
    })
