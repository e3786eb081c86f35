"""
Cashfree payment webhook handlers.

Each handler catches and logs its own failures: the gateway is always acknowledged,
it has no compensating action and would only redeliver. Redeliveries are safe
because every handler checks the current transaction and booking state first.
"""
import logging

from django.db import transaction
from django.utils import timezone

from billing.models import Transaction
from billing.services import wallet_service
from billing.webhook_events import PaymentFailed, PaymentSucceeded, PaymentUserDropped, UnknownEvent
from bookings.models import Booking
from bookings.services import booking_service

logger = logging.getLogger(__name__)

CONFIRMED = "confirmed"
EXPIRED = "expired"
FAILED = "failed"
CANCELLED = "cancelled"
IGNORED = "ignored"
REFUNDED = "refunded"
ERROR = "error"


def _payment_transaction(order_id: str):
    return (
        Transaction.objects.select_related("booking")
        .filter(gateway_order_id=order_id, type=Transaction.BOOKING_PAYMENT)
        .first()
    )


def _refund_extra_capture(txn: Transaction, event: PaymentSucceeded) -> str:
    """
    The booking was already settled by another order, so this capture is a second
    payment: record it and return the same amount to the seeker wallet.
    """
    with transaction.atomic():
        txn = Transaction.objects.select_for_update().select_related("booking").get(pk=txn.pk)
        if txn.status == Transaction.COMPLETED:
            return IGNORED
        txn.status = Transaction.COMPLETED
        txn.gateway_payment_id = event.payment_id
        txn.save(update_fields=["status", "gateway_payment_id", "updated_at"])
        wallet_service.credit_wallet(
            txn.user,
            txn.amount,
            Transaction.REFUND,
            booking=txn.booking,
            description=f"Refund of second payment for booking {txn.booking_id}",
        )
    logger.warning(
        "cashfree_webhook: double payment booking=%s (%s) order=%s payment=%s, refunded %s to wallet",
        txn.booking_id, txn.booking.status, event.order_id, event.payment_id, txn.amount,
    )
    return REFUNDED


def _handle_payment_succeeded(event: PaymentSucceeded, now) -> str:
    txn = _payment_transaction(event.order_id)
    if txn is None:
        logger.warning("cashfree_webhook: no transaction for order=%s", event.order_id)
        return IGNORED
    booking = txn.booking
    if booking is None:
        logger.warning("cashfree_webhook: transaction=%s has no booking order=%s", txn.pk, event.order_id)
        return IGNORED
    if txn.status == Transaction.COMPLETED:
        logger.info("cashfree_webhook: duplicate success order=%s booking=%s", event.order_id, booking.pk)
        return IGNORED
    if booking.status not in Booking.UNPAID_STATUSES:
        return _refund_extra_capture(txn, event)
    if event.amount is not None and event.amount != txn.amount:
        logger.warning(
            "cashfree_webhook: amount mismatch order=%s paid=%s expected=%s",
            event.order_id, event.amount, txn.amount,
        )

    if booking_service.is_payment_expired(booking, now):
        # TODO: refund the captured payment through the Cashfree refunds API before releasing the slot.
        logger.warning(
            "cashfree_webhook: payment deadline passed booking=%s order=%s, releasing slot",
            booking.pk, event.order_id,
        )
        booking_service.expire_unpaid_booking(booking, now=now)
        return EXPIRED

    with transaction.atomic():
        txn = Transaction.objects.select_for_update().get(pk=txn.pk)
        if txn.status == Transaction.COMPLETED:
            return IGNORED
        txn.status = Transaction.COMPLETED
        txn.gateway_payment_id = event.payment_id
        txn.save(update_fields=["status", "gateway_payment_id", "updated_at"])
        booking_service.confirm_booking(booking, now=now)
    logger.info("cashfree_webhook: payment success order=%s booking=%s confirmed", event.order_id, booking.pk)
    return CONFIRMED


def _mark_unsuccessful(order_id: str, status: str) -> str:
    with transaction.atomic():
        txn = (
            Transaction.objects.select_for_update()
            .filter(gateway_order_id=order_id, type=Transaction.BOOKING_PAYMENT)
            .first()
        )
        if txn is None:
            logger.warning("cashfree_webhook: no transaction for order=%s", order_id)
            return IGNORED
        if txn.status != Transaction.PENDING:
            logger.info("cashfree_webhook: order=%s already %s, leaving as is", order_id, txn.status)
            return IGNORED
        txn.status = status
        txn.save(update_fields=["status", "updated_at"])
    # The booking stays PAYMENT_PENDING so the seeker can retry before the deadline.
    logger.info("cashfree_webhook: order=%s marked %s", order_id, status)
    return status


def _handle_payment_failed(event: PaymentFailed, now) -> str:
    return _mark_unsuccessful(event.order_id, Transaction.FAILED)


def _handle_payment_user_dropped(event: PaymentUserDropped, now) -> str:
    return _mark_unsuccessful(event.order_id, Transaction.CANCELLED)


HANDLERS = {
    PaymentSucceeded: _handle_payment_succeeded,
    PaymentFailed: _handle_payment_failed,
    PaymentUserDropped: _handle_payment_user_dropped,
}


def handle_event(event, now=None) -> str:
    """Dispatch a parsed webhook event. Returns a short outcome label; never raises."""
    now = now or timezone.now()
    if isinstance(event, UnknownEvent):
        logger.info("cashfree_webhook: unhandled event type %s", event.type)
        return IGNORED
    handler = HANDLERS.get(type(event))
    if handler is None:
        logger.info("cashfree_webhook: no handler for %s", type(event).__name__)
        return IGNORED
    try:
        return handler(event, now)
    except Exception:
        logger.exception("cashfree_webhook: %s failed for order=%s", type(event).__name__, getattr(event, "order_id", ""))
        return ERROR
