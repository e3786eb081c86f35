"""
Booking lifecycle: creation, payment, confirmation, expiry, cancellation, completion
and earnings release.

Every status change goes through ``transition`` so the allowed edges are checked in
one place. Money movements go through billing.services.wallet_service inside the
same database transaction as the status change.
"""
import logging
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal

from django.db import transaction
from django.db.models import F
from django.utils import timezone
from django.utils.crypto import get_random_string

from accounts.models import CustomUser, ProviderProfile
from billing.models import Transaction
from billing.services import wallet_service
from billing.services.commission_service import split_amount
from bookings import config
from bookings.models import Booking, Message, Session
from general.errors import AuthorizationError, NotFoundError, ValidationError
from general.signals import booking_cancelled, booking_confirmed, emit_on_commit

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    Booking.PENDING: {Booking.PAYMENT_PENDING, Booking.CONFIRMED, Booking.CANCELLED},
    Booking.PAYMENT_PENDING: {Booking.CONFIRMED, Booking.CANCELLED},
    Booking.CONFIRMED: {Booking.COMPLETED, Booking.DISPUTED, Booking.CANCELLED},
    Booking.COMPLETED: {Booking.DISPUTED},
    Booking.DISPUTED: {Booking.RESOLVED},
    Booking.CANCELLED: set(),
    Booking.RESOLVED: set(),
}


class BookingTransitionError(ValidationError):
    """Requested status change is not an edge of the booking state machine."""
    pass


def transition(booking: Booking, new_status: str, extra_fields=()) -> Booking:
    """Move ``booking`` to ``new_status`` and save. Caller holds the row lock."""
    if new_status not in ALLOWED_TRANSITIONS.get(booking.status, set()):
        raise BookingTransitionError(
            f"Booking cannot move from {booking.get_status_display()} to {dict(Booking.STATUS_CHOICES)[new_status]}."
        )
    old_status = booking.status
    booking.status = new_status
    booking.save(update_fields=["status", "updated_at", *extra_fields])
    logger.info("booking_service: booking=%s %s -> %s", booking.pk, old_status, new_status)
    return booking


def _lock(booking: Booking) -> Booking:
    return Booking.objects.select_for_update().get(pk=booking.pk)


def _require_participant(booking: Booking, user):
    if not booking.is_participant(user):
        raise AuthorizationError("You are not a participant in this booking.")


def get_booking_for(user, booking_id) -> Booking:
    """Booking lookup for API views: 404 if missing, 403 unless participant or staff."""
    booking = Booking.objects.select_related("seeker", "provider").filter(pk=booking_id).first()
    if booking is None:
        raise NotFoundError("Booking not found")
    if not booking.is_participant(user) and not user.is_marketplace_staff:
        raise AuthorizationError("You are not a participant in this booking.")
    return booking


# ----- Creation and payment -----

def payment_deadline(booking: Booking):
    return booking.start_time - timedelta(minutes=config.PAYMENT_DEADLINE_MINUTES)


def is_payment_expired(booking: Booking, now=None) -> bool:
    now = now or timezone.now()
    return now >= payment_deadline(booking)


def booking_price(provider_profile: ProviderProfile, duration_minutes: int) -> int:
    price = Decimal(provider_profile.hourly_rate) * duration_minutes / 60
    return int(price.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def create_booking(seeker, provider_user, start_time, duration_minutes: int, now=None) -> Booking:
    """
    Create a PENDING booking for a free provider slot.

    Raises:
        AuthorizationError: caller is not a seeker.
        ValidationError: bad duration, slot too close to start, provider busy.
    """
    now = now or timezone.now()
    if seeker.role != CustomUser.SEEKER:
        raise AuthorizationError("Only seekers can book consultations.")
    if provider_user.role != CustomUser.PROVIDER:
        raise ValidationError("Selected user is not a provider.")
    profile = ProviderProfile.objects.filter(user=provider_user).first()
    if profile is None:
        raise ValidationError("Provider profile is not set up yet.")
    if not (config.MIN_DURATION_MINUTES <= duration_minutes <= config.MAX_DURATION_MINUTES):
        raise ValidationError(
            f"Duration must be between {config.MIN_DURATION_MINUTES} and {config.MAX_DURATION_MINUTES} minutes."
        )
    if start_time - timedelta(minutes=config.PAYMENT_DEADLINE_MINUTES) <= now:
        raise ValidationError(
            f"Bookings must be made at least {config.PAYMENT_DEADLINE_MINUTES} minutes before the start time."
        )
    end_time = start_time + timedelta(minutes=duration_minutes)

    with transaction.atomic():
        # Serialises concurrent bookings for the same provider.
        CustomUser.objects.select_for_update().filter(pk=provider_user.pk).first()
        overlapping = Booking.objects.filter(
            provider=provider_user,
            status__in=Booking.OPEN_STATUSES,
            start_time__lt=end_time,
            end_time__gt=start_time,
        ).exists()
        if overlapping:
            raise ValidationError("This time slot is no longer available.")
        booking = Booking.objects.create(
            seeker=seeker,
            provider=provider_user,
            start_time=start_time,
            end_time=end_time,
            amount=booking_price(profile, duration_minutes),
            status=Booking.PENDING,
        )
    logger.info("booking_service: created booking=%s seeker=%s provider=%s", booking.pk, seeker.pk, provider_user.pk)
    return booking


def start_payment(booking: Booking, seeker, gateway, now=None) -> dict:
    """
    Open a gateway order for an unpaid booking and move it to PAYMENT_PENDING.

    A booking past its payment deadline is deleted and the call fails. Earlier
    pending orders are cancelled so only the newest attempt stays open.
    """
    now = now or timezone.now()
    if booking.seeker_id != seeker.pk:
        raise AuthorizationError("Only the seeker who made the booking can pay for it.")
    if booking.status not in Booking.UNPAID_STATUSES:
        raise BookingTransitionError("This booking is not awaiting payment.")
    if is_payment_expired(booking, now):
        expire_unpaid_booking(booking, now=now)
        raise ValidationError("Payment deadline has passed. The booking has been released.")

    with transaction.atomic():
        booking = _lock(booking)
        if booking.status not in Booking.UNPAID_STATUSES:
            raise BookingTransitionError("This booking is not awaiting payment.")
        order = gateway.create_order(booking=booking, customer=seeker)
        booking.transactions.filter(type=Transaction.BOOKING_PAYMENT, status=Transaction.PENDING).update(
            status=Transaction.CANCELLED, updated_at=now,
        )
        txn = wallet_service.record_transaction(
            seeker,
            booking.amount,
            Transaction.BOOKING_PAYMENT,
            booking=booking,
            status=Transaction.PENDING,
            gateway_order_id=order["order_id"],
            description=f"Consultation booking {booking.pk}",
        )
        if booking.status == Booking.PENDING:
            transition(booking, Booking.PAYMENT_PENDING)
    return {
        "booking_id": booking.pk,
        "transaction_id": txn.pk,
        "order_id": order["order_id"],
        "payment_session_id": order.get("payment_session_id", ""),
        "payment_url": order.get("payment_url", ""),
        "payment_deadline": payment_deadline(booking).isoformat(),
    }


def confirm_booking(booking: Booking, now=None) -> Booking:
    """Paid booking -> CONFIRMED with a meeting link and a session. No-op if already confirmed."""
    now = now or timezone.now()
    with transaction.atomic():
        booking = _lock(booking)
        if booking.status == Booking.CONFIRMED:
            logger.info("booking_service: booking=%s already confirmed", booking.pk)
            return booking
        if not booking.meet_url:
            booking.meet_url = f"{config.MEET_URL_PREFIX}{get_random_string(10).lower()}"
        transition(booking, Booking.CONFIRMED, extra_fields=("meet_url",))
        Session.objects.get_or_create(
            booking=booking,
            defaults={"chat_expires_at": booking.end_time + timedelta(hours=config.CHAT_WINDOW_HOURS)},
        )
        emit_on_commit(booking_confirmed, sender=Booking, booking=booking)
    return booking


@transaction.atomic()
def expire_unpaid_booking(booking: Booking, now=None) -> bool:
    """
    Delete an unpaid booking past its payment deadline, with its transactions.
    Returns False (and keeps everything) if the booking is paid, not expired, or gone.
    """
    now = now or timezone.now()
    booking = Booking.objects.select_for_update().filter(pk=booking.pk).first()
    if booking is None or booking.status not in Booking.UNPAID_STATUSES:
        return False
    if not is_payment_expired(booking, now):
        return False
    if booking.transactions.filter(type=Transaction.BOOKING_PAYMENT, status=Transaction.COMPLETED).exists():
        logger.warning("booking_service: unpaid booking=%s has a completed payment, not expiring", booking.pk)
        return False
    booking_id = booking.pk
    booking.transactions.all().delete()
    booking.delete()
    logger.info("booking_service: expired unpaid booking=%s", booking_id)
    return True


def expire_unpaid_bookings(now=None) -> int:
    now = now or timezone.now()
    cutoff = now + timedelta(minutes=config.PAYMENT_DEADLINE_MINUTES)
    expired = 0
    for booking in Booking.objects.filter(status__in=Booking.UNPAID_STATUSES, start_time__lte=cutoff):
        if expire_unpaid_booking(booking, now=now):
            expired += 1
    return expired


# ----- Cancellation -----

def seeker_refund_share(booking: Booking, now) -> Decimal:
    notice = booking.start_time - now
    for hours, share in config.SEEKER_CANCELLATION_REFUND_TIERS:
        if notice > timedelta(hours=hours):
            return share
    return Decimal("0")


def settle_retained_amount(booking: Booking, retained: int, now=None):
    """
    Pay the part of a booking the seeker does not get back to the provider:
    EARNING credited to the provider wallet plus a COMMISSION record.
    Caller holds the booking lock. Returns (earning, commission).
    """
    now = now or timezone.now()
    if retained <= 0:
        return 0, 0
    earning, commission = split_amount(booking.provider, retained)
    if earning > 0:
        wallet_service.credit_wallet(
            booking.provider,
            earning,
            Transaction.EARNING,
            booking=booking,
            description=f"Earning for booking {booking.pk}",
        )
    if commission > 0:
        wallet_service.record_transaction(
            booking.provider,
            commission,
            Transaction.COMMISSION,
            booking=booking,
            status=Transaction.COMPLETED,
            description=f"Platform commission for booking {booking.pk}",
        )
    booking.earnings_released_at = now
    booking.save(update_fields=["earnings_released_at", "updated_at"])
    return earning, commission


def cancel_booking(booking: Booking, actor, reason: str = "", now=None) -> int:
    """
    Cancel an open booking on behalf of the seeker or the provider.

    Provider cancellations refund everything paid. Seeker cancellations refund by
    notice according to config.SEEKER_CANCELLATION_REFUND_TIERS; the rest goes to the
    provider. Returns the refunded amount.
    """
    now = now or timezone.now()
    with transaction.atomic():
        booking = _lock(booking)
        _require_participant(booking, actor)
        if booking.status not in Booking.OPEN_STATUSES:
            raise BookingTransitionError(f"A {booking.get_status_display().lower()} booking cannot be cancelled.")

        paid = wallet_service.refundable_amount(booking)
        share = Decimal("1") if actor.pk == booking.provider_id else seeker_refund_share(booking, now)
        refund = int((Decimal(paid) * share).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

        booking.cancelled_by = actor
        booking.cancellation_reason = reason or ""
        booking.cancelled_at = now
        transition(booking, Booking.CANCELLED, extra_fields=("cancelled_by", "cancellation_reason", "cancelled_at"))
        if refund > 0:
            wallet_service.credit_wallet(
                booking.seeker,
                refund,
                Transaction.REFUND,
                booking=booking,
                description=f"Refund for cancelled booking {booking.pk}",
            )
        settle_retained_amount(booking, paid - refund, now=now)
        booking.transactions.filter(type=Transaction.BOOKING_PAYMENT, status=Transaction.PENDING).update(
            status=Transaction.CANCELLED, updated_at=now,
        )
        emit_on_commit(booking_cancelled, sender=Booking, booking=booking, refund_amount=refund, cancelled_by=actor)
    logger.info("booking_service: booking=%s cancelled by=%s refund=%s", booking.pk, actor.pk, refund)
    return refund


def force_cancel_booking(booking: Booking, refund_to_seeker: bool = True, now=None) -> int:
    """
    Administrative cancellation, no notifications. What was paid goes back to the
    seeker, or to the provider (as earning plus commission) when the seeker is the
    one leaving. Returns the refunded amount.
    """
    now = now or timezone.now()
    with transaction.atomic():
        booking = _lock(booking)
        if booking.status not in Booking.OPEN_STATUSES:
            return 0
        paid = wallet_service.refundable_amount(booking)
        refund = paid if refund_to_seeker else 0
        booking.cancelled_at = now
        booking.cancellation_reason = "Account deleted"
        transition(booking, Booking.CANCELLED, extra_fields=("cancellation_reason", "cancelled_at"))
        if refund > 0:
            wallet_service.credit_wallet(
                booking.seeker,
                refund,
                Transaction.REFUND,
                booking=booking,
                description=f"Refund for booking {booking.pk} (account deleted)",
            )
        elif paid > 0:
            settle_retained_amount(booking, paid, now=now)
    return refund


# ----- Completion, earnings, session and chat -----

def complete_booking(booking: Booking, actor=None, now=None) -> Booking:
    now = now or timezone.now()
    with transaction.atomic():
        booking = _lock(booking)
        if actor is not None:
            _require_participant(booking, actor)
        if booking.status != Booking.CONFIRMED:
            raise BookingTransitionError("Only confirmed bookings can be completed.")
        if now < booking.end_time:
            raise ValidationError("The consultation has not ended yet.")
        booking.completed_at = now
        transition(booking, Booking.COMPLETED, extra_fields=("completed_at",))
        Session.objects.filter(booking=booking, ended_at__isnull=True).update(ended_at=now)
        ProviderProfile.objects.filter(user_id=booking.provider_id).update(total_sessions=F("total_sessions") + 1)
    return booking


def release_earnings(booking: Booking, now=None) -> bool:
    """Credit the provider once the dispute window after completion has closed. Idempotent."""
    now = now or timezone.now()
    with transaction.atomic():
        booking = _lock(booking)
        if booking.status != Booking.COMPLETED or booking.earnings_released_at is not None:
            return False
        if now < booking.completed_at + timedelta(hours=config.EARNINGS_DISPUTE_WINDOW_HOURS):
            return False
        earning, commission = settle_retained_amount(booking, wallet_service.refundable_amount(booking), now=now)
        if booking.earnings_released_at is None:
            # Nothing was paid; mark released so the booking is not picked up again.
            booking.earnings_released_at = now
            booking.save(update_fields=["earnings_released_at", "updated_at"])
    logger.info("booking_service: released earnings booking=%s earning=%s commission=%s", booking.pk, earning, commission)
    return True


def start_session(booking: Booking, user, now=None) -> Session:
    now = now or timezone.now()
    with transaction.atomic():
        booking = _lock(booking)
        _require_participant(booking, user)
        if booking.status != Booking.CONFIRMED:
            raise BookingTransitionError("Only confirmed bookings can be started.")
        session, _ = Session.objects.select_for_update().get_or_create(
            booking=booking,
            defaults={"chat_expires_at": booking.end_time + timedelta(hours=config.CHAT_WINDOW_HOURS)},
        )
        if session.started_at is None:
            session.started_at = now
            session.save(update_fields=["started_at"])
    return session


def _chat_session(booking: Booking, user) -> Session:
    _require_participant(booking, user)
    if booking.status not in (Booking.CONFIRMED, Booking.COMPLETED):
        raise ValidationError("Chat is only available for confirmed or completed bookings.")
    session = Session.objects.filter(booking=booking).first()
    if session is None:
        raise ValidationError("Chat is not available for this booking.")
    return session


def post_message(booking: Booking, sender, body: str, now=None) -> Message:
    now = now or timezone.now()
    session = _chat_session(booking, sender)
    if now >= session.chat_expires_at:
        raise ValidationError("Chat for this booking has closed.")
    body = (body or "").strip()
    if not body:
        raise ValidationError("Message cannot be empty.")
    if len(body) > config.MESSAGE_MAX_LENGTH:
        raise ValidationError(f"Message cannot be longer than {config.MESSAGE_MAX_LENGTH} characters.")
    return Message.objects.create(
        booking=booking,
        sender=sender,
        receiver=booking.other_party(sender),
        body=body,
    )


def list_messages(booking: Booking, user, now=None):
    """Messages of a booking's chat, oldest first; marks those addressed to ``user`` as read."""
    now = now or timezone.now()
    _chat_session(booking, user)
    Message.objects.filter(booking=booking, receiver=user, read_at__isnull=True).update(read_at=now)
    return list(Message.objects.filter(booking=booking).select_related("sender"))
