"""
Dispute lifecycle: open, discuss, resolve.

Resolution moves money (refund to the seeker, remainder to the provider), closes the
booking and writes the audit record in a single database transaction. Amounts are
validated before anything is written.
"""
import logging
from datetime import timedelta

from django.db import transaction
from django.utils import timezone

from billing.models import Transaction
from billing.services import wallet_service
from bookings import config as booking_config
from bookings.models import Booking
from bookings.services import booking_service
from disputes.models import Dispute, DisputeCommunication, DisputeResolutionRecord
from general.errors import AuthorizationError, ConsistencyViolation, NotFoundError, ValidationError
from general.signals import dispute_opened, dispute_resolved, emit_on_commit

logger = logging.getLogger(__name__)

PRIORITIES = ("low", "medium", "high")


def get_dispute_for(user, dispute_id) -> Dispute:
    dispute = Dispute.objects.select_related("booking", "booking__seeker", "booking__provider").filter(pk=dispute_id).first()
    if dispute is None:
        raise NotFoundError("Dispute not found")
    if not dispute.booking.is_participant(user) and not user.is_marketplace_staff:
        raise AuthorizationError("Access denied")
    return dispute


def _is_disputable(booking: Booking, now) -> bool:
    if booking.status == Booking.CONFIRMED:
        return True
    if booking.status == Booking.COMPLETED and booking.earnings_released_at is None:
        window_end = booking.completed_at + timedelta(hours=booking_config.EARNINGS_DISPUTE_WINDOW_HOURS)
        return now < window_end
    return False


def open_dispute(booking: Booking, initiator, reason: str, description: str = "", priority: str = "medium", now=None) -> Dispute:
    """
    Raise a dispute on a confirmed booking, or a completed one whose earnings are
    still held. The booking moves to DISPUTED; the other party and staff are notified.
    """
    now = now or timezone.now()
    if priority not in PRIORITIES:
        raise ValidationError("Priority must be one of low, medium, high.")
    if not (reason or "").strip():
        raise ValidationError("A reason is required.")
    with transaction.atomic():
        booking = Booking.objects.select_for_update().get(pk=booking.pk)
        if not booking.is_participant(initiator):
            raise AuthorizationError("You can only create disputes for your own bookings")
        if Dispute.objects.filter(booking=booking).exists():
            raise ValidationError("Dispute already exists for this booking")
        if not _is_disputable(booking, now):
            raise ValidationError("This booking can no longer be disputed.")
        dispute = Dispute.objects.create(
            booking=booking,
            initiated_by=initiator,
            reason=reason.strip(),
            description=description or "",
            priority=priority,
            status=Dispute.OPEN,
        )
        booking_service.transition(booking, Booking.DISPUTED)
        emit_on_commit(dispute_opened, sender=Dispute, dispute=dispute)
    logger.info("dispute_service: opened dispute=%s booking=%s by=%s", dispute.pk, booking.pk, initiator.pk)
    return dispute


def list_open_disputes():
    return (
        Dispute.objects.filter(status__in=Dispute.OPEN_STATUSES)
        .select_related("booking", "initiated_by", "assigned_to")
        .order_by("-created_at")
    )


def add_communication(dispute: Dispute, from_user, message: str, to_user=None, is_internal: bool = False) -> DisputeCommunication:
    """
    Post a message on a dispute. Participants write to the other party by default;
    staff replies move an OPEN dispute to UNDER_REVIEW and assign it to the writer.
    """
    message = (message or "").strip()
    if not message:
        raise ValidationError("Message cannot be empty.")
    booking = dispute.booking
    is_staff = from_user.is_marketplace_staff
    if not is_staff and not booking.is_participant(from_user):
        raise AuthorizationError("Access denied")
    if is_internal and not is_staff:
        raise AuthorizationError("Only staff can add internal notes.")
    if to_user is not None and not booking.is_participant(to_user) and not to_user.is_marketplace_staff:
        raise ValidationError("Recipient is not part of this dispute.")

    with transaction.atomic():
        dispute = Dispute.objects.select_for_update().get(pk=dispute.pk)
        if dispute.status == Dispute.RESOLVED:
            raise ValidationError("Dispute is already resolved")
        if to_user is None and not is_internal and not is_staff:
            to_user = booking.other_party(from_user)
        communication = DisputeCommunication.objects.create(
            dispute=dispute,
            from_user=from_user,
            to_user=None if is_internal else to_user,
            message=message,
            is_internal=is_internal,
        )
        if is_staff and dispute.status == Dispute.OPEN:
            dispute.status = Dispute.UNDER_REVIEW
            if dispute.assigned_to_id is None:
                dispute.assigned_to = from_user
            dispute.save(update_fields=["status", "assigned_to", "updated_at"])
    return communication


def list_communications(dispute: Dispute, user):
    messages = DisputeCommunication.objects.filter(dispute=dispute).select_related("from_user")
    if not user.is_marketplace_staff:
        messages = messages.filter(is_internal=False)
    return list(messages)


def resolve_dispute(dispute: Dispute, resolver, resolution: str, amount: int = None, notes: str = "", now=None) -> int:
    """
    Resolve a dispute once. Returns the amount refunded to the seeker.

    REFUND_SEEKER refunds everything still refundable, PARTIAL_REFUND refunds ``amount``
    and FAVOR_PROVIDER refunds nothing. Whatever the seeker does not get back is paid
    to the provider as earning plus platform commission.
    """
    now = now or timezone.now()
    if not resolver.is_marketplace_staff:
        raise AuthorizationError("Only staff can resolve disputes.")
    if resolution not in dict(Dispute.RESOLUTION_CHOICES):
        raise ValidationError("Unknown resolution.")

    with transaction.atomic():
        dispute = Dispute.objects.select_for_update().get(pk=dispute.pk)
        booking = Booking.objects.select_for_update().get(pk=dispute.booking_id)
        if dispute.status == Dispute.RESOLVED:
            raise ValidationError("Dispute is already resolved")
        if booking.status != Booking.DISPUTED:
            raise ValidationError("Booking is not in a disputed state.")

        refundable = wallet_service.refundable_amount(booking)
        if resolution == Dispute.REFUND_SEEKER:
            refund = refundable
        elif resolution == Dispute.PARTIAL_REFUND:
            if amount is None or amount <= 0:
                raise ValidationError("A positive amount is required for a partial refund.")
            if amount > booking.amount:
                raise ConsistencyViolation("Refund amount cannot exceed the booking amount.")
            if amount > refundable:
                raise ConsistencyViolation(f"Refund amount cannot exceed the amount paid ({refundable}).")
            refund = amount
        else:
            refund = 0

        if refund > 0:
            wallet_service.credit_wallet(
                booking.seeker,
                refund,
                Transaction.REFUND,
                booking=booking,
                description=f"Dispute {dispute.pk} refund",
            )
        if booking.earnings_released_at is None:
            booking_service.settle_retained_amount(booking, refundable - refund, now=now)
        booking_service.transition(booking, Booking.RESOLVED)

        dispute.status = Dispute.RESOLVED
        dispute.resolution = resolution
        dispute.refund_amount = refund
        dispute.resolved_by = resolver
        dispute.resolution_notes = notes or ""
        dispute.resolved_at = now
        dispute.save(update_fields=[
            "status", "resolution", "refund_amount", "resolved_by", "resolution_notes", "resolved_at", "updated_at",
        ])
        DisputeResolutionRecord.objects.create(
            dispute=dispute,
            resolved_by=resolver,
            resolution=resolution,
            amount=refund,
            notes=notes or "",
        )
        emit_on_commit(dispute_resolved, sender=Dispute, dispute=dispute, refund_amount=refund)
    logger.info("dispute_service: resolved dispute=%s %s refund=%s by=%s", dispute.pk, resolution, refund, resolver.pk)
    return refund
