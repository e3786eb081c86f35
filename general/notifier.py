"""
Consumes the domain events in ``general.signals``.

Receivers run after the financial transaction has committed. A failing email
or notification is logged and dropped; it never reaches the caller.
"""
import logging
import uuid

from django.contrib.auth import get_user_model
from django.dispatch import receiver

from general.email_service import EmailService
from general.models import Notification
from general.signals import (
    booking_cancelled,
    booking_confirmed,
    dispute_opened,
    dispute_resolved,
    payout_status_changed,
)

logger = logging.getLogger(__name__)

STAFF_ROLES = ("EMPLOYEE", "SUPER_ADMIN")


def _notify(users, title, description):
    batch_id = uuid.uuid4()
    Notification.objects.bulk_create([
        Notification(user=u, batch_id=batch_id, title=title, description=description)
        for u in users
    ])


@receiver(booking_confirmed)
def notify_booking_confirmed(sender, booking, **kwargs):
    seeker, provider = booking.seeker, booking.provider
    try:
        _notify(
            [seeker, provider],
            "Booking confirmed",
            f"Consultation on {booking.start_time:%Y-%m-%d %H:%M} UTC is confirmed.",
        )
    except Exception as e:
        logger.warning("notifier: booking_confirmed notification failed booking=%s: %s", booking.pk, e)
    for user, counterpart in ((seeker, provider), (provider, seeker)):
        try:
            EmailService.send_booking_confirmation_email(user, booking, counterpart)
        except Exception as e:
            logger.warning("notifier: booking confirmation email failed booking=%s to=%s: %s", booking.pk, user.email, e)


@receiver(booking_cancelled)
def notify_booking_cancelled(sender, booking, refund_amount=0, cancelled_by=None, **kwargs):
    recipients = [u for u in (booking.seeker, booking.provider) if cancelled_by is None or u.pk != cancelled_by.pk]
    try:
        _notify(
            recipients,
            "Booking cancelled",
            f"Consultation on {booking.start_time:%Y-%m-%d %H:%M} UTC was cancelled.",
        )
        for user in recipients:
            EmailService.send_booking_cancelled_email(user, booking, refund_amount, fail_silently=True)
    except Exception as e:
        logger.warning("notifier: booking_cancelled failed booking=%s: %s", booking.pk, e)


@receiver(dispute_opened)
def notify_dispute_opened(sender, dispute, **kwargs):
    booking = dispute.booking
    other_party = booking.provider if dispute.initiated_by_id == booking.seeker_id else booking.seeker
    recipients = [other_party]
    try:
        _notify([other_party], "Dispute opened", f"A dispute was opened for your booking: {dispute.reason}")
    except Exception as e:
        logger.warning("notifier: dispute_opened notification failed dispute=%s: %s", dispute.pk, e)
    try:
        recipients += list(get_user_model().objects.filter(role__in=STAFF_ROLES, is_active=True))
    except Exception as e:
        logger.warning("notifier: dispute_opened staff lookup failed dispute=%s: %s", dispute.pk, e)
    for user in recipients:
        try:
            EmailService.send_dispute_opened_email(user, dispute)
        except Exception as e:
            logger.warning("notifier: dispute_opened email failed dispute=%s to=%s: %s", dispute.pk, user.email, e)


@receiver(dispute_resolved)
def notify_dispute_resolved(sender, dispute, refund_amount=0, **kwargs):
    booking = dispute.booking
    try:
        _notify(
            [booking.seeker, booking.provider],
            "Dispute resolved",
            f"Resolution: {dispute.get_resolution_display()}.",
        )
    except Exception as e:
        logger.warning("notifier: dispute_resolved notification failed dispute=%s: %s", dispute.pk, e)
    for user in (booking.seeker, booking.provider):
        try:
            EmailService.send_dispute_resolved_email(user, dispute, refund_amount)
        except Exception as e:
            logger.warning("notifier: dispute_resolved email failed dispute=%s to=%s: %s", dispute.pk, user.email, e)


@receiver(payout_status_changed)
def notify_payout_status_changed(sender, payout, **kwargs):
    user = payout.provider.user
    try:
        _notify([user], f"Payout {payout.get_status_display().lower()}", f"Payout of ₹{payout.requested_amount}.")
        EmailService.send_payout_status_email(user, payout, fail_silently=True)
    except Exception as e:
        logger.warning("notifier: payout_status_changed failed payout=%s: %s", payout.pk, e)
