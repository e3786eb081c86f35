"""
Periodic booking processing.

RULES:
1. Unpaid bookings (PENDING / PAYMENT_PENDING) past their payment deadline are deleted
2. Confirmed bookings whose end_time has passed become COMPLETED
3. Completed bookings past the dispute window get their earnings released

Idempotent; safe to run as often as needed. One failing booking does not stop the run.
"""
import logging
from datetime import timedelta

from django.utils import timezone

from bookings import config
from bookings.models import Booking
from bookings.services import booking_service

logger = logging.getLogger(__name__)


def process_due_bookings(now=None) -> dict:
    """
    Returns:
        dict: {
            'bookings_expired': int,
            'bookings_completed': int,
            'earnings_released': int,
            'errors': int,
        }
    """
    now = now or timezone.now()
    result = {"bookings_expired": 0, "bookings_completed": 0, "earnings_released": 0, "errors": 0}

    result["bookings_expired"] = booking_service.expire_unpaid_bookings(now=now)

    for booking in Booking.objects.filter(status=Booking.CONFIRMED, end_time__lte=now):
        try:
            booking_service.complete_booking(booking, now=now)
            result["bookings_completed"] += 1
        except Exception:
            logger.exception("[process_due_bookings] completing booking=%s failed", booking.pk)
            result["errors"] += 1

    release_before = now - timedelta(hours=config.EARNINGS_DISPUTE_WINDOW_HOURS)
    due = Booking.objects.filter(
        status=Booking.COMPLETED,
        earnings_released_at__isnull=True,
        completed_at__lte=release_before,
    )
    for booking in due:
        try:
            if booking_service.release_earnings(booking, now=now):
                result["earnings_released"] += 1
        except Exception:
            logger.exception("[process_due_bookings] releasing earnings booking=%s failed", booking.pk)
            result["errors"] += 1

    logger.info("[process_due_bookings] %s", result)
    return result
