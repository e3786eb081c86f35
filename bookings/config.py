"""
Booking lifecycle constants. Times are measured against booking.start_time / end_time (UTC).
"""
from decimal import Decimal

# Payment must complete this many minutes before the session starts.
PAYMENT_DEADLINE_MINUTES = 60

# Chat stays open this long after the session ends.
CHAT_WINDOW_HOURS = 24

# Provider earnings are released this long after completion; disputes are accepted until then.
EARNINGS_DISPUTE_WINDOW_HOURS = 24

MIN_DURATION_MINUTES = 30
MAX_DURATION_MINUTES = 120

# Seeker cancellation: (more than N hours of notice, refunded share). Less notice refunds nothing.
SEEKER_CANCELLATION_REFUND_TIERS = (
    (24, Decimal("1")),
    (2, Decimal("0.5")),
)

MEET_URL_PREFIX = "https://meet.google.com/"
MESSAGE_MAX_LENGTH = 2000
