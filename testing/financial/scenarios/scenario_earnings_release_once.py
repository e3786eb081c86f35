from datetime import timedelta

from django.utils import timezone

from billing.services.wallet_service import get_wallet
from bookings.services import booking_service
from testing.financial.base import cleanup_scenario_data, create_paid_confirmed_booking, ensure_test_users, expect


def run():
    print("Running: scenario_earnings_release_once")
    cleanup_scenario_data("scenario_earnings_release_once")
    provider, _, _ = ensure_test_users()
    booking = create_paid_confirmed_booking(hours_from_now=-72)
    booking_service.complete_booking(booking, now=booking.end_time)
    later = timezone.now() + timedelta(minutes=1)

    before = get_wallet(provider).balance
    expect(booking_service.release_earnings(booking, now=later), "Expected the first release to credit the provider.")
    once = get_wallet(provider).balance
    expect(not booking_service.release_earnings(booking, now=later), "Expected the second release to be a no-op.")
    twice = get_wallet(provider).balance
    expect(once > before, "Expected the provider wallet to grow.")
    expect(twice == once, "Expected no second credit.")
    print("✓ Passed")
