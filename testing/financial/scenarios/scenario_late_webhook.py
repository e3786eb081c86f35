from datetime import timedelta
from decimal import Decimal

from django.utils import timezone

from billing.models import Transaction
from billing.services.payment_webhook_service import handle_event
from billing.webhook_events import PaymentSucceeded
from bookings.models import Booking
from bookings.services import booking_service
from testing.financial.base import ScenarioGateway, cleanup_scenario_data, ensure_test_users, expect


def run():
    print("Running: scenario_late_webhook")
    cleanup_scenario_data("scenario_late_webhook")
    provider, seeker, _ = ensure_test_users()
    now = timezone.now()
    start = now + timedelta(minutes=50)
    booked_at = now - timedelta(hours=3)
    booking = booking_service.create_booking(seeker, provider, start, 60, now=booked_at)
    payment = booking_service.start_payment(booking, seeker, ScenarioGateway(), now=booked_at)

    outcome = handle_event(PaymentSucceeded(order_id=payment["order_id"], payment_id="late", amount=Decimal(booking.amount)), now=now)
    expect(outcome == "expired", f"Expected late payment to expire the booking, got {outcome}.")
    expect(not Booking.objects.filter(pk=booking.pk).exists(), "Expected the booking to be deleted.")
    expect(not Transaction.objects.filter(gateway_order_id=payment["order_id"]).exists(), "Expected the transaction to be deleted.")
    print("✓ Passed")
