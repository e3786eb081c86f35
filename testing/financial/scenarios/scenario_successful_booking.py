from decimal import Decimal

from billing.models import Transaction
from billing.services.payment_webhook_service import handle_event
from billing.webhook_events import PaymentSucceeded
from bookings.models import Booking
from testing.financial.base import cleanup_scenario_data, create_paid_confirmed_booking, expect


def run():
    print("Running: scenario_successful_booking")
    cleanup_scenario_data("scenario_successful_booking")
    booking = create_paid_confirmed_booking()
    expect(booking.status == Booking.CONFIRMED, "Expected booking to be confirmed.")
    expect(booking.meet_url, "Expected a meeting link.")
    meet_url = booking.meet_url

    payment = booking.transactions.get(type=Transaction.BOOKING_PAYMENT)
    outcome = handle_event(PaymentSucceeded(order_id=payment.gateway_order_id, payment_id="dup", amount=Decimal(booking.amount)))
    booking.refresh_from_db()
    expect(outcome == "ignored", f"Expected duplicate webhook to be ignored, got {outcome}.")
    expect(booking.meet_url == meet_url, "Duplicate webhook must not change the meeting link.")
    expect(booking.transactions.filter(status=Transaction.COMPLETED).count() == 1, "Expected one completed payment.")
    print("✓ Passed")
