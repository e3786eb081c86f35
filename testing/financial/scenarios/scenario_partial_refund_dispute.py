from billing.models import Transaction
from billing.services.wallet_service import booking_ledger, get_wallet
from bookings.models import Booking
from disputes.models import Dispute
from disputes.services import dispute_service
from testing.financial.base import cleanup_scenario_data, create_paid_confirmed_booking, ensure_test_users, expect


def run():
    print("Running: scenario_partial_refund_dispute")
    cleanup_scenario_data("scenario_partial_refund_dispute")
    provider, seeker, staff = ensure_test_users()
    booking = create_paid_confirmed_booking()
    expect(booking.amount == 2700, f"Expected a 2700 booking, got {booking.amount}.")

    dispute = dispute_service.open_dispute(booking, seeker, "Provider left early")
    refund = dispute_service.resolve_dispute(dispute, staff, Dispute.PARTIAL_REFUND, amount=1000)
    booking.refresh_from_db()

    refunds = booking.transactions.filter(type=Transaction.REFUND)
    expect(refund == 1000 and refunds.count() == 1 and refunds.get().amount == 1000, "Expected one 1000 refund.")
    expect(get_wallet(seeker).balance == 1000, "Expected the seeker wallet to hold 1000.")
    expect(booking.status == Booking.RESOLVED, "Expected the booking to be resolved.")
    ledger = booking_ledger(booking)
    expect(ledger["earnings"] + ledger["commission"] == 1700, f"Expected the provider side to retain 1700, got {ledger}.")
    print("✓ Passed")
