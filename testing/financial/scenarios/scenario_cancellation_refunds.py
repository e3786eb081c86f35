from billing.models import Transaction
from billing.services.wallet_service import booking_ledger, get_wallet
from bookings.services import booking_service
from testing.financial.base import cleanup_scenario_data, create_paid_confirmed_booking, ensure_test_users, expect


def run():
    print("Running: scenario_cancellation_refunds")
    cleanup_scenario_data("scenario_cancellation_refunds")
    provider, seeker, _ = ensure_test_users()

    early = create_paid_confirmed_booking(hours_from_now=72)
    refund = booking_service.cancel_booking(early, seeker, reason="Plans changed")
    expect(refund == early.amount, f"Expected a full refund, got {refund}.")

    late = create_paid_confirmed_booking(hours_from_now=10)
    refund = booking_service.cancel_booking(late, seeker, reason="Running late")
    expect(refund == late.amount // 2, f"Expected a half refund, got {refund}.")
    ledger = booking_ledger(late)
    expect(ledger["net_liability"] == 0, f"Expected the cancelled booking to be settled, got {ledger}.")

    expect(get_wallet(seeker).balance == early.amount + late.amount // 2, "Unexpected seeker wallet balance.")
    expect(
        provider.transactions.filter(type=Transaction.EARNING, booking=late).exists(),
        "Expected the provider to earn the retained half.",
    )
    print("✓ Passed")
