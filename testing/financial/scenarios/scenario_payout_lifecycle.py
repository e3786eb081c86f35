from billing.models import Transaction
from billing.services.wallet_service import credit_wallet, get_wallet
from general.errors import ValidationError
from payouts.models import Payout
from payouts.services import payout_service
from testing.financial.base import ScenarioGateway, cleanup_scenario_data, ensure_test_users, expect
from testing.financial.scenarios.scenario_penny_test_lockout import BANK_DETAILS


def run():
    print("Running: scenario_payout_lifecycle")
    cleanup_scenario_data("scenario_payout_lifecycle")
    provider, _, staff = ensure_test_users()
    gateway = ScenarioGateway()
    payout_service.add_bank_account(provider, BANK_DETAILS, gateway)
    payout_service.verify_penny_test(provider, gateway.penny_amount)
    credit_wallet(provider, 3000, Transaction.EARNING, description="Scenario earning")

    payout = payout_service.request_payout(provider, 2000)
    wallet = get_wallet(provider)
    expect(wallet.balance == 1000 and wallet.pending_amount == 2000, "Expected 2000 to be held.")

    # One open payout per provider.
    try:
        payout_service.request_payout(provider, 1500)
    except ValidationError:
        pass
    else:
        raise Exception("Expected a second payout request to be refused.")

    payout = payout_service.approve_payout(payout, staff, transaction_fee=10)
    payout = payout_service.dispatch_payout(payout, gateway)
    expect(payout.status == Payout.PROCESSING, f"Expected PROCESSING, got {payout.status}.")
    payout = payout_service.complete_payout(payout, actor=staff)
    wallet = get_wallet(provider)
    expect(payout.status == Payout.COMPLETED, "Expected the payout to complete.")
    expect(wallet.balance == 1000 and wallet.pending_amount == 0, "Expected the hold to be settled.")
    expect(payout.logs.count() == 4, "Expected one log row per transition.")
    print("✓ Passed")
