from billing.models import Transaction
from billing.services.wallet_service import credit_wallet, get_wallet
from general.errors import ValidationError
from payouts.models import Payout
from payouts.services import payout_service
from testing.financial.base import ScenarioGateway, cleanup_scenario_data, ensure_test_users, expect
from testing.financial.scenarios.scenario_penny_test_lockout import BANK_DETAILS


def run():
    print("Running: scenario_payout_over_balance")
    cleanup_scenario_data("scenario_payout_over_balance")
    provider, _, staff = ensure_test_users()
    gateway = ScenarioGateway()
    payout_service.add_bank_account(provider, BANK_DETAILS, gateway)
    payout_service.verify_penny_test(provider, gateway.penny_amount)
    credit_wallet(provider, 2500, Transaction.EARNING, description="Scenario earning")

    first = payout_service.request_payout(provider, 2000)
    payout_service.reject_payout(first, staff, "Scenario rejection")
    payout_service.request_payout(provider, 1200)
    wallet = get_wallet(provider)
    expect(wallet.balance == 1300 and wallet.pending_amount == 1200, f"Unexpected wallet {wallet}.")

    # Close the open request so only the balance rule decides; 1300 available, 1200 pending.
    Payout.objects.filter(provider__user=provider, status=Payout.REQUESTED).update(status=Payout.COMPLETED)
    try:
        payout_service.request_payout(provider, 2000)
    except ValidationError:
        pass
    else:
        raise Exception("Expected a payout above the available balance to be refused.")
    print("✓ Passed")
