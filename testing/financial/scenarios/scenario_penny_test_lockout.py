from decimal import Decimal

from general.errors import ValidationError
from payouts.models import BankAccount
from payouts.services import payout_service
from testing.financial.base import ScenarioGateway, cleanup_scenario_data, ensure_test_users, expect

BANK_DETAILS = {
    "account_holder_name": "Test Provider",
    "account_number": "123456789012",
    "ifsc_code": "HDFC0001234",
    "bank_name": "HDFC Bank",
}


def run():
    print("Running: scenario_penny_test_lockout")
    cleanup_scenario_data("scenario_penny_test_lockout")
    provider, _, _ = ensure_test_users()
    account = payout_service.add_bank_account(provider, BANK_DETAILS, ScenarioGateway(penny_amount=Decimal("4.27")))

    for _ in range(3):
        try:
            payout_service.verify_penny_test(provider, "1.00")
        except ValidationError:
            pass
        else:
            raise Exception("Expected a wrong penny amount to be refused.")
    account.refresh_from_db()
    expect(account.verification_status == BankAccount.REJECTED, "Expected the account to be rejected.")
    try:
        payout_service.verify_penny_test(provider, "4.27")
    except ValidationError:
        pass
    else:
        raise Exception("Expected a fourth attempt to be refused outright.")
    account.refresh_from_db()
    expect(account.penny_test_attempts == 3, "The refused attempt must not be counted.")
    print("✓ Passed")
