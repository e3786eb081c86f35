from testing.financial.base import assert_scenarios_enabled
from testing.financial.scenarios import (
    scenario_cancellation_refunds,
    scenario_earnings_release_once,
    scenario_late_webhook,
    scenario_partial_refund_dispute,
    scenario_payout_lifecycle,
    scenario_payout_over_balance,
    scenario_penny_test_lockout,
    scenario_successful_booking,
)

AVAILABLE_SCENARIOS = {
    "booking": scenario_successful_booking,
    "late_webhook": scenario_late_webhook,
    "cancellation": scenario_cancellation_refunds,
    "partial_refund": scenario_partial_refund_dispute,
    "earnings_release": scenario_earnings_release_once,
    "penny_lockout": scenario_penny_test_lockout,
    "payout_lifecycle": scenario_payout_lifecycle,
    "payout_over_balance": scenario_payout_over_balance,
}


def run_scenario(name):
    assert_scenarios_enabled()
    if name not in AVAILABLE_SCENARIOS:
        raise Exception(f"Unknown scenario '{name}'. Available: {', '.join(AVAILABLE_SCENARIOS.keys())}")
    AVAILABLE_SCENARIOS[name].run()


def run_all():
    assert_scenarios_enabled()
    for _, scenario in AVAILABLE_SCENARIOS.items():
        scenario.run()
