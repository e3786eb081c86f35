from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.utils import timezone

from accounts.models import CustomUser, Profile, ProviderProfile
from accounts.services.account_deletion import CLEANUP_STEPS
from billing.services.payment_webhook_service import handle_event
from billing.webhook_events import PaymentSucceeded
from bookings.services import booking_service

SCENARIO_TAG_PREFIX = "[financial_scenario]"
PROVIDER_EMAIL = "test_provider@local.test"
SEEKER_EMAIL = "test_seeker@local.test"
STAFF_EMAIL = "test_staff@local.test"
PROVIDER_HOURLY_RATE = 2700


class ScenarioGateway:
    """In-process stand-in for the Cashfree order and payout APIs; records what it was asked to do."""

    def __init__(self, penny_amount=Decimal("4.27"), fail_transfers=False):
        self.penny_amount = penny_amount
        self.fail_transfers = fail_transfers
        self.orders = []
        self.transfers = []

    def create_order(self, *, booking, customer):
        order_id = f"SCENARIO_{booking.pk}_{len(self.orders) + 1}"
        self.orders.append(order_id)
        return {"order_id": order_id, "payment_session_id": f"session_{order_id}", "payment_url": ""}

    def send_penny_test(self, bank_account):
        return {"transfer_id": f"penny_{bank_account.pk}", "penny_amount": self.penny_amount, "reference_id": "SCENARIO", "status": "SUCCESS"}

    def request_transfer(self, payout):
        from payouts.gateways.cashfree_payouts import PayoutGatewayError

        if self.fail_transfers:
            raise PayoutGatewayError("Scenario transfer failure")
        self.transfers.append(payout.pk)
        return {"transfer_id": f"payout_{payout.pk}", "reference_id": "SCENARIO", "status": "PENDING", "response": {}}


def assert_scenarios_enabled():
    if not settings.ALLOW_TEST_SCENARIOS:
        raise Exception("Test scenarios disabled in this environment.")


def _user(email, role):
    user, _ = CustomUser.objects.get_or_create(
        email=email,
        defaults={"role": role, "is_email_verified": True, "is_active": True},
    )
    return user


def ensure_test_users():
    """Returns (provider, seeker, staff) with empty wallets."""
    provider = _user(PROVIDER_EMAIL, CustomUser.PROVIDER)
    seeker = _user(SEEKER_EMAIL, CustomUser.SEEKER)
    staff = _user(STAFF_EMAIL, CustomUser.EMPLOYEE)
    Profile.objects.get_or_create(user=provider, defaults={"first_name": "Test", "last_name": "Provider"})
    Profile.objects.get_or_create(user=seeker, defaults={"first_name": "Test", "last_name": "Seeker"})
    ProviderProfile.objects.get_or_create(user=provider, defaults={"hourly_rate": PROVIDER_HOURLY_RATE})
    return provider, seeker, staff


def cleanup_scenario_data(scenario_name):
    """Remove the scenario users and everything attached to them."""
    print(f"{SCENARIO_TAG_PREFIX}:{scenario_name} cleaning up")
    for user in CustomUser.objects.filter(email__in=[PROVIDER_EMAIL, SEEKER_EMAIL, STAFF_EMAIL]):
        for _, step in CLEANUP_STEPS:
            step(user)


def create_paid_confirmed_booking(*, hours_from_now=48, duration_minutes=60, gateway=None):
    """
    Book, pay through the webhook handler and confirm. A negative ``hours_from_now``
    places the booking in the past; it is created and paid two days before its start.
    """
    provider, seeker, _ = ensure_test_users()
    gateway = gateway or ScenarioGateway()
    start = timezone.now() + timedelta(hours=hours_from_now)
    booked_at = min(timezone.now(), start - timedelta(days=2))
    booking = booking_service.create_booking(seeker, provider, start, duration_minutes, now=booked_at)
    payment = booking_service.start_payment(booking, seeker, gateway, now=booked_at)
    outcome = handle_event(
        PaymentSucceeded(order_id=payment["order_id"], payment_id=f"cf_{payment['order_id']}", amount=Decimal(booking.amount)),
        now=booked_at,
    )
    if outcome != "confirmed":
        raise Exception(f"Expected payment webhook to confirm the booking, got {outcome}")
    booking.refresh_from_db()
    return booking


def expect(condition, message):
    if not condition:
        raise Exception(message)
