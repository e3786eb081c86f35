"""
Factories shared by the app test suites.
"""
from datetime import timedelta
from itertools import count

from django.utils import timezone

from accounts.models import CustomUser, Profile, ProviderProfile
from billing.models import Transaction
from bookings.models import Booking
from bookings.services import booking_service

_seq = count(1)


def make_user(role=CustomUser.SEEKER, email=None, **extra):
    email = email or f"{role.lower()}{next(_seq)}@example.com"
    user = CustomUser.objects.create_user(email=email, password="pass12345", role=role, **extra)
    Profile.objects.create(user=user, first_name=role.title())
    return user


def make_provider(hourly_rate=2700, commission_rate=None, email=None):
    user = make_user(CustomUser.PROVIDER, email=email)
    ProviderProfile.objects.create(user=user, hourly_rate=hourly_rate, commission_rate=commission_rate)
    return user


class StubGateway:
    """Records create_order calls and hands out sequential order ids."""

    def __init__(self):
        self.calls = []

    def create_order(self, *, booking, customer):
        self.calls.append(booking.pk)
        order_id = f"ORDER_{booking.pk}_{next(_seq)}"
        return {"order_id": order_id, "payment_session_id": f"sess_{order_id}", "payment_url": "https://pay.test/"}


def make_booking(seeker, provider, start=None, duration_minutes=60, status=Booking.PENDING, amount=None):
    start = start or timezone.now() + timedelta(days=2)
    return Booking.objects.create(
        seeker=seeker,
        provider=provider,
        start_time=start,
        end_time=start + timedelta(minutes=duration_minutes),
        amount=amount if amount is not None else provider.provider_profile.hourly_rate * duration_minutes // 60,
        status=status,
    )


def make_paid_booking(seeker, provider, start=None, duration_minutes=60, now=None):
    """A CONFIRMED booking with a completed BOOKING_PAYMENT for its full amount."""
    booking = make_booking(seeker, provider, start=start, duration_minutes=duration_minutes, status=Booking.PAYMENT_PENDING)
    Transaction.objects.create(
        user=seeker,
        booking=booking,
        amount=booking.amount,
        type=Transaction.BOOKING_PAYMENT,
        status=Transaction.COMPLETED,
        gateway_order_id=f"ORDER_PAID_{booking.pk}",
        gateway_payment_id=f"cf_{booking.pk}",
    )
    return booking_service.confirm_booking(booking, now=now)
