from datetime import timedelta
from unittest.mock import patch

from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from accounts.models import CustomUser, ProviderProfile
from billing.models import Transaction
from billing.services import wallet_service
from bookings.models import Booking, Message
from bookings.services import booking_service
from bookings.services.booking_service import BookingTransitionError
from bookings.services.scheduled import process_due_bookings
from general.errors import AuthorizationError, ValidationError
from general.test_utils import StubGateway, make_booking, make_paid_booking, make_provider, make_user


class CreateBookingTests(TestCase):
    def setUp(self):
        self.seeker = make_user()
        self.provider = make_provider(hourly_rate=2700)
        self.now = timezone.now()
        self.start = self.now + timedelta(days=2)

    def test_price_follows_hourly_rate(self):
        booking = booking_service.create_booking(self.seeker, self.provider, self.start, 90, now=self.now)
        self.assertEqual(booking.status, Booking.PENDING)
        self.assertEqual(booking.amount, 4050)
        self.assertEqual(booking.end_time - booking.start_time, timedelta(minutes=90))

    def test_only_seekers_book(self):
        with self.assertRaises(AuthorizationError):
            booking_service.create_booking(self.provider, self.provider, self.start, 60, now=self.now)

    def test_duration_limits(self):
        with self.assertRaises(ValidationError):
            booking_service.create_booking(self.seeker, self.provider, self.start, 15, now=self.now)
        with self.assertRaises(ValidationError):
            booking_service.create_booking(self.seeker, self.provider, self.start, 180, now=self.now)

    def test_slot_must_leave_time_to_pay(self):
        with self.assertRaises(ValidationError):
            booking_service.create_booking(self.seeker, self.provider, self.now + timedelta(minutes=60), 60, now=self.now)

    def test_overlapping_booking_is_refused(self):
        booking_service.create_booking(self.seeker, self.provider, self.start, 60, now=self.now)
        with self.assertRaises(ValidationError):
            booking_service.create_booking(make_user(), self.provider, self.start + timedelta(minutes=30), 60, now=self.now)
        # Back-to-back is fine.
        booking_service.create_booking(make_user(), self.provider, self.start + timedelta(minutes=60), 60, now=self.now)


class TransitionTests(TestCase):
    def setUp(self):
        self.booking = make_booking(make_user(), make_provider())

    def test_allowed_edge(self):
        booking_service.transition(self.booking, Booking.PAYMENT_PENDING)
        self.assertEqual(Booking.objects.get(pk=self.booking.pk).status, Booking.PAYMENT_PENDING)

    def test_illegal_edges_are_refused(self):
        booking_service.transition(self.booking, Booking.CANCELLED)
        for target in (Booking.CONFIRMED, Booking.PENDING, Booking.COMPLETED, Booking.DISPUTED):
            with self.assertRaises(BookingTransitionError):
                booking_service.transition(self.booking, target)
        self.assertEqual(Booking.objects.get(pk=self.booking.pk).status, Booking.CANCELLED)

    def test_completed_cannot_be_cancelled(self):
        self.booking.status = Booking.COMPLETED
        with self.assertRaises(BookingTransitionError):
            booking_service.transition(self.booking, Booking.CANCELLED)


class StartPaymentTests(TestCase):
    def setUp(self):
        self.seeker = make_user()
        self.provider = make_provider()
        self.now = timezone.now()
        self.booking = booking_service.create_booking(self.seeker, self.provider, self.now + timedelta(hours=5), 60, now=self.now)
        self.gateway = StubGateway()

    def test_opens_order_and_moves_to_payment_pending(self):
        payment = booking_service.start_payment(self.booking, self.seeker, self.gateway, now=self.now)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.PAYMENT_PENDING)
        txn = Transaction.objects.get(gateway_order_id=payment["order_id"])
        self.assertEqual((txn.type, txn.status, txn.amount), (Transaction.BOOKING_PAYMENT, Transaction.PENDING, 2700))

    def test_retry_cancels_previous_order(self):
        first = booking_service.start_payment(self.booking, self.seeker, self.gateway, now=self.now)
        second = booking_service.start_payment(self.booking, self.seeker, self.gateway, now=self.now)
        self.assertEqual(Transaction.objects.get(gateway_order_id=first["order_id"]).status, Transaction.CANCELLED)
        self.assertEqual(Transaction.objects.get(gateway_order_id=second["order_id"]).status, Transaction.PENDING)

    def test_only_the_seeker_pays(self):
        with self.assertRaises(AuthorizationError):
            booking_service.start_payment(self.booking, make_user(), self.gateway, now=self.now)

    def test_past_deadline_releases_booking(self):
        with self.assertRaises(ValidationError):
            booking_service.start_payment(self.booking, self.seeker, self.gateway, now=self.now + timedelta(hours=4))
        self.assertFalse(Booking.objects.filter(pk=self.booking.pk).exists())
        self.assertEqual(self.gateway.calls, [])


class CancelBookingTests(TestCase):
    def setUp(self):
        self.seeker = make_user()
        self.provider = make_provider()
        self.now = timezone.now()

    def _paid(self, hours_ahead):
        return make_paid_booking(self.seeker, self.provider, start=self.now + timedelta(hours=hours_ahead), now=self.now)

    def test_provider_cancellation_refunds_everything(self):
        booking = self._paid(3)
        refund = booking_service.cancel_booking(booking, self.provider, reason="Sick", now=self.now)
        self.assertEqual(refund, 2700)
        self.assertEqual(wallet_service.get_wallet(self.seeker).balance, 2700)
        self.assertEqual(wallet_service.get_wallet(self.provider).balance, 0)

    def test_seeker_refund_tiers(self):
        self.assertEqual(booking_service.cancel_booking(self._paid(48), self.seeker, now=self.now), 2700)
        self.assertEqual(booking_service.cancel_booking(self._paid(10), self.seeker, now=self.now), 1350)
        self.assertEqual(booking_service.cancel_booking(self._paid(1.5), self.seeker, now=self.now), 0)

    def test_retained_part_is_split_between_provider_and_platform(self):
        booking = self._paid(10)
        booking_service.cancel_booking(booking, self.seeker, now=self.now)
        ledger = wallet_service.booking_ledger(booking)
        self.assertEqual(ledger["refunds"], 1350)
        self.assertEqual(ledger["earnings"] + ledger["commission"], 1350)
        self.assertEqual(ledger["net_liability"], 0)
        self.assertEqual(wallet_service.get_wallet(self.provider).balance, ledger["earnings"])
        booking.refresh_from_db()
        self.assertEqual(booking.status, Booking.CANCELLED)
        self.assertEqual(booking.cancelled_by, self.seeker)

    def test_unpaid_booking_cancels_without_money(self):
        booking = make_booking(self.seeker, self.provider)
        self.assertEqual(booking_service.cancel_booking(booking, self.seeker, now=self.now), 0)
        self.assertFalse(Transaction.objects.filter(booking=booking, status=Transaction.COMPLETED).exists())

    def test_outsider_and_second_cancel_are_refused(self):
        booking = self._paid(48)
        with self.assertRaises(AuthorizationError):
            booking_service.cancel_booking(booking, make_user(), now=self.now)
        booking_service.cancel_booking(booking, self.seeker, now=self.now)
        with self.assertRaises(BookingTransitionError):
            booking_service.cancel_booking(booking, self.seeker, now=self.now)
        self.assertEqual(wallet_service.booking_ledger(booking)["refunds"], 2700)

    def test_force_cancel_refunds_seeker(self):
        booking = self._paid(48)
        self.assertEqual(booking_service.force_cancel_booking(booking, refund_to_seeker=True, now=self.now), 2700)
        self.assertEqual(booking_service.force_cancel_booking(booking, now=self.now), 0)
        self.assertEqual(wallet_service.get_wallet(self.seeker).balance, 2700)


class CompletionAndEarningsTests(TestCase):
    def setUp(self):
        self.seeker = make_user()
        self.provider = make_provider()
        self.now = timezone.now()
        self.booking = make_paid_booking(self.seeker, self.provider, start=self.now - timedelta(hours=2), now=self.now)

    def test_cannot_complete_before_end(self):
        with self.assertRaises(ValidationError):
            booking_service.complete_booking(self.booking, now=self.booking.end_time - timedelta(minutes=1))

    def test_complete_then_release_after_window(self):
        booking = booking_service.complete_booking(self.booking, actor=self.seeker, now=self.now)
        self.assertEqual(booking.status, Booking.COMPLETED)
        self.assertEqual(ProviderProfile.objects.get(user=self.provider).total_sessions, 1)

        self.assertFalse(booking_service.release_earnings(booking, now=self.now + timedelta(hours=23)))
        self.assertTrue(booking_service.release_earnings(booking, now=self.now + timedelta(hours=24)))
        self.assertFalse(booking_service.release_earnings(booking, now=self.now + timedelta(hours=48)))
        self.assertEqual(wallet_service.get_wallet(self.provider).balance, 1350)
        self.assertEqual(wallet_service.booking_ledger(booking)["net_liability"], 0)

    def test_process_due_bookings(self):
        stale = make_booking(self.seeker, self.provider, start=self.now + timedelta(minutes=30))
        released = make_paid_booking(self.seeker, self.provider, start=self.now - timedelta(hours=30), now=self.now)
        booking_service.complete_booking(released, now=self.now - timedelta(hours=25))

        result = process_due_bookings(now=self.now)

        self.assertEqual(result, {"bookings_expired": 1, "bookings_completed": 1, "earnings_released": 1, "errors": 0})
        self.assertFalse(Booking.objects.filter(pk=stale.pk).exists())
        self.assertEqual(Booking.objects.get(pk=self.booking.pk).status, Booking.COMPLETED)
        self.assertIsNotNone(Booking.objects.get(pk=released.pk).earnings_released_at)


class SessionAndChatTests(TestCase):
    def setUp(self):
        self.seeker = make_user()
        self.provider = make_provider()
        self.now = timezone.now()
        self.booking = make_paid_booking(self.seeker, self.provider, start=self.now + timedelta(hours=1), now=self.now)

    def test_start_session_once(self):
        first = booking_service.start_session(self.booking, self.provider, now=self.now)
        second = booking_service.start_session(self.booking, self.seeker, now=self.now + timedelta(minutes=5))
        self.assertEqual(first.started_at, second.started_at)

    def test_messages_go_to_the_other_party_and_are_marked_read(self):
        message = booking_service.post_message(self.booking, self.seeker, "  Hello  ", now=self.now)
        self.assertEqual((message.receiver, message.body), (self.provider, "Hello"))
        messages = booking_service.list_messages(self.booking, self.provider, now=self.now)
        self.assertEqual(len(messages), 1)
        self.assertIsNotNone(Message.objects.get(pk=message.pk).read_at)

    def test_chat_closes_after_window(self):
        with self.assertRaises(ValidationError):
            booking_service.post_message(self.booking, self.seeker, "late", now=self.booking.end_time + timedelta(hours=25))

    def test_unconfirmed_booking_has_no_chat(self):
        pending = make_booking(self.seeker, self.provider, start=self.now + timedelta(days=5))
        with self.assertRaises(ValidationError):
            booking_service.post_message(pending, self.seeker, "hi", now=self.now)


class BookingViewTests(TestCase):
    def setUp(self):
        self.seeker = make_user()
        self.provider = make_provider()

    @patch("bookings.views.CashfreeClient")
    def test_create_booking_starts_payment(self, client_class):
        client_class.return_value = StubGateway()
        self.client.force_login(self.seeker)
        response = self.client.post(
            reverse("bookings:booking_create"),
            data={
                "provider_id": self.provider.pk,
                "start_time": (timezone.now() + timedelta(days=3)).isoformat(),
                "duration_minutes": 60,
            },
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertEqual(data["booking"]["status"], Booking.PAYMENT_PENDING)
        self.assertTrue(data["payment"]["order_id"].startswith("ORDER_"))

    def test_create_requires_seeker_role(self):
        self.client.force_login(self.provider)
        response = self.client.post(reverse("bookings:booking_create"), data={}, content_type="application/json")
        self.assertEqual(response.status_code, 403)

    def test_create_validates_payload(self):
        self.client.force_login(self.seeker)
        response = self.client.post(
            reverse("bookings:booking_create"), data={"provider_id": self.provider.pk}, content_type="application/json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("start_time", response.json()["details"])

    def test_anonymous_is_401(self):
        response = self.client.get(reverse("bookings:booking_list"))
        self.assertEqual(response.status_code, 401)

    def test_detail_access(self):
        booking = make_booking(self.seeker, self.provider)
        self.client.force_login(make_user())
        self.assertEqual(self.client.get(reverse("bookings:booking_detail", args=[booking.pk])).status_code, 403)
        self.assertEqual(self.client.get(reverse("bookings:booking_detail", args=[booking.pk + 100])).status_code, 404)
        self.client.force_login(make_user(CustomUser.EMPLOYEE))
        self.assertEqual(self.client.get(reverse("bookings:booking_detail", args=[booking.pk])).status_code, 200)

    def test_cancel_view_returns_refund(self):
        booking = make_paid_booking(self.seeker, self.provider, start=timezone.now() + timedelta(days=3))
        self.client.force_login(self.seeker)
        response = self.client.post(
            reverse("bookings:booking_cancel", args=[booking.pk]), data={"reason": "Plans changed"}, content_type="application/json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["refund_amount"], 2700)
