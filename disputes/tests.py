from datetime import timedelta
from unittest import mock

from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from accounts.models import CustomUser
from billing.models import Transaction
from billing.services import wallet_service
from bookings.models import Booking
from bookings.services import booking_service
from disputes.models import Dispute, DisputeResolutionRecord
from disputes.services import dispute_service
from general.errors import AuthorizationError, ConsistencyViolation, ValidationError
from general.test_utils import make_booking, make_paid_booking, make_provider, make_user


class OpenDisputeTests(TestCase):
    def setUp(self):
        self.seeker = make_user()
        self.provider = make_provider()
        self.now = timezone.now()
        self.booking = make_paid_booking(self.seeker, self.provider, now=self.now)

    def test_open_on_confirmed_booking(self):
        dispute = dispute_service.open_dispute(self.booking, self.seeker, "No show", priority="high", now=self.now)
        self.assertEqual(dispute.status, Dispute.OPEN)
        self.assertEqual(Booking.objects.get(pk=self.booking.pk).status, Booking.DISPUTED)

    def test_one_dispute_per_booking(self):
        dispute_service.open_dispute(self.booking, self.seeker, "No show", now=self.now)
        with self.assertRaisesMessage(ValidationError, "Dispute already exists for this booking"):
            dispute_service.open_dispute(self.booking, self.provider, "Seeker was rude", now=self.now)

    def test_only_participants(self):
        with self.assertRaises(AuthorizationError):
            dispute_service.open_dispute(self.booking, make_user(), "Curious", now=self.now)

    def test_unpaid_booking_cannot_be_disputed(self):
        pending = make_booking(self.seeker, self.provider, start=self.now + timedelta(days=4))
        with self.assertRaises(ValidationError):
            dispute_service.open_dispute(pending, self.seeker, "Too expensive", now=self.now)

    def test_completed_booking_until_earnings_release(self):
        booking = make_paid_booking(self.seeker, self.provider, start=self.now - timedelta(hours=3), now=self.now)
        booking_service.complete_booking(booking, now=self.now)
        with self.assertRaises(ValidationError):
            dispute_service.open_dispute(booking, self.seeker, "Late", now=self.now + timedelta(hours=25))
        dispute = dispute_service.open_dispute(booking, self.seeker, "Poor quality", now=self.now + timedelta(hours=2))
        self.assertEqual(dispute.booking.status, Booking.DISPUTED)


class ResolveDisputeTests(TestCase):
    def setUp(self):
        self.seeker = make_user()
        self.provider = make_provider(hourly_rate=2700)
        self.staff = make_user(CustomUser.EMPLOYEE)
        self.booking = make_paid_booking(self.seeker, self.provider)
        self.dispute = dispute_service.open_dispute(self.booking, self.seeker, "Left early")

    def test_partial_refund(self):
        refund = dispute_service.resolve_dispute(self.dispute, self.staff, Dispute.PARTIAL_REFUND, amount=1000, notes="Half session")

        self.assertEqual(refund, 1000)
        refunds = Transaction.objects.filter(booking=self.booking, type=Transaction.REFUND)
        self.assertEqual([t.amount for t in refunds], [1000])
        self.assertEqual(wallet_service.get_wallet(self.seeker).balance, 1000)
        self.assertEqual(Booking.objects.get(pk=self.booking.pk).status, Booking.RESOLVED)
        ledger = wallet_service.booking_ledger(self.booking)
        self.assertEqual(ledger["earnings"] + ledger["commission"], 1700)
        self.assertEqual(ledger["net_liability"], 0)

        dispute = Dispute.objects.get(pk=self.dispute.pk)
        self.assertEqual((dispute.status, dispute.refund_amount, dispute.resolved_by), (Dispute.RESOLVED, 1000, self.staff))
        record = DisputeResolutionRecord.objects.get(dispute=dispute)
        self.assertEqual((record.resolution, record.amount), (Dispute.PARTIAL_REFUND, 1000))

    def test_full_refund(self):
        self.assertEqual(dispute_service.resolve_dispute(self.dispute, self.staff, Dispute.REFUND_SEEKER), 2700)
        self.assertEqual(wallet_service.get_wallet(self.provider).balance, 0)

    def test_favor_provider(self):
        self.assertEqual(dispute_service.resolve_dispute(self.dispute, self.staff, Dispute.FAVOR_PROVIDER), 0)
        self.assertEqual(wallet_service.get_wallet(self.provider).balance, 1350)

    def test_refund_above_booking_amount_changes_nothing(self):
        with self.assertRaises(ConsistencyViolation):
            dispute_service.resolve_dispute(self.dispute, self.staff, Dispute.PARTIAL_REFUND, amount=2701)
        self.assertEqual(Dispute.objects.get(pk=self.dispute.pk).status, Dispute.OPEN)
        self.assertEqual(Booking.objects.get(pk=self.booking.pk).status, Booking.DISPUTED)
        self.assertFalse(Transaction.objects.filter(type=Transaction.REFUND).exists())

    def test_failed_record_write_rolls_back_refund(self):
        with mock.patch.object(DisputeResolutionRecord.objects, "create", side_effect=RuntimeError("write failed")):
            with self.assertRaises(RuntimeError):
                dispute_service.resolve_dispute(self.dispute, self.staff, Dispute.REFUND_SEEKER)
        self.assertFalse(Transaction.objects.filter(type=Transaction.REFUND).exists())
        self.assertEqual(wallet_service.get_wallet(self.seeker).balance, 0)
        self.assertEqual(Dispute.objects.get(pk=self.dispute.pk).status, Dispute.OPEN)
        self.assertEqual(Booking.objects.get(pk=self.booking.pk).status, Booking.DISPUTED)

    def test_resolved_once(self):
        dispute_service.resolve_dispute(self.dispute, self.staff, Dispute.FAVOR_PROVIDER)
        with self.assertRaisesMessage(ValidationError, "Dispute is already resolved"):
            dispute_service.resolve_dispute(self.dispute, self.staff, Dispute.REFUND_SEEKER)
        self.assertEqual(wallet_service.get_wallet(self.seeker).balance, 0)

    def test_only_staff_resolve(self):
        with self.assertRaises(AuthorizationError):
            dispute_service.resolve_dispute(self.dispute, self.seeker, Dispute.REFUND_SEEKER)


class DisputeCommunicationTests(TestCase):
    def setUp(self):
        self.seeker = make_user()
        self.provider = make_provider()
        self.staff = make_user(CustomUser.EMPLOYEE)
        self.dispute = dispute_service.open_dispute(make_paid_booking(self.seeker, self.provider), self.seeker, "No show")

    def test_participant_message_goes_to_other_party(self):
        message = dispute_service.add_communication(self.dispute, self.seeker, "They never joined")
        self.assertEqual(message.to_user, self.provider)

    def test_staff_reply_starts_review(self):
        dispute_service.add_communication(self.dispute, self.staff, "Looking into it", to_user=self.seeker)
        dispute = Dispute.objects.get(pk=self.dispute.pk)
        self.assertEqual((dispute.status, dispute.assigned_to), (Dispute.UNDER_REVIEW, self.staff))

    def test_internal_notes_are_staff_only(self):
        dispute_service.add_communication(self.dispute, self.staff, "Check call logs", is_internal=True)
        with self.assertRaises(AuthorizationError):
            dispute_service.add_communication(self.dispute, self.seeker, "Sneaky", is_internal=True)
        self.assertEqual(dispute_service.list_communications(self.dispute, self.seeker), [])
        self.assertEqual(len(dispute_service.list_communications(self.dispute, self.staff)), 1)

    def test_outsiders_cannot_write(self):
        with self.assertRaises(AuthorizationError):
            dispute_service.add_communication(self.dispute, make_user(), "Hello")


class DisputeViewTests(TestCase):
    def setUp(self):
        self.seeker = make_user()
        self.provider = make_provider()
        self.staff = make_user(CustomUser.SUPER_ADMIN)
        self.booking = make_paid_booking(self.seeker, self.provider)

    def test_create_and_list(self):
        self.client.force_login(self.seeker)
        response = self.client.post(
            reverse("disputes:dispute_create"),
            data={"booking_id": self.booking.pk, "reason": "No show"},
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["dispute"]["priority"], "medium")
        self.assertEqual(self.client.get(reverse("disputes:dispute_list")).status_code, 403)

        self.client.force_login(self.staff)
        disputes = self.client.get(reverse("disputes:dispute_list")).json()["disputes"]
        self.assertEqual([d["booking_id"] for d in disputes], [self.booking.pk])

    def test_partial_refund_requires_amount(self):
        dispute = dispute_service.open_dispute(self.booking, self.seeker, "No show")
        self.client.force_login(self.staff)
        response = self.client.post(
            reverse("disputes:dispute_resolve"),
            data={"dispute_id": dispute.pk, "resolution": Dispute.PARTIAL_REFUND},
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("amount", response.json()["details"])

    def test_resolve_view(self):
        dispute = dispute_service.open_dispute(self.booking, self.seeker, "No show")
        self.client.force_login(self.staff)
        response = self.client.post(
            reverse("disputes:dispute_resolve"),
            data={"dispute_id": dispute.pk, "resolution": Dispute.PARTIAL_REFUND, "amount": 1000},
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"success": True, "refund_amount": 1000})

    def test_communicate_view(self):
        dispute = dispute_service.open_dispute(self.booking, self.seeker, "No show")
        self.client.force_login(self.provider)
        url = reverse("disputes:dispute_communicate", args=[dispute.pk])
        response = self.client.post(url, data={"message": "I was there"}, content_type="application/json")
        self.assertEqual(response.status_code, 201)
        messages = self.client.get(url).json()["messages"]
        self.assertEqual(messages[0]["to_user_id"], self.seeker.pk)
