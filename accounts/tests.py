from datetime import timedelta
from unittest import mock

from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from accounts.models import CustomUser, Profile, ProviderProfile
from accounts.services import account_deletion
from accounts.services.account_deletion import CLEANUP_STEPS, delete_user_account
from accounts.services.user_admin_service import activate_user, suspend_user
from billing.models import Transaction, Wallet
from billing.services import wallet_service
from bookings.models import Booking, Message, Session
from bookings.services import booking_service
from disputes.models import Dispute, DisputeCommunication
from disputes.services import dispute_service
from general.errors import AuthorizationError, ValidationError
from general.test_utils import make_paid_booking, make_provider, make_user
from payouts.models import BankAccount, Payout, PayoutLog


class CustomUserManagerTests(TestCase):
    def test_email_is_normalised(self):
        user = CustomUser.objects.create_user(email=" Asha@Example.COM ", password="pass12345")
        self.assertEqual(user.email, "asha@example.com")
        self.assertEqual(user.role, CustomUser.SEEKER)

    def test_superuser_is_super_admin(self):
        admin = CustomUser.objects.create_superuser(email="root@example.com", password="pass12345")
        self.assertTrue(admin.is_superuser)
        self.assertTrue(admin.is_marketplace_staff)


class UserStatusTests(TestCase):
    def setUp(self):
        self.admin = make_user(CustomUser.SUPER_ADMIN)
        self.seeker = make_user()

    def test_suspend_then_activate(self):
        suspend_user(self.seeker, self.admin)
        self.seeker.refresh_from_db()
        self.assertEqual((self.seeker.status, self.seeker.is_active), (CustomUser.SUSPENDED, False))

        activate_user(self.seeker, self.admin)
        self.seeker.refresh_from_db()
        self.assertEqual((self.seeker.status, self.seeker.is_active), (CustomUser.ACTIVE, True))

    def test_suspend_twice(self):
        suspend_user(self.seeker, self.admin)
        with self.assertRaisesMessage(ValidationError, "User is already suspended."):
            suspend_user(self.seeker, self.admin)

    def test_super_admins_are_protected(self):
        with self.assertRaises(AuthorizationError):
            suspend_user(make_user(CustomUser.SUPER_ADMIN), self.admin)
        with self.assertRaises(AuthorizationError):
            suspend_user(self.admin, self.admin)

    def test_employees_cannot_change_status(self):
        with self.assertRaises(AuthorizationError):
            suspend_user(self.seeker, make_user(CustomUser.EMPLOYEE))


class AccountDeletionTests(TestCase):
    def setUp(self):
        self.admin = make_user(CustomUser.SUPER_ADMIN)
        self.seeker = make_user()
        self.provider = make_provider(hourly_rate=2700)
        self.now = timezone.now()

    def test_steps_run_in_dependency_order(self):
        names = [name for name, _ in CLEANUP_STEPS]
        self.assertEqual(names[0], "bookings_cancelled")
        self.assertEqual(names[-1], "user")
        self.assertLess(names.index("disputes"), names.index("bookings"))
        self.assertLess(names.index("transactions"), names.index("wallet"))

    def test_deleting_provider_refunds_seeker(self):
        booking = make_paid_booking(self.seeker, self.provider, start=self.now + timedelta(days=3), now=self.now)
        booking_service.post_message(booking, self.seeker, "See you then", now=self.now)
        account = BankAccount.objects.create(
            provider=self.provider.provider_profile,
            account_holder_name="Asha Rao",
            account_number="123456789012",
            ifsc_code="HDFC0001234",
            bank_name="HDFC Bank",
            verification_status=BankAccount.VERIFIED,
            is_active=True,
        )
        payout = Payout.objects.create(provider=self.provider.provider_profile, bank_account=account, requested_amount=1000)
        PayoutLog.objects.create(payout=payout, action=Payout.REQUESTED, details="requested")
        provider_id = self.provider.pk

        summary = delete_user_account(self.provider, self.admin)

        self.assertEqual(summary["bookings_cancelled"], 1)
        self.assertEqual(summary["user"], 1)
        self.assertEqual(wallet_service.get_wallet(self.seeker).balance, 2700)
        self.assertFalse(CustomUser.objects.filter(pk=provider_id).exists())
        self.assertFalse(ProviderProfile.objects.filter(user_id=provider_id).exists())
        self.assertFalse(Booking.objects.exists())
        self.assertFalse(Session.objects.exists())
        self.assertFalse(Message.objects.exists())
        self.assertFalse(BankAccount.objects.exists())
        self.assertFalse(PayoutLog.objects.exists())
        self.assertFalse(Wallet.objects.filter(user_id=provider_id).exists())
        # The seeker keeps their own ledger rows, detached from the deleted booking.
        seeker_rows = Transaction.objects.filter(user=self.seeker)
        self.assertEqual(
            sorted(seeker_rows.values_list("type", flat=True)),
            [Transaction.BOOKING_PAYMENT, Transaction.REFUND],
        )
        self.assertFalse(seeker_rows.filter(booking__isnull=False).exists())

    def test_deleting_seeker_pays_provider(self):
        booking = make_paid_booking(self.seeker, self.provider, start=self.now + timedelta(days=3), now=self.now)
        delete_user_account(self.seeker, self.admin)
        self.assertFalse(Transaction.objects.filter(type=Transaction.REFUND).exists())
        self.assertFalse(Booking.objects.exists())
        self.assertFalse(Profile.objects.filter(user_id=self.seeker.pk).exists())
        self.assertEqual(wallet_service.get_wallet(self.provider).balance, 1350)
        provider_rows = Transaction.objects.filter(user=self.provider)
        self.assertEqual(
            sorted(provider_rows.values_list("type", "amount")),
            [(Transaction.COMMISSION, 1350), (Transaction.EARNING, 1350)],
        )
        self.assertFalse(provider_rows.filter(booking_id=booking.pk).exists())

    def test_failed_step_rolls_back_everything(self):
        booking = make_paid_booking(self.seeker, self.provider, start=self.now + timedelta(days=3), now=self.now)
        provider_id = self.provider.pk

        def broken_wallet_step(user):
            raise RuntimeError("wallet cleanup failed")

        steps = [(name, broken_wallet_step if name == "wallet" else step) for name, step in CLEANUP_STEPS]
        with mock.patch.object(account_deletion, "CLEANUP_STEPS", steps):
            with self.assertRaises(RuntimeError):
                delete_user_account(self.provider, self.admin)

        self.assertTrue(CustomUser.objects.filter(pk=provider_id).exists())
        self.assertTrue(ProviderProfile.objects.filter(user_id=provider_id).exists())
        self.assertEqual(Booking.objects.get(pk=booking.pk).status, Booking.CONFIRMED)
        self.assertTrue(Transaction.objects.filter(booking=booking, type=Transaction.BOOKING_PAYMENT).exists())
        self.assertFalse(Transaction.objects.filter(type=Transaction.REFUND).exists())
        self.assertEqual(wallet_service.get_wallet(self.seeker).balance, 0)

    def test_disputes_are_removed(self):
        booking = make_paid_booking(self.seeker, self.provider, now=self.now)
        dispute = dispute_service.open_dispute(booking, self.seeker, "No show", now=self.now)
        dispute_service.add_communication(dispute, self.seeker, "Where were you?")
        summary = delete_user_account(self.seeker, self.admin)
        self.assertEqual((summary["disputes"], summary["dispute_communications"]), (1, 1))
        self.assertFalse(Dispute.objects.exists())
        self.assertFalse(DisputeCommunication.objects.exists())

    def test_only_super_admin_deletes_others(self):
        with self.assertRaises(AuthorizationError):
            delete_user_account(self.seeker, make_user(CustomUser.EMPLOYEE))
        with self.assertRaisesMessage(AuthorizationError, "Super Admin cannot delete their own account"):
            delete_user_account(self.admin, self.admin)
        with self.assertRaisesMessage(AuthorizationError, "Cannot delete Super Admin accounts"):
            delete_user_account(make_user(CustomUser.SUPER_ADMIN), self.admin)
        self.assertTrue(CustomUser.objects.filter(pk=self.seeker.pk).exists())


class UserDetailViewTests(TestCase):
    def setUp(self):
        self.admin = make_user(CustomUser.SUPER_ADMIN)
        self.provider = make_provider(hourly_rate=1800)
        self.url = reverse("accounts:user_detail", args=[self.provider.pk])

    def patch(self, data, url=None):
        return self.client.patch(url or self.url, data=data, content_type="application/json")

    def test_get(self):
        self.client.force_login(self.admin)
        user = self.client.get(self.url).json()["user"]
        self.assertEqual(user["role"], CustomUser.PROVIDER)
        self.assertEqual(user["provider"]["hourly_rate"], 1800)
        self.assertEqual(user["wallet"], {"balance": 0, "pending_amount": 0})

    def test_unknown_user(self):
        self.client.force_login(self.admin)
        response = self.client.get(reverse("accounts:user_detail", args=[999999]))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"error": "User not found"})

    def test_non_admins_are_refused(self):
        self.assertEqual(self.client.get(self.url).status_code, 401)
        self.client.force_login(make_user(CustomUser.EMPLOYEE))
        self.assertEqual(self.patch({"action": "suspend"}).status_code, 403)
        self.provider.refresh_from_db()
        self.assertEqual(self.provider.status, CustomUser.ACTIVE)

    def test_suspend_and_delete(self):
        self.client.force_login(self.admin)
        response = self.patch({"action": "suspend"})
        self.assertEqual(response.json()["user"]["status"], CustomUser.SUSPENDED)

        response = self.patch({"action": "delete"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["deleted"]["user"], 1)
        self.assertFalse(CustomUser.objects.filter(pk=self.provider.pk).exists())

    def test_unknown_action(self):
        self.client.force_login(self.admin)
        response = self.patch({"action": "promote"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("action", response.json()["details"])
