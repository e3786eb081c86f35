from decimal import Decimal
from unittest import mock

from django.test import TestCase
from django.urls import reverse

from accounts.models import CustomUser
from billing.models import Transaction
from billing.services import wallet_service
from general.errors import AuthorizationError, ExternalServiceError, NotFoundError, ValidationError
from general.test_utils import make_provider, make_user
from payouts.gateways.cashfree_payouts import PayoutGatewayError
from payouts.models import BankAccount, BankAccountDeleteRequest, Payout, PayoutLog
from payouts.services import payout_service

BANK_DETAILS = {
    "account_holder_name": "Asha Rao",
    "account_number": "123456789012",
    "ifsc_code": "hdfc0001234",
    "bank_name": "HDFC Bank",
    "branch_name": "Indiranagar",
    "account_type": "SAVINGS",
}


class FakePayoutsGateway:
    def __init__(self, penny_amount=Decimal("3.41"), fail_penny=False, fail_transfers=False):
        self.penny_amount = penny_amount
        self.fail_penny = fail_penny
        self.fail_transfers = fail_transfers
        self.transfers = []

    def send_penny_test(self, bank_account):
        if self.fail_penny:
            raise PayoutGatewayError("Invalid beneficiary")
        return {"transfer_id": f"penny_{bank_account.pk}", "penny_amount": self.penny_amount, "reference_id": "REF1"}

    def request_transfer(self, payout):
        if self.fail_transfers:
            raise PayoutGatewayError("Insufficient balance in payout account")
        self.transfers.append(payout.pk)
        return {"transfer_id": f"payout_{payout.pk}", "reference_id": "REF2", "response": {"status": "PENDING"}}


def verified_provider(balance=5000):
    provider = make_provider()
    gateway = FakePayoutsGateway()
    payout_service.add_bank_account(provider, BANK_DETAILS, gateway)
    payout_service.verify_penny_test(provider, gateway.penny_amount)
    if balance:
        wallet_service.credit_wallet(provider, balance, Transaction.EARNING, description="Earnings")
    return provider


class BankAccountTests(TestCase):
    def setUp(self):
        self.provider = make_provider()
        self.gateway = FakePayoutsGateway()

    def test_add_sends_penny_test(self):
        account = payout_service.add_bank_account(self.provider, BANK_DETAILS, self.gateway)
        self.assertEqual(account.verification_status, BankAccount.PENNY_TEST_SENT)
        self.assertEqual(account.ifsc_code, "HDFC0001234")
        self.assertEqual(account.penny_test_attempts, 0)
        self.assertEqual(account.masked_account_number, "1234****9012")

    def test_second_account_refused_while_first_is_live(self):
        payout_service.add_bank_account(self.provider, BANK_DETAILS, self.gateway)
        with self.assertRaises(ValidationError):
            payout_service.add_bank_account(self.provider, BANK_DETAILS, self.gateway)

    def test_gateway_failure_leaves_pending_account_that_can_be_replaced(self):
        with self.assertRaises(ExternalServiceError):
            payout_service.add_bank_account(self.provider, BANK_DETAILS, FakePayoutsGateway(fail_penny=True))
        self.assertEqual(BankAccount.objects.get().verification_status, BankAccount.PENDING)
        payout_service.add_bank_account(self.provider, BANK_DETAILS, self.gateway)
        self.assertEqual(BankAccount.objects.count(), 1)

    def test_seekers_cannot_add_accounts(self):
        with self.assertRaises(AuthorizationError):
            payout_service.add_bank_account(make_user(), BANK_DETAILS, self.gateway)

    def test_correct_amount_verifies(self):
        payout_service.add_bank_account(self.provider, BANK_DETAILS, self.gateway)
        account = payout_service.verify_penny_test(self.provider, "3.41")
        self.assertEqual(account.verification_status, BankAccount.VERIFIED)
        self.assertTrue(account.is_active)
        self.assertIsNotNone(account.verified_at)

    def test_lockout_after_three_wrong_answers(self):
        payout_service.add_bank_account(self.provider, BANK_DETAILS, self.gateway)
        for remaining in (2, 1, 0):
            with self.assertRaises(ValidationError) as ctx:
                payout_service.verify_penny_test(self.provider, "9.99")
            self.assertEqual(ctx.exception.details, {"attempts_remaining": remaining})

        account = BankAccount.objects.get()
        self.assertEqual((account.verification_status, account.penny_test_attempts), (BankAccount.REJECTED, 3))

        # Even the right amount is refused now and the attempt is not counted.
        with self.assertRaises(ValidationError):
            payout_service.verify_penny_test(self.provider, "3.41")
        self.assertEqual(BankAccount.objects.get().penny_test_attempts, 3)

        payout_service.add_bank_account(self.provider, BANK_DETAILS, self.gateway)
        self.assertEqual(BankAccount.objects.count(), 2)


class BankAccountDeletionTests(TestCase):
    def setUp(self):
        self.provider = verified_provider(balance=5000)
        self.staff = make_user(CustomUser.EMPLOYEE)

    def test_request_uses_default_reason_and_allows_one_pending(self):
        delete_request = payout_service.request_bank_account_deletion(self.provider)
        self.assertEqual(delete_request.status, BankAccountDeleteRequest.PENDING)
        self.assertEqual(delete_request.reason, "Provider requested account deletion")
        with self.assertRaisesMessage(ValidationError, "Delete request already pending"):
            payout_service.request_bank_account_deletion(self.provider, "Switching banks next month")
        self.assertEqual(BankAccountDeleteRequest.objects.count(), 1)

    def test_nothing_to_delete(self):
        with self.assertRaisesMessage(NotFoundError, "No bank account found to delete"):
            payout_service.request_bank_account_deletion(make_provider())

    def test_open_payout_blocks_approval(self):
        payout = payout_service.request_payout(self.provider, 2000)
        delete_request = payout_service.request_bank_account_deletion(self.provider, "Account is being closed")
        with self.assertRaisesMessage(ValidationError, "Cannot delete bank account with pending payouts"):
            payout_service.resolve_delete_request(delete_request, self.staff, "approve")
        self.assertEqual(BankAccount.objects.get().verification_status, BankAccount.VERIFIED)
        self.assertEqual(BankAccountDeleteRequest.objects.get().status, BankAccountDeleteRequest.PENDING)

        payout_service.reject_payout(payout, self.staff, "Account is being closed")
        payout_service.resolve_delete_request(delete_request, self.staff, "approve")
        self.assertEqual(BankAccount.objects.get().verification_status, BankAccount.DELETED)

    def test_approval_frees_the_slot_for_a_new_account(self):
        delete_request = payout_service.request_bank_account_deletion(self.provider, "Switching to a new bank")
        delete_request = payout_service.resolve_delete_request(delete_request, self.staff, "approve", notes="Checked")

        self.assertEqual(delete_request.status, BankAccountDeleteRequest.APPROVED)
        self.assertEqual((delete_request.resolved_by, delete_request.assigned_to), (self.staff, self.staff))
        self.assertIsNotNone(delete_request.resolved_at)
        account = BankAccount.objects.get()
        self.assertEqual((account.verification_status, account.is_active), (BankAccount.DELETED, False))
        with self.assertRaises(ValidationError):
            payout_service.request_payout(self.provider, 2000)

        payout_service.add_bank_account(self.provider, BANK_DETAILS, FakePayoutsGateway())
        self.assertEqual(BankAccount.objects.count(), 2)

    def test_reject_keeps_account(self):
        delete_request = payout_service.request_bank_account_deletion(self.provider)
        delete_request = payout_service.resolve_delete_request(delete_request, self.staff, "reject")
        self.assertEqual(delete_request.status, BankAccountDeleteRequest.REJECTED)
        self.assertEqual(BankAccount.objects.get().verification_status, BankAccount.VERIFIED)
        with self.assertRaisesMessage(ValidationError, "Delete request already resolved"):
            payout_service.resolve_delete_request(delete_request, self.staff, "approve")
        self.assertEqual(BankAccount.objects.get().verification_status, BankAccount.VERIFIED)

    def test_only_staff_resolve(self):
        delete_request = payout_service.request_bank_account_deletion(self.provider)
        with self.assertRaises(AuthorizationError):
            payout_service.resolve_delete_request(delete_request, self.provider, "approve")

    def test_employee_queue(self):
        mine = payout_service.request_bank_account_deletion(self.provider)
        other_provider = verified_provider(balance=0)
        theirs = payout_service.request_bank_account_deletion(other_provider)
        BankAccountDeleteRequest.objects.filter(pk=theirs.pk).update(assigned_to=make_user(CustomUser.EMPLOYEE))

        self.assertEqual([r.pk for r in payout_service.delete_request_queue(self.staff)], [mine.pk])
        admin = make_user(CustomUser.SUPER_ADMIN)
        self.assertEqual(len(payout_service.delete_request_queue(admin)), 2)

        payout_service.resolve_delete_request(theirs, admin, "reject")
        self.assertEqual(list(payout_service.delete_request_queue(self.staff, BankAccountDeleteRequest.REJECTED)), [])


class PayoutWorkflowTests(TestCase):
    def setUp(self):
        self.provider = verified_provider(balance=5000)
        self.staff = make_user(CustomUser.EMPLOYEE)
        self.gateway = FakePayoutsGateway()

    def wallet(self):
        return wallet_service.get_wallet(self.provider)

    def test_request_holds_funds(self):
        payout = payout_service.request_payout(self.provider, 3000)
        self.assertEqual(payout.status, Payout.REQUESTED)
        self.assertEqual((self.wallet().balance, self.wallet().pending_amount), (2000, 3000))
        self.assertEqual(payout.hold_transaction.status, Transaction.PENDING)

    def test_requires_verified_account(self):
        provider = make_provider()
        wallet_service.credit_wallet(provider, 5000, Transaction.EARNING)
        with self.assertRaisesMessage(ValidationError, "Please verify your bank account first"):
            payout_service.request_payout(provider, 2000)

    def test_pending_funds_do_not_cover_a_request(self):
        payout = payout_service.request_payout(self.provider, 4000)
        self.assertEqual((self.wallet().balance, self.wallet().pending_amount), (1000, 4000))
        # Close the request without releasing its hold so a second one is allowed.
        Payout.objects.filter(pk=payout.pk).update(status=Payout.REJECTED)
        with self.assertRaises(ValidationError):
            payout_service.request_payout(self.provider, 2000)
        self.assertEqual(self.wallet().balance, 1000)
        self.assertEqual(Payout.objects.count(), 1)

    def test_over_balance_refused(self):
        with self.assertRaises(ValidationError):
            payout_service.request_payout(self.provider, 5001)
        self.assertFalse(Payout.objects.exists())

    def test_one_open_payout(self):
        payout_service.request_payout(self.provider, 1000)
        with self.assertRaisesMessage(ValidationError, "You already have a pending payout request"):
            payout_service.request_payout(self.provider, 1000)

    def test_amount_limits(self):
        with self.assertRaises(ValidationError):
            payout_service.request_payout(self.provider, 999)

    def test_happy_path(self):
        payout = payout_service.request_payout(self.provider, 3000)
        payout = payout_service.approve_payout(payout, self.staff, transaction_fee=10)
        self.assertEqual((payout.status, payout.actual_amount), (Payout.APPROVED, 2990))

        payout = payout_service.dispatch_payout(payout, self.gateway)
        self.assertEqual(payout.status, Payout.PROCESSING)
        self.assertEqual(payout.gateway_transfer_id, f"payout_{payout.pk}")

        payout = payout_service.complete_payout(payout, actor=self.staff)
        self.assertEqual(payout.status, Payout.COMPLETED)
        self.assertEqual((self.wallet().balance, self.wallet().pending_amount), (2000, 0))
        hold = Transaction.objects.get(type=Transaction.PAYOUT)
        self.assertEqual((hold.status, hold.amount), (Transaction.COMPLETED, -3000))
        self.assertEqual(
            list(payout.logs.order_by("created_at", "pk").values_list("action", flat=True)),
            [Payout.REQUESTED, Payout.APPROVED, Payout.PROCESSING, Payout.COMPLETED],
        )

    def test_transfer_failure_releases_hold(self):
        payout = payout_service.approve_payout(payout_service.request_payout(self.provider, 3000), self.staff)
        payout = payout_service.dispatch_payout(payout, FakePayoutsGateway(fail_transfers=True))
        self.assertEqual(payout.status, Payout.FAILED)
        self.assertEqual((self.wallet().balance, self.wallet().pending_amount), (5000, 0))
        self.assertEqual(Transaction.objects.get(type=Transaction.PAYOUT).status, Transaction.FAILED)
        log = payout.logs.get(action=Payout.FAILED)
        self.assertEqual(log.performer_label, "SYSTEM")

    def test_reject_releases_hold(self):
        payout = payout_service.request_payout(self.provider, 3000)
        payout = payout_service.reject_payout(payout, self.staff, "Suspicious activity")
        self.assertEqual(payout.status, Payout.REJECTED)
        self.assertEqual((self.wallet().balance, self.wallet().pending_amount), (5000, 0))

    def test_illegal_transitions(self):
        payout = payout_service.request_payout(self.provider, 3000)
        with self.assertRaises(payout_service.PayoutError):
            payout_service.dispatch_payout(payout, self.gateway)
        with self.assertRaises(payout_service.PayoutError):
            payout_service.complete_payout(payout)
        payout_service.reject_payout(payout, self.staff, "No")
        with self.assertRaises(payout_service.PayoutError):
            payout_service.approve_payout(payout, self.staff)

    def test_fee_cannot_swallow_payout(self):
        payout = payout_service.request_payout(self.provider, 1000)
        with mock.patch("payouts.config.PAYOUT_MAX_TRANSACTION_FEE", 5000):
            with self.assertRaises(ValidationError):
                payout_service.approve_payout(payout, self.staff, transaction_fee=1000)

    def test_only_staff_decide(self):
        payout = payout_service.request_payout(self.provider, 1000)
        with self.assertRaises(AuthorizationError):
            payout_service.approve_payout(payout, self.provider)

    def test_logs_are_append_only(self):
        payout = payout_service.request_payout(self.provider, 1000)
        log = PayoutLog.objects.get(payout=payout)
        log.details = "edited"
        with self.assertRaises(ValueError):
            log.save()


class PayoutViewTests(TestCase):
    def setUp(self):
        self.provider = make_provider()
        self.staff = make_user(CustomUser.SUPER_ADMIN)

    def post(self, name, data, args=()):
        return self.client.post(reverse(f"payouts:{name}", args=args), data=data, content_type="application/json")

    @mock.patch("payouts.views.CashfreePayoutsClient")
    def test_bank_account_flow(self, client_cls):
        client_cls.return_value = FakePayoutsGateway()
        self.client.force_login(self.provider)

        self.assertTrue(self.client.get(reverse("payouts:bank_account")).json()["can_add_account"])
        response = self.post("bank_account", BANK_DETAILS)
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["bank_account"]["account_number"], "1234****9012")

        response = self.post("bank_account_verify", {"penny_amount": "1.00"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["details"], {"attempts_remaining": 2})
        response = self.post("bank_account_verify", {"penny_amount": "3.41"})
        self.assertEqual(response.json()["bank_account"]["verification_status"], BankAccount.VERIFIED)

    def test_invalid_bank_details(self):
        self.client.force_login(self.provider)
        response = self.post("bank_account", {**BANK_DETAILS, "ifsc_code": "BAD", "account_number": "12ab"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(set(response.json()["details"]), {"ifsc_code", "account_number"})

    def test_seeker_gets_403(self):
        self.client.force_login(make_user())
        self.assertEqual(self.client.get(reverse("payouts:bank_account")).status_code, 403)

    @mock.patch("payouts.views.CashfreePayoutsClient")
    def test_request_approve_and_complete(self, client_cls):
        client_cls.return_value = FakePayoutsGateway()
        provider = verified_provider(balance=2500)
        self.client.force_login(provider)
        response = self.post("payout_request", {"amount": 2000})
        self.assertEqual(response.status_code, 201)
        payout_id = response.json()["payout"]["id"]
        summary = self.client.get(reverse("payouts:payout_request")).json()
        self.assertEqual((summary["available"], summary["pending_amount"]), (500, 2000))

        self.client.force_login(self.staff)
        queue = self.client.get(reverse("payouts:admin_payout_list")).json()["payouts"]
        self.assertEqual([p["id"] for p in queue], [payout_id])
        response = self.post("admin_payout_decide", {"action": "approve", "transaction_fee": 20}, args=[payout_id])
        self.assertEqual(response.json()["payout"]["status"], Payout.PROCESSING)
        self.assertEqual(response.json()["payout"]["actual_amount"], 1980)
        response = self.post("admin_payout_complete", {}, args=[payout_id])
        self.assertEqual(response.json()["payout"]["status"], Payout.COMPLETED)

    def test_reject_requires_reason(self):
        provider = verified_provider(balance=2500)
        payout = payout_service.request_payout(provider, 2000)
        self.client.force_login(self.staff)
        response = self.post("admin_payout_decide", {"action": "reject"}, args=[payout.pk])
        self.assertEqual(response.status_code, 400)
        self.assertIn("rejection_reason", response.json()["details"])

    def test_delete_request_flow(self):
        provider = verified_provider(balance=0)
        self.client.force_login(provider)
        response = self.post("bank_account_delete_request", {"reason": "short"})
        self.assertEqual(response.status_code, 400)
        response = self.post("bank_account_delete_request", {"reason": "Moving to another bank"})
        self.assertEqual(response.status_code, 201)
        request_id = response.json()["request"]["id"]
        self.assertEqual(self.post("bank_account_delete_request", {}).status_code, 400)
        history = self.client.get(reverse("payouts:bank_account_delete_request")).json()["requests"]
        self.assertEqual([r["id"] for r in history], [request_id])
        self.assertEqual(self.post("admin_delete_request_resolve", {"action": "approve"}, args=[request_id]).status_code, 403)

        self.client.force_login(self.staff)
        queue = self.client.get(reverse("payouts:admin_delete_request_list")).json()["requests"]
        self.assertEqual([r["id"] for r in queue], [request_id])
        self.assertEqual(queue[0]["provider_email"], provider.email)
        self.assertEqual(self.post("admin_delete_request_resolve", {"action": "approve"}, args=[request_id + 100]).status_code, 404)
        response = self.post("admin_delete_request_resolve", {"action": "approve"}, args=[request_id])
        self.assertEqual(response.json()["message"], "Bank account deletion approved and account marked as deleted")
        self.assertEqual(self.post("admin_delete_request_resolve", {"action": "reject"}, args=[request_id]).status_code, 400)

        self.client.force_login(provider)
        self.assertTrue(self.client.get(reverse("payouts:bank_account")).json()["can_add_account"])
