import json
from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest import TestCase as SimpleTestCase
from unittest.mock import Mock, patch

from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from billing.gateways.cashfree import compute_webhook_signature, verify_webhook_signature
from billing.models import Transaction
from billing.services import payment_webhook_service, topup_service, wallet_service
from billing.services.commission_service import split_amount
from billing.webhook_events import (
    PAYMENT_FAILED,
    PAYMENT_SUCCESS,
    PaymentFailed,
    PaymentSucceeded,
    UnknownEvent,
    parse_event,
)
from bookings.models import Booking
from bookings.services import booking_service
from general.errors import ValidationError
from general.test_utils import StubGateway, make_booking, make_paid_booking, make_provider, make_user

WEBHOOK_SECRET = "cf_test_secret"


class WebhookSignatureTests(SimpleTestCase):
    def test_signature_round_trip(self):
        body = b'{"type": "PAYMENT_SUCCESS_WEBHOOK"}'
        signature = compute_webhook_signature(body, "1700000000", WEBHOOK_SECRET)
        self.assertTrue(verify_webhook_signature(body, signature, "1700000000", WEBHOOK_SECRET))

    def test_tampered_body_or_timestamp_is_rejected(self):
        body = b'{"type": "PAYMENT_SUCCESS_WEBHOOK"}'
        signature = compute_webhook_signature(body, "1700000000", WEBHOOK_SECRET)
        self.assertFalse(verify_webhook_signature(body + b" ", signature, "1700000000", WEBHOOK_SECRET))
        self.assertFalse(verify_webhook_signature(body, signature, "1700000001", WEBHOOK_SECRET))

    def test_missing_parts_never_verify(self):
        self.assertFalse(verify_webhook_signature(b"{}", "", "1", WEBHOOK_SECRET))
        self.assertFalse(verify_webhook_signature(b"{}", "abc", "1", ""))


class ParseEventTests(SimpleTestCase):
    def test_success_event(self):
        event = parse_event({
            "type": PAYMENT_SUCCESS,
            "data": {"order": {"order_id": "ORDER_1"}, "payment": {"cf_payment_id": 991, "payment_amount": 2700.0}},
        })
        self.assertEqual(event, PaymentSucceeded(order_id="ORDER_1", payment_id="991", amount=Decimal("2700.0")))

    def test_failed_event(self):
        event = parse_event({"type": PAYMENT_FAILED, "data": {"order": {"order_id": "ORDER_2"}}})
        self.assertEqual(event, PaymentFailed(order_id="ORDER_2"))

    def test_unknown_type_is_not_an_error(self):
        self.assertEqual(parse_event({"type": "REFUND_STATUS_WEBHOOK"}), UnknownEvent(type="REFUND_STATUS_WEBHOOK"))

    def test_known_type_without_order_id_is_rejected(self):
        with self.assertRaises(ValidationError):
            parse_event({"type": PAYMENT_SUCCESS, "data": {"payment": {"cf_payment_id": 1}}})

    def test_non_numeric_amount_is_rejected(self):
        with self.assertRaises(ValidationError):
            parse_event({
                "type": PAYMENT_SUCCESS,
                "data": {"order": {"order_id": "O"}, "payment": {"cf_payment_id": 1, "payment_amount": "lots"}},
            })


class CommissionTests(SimpleTestCase):
    def test_platform_rate_splits_evenly(self):
        provider = SimpleNamespace(provider_profile=SimpleNamespace(commission_rate=None))
        self.assertEqual(split_amount(provider, 2700), (1350, 1350))

    def test_provider_override_and_rounding(self):
        provider = SimpleNamespace(provider_profile=SimpleNamespace(commission_rate=Decimal("0.2")))
        self.assertEqual(split_amount(provider, 2700), (2160, 540))
        default = SimpleNamespace(provider_profile=None)
        self.assertEqual(split_amount(default, 1001), (500, 501))


class WalletServiceTests(TestCase):
    def setUp(self):
        self.user = make_user()

    def test_credit_creates_transaction_and_updates_balance(self):
        txn = wallet_service.credit_wallet(self.user, 500, Transaction.REFUND, description="refund")
        self.assertEqual(txn.status, Transaction.COMPLETED)
        self.assertEqual(wallet_service.get_wallet(self.user).balance, 500)

    def test_commission_never_credits_a_wallet(self):
        with self.assertRaises(wallet_service.WalletError):
            wallet_service.credit_wallet(self.user, 100, Transaction.COMMISSION)
        self.assertFalse(Transaction.objects.exists())

    def test_hold_uses_available_balance_only(self):
        wallet_service.credit_wallet(self.user, 2500, Transaction.EARNING)
        wallet_service.hold_for_payout(self.user, 1500)
        wallet = wallet_service.get_wallet(self.user)
        self.assertEqual((wallet.balance, wallet.pending_amount), (1000, 1500))
        with self.assertRaisesMessage(wallet_service.WalletError, "Insufficient balance. Available: 1000"):
            wallet_service.hold_for_payout(self.user, 1200)

    def test_release_and_settle_are_idempotent(self):
        wallet_service.credit_wallet(self.user, 2000, Transaction.EARNING)
        hold = wallet_service.hold_for_payout(self.user, 2000)
        wallet_service.release_payout_hold(hold)
        wallet_service.release_payout_hold(hold)
        wallet = wallet_service.get_wallet(self.user)
        self.assertEqual((wallet.balance, wallet.pending_amount), (2000, 0))

        hold = wallet_service.hold_for_payout(self.user, 1500)
        wallet_service.settle_payout_hold(hold)
        wallet_service.settle_payout_hold(hold)
        wallet = wallet_service.get_wallet(self.user)
        self.assertEqual((wallet.balance, wallet.pending_amount), (500, 0))

    def test_booking_ledger(self):
        provider = make_provider()
        booking = make_paid_booking(self.user, provider)
        wallet_service.credit_wallet(self.user, 700, Transaction.REFUND, booking=booking)
        ledger = wallet_service.booking_ledger(booking)
        self.assertEqual(ledger["payments"], 2700)
        self.assertEqual(ledger["net_liability"], 2000)
        self.assertEqual(wallet_service.refundable_amount(booking), 2000)


class PaymentWebhookServiceTests(TestCase):
    def setUp(self):
        self.seeker = make_user()
        self.provider = make_provider()
        self.now = timezone.now()
        self.start = self.now + timedelta(hours=3)
        self.booking = booking_service.create_booking(self.seeker, self.provider, self.start, 60, now=self.now)
        self.payment = booking_service.start_payment(self.booking, self.seeker, StubGateway(), now=self.now)

    def _success(self, payment_id="cf_1"):
        return PaymentSucceeded(order_id=self.payment["order_id"], payment_id=payment_id, amount=Decimal("2700"))

    def test_success_confirms_booking(self):
        outcome = payment_webhook_service.handle_event(self._success(), now=self.now)
        self.assertEqual(outcome, payment_webhook_service.CONFIRMED)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.CONFIRMED)
        self.assertTrue(self.booking.meet_url)
        txn = Transaction.objects.get(gateway_order_id=self.payment["order_id"])
        self.assertEqual((txn.status, txn.gateway_payment_id), (Transaction.COMPLETED, "cf_1"))

    def test_duplicate_success_is_ignored(self):
        payment_webhook_service.handle_event(self._success(), now=self.now)
        meet_url = Booking.objects.get(pk=self.booking.pk).meet_url
        outcome = payment_webhook_service.handle_event(self._success("cf_2"), now=self.now)
        self.assertEqual(outcome, payment_webhook_service.IGNORED)
        booking = Booking.objects.get(pk=self.booking.pk)
        self.assertEqual(booking.meet_url, meet_url)
        self.assertEqual(Transaction.objects.get(gateway_order_id=self.payment["order_id"]).gateway_payment_id, "cf_1")

    def test_second_order_paid_after_confirmation_is_refunded(self):
        gateway = StubGateway()
        first = booking_service.start_payment(self.booking, self.seeker, gateway, now=self.now)
        second = booking_service.start_payment(self.booking, self.seeker, gateway, now=self.now)
        paid_first = PaymentSucceeded(order_id=first["order_id"], payment_id="cf_a", amount=Decimal("2700"))
        paid_second = PaymentSucceeded(order_id=second["order_id"], payment_id="cf_b", amount=Decimal("2700"))

        self.assertEqual(payment_webhook_service.handle_event(paid_first, now=self.now), payment_webhook_service.CONFIRMED)
        with self.assertLogs("billing.services.payment_webhook_service", level="WARNING"):
            outcome = payment_webhook_service.handle_event(paid_second, now=self.now)

        self.assertEqual(outcome, payment_webhook_service.REFUNDED)
        txn = Transaction.objects.get(gateway_order_id=second["order_id"])
        self.assertEqual((txn.status, txn.gateway_payment_id), (Transaction.COMPLETED, "cf_b"))
        self.assertEqual(wallet_service.get_wallet(self.seeker).balance, 2700)
        ledger = wallet_service.booking_ledger(self.booking)
        self.assertEqual((ledger["payments"], ledger["refunds"]), (5400, 2700))
        self.assertEqual(Booking.objects.get(pk=self.booking.pk).status, Booking.CONFIRMED)

        # Redelivery of the second capture changes nothing.
        self.assertEqual(payment_webhook_service.handle_event(paid_second, now=self.now), payment_webhook_service.IGNORED)
        self.assertEqual(wallet_service.get_wallet(self.seeker).balance, 2700)

    def test_success_at_deadline_expires_booking(self):
        deadline = self.start - timedelta(minutes=60)
        outcome = payment_webhook_service.handle_event(self._success(), now=deadline)
        self.assertEqual(outcome, payment_webhook_service.EXPIRED)
        self.assertFalse(Booking.objects.filter(pk=self.booking.pk).exists())
        self.assertFalse(Transaction.objects.filter(gateway_order_id=self.payment["order_id"]).exists())

    def test_success_one_second_before_deadline_confirms(self):
        just_in_time = self.start - timedelta(minutes=60, seconds=1)
        outcome = payment_webhook_service.handle_event(self._success(), now=just_in_time)
        self.assertEqual(outcome, payment_webhook_service.CONFIRMED)

    def test_failed_payment_keeps_booking_open_for_retry(self):
        outcome = payment_webhook_service.handle_event(PaymentFailed(order_id=self.payment["order_id"]), now=self.now)
        self.assertEqual(outcome, Transaction.FAILED)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.PAYMENT_PENDING)

    def test_unknown_order_is_ignored(self):
        outcome = payment_webhook_service.handle_event(
            PaymentSucceeded(order_id="ORDER_MISSING", payment_id="x"), now=self.now,
        )
        self.assertEqual(outcome, payment_webhook_service.IGNORED)

    @patch("billing.services.payment_webhook_service.booking_service.confirm_booking", side_effect=RuntimeError("boom"))
    def test_handler_failure_is_contained(self, confirm_booking):
        outcome = payment_webhook_service.handle_event(self._success(), now=self.now)
        self.assertEqual(outcome, payment_webhook_service.ERROR)
        txn = Transaction.objects.get(gateway_order_id=self.payment["order_id"])
        self.assertEqual(txn.status, Transaction.PENDING)


@override_settings(CASHFREE_WEBHOOK_SECRET=WEBHOOK_SECRET)
class CashfreeWebhookViewTests(TestCase):
    def setUp(self):
        self.url = reverse("billing:cashfree_webhook")
        self.seeker = make_user()
        self.provider = make_provider()
        booking = booking_service.create_booking(self.seeker, self.provider, timezone.now() + timedelta(days=1), 60)
        self.booking_id = booking.pk
        self.order_id = booking_service.start_payment(booking, self.seeker, StubGateway())["order_id"]

    def _post(self, payload, secret=WEBHOOK_SECRET, raw=None):
        body = raw if raw is not None else json.dumps(payload).encode()
        timestamp = "1700000000"
        return self.client.post(
            self.url,
            data=body,
            content_type="application/json",
            HTTP_X_WEBHOOK_SIGNATURE=compute_webhook_signature(body, timestamp, secret),
            HTTP_X_WEBHOOK_TIMESTAMP=timestamp,
        )

    def _success_payload(self):
        return {
            "type": PAYMENT_SUCCESS,
            "data": {"order": {"order_id": self.order_id}, "payment": {"cf_payment_id": 55, "payment_amount": 2700}},
        }

    def test_bad_signature_is_401_and_changes_nothing(self):
        response = self._post(self._success_payload(), secret="wrong")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json(), {"error": "Invalid signature"})
        self.assertEqual(Booking.objects.get(pk=self.booking_id).status, Booking.PAYMENT_PENDING)

    def test_success_is_acknowledged_and_confirms(self):
        response = self._post(self._success_payload())
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "success")
        self.assertEqual(Booking.objects.get(pk=self.booking_id).status, Booking.CONFIRMED)

    def test_redelivery_is_acknowledged(self):
        self._post(self._success_payload())
        response = self._post(self._success_payload())
        self.assertEqual(response.status_code, 200)
        self.assertEqual(Transaction.objects.filter(status=Transaction.COMPLETED).count(), 1)

    def test_malformed_known_event_is_acknowledged(self):
        response = self._post({"type": PAYMENT_SUCCESS, "data": {}})
        self.assertEqual(response.status_code, 200)

    def test_unreadable_body_is_500(self):
        response = self._post(None, raw=b"not json")
        self.assertEqual(response.status_code, 500)


class TopupTests(TestCase):
    def setUp(self):
        self.user = make_user()

    @patch("billing.services.topup_service.get_client")
    @patch("billing.services.topup_service.is_configured", return_value=True)
    def test_create_intent_sends_minor_units(self, is_configured, get_client):
        stripe = Mock()
        stripe.PaymentIntent.create.return_value = SimpleNamespace(id="pi_1", client_secret="pi_1_secret")
        get_client.return_value = stripe

        result = topup_service.create_topup_intent(self.user, 500, attempt_id="a1")

        self.assertEqual(result, {"payment_intent_id": "pi_1", "client_secret": "pi_1_secret", "amount": 500})
        kwargs = stripe.PaymentIntent.create.call_args.kwargs
        self.assertEqual(kwargs["amount"], 50000)
        self.assertEqual(kwargs["metadata"]["payment_type"], "wallet_topup")
        self.assertEqual(kwargs["idempotency_key"], f"wallet_topup:{self.user.pk}:a1")

    @patch("billing.services.topup_service.is_configured", return_value=False)
    def test_unconfigured_stripe_is_reported(self, is_configured):
        with self.assertRaises(topup_service.TopupError):
            topup_service.create_topup_intent(self.user, 500)

    def test_succeeded_intent_credits_once(self):
        intent = {"id": "pi_9", "amount": 50000, "metadata": {"payment_type": "wallet_topup", "user_id": str(self.user.pk), "wallet_amount": "500"}}
        self.assertTrue(topup_service.apply_topup_succeeded(intent))
        self.assertFalse(topup_service.apply_topup_succeeded(intent))
        self.assertEqual(wallet_service.get_wallet(self.user).balance, 500)

    def test_other_intents_are_ignored(self):
        self.assertFalse(topup_service.apply_topup_succeeded({"id": "pi_x", "metadata": {}}))

    @override_settings(STRIPE_WEBHOOK_SECRET="whsec_test")
    @patch("billing.views.construct_webhook_event")
    def test_stripe_webhook_view_credits_wallet(self, construct_webhook_event):
        intent = {"id": "pi_10", "metadata": {"payment_type": "wallet_topup", "user_id": str(self.user.pk), "wallet_amount": "300"}}
        construct_webhook_event.return_value = SimpleNamespace(
            type="payment_intent.succeeded", data=SimpleNamespace(object=intent),
        )
        response = self.client.post(
            reverse("billing:stripe_webhook"), data=b"{}", content_type="application/json", HTTP_STRIPE_SIGNATURE="t=1,v1=x",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(wallet_service.get_wallet(self.user).balance, 300)


class WalletViewTests(TestCase):
    def test_requires_login(self):
        response = self.client.get(reverse("billing:wallet_detail"))
        self.assertEqual(response.status_code, 401)

    def test_lists_balance_and_transactions(self):
        user = make_user()
        wallet_service.credit_wallet(user, 400, Transaction.REFUND)
        self.client.force_login(user)
        response = self.client.get(reverse("billing:wallet_detail"))
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["balance"], 400)
        self.assertEqual(data["transactions"][0]["type"], Transaction.REFUND)
