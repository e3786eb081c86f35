import json
import unittest
from unittest import mock

from django import forms
from django.contrib.auth.models import AnonymousUser
from django.core import mail
from django.db import transaction
from django.dispatch import Signal
from django.http import JsonResponse
from django.test import RequestFactory, TestCase

from accounts.models import CustomUser
from bookings.services import booking_service
from disputes.services import dispute_service
from general.decorators import json_api, parse_json_body, role_required, validate_form
from general.errors import (
    AuthorizationError,
    ConsistencyViolation,
    ExternalServiceError,
    MarketplaceError,
    NotFoundError,
    ValidationError,
)
from general.models import Notification
from general.signals import booking_confirmed, emit_on_commit
from general.test_utils import make_paid_booking, make_provider, make_user


class ErrorTests(unittest.TestCase):
    def test_as_dict(self):
        self.assertEqual(NotFoundError("Booking not found").as_dict(), {"error": "Booking not found"})
        error = ValidationError("Invalid request data", details={"amount": ["Required"]})
        self.assertEqual(error.as_dict(), {"error": "Invalid request data", "details": {"amount": ["Required"]}})

    def test_status_codes(self):
        self.assertEqual(MarketplaceError("x").status_code, 400)
        self.assertEqual(AuthorizationError("x").status_code, 403)
        self.assertEqual(ExternalServiceError("x").status_code, 502)
        self.assertEqual(MarketplaceError("x", status_code=409).status_code, 409)
        self.assertTrue(issubclass(ConsistencyViolation, ValidationError))


class AmountForm(forms.Form):
    amount = forms.IntegerField(min_value=1)


class DecoratorTests(TestCase):
    def setUp(self):
        self.factory = RequestFactory()

    def request(self, user=None, body=b""):
        request = self.factory.post("/api/test/", data=body, content_type="application/json")
        request.user = user or AnonymousUser()
        return request

    def test_json_api_renders_marketplace_errors(self):
        @json_api
        def view(request):
            raise NotFoundError("Booking not found")

        response = view(self.request())
        self.assertEqual(response.status_code, 404)
        self.assertEqual(json.loads(response.content), {"error": "Booking not found"})

    def test_json_api_hides_unexpected_errors(self):
        @json_api
        def view(request):
            raise RuntimeError("database exploded")

        with self.assertLogs("general.decorators", level="ERROR"):
            response = view(self.request())
        self.assertEqual(response.status_code, 500)
        self.assertNotIn("exploded", response.content.decode())

    def test_role_required(self):
        @json_api
        @role_required(CustomUser.PROVIDER)
        def view(request):
            return JsonResponse({"ok": True})

        self.assertEqual(view(self.request()).status_code, 401)
        self.assertEqual(view(self.request(make_user())).status_code, 403)
        self.assertEqual(view(self.request(make_provider())).status_code, 200)

    def test_parse_json_body(self):
        self.assertEqual(parse_json_body(self.request()), {})
        self.assertEqual(parse_json_body(self.request(body=b'{"amount": 5}')), {"amount": 5})
        for body in (b"{not json", b"[1, 2]"):
            with self.assertRaisesMessage(ValidationError, "Invalid JSON"):
                parse_json_body(self.request(body=body))

    def test_validate_form(self):
        self.assertEqual(validate_form(AmountForm, {"amount": "5"}), {"amount": 5})
        with self.assertRaises(ValidationError) as ctx:
            validate_form(AmountForm, {"amount": 0})
        self.assertEqual(list(ctx.exception.details), ["amount"])


class NotifierTests(TestCase):
    def setUp(self):
        self.seeker = make_user()
        self.provider = make_provider()

    def test_booking_confirmed_notifies_both_parties(self):
        with self.captureOnCommitCallbacks(execute=True):
            booking = make_paid_booking(self.seeker, self.provider)
        self.assertEqual(
            set(Notification.objects.filter(title="Booking confirmed").values_list("user_id", flat=True)),
            {self.seeker.pk, self.provider.pk},
        )
        self.assertEqual(sorted(m.to[0] for m in mail.outbox), sorted([self.seeker.email, self.provider.email]))
        self.assertIn(booking.meet_url, mail.outbox[0].alternatives[0][0])

    def test_cancelling_party_is_not_notified(self):
        booking = make_paid_booking(self.seeker, self.provider)
        with self.captureOnCommitCallbacks(execute=True):
            booking_service.cancel_booking(booking, self.seeker)
        notified = Notification.objects.filter(title="Booking cancelled").values_list("user_id", flat=True)
        self.assertEqual(list(notified), [self.provider.pk])

    def test_dispute_opened_reaches_staff(self):
        staff = make_user(CustomUser.EMPLOYEE)
        booking = make_paid_booking(self.seeker, self.provider)
        with self.captureOnCommitCallbacks(execute=True):
            dispute_service.open_dispute(booking, self.seeker, "No show")
        self.assertEqual(sorted(m.to[0] for m in mail.outbox), sorted([self.provider.email, staff.email]))

    def test_email_failure_does_not_propagate(self):
        with mock.patch(
            "general.notifier.EmailService.send_booking_confirmation_email", side_effect=ConnectionError("smtp down"),
        ):
            with self.captureOnCommitCallbacks(execute=True):
                make_paid_booking(self.seeker, self.provider)
        self.assertEqual(Notification.objects.count(), 2)

    def test_rolled_back_transition_sends_nothing(self):
        receiver = mock.Mock()
        booking_confirmed.connect(receiver, dispatch_uid="test-rollback")
        self.addCleanup(booking_confirmed.disconnect, dispatch_uid="test-rollback")
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            try:
                with transaction.atomic():
                    emit_on_commit(booking_confirmed, sender=None, booking=None)
                    raise RuntimeError("abort")
            except RuntimeError:
                pass
        self.assertEqual(callbacks, [])
        receiver.assert_not_called()

    def test_failing_receiver_is_logged_and_others_still_run(self):
        signal = Signal()

        def broken(sender, **kwargs):
            raise RuntimeError("receiver blew up")

        after = mock.Mock()
        signal.connect(broken, weak=False)
        signal.connect(after, weak=False)
        with self.assertLogs("general.signals", level="ERROR") as logs:
            with self.captureOnCommitCallbacks(execute=True):
                emit_on_commit(signal, sender=None, booking=None)
        after.assert_called_once()
        self.assertIn("receiver blew up", logs.output[0])
