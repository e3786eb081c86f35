"""
Typed Cashfree webhook events.

``parse_event`` turns the decoded JSON body into one of the dataclasses below.
Known event types with missing identifiers are rejected; unknown types become
``UnknownEvent`` and are acknowledged without processing.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from general.errors import ValidationError

PAYMENT_SUCCESS = "PAYMENT_SUCCESS_WEBHOOK"
PAYMENT_FAILED = "PAYMENT_FAILED_WEBHOOK"
PAYMENT_USER_DROPPED = "PAYMENT_USER_DROPPED_WEBHOOK"


@dataclass(frozen=True)
class PaymentSucceeded:
    order_id: str
    payment_id: str
    amount: Optional[Decimal] = None


@dataclass(frozen=True)
class PaymentFailed:
    order_id: str


@dataclass(frozen=True)
class PaymentUserDropped:
    order_id: str


@dataclass(frozen=True)
class UnknownEvent:
    type: str


WebhookEvent = Union[PaymentSucceeded, PaymentFailed, PaymentUserDropped, UnknownEvent]


def _section(data: dict, name: str) -> dict:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ValidationError(f"Webhook field data.{name} must be an object")
    return value


def _order_id(data: dict) -> str:
    order_id = _section(data, "order").get("order_id")
    if not order_id:
        raise ValidationError("Webhook payload is missing data.order.order_id")
    return str(order_id)


def _amount(raw) -> Optional[Decimal]:
    if raw is None or raw == "":
        return None
    try:
        return Decimal(str(raw))
    except InvalidOperation:
        raise ValidationError("Webhook field data.payment.payment_amount is not a number")


def parse_event(payload) -> WebhookEvent:
    if not isinstance(payload, dict):
        raise ValidationError("Webhook payload must be a JSON object")
    event_type = payload.get("type") or ""
    data = payload.get("data") or {}
    if not isinstance(data, dict):
        raise ValidationError("Webhook field data must be an object")

    if event_type == PAYMENT_SUCCESS:
        payment = _section(data, "payment")
        payment_id = payment.get("cf_payment_id")
        if payment_id in (None, ""):
            raise ValidationError("Webhook payload is missing data.payment.cf_payment_id")
        return PaymentSucceeded(
            order_id=_order_id(data),
            payment_id=str(payment_id),
            amount=_amount(payment.get("payment_amount")),
        )
    if event_type == PAYMENT_FAILED:
        return PaymentFailed(order_id=_order_id(data))
    if event_type == PAYMENT_USER_DROPPED:
        return PaymentUserDropped(order_id=_order_id(data))
    return UnknownEvent(type=str(event_type))
