"""
Account deletion cascade.

CLEANUP ORDER:
1. Force-cancel the user's open bookings (refund the surviving seeker)
2. Dispute communications
3. Dispute resolution records
4. Disputes
5. Sessions
6. Messages
7. The user's transactions
8. Bookings
9. Provider data (payout logs, payouts, deletion requests, bank accounts, provider profile)
10. Wallet
11. Profile
12. The user

Every step is a plain function of the user, idempotent, and returns the number of
rows it touched. ``delete_user_account`` runs them all in one database transaction.
"""
import logging

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from accounts.models import CustomUser, Profile, ProviderProfile
from billing.models import Transaction, Wallet
from bookings.models import Booking, Message, Session
from bookings.services.booking_service import force_cancel_booking
from disputes.models import Dispute, DisputeCommunication, DisputeResolutionRecord
from general.errors import AuthorizationError
from payouts.models import BankAccount, BankAccountDeleteRequest, Payout, PayoutLog

logger = logging.getLogger(__name__)


def _booking_q(user, prefix=""):
    return Q(**{f"{prefix}seeker": user}) | Q(**{f"{prefix}provider": user})


def cancel_open_bookings(user, now=None) -> int:
    now = now or timezone.now()
    cancelled = 0
    for booking in Booking.objects.filter(_booking_q(user), status__in=Booking.OPEN_STATUSES):
        refund = force_cancel_booking(booking, refund_to_seeker=booking.seeker_id != user.pk, now=now)
        if refund:
            logger.info("account_deletion: refunded %s to seeker=%s booking=%s", refund, booking.seeker_id, booking.pk)
        cancelled += 1
    return cancelled


def delete_dispute_communications(user) -> int:
    return DisputeCommunication.objects.filter(
        _booking_q(user, "dispute__booking__") | Q(from_user=user) | Q(to_user=user)
    ).delete()[0]


def delete_dispute_resolution_records(user) -> int:
    return DisputeResolutionRecord.objects.filter(_booking_q(user, "dispute__booking__")).delete()[0]


def delete_disputes(user) -> int:
    return Dispute.objects.filter(_booking_q(user, "booking__")).delete()[0]


def delete_sessions(user) -> int:
    return Session.objects.filter(_booking_q(user, "booking__")).delete()[0]


def delete_messages(user) -> int:
    return Message.objects.filter(_booking_q(user, "booking__") | Q(sender=user) | Q(receiver=user)).delete()[0]


def delete_transactions(user) -> int:
    return Transaction.objects.filter(user=user).delete()[0]


def delete_bookings(user) -> int:
    return Booking.objects.filter(_booking_q(user)).delete()[0]


def delete_provider_data(user) -> int:
    profile = ProviderProfile.objects.filter(user=user).first()
    if profile is None:
        return 0
    deleted = PayoutLog.objects.filter(payout__provider=profile).delete()[0]
    deleted += Payout.objects.filter(provider=profile).delete()[0]
    deleted += BankAccountDeleteRequest.objects.filter(provider=profile).delete()[0]
    deleted += BankAccount.objects.filter(provider=profile).delete()[0]
    deleted += ProviderProfile.objects.filter(pk=profile.pk).delete()[0]
    return deleted


def delete_wallet(user) -> int:
    wallet = Wallet.objects.filter(user=user).first()
    if wallet is None:
        return 0
    if wallet.balance or wallet.pending_amount:
        logger.warning(
            "account_deletion: deleting wallet of user=%s with balance=%s pending=%s",
            user.pk, wallet.balance, wallet.pending_amount,
        )
    return Wallet.objects.filter(pk=wallet.pk).delete()[0]


def delete_profile(user) -> int:
    return Profile.objects.filter(user=user).delete()[0]


def delete_user(user) -> int:
    return CustomUser.objects.filter(pk=user.pk).delete()[0]


CLEANUP_STEPS = [
    ("bookings_cancelled", cancel_open_bookings),
    ("dispute_communications", delete_dispute_communications),
    ("dispute_resolution_records", delete_dispute_resolution_records),
    ("disputes", delete_disputes),
    ("sessions", delete_sessions),
    ("messages", delete_messages),
    ("transactions", delete_transactions),
    ("bookings", delete_bookings),
    ("provider_data", delete_provider_data),
    ("wallet", delete_wallet),
    ("profile", delete_profile),
    ("user", delete_user),
]


def delete_user_account(user, performed_by) -> dict:
    """
    Delete ``user`` and everything that belongs to them. All or nothing.

    Raises:
        AuthorizationError: caller is not a super admin, deletes themselves, or targets a super admin.
    """
    if performed_by.role != CustomUser.SUPER_ADMIN:
        raise AuthorizationError("Only super admins can delete accounts.")
    if performed_by.pk == user.pk:
        raise AuthorizationError("Super Admin cannot delete their own account")
    if user.role == CustomUser.SUPER_ADMIN:
        raise AuthorizationError("Cannot delete Super Admin accounts")

    summary = {}
    user_id, email = user.pk, user.email
    with transaction.atomic():
        for name, step in CLEANUP_STEPS:
            summary[name] = step(user)
    logger.info("account_deletion: user=%s (%s) deleted by=%s %s", user_id, email, performed_by.pk, summary)
    return summary
