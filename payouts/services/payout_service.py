"""
Bank account verification and the payout workflow.

Payout states: REQUESTED -> APPROVED -> PROCESSING -> COMPLETED, with REQUESTED -> REJECTED
and APPROVED -> FAILED as the unhappy exits. The requested amount is held in the
provider wallet from request until the payout completes (settled) or ends unpaid
(released). Every transition writes a PayoutLog row.
"""
import logging
from decimal import Decimal, InvalidOperation

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from accounts.models import CustomUser, ProviderProfile
from billing.models import Transaction
from billing.services import wallet_service
from general.errors import AuthorizationError, ExternalServiceError, NotFoundError, ValidationError
from general.signals import emit_on_commit, payout_status_changed
from payouts import config
from payouts.models import BankAccount, BankAccountDeleteRequest, Payout, PayoutLog

logger = logging.getLogger(__name__)


class PayoutError(ValidationError):
    """Payout is not in a state that allows the requested action."""
    pass


def get_provider_profile(user) -> ProviderProfile:
    if user.role != CustomUser.PROVIDER:
        raise AuthorizationError("Only providers can manage payouts.")
    profile = ProviderProfile.objects.filter(user=user).first()
    if profile is None:
        raise NotFoundError("Provider profile not found")
    return profile


def current_bank_account(profile: ProviderProfile):
    return BankAccount.objects.filter(provider=profile).order_by("-created_at", "-pk").first()


def _require_staff(user):
    if not user.is_marketplace_staff:
        raise AuthorizationError("Only staff can manage payouts.")


def _log(payout: Payout, action: str, details: str, performed_by=None, metadata=None) -> PayoutLog:
    return PayoutLog.objects.create(
        payout=payout,
        action=action,
        details=details,
        performed_by=performed_by,
        metadata=metadata or {},
    )


def _lock(payout: Payout) -> Payout:
    return Payout.objects.select_for_update().select_related("bank_account").get(pk=payout.pk)


# ----- Bank account -----

def add_bank_account(provider_user, data: dict, gateway) -> BankAccount:
    """
    Register a bank account and send the penny test.

    Refused while another account is awaiting verification or verified. A gateway
    failure leaves the account PENDING (it is replaced on the next attempt).
    """
    profile = get_provider_profile(provider_user)
    with transaction.atomic():
        ProviderProfile.objects.select_for_update().filter(pk=profile.pk).first()
        existing = current_bank_account(profile)
        if existing is not None and existing.verification_status in BankAccount.LIVE_STATUSES:
            raise ValidationError("Bank account already exists. Please request deletion to add a new one.")
        if existing is not None and existing.verification_status == BankAccount.PENDING:
            existing.delete()
        account = BankAccount.objects.create(
            provider=profile,
            account_holder_name=data["account_holder_name"],
            account_number=data["account_number"],
            ifsc_code=data["ifsc_code"].upper(),
            bank_name=data["bank_name"],
            branch_name=data.get("branch_name") or "",
            account_type=data.get("account_type") or "SAVINGS",
            verification_status=BankAccount.PENDING,
        )

    try:
        result = gateway.send_penny_test(account)
    except ExternalServiceError as e:
        logger.warning("payout_service: penny test failed account=%s: %s", account.pk, e.message)
        raise ExternalServiceError("Failed to send penny test. Please check your bank details.", details={"gateway": e.message})

    account.verification_status = BankAccount.PENNY_TEST_SENT
    account.penny_test_amount = result["penny_amount"]
    account.penny_test_reference = result.get("reference_id", "")
    account.penny_test_attempts = 0
    account.save(update_fields=[
        "verification_status", "penny_test_amount", "penny_test_reference", "penny_test_attempts", "updated_at",
    ])
    logger.info("payout_service: penny test sent account=%s provider=%s", account.pk, profile.pk)
    return account


def verify_penny_test(provider_user, amount, now=None) -> BankAccount:
    """
    Check the amount the provider read from their statement.
    Wrong answers count towards PENNY_TEST_MAX_ATTEMPTS; reaching it rejects the account.
    """
    now = now or timezone.now()
    try:
        amount = Decimal(str(amount))
    except InvalidOperation:
        raise ValidationError("Invalid penny test amount.")
    profile = get_provider_profile(provider_user)
    with transaction.atomic():
        account = BankAccount.objects.select_for_update().filter(provider=profile).order_by("-created_at", "-pk").first()
        if account is None:
            raise NotFoundError("No bank account found")
        if account.verification_status != BankAccount.PENNY_TEST_SENT:
            raise ValidationError("Bank account is not awaiting penny test verification")
        if account.penny_test_attempts >= config.PENNY_TEST_MAX_ATTEMPTS:
            raise ValidationError("Too many verification attempts. Please add a new bank account.")

        if abs(amount - (account.penny_test_amount or Decimal("0"))) < Decimal("0.01"):
            account.verification_status = BankAccount.VERIFIED
            account.is_active = True
            account.verified_at = now
            account.save(update_fields=["verification_status", "is_active", "verified_at", "updated_at"])
            logger.info("payout_service: bank account verified account=%s", account.pk)
            return account

        account.penny_test_attempts += 1
        if account.penny_test_attempts >= config.PENNY_TEST_MAX_ATTEMPTS:
            account.verification_status = BankAccount.REJECTED
            account.is_active = False
        account.save(update_fields=["penny_test_attempts", "verification_status", "is_active", "updated_at"])
        remaining = config.PENNY_TEST_MAX_ATTEMPTS - account.penny_test_attempts

    if remaining == 0:
        raise ValidationError(
            "Verification failed. Maximum attempts reached. Please add a new bank account.",
            details={"attempts_remaining": 0},
        )
    raise ValidationError(
        "Incorrect amount. Please check your bank statement and try again.",
        details={"attempts_remaining": remaining},
    )


# ----- Bank account deletion -----

def request_bank_account_deletion(provider_user, reason: str = "") -> BankAccountDeleteRequest:
    """Ask staff to retire the current live bank account. One pending request at a time."""
    profile = get_provider_profile(provider_user)
    with transaction.atomic():
        ProviderProfile.objects.select_for_update().filter(pk=profile.pk).first()
        account = current_bank_account(profile)
        if account is None or account.verification_status not in BankAccount.LIVE_STATUSES:
            raise NotFoundError("No bank account found to delete")
        if BankAccountDeleteRequest.objects.filter(bank_account=account, status=BankAccountDeleteRequest.PENDING).exists():
            raise ValidationError("Delete request already pending")
        delete_request = BankAccountDeleteRequest.objects.create(
            bank_account=account,
            provider=profile,
            reason=(reason or "").strip() or "Provider requested account deletion",
        )
    logger.info("payout_service: delete request=%s for account=%s provider=%s", delete_request.pk, account.pk, profile.pk)
    return delete_request


def provider_delete_requests(provider_user, limit: int = 5):
    profile = get_provider_profile(provider_user)
    return list(BankAccountDeleteRequest.objects.filter(provider=profile)[:limit])


def delete_request_queue(actor, status: str = BankAccountDeleteRequest.PENDING):
    """Requests in ``status``. Employees see unassigned or their own pending ones, and those they resolved."""
    _require_staff(actor)
    requests = BankAccountDeleteRequest.objects.filter(status=status).select_related("bank_account", "provider__user")
    if actor.role == CustomUser.EMPLOYEE:
        if status == BankAccountDeleteRequest.PENDING:
            requests = requests.filter(Q(assigned_to__isnull=True) | Q(assigned_to=actor))
        else:
            requests = requests.filter(resolved_by=actor)
    return requests


def resolve_delete_request(delete_request: BankAccountDeleteRequest, actor, action: str, notes: str = "", now=None):
    """
    Approve (account -> DELETED, inactive) or reject a pending deletion request.
    Approval is refused while the provider has a payout in flight.
    """
    now = now or timezone.now()
    _require_staff(actor)
    if action not in ("approve", "reject"):
        raise ValidationError("Action must be approve or reject.")
    with transaction.atomic():
        delete_request = BankAccountDeleteRequest.objects.select_for_update().get(pk=delete_request.pk)
        if delete_request.status != BankAccountDeleteRequest.PENDING:
            raise ValidationError("Delete request already resolved")
        if action == "approve":
            if Payout.objects.filter(provider_id=delete_request.provider_id, status__in=Payout.OPEN_STATUSES).exists():
                raise ValidationError(
                    "Cannot delete bank account with pending payouts. Please process or reject pending payouts first."
                )
            BankAccount.objects.filter(pk=delete_request.bank_account_id).update(
                verification_status=BankAccount.DELETED,
                is_active=False,
                updated_at=now,
            )
            delete_request.status = BankAccountDeleteRequest.APPROVED
        else:
            delete_request.status = BankAccountDeleteRequest.REJECTED
        delete_request.resolved_at = now
        delete_request.resolved_by = actor
        delete_request.assigned_to = delete_request.assigned_to or actor
        delete_request.notes = notes or ""
        delete_request.save(update_fields=["status", "resolved_at", "resolved_by", "assigned_to", "notes"])
    logger.info(
        "payout_service: delete request=%s %s by=%s account=%s",
        delete_request.pk, delete_request.status, actor.pk, delete_request.bank_account_id,
    )
    return delete_request


# ----- Payouts -----

def request_payout(provider_user, amount: int) -> Payout:
    profile = get_provider_profile(provider_user)
    if not (config.PAYOUT_MIN_AMOUNT <= amount <= config.PAYOUT_MAX_AMOUNT):
        raise ValidationError(
            f"Payout amount must be between ₹{config.PAYOUT_MIN_AMOUNT} and ₹{config.PAYOUT_MAX_AMOUNT}."
        )
    with transaction.atomic():
        ProviderProfile.objects.select_for_update().filter(pk=profile.pk).first()
        account = current_bank_account(profile)
        if account is None or not account.is_active or account.verification_status != BankAccount.VERIFIED:
            raise ValidationError("Please verify your bank account first to request payouts")
        if Payout.objects.filter(provider=profile, status__in=Payout.OPEN_STATUSES).exists():
            raise ValidationError("You already have a pending payout request. Please wait for it to be processed.")
        payout = Payout.objects.create(
            provider=profile,
            bank_account=account,
            requested_amount=amount,
            status=Payout.REQUESTED,
        )
        payout.hold_transaction = wallet_service.hold_for_payout(
            provider_user, amount, description=f"Payout {payout.pk}",
        )
        payout.save(update_fields=["hold_transaction", "updated_at"])
        _log(payout, Payout.REQUESTED, f"Provider requested payout of ₹{amount}", performed_by=provider_user)
        emit_on_commit(payout_status_changed, sender=Payout, payout=payout)
    logger.info("payout_service: payout=%s requested provider=%s amount=%s", payout.pk, profile.pk, amount)
    return payout


def approve_payout(payout: Payout, actor, transaction_fee: int = 0, notes: str = "", now=None) -> Payout:
    now = now or timezone.now()
    _require_staff(actor)
    transaction_fee = transaction_fee or 0
    if not (0 <= transaction_fee <= config.PAYOUT_MAX_TRANSACTION_FEE):
        raise ValidationError(f"Transaction fee must be between 0 and {config.PAYOUT_MAX_TRANSACTION_FEE}.")
    with transaction.atomic():
        payout = _lock(payout)
        if payout.status != Payout.REQUESTED:
            raise PayoutError("Payout is not in a state that can be approved/rejected")
        actual_amount = payout.requested_amount - transaction_fee
        if actual_amount <= 0:
            raise ValidationError("Transaction fee cannot be greater than requested amount")
        payout.status = Payout.APPROVED
        payout.approved_at = now
        payout.approved_by = actor
        payout.actual_amount = actual_amount
        payout.transaction_fee = transaction_fee
        payout.notes = notes or ""
        payout.save(update_fields=[
            "status", "approved_at", "approved_by", "actual_amount", "transaction_fee", "notes", "updated_at",
        ])
        _log(
            payout,
            Payout.APPROVED,
            f"Payout approved by {actor.role.lower()}. Amount: ₹{actual_amount} (Fee: ₹{transaction_fee})",
            performed_by=actor,
        )
        emit_on_commit(payout_status_changed, sender=Payout, payout=payout)
    return payout


def reject_payout(payout: Payout, actor, rejection_reason: str, notes: str = "", now=None) -> Payout:
    now = now or timezone.now()
    _require_staff(actor)
    if not (rejection_reason or "").strip():
        raise ValidationError("Rejection reason is required")
    with transaction.atomic():
        payout = _lock(payout)
        if payout.status != Payout.REQUESTED:
            raise PayoutError("Payout is not in a state that can be approved/rejected")
        payout.status = Payout.REJECTED
        payout.rejected_at = now
        payout.rejection_reason = rejection_reason.strip()
        payout.notes = notes or ""
        payout.save(update_fields=["status", "rejected_at", "rejection_reason", "notes", "updated_at"])
        if payout.hold_transaction_id:
            wallet_service.release_payout_hold(payout.hold_transaction, status=Transaction.CANCELLED)
        _log(
            payout,
            Payout.REJECTED,
            f"Payout rejected by {actor.role.lower()}: {payout.rejection_reason}",
            performed_by=actor,
        )
        emit_on_commit(payout_status_changed, sender=Payout, payout=payout)
    return payout


def dispatch_payout(payout: Payout, gateway, now=None) -> Payout:
    """Send an approved payout to the bank. Gateway failure marks it FAILED and releases the hold."""
    now = now or timezone.now()
    with transaction.atomic():
        payout = _lock(payout)
        if payout.status != Payout.APPROVED:
            raise PayoutError("Only approved payouts can be sent.")
        try:
            result = gateway.request_transfer(payout)
        except ExternalServiceError as e:
            payout.status = Payout.FAILED
            payout.failed_at = now
            payout.notes = f"{payout.notes} | Cashfree Error: {e.message}".strip(" |")
            payout.save(update_fields=["status", "failed_at", "notes", "updated_at"])
            if payout.hold_transaction_id:
                wallet_service.release_payout_hold(payout.hold_transaction, status=Transaction.FAILED)
            _log(payout, Payout.FAILED, f"Cashfree payout failed: {e.message}", metadata={"error": e.message})
            logger.warning("payout_service: payout=%s transfer failed: %s", payout.pk, e.message)
        else:
            payout.status = Payout.PROCESSING
            payout.processed_at = now
            payout.gateway_transfer_id = result["transfer_id"]
            payout.gateway_response = result.get("response") or {}
            payout.save(update_fields=[
                "status", "processed_at", "gateway_transfer_id", "gateway_response", "updated_at",
            ])
            _log(
                payout,
                Payout.PROCESSING,
                f"Payout sent to Cashfree. Transfer ID: {payout.gateway_transfer_id}",
                metadata={"transfer_id": payout.gateway_transfer_id, "reference_id": result.get("reference_id", "")},
            )
        emit_on_commit(payout_status_changed, sender=Payout, payout=payout)
    return payout


def complete_payout(payout: Payout, actor=None, now=None) -> Payout:
    now = now or timezone.now()
    if actor is not None:
        _require_staff(actor)
    with transaction.atomic():
        payout = _lock(payout)
        if payout.status != Payout.PROCESSING:
            raise PayoutError("Only processing payouts can be completed.")
        payout.status = Payout.COMPLETED
        payout.completed_at = now
        payout.save(update_fields=["status", "completed_at", "updated_at"])
        if payout.hold_transaction_id:
            wallet_service.settle_payout_hold(payout.hold_transaction)
        _log(payout, Payout.COMPLETED, f"Payout of ₹{payout.actual_amount} completed", performed_by=actor)
        emit_on_commit(payout_status_changed, sender=Payout, payout=payout)
    return payout


# ----- Listings -----

def payout_to_dict(payout: Payout, with_logs: bool = False) -> dict:
    account = payout.bank_account
    data = {
        "id": payout.pk,
        "provider_id": payout.provider_id,
        "requested_amount": payout.requested_amount,
        "actual_amount": payout.actual_amount,
        "transaction_fee": payout.transaction_fee,
        "status": payout.status,
        "requested_at": payout.requested_at.isoformat(),
        "approved_at": payout.approved_at.isoformat() if payout.approved_at else None,
        "processed_at": payout.processed_at.isoformat() if payout.processed_at else None,
        "completed_at": payout.completed_at.isoformat() if payout.completed_at else None,
        "rejected_at": payout.rejected_at.isoformat() if payout.rejected_at else None,
        "rejection_reason": payout.rejection_reason,
        "bank_account": {
            "account_holder_name": account.account_holder_name,
            "bank_name": account.bank_name,
            "account_number": account.masked_account_number,
        },
    }
    if with_logs:
        data["recent_logs"] = [
            {"action": log.action, "details": log.details, "performed_by": log.performer_label, "created_at": log.created_at.isoformat()}
            for log in payout.logs.all()[:5]
        ]
    return data


def provider_payout_history(provider_user, limit: int = 20) -> list:
    profile = get_provider_profile(provider_user)
    payouts = Payout.objects.filter(provider=profile).select_related("bank_account")[:limit]
    return [payout_to_dict(p, with_logs=True) for p in payouts]


def payout_queue(status: str = None):
    payouts = Payout.objects.select_related("bank_account", "provider__user")
    if status:
        payouts = payouts.filter(status=status)
    else:
        payouts = payouts.filter(status__in=Payout.OPEN_STATUSES)
    return payouts
