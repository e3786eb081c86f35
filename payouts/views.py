"""
Provider bank account and payout API, plus the staff payout queue.
"""
import logging

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from accounts.models import CustomUser
from billing.services.wallet_service import get_wallet
from general.decorators import json_api, parse_json_body, role_required, validate_form
from general.errors import NotFoundError
from payouts.forms import (
    BankAccountDeleteRequestForm,
    BankAccountForm,
    DeleteRequestResolveForm,
    PayoutDecisionForm,
    PayoutRequestForm,
    PennyTestForm,
)
from payouts.gateways.cashfree_payouts import CashfreePayoutsClient
from payouts.models import BankAccountDeleteRequest, Payout
from payouts.services import payout_service

logger = logging.getLogger(__name__)


def _bank_account_dict(account) -> dict:
    return {
        "id": account.pk,
        "account_holder_name": account.account_holder_name,
        "account_number": account.masked_account_number,
        "ifsc_code": account.ifsc_code,
        "bank_name": account.bank_name,
        "branch_name": account.branch_name,
        "account_type": account.account_type,
        "verification_status": account.verification_status,
        "is_active": account.is_active,
        "verified_at": account.verified_at.isoformat() if account.verified_at else None,
        "penny_test_attempts": account.penny_test_attempts,
        "created_at": account.created_at.isoformat(),
    }


@csrf_exempt
@require_http_methods(["GET", "POST"])
@json_api
@role_required(CustomUser.PROVIDER)
def bank_account(request):
    """GET current bank account (masked); POST registers one and sends the penny test."""
    if request.method == "GET":
        profile = payout_service.get_provider_profile(request.user)
        account = payout_service.current_bank_account(profile)
        if account is None:
            return JsonResponse({"bank_account": None, "can_add_account": True})
        return JsonResponse({
            "bank_account": _bank_account_dict(account),
            "can_add_account": account.verification_status not in account.LIVE_STATUSES,
        })
    data = validate_form(BankAccountForm, parse_json_body(request))
    account = payout_service.add_bank_account(request.user, data, CashfreePayoutsClient())
    return JsonResponse({
        "success": True,
        "message": "Bank account added and penny test sent",
        "bank_account": _bank_account_dict(account),
    }, status=201)


@csrf_exempt
@require_http_methods(["POST"])
@json_api
@role_required(CustomUser.PROVIDER)
def bank_account_verify(request):
    data = validate_form(PennyTestForm, parse_json_body(request))
    account = payout_service.verify_penny_test(request.user, data["penny_amount"])
    return JsonResponse({
        "success": True,
        "message": "Bank account verified successfully! You can now request payouts.",
        "bank_account": _bank_account_dict(account),
    })


@csrf_exempt
@require_http_methods(["GET", "POST"])
@json_api
@role_required(CustomUser.PROVIDER)
def payout_request(request):
    """GET payout history and wallet summary; POST {"amount": 1500} requests a payout."""
    if request.method == "GET":
        wallet = get_wallet(request.user)
        return JsonResponse({
            "available": wallet.balance,
            "pending_amount": wallet.pending_amount,
            "payouts": payout_service.provider_payout_history(request.user),
        })
    data = validate_form(PayoutRequestForm, parse_json_body(request))
    payout = payout_service.request_payout(request.user, data["amount"])
    return JsonResponse({
        "success": True,
        "message": "Payout request submitted successfully. It will be reviewed by our team.",
        "payout": payout_service.payout_to_dict(payout),
    }, status=201)


@require_http_methods(["GET"])
@json_api
@role_required(*CustomUser.STAFF_ROLES)
def admin_payout_list(request):
    payouts = payout_service.payout_queue(status=request.GET.get("status") or None)[:100]
    return JsonResponse({
        "payouts": [
            {**payout_service.payout_to_dict(p), "provider_email": p.provider.user.email}
            for p in payouts
        ]
    })


def _get_payout(payout_id) -> Payout:
    payout = Payout.objects.filter(pk=payout_id).first()
    if payout is None:
        raise NotFoundError("Payout not found")
    return payout


@csrf_exempt
@require_http_methods(["POST"])
@json_api
@role_required(*CustomUser.STAFF_ROLES)
def admin_payout_decide(request, payout_id):
    """
    POST /api/admin/payouts/<id>/approve/
    {"action": "approve", "transaction_fee": 10} sends the transfer right away;
    {"action": "reject", "rejection_reason": "..."} returns the funds to the provider.
    """
    data = validate_form(PayoutDecisionForm, parse_json_body(request))
    payout = _get_payout(payout_id)
    if data["action"] == "reject":
        payout = payout_service.reject_payout(
            payout, request.user, data["rejection_reason"], notes=data.get("notes", ""),
        )
        return JsonResponse({
            "success": True,
            "message": "Payout rejected successfully",
            "payout": payout_service.payout_to_dict(payout),
        })
    payout = payout_service.approve_payout(
        payout, request.user, transaction_fee=data.get("transaction_fee") or 0, notes=data.get("notes", ""),
    )
    payout = payout_service.dispatch_payout(payout, CashfreePayoutsClient())
    message = "Payout approved and sent for processing" if payout.status == Payout.PROCESSING else "Payout approved but transfer failed"
    return JsonResponse({"success": True, "message": message, "payout": payout_service.payout_to_dict(payout)})


@csrf_exempt
@require_http_methods(["POST"])
@json_api
@role_required(*CustomUser.STAFF_ROLES)
def admin_payout_complete(request, payout_id):
    payout = payout_service.complete_payout(_get_payout(payout_id), actor=request.user)
    return JsonResponse({"success": True, "payout": payout_service.payout_to_dict(payout)})


def _delete_request_dict(delete_request) -> dict:
    return {
        "id": delete_request.pk,
        "bank_account_id": delete_request.bank_account_id,
        "reason": delete_request.reason,
        "status": delete_request.status,
        "notes": delete_request.notes,
        "created_at": delete_request.created_at.isoformat(),
        "resolved_at": delete_request.resolved_at.isoformat() if delete_request.resolved_at else None,
    }


@csrf_exempt
@require_http_methods(["GET", "POST"])
@json_api
@role_required(CustomUser.PROVIDER)
def bank_account_delete_request(request):
    """GET the provider's recent deletion requests; POST {"reason": "..."} files a new one."""
    if request.method == "GET":
        return JsonResponse({
            "requests": [_delete_request_dict(r) for r in payout_service.provider_delete_requests(request.user)],
        })
    data = validate_form(BankAccountDeleteRequestForm, parse_json_body(request))
    delete_request = payout_service.request_bank_account_deletion(request.user, data.get("reason", ""))
    return JsonResponse({
        "success": True,
        "message": "Delete request submitted successfully. An admin will review it shortly.",
        "request": _delete_request_dict(delete_request),
    }, status=201)


@require_http_methods(["GET"])
@json_api
@role_required(*CustomUser.STAFF_ROLES)
def admin_delete_request_list(request):
    status = request.GET.get("status") or BankAccountDeleteRequest.PENDING
    requests = payout_service.delete_request_queue(request.user, status=status)[:100]
    return JsonResponse({
        "requests": [
            {
                **_delete_request_dict(r),
                "provider_email": r.provider.user.email,
                "bank_account": _bank_account_dict(r.bank_account),
            }
            for r in requests
        ]
    })


@csrf_exempt
@require_http_methods(["POST"])
@json_api
@role_required(*CustomUser.STAFF_ROLES)
def admin_delete_request_resolve(request, request_id):
    data = validate_form(DeleteRequestResolveForm, parse_json_body(request))
    delete_request = BankAccountDeleteRequest.objects.filter(pk=request_id).first()
    if delete_request is None:
        raise NotFoundError("Delete request not found")
    delete_request = payout_service.resolve_delete_request(
        delete_request, request.user, data["action"], notes=data.get("notes", ""),
    )
    if delete_request.status == BankAccountDeleteRequest.APPROVED:
        message = "Bank account deletion approved and account marked as deleted"
    else:
        message = "Bank account deletion request rejected"
    return JsonResponse({"success": True, "message": message, "request": _delete_request_dict(delete_request)})
