"""
Dispute API: participants open and discuss disputes, staff review and resolve them.
"""
import logging

from django.contrib.auth import get_user_model
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from accounts.models import CustomUser
from bookings.services.booking_service import get_booking_for
from disputes.forms import DisputeCommunicateForm, DisputeCreateForm, DisputeResolveForm
from disputes.models import Dispute
from disputes.services import dispute_service
from general.decorators import api_login_required, json_api, parse_json_body, role_required, validate_form
from general.errors import NotFoundError

logger = logging.getLogger(__name__)


def dispute_to_dict(dispute: Dispute) -> dict:
    booking = dispute.booking
    return {
        "id": dispute.pk,
        "booking_id": booking.pk,
        "booking_amount": booking.amount,
        "booking_start_time": booking.start_time.isoformat(),
        "initiated_by": dispute.initiated_by_id,
        "assigned_to": dispute.assigned_to_id,
        "reason": dispute.reason,
        "description": dispute.description,
        "priority": dispute.priority,
        "status": dispute.status,
        "resolution": dispute.resolution or None,
        "refund_amount": dispute.refund_amount,
        "created_at": dispute.created_at.isoformat(),
    }


@require_http_methods(["GET"])
@json_api
@role_required(*CustomUser.STAFF_ROLES)
def dispute_list(request):
    """GET /api/disputes/  Open and under-review disputes, newest first."""
    return JsonResponse({"disputes": [dispute_to_dict(d) for d in dispute_service.list_open_disputes()]})


@csrf_exempt
@require_http_methods(["POST"])
@json_api
@api_login_required
def dispute_create(request):
    data = validate_form(DisputeCreateForm, parse_json_body(request))
    booking = get_booking_for(request.user, data["booking_id"])
    dispute = dispute_service.open_dispute(
        booking,
        request.user,
        data["reason"],
        description=data.get("description", ""),
        priority=data["priority"],
    )
    return JsonResponse({"success": True, "dispute": dispute_to_dict(dispute)}, status=201)


@csrf_exempt
@require_http_methods(["GET", "POST"])
@json_api
@api_login_required
def dispute_communicate(request, dispute_id):
    """GET lists the thread (internal notes for staff only); POST adds a message."""
    dispute = dispute_service.get_dispute_for(request.user, dispute_id)
    if request.method == "GET":
        messages = dispute_service.list_communications(dispute, request.user)
        return JsonResponse({
            "messages": [
                {
                    "id": m.pk,
                    "from_user_id": m.from_user_id,
                    "to_user_id": m.to_user_id,
                    "message": m.message,
                    "is_internal": m.is_internal,
                    "created_at": m.created_at.isoformat(),
                }
                for m in messages
            ]
        })
    data = validate_form(DisputeCommunicateForm, parse_json_body(request))
    to_user = None
    if data.get("to_user_id"):
        to_user = get_user_model().objects.filter(pk=data["to_user_id"]).first()
        if to_user is None:
            raise NotFoundError("Recipient not found")
    communication = dispute_service.add_communication(
        dispute,
        request.user,
        data["message"],
        to_user=to_user,
        is_internal=data.get("is_internal", False),
    )
    return JsonResponse({"success": True, "id": communication.pk}, status=201)


@csrf_exempt
@require_http_methods(["POST"])
@json_api
@role_required(*CustomUser.STAFF_ROLES)
def dispute_resolve(request):
    """
    POST /api/disputes/resolve/
    {"dispute_id": 3, "resolution": "PARTIAL_REFUND", "amount": 1000, "notes": "..."}
    """
    data = validate_form(DisputeResolveForm, parse_json_body(request))
    dispute = Dispute.objects.filter(pk=data["dispute_id"]).first()
    if dispute is None:
        raise NotFoundError("Dispute not found")
    refund = dispute_service.resolve_dispute(
        dispute,
        request.user,
        data["resolution"],
        amount=data.get("amount"),
        notes=data.get("notes", ""),
    )
    return JsonResponse({"success": True, "refund_amount": refund})
