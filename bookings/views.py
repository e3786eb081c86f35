"""
Booking API: create and pay, cancel, complete, start session, chat.
"""
import logging

from django.contrib.auth import get_user_model
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from accounts.models import CustomUser
from billing.gateways.cashfree import CashfreeClient
from bookings.forms import BookingCancelForm, BookingCreateForm, MessageForm
from bookings.models import Booking
from bookings.services import booking_service
from general.decorators import api_login_required, json_api, parse_json_body, role_required, validate_form
from general.errors import NotFoundError

logger = logging.getLogger(__name__)


def booking_to_dict(booking: Booking) -> dict:
    return {
        "id": booking.pk,
        "seeker_id": booking.seeker_id,
        "provider_id": booking.provider_id,
        "start_time": booking.start_time.isoformat(),
        "end_time": booking.end_time.isoformat(),
        "amount": booking.amount,
        "status": booking.status,
        "meet_url": booking.meet_url,
        "recording_url": booking.recording_url,
        "payment_deadline": booking_service.payment_deadline(booking).isoformat(),
    }


@require_http_methods(["GET"])
@json_api
@api_login_required
def booking_list(request):
    """GET /api/bookings/  Bookings where the caller is seeker or provider."""
    user = request.user
    if user.role == CustomUser.PROVIDER:
        bookings = Booking.objects.filter(provider=user)
    else:
        bookings = Booking.objects.filter(seeker=user)
    status = request.GET.get("status")
    if status:
        bookings = bookings.filter(status=status)
    return JsonResponse({"bookings": [booking_to_dict(b) for b in bookings[:100]]})


@require_http_methods(["GET"])
@json_api
@api_login_required
def booking_detail(request, booking_id):
    booking = booking_service.get_booking_for(request.user, booking_id)
    return JsonResponse({"booking": booking_to_dict(booking)})


@csrf_exempt
@require_http_methods(["POST"])
@json_api
@role_required(CustomUser.SEEKER)
def booking_create(request):
    """
    POST /api/bookings/create/
    {"provider_id": 5, "start_time": "2026-05-01T10:00:00Z", "duration_minutes": 60}
    Creates a PENDING booking and opens the payment order.
    """
    data = validate_form(BookingCreateForm, parse_json_body(request))
    provider = get_user_model().objects.filter(pk=data["provider_id"], is_active=True).first()
    if provider is None:
        raise NotFoundError("Provider not found")
    booking = booking_service.create_booking(request.user, provider, data["start_time"], data["duration_minutes"])
    payment = booking_service.start_payment(booking, request.user, CashfreeClient())
    booking.refresh_from_db()
    return JsonResponse({"success": True, "booking": booking_to_dict(booking), "payment": payment}, status=201)


@csrf_exempt
@require_http_methods(["POST"])
@json_api
@role_required(CustomUser.SEEKER)
def booking_payment(request, booking_id):
    """POST /api/bookings/<id>/payment/  Start or retry payment before the deadline."""
    booking = booking_service.get_booking_for(request.user, booking_id)
    payment = booking_service.start_payment(booking, request.user, CashfreeClient())
    return JsonResponse({"success": True, "payment": payment})


@csrf_exempt
@require_http_methods(["POST"])
@json_api
@api_login_required
def booking_cancel(request, booking_id):
    data = validate_form(BookingCancelForm, parse_json_body(request))
    booking = booking_service.get_booking_for(request.user, booking_id)
    refund = booking_service.cancel_booking(booking, request.user, reason=data.get("reason", ""))
    return JsonResponse({"success": True, "refund_amount": refund})


@csrf_exempt
@require_http_methods(["POST"])
@json_api
@api_login_required
def booking_complete(request, booking_id):
    booking = booking_service.get_booking_for(request.user, booking_id)
    booking = booking_service.complete_booking(booking, actor=request.user)
    return JsonResponse({"success": True, "booking": booking_to_dict(booking)})


@csrf_exempt
@require_http_methods(["POST"])
@json_api
@api_login_required
def session_start(request, booking_id):
    booking = booking_service.get_booking_for(request.user, booking_id)
    session = booking_service.start_session(booking, request.user)
    return JsonResponse({
        "success": True,
        "meet_url": booking.meet_url,
        "started_at": session.started_at.isoformat(),
    })


@csrf_exempt
@require_http_methods(["GET", "POST"])
@json_api
@api_login_required
def chat_messages(request, booking_id):
    """GET lists the booking chat; POST {"body": "..."} sends a message to the other participant."""
    booking = booking_service.get_booking_for(request.user, booking_id)
    if request.method == "POST":
        data = validate_form(MessageForm, parse_json_body(request))
        message = booking_service.post_message(booking, request.user, data["body"])
        return JsonResponse({"success": True, "id": message.pk, "created_at": message.created_at.isoformat()}, status=201)
    messages = booking_service.list_messages(booking, request.user)
    return JsonResponse({
        "messages": [
            {
                "id": m.pk,
                "sender_id": m.sender_id,
                "body": m.body,
                "created_at": m.created_at.isoformat(),
                "read_at": m.read_at.isoformat() if m.read_at else None,
            }
            for m in messages
        ]
    })
