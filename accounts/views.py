"""
Super admin user management API.
"""
import logging

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from accounts.forms import UserActionForm
from accounts.models import CustomUser
from accounts.services.account_deletion import delete_user_account
from accounts.services.user_admin_service import activate_user, suspend_user, user_to_dict
from general.decorators import json_api, parse_json_body, role_required, validate_form
from general.errors import NotFoundError

logger = logging.getLogger(__name__)


@csrf_exempt
@require_http_methods(["GET", "PATCH"])
@json_api
@role_required(CustomUser.SUPER_ADMIN)
def user_detail(request, user_id):
    """
    GET returns the user with profile, provider and wallet summaries.
    PATCH {"action": "suspend" | "activate" | "delete"}.
    """
    target = CustomUser.objects.select_related("profile").filter(pk=user_id).first()
    if target is None:
        raise NotFoundError("User not found")
    if request.method == "GET":
        return JsonResponse({"user": user_to_dict(target)})

    action = validate_form(UserActionForm, parse_json_body(request))["action"]
    if action == "delete":
        summary = delete_user_account(target, request.user)
        return JsonResponse({
            "success": True,
            "message": "User account deleted successfully",
            "deleted": summary,
        })
    if action == "suspend":
        target = suspend_user(target, request.user)
        message = "User suspended successfully"
    else:
        target = activate_user(target, request.user)
        message = "User activated successfully"
    return JsonResponse({"success": True, "message": message, "user": user_to_dict(target)})
