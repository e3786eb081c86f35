"""
Decorators for the JSON API views.

Order matters: ``json_api`` must be the outermost so that authentication and
role errors raised by the inner decorators are rendered as JSON too.
"""
import json
import logging
from functools import wraps

from django.http import JsonResponse

from general.errors import AuthenticationRequired, AuthorizationError, MarketplaceError, ValidationError

logger = logging.getLogger(__name__)


def json_api(view_func):
    """Render MarketplaceError as {"error": ...}; anything else becomes a logged 500."""
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        try:
            return view_func(request, *args, **kwargs)
        except MarketplaceError as e:
            return JsonResponse(e.as_dict(), status=e.status_code)
        except Exception:
            logger.exception("%s: unexpected error", view_func.__name__)
            return JsonResponse({"error": "Something went wrong. Please try again."}, status=500)
    return wrapper


def api_login_required(view_func):
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            raise AuthenticationRequired("Unauthorized. Please log in again.")
        return view_func(request, *args, **kwargs)
    return wrapper


def role_required(*roles):
    """Allow only users whose role is one of ``roles``."""
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            if not request.user.is_authenticated:
                raise AuthenticationRequired("Unauthorized. Please log in again.")
            if request.user.role not in roles:
                raise AuthorizationError("You do not have permission to perform this action.")
            return view_func(request, *args, **kwargs)
        return wrapper
    return decorator


def parse_json_body(request) -> dict:
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except json.JSONDecodeError:
        raise ValidationError("Invalid JSON")
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON")
    return data


def validate_form(form_class, data: dict) -> dict:
    """Validate ``data`` with a Django form and return cleaned_data or raise ValidationError."""
    form = form_class(data)
    if not form.is_valid():
        details = {field: [str(e) for e in errors] for field, errors in form.errors.items()}
        raise ValidationError("Invalid request data", details=details)
    return form.cleaned_data
