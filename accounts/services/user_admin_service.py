"""
Super admin actions on user accounts.
"""
import logging

from accounts.models import CustomUser
from general.errors import AuthorizationError, ValidationError

logger = logging.getLogger(__name__)


def _check_actor(target, performed_by):
    if performed_by.role != CustomUser.SUPER_ADMIN:
        raise AuthorizationError("Only super admins can change account status.")
    if target.pk == performed_by.pk:
        raise AuthorizationError("You cannot change the status of your own account.")


def suspend_user(target, performed_by) -> CustomUser:
    _check_actor(target, performed_by)
    if target.role == CustomUser.SUPER_ADMIN:
        raise AuthorizationError("Cannot suspend Super Admin accounts")
    if target.status == CustomUser.SUSPENDED:
        raise ValidationError("User is already suspended.")
    target.status = CustomUser.SUSPENDED
    target.is_active = False
    target.save(update_fields=["status", "is_active"])
    logger.info("user_admin: user=%s suspended by=%s", target.pk, performed_by.pk)
    return target


def activate_user(target, performed_by) -> CustomUser:
    _check_actor(target, performed_by)
    if target.status == CustomUser.ACTIVE and target.is_active:
        raise ValidationError("User is already active.")
    target.status = CustomUser.ACTIVE
    target.is_active = True
    target.save(update_fields=["status", "is_active"])
    logger.info("user_admin: user=%s activated by=%s", target.pk, performed_by.pk)
    return target


def user_to_dict(user) -> dict:
    profile = getattr(user, "profile", None)
    provider = getattr(user, "provider_profile", None)
    wallet = getattr(user, "wallet", None)
    return {
        "id": user.pk,
        "email": user.email,
        "role": user.role,
        "status": user.status,
        "is_active": user.is_active,
        "is_email_verified": user.is_email_verified,
        "is_phone_verified": user.is_phone_verified,
        "phone": user.phone,
        "date_joined": user.date_joined.isoformat(),
        "profile": {
            "first_name": profile.first_name,
            "last_name": profile.last_name,
            "timezone": profile.timezone,
        } if profile else None,
        "provider": {
            "hourly_rate": provider.hourly_rate,
            "total_sessions": provider.total_sessions,
            "verification_status": provider.verification_status,
        } if provider else None,
        "wallet": {
            "balance": wallet.balance,
            "pending_amount": wallet.pending_amount,
        } if wallet else None,
    }
