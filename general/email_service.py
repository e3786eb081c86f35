"""
Transactional emails for bookings, disputes and payouts.

Every message is an HTML template under ``templates/emails`` rendered with the
site name and domain, sent through Django's configured mail backend.
"""
import os
from typing import Any, Dict, Optional

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string


def _display_name(user) -> str:
    profile = getattr(user, 'profile', None)
    if profile is not None and getattr(profile, 'first_name', ''):
        return profile.first_name
    return "there"


class EmailService:
    """Builds and sends the marketplace emails. All methods return True once handed to the backend."""

    @staticmethod
    def get_site_domain() -> str:
        """Public base URL in prod (``SITE_DOMAIN``), localhost otherwise."""
        if getattr(settings, 'DEVELOPMENT_MODE', 'dev') != 'prod':
            return 'http://localhost:8000'
        domain = os.getenv('SITE_DOMAIN', 'https://consultmarket.in')
        return domain if domain.startswith(('http://', 'https://')) else f'https://{domain}'

    @staticmethod
    def send_email(
        subject: str,
        recipient_email: str,
        template_name: str,
        context: Optional[Dict[str, Any]] = None,
        fail_silently: bool = False,
    ) -> bool:
        """
        Render ``emails/<template_name>.html`` and send it to one recipient.

        With ``fail_silently`` a backend error returns False instead of raising.
        """
        context = dict(context or {})
        context.setdefault('site_domain', EmailService.get_site_domain())
        context.setdefault('site_name', getattr(settings, 'SITE_NAME', 'Consult Marketplace'))

        msg = EmailMultiAlternatives(
            subject=subject,
            body='',
            from_email=settings.DEFAULT_FROM_EMAIL,
            to=[recipient_email],
        )
        msg.attach_alternative(render_to_string(f'emails/{template_name}.html', context), "text/html")
        try:
            msg.send(fail_silently=False)
        except Exception:
            if not fail_silently:
                raise
            return False
        return True

    @staticmethod
    def send_booking_confirmation_email(user, booking, counterpart, fail_silently: bool = False) -> bool:
        """Sent to both parties when a paid booking is confirmed."""
        context = {
            'user_name': _display_name(user),
            'counterpart_name': _display_name(counterpart),
            'booking': booking,
            'is_provider': user.pk == booking.provider_id,
        }
        return EmailService.send_email(
            subject="Booking Confirmed",
            recipient_email=user.email,
            template_name='booking_confirmed',
            context=context,
            fail_silently=fail_silently,
        )

    @staticmethod
    def send_booking_cancelled_email(user, booking, refund_amount: int, fail_silently: bool = False) -> bool:
        context = {
            'user_name': _display_name(user),
            'booking': booking,
            'refund_amount': refund_amount,
        }
        return EmailService.send_email(
            subject="Booking Cancelled",
            recipient_email=user.email,
            template_name='booking_cancelled',
            context=context,
            fail_silently=fail_silently,
        )

    @staticmethod
    def send_dispute_opened_email(user, dispute, fail_silently: bool = False) -> bool:
        context = {
            'user_name': _display_name(user),
            'dispute': dispute,
            'booking': dispute.booking,
        }
        return EmailService.send_email(
            subject=f"Dispute opened ({dispute.priority} priority)",
            recipient_email=user.email,
            template_name='dispute_opened',
            context=context,
            fail_silently=fail_silently,
        )

    @staticmethod
    def send_dispute_resolved_email(user, dispute, refund_amount: int, fail_silently: bool = False) -> bool:
        context = {
            'user_name': _display_name(user),
            'dispute': dispute,
            'booking': dispute.booking,
            'refund_amount': refund_amount,
        }
        return EmailService.send_email(
            subject="Dispute Resolution Update",
            recipient_email=user.email,
            template_name='dispute_resolved',
            context=context,
            fail_silently=fail_silently,
        )

    @staticmethod
    def send_payout_status_email(user, payout, fail_silently: bool = False) -> bool:
        context = {
            'user_name': _display_name(user),
            'payout': payout,
        }
        return EmailService.send_email(
            subject=f"Payout {payout.get_status_display().lower()}",
            recipient_email=user.email,
            template_name='payout_status',
            context=context,
            fail_silently=fail_silently,
        )
