"""
Django management command for the periodic booking checks.

Usage:
    python manage.py process_bookings

Run from cron every few minutes: releases unpaid bookings past their payment
deadline, completes confirmed bookings that have ended and releases provider
earnings once the dispute window has closed.
"""

from django.core.management.base import BaseCommand
from django.utils import timezone

from bookings.services.scheduled import process_due_bookings


class Command(BaseCommand):
    help = 'Expire unpaid bookings, complete ended bookings and release provider earnings'

    def handle(self, *args, **options):
        import sys
        import traceback

        try:
            self.stdout.write(f'[{timezone.now()}] Starting booking processing...')
            result = process_due_bookings()
            self.stdout.write(
                self.style.SUCCESS(
                    f'[{timezone.now()}] Booking processing completed: '
                    f'{result["bookings_expired"]} unpaid bookings expired, '
                    f'{result["bookings_completed"]} bookings completed, '
                    f'{result["earnings_released"]} earnings released, '
                    f'{result["errors"]} errors'
                )
            )
        except Exception as e:
            self.stderr.write(f'[{timezone.now()}] ERROR in process_bookings: {str(e)}')
            self.stderr.write(traceback.format_exc())
            sys.exit(1)
