"""
Domain events emitted after a financial transition commits.

Services fire these through ``transaction.on_commit`` so a rolled-back
transition never notifies anyone. ``general.notifier`` consumes them; a failing
receiver is logged and does not stop the others.
"""
import logging

from django.db import transaction
from django.dispatch import Signal

logger = logging.getLogger(__name__)

# kwargs: booking
booking_confirmed = Signal()
# kwargs: booking, refund_amount, cancelled_by
booking_cancelled = Signal()
# kwargs: dispute
dispute_opened = Signal()
# kwargs: dispute, refund_amount
dispute_resolved = Signal()
# kwargs: payout
payout_status_changed = Signal()


def _send(signal, sender, **kwargs):
    for receiver, response in signal.send_robust(sender=sender, **kwargs):
        if isinstance(response, Exception):
            logger.error(
                "signals: receiver %s failed: %r",
                getattr(receiver, "__qualname__", receiver), response,
                exc_info=(type(response), response, response.__traceback__),
            )


def emit_on_commit(signal, sender, **kwargs):
    transaction.on_commit(lambda: _send(signal, sender, **kwargs))
