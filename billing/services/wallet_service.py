"""
Wallet ledger service. All wallet balance changes go through here and create a Transaction.
Never modify Wallet.balance or Wallet.pending_amount outside this module.
"""
import logging

from django.db import transaction
from django.db.models import Sum

from billing.models import Transaction, Wallet
from general.errors import ConsistencyViolation

logger = logging.getLogger(__name__)


class WalletError(ConsistencyViolation):
    """Raised when a wallet operation would break the ledger (e.g. insufficient balance)."""
    pass


def get_wallet(user) -> Wallet:
    wallet, _ = Wallet.objects.get_or_create(user=user)
    return wallet


def _locked_wallet(user) -> Wallet:
    wallet = get_wallet(user)
    return Wallet.objects.select_for_update().get(pk=wallet.pk)


@transaction.atomic()
def credit_wallet(
    user,
    amount: int,
    txn_type: str,
    booking=None,
    description: str = "",
    gateway_order_id: str = None,
) -> Transaction:
    """
    Add funds to a wallet. Creates a completed Transaction (positive amount), increases balance.
    Only REFUND, EARNING and TOPUP credit a wallet.
    """
    if amount <= 0:
        raise WalletError("credit_wallet requires a positive amount")
    if txn_type not in (Transaction.REFUND, Transaction.EARNING, Transaction.TOPUP):
        raise WalletError(f"{txn_type} transactions do not credit a wallet")
    wallet = _locked_wallet(user)
    txn = Transaction.objects.create(
        user=user,
        booking=booking,
        amount=amount,
        type=txn_type,
        status=Transaction.COMPLETED,
        gateway_order_id=gateway_order_id,
        description=description[:255],
    )
    wallet.balance += amount
    wallet.save(update_fields=["balance", "updated_at"])
    logger.info("wallet: credit user=%s %s %s balance=%s", user.pk, txn_type, amount, wallet.balance)
    return txn


def record_transaction(
    user,
    amount: int,
    txn_type: str,
    booking=None,
    status: str = Transaction.PENDING,
    gateway_order_id: str = None,
    description: str = "",
) -> Transaction:
    """Ledger row for money that never passes through a wallet (gateway payments, commission)."""
    if txn_type in Transaction.WALLET_TYPES:
        raise WalletError(f"{txn_type} transactions must go through the wallet")
    if amount <= 0:
        raise WalletError("Transaction amount must be positive")
    return Transaction.objects.create(
        user=user,
        booking=booking,
        amount=amount,
        type=txn_type,
        status=status,
        gateway_order_id=gateway_order_id,
        description=description[:255],
    )


@transaction.atomic()
def hold_for_payout(user, amount: int, description: str = "") -> Transaction:
    """
    Reserve ``amount`` for a payout: balance -> pending_amount, pending PAYOUT transaction.
    Only the available balance counts; funds already pending never cover a new hold.
    """
    if amount <= 0:
        raise WalletError("Payout amount must be positive")
    wallet = _locked_wallet(user)
    if wallet.balance < amount:
        raise WalletError(f"Insufficient balance. Available: {wallet.balance}")
    txn = Transaction.objects.create(
        user=user,
        amount=-amount,
        type=Transaction.PAYOUT,
        status=Transaction.PENDING,
        description=description[:255],
    )
    wallet.balance -= amount
    wallet.pending_amount += amount
    wallet.save(update_fields=["balance", "pending_amount", "updated_at"])
    return txn


@transaction.atomic()
def release_payout_hold(hold: Transaction, status: str = Transaction.CANCELLED) -> Transaction:
    """Return held funds to the available balance. No-op if the hold is no longer pending."""
    hold = Transaction.objects.select_for_update().get(pk=hold.pk)
    if hold.status != Transaction.PENDING:
        logger.info("wallet: release skipped, hold=%s already %s", hold.pk, hold.status)
        return hold
    amount = -hold.amount
    wallet = _locked_wallet(hold.user)
    if wallet.pending_amount < amount:
        raise WalletError("Wallet pending amount is lower than the hold being released")
    wallet.pending_amount -= amount
    wallet.balance += amount
    wallet.save(update_fields=["balance", "pending_amount", "updated_at"])
    hold.status = status
    hold.save(update_fields=["status", "updated_at"])
    return hold


@transaction.atomic()
def settle_payout_hold(hold: Transaction) -> Transaction:
    """Funds have left the platform: drop them from pending_amount and complete the hold."""
    hold = Transaction.objects.select_for_update().get(pk=hold.pk)
    if hold.status != Transaction.PENDING:
        logger.info("wallet: settle skipped, hold=%s already %s", hold.pk, hold.status)
        return hold
    amount = -hold.amount
    wallet = _locked_wallet(hold.user)
    if wallet.pending_amount < amount:
        raise WalletError("Wallet pending amount is lower than the hold being settled")
    wallet.pending_amount -= amount
    wallet.save(update_fields=["pending_amount", "updated_at"])
    hold.status = Transaction.COMPLETED
    hold.save(update_fields=["status", "updated_at"])
    return hold


def booking_ledger(booking) -> dict:
    """
    Completed money movements for one booking.

    net_liability is what the platform still owes on the booking: zero once the
    payment has been fully split into refunds, provider earning and commission.
    """
    rows = (
        Transaction.objects.filter(booking=booking, status=Transaction.COMPLETED)
        .values("type")
        .annotate(total=Sum("amount"))
    )
    totals = {row["type"]: row["total"] or 0 for row in rows}
    payments = totals.get(Transaction.BOOKING_PAYMENT, 0)
    refunds = totals.get(Transaction.REFUND, 0)
    earnings = totals.get(Transaction.EARNING, 0)
    commission = totals.get(Transaction.COMMISSION, 0)
    return {
        "payments": payments,
        "refunds": refunds,
        "earnings": earnings,
        "commission": commission,
        "net_liability": payments - refunds - earnings - commission,
    }


def refundable_amount(booking) -> int:
    ledger = booking_ledger(booking)
    return max(ledger["payments"] - ledger["refunds"], 0)
