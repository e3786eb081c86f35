"""
Billing models: per-user wallet and the transaction ledger.
Wallet balances change only through billing.services.wallet_service.
"""
from django.db import models


class Wallet(models.Model):
    """One per user. ``pending_amount`` holds funds reserved for in-flight payouts."""

    user = models.OneToOneField(
        "accounts.CustomUser",
        on_delete=models.CASCADE,
        related_name="wallet",
    )
    balance = models.IntegerField(default=0)
    pending_amount = models.IntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Wallet"
        verbose_name_plural = "Wallets"

    def __str__(self):
        return f"Wallet user={self.user_id} balance={self.balance} pending={self.pending_amount}"


class Transaction(models.Model):
    """
    Ledger entry for every money movement. Never update a wallet without creating one.

    Wallet-affecting types (REFUND, EARNING, TOPUP, PAYOUT) carry their signed effect
    on the owner's wallet. BOOKING_PAYMENT (paid through the gateway) and COMMISSION
    (platform share, recorded on the provider) are positive and never touch a wallet.
    """

    BOOKING_PAYMENT = "BOOKING_PAYMENT"
    REFUND = "REFUND"
    COMMISSION = "COMMISSION"
    EARNING = "EARNING"
    TOPUP = "TOPUP"
    PAYOUT = "PAYOUT"
    TYPE_CHOICES = [
        (BOOKING_PAYMENT, "Booking payment"),
        (REFUND, "Refund"),
        (COMMISSION, "Commission"),
        (EARNING, "Provider earning"),
        (TOPUP, "Wallet top-up"),
        (PAYOUT, "Payout"),
    ]
    WALLET_TYPES = (REFUND, EARNING, TOPUP, PAYOUT)

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    STATUS_CHOICES = [
        (PENDING, "Pending"),
        (COMPLETED, "Completed"),
        (FAILED, "Failed"),
        (CANCELLED, "Cancelled"),
    ]

    user = models.ForeignKey(
        "accounts.CustomUser",
        on_delete=models.CASCADE,
        related_name="transactions",
    )
    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transactions",
    )
    amount = models.IntegerField()
    type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING)
    gateway_order_id = models.CharField(max_length=255, blank=True, null=True, unique=True)
    gateway_payment_id = models.CharField(max_length=255, blank=True, null=True)
    description = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["booking", "type", "status"], name="billing_txn_booking_type_idx"),
        ]

    def __str__(self):
        return f"Transaction {self.type} user={self.user_id} {self.amount} ({self.status})"
