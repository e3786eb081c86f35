from django.db import models


class BankAccount(models.Model):
    """
    Provider bank account. Verified by a penny test before payouts are allowed.
    A provider has at most one account that is awaiting verification or verified.
    """

    PENDING = "PENDING"
    PENNY_TEST_SENT = "PENNY_TEST_SENT"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"
    DELETED = "DELETED"
    STATUS_CHOICES = [
        (PENDING, "Pending"),
        (PENNY_TEST_SENT, "Penny test sent"),
        (VERIFIED, "Verified"),
        (REJECTED, "Rejected"),
        (DELETED, "Deleted"),
    ]
    LIVE_STATUSES = (PENNY_TEST_SENT, VERIFIED)

    ACCOUNT_TYPE_CHOICES = [
        ("SAVINGS", "Savings"),
        ("CURRENT", "Current"),
    ]

    provider = models.ForeignKey("accounts.ProviderProfile", on_delete=models.CASCADE, related_name="bank_accounts")
    account_holder_name = models.CharField(max_length=100)
    account_number = models.CharField(max_length=18)
    ifsc_code = models.CharField(max_length=11)
    bank_name = models.CharField(max_length=100)
    branch_name = models.CharField(max_length=100, blank=True)
    account_type = models.CharField(max_length=10, choices=ACCOUNT_TYPE_CHOICES, default="SAVINGS")
    verification_status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING)
    penny_test_amount = models.DecimalField(max_digits=4, decimal_places=2, null=True, blank=True)
    penny_test_reference = models.CharField(max_length=100, blank=True)
    penny_test_attempts = models.PositiveSmallIntegerField(default=0)
    is_active = models.BooleanField(default=False)
    verified_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.bank_name} {self.masked_account_number} ({self.verification_status})"

    @property
    def masked_account_number(self) -> str:
        number = self.account_number or ""
        if len(number) <= 8:
            return f"****{number[-4:]}"
        return f"{number[:4]}****{number[-4:]}"


class Payout(models.Model):
    REQUESTED = "REQUESTED"
    APPROVED = "APPROVED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    FAILED = "FAILED"
    STATUS_CHOICES = [
        (REQUESTED, "Requested"),
        (APPROVED, "Approved"),
        (PROCESSING, "Processing"),
        (COMPLETED, "Completed"),
        (REJECTED, "Rejected"),
        (FAILED, "Failed"),
    ]
    OPEN_STATUSES = (REQUESTED, APPROVED, PROCESSING)

    provider = models.ForeignKey("accounts.ProviderProfile", on_delete=models.CASCADE, related_name="payouts")
    bank_account = models.ForeignKey(BankAccount, on_delete=models.PROTECT, related_name="payouts")
    requested_amount = models.PositiveIntegerField()
    actual_amount = models.PositiveIntegerField(null=True, blank=True)
    transaction_fee = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=REQUESTED)
    rejection_reason = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    approved_by = models.ForeignKey(
        "accounts.CustomUser",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    gateway_transfer_id = models.CharField(max_length=100, blank=True)
    gateway_response = models.JSONField(default=dict, blank=True)
    hold_transaction = models.OneToOneField(
        "billing.Transaction",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payout",
    )
    requested_at = models.DateTimeField(auto_now_add=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    rejected_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-requested_at"]
        indexes = [
            models.Index(fields=["status", "requested_at"], name="payouts_status_requested_idx"),
        ]

    def __str__(self):
        return f"Payout {self.pk} {self.requested_amount} ({self.status})"


class PayoutLog(models.Model):
    """Append-only audit trail of payout transitions. ``performed_by`` null means SYSTEM."""

    payout = models.ForeignKey(Payout, on_delete=models.CASCADE, related_name="logs")
    action = models.CharField(max_length=20)
    details = models.TextField()
    performed_by = models.ForeignKey(
        "accounts.CustomUser",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Payout logs cannot be modified")
        super().save(*args, **kwargs)

    @property
    def performer_label(self) -> str:
        return self.performed_by.email if self.performed_by_id else "SYSTEM"


class BankAccountDeleteRequest(models.Model):
    """
    Provider request to retire a live bank account. Staff approval marks the account
    DELETED (it stays referenced by past payouts) so a new one can be added.
    """

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    STATUS_CHOICES = [
        (PENDING, "Pending"),
        (APPROVED, "Approved"),
        (REJECTED, "Rejected"),
    ]

    bank_account = models.ForeignKey(BankAccount, on_delete=models.CASCADE, related_name="delete_requests")
    provider = models.ForeignKey(
        "accounts.ProviderProfile",
        on_delete=models.CASCADE,
        related_name="bank_account_delete_requests",
    )
    reason = models.CharField(max_length=500)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING)
    notes = models.TextField(blank=True)
    assigned_to = models.ForeignKey(
        "accounts.CustomUser",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    resolved_by = models.ForeignKey(
        "accounts.CustomUser",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"Delete request {self.pk} for {self.bank_account_id} ({self.status})"
