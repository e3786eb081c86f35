from django.db import models


class Dispute(models.Model):
    """A disagreement over one booking, raised by a participant and resolved by staff."""

    OPEN = "OPEN"
    UNDER_REVIEW = "UNDER_REVIEW"
    RESOLVED = "RESOLVED"
    STATUS_CHOICES = [
        (OPEN, "Open"),
        (UNDER_REVIEW, "Under review"),
        (RESOLVED, "Resolved"),
    ]
    OPEN_STATUSES = (OPEN, UNDER_REVIEW)

    REFUND_SEEKER = "REFUND_SEEKER"
    FAVOR_PROVIDER = "FAVOR_PROVIDER"
    PARTIAL_REFUND = "PARTIAL_REFUND"
    RESOLUTION_CHOICES = [
        (REFUND_SEEKER, "Full refund to seeker"),
        (FAVOR_PROVIDER, "In favor of provider"),
        (PARTIAL_REFUND, "Partial refund"),
    ]

    PRIORITY_CHOICES = [
        ("low", "Low"),
        ("medium", "Medium"),
        ("high", "High"),
    ]

    booking = models.OneToOneField("bookings.Booking", on_delete=models.CASCADE, related_name="dispute")
    initiated_by = models.ForeignKey(
        "accounts.CustomUser",
        on_delete=models.SET_NULL,
        null=True,
        related_name="initiated_disputes",
    )
    assigned_to = models.ForeignKey(
        "accounts.CustomUser",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="assigned_disputes",
    )
    reason = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default="medium")
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=OPEN)
    resolution = models.CharField(max_length=20, choices=RESOLUTION_CHOICES, blank=True)
    refund_amount = models.PositiveIntegerField(null=True, blank=True)
    resolved_by = models.ForeignKey(
        "accounts.CustomUser",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="resolved_disputes",
    )
    resolution_notes = models.TextField(blank=True)
    resolved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="disputes_status_created_idx"),
        ]

    def __str__(self):
        return f"Dispute {self.pk} booking={self.booking_id} {self.status}"


class DisputeResolutionRecord(models.Model):
    """Audit row written once per resolution. Never updated."""

    dispute = models.ForeignKey(Dispute, on_delete=models.CASCADE, related_name="resolution_records")
    resolved_by = models.ForeignKey("accounts.CustomUser", on_delete=models.SET_NULL, null=True, related_name="+")
    resolution = models.CharField(max_length=20, choices=Dispute.RESOLUTION_CHOICES)
    amount = models.PositiveIntegerField(default=0)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]


class DisputeCommunication(models.Model):
    dispute = models.ForeignKey(Dispute, on_delete=models.CASCADE, related_name="communications")
    from_user = models.ForeignKey("accounts.CustomUser", on_delete=models.CASCADE, related_name="dispute_messages_sent")
    to_user = models.ForeignKey(
        "accounts.CustomUser",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="dispute_messages_received",
    )
    message = models.TextField()
    is_internal = models.BooleanField(default=False, help_text="Staff-only note, hidden from the booking participants.")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at"]
