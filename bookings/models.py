from datetime import timedelta

from django.db import models


class Booking(models.Model):
    """
    A paid consultation between a seeker and a provider.

    Status changes go through bookings.services.booking_service; unpaid bookings
    past their payment deadline are deleted rather than cancelled.
    """

    PENDING = "PENDING"
    PAYMENT_PENDING = "PAYMENT_PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    DISPUTED = "DISPUTED"
    RESOLVED = "RESOLVED"
    STATUS_CHOICES = [
        (PENDING, "Pending"),
        (PAYMENT_PENDING, "Payment pending"),
        (CONFIRMED, "Confirmed"),
        (COMPLETED, "Completed"),
        (CANCELLED, "Cancelled"),
        (DISPUTED, "Disputed"),
        (RESOLVED, "Resolved"),
    ]
    UNPAID_STATUSES = (PENDING, PAYMENT_PENDING)
    OPEN_STATUSES = (PENDING, PAYMENT_PENDING, CONFIRMED)

    seeker = models.ForeignKey(
        "accounts.CustomUser",
        on_delete=models.CASCADE,
        related_name="seeker_bookings",
    )
    provider = models.ForeignKey(
        "accounts.CustomUser",
        on_delete=models.CASCADE,
        related_name="provider_bookings",
    )
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    amount = models.PositiveIntegerField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING)
    meet_url = models.URLField(blank=True)
    recording_url = models.URLField(blank=True)
    cancelled_by = models.ForeignKey(
        "accounts.CustomUser",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    cancellation_reason = models.TextField(blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    earnings_released_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-start_time"]
        indexes = [
            models.Index(fields=["status", "start_time"], name="bookings_status_start_idx"),
        ]

    def __str__(self):
        return f"Booking {self.pk} {self.status} {self.start_time:%Y-%m-%d %H:%M}"

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time

    def is_participant(self, user) -> bool:
        return user is not None and user.pk in (self.seeker_id, self.provider_id)

    def other_party(self, user):
        return self.provider if user.pk == self.seeker_id else self.seeker


class Session(models.Model):
    """Runtime record of a confirmed booking: when it actually ran and when chat closes."""

    booking = models.OneToOneField(Booking, on_delete=models.CASCADE, related_name="session")
    started_at = models.DateTimeField(null=True, blank=True)
    ended_at = models.DateTimeField(null=True, blank=True)
    chat_expires_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"Session for booking {self.booking_id}"


class Message(models.Model):
    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name="messages")
    sender = models.ForeignKey("accounts.CustomUser", on_delete=models.CASCADE, related_name="sent_messages")
    receiver = models.ForeignKey("accounts.CustomUser", on_delete=models.CASCADE, related_name="received_messages")
    body = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)
    read_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["created_at"]

    def __str__(self):
        return f"Message {self.pk} booking={self.booking_id}"
