from django.db import models
from django.utils import timezone
import uuid


class Notification(models.Model):
    """In-app notification; created by the notifier after bookings, disputes and payouts change."""
    user = models.ForeignKey("accounts.CustomUser", on_delete=models.CASCADE, related_name="notifications")
    batch_id = models.UUIDField(default=uuid.uuid4, editable=False, db_index=True, help_text="Groups notifications created by the same event")
    title = models.CharField(max_length=200)
    description = models.TextField()
    created_at = models.DateTimeField(default=timezone.now)
    is_opened = models.BooleanField(default=False)

    class Meta:
        verbose_name = "Notification"
        verbose_name_plural = "Notifications"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', '-created_at'], name='general_notif_user_created_idx'),
            models.Index(fields=['user', 'is_opened'], name='general_notif_user_opened_idx'),
        ]

    def __str__(self):
        return f"{self.title} - {self.user.email}"
