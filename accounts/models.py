from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models
from django.utils import timezone
from .managers import CustomUserManager


class CustomUser(AbstractBaseUser, PermissionsMixin):
    SEEKER = "SEEKER"
    PROVIDER = "PROVIDER"
    EMPLOYEE = "EMPLOYEE"
    SUPER_ADMIN = "SUPER_ADMIN"
    ROLE_CHOICES = [
        (SEEKER, "Seeker"),
        (PROVIDER, "Provider"),
        (EMPLOYEE, "Employee"),
        (SUPER_ADMIN, "Super Admin"),
    ]
    STAFF_ROLES = (EMPLOYEE, SUPER_ADMIN)

    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    STATUS_CHOICES = [
        (ACTIVE, "Active"),
        (SUSPENDED, "Suspended"),
    ]

    email = models.EmailField("email address", unique=True)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=SEEKER)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=ACTIVE)
    phone = models.CharField(max_length=20, blank=True)
    is_staff = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    is_email_verified = models.BooleanField(default=False, help_text="Designates whether this user's email has been verified.")
    is_phone_verified = models.BooleanField(default=False)
    date_joined = models.DateTimeField(default=timezone.now)

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = CustomUserManager()

    class Meta:
        verbose_name = "User"
        verbose_name_plural = "Users"

    def save(self, *args, **kwargs):
        """Override save to ensure email is always stored in lowercase"""
        if self.email:
            self.email = self.email.lower().strip()
        super().save(*args, **kwargs)

    def __str__(self):
        return self.email

    @property
    def is_marketplace_staff(self) -> bool:
        return self.role in self.STAFF_ROLES


class Profile(models.Model):
    user = models.OneToOneField("accounts.CustomUser", on_delete=models.CASCADE, related_name="profile")
    first_name = models.CharField(max_length=150)
    last_name = models.CharField(max_length=150, blank=True)
    timezone = models.CharField(max_length=64, default="Asia/Kolkata")
    bio = models.TextField(blank=True)

    class Meta:
        verbose_name = "Profile"
        verbose_name_plural = "Profiles"

    def __str__(self):
        return f"{self.first_name} {self.last_name} ({self.user.email})"


class ProviderProfile(models.Model):
    """Consultation provider. Rates are per hour in the billing unit."""
    VERIFICATION_CHOICES = [
        ("PENDING", "Pending"),
        ("VERIFIED", "Verified"),
        ("REJECTED", "Rejected"),
    ]

    user = models.OneToOneField("accounts.CustomUser", on_delete=models.CASCADE, related_name="provider_profile")
    expertise = models.JSONField(default=list, blank=True)
    hourly_rate = models.PositiveIntegerField()
    commission_rate = models.DecimalField(
        max_digits=4, decimal_places=3, blank=True, null=True,
        help_text="Overrides the platform commission for this provider (0 to 1).",
    )
    years_experience = models.PositiveIntegerField(default=0)
    total_sessions = models.PositiveIntegerField(default=0)
    verification_status = models.CharField(max_length=20, choices=VERIFICATION_CHOICES, default="PENDING")

    class Meta:
        verbose_name = "Provider Profile"
        verbose_name_plural = "Provider Profiles"

    def __str__(self):
        return f"Provider {self.user.email}"
