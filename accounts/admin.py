from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.contrib.auth.models import Group

from .forms import CustomUserChangeForm, CustomUserCreationForm
from .models import CustomUser, Profile, ProviderProfile

# Hide Authentication and Authorization groups
admin.site.unregister(Group)


class UserAdmin(BaseUserAdmin):
    add_form = CustomUserCreationForm
    form = CustomUserChangeForm
    model = CustomUser
    list_display = ("email", "role", "status", "is_email_verified", "is_staff")
    list_filter = ("role", "status", "is_email_verified", "is_staff")
    search_fields = ("email",)
    ordering = ("email",)
    actions = ["verify_emails", "unverify_emails"]
    fieldsets = (
        (None, {"fields": ("email", "password")}),
        ("Marketplace", {"fields": ("role", "status", "phone")}),
        ("Verification", {"fields": ("is_email_verified", "is_phone_verified")}),
        ("Permissions", {"fields": ("is_active", "is_staff", "is_superuser", "user_permissions")}),
        ("Important dates", {"fields": ("last_login", "date_joined")}),
    )
    add_fieldsets = (
        (None, {"classes": ("wide",), "fields": ("email", "role", "password1", "password2")}),
    )

    def verify_emails(self, request, queryset):
        """Admin action to verify selected users' emails"""
        updated = queryset.update(is_email_verified=True)
        self.message_user(request, f"{updated} user(s) email(s) verified successfully.")
    verify_emails.short_description = "Verify email for selected users"

    def unverify_emails(self, request, queryset):
        updated = queryset.update(is_email_verified=False)
        self.message_user(request, f"{updated} user(s) email(s) unverified.")
    unverify_emails.short_description = "Unverify email for selected users"


class ProfileAdmin(admin.ModelAdmin):
    list_display = ("first_name", "last_name", "email_display", "timezone")
    search_fields = ("first_name", "last_name", "user__email")
    raw_id_fields = ("user",)

    def email_display(self, obj):
        return obj.user.email
    email_display.short_description = "Email"


class ProviderProfileAdmin(admin.ModelAdmin):
    list_display = ("user", "hourly_rate", "commission_rate", "total_sessions", "verification_status")
    list_filter = ("verification_status",)
    search_fields = ("user__email",)
    raw_id_fields = ("user",)


admin.site.register(CustomUser, UserAdmin)
admin.site.register(Profile, ProfileAdmin)
admin.site.register(ProviderProfile, ProviderProfileAdmin)
