from django.contrib import admin
from .models import BankAccount, BankAccountDeleteRequest, Payout, PayoutLog


@admin.register(BankAccount)
class BankAccountAdmin(admin.ModelAdmin):
    list_display = ("id", "provider", "bank_name", "masked_account_number", "verification_status", "is_active", "created_at")
    list_filter = ("verification_status", "is_active")
    search_fields = ("provider__user__email", "account_holder_name")
    exclude = ("penny_test_amount",)


class PayoutLogInline(admin.TabularInline):
    model = PayoutLog
    extra = 0
    can_delete = False
    readonly_fields = ("action", "details", "performed_by", "metadata", "created_at")


@admin.register(Payout)
class PayoutAdmin(admin.ModelAdmin):
    list_display = ("id", "provider", "requested_amount", "actual_amount", "status", "requested_at")
    list_filter = ("status",)
    search_fields = ("provider__user__email", "gateway_transfer_id")
    readonly_fields = ("requested_at", "approved_at", "processed_at", "completed_at", "rejected_at", "failed_at", "hold_transaction")
    inlines = [PayoutLogInline]


@admin.register(BankAccountDeleteRequest)
class BankAccountDeleteRequestAdmin(admin.ModelAdmin):
    list_display = ("id", "provider", "bank_account", "status", "assigned_to", "created_at", "resolved_at")
    list_filter = ("status",)
    search_fields = ("provider__user__email",)
    readonly_fields = ("created_at", "resolved_at", "resolved_by")
