from django.contrib import admin
from .models import Transaction, Wallet


@admin.register(Wallet)
class WalletAdmin(admin.ModelAdmin):
    list_display = ("user", "balance", "pending_amount", "updated_at")
    search_fields = ("user__email",)
    readonly_fields = ("balance", "pending_amount", "updated_at")


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "booking", "type", "amount", "status", "gateway_order_id", "created_at")
    list_filter = ("type", "status")
    search_fields = ("gateway_order_id", "gateway_payment_id", "user__email")
    readonly_fields = ("created_at", "updated_at")
