from django.contrib import admin
from .models import Booking, Message, Session


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ("id", "seeker", "provider", "start_time", "amount", "status", "created_at")
    list_filter = ("status",)
    search_fields = ("seeker__email", "provider__email")
    readonly_fields = ("created_at", "updated_at", "completed_at", "earnings_released_at", "cancelled_at")


@admin.register(Session)
class SessionAdmin(admin.ModelAdmin):
    list_display = ("booking", "started_at", "ended_at", "chat_expires_at")


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ("id", "booking", "sender", "receiver", "created_at", "read_at")
    search_fields = ("body",)
