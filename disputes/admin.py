from django.contrib import admin
from .models import Dispute, DisputeCommunication, DisputeResolutionRecord


class DisputeCommunicationInline(admin.TabularInline):
    model = DisputeCommunication
    extra = 0
    readonly_fields = ("from_user", "to_user", "message", "is_internal", "created_at")


@admin.register(Dispute)
class DisputeAdmin(admin.ModelAdmin):
    list_display = ("id", "booking", "initiated_by", "priority", "status", "resolution", "created_at")
    list_filter = ("status", "priority", "resolution")
    search_fields = ("reason", "booking__seeker__email", "booking__provider__email")
    readonly_fields = ("created_at", "updated_at", "resolved_at")
    inlines = [DisputeCommunicationInline]


@admin.register(DisputeResolutionRecord)
class DisputeResolutionRecordAdmin(admin.ModelAdmin):
    list_display = ("dispute", "resolution", "amount", "resolved_by", "created_at")

    def has_change_permission(self, request, obj=None):
        return False
