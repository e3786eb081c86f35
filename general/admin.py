from django.contrib import admin, messages
from django.utils.html import format_html

from .models import Notification


class NotificationAdmin(admin.ModelAdmin):
    list_display = ('title', 'user', 'is_opened', 'created_at', 'batch_id_display')
    list_filter = ('is_opened', 'created_at')
    search_fields = ('title', 'description', 'user__email')
    readonly_fields = ('batch_id', 'created_at')
    date_hierarchy = 'created_at'
    actions = ['delete_batch']

    def batch_id_display(self, obj):
        """Batch ID with the number of notifications sent by the same event"""
        count = Notification.objects.filter(batch_id=obj.batch_id).count()
        return format_html(
            '<span style="font-family: monospace;">{}</span> <span style="color: #666;">({} notifications)</span>',
            str(obj.batch_id)[:8] + '...',
            count
        )
    batch_id_display.short_description = 'Batch ID'

    def delete_batch(self, request, queryset):
        batch_ids = set(queryset.values_list('batch_id', flat=True))
        deleted_count, _ = Notification.objects.filter(batch_id__in=batch_ids).delete()
        self.message_user(
            request,
            f'Successfully deleted {deleted_count} notification(s) from {len(batch_ids)} batch(es).',
            messages.SUCCESS
        )
    delete_batch.short_description = 'Delete all notifications in selected batch(es)'

    def has_add_permission(self, request):
        return False


admin.site.register(Notification, NotificationAdmin)
