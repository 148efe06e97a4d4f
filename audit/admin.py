from django.contrib import admin

from .models import AuditLogEntry


@admin.register(AuditLogEntry)
class AuditLogEntryAdmin(admin.ModelAdmin):
    list_display = ("created_at", "action", "entity_type", "entity_id", "actor", "ip_address")
    search_fields = ("entity_id", "actor__username", "actor__email")
    list_filter = ("action", "entity_type", "created_at")
    readonly_fields = ("action", "entity_type", "entity_id", "actor", "metadata", "ip_address", "user_agent", "created_at")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
