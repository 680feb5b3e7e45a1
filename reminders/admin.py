from django.contrib import admin

from .models import Reminder


class ReminderInline(admin.TabularInline):
    model = Reminder
    extra = 0
    fields = ("channel", "status", "scheduled_for", "sent_at", "recipient_phone", "failure_reason")
    readonly_fields = fields
    can_delete = False
    ordering = ("-created_at",)

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Reminder)
class ReminderAdmin(admin.ModelAdmin):
    list_display = ("id", "patient", "channel", "status", "scheduled_for", "sent_at", "sent_by")
    list_filter = ("status", "channel", "provider", "scheduled_for")
    search_fields = (
        "patient__first_name",
        "patient__last_name",
        "patient__patient_code",
        "recipient_phone",
        "provider_message_id",
    )
    readonly_fields = (
        "patient",
        "visit",
        "sent_by",
        "channel",
        "status",
        "scheduled_for",
        "sent_at",
        "failure_reason",
        "recipient_phone",
        "message",
        "provider",
        "provider_message_id",
        "created_at",
        "updated_at",
    )
    ordering = ("-created_at",)

    # Reminders are written only by the reminder ledger
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
