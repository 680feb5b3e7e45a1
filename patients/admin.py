from django.contrib import admin, messages

from reminders.admin import ReminderInline
from .models import Patient


@admin.action(description="Archive selected patients")
def archive_patients(modeladmin, request, queryset):
    updated = queryset.filter(is_active=True).update(is_active=False)
    modeladmin.message_user(
        request,
        f"{updated} patient(s) archived.",
        level=messages.SUCCESS,
    )


@admin.action(description="Restore selected patients")
def restore_patients(modeladmin, request, queryset):
    updated = queryset.filter(is_active=False).update(is_active=True)
    modeladmin.message_user(
        request,
        f"{updated} patient(s) restored.",
        level=messages.SUCCESS,
    )


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = (
        "patient_code",
        "last_name",
        "first_name",
        "phone",
        "last_visit_date",
        "next_scheduled_visit",
        "reminder_count",
        "is_active",
    )
    list_filter = ("is_active", "sex")
    search_fields = ("patient_code", "first_name", "last_name", "phone")
    ordering = ("last_name", "first_name")
    # Follow-up summary and reminder bookkeeping change only through visits and reminders
    readonly_fields = (
        "patient_code",
        "last_visit_date",
        "next_scheduled_visit",
        "reminder_count",
        "last_reminder_sent",
        "created_at",
        "updated_at",
    )
    inlines = [ReminderInline]
    actions = [archive_patients, restore_patients]
