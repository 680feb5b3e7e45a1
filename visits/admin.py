from django.contrib import admin

from .models import Visit


@admin.register(Visit)
class VisitAdmin(admin.ModelAdmin):
    list_display = ("id", "patient", "visit_date", "visit_type", "next_visit_date", "created_by")
    list_filter = ("visit_type", "visit_date")
    search_fields = ("patient__first_name", "patient__last_name", "patient__patient_code", "diagnosis")
    ordering = ("-visit_date", "-created_at")
    # Visits are recorded through the API so the patient's follow-up cycle is reset
    readonly_fields = ("patient", "visit_date", "next_visit_date", "created_by", "created_at", "updated_at")

    def has_add_permission(self, request):
        return False
