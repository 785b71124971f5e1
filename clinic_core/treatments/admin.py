from django.contrib import admin

from clinic_core.treatments.models import PatientVisitPattern, TreatmentRecord


@admin.register(TreatmentRecord)
class TreatmentRecordAdmin(admin.ModelAdmin):
    list_display = ("patient", "category", "performed_on", "amount_minor", "clinic_id")
    list_filter = ("clinic_id", "category")
    search_fields = ("name", "patient__full_name")
    ordering = ("-performed_on",)
    readonly_fields = ("id", "created_at", "updated_at")


@admin.register(PatientVisitPattern)
class PatientVisitPatternAdmin(admin.ModelAdmin):
    list_display = ("patient", "total_visits", "last_visit_on", "last_category", "average_visit_days")
    list_filter = ("clinic_id", "last_category")
    readonly_fields = ("created_at", "updated_at")
