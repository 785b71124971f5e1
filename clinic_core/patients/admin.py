from django.contrib import admin

from clinic_core.patients.models import Patient


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ("full_name", "phone", "clinic_id", "created_at")
    list_filter = ("clinic_id",)
    search_fields = ("full_name", "phone", "email")
    readonly_fields = ("id", "created_at", "updated_at")
