# clinic_core/clinics/admin.py
from django.contrib import admin

from clinic_core.clinics.models import Clinic, ClinicMembership


class ClinicMembershipInline(admin.TabularInline):
    model = ClinicMembership
    extra = 0


@admin.register(Clinic)
class ClinicAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "is_active", "created_at", "updated_at")
    list_filter = ("is_active", "created_at")
    search_fields = ("name", "code")
    ordering = ("-created_at",)
    readonly_fields = ("id", "created_at", "updated_at")
    inlines = [ClinicMembershipInline]

    fieldsets = (
        (None, {"fields": ("id", "name", "code", "is_active")}),
        ("Contact", {"fields": ("phone", "email", "timezone")}),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )
