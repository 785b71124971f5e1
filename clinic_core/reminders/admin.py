from django.contrib import admin

from clinic_core.reminders.models import ReminderDispatch, ReminderLog, ReminderRule


@admin.register(ReminderRule)
class ReminderRuleAdmin(admin.ModelAdmin):
    list_display = ("category", "interval_days", "is_active", "clinic_id", "updated_at")
    list_filter = ("clinic_id", "category", "is_active")
    readonly_fields = ("id", "created_at", "updated_at")


@admin.register(ReminderDispatch)
class ReminderDispatchAdmin(admin.ModelAdmin):
    list_display = ("patient", "category", "last_sent_at", "clinic_id")
    list_filter = ("clinic_id", "category")
    search_fields = ("patient__full_name",)
    # ledger rows are written by the dispatcher only
    readonly_fields = ("id", "clinic_id", "patient", "category", "last_sent_at", "created_at", "updated_at")


@admin.register(ReminderLog)
class ReminderLogAdmin(admin.ModelAdmin):
    list_display = ("created_at", "patient", "category", "channel", "status")
    list_filter = ("clinic_id", "status", "channel", "category")
    search_fields = ("patient__full_name", "message", "error")
    ordering = ("-created_at",)
    readonly_fields = ("id", "created_at", "updated_at")
