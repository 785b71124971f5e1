# clinic_core/reminders/apps.py
from django.apps import AppConfig


class RemindersConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "clinic_core.reminders"
    verbose_name = "Reminders"
