# clinic_core/treatments/apps.py
from django.apps import AppConfig


class TreatmentsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "clinic_core.treatments"

    def ready(self):
        # Register in-process event subscribers
        from clinic_core.treatments import subscribers  # noqa: F401
