# clinic_core/reminders/api/filters.py
import django_filters

from clinic_core.reminders.models import ReminderLog, ReminderLogStatus
from clinic_core.treatments.models import TreatmentCategory


class ReminderLogFilter(django_filters.FilterSet):
    status = django_filters.ChoiceFilter(choices=ReminderLogStatus.choices)
    category = django_filters.ChoiceFilter(choices=TreatmentCategory.choices)
    patient_id = django_filters.UUIDFilter(field_name="patient_id")

    class Meta:
        model = ReminderLog
        fields = ["status", "category", "patient_id"]
