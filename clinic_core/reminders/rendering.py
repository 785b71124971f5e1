# clinic_core/reminders/rendering.py
from __future__ import annotations

from django.conf import settings

from clinic_core.treatments.models import TreatmentCategory

# Turkish aliases are what clinics already have in their saved templates.
PATIENT_KEYS = ("{patient}", "{hasta}")
CATEGORY_KEYS = ("{category}", "{islem}")
DAYS_KEYS = ("{days}", "{gun}")


def category_label(category: str) -> str:
    try:
        return str(TreatmentCategory(category).label)
    except ValueError:
        return category


def default_template() -> str:
    return settings.REMINDERS.get("DEFAULT_TEMPLATE", "")


def render_message(template: str, *, patient_name: str, category: str, days_since: int) -> str:
    """
    Plain substitution; braces that are not a known placeholder are left as-is,
    so a malformed template never raises.
    """
    text = template or default_template()
    values = (
        (PATIENT_KEYS, patient_name or ""),
        (CATEGORY_KEYS, category_label(category)),
        (DAYS_KEYS, str(days_since)),
    )
    for keys, value in values:
        for key in keys:
            text = text.replace(key, value)
    return text
