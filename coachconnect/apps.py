"""
apps.py  —  App configuration with signal registration
"""
from django.apps import AppConfig


class CoachConnectConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name               = "coachconnect"
    verbose_name       = "سامانه جلسات مربی‌گری"

    def ready(self):
        import coachconnect.signals  # noqa: F401  ← registers all signals
