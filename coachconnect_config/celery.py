"""
coachconnect_config/celery.py
─────────────────────────────────────────────────────────────────────
Celery application configuration + beat schedule
"""
import os

from celery import Celery

# از env var خونده می‌شه؛ اگه ست نشده بود، development پیش‌فرض باشه
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "coachconnect_config.settings.development")

app = Celery("coachconnect")

# Read config from Django settings (CELERY_* keys)
app.config_from_object("django.conf:settings", namespace="CELERY")

# Auto-discover tasks in all INSTALLED_APPS
app.autodiscover_tasks()

SESSION_TICK_SECONDS = int(os.environ.get("SESSION_TICK_SECONDS", "10"))


# ── Periodic Task Schedule ────────────────────────────────────────────
app.conf.beat_schedule = {
    # تیک چرخه عمر جلسات، هر ۱۰ ثانیه
    # tick دیرکرد داشته باشد حذف می‌شود، در صف نمی‌ماند
    "session-lifecycle-tick": {
        "task":     "coachconnect.tasks.session_tick_task",
        "schedule": float(SESSION_TICK_SECONDS),
        "options":  {"expires": SESSION_TICK_SECONDS},
    },
}

app.conf.timezone = "Asia/Tehran"
