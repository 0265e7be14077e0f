"""
coachconnect_config/settings/test.py
─────────────────────────────────────────────────────────────────────
تنظیمات اجرای تست‌ها (pytest-django)
"""
from .base import *  # noqa: F401, F403

DEBUG = False

DATABASES = {
    "default": {
        "ENGINE":  "django.db.backends.sqlite3",
        "NAME":    str(BASE_DIR / "test_db.sqlite3"),  # noqa: F405
        # BEGIN IMMEDIATE: تراکنش‌های هم‌زمان در تست‌های چندنخی پشت سر هم اجرا می‌شوند
        "OPTIONS": {"transaction_mode": "IMMEDIATE", "timeout": 20},
        "TEST":    {"NAME": str(BASE_DIR / "test_db.sqlite3")},  # noqa: F405
    }
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

STORAGES = {
    **STORAGES,  # noqa: F405
    "staticfiles": {"BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage"},
}

# ── Gateway: recording fake, no network ───────────────────────────────
PAYMENT_GATEWAY_CLASS = "tests.fakes.FakeGateway"

# ── Celery: run inline ────────────────────────────────────────────────
CELERY_TASK_ALWAYS_EAGER     = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL            = "memory://"
CELERY_RESULT_BACKEND        = "cache+memory://"

LOGGING["loggers"]["coachconnect"]["handlers"] = ["console"]  # noqa: F405
