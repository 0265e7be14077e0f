"""
coachconnect_config/settings/development.py
─────────────────────────────────────────────────────────────────────
تنظیمات محیط توسعه
"""
from .base import *  # noqa: F401, F403

DEBUG = True

ALLOWED_HOSTS = ["*"]   # در توسعه همه host ها مجاز

# ── Database ──────────────────────────────────────────────────────────
import os
if os.environ.get("DATABASE_URL"):
    import dj_database_url
    DATABASES = {"default": dj_database_url.config(conn_max_age=600)}
# اگر DATABASE_URL ست نشده، از SQLite در base.py استفاده می‌شه

# ── Cache: memory-based در development ───────────────────────────────
# قفل tick فقط در یک پروسه معتبر است؛ برای چند worker از Redis استفاده کنید
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
    }
}

# ── Static files served by Django in dev ──────────────────────────────
STORAGES = {
    **STORAGES,  # noqa: F405
    "staticfiles": {"BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage"},
}

# ── Logging: show everything in development ───────────────────────────
LOGGING["root"]["level"] = "DEBUG"  # noqa: F405
