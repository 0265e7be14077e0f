"""
coachconnect_config/settings/base.py
─────────────────────────────────────────────────────────────────────
تنظیمات مشترک برای تمام محیط‌ها (dev / test / production)
"""
import os
from pathlib import Path

# ── Paths ─────────────────────────────────────────────────────────────
BASE_DIR = Path(__file__).resolve().parent.parent.parent

SECRET_KEY = os.environ.get("SECRET_KEY", "django-insecure-change-this-in-production")
DEBUG      = os.environ.get("DEBUG", "False") == "True"

ALLOWED_HOSTS = os.environ.get("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")


# ── Application Definition ────────────────────────────────────────────
INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Third-party
    "django_celery_beat",
    "django_celery_results",
    # Our app: must use CoachConnectConfig to register signals
    "coachconnect.apps.CoachConnectConfig",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",   # static files in production
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "coachconnect_config.urls"

TEMPLATES = [
    {
        "BACKEND":  "django.template.backends.django.DjangoTemplates",
        "DIRS":     [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "coachconnect_config.wsgi.application"


# ── Database ──────────────────────────────────────────────────────────
# Development uses SQLite; Production overrides this via DATABASE_URL
DATABASES = {
    "default": {
        "ENGINE":  "django.db.backends.sqlite3",
        "NAME":    BASE_DIR / "db.sqlite3",
    }
}


# ── Auth ──────────────────────────────────────────────────────────────
AUTH_USER_MODEL = "coachconnect.CustomUser"

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]


# ── Internationalization ──────────────────────────────────────────────
LANGUAGE_CODE = "fa"
TIME_ZONE     = "Asia/Tehran"
USE_I18N      = True
USE_TZ        = True


# ── Static ────────────────────────────────────────────────────────────
STATIC_URL  = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"             # ← collectstatic output (gitignored)

STORAGES = {
    "default":     {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {"BACKEND": "whitenoise.storage.CompressedManifestStaticFilesStorage"},
}


# ── Default PK ────────────────────────────────────────────────────────
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# ── Celery ────────────────────────────────────────────────────────────
CELERY_BROKER_URL         = os.environ.get("REDIS_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND     = "django-db"
CELERY_BEAT_SCHEDULER     = "django_celery_beat.schedulers:DatabaseScheduler"
CELERY_TIMEZONE           = "Asia/Tehran"
CELERY_TASK_SERIALIZER    = "json"
CELERY_RESULT_SERIALIZER  = "json"
CELERY_ACCEPT_CONTENT     = ["json"]


# ── Cache (Redis) ─────────────────────────────────────────────────────
# tick lock lives here; must be shared between all workers
CACHES = {
    "default": {
        "BACKEND":  "django.core.cache.backends.redis.RedisCache",
        "LOCATION": os.environ.get("REDIS_URL", "redis://localhost:6379/1"),
    }
}


# ── Session Lifecycle ─────────────────────────────────────────────────
SESSION_TICK_SECONDS           = int(os.environ.get("SESSION_TICK_SECONDS", "10"))
SESSION_TICK_LOCK_TIMEOUT      = int(os.environ.get("SESSION_TICK_LOCK_TIMEOUT", "60"))
SESSION_REPORT_WINDOW_HOURS    = 24
SESSION_DEFAULT_DURATION_HOURS = 24
REFUND_RETRY_AFTER_SECONDS     = int(os.environ.get("REFUND_RETRY_AFTER_SECONDS", "300"))
REFUND_MAX_ATTEMPTS            = int(os.environ.get("REFUND_MAX_ATTEMPTS", "10"))


# ── Payment Gateway (Zarinpal) ────────────────────────────────────────
PAYMENT_GATEWAY_CLASS = os.environ.get(
    "PAYMENT_GATEWAY_CLASS", "coachconnect.services.gateway.ZarinpalGateway"
)
PAYMENT_CALLBACK_URL = os.environ.get(
    "PAYMENT_CALLBACK_URL", "http://localhost:8000/payments/callback/"
)
ZARINPAL_MERCHANT_ID = os.environ.get("ZARINPAL_MERCHANT_ID", "")
ZARINPAL_SANDBOX     = os.environ.get("ZARINPAL_SANDBOX", "True") == "True"
ZARINPAL_TIMEOUT     = 15


# ── Logging ───────────────────────────────────────────────────────────
LOG_DIR = BASE_DIR / "logs"
LOG_DIR.mkdir(exist_ok=True)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {"format": "{levelname} {asctime} {module} {message}", "style": "{"},
        "simple":  {"format": "{levelname} {message}", "style": "{"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
        "file":    {
            "class":     "logging.handlers.RotatingFileHandler",
            "filename":  LOG_DIR / "django.log",
            "maxBytes":  1024 * 1024 * 10,  # 10 MB
            "backupCount": 5,
            "formatter": "verbose",
        },
    },
    "root": {"handlers": ["console"], "level": "INFO"},
    "loggers": {
        "django":       {"handlers": ["console", "file"], "level": "WARNING", "propagate": False},
        "coachconnect": {"handlers": ["console", "file"], "level": "INFO",    "propagate": False},
    },
}
