"""
Django settings for the merchant dashboard.

Everything deployment-specific comes from the environment; the ACCESS_*
block configures the permission layer (see Access/integration/settings.py).
"""

import json
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name, default=False):
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-only-insecure-secret-key")
DEBUG = _env_bool("DJANGO_DEBUG", False)
ALLOWED_HOSTS = [h.strip() for h in os.getenv("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h.strip()]

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "Access",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "Access.middleware.AccessContextMiddleware",
]

ROOT_URLCONF = "Dashboard.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "Dashboard.wsgi.application"

if os.getenv("POSTGRES_DB"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("POSTGRES_DB"),
            "USER": os.getenv("POSTGRES_USER", ""),
            "PASSWORD": os.getenv("POSTGRES_PASSWORD", ""),
            "HOST": os.getenv("POSTGRES_HOST", "localhost"),
            "PORT": os.getenv("POSTGRES_PORT", "5432"),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": os.getenv("SQLITE_PATH", str(BASE_DIR / "db.sqlite3")),
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"

# Permission layer -----------------------------------------------------------

ACCESS_FUNCTIONS_BASE_URL = os.getenv("ACCESS_FUNCTIONS_BASE_URL", "")
ACCESS_FUNCTIONS_API_TOKEN = os.getenv("ACCESS_FUNCTIONS_API_TOKEN", "")
ACCESS_FUNCTIONS_TIMEOUT_SECONDS = int(os.getenv("ACCESS_FUNCTIONS_TIMEOUT_SECONDS", "8"))
ACCESS_FUNCTIONS_MAX_RETRIES = int(os.getenv("ACCESS_FUNCTIONS_MAX_RETRIES", "2"))
ACCESS_CHECK_PERMISSION_FUNCTION = os.getenv("ACCESS_CHECK_PERMISSION_FUNCTION", "check_permission")
ACCESS_USER_PERMISSIONS_FUNCTION = os.getenv("ACCESS_USER_PERMISSIONS_FUNCTION", "get_user_permissions")
ACCESS_MANAGE_ROLE_FUNCTION = os.getenv("ACCESS_MANAGE_ROLE_FUNCTION", "manage_user_role")
ACCESS_SERVICE_USER_ID = os.getenv("ACCESS_SERVICE_USER_ID", "")
ACCESS_PERMISSION_CACHE_TTL_SECONDS = int(os.getenv("ACCESS_PERMISSION_CACHE_TTL_SECONDS", "300"))
ACCESS_SENSITIVE_RESOURCES = os.getenv("ACCESS_SENSITIVE_RESOURCES", "users,roles,permissions,audit_logs")
ACCESS_SNAPSHOT_INTERVAL_SECONDS = int(os.getenv("ACCESS_SNAPSHOT_INTERVAL_SECONDS", "60"))
ACCESS_PERSIST_INTERVAL_SECONDS = int(os.getenv("ACCESS_PERSIST_INTERVAL_SECONDS", "300"))
ACCESS_ALERT_THRESHOLDS = json.loads(os.getenv("ACCESS_ALERT_THRESHOLDS", "{}") or "{}")
ACCESS_MONITORING_TIMERS_ENABLED = _env_bool("ACCESS_MONITORING_TIMERS_ENABLED", True)
ACCESS_COALESCE_REMOTE_CHECKS = _env_bool("ACCESS_COALESCE_REMOTE_CHECKS", False)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "standard"},
    },
    "loggers": {
        "Access": {"handlers": ["console"], "level": os.getenv("ACCESS_LOG_LEVEL", "INFO"), "propagate": False},
        "dashboard.startup": {"handlers": ["console"], "level": "INFO", "propagate": False},
    },
}
