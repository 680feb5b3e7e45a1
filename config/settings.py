# config/settings.py
"""
Django settings for the FollowUp project.
Production-ready for Render deployment.
"""

from datetime import timedelta
from pathlib import Path
import os
import sys

from dotenv import load_dotenv
import dj_database_url

BASE_DIR = Path(__file__).resolve().parent.parent

# Load local .env (Render sets env vars automatically)
load_dotenv(BASE_DIR / ".env")

# =============================================================================
# SECURITY
# =============================================================================
# Support both naming conventions (Render uses SECRET_KEY, local might use DJANGO_SECRET_KEY)
SECRET_KEY = os.getenv("SECRET_KEY") or os.getenv("DJANGO_SECRET_KEY") or "unsafe-dev-key-change-me"

# Default to False for production safety
_debug_val = os.getenv("DEBUG") or os.getenv("DJANGO_DEBUG") or "False"
DEBUG = _debug_val.lower() in ("true", "1", "yes")

print(f"[SETTINGS] DEBUG={DEBUG}", file=sys.stderr)

# =============================================================================
# ALLOWED_HOSTS
# =============================================================================
render_hostname = os.getenv("RENDER_EXTERNAL_HOSTNAME", "").strip()

ALLOWED_HOSTS = ["127.0.0.1", "localhost"]

if render_hostname:
    ALLOWED_HOSTS.append(render_hostname)

# Add any extra hosts from environment (comma-separated)
extra_hosts = os.getenv("ALLOWED_HOSTS", "")
for host in extra_hosts.split(","):
    host = host.strip()
    if host and host not in ALLOWED_HOSTS:
        ALLOWED_HOSTS.append(host)

print(f"[SETTINGS] ALLOWED_HOSTS={ALLOWED_HOSTS}", file=sys.stderr)

# =============================================================================
# CORS - Critical for frontend API calls
# =============================================================================
CORS_ALLOWED_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

cors_env = os.getenv("CORS_ALLOWED_ORIGINS", "")
for origin in cors_env.split(","):
    origin = origin.strip()
    if origin and origin not in CORS_ALLOWED_ORIGINS:
        CORS_ALLOWED_ORIGINS.append(origin)

CORS_ALLOW_CREDENTIALS = True

CORS_ALLOW_HEADERS = [
    "accept",
    "accept-encoding",
    "authorization",
    "content-type",
    "dnt",
    "origin",
    "user-agent",
    "x-csrftoken",
    "x-requested-with",
]

# =============================================================================
# CSRF - For admin and session-based auth
# =============================================================================
CSRF_TRUSTED_ORIGINS = []

if render_hostname:
    CSRF_TRUSTED_ORIGINS.append(f"https://{render_hostname}")

csrf_env = os.getenv("CSRF_TRUSTED_ORIGINS", "")
for origin in csrf_env.split(","):
    origin = origin.strip()
    if origin and origin not in CSRF_TRUSTED_ORIGINS:
        CSRF_TRUSTED_ORIGINS.append(origin)

# =============================================================================
# INSTALLED APPS
# =============================================================================
INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Third-party
    "corsheaders",
    "rest_framework",
    "rest_framework_simplejwt",
    # Local apps
    "patients",
    "visits",
    "reminders",
]

# =============================================================================
# MIDDLEWARE
# =============================================================================
MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",  # Must be after SecurityMiddleware
    "django.contrib.sessions.middleware.SessionMiddleware",
    "corsheaders.middleware.CorsMiddleware",  # Must be before CommonMiddleware
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

# =============================================================================
# URL / WSGI
# =============================================================================
ROOT_URLCONF = "config.urls"
WSGI_APPLICATION = "config.wsgi.application"

# =============================================================================
# TEMPLATES
# =============================================================================
TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
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

# =============================================================================
# DATABASE
# =============================================================================
# Uses DATABASE_URL if present (Render), otherwise SQLite (local dev)
DATABASES = {
    "default": dj_database_url.config(
        default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}",
        conn_max_age=600,
    )
}

print(f"[SETTINGS] DATABASE: {DATABASES['default'].get('ENGINE', 'unknown')}", file=sys.stderr)

# =============================================================================
# AUTH
# =============================================================================
AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

# =============================================================================
# INTERNATIONALIZATION / TIMEZONE
# =============================================================================
LANGUAGE_CODE = "en"
USE_I18N = True
USE_TZ = True

# Follow-up due dates are calendar dates in the clinic's local time zone
CLINIC_TIMEZONE = os.getenv("CLINIC_TIMEZONE", "Africa/Kinshasa")
TIME_ZONE = CLINIC_TIMEZONE

CLINIC_NAME = os.getenv("CLINIC_NAME", "the clinic")

# =============================================================================
# STATIC FILES - WhiteNoise for production
# =============================================================================
STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

STORAGES = {
    "default": {
        "BACKEND": "django.core.files.storage.FileSystemStorage",
    },
    "staticfiles": {
        "BACKEND": "whitenoise.storage.CompressedStaticFilesStorage",
    },
}

# =============================================================================
# DJANGO REST FRAMEWORK
# =============================================================================
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework_simplejwt.authentication.JWTAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": (
        "rest_framework.permissions.IsAuthenticated",
    ),
    "DEFAULT_PAGINATION_CLASS": "config.pagination.FlexiblePageNumberPagination",
    "PAGE_SIZE": 20,
    "EXCEPTION_HANDLER": "config.exceptions.api_exception_handler",
}

# =============================================================================
# SIMPLE JWT
# =============================================================================
SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=60),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=7),
    "ROTATE_REFRESH_TOKENS": False,
    "BLACKLIST_AFTER_ROTATION": False,
    "AUTH_HEADER_TYPES": ("Bearer",),
}

# =============================================================================
# DEFAULT PRIMARY KEY
# =============================================================================
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# =============================================================================
# FOLLOW-UP / REMINDER RULES
# =============================================================================
# Days after a visit when the patient is expected back
FOLLOW_UP_INTERVAL_DAYS = int(os.getenv("FOLLOW_UP_INTERVAL_DAYS", "35"))
# Trailing days of the interval during which a patient is "due soon"
FOLLOW_UP_DUE_SOON_DAYS = int(os.getenv("FOLLOW_UP_DUE_SOON_DAYS", "7"))
# Minimum hours between two reminders to the same patient
REMINDER_COOLDOWN_HOURS = int(os.getenv("REMINDER_COOLDOWN_HOURS", "24"))
# PostgreSQL only: how long a send waits for the patient row lock
REMINDER_LOCK_TIMEOUT_MS = int(os.getenv("REMINDER_LOCK_TIMEOUT_MS", "5000"))

print(
    f"[SETTINGS] FOLLOW_UP_INTERVAL_DAYS={FOLLOW_UP_INTERVAL_DAYS} "
    f"REMINDER_COOLDOWN_HOURS={REMINDER_COOLDOWN_HOURS}",
    file=sys.stderr,
)

# =============================================================================
# AFRICA'S TALKING SMS
# =============================================================================
AFRICASTALKING_USERNAME = os.getenv("AFRICASTALKING_USERNAME")
AFRICASTALKING_API_KEY = os.getenv("AFRICASTALKING_API_KEY")
AFRICASTALKING_SENDER_ID = os.getenv("AFRICASTALKING_SENDER_ID", "")
SMS_DEFAULT_COUNTRY_CODE = os.getenv("SMS_DEFAULT_COUNTRY_CODE", "+243")
SMS_HTTP_TIMEOUT = int(os.getenv("SMS_HTTP_TIMEOUT", "30"))

# =============================================================================
# LOGGING - Essential for debugging on Render
# =============================================================================
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "[{levelname}] {asctime} {name} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
            "stream": "ext://sys.stderr",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "INFO",
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
        "django.request": {
            "handlers": ["console"],
            "level": "ERROR",
            "propagate": False,
        },
        "patients": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
        "visits": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
        "reminders": {
            "handlers": ["console"],
            "level": "DEBUG",
            "propagate": False,
        },
    },
}
