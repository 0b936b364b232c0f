"""
Django settings for the fleet dispatch API.

The dispatch core is in-memory; no database is used by the fleet app.
Tunables for the core itself are DISPATCH_* variables (see dispatch/policy.py).
"""

import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

load_dotenv()

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-only-not-secret")
DEBUG = os.getenv("DJANGO_DEBUG", "false").lower() in ("1", "true", "yes")
ALLOWED_HOSTS = [host for host in os.getenv("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if host]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "rest_framework",
    "fleet",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "fleet_backend.urls"

DATABASES = {}

USE_TZ = True
TIME_ZONE = "UTC"

# Authentication lives with the surrounding admin product (gateway / session layer).
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.AllowAny"],
    "UNAUTHENTICATED_USER": None,
    "DEFAULT_RENDERER_CLASSES": ["rest_framework.renderers.JSONRenderer"],
}

# Zone list loaded at startup; replaced wholesale by the zone settings screen afterwards.
FLEET_ZONES = []

FLEET_TICKER_AUTOSTART = os.getenv("FLEET_TICKER_AUTOSTART", "false").lower() in ("1", "true", "yes")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "plain"},
    },
    "loggers": {
        name: {"handlers": ["console"], "level": os.getenv("DISPATCH_LOG_LEVEL", "INFO"), "propagate": False}
        for name in ("zones", "riders", "orders", "dispatch", "fleet")
    },
}
