"""
Django settings for Reservoir example project.

This is a minimal working example that demonstrates how to use django-reservoir
in a real Django project. It also serves as the test settings.
"""

from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = "example-secret-key-change-in-production"

DEBUG = True

ALLOWED_HOSTS = ["*"]

INSTALLED_APPS = [
    # Unfold must load before django.contrib.admin
    "unfold",
    "unfold.contrib.filters",
    # Django contrib
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "django.contrib.admin",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Third-party
    "rest_framework",
    # Reservoir core
    "reservoir.apps.ReservoirConfig",
    # Example app
    "example.shop",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "example.project.urls"

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

WSGI_APPLICATION = "example.project.wsgi.application"

# Banco em arquivo também nos testes: os testes de concorrência usam
# várias threads, cada uma com sua conexão.
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "db.sqlite3",
        "OPTIONS": {
            "timeout": 20,
            "transaction_mode": "IMMEDIATE",
        },
        "TEST": {
            "NAME": BASE_DIR / "test_db.sqlite3",
        },
    }
}

AUTH_PASSWORD_VALIDATORS = []

LANGUAGE_CODE = "pt-br"
TIME_ZONE = "America/Sao_Paulo"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Django REST Framework
REST_FRAMEWORK = {
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.AllowAny",
    ],
    "DEFAULT_THROTTLE_CLASSES": [],
    "DEFAULT_THROTTLE_RATES": {
        "anon": "1000/hour",
        "user": "5000/hour",
        "reservoir_reserve": "600/minute",
        "reservoir_confirm": "300/minute",
    },
}

# Reservoir
RESERVOIR = {
    "HOLD_TTL_SECONDS": 15 * 60,
    "LOW_STOCK_THRESHOLD": 5,
    "SWEEP_INTERVAL_SECONDS": 30,
    "BROADCAST_BACKENDS": {
        "local": {"class": "reservoir.contrib.realtime.backends.LocalBroadcaster"},
    },
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {
        "console": {"class": "logging.StreamHandler"},
    },
    "loggers": {
        "reservoir": {"handlers": ["console"], "level": "INFO"},
    },
}

# Unfold Admin
UNFOLD = {
    "SITE_TITLE": "Reservoir Example",
    "SITE_HEADER": "Reservoir",
    "SIDEBAR": {
        "show_search": True,
        "navigation": "reservoir.unfold.get_sidebar_navigation",
    },
}
