"""
Django settings for the airportwx project.

Values come from the environment; core.middleware loads .env from the
project root before these are read.
"""

import os
from pathlib import Path

import core.middleware  # noqa: F401  (loads .env)

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'dev-only-insecure-key')
DEBUG = os.environ.get('DJANGO_DEBUG', '') == '1'
ALLOWED_HOSTS = [h.strip() for h in os.environ.get('DJANGO_ALLOWED_HOSTS', '*').split(',') if h.strip()]

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.staticfiles',
    'apps.airportwx',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
    'core.middleware.ClientIPMiddleware',
]

ROOT_URLCONF = 'core.urls'
WSGI_APPLICATION = 'core.wsgi.application'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': BASE_DIR / 'db.sqlite3',
    }
}

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'airportwx',
    }
}

USE_TZ = True
TIME_ZONE = 'UTC'
STATIC_URL = 'static/'
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Airport configuration and on-disk weather cache
AIRPORTS_CONFIG_PATH = os.environ.get('CONFIG_PATH', str(BASE_DIR / 'airports.json'))
WEATHER_CACHE_DIR = os.environ.get('WEATHER_CACHE_DIR', str(BASE_DIR / 'cache'))

# Seconds a cached snapshot is served as fresh, unless an airport overrides it
WEATHER_REFRESH_DEFAULT = int(os.environ.get('WEATHER_REFRESH_DEFAULT', 60))

# Fields whose source has not reported for this long are nulled (safety-critical)
WEATHER_STALE_THRESHOLD_SECONDS = 10800

WEATHER_HTTP_TIMEOUT = 10.0
WEATHER_HTTP_CONNECT_TIMEOUT = 5.0

WEATHER_RATE_LIMIT_REQUESTS = int(os.environ.get('WEATHER_RATE_LIMIT_REQUESTS', 60))
WEATHER_RATE_LIMIT_WINDOW = int(os.environ.get('WEATHER_RATE_LIMIT_WINDOW', 60))

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {
            'format': '{asctime} {levelname} {name}: {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': os.environ.get('LOG_LEVEL', 'INFO'),
    },
    'loggers': {
        'httpx': {
            'level': 'WARNING',
        },
    },
}
