"""
Django settings for the cohort registration project.

Everything environment specific is read from environment variables so the
same settings module serves local development, the web process, the celery
worker and the celery beat scheduler.
"""

import json
import os
from pathlib import Path

from celery.schedules import crontab

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'django-insecure-change-me')

DEBUG = os.environ.get('DJANGO_DEBUG', 'false').lower() == 'true'

ALLOWED_HOSTS = [h for h in os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',') if h]

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'drf_spectacular',
    'courses',
    'enrollment',
    'payments',
    'admin_dashboard',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'config.wsgi.application'

# Database
if os.environ.get('POSTGRES_DB'):
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.environ['POSTGRES_DB'],
            'USER': os.environ.get('POSTGRES_USER', 'postgres'),
            'PASSWORD': os.environ.get('POSTGRES_PASSWORD', ''),
            'HOST': os.environ.get('POSTGRES_HOST', 'localhost'),
            'PORT': os.environ.get('POSTGRES_PORT', '5432'),
            'ATOMIC_REQUESTS': False,
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
        }
    }

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'cohort-registration',
    }
}
# Rate limit counters must be shared when running more than one web process
if os.environ.get('REDIS_CACHE_URL'):
    CACHES['default'] = {
        'BACKEND': 'django.core.cache.backends.redis.RedisCache',
        'LOCATION': os.environ['REDIS_CACHE_URL'],
    }

LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.environ.get('TIME_ZONE', 'America/New_York')
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# REST framework
REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework.authentication.SessionAuthentication',
        'rest_framework.authentication.BasicAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAdminUser',
    ],
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',
    'EXCEPTION_HANDLER': 'config.exceptions.exception_handler',
}

SPECTACULAR_SETTINGS = {
    'TITLE': 'Cohort Registration API',
    'DESCRIPTION': 'Seat allocation, waitlist management and deferred balance payments',
    'VERSION': '1.0.0',
}

# Celery
CELERY_BROKER_URL = os.environ.get('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = os.environ.get('CELERY_RESULT_BACKEND', CELERY_BROKER_URL)
CELERY_TASK_ALWAYS_EAGER = os.environ.get('CELERY_TASK_ALWAYS_EAGER', 'false').lower() == 'true'
CELERY_TIMEZONE = TIME_ZONE
CELERY_BEAT_SCHEDULE = {
    'finalize-balance-obligations': {
        'task': 'payments.tasks.finalize_balance_obligations',
        'schedule': crontab(
            hour=int(os.environ.get('BALANCE_SCHEDULER_CRONTAB_HOUR', '9')),
            minute=0,
        ),
    },
}

# Email
EMAIL_BACKEND = os.environ.get('EMAIL_BACKEND', 'django.core.mail.backends.console.EmailBackend')
DEFAULT_FROM_EMAIL = os.environ.get('DEFAULT_FROM_EMAIL', 'enrollment@example.org')

# Payments
STRIPE_SECRET_KEY = os.environ.get('STRIPE_SECRET_KEY', '')
STRIPE_WEBHOOK_SECRET = os.environ.get('STRIPE_WEBHOOK_SECRET', '')
STRIPE_PRICE_BALANCE = os.environ.get('STRIPE_PRICE_BALANCE', '')
STRIPE_PRICE_DEPOSIT = os.environ.get('STRIPE_PRICE_DEPOSIT', '')
STRIPE_PRICE_FULL = os.environ.get('STRIPE_PRICE_FULL', '')
COURSE_SLUG = os.environ.get('COURSE_SLUG', 'braille-summer-2026')
BALANCE_DUE_DATE = os.environ.get('BALANCE_DUE_DATE', '2026-05-01')
SCHEDULER_MAX_RECORDS = int(os.environ.get('SCHEDULER_MAX_RECORDS', '10000'))

# Checkout
ENROLLMENT_ENABLED = os.environ.get('ENROLLMENT_ENABLED', 'true').lower() == 'true'
SITE_URL = os.environ.get('SITE_URL', 'https://teachbraille.org')
COURSE_NAME = os.environ.get('COURSE_NAME', 'Summer Braille Course')
BALANCE_AMOUNT = int(os.environ.get('BALANCE_AMOUNT', '350'))
SECTION_SCHEDULES = json.loads(os.environ.get(
    'SECTION_SCHEDULES',
    '{"Section A": "Mon & Wed, 1-2 PM ET", "Section B": "Tue & Thu, 4-5 PM ET"}'
))

# Shared secret presented by the external cron trigger
CRON_SECRET = os.environ.get('CRON_SECRET', '')

# Fixed window rate limiting for public endpoints
RATE_LIMIT_WINDOW_SECONDS = int(os.environ.get('RATE_LIMIT_WINDOW_SECONDS', '900'))
RATE_LIMIT_DEFAULT = int(os.environ.get('RATE_LIMIT_DEFAULT', '5'))
RATE_LIMITS = json.loads(os.environ.get('RATE_LIMITS', '{"sections": 60, "enrollment-status": 60}'))

LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': LOG_LEVEL,
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': os.environ.get('DJANGO_LOG_LEVEL', 'WARNING'),
            'propagate': False,
        },
    },
}
