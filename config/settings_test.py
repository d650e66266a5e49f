from .settings import *

DEBUG = True

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': BASE_DIR / 'db_test.sqlite3',
    }
}

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'cohort-registration-tests',
    }
}

# Speed up tests
PASSWORD_HASHERS = [
    'django.contrib.auth.hashers.MD5PasswordHasher',
]

# Run celery tasks inline, no broker needed
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'

STRIPE_SECRET_KEY = 'sk_test_dummy'
STRIPE_WEBHOOK_SECRET = 'whsec_test_dummy'
STRIPE_PRICE_BALANCE = 'price_balance_test'
STRIPE_PRICE_DEPOSIT = 'price_deposit_test'
STRIPE_PRICE_FULL = 'price_full_test'
CRON_SECRET = 'test-cron-secret'
COURSE_SLUG = 'braille-summer-2026'

LOG_LEVEL = 'WARNING'
LOGGING['root']['level'] = LOG_LEVEL
