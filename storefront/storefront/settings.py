"""
Django settings for the storefront order & payment service.

Every deployment-specific value is read from the environment so the same
module serves local runs, the Celery worker and the test suite.
"""
import os
from decimal import Decimal
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'dev-insecure-storefront-key')
DEBUG = os.environ.get('DJANGO_DEBUG', 'false').lower() == 'true'
ALLOWED_HOSTS = [h for h in os.environ.get('DJANGO_ALLOWED_HOSTS', '*').split(',') if h]

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'catalog',
    'orders',
    'payments',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
]

ROOT_URLCONF = 'storefront.urls'

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

WSGI_APPLICATION = 'storefront.wsgi.application'

# ========================
# DATABASE
# ========================
if os.environ.get('POSTGRES_DB'):
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.environ['POSTGRES_DB'],
            'USER': os.environ.get('POSTGRES_USER', 'postgres'),
            'PASSWORD': os.environ.get('POSTGRES_PASSWORD', ''),
            'HOST': os.environ.get('POSTGRES_HOST', 'localhost'),
            'PORT': os.environ.get('POSTGRES_PORT', '5432'),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
        }
    }

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# ========================
# CACHE (webhook de-duplication)
# ========================
REDIS_URL = os.environ.get('REDIS_URL')
if REDIS_URL:
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.redis.RedisCache',
            'LOCATION': REDIS_URL,
        }
    }
else:
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
            'LOCATION': 'storefront',
        }
    }

STATIC_URL = 'static/'
MEDIA_URL = '/media/'
MEDIA_ROOT = os.environ.get('MEDIA_ROOT', str(BASE_DIR / 'media'))

LANGUAGE_CODE = 'es-cr'
TIME_ZONE = 'America/Costa_Rica'
USE_I18N = True
USE_TZ = True

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework.authentication.SessionAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.AllowAny',
    ],
    'EXCEPTION_HANDLER': 'storefront.exceptions.api_exception_handler',
}

# ========================
# KAFKA (notification fan-out)
# ========================
KAFKA_BOOTSTRAP_SERVERS = os.environ.get('KAFKA_BOOTSTRAP_SERVERS', 'localhost:9092').split(',')
KAFKA_TOPIC_NOTIFICATIONS = os.environ.get('KAFKA_TOPIC_NOTIFICATIONS', 'order-notifications')
KAFKA_TOPIC_NOTIFICATIONS_DLQ = os.environ.get('KAFKA_TOPIC_NOTIFICATIONS_DLQ', 'order-notifications-dlq')

# ========================
# CELERY
# ========================
CELERY_BROKER_URL = os.environ.get('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = os.environ.get('CELERY_RESULT_BACKEND', CELERY_BROKER_URL)
CELERY_TASK_ALWAYS_EAGER = os.environ.get('CELERY_TASK_ALWAYS_EAGER', 'false').lower() == 'true'
CELERY_TASK_SERIALIZER = 'json'
CELERY_ACCEPT_CONTENT = ['json']

# ========================
# STORE / PAYMENTS
# ========================
STORE_CURRENCY = os.environ.get('STORE_CURRENCY', 'CRC')
SHIPPING_FREE_THRESHOLD = Decimal(os.environ.get('SHIPPING_FREE_THRESHOLD', '40000'))
SHIPPING_FLAT_COST = Decimal(os.environ.get('SHIPPING_FLAT_COST', '2500'))
# Units of the store currency per one unit of the foreign currency
CURRENCY_EXCHANGE_RATES = {
    'USD': Decimal(os.environ.get('CRC_TO_USD_RATE', '510')),
}

LOYALTY_TOKENS_INITIAL = int(os.environ.get('LOYALTY_TOKENS_INITIAL', '4'))
LOYALTY_TOKENS_PER_ORDER = int(os.environ.get('LOYALTY_TOKENS_PER_ORDER', '5'))

FRONTEND_URL = os.environ.get('FRONTEND_URL', 'http://localhost:3000')
PAYMENT_GATEWAY_TIMEOUT = float(os.environ.get('PAYMENT_GATEWAY_TIMEOUT', '10'))
WEBHOOK_DEDUPE_TTL = int(os.environ.get('WEBHOOK_DEDUPE_TTL', '86400'))  # 24 hours

ONVOPAY_BASE_URL = os.environ.get('ONVOPAY_BASE_URL', 'https://api.onvopay.com/v1')
ONVOPAY_SECRET_KEY = os.environ.get('ONVOPAY_SECRET_KEY', '')
ONVOPAY_WEBHOOK_SECRET = os.environ.get('ONVOPAY_WEBHOOK_SECRET', '')

PAYPAL_MODE = os.environ.get('PAYPAL_MODE', 'sandbox')
PAYPAL_CLIENT_ID = os.environ.get('PAYPAL_CLIENT_ID', '')
PAYPAL_CLIENT_SECRET = os.environ.get('PAYPAL_CLIENT_SECRET', '')
PAYPAL_WEBHOOK_ID = os.environ.get('PAYPAL_WEBHOOK_ID', '')
PAYPAL_BRAND_NAME = os.environ.get('PAYPAL_BRAND_NAME', 'Storefront')

# ========================
# LOGGING
# ========================
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '%(asctime)s %(levelname)s %(name)s: %(message)s',
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
        'kafka': {
            'handlers': ['console'],
            'level': 'WARNING',
            'propagate': False,
        },
    },
}
