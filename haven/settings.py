"""
Django settings for the haven project.

Configuration is read from the environment; the defaults suit local
development with SQLite.
"""

import os
from pathlib import Path
from datetime import timedelta

import dj_database_url

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name, default=False):
    return os.environ.get(name, str(default)).lower() == 'true'


# =============================================================================
# CORE SETTINGS
# =============================================================================

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'django-insecure-change-this-in-production-12345')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = env_bool('DJANGO_DEBUG', True)

ALLOWED_HOSTS = [host for host in os.environ.get('DJANGO_ALLOWED_HOSTS', '*').split(',') if host]


# =============================================================================
# APPLICATIONS
# =============================================================================

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'rest_framework_simplejwt',
    'common',  # Scheduler, logging, health checks
    'accounts',  # Agencies
    'users',  # Custom User model (Admin/Agent/Caretaker)
    'leases',  # Rental agreements
    'billing',  # Invoices, payments, penalties
    'gateways',  # M-Pesa / PesaPal transactions
    'audit',  # Audit Logging
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'common.logging_config.RequestIDMiddleware',  # Request ID generation (must be early)
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'haven.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'haven.wsgi.application'


# =============================================================================
# DATABASE
# =============================================================================

# Use DATABASE_URL (PostgreSQL in production), SQLite otherwise
DATABASES = {
    'default': dj_database_url.config(
        default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}",
        conn_max_age=600,
    )
}


# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]


# Internationalization
LANGUAGE_CODE = 'en-us'

# Billing days (due dates, grace period) are evaluated in this timezone
TIME_ZONE = os.environ.get('HAVEN_TIME_ZONE', 'Africa/Nairobi')

USE_I18N = False
USE_TZ = True


STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Custom User Model
AUTH_USER_MODEL = 'users.User'


# =============================================================================
# LOGGING
# =============================================================================

LOG_DIR = Path(os.environ.get('HAVEN_LOG_DIR', BASE_DIR / 'logs'))
LOG_DIR.mkdir(parents=True, exist_ok=True)

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'filters': {
        'request_id': {
            '()': 'common.logging_config.RequestIDFilter',
        },
    },
    'formatters': {
        'verbose': {
            'format': '[{request_id}] {levelname} {asctime} {name} {message}',
            'style': '{',
        },
        'error': {
            'format': '[{request_id}] {levelname} {asctime} {pathname}:{lineno} {funcName} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'level': 'INFO',
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
            'filters': ['request_id'],
        },
        'error_file': {
            'level': 'ERROR',
            'class': 'logging.FileHandler',
            'filename': LOG_DIR / 'errors.log',
            'formatter': 'error',
            'filters': ['request_id'],
        },
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': 'WARNING',
            'propagate': False,
        },
        'django.request': {
            'handlers': ['error_file', 'console'],
            'level': 'ERROR',
            'propagate': False,
        },
        'core': {
            'handlers': ['console', 'error_file'],
            'level': 'INFO',
            'propagate': False,
        },
        'billing': {
            'handlers': ['console', 'error_file'],
            'level': 'INFO',
            'propagate': False,
        },
        'leases': {
            'handlers': ['console', 'error_file'],
            'level': 'INFO',
            'propagate': False,
        },
        'gateways': {
            'handlers': ['console', 'error_file'],
            'level': 'INFO',
            'propagate': False,
        },
        'common': {
            'handlers': ['console', 'error_file'],
            'level': 'INFO',
            'propagate': False,
        },
        'api': {
            'handlers': ['console', 'error_file'],
            'level': 'INFO',
            'propagate': False,
        },
        'audit': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
        'apscheduler': {
            'handlers': ['console'],
            'level': 'WARNING',
            'propagate': False,
        },
    },
    'root': {
        'handlers': ['console', 'error_file'],
        'level': 'WARNING',
    },
}


# =============================================================================
# REST FRAMEWORK
# =============================================================================

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': (
        'rest_framework_simplejwt.authentication.JWTAuthentication',
        'rest_framework.authentication.SessionAuthentication',
    ),
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'DEFAULT_PAGINATION_CLASS': 'rest_framework.pagination.PageNumberPagination',
    'PAGE_SIZE': 20,
    'EXCEPTION_HANDLER': 'api.exceptions.exception_handler',
}

SIMPLE_JWT = {
    'ACCESS_TOKEN_LIFETIME': timedelta(hours=1),
    'REFRESH_TOKEN_LIFETIME': timedelta(days=7),
    'ROTATE_REFRESH_TOKENS': True,
    'BLACKLIST_AFTER_ROTATION': False,
    'UPDATE_LAST_LOGIN': True,
    'ALGORITHM': 'HS256',
    'SIGNING_KEY': SECRET_KEY,
    'AUTH_HEADER_TYPES': ('Bearer',),
    'AUTH_HEADER_NAME': 'HTTP_AUTHORIZATION',
    'USER_ID_FIELD': 'id',
    'USER_ID_CLAIM': 'user_id',
}


# =============================================================================
# BILLING
# =============================================================================

BILLING = {
    'GRACE_PERIOD_DAYS': int(os.environ.get('BILLING_GRACE_PERIOD_DAYS', 7)),
    'PENALTY_PAYMENT_TERM_DAYS': 7,
    'LATE_PENALTY': {
        'MODE': os.environ.get('BILLING_PENALTY_MODE', 'PERCENT'),  # FLAT or PERCENT
        'FLAT_AMOUNT': int(os.environ.get('BILLING_PENALTY_FLAT_AMOUNT', 50000)),
        'PERCENT_BASIS_POINTS': int(os.environ.get('BILLING_PENALTY_BASIS_POINTS', 500)),
        'MAX_AMOUNT': None,
    },
}

GATEWAY = {
    'HTTP_TIMEOUT_SECONDS': 15,
    'TRANSIENT_RETRIES': 3,
    'MAX_POLL_ATTEMPTS': 30,
    'POLL_INTERVAL_SECONDS': 10,
    'MAX_WORKERS': 8,
    'RECONCILE_WINDOW_HOURS': 72,
    'MPESA': {
        'ENVIRONMENT': os.environ.get('MPESA_ENVIRONMENT', 'sandbox'),
        'CONSUMER_KEY': os.environ.get('MPESA_CONSUMER_KEY', ''),
        'CONSUMER_SECRET': os.environ.get('MPESA_CONSUMER_SECRET', ''),
        'SHORTCODE': os.environ.get('MPESA_SHORTCODE', ''),
        'PASSKEY': os.environ.get('MPESA_PASSKEY', ''),
        'CALLBACK_URL': os.environ.get('MPESA_CALLBACK_URL', ''),
    },
    'PESAPAL': {
        'ENVIRONMENT': os.environ.get('PESAPAL_ENVIRONMENT', 'sandbox'),
        'CONSUMER_KEY': os.environ.get('PESAPAL_CONSUMER_KEY', ''),
        'CONSUMER_SECRET': os.environ.get('PESAPAL_CONSUMER_SECRET', ''),
        'NOTIFICATION_ID': os.environ.get('PESAPAL_NOTIFICATION_ID', ''),
        'CALLBACK_URL': os.environ.get('PESAPAL_CALLBACK_URL', ''),
        'CURRENCY': 'KES',
    },
}

# Background jobs (invoice generation, penalty sweep, gateway polling)
ENABLE_BACKGROUND_SCHEDULER = env_bool('ENABLE_BACKGROUND_SCHEDULER', True)
