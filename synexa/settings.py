"""
Django settings for synexa project.

Base/development settings. Values come from the environment or a .env file
through python-decouple. Production overrides live in settings_production.py.
"""

from decimal import Decimal
from pathlib import Path

from decouple import config, Csv

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = config('SECRET_KEY', default='django-insecure-synexa-development-key')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = config('DEBUG', default=True, cast=bool)

ALLOWED_HOSTS = config('ALLOWED_HOSTS', default='localhost,127.0.0.1', cast=Csv())


# Application definition

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'education',
    'finance',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
    'education.middleware.SchoolContextMiddleware',
]

ROOT_URLCONF = 'synexa.urls'

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

WSGI_APPLICATION = 'synexa.wsgi.application'


# Database
# SQLite by default for development and tests; MySQL (through PyMySQL) in production.

DATABASES = {
    'default': {
        'ENGINE': config('DB_ENGINE', default='django.db.backends.sqlite3'),
        'NAME': config('DB_NAME', default=str(BASE_DIR / 'db.sqlite3')),
        'USER': config('DB_USER', default=''),
        'PASSWORD': config('DB_PASSWORD', default=''),
        'HOST': config('DB_HOST', default=''),
        'PORT': config('DB_PORT', default=''),
    }
}


# Password validation

AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]

AUTH_USER_MODEL = 'education.CustomUser'
LOGIN_URL = '/django-admin/login/'
LOGIN_REDIRECT_URL = '/django-admin/'
LOGOUT_REDIRECT_URL = '/django-admin/login/'


# Internationalization

LANGUAGE_CODE = 'pt'
TIME_ZONE = config('TIME_ZONE', default='Africa/Luanda')
USE_I18N = True
USE_TZ = True


# Static files (CSS, JavaScript, Images)

STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# Active academic year used when a request does not name one (YYYY/YYYY).
# Empty means "derive from the current date".
SYNEXA_ACTIVE_ACADEMIC_YEAR = config('SYNEXA_ACTIVE_ACADEMIC_YEAR', default='')


# Finance core configuration (see finance/conf.py for defaults)

FINANCE = {
    'ALLOW_OVERPAYMENT': config('FINANCE_ALLOW_OVERPAYMENT', default=False, cast=bool),
    'OVERDUE_TAKES_PRECEDENCE': config('FINANCE_OVERDUE_TAKES_PRECEDENCE', default=True, cast=bool),
    'BILLING_START_MONTH': config('FINANCE_BILLING_START_MONTH', default=9, cast=int),
    'BILLING_MONTH_COUNT': config('FINANCE_BILLING_MONTH_COUNT', default=10, cast=int),
    'LATE_FEE_GRACE_DAYS': config('FINANCE_LATE_FEE_GRACE_DAYS', default=0, cast=int),
    'MAX_PENALTY_PERCENT': config('FINANCE_MAX_PENALTY_PERCENT', default=None, cast=lambda v: Decimal(v) if v else None),
    'LOCK_NOWAIT': config('FINANCE_LOCK_NOWAIT', default=False, cast=bool),
    'SCHOOL_NAME': config('FINANCE_SCHOOL_NAME', default='Escola Synexa'),
    'SCHOOL_ADDRESS': config('FINANCE_SCHOOL_ADDRESS', default='Luanda, Angola'),
}


# Logging Configuration

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {process:d} {thread:d} {message}',
            'style': '{',
        },
        'simple': {
            'format': '{levelname} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'level': 'DEBUG',
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
        'finance': {
            'handlers': ['console'],
            'level': config('FINANCE_LOG_LEVEL', default='INFO'),
            'propagate': False,
        },
    },
}
