"""
Django settings for app_backend project.

Environment-specific modules (prod.py, test.py) import everything from here
and override what they need.
"""

import os
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent.parent
load_dotenv(os.path.join(BASE_DIR, '..', '.env'))

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "django-insecure-dev-only-key")
DEBUG = os.getenv("DJANGO_DEBUG", "True") == "True"
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "*").split(',')

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    # Third party
    'rest_framework',
    'rest_framework_simplejwt',
    'corsheaders',
    'channels',

    # Local
    'accounts',
    'drivers',
    'riders',
    'rides',
    'realtime',
]

MIDDLEWARE = [
    'corsheaders.middleware.CorsMiddleware',
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'app_backend.urls'

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

WSGI_APPLICATION = 'app_backend.wsgi.application'
ASGI_APPLICATION = 'app_backend.asgi.application'

DATABASES = {
    'default': {
        'ENGINE': os.getenv('DB_ENGINE', 'django.db.backends.sqlite3'),
        'NAME': os.getenv('DB_NAME', str(BASE_DIR / 'db.sqlite3')),
        'USER': os.getenv('DB_USER', ''),
        'PASSWORD': os.getenv('DB_PASSWORD', ''),
        'HOST': os.getenv('DB_HOST', ''),
        'PORT': os.getenv('DB_PORT', ''),
    }
}

AUTH_USER_MODEL = 'accounts.User'

AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
]

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'
MEDIA_URL = '/media/'
MEDIA_ROOT = BASE_DIR / 'media'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

CORS_ALLOW_ALL_ORIGINS = True

# ---------------------- REST framework / JWT ----------------------

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': (
        'rest_framework_simplejwt.authentication.JWTAuthentication',
        'rest_framework.authentication.SessionAuthentication',
    ),
    'DEFAULT_PERMISSION_CLASSES': (
        'rest_framework.permissions.IsAuthenticated',
    ),
    'EXCEPTION_HANDLER': 'common.exceptions.ride_exception_handler',
}

SIMPLE_JWT = {
    'ACCESS_TOKEN_LIFETIME': timedelta(hours=int(os.getenv('JWT_ACCESS_HOURS', 12))),
    'REFRESH_TOKEN_LIFETIME': timedelta(days=int(os.getenv('JWT_REFRESH_DAYS', 30))),
    'AUTH_HEADER_TYPES': ('Bearer',),
}

# ---------------------- Channels / Celery ----------------------

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels_redis.core.RedisChannelLayer",
        "CONFIG": {
            "hosts": [REDIS_URL],
        },
    }
}

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", REDIS_URL)
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", REDIS_URL)
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TIMEZONE = TIME_ZONE
CELERY_BEAT_SCHEDULE = {
    'expire-pending-rides': {
        'task': 'rides.tasks.expire_stale_pending_rides_task',
        'schedule': 60.0,
    },
    'sweep-stranded-rides': {
        'task': 'rides.tasks.sweep_stranded_rides_task',
        'schedule': 60.0,
    },
}

# ---------------------- Dispatch ----------------------

# Driver-side feed: pending rides within this distance of the driver
RIDE_SEARCH_RADIUS_METERS = int(os.getenv("RIDE_SEARCH_RADIUS_METERS", 30000))
# Rider-side search: available drivers within this distance of the pickup
DRIVER_SEARCH_RADIUS_METERS = int(os.getenv("DRIVER_SEARCH_RADIUS_METERS", 10000))
# Nearby-rides feed refreshes at most once per window
RIDE_FEED_DEBOUNCE_SECONDS = float(os.getenv("RIDE_FEED_DEBOUNCE_SECONDS", 2.0))
# Location updates closer than this to the stored position are ignored
DRIVER_LOCATION_MIN_MOVE_METERS = int(os.getenv("DRIVER_LOCATION_MIN_MOVE_METERS", 100))
# A pending ride nobody accepts within this window is expired (0 disables)
RIDE_PENDING_TIMEOUT_SECONDS = int(os.getenv("RIDE_PENDING_TIMEOUT_SECONDS", 300))
# Declined/driver-cancelled rides older than this are swept into reassignment
RIDE_REASSIGNMENT_GRACE_SECONDS = int(os.getenv("RIDE_REASSIGNMENT_GRACE_SECONDS", 30))

# Used when no FareSetting row exists for the class
RIDE_FARE_DEFAULTS = {
    "taxi": {"base_fare": "3.00", "price_per_km": "1.50"},
    "bus": {"base_fare": "1.50", "price_per_km": "0.80"},
    "van": {"base_fare": "4.00", "price_per_km": "1.20"},
}

# ---------------------- External providers ----------------------

ROUTING_API_URL = os.getenv(
    "ROUTING_API_URL", "https://api.openrouteservice.org/v2/directions/driving-car/json"
)
ROUTING_API_KEY = os.getenv("ROUTING_API_KEY", "")
GEOCODING_API_URL = os.getenv("GEOCODING_API_URL", "https://api.opencagedata.com/geocode/v1/json")
GEOCODING_API_KEY = os.getenv("GEOCODING_API_KEY", "")
PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", 10))

# ---------------------- Logging ----------------------

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name}: {message}',
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
        'level': 'WARNING',
    },
    'loggers': {
        'django': {'handlers': ['console'], 'level': 'INFO', 'propagate': False},
        'services': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'realtime': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'rides': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'drivers': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'common': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
    },
}
