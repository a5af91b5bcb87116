import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "")

# SECURITY WARNING: don't run with debug turned on in production!
def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name, "")
    if not value:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _parse_algorithms(raw_value: str):
    """
    Parse a comma separated list of COSE algorithm identifiers.

    Unknown tokens are ignored; an empty result falls back to ES256, EdDSA
    and RS256 which cover every mainstream platform authenticator.
    """
    algorithms = []
    for token in raw_value.split(","):
        token = token.strip()
        if not token:
            continue
        try:
            alg = int(token)
        except ValueError:
            continue
        if alg not in algorithms:
            algorithms.append(alg)
    return algorithms or [-7, -8, -257]


DEBUG = _env_bool("DEBUG", True)

if not SECRET_KEY and DEBUG:
    SECRET_KEY = "folio-insecure-development-key"

_raw_allowed_hosts = os.environ.get("ALLOWED_HOSTS", "localhost,127.0.0.1")
ALLOWED_HOSTS = [h.strip() for h in _raw_allowed_hosts.split(",") if h.strip()]


# Application definition

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.staticfiles",

    #Third-party
    "rest_framework",
    "corsheaders",
    "drf_spectacular",

    # Local apps
    "folio.apps.FolioConfig",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"


# Database
# All state (challenges, credentials, sessions) lives in the key-value store
# configured under CACHES, so no relational database is configured.

DATABASES = {}


# Internationalization

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True


# Static files (CSS, JavaScript, Images)

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# Django REST Framework
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "folio.sessions.AdminSessionAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": (
        "rest_framework.permissions.IsAuthenticated",
    ),
    "DEFAULT_RENDERER_CLASSES": (
        "rest_framework.renderers.JSONRenderer",
        'rest_framework.renderers.BrowsableAPIRenderer',
    ),
    "DEFAULT_PARSER_CLASSES": (
        "rest_framework.parsers.JSONParser",
    ),
    "EXCEPTION_HANDLER": "folio.utils.exception_handler",
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
}

# WebAuthn relying party

WEBAUTHN_RP_ID = os.environ.get("WEBAUTHN_RP_ID", "localhost").strip().lower()
WEBAUTHN_RP_NAME = os.environ.get("WEBAUTHN_RP_NAME", "Personal Site Admin").strip()
# Exact origin (scheme + host + port) the browser reports in clientDataJSON.
WEBAUTHN_ORIGIN = os.environ.get("WEBAUTHN_ORIGIN", "http://localhost:8000").strip().rstrip("/")
WEBAUTHN_TIMEOUT_MS = _env_int("WEBAUTHN_TIMEOUT_MS", 60000)
WEBAUTHN_CHALLENGE_TTL_SECONDS = min(_env_int("WEBAUTHN_CHALLENGE_TTL_SECONDS", 300), 300)
WEBAUTHN_USER_VERIFICATION = os.environ.get("WEBAUTHN_USER_VERIFICATION", "preferred").strip().lower()
WEBAUTHN_ALGORITHMS = _parse_algorithms(os.environ.get("WEBAUTHN_ALGORITHMS", ""))
# Accept authenticators that never increment their counter (both values 0).
WEBAUTHN_ACCEPT_ZERO_COUNTER = _env_bool("WEBAUTHN_ACCEPT_ZERO_COUNTER", False)

# Admin identity and sessions

ADMIN_USERNAME = os.environ.get("ADMIN_USERNAME", "admin").strip()
ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "")
ADMIN_SESSION_COOKIE = os.environ.get("ADMIN_SESSION_COOKIE", "admin_session").strip()
ADMIN_SESSION_TTL_SECONDS = _env_int("ADMIN_SESSION_TTL_SECONDS", 3600)
ADMIN_LOGIN_REDIRECT = os.environ.get("ADMIN_LOGIN_REDIRECT", "/admin/dashboard.html").strip()

# Key-value store

PASSKEY_STORE_CACHE = "default"
STORE_LOCK_TIMEOUT_SECONDS = _env_int("STORE_LOCK_TIMEOUT_SECONDS", 5)
STORE_LOCK_WAIT_SECONDS = _env_int("STORE_LOCK_WAIT_SECONDS", 2)

# CORS Settings
_raw_cors = os.environ.get("CORS_ALLOWED_ORIGINS", "").strip()

if _raw_cors:
    CORS_ALLOWED_ORIGINS = [
        o.strip().strip("'\"")
        for o in _raw_cors.split(",")
        if o.strip()
    ]
else:
    CORS_ALLOWED_ORIGINS = [WEBAUTHN_ORIGIN]

CORS_ALLOW_CREDENTIALS = _env_bool("CORS_ALLOW_CREDENTIALS", True)

# Rate Limiting
RATELIMIT_ENABLE = True
RATELIMIT_USE_CACHE = "default"

# Cache
_redis_url = os.environ.get("REDIS_URL", "").strip()

if _redis_url:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.redis.RedisCache",
            "LOCATION": _redis_url,
            "KEY_PREFIX": "folio",
        }
    }
else:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "folio-default",
            "KEY_PREFIX": "folio",
        }
    }

SPECTACULAR_SETTINGS = {
    "TITLE": "Folio admin auth API",
    "DESCRIPTION": "Passkey and password authentication for the personal site admin panel",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
    "COMPONENT_SPLIT_REQUEST": True,
    "SCHEMA_PATH_PREFIX": "/api",
}

# Logging
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").strip().upper() or "INFO"

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "simple",
        },
    },
    "loggers": {
        "folio": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
    },
}

# Security Settings (production)
if not DEBUG:
    SECURE_SSL_REDIRECT = True
    SECURE_BROWSER_XSS_FILTER = True
    SECURE_CONTENT_TYPE_NOSNIFF = True
    SECURE_HSTS_SECONDS = 31536000
    SECURE_HSTS_INCLUDE_SUBDOMAINS = True
    SECURE_HSTS_PRELOAD = True
