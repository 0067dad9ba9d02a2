# config/settings/prod.py
from django.core.exceptions import ImproperlyConfigured

from .base import *  # noqa

DEBUG = False

if SECRET_KEY == "unsafe-dev-key":
    raise ImproperlyConfigured("DJANGO_SECRET_KEY must be set in production.")
if not AUDIT_SIGNING_KEY:
    raise ImproperlyConfigured("AUDIT_SIGNING_KEY must be set in production.")

CORS_ALLOW_ALL_ORIGINS = False
CORS_ALLOW_CREDENTIALS = True

SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True
