"""Startup validation of the process-wide configuration."""
from typing import List

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

REQUIRED_SETTINGS = (
    "OPENROUTER_API_KEY",
    "OPENROUTER_BASE_URL",
    "OPENROUTER_MODEL",
    "SUPABASE_URL",
    "SUPABASE_KEY",
    "PORT",
)


def missing_settings(source=None) -> List[str]:
    source = source if source is not None else settings
    missing = []
    for name in REQUIRED_SETTINGS:
        value = getattr(source, name, None)
        if value is None or not str(value).strip():
            missing.append(name)
    return missing


def ensure_configured(source=None) -> None:
    """Raise ImproperlyConfigured naming every required setting that is unset."""
    source = source if source is not None else settings
    missing = missing_settings(source)
    if missing:
        raise ImproperlyConfigured(
            "Missing required configuration: " + ", ".join(missing)
        )

    port = str(getattr(source, "PORT")).strip()
    if not port.isdigit() or not (0 < int(port) < 65536):
        raise ImproperlyConfigured(f"PORT must be a TCP port number, got {port!r}")

    if not getattr(source, "SECRET_KEY", ""):
        raise ImproperlyConfigured("DJANGO_SECRET_KEY must be set when DJANGO_DEBUG is off")
