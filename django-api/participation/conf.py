"""Participation settings with defaults.

Projects override any key through ``settings.PARTICIPATION``.
"""

from datetime import timedelta
from typing import Any

from django.conf import settings

DEFAULTS: dict[str, Any] = {
    "WAITLIST_OFFER_TTL": timedelta(hours=24),
    "WAITLIST_ENABLED_DEFAULT": True,
    "PAYMENT_PROCESSOR": "participation.services.processors.OfflinePaymentProcessor",
    "PAYMENT_RETURN_URL": "http://localhost:8000",
    "WEBHOOK_SECRET": "",
    "CACHE_TIMEOUT": 60,
    "NOTIFY_HOST_BY_EMAIL": False,
}


def get_setting(name: str) -> Any:
    overrides = getattr(settings, "PARTICIPATION", {})
    return overrides.get(name, DEFAULTS[name])


def waitlist_enabled_default() -> bool:
    return bool(get_setting("WAITLIST_ENABLED_DEFAULT"))
