from __future__ import annotations

from datetime import timedelta

from django.conf import settings
from django.utils.module_loading import import_string


RESERVOIR_DEFAULTS = {
    "HOLD_TTL_SECONDS": 15 * 60,
    "MAX_HOLD_TTL_SECONDS": 60 * 60,
    "LOW_STOCK_THRESHOLD": 5,
    "SWEEP_INTERVAL_SECONDS": 30,
    "CONFIRM_GRACE_SECONDS": 5 * 60,
    "TERMINAL_RETENTION_HOURS": 24,
    "IDEMPOTENCY_TTL_HOURS": 24,
    "LEDGER_BACKEND": "reservoir.contrib.ledger.adapters.model.ModelLedgerBackend",
    "LEDGER_OPTIONS": {},
    "BROADCAST_BACKENDS": {
        "local": {"class": "reservoir.contrib.realtime.backends.LocalBroadcaster"},
    },
    "SUBSCRIBER_QUEUE_SIZE": 100,
    "STREAM_HEARTBEAT_SECONDS": 15,
    "STREAM_MAX_SECONDS": 5 * 60,
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.AllowAny"],
    "ADMIN_PERMISSION_CLASSES": ["rest_framework.permissions.IsAdminUser"],
}


def get_setting(key: str):
    """Retrieve a Reservoir setting, falling back to RESERVOIR_DEFAULTS."""
    user_settings = getattr(settings, "RESERVOIR", {})
    value = user_settings.get(key, RESERVOIR_DEFAULTS.get(key))
    if isinstance(value, list) and value and isinstance(value[0], str):
        return [import_string(cls) for cls in value]
    return value


def hold_ttl() -> timedelta:
    return timedelta(seconds=int(get_setting("HOLD_TTL_SECONDS")))


def max_hold_ttl() -> timedelta:
    return timedelta(seconds=int(get_setting("MAX_HOLD_TTL_SECONDS")))


def confirm_grace() -> timedelta:
    return timedelta(seconds=int(get_setting("CONFIRM_GRACE_SECONDS")))


def terminal_retention() -> timedelta:
    return timedelta(hours=int(get_setting("TERMINAL_RETENTION_HOURS")))


def idempotency_ttl() -> timedelta:
    return timedelta(hours=int(get_setting("IDEMPOTENCY_TTL_HOURS")))
