"""Runtime collaborators injected into the ledger, engine, state machine and sweeper.

Configuration is read at call time from ``settings.SHOP``; nothing here caches it.
"""

from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from .exceptions import ConfigurationError

DEFAULTS = {
    "ALLOW_BACKORDERS": False,
    "LOW_STOCK_THRESHOLD": 5,
    "RESERVATION_TTL_MINUTES": 30,
    "CART_ABANDON_AFTER_MINUTES": 60,
    "CART_EXPIRE_AFTER_MINUTES": 1440,
    "CART_RETENTION_DAYS": 30,
    "AUTO_SWEEP": True,
    "SWEEP_LOCK_TIMEOUT_SECONDS": 300,
    "CONCURRENCY_RETRIES": 3,
    "LOG_STOCK_CHANGES": True,
    "RESTOCK_ON_CANCEL": True,
    "EXPIRY_BATCH_SIZE": 500,
}

_MISSING = object()


def shop_setting(key: str, default=_MISSING):
    """Look up a shop setting, falling back to the built-in default."""
    values = getattr(settings, "SHOP", None) or {}
    if key in values:
        return values[key]
    if default is not _MISSING:
        return default
    return DEFAULTS.get(key)


def resolve_clock(clock=None):
    if clock is None:
        return timezone.now
    if not callable(clock):
        raise ConfigurationError("Clock collaborator must be callable", clock=clock)
    return clock


def resolve_config(config=None):
    if config is None:
        return shop_setting
    if not callable(config):
        raise ConfigurationError("Config lookup must be callable", config=config)
    return config


def minutes(config, key: str) -> timedelta:
    return timedelta(minutes=int(config(key, DEFAULTS[key])))
