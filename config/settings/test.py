from .base import *  # noqa
from .base import BASE_DIR, DB_ENGINE

DEBUG = False

# SQLite by default; DATABASE_ENGINE=postgres keeps the base Postgres settings
# so the threaded race tests run instead of skipping
if DB_ENGINE.lower() != "postgres":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "test_db.sqlite3",
        }
    }

EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "shop-tests",
    }
}

# Pinned values so tests do not depend on the environment
SHOP = {
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
