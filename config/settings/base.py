from pathlib import Path

from decouple import Csv, config

BASE_DIR = Path(__file__).resolve().parent.parent.parent

# Core security
SECRET_KEY = config("SECRET_KEY", default="dev-secret-key-change-me")
ALLOWED_HOSTS = config("ALLOWED_HOSTS", default="localhost,127.0.0.1", cast=Csv())

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    # Local
    "catalog",
    "inventory",
    "orders",
    "cart",
    "sweeper",
]

# Database
DB_ENGINE = config("DATABASE_ENGINE", default="sqlite")
if DB_ENGINE.lower() == "postgres":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": config("DATABASE_NAME", default="postgres"),
            "USER": config("DATABASE_USER", default="postgres"),
            "PASSWORD": config("DATABASE_PASSWORD", default=""),
            "HOST": config("DATABASE_HOST", default="localhost"),
            "PORT": config("DATABASE_PORT", default="5432"),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }

# Local memory cache by default; the sweeper lock needs a shared backend across hosts
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "shop",
    }
}

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Email (dev defaults to console backend; override via env for SMTP)
EMAIL_BACKEND = config(
    "EMAIL_BACKEND",
    default="django.core.mail.backends.console.EmailBackend",
)
EMAIL_HOST = config("EMAIL_HOST", default="")
EMAIL_PORT = config("EMAIL_PORT", default=587, cast=int)
EMAIL_HOST_USER = config("EMAIL_HOST_USER", default="")
EMAIL_HOST_PASSWORD = config("EMAIL_HOST_PASSWORD", default="")
EMAIL_USE_TLS = config("EMAIL_USE_TLS", default=True, cast=bool)
EMAIL_USE_SSL = config("EMAIL_USE_SSL", default=False, cast=bool)
DEFAULT_FROM_EMAIL = config("DEFAULT_FROM_EMAIL", default="Shop <noreply@example.com>")
FRONTEND_URL = config("FRONTEND_URL", default="")

# Stock, reservation and cart behaviour; read at call time via common.runtime.shop_setting
SHOP = {
    "ALLOW_BACKORDERS": config("SHOP_ALLOW_BACKORDERS", default=False, cast=bool),
    "LOW_STOCK_THRESHOLD": config("SHOP_LOW_STOCK_THRESHOLD", default=5, cast=int),
    "RESERVATION_TTL_MINUTES": config("SHOP_RESERVATION_TTL_MINUTES", default=30, cast=int),
    "CART_ABANDON_AFTER_MINUTES": config("SHOP_CART_ABANDON_AFTER_MINUTES", default=60, cast=int),
    "CART_EXPIRE_AFTER_MINUTES": config("SHOP_CART_EXPIRE_AFTER_MINUTES", default=1440, cast=int),
    "CART_RETENTION_DAYS": config("SHOP_CART_RETENTION_DAYS", default=30, cast=int),
    "AUTO_SWEEP": config("SHOP_AUTO_SWEEP", default=True, cast=bool),
    "SWEEP_LOCK_TIMEOUT_SECONDS": config("SHOP_SWEEP_LOCK_TIMEOUT_SECONDS", default=300, cast=int),
    "CONCURRENCY_RETRIES": config("SHOP_CONCURRENCY_RETRIES", default=3, cast=int),
    "LOG_STOCK_CHANGES": config("SHOP_LOG_STOCK_CHANGES", default=True, cast=bool),
    "RESTOCK_ON_CANCEL": config("SHOP_RESTOCK_ON_CANCEL", default=True, cast=bool),
    "EXPIRY_BATCH_SIZE": config("SHOP_EXPIRY_BATCH_SIZE", default=500, cast=int),
}
