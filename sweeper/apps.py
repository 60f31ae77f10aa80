"""Django app configuration for the expiry sweeper."""

from django.apps import AppConfig


class SweeperConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "sweeper"
