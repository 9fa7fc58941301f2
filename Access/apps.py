from django.apps import AppConfig


class AccessConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "Access"
    verbose_name = "Permission access"

    def ready(self):
        from . import signals  # noqa: F401
