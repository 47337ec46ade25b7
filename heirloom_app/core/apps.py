from django.apps import AppConfig


class CoreConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "heirloom_app.core"
    label = "core"

    def ready(self):
        from . import signals  # noqa: F401
