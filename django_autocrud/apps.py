import logging

from django.apps import AppConfig

logger = logging.getLogger("django_autocrud")


class AutoCrudConfig(AppConfig):
    name = "django_autocrud"
    verbose_name = "Django AutoCrud"

    def ready(self):
        from django_autocrud.conf import autocrud_settings
        from django_autocrud.generator import RouteGenerator

        if not autocrud_settings.AUTO_GENERATE_ROUTES:
            return

        result = RouteGenerator().generate_routes()
        if not result.skipped:
            logger.info(
                "Auto CRUD generated %d route(s), %d conflict(s)",
                len(result.registered),
                len(result.conflicts),
            )
