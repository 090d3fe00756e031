from django.core.exceptions import ImproperlyConfigured
from django.core.management.base import BaseCommand, CommandError

from django_autocrud.generator import RouteGenerator, format_table

USAGE = """Available options:
  --show                   Show current auto-generated routes
  --all                    Reset all auto-generated routes
  --models=app.Model,...   Reset routes for specific models
  --cleanup                Clean up stale metadata
  --force                  Skip confirmation prompts"""


class Command(BaseCommand):
    help = "Reset the metadata of auto-generated CRUD routes."

    def add_arguments(self, parser):
        parser.add_argument("--all", action="store_true", help="Reset all auto-generated routes.")
        parser.add_argument("--models", help="Comma-separated model labels to reset routes for.")
        parser.add_argument("--force", action="store_true", help="Skip confirmation prompts.")
        parser.add_argument("--cleanup", action="store_true", help="Remove metadata of routes that no longer exist.")
        parser.add_argument("--show", action="store_true", help="Show route metadata without resetting.")

    def handle(self, *args, **options):
        self.generator = RouteGenerator(stdout=self.stdout)
        self.force = options["force"]

        if options["show"]:
            return self.show_route_metadata()
        if options["cleanup"]:
            return self.cleanup_stale_metadata()
        if options["models"]:
            return self.reset_models([label.strip() for label in options["models"].split(",") if label.strip()])
        if options["all"]:
            return self.reset_all()

        self.stdout.write(USAGE)

    def confirm(self, question):
        if self.force:
            return True
        answer = input(f"{question} [y/N] ")
        return answer.strip().lower() in ("y", "yes")

    def display_routes(self, records, detailed=False):
        headers = ["Route Name", "Model", "Method", "HTTP", "Pattern"]
        if detailed:
            headers.append("Generated At")
        rows = []
        for record in records:
            row = [record.route_name, record.entity, record.method, record.http_method, record.pattern]
            if detailed:
                row.append(record.generated_at)
            rows.append(row)
        self.stdout.write(format_table(headers, rows))

    def reset_all(self):
        if not self.generator.has_generated_routes():
            self.stdout.write(self.style.SUCCESS("No auto-generated routes found to reset."))
            return

        self.display_routes(self.generator.get_generated_routes_metadata())
        if not self.confirm("Are you sure you want to reset ALL auto-generated routes?"):
            self.stdout.write("Operation cancelled.")
            return

        if not self.generator.reset_generated_routes():
            raise CommandError("Failed to reset routes. Check logs for details.")
        self.stdout.write(self.style.SUCCESS("All auto-generated routes have been reset."))

    def reset_models(self, labels):
        try:
            records = self.generator.get_model_routes_metadata(labels)
        except ImproperlyConfigured as e:
            raise CommandError(str(e))

        if not records:
            self.stdout.write(self.style.SUCCESS("No routes found for the specified models."))
            return

        self.stdout.write(f"Routes to be reset for models: {', '.join(labels)}")
        self.display_routes(records)
        if not self.confirm("Are you sure you want to reset routes for these models?"):
            self.stdout.write("Operation cancelled.")
            return

        if not self.generator.reset_routes_for_models(labels):
            raise CommandError("Failed to reset routes for specified models. Check logs for details.")
        self.stdout.write(self.style.SUCCESS("Routes for specified models have been reset."))

    def show_route_metadata(self):
        records = self.generator.get_generated_routes_metadata()
        if not records:
            self.stdout.write(self.style.SUCCESS("No auto-generated routes found."))
            return

        self.stdout.write("Current auto-generated routes:")
        self.display_routes(records, detailed=True)
        self.stdout.write("Routes count by model:")
        for label, count in sorted(self.generator.get_generated_routes_count().items()):
            self.stdout.write(f"  {label}: {count} routes")

    def cleanup_stale_metadata(self):
        cleaned = self.generator.cleanup_stale_metadata()
        if cleaned:
            self.stdout.write(self.style.SUCCESS(f"Cleaned up {cleaned} stale route entries."))
        else:
            self.stdout.write(self.style.SUCCESS("No stale metadata found."))
