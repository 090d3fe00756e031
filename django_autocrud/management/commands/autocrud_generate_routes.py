from django.core.exceptions import ImproperlyConfigured
from django.core.management.base import BaseCommand, CommandError

from django_autocrud.entities import get_model, model_label
from django_autocrud.generator import RouteGenerator, format_conflicts, format_table


class Command(BaseCommand):
    help = "Generate CRUD routes for configured or discovered models."

    def add_arguments(self, parser):
        parser.add_argument("--scan", action="store_true", help="Discover models automatically.")
        parser.add_argument("--model", help="Generate routes for one model ('app_label.ModelName').")
        parser.add_argument("--directory", help="Only discover models defined under this directory.")
        parser.add_argument("--validate", action="store_true", help="Check for conflicts without generating routes.")
        parser.add_argument("--reset", action="store_true", help="Clear route metadata before generating.")
        parser.add_argument("--dry-run", action="store_true", help="Show the routes that would be generated.")

    def handle(self, *args, **options):
        self.generator = RouteGenerator(stdout=self.stdout)

        if options["validate"]:
            return self.validate_routes()
        if options["model"]:
            return self.generate_for_model(options["model"], options["dry_run"])
        if options["scan"]:
            return self.scan_and_generate(options["directory"], options["dry_run"])
        return self.generate_from_config(options["reset"], options["dry_run"])

    def display_route_info(self, info):
        self.stdout.write(f"Model: {info['model']}")
        self.stdout.write(f"Resource: {info['resource_name']}")
        self.stdout.write(f"Controller: {info['controller']}")
        if not info["routes"]:
            self.stdout.write(self.style.WARNING("No routes would be generated for this model."))
            return
        rows = [[r["method"], r["http_method"], r["pattern"], r["name"]] for r in info["routes"]]
        self.stdout.write(format_table(["Method", "HTTP", "Pattern", "Name"], rows))

    def generate_for_model(self, label, dry_run):
        try:
            model = get_model(label)
        except ImproperlyConfigured as e:
            raise CommandError(str(e))

        model_config = self.generator.configured_models().get(model_label(model), {})
        if dry_run:
            self.display_route_info(self.generator.get_model_route_info(model, model_config))
            return

        registered = self.generator.generate_routes_for_model(model, model_config)
        self.stdout.write(self.style.SUCCESS(f"Generated {len(registered)} route(s) for {model_label(model)}"))
        self.report_conflicts(self.generator.get_conflicts())

    def scan_and_generate(self, directory, dry_run):
        models = self.generator.scan_for_models(directory)
        if not models:
            self.stdout.write(self.style.WARNING("No models found."))
            return

        self.stdout.write(f"Found {len(models)} model(s):")
        for label in models:
            self.stdout.write(f"  - {label}")

        if dry_run:
            for label in models:
                self.display_route_info(self.generator.get_model_route_info(label))
            return

        result = self.generator.generate_routes_for_discovered_models(directory)
        self.report_result(result)

    def generate_from_config(self, reset, dry_run):
        models = self.generator.configured_models()
        if not models:
            raise CommandError("No models configured for auto-generation. Add models to AUTO_CRUD['MODELS'] or use --scan.")

        if reset:
            self.stdout.write("Resetting existing routes...")
            if not self.generator.reset_generated_routes():
                raise CommandError("Failed to reset existing routes.")
            self.stdout.write(self.style.SUCCESS("Existing routes reset."))

        if dry_run:
            self.stdout.write("Dry run: routes that would be generated")
            for label, model_config in models.items():
                self.display_route_info(self.generator.get_model_route_info(label, model_config or {}))
            return

        result = self.generator.generate_routes()
        self.report_result(result)

    def report_result(self, result):
        if result.skipped:
            return
        models = sorted({d.entity for d in result.registered})
        self.stdout.write(
            self.style.SUCCESS(f"Route generation complete. Generated {len(result.registered)} route(s) for {len(models)} model(s).")
        )

    def report_conflicts(self, conflicts):
        if not conflicts:
            return
        self.stdout.write(self.style.WARNING("Some routes were skipped due to conflicts:"))
        self.stdout.write(format_conflicts(conflicts))

    def validate_routes(self):
        self.stdout.write("Validating routes for conflicts...")
        conflicts = self.generator.validate_routes()
        if not conflicts:
            self.stdout.write(self.style.SUCCESS("No route conflicts detected. All routes can be safely generated."))
            return

        self.stdout.write(format_conflicts(conflicts))
        raise CommandError(f"{len(conflicts)} route conflict(s) detected.")
