"""
Django-AutoCrud Route Generator

Orchestrates route generation: decides whether generation should run,
builds route definitions for every configured (or discovered) model,
skips conflicting routes, registers the rest and records their metadata.

States: idle -> initializing -> processing -> logging -> idle

Example:
    >>> result = RouteGenerator().generate_routes()
    >>> result.skipped, len(result.registered), len(result.conflicts)
    (False, 14, 0)
"""

import enum
import logging
from dataclasses import dataclass, field

from django_autocrud.conf import autocrud_settings
from django_autocrud.conflicts import ConflictDetector
from django_autocrud.entities import discover_models, get_model, model_label
from django_autocrud.hooks import CrudHooks
from django_autocrud.metadata import RouteMetadataStore, config_fingerprint
from django_autocrud.router import route_table as default_route_table
from django_autocrud.routes import RouteBuilder

logger = logging.getLogger("django_autocrud")

RESET_LIMITATION_MESSAGE = (
    "Auto-CRUD route metadata cleared, but generated routes stay registered until the "
    "process restarts. Django cannot unregister URL patterns at runtime."
)


class GeneratorState(enum.Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    PROCESSING = "processing"
    LOGGING = "logging"


@dataclass
class GenerationResult:
    skipped: bool = False
    registered: list = field(default_factory=list)
    conflicts: list = field(default_factory=list)


def format_table(headers, rows):
    """
    Render rows as a plain-text table.

    Example:
        >>> print(format_table(["Name"], [["posts.index"]]))
        Name
        -----------
        posts.index
    """
    rows = [[str(cell) for cell in row] for row in rows]
    widths = [max([len(header)] + [len(row[i]) for row in rows]) for i, header in enumerate(headers)]
    lines = [
        "  ".join(header.ljust(width) for header, width in zip(headers, widths)).rstrip(),
        "  ".join("-" * width for width in widths),
    ]
    for row in rows:
        lines.append("  ".join(cell.ljust(width) for cell, width in zip(row, widths)).rstrip())
    return "\n".join(lines)


def format_conflicts(conflicts):
    return format_table(
        ["Model", "Method", "HTTP", "Pattern", "Name", "Reason"],
        [[c.entity, c.method, c.http_method, c.pattern, c.name, c.reason] for c in conflicts],
    )


class RouteGenerator:
    """
    Generates CRUD routes for configured models.

    Args:
        route_table: Live route table (defaults to the one behind
            django_autocrud.urls)
        metadata: RouteMetadataStore
        settings: Settings object (defaults to autocrud_settings)
        stdout: Optional stream receiving human-readable conflict and
            reset messages (management commands pass theirs)
    """

    def __init__(self, route_table=None, metadata=None, settings=None, stdout=None):
        self.settings = settings or autocrud_settings
        self.route_table = route_table or default_route_table
        self.metadata = metadata or RouteMetadataStore()
        self.builder = RouteBuilder(self.settings)
        self.detector = ConflictDetector(namespace=self.settings.ROUTE_NAMESPACE)
        self.prevent_conflicts = self.settings.PREVENT_ROUTE_CONFLICTS
        self.stdout = stdout
        self.state = GeneratorState.IDLE
        self.conflict_log = []

    def _write(self, message):
        if self.stdout is not None:
            self.stdout.write(message)

    # Generation

    def configured_models(self):
        return dict(self.settings.MODELS or {})

    def generate_routes(self, models=None):
        """
        Run one generation pass.

        Args:
            models: Optional dict of model label -> model config; defaults
                to the MODELS setting

        Returns:
            GenerationResult
        """
        self.state = GeneratorState.INITIALIZING
        self.conflict_log = []

        if self.should_skip_generation():
            logger.info("Routes already generated and configuration unchanged; skipping generation")
            self._write("Routes already generated and configuration unchanged. Skipping generation.")
            self.state = GeneratorState.IDLE
            return GenerationResult(skipped=True)

        self.metadata.store_fingerprint(config_fingerprint(self.settings))
        if self.settings.AUTO_RESET_ON_CONFIG_CHANGE:
            self.metadata.clear()

        self.state = GeneratorState.PROCESSING
        models = self.configured_models() if models is None else models
        existing = self.route_table.live_routes()
        registered = []
        for label, model_config in models.items():
            registered.extend(self.generate_routes_for_model(label, model_config, existing))

        self.state = GeneratorState.LOGGING
        if self.conflict_log and self.prevent_conflicts:
            self.log_conflicts()

        self.state = GeneratorState.IDLE
        return GenerationResult(registered=registered, conflicts=list(self.conflict_log))

    def generate_routes_for_model(self, model, model_config=None, existing=None):
        """
        Register the routes of one model, skipping conflicting ones.

        Args:
            model: Model class or label
            model_config: Per-model settings
            existing: Live routes to check against; accepted routes are
                appended to it

        Returns:
            List of registered RouteDefinitions
        """
        model = get_model(model)
        model_config = model_config or {}
        definitions = self.builder.build(model, model_config)

        if existing is None:
            existing = self.route_table.live_routes()

        if self.prevent_conflicts:
            accepted, conflicts = self.detector.partition(definitions, existing)
            self.conflict_log.extend(conflicts)
        else:
            accepted = definitions

        if not accepted:
            return []

        controller = self.build_controller(model, model_config)
        for definition in accepted:
            self.route_table.register(definition, controller.as_view(definition.method))
            self.metadata.record(definition)
            existing.append(self.detector.as_live_route(definition))

        logger.info(
            "Generated %d route(s) for %s",
            len(accepted),
            model_label(model),
            extra={"model": model_label(model), "routes": [d.name for d in accepted]},
        )
        return accepted

    def build_controller(self, model, model_config=None):
        """Construct the controller of a model once, with its hooks."""
        model_config = model_config or {}
        controller_class = self.builder.controller_class(model_config)
        hooks = CrudHooks.from_config(self.settings.GLOBAL_HOOKS, model_config.get("hooks"))
        return controller_class(model, hooks=hooks)

    def scan_for_models(self, directory=None):
        """Labels of the installed models scan mode would generate routes for."""
        return [model_label(model) for model in discover_models(directory, self.settings.SCAN_EXCLUDE_APPS)]

    def generate_routes_for_discovered_models(self, directory=None):
        """
        Generate routes for every discovered model.

        Models also listed in MODELS keep their configuration.
        """
        configured = self.configured_models()
        models = {label: configured.get(label, {}) for label in self.scan_for_models(directory)}
        return self.generate_routes(models)

    def should_skip_generation(self):
        """
        Skip when conflict prevention is on, every tracked route is live
        and the configuration fingerprint is unchanged.
        """
        if not self.prevent_conflicts:
            return False

        tracked = self.metadata.route_names()
        if not tracked:
            return False

        live = self.route_table.route_names()
        if any(self.detector.qualified_name(name) not in live for name in tracked):
            return False

        return self.metadata.get_fingerprint() == config_fingerprint(self.settings)

    def log_conflicts(self):
        logger.warning(
            "Auto CRUD route conflicts detected",
            extra={"conflicts": [c.as_dict() for c in self.conflict_log], "package": "django-autocrud"},
        )
        self._write("Route conflicts detected:")
        self._write(format_conflicts(self.conflict_log))

    def get_conflicts(self):
        return list(self.conflict_log)

    # Inspection

    def get_model_route_info(self, model, model_config=None):
        model = get_model(model)
        if model_config is None:
            model_config = self.configured_models().get(model_label(model), {})
        return self.builder.route_info(model, model_config)

    def validate_routes(self):
        """
        Conflicts the configured models would hit, without registering.

        Runs regardless of PREVENT_ROUTE_CONFLICTS and ignores routes
        generated by django-autocrud itself.
        """
        existing = [route for route in self.route_table.live_routes() if not route.generated]
        candidates = []
        for label, model_config in self.configured_models().items():
            candidates.extend(self.builder.build(label, model_config or {}))
        return self.detector.find_all_conflicts(candidates, existing)

    def get_generated_routes_metadata(self):
        return self.metadata.all()

    def get_model_routes_metadata(self, models):
        return self.metadata.for_entities(model_label(get_model(model)) for model in models)

    def has_generated_routes(self):
        return self.metadata.has_routes()

    def get_generated_routes_count(self):
        return self.metadata.count()

    def live_route_names(self):
        """Live route names with the namespace stripped, as metadata stores them."""
        prefix = f"{self.settings.ROUTE_NAMESPACE}:" if self.settings.ROUTE_NAMESPACE else ""
        names = set()
        for name in self.route_table.route_names():
            if prefix and name.startswith(prefix):
                name = name[len(prefix) :]
            names.add(name)
        return names

    def validate_generated_routes(self):
        return self.metadata.validate_against_live_routes(self.live_route_names())

    def cleanup_stale_metadata(self):
        return self.metadata.cleanup_stale(self.live_route_names())

    # Reset

    def reset_generated_routes(self):
        """
        Clear all route metadata.

        Registered routes keep responding until the process restarts.

        Returns:
            True on success, False if the cache failed
        """
        try:
            names = self.metadata.route_names()
            if not names:
                return True
            self.log_reset_limitation(names)
            self.metadata.clear()
            return True
        except Exception as e:
            logger.error("Failed to reset auto-crud routes", extra={"error": str(e), "package": "django-autocrud"})
            return False

    def reset_routes_for_models(self, models):
        """
        Clear the route metadata of some models.

        Returns:
            True on success, False if the cache failed or a model is unknown
        """
        try:
            labels = [model_label(get_model(model)) for model in models]
            if not self.metadata.has_routes():
                return True
            removed = self.metadata.remove_entities(labels)
            if removed:
                self.log_reset_limitation(removed)
            return True
        except Exception as e:
            logger.error(
                "Failed to reset routes for specific models",
                extra={"models": list(models), "error": str(e), "package": "django-autocrud"},
            )
            return False

    def log_reset_limitation(self, route_names):
        logger.warning(RESET_LIMITATION_MESSAGE, extra={"routes_cleared": list(route_names), "package": "django-autocrud"})
        self._write("Route reset limitation:")
        self._write("  Django cannot unregister URL patterns once the resolver has loaded them.")
        self._write(f"  Metadata cleared for {len(route_names)} route(s), but they remain active.")
        self._write("  Restart the application to drop them.")
