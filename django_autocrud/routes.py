"""
Django-AutoCrud Route Definitions

Builds the route definitions of a resource from the model, its per-model
configuration and the global CRUD method catalog.

Example:
    >>> builder = RouteBuilder()
    >>> [(r.http_method, r.path, r.name) for r in builder.build("blog.Post")]
    [('GET', 'api/posts', 'posts.index'),
     ('POST', 'api/posts', 'posts.store'),
     ('GET', 'api/posts/paginate', 'posts.paginate'),
     ('GET', 'api/posts/one', 'posts.get_one'),
     ('GET', 'api/posts/{id}', 'posts.show'),
     ('PUT', 'api/posts/{id}', 'posts.update'),
     ('DELETE', 'api/posts/{id}', 'posts.destroy')]
"""

import re
from dataclasses import dataclass, field

from django_autocrud.conf import autocrud_settings
from django_autocrud.entities import get_model, model_label
from django_autocrud.utils import dotted_path, kebab_case, pluralize, resolve_callable

PARAMETER_RE = re.compile(r"\{(\w+)\??\}")


def has_parameters(pattern):
    return bool(PARAMETER_RE.search(pattern))


def join_path(prefix, pattern):
    """
    Join a route prefix and a pattern.

    Examples:
        >>> join_path("/api/", "posts/{id}")
        'api/posts/{id}'
        >>> join_path("", "posts")
        'posts'
    """
    parts = [part.strip("/") for part in (prefix or "", pattern) if part and part.strip("/")]
    return "/".join(parts)


@dataclass(frozen=True)
class RouteDefinition:
    """
    A single route slated for registration.

    Attributes:
        entity: Model label ('blog.Post')
        method: CRUD method key ('show')
        http_method: Upper-case HTTP verb
        pattern: Pattern without the global prefix ('posts/{id}')
        path: Full path ('api/posts/{id}')
        name: Route name ('posts.show')
        middleware: View decorators, global ones first
        constraints: Path parameter name -> regex
        controller: Controller class handling the route
    """

    entity: str
    method: str
    http_method: str
    pattern: str
    path: str
    name: str
    middleware: tuple = ()
    constraints: dict = field(default_factory=dict)
    controller: type = None

    @property
    def has_parameters(self):
        return has_parameters(self.pattern)


class RouteBuilder:
    """
    Produces RouteDefinitions for a model.

    Methods are narrowed by include_methods, then exclude_methods, then
    the controller's supported_methods. Static patterns always come before
    parameterized ones so a '{id}' route never shadows a literal segment.
    """

    def __init__(self, settings=None):
        self.settings = settings or autocrud_settings

    @property
    def catalog(self):
        return self.settings.CRUD_METHODS

    def resource_name(self, model, model_config=None):
        """
        Resource segment of a model's routes.

        Uses route_name_prefix when configured, otherwise the model's
        explicit verbose_name_plural or its pluralized class name,
        kebab-cased.
        """
        model_config = model_config or {}
        if model_config.get("route_name_prefix"):
            return model_config["route_name_prefix"]

        if "verbose_name_plural" in model._meta.original_attrs:
            return kebab_case(str(model._meta.verbose_name_plural))
        return kebab_case(pluralize(model.__name__))

    def route_name(self, resource, method):
        pattern = self.settings.ROUTE_NAME_PATTERN
        return pattern.replace("{resource}", resource).replace("{method}", method)

    def controller_class(self, model_config=None):
        model_config = model_config or {}
        controller = model_config.get("controller") or self.settings.DEFAULT_CONTROLLER
        return resolve_callable(controller, "controller")

    def middleware(self, model_config=None):
        model_config = model_config or {}
        return tuple(self.settings.MIDDLEWARE or []) + tuple(model_config.get("middleware") or [])

    def available_methods(self, controller, model_config=None):
        """
        Catalog method keys exposed for a model, in catalog order.

        Example:
            >>> builder.available_methods(AutoCrudController, {"exclude_methods": ["destroy"]})
            ['index', 'store', 'paginate', 'get_one', 'show', 'update']
        """
        model_config = model_config or {}
        methods = list(self.catalog)

        include = model_config.get("include_methods")
        if include:
            methods = [m for m in methods if m in include]

        exclude = model_config.get("exclude_methods") or []
        methods = [m for m in methods if m not in exclude]

        supported = getattr(controller, "supported_methods", frozenset())
        return [m for m in methods if m in supported]

    def build(self, model, model_config=None):
        """
        Build every route definition of a model.

        Args:
            model: Model class or label
            model_config: Per-model settings (controller, middleware,
                include_methods, exclude_methods, route_name_prefix)

        Returns:
            List of RouteDefinition, static patterns first
        """
        model = get_model(model)
        model_config = model_config or {}
        controller = self.controller_class(model_config)
        resource = self.resource_name(model, model_config)
        middleware = self.middleware(model_config)
        prefix = self.settings.ROUTE_PREFIX

        definitions = []
        for method in self.available_methods(controller, model_config):
            method_config = self.catalog[method]
            pattern = method_config["route_pattern"].replace("{resource}", resource)
            definitions.append(
                RouteDefinition(
                    entity=model_label(model),
                    method=method,
                    http_method=method_config["http_method"].upper(),
                    pattern=pattern,
                    path=join_path(prefix, pattern),
                    name=self.route_name(resource, method),
                    middleware=middleware,
                    constraints=dict(method_config.get("where") or {}),
                    controller=controller,
                )
            )

        static = [d for d in definitions if not d.has_parameters]
        parameterized = [d for d in definitions if d.has_parameters]
        return static + parameterized

    def route_info(self, model, model_config=None):
        """
        Describe a model's routes without registering anything.

        Returns:
            Dict with model, resource_name, controller and routes
        """
        model = get_model(model)
        model_config = model_config or {}
        controller = dotted_path(self.controller_class(model_config))
        return {
            "model": model_label(model),
            "resource_name": self.resource_name(model, model_config),
            "controller": controller,
            "routes": [
                {
                    "method": definition.method,
                    "http_method": definition.http_method,
                    "pattern": definition.pattern,
                    "name": definition.name,
                    "controller": controller,
                }
                for definition in self.build(model, model_config)
            ],
        }
