"""
Django-AutoCrud Router

Binds route definitions to the Django URL resolver.

Generated routes are appended to a urlpatterns list exposed by
django_autocrud.urls; include it from the project's urlconf:

    # urls.py
    urlpatterns = [
        path('', include('django_autocrud.urls')),
    ]

Django has no way to unregister a URL pattern from a running resolver,
so registration is append-only for the lifetime of the process.
"""

import logging
import re

from django.conf import settings
from django.http import HttpResponseNotAllowed
from django.urls import URLPattern, URLResolver, clear_url_caches, get_resolver, re_path
from django.urls.resolvers import LocalePrefixPattern, RegexPattern, RoutePattern

from django_autocrud.conf import autocrud_settings
from django_autocrud.conflicts import LiveRoute
from django_autocrud.routes import PARAMETER_RE
from django_autocrud.utils import resolve_callable

logger = logging.getLogger("django_autocrud")

DEFAULT_CONSTRAINT = "[^/]+"

ROUTE_PARAM_RE = re.compile(r"<(?:(?P<converter>[^>:]+):)?(?P<name>\w+)>")


def compile_pattern(path, constraints=None):
    """
    Compile a '{param}' path into an anchored regex for re_path().

    Example:
        >>> compile_pattern("api/posts/{id}", {"id": "[0-9]+"})
        '^api/posts/(?P<id>[0-9]+)/?$'
    """
    constraints = constraints or {}
    regex = []
    position = 0
    for match in PARAMETER_RE.finditer(path):
        regex.append(re.escape(path[position : match.start()]))
        name = match.group(1)
        regex.append(f"(?P<{name}>{constraints.get(name) or DEFAULT_CONSTRAINT})")
        position = match.end()
    regex.append(re.escape(path[position:]))
    return "^" + "".join(regex).strip("/") + "/?$"


def apply_middleware(view, middleware):
    """
    Wrap a view with decorator middleware.

    The first decorator listed runs first (outermost).
    """
    for decorator in reversed(list(middleware or [])):
        view = resolve_callable(decorator, "MIDDLEWARE")(view)
    return view


class MethodDispatcher:
    """
    Shared view of every generated route with the same path.

    Dispatches on the HTTP method; HEAD is served by the GET handler and
    unregistered methods get a 405.
    """

    autocrud_generated = True

    def __init__(self, path, constraints=None):
        self.autocrud_path = path
        self.autocrud_constraints = dict(constraints or {})
        self.handlers = {}
        if autocrud_settings.CSRF_EXEMPT:
            self.csrf_exempt = True

    def __repr__(self):
        return f"<MethodDispatcher {self.autocrud_path} {sorted(self.handlers)}>"

    @property
    def http_methods(self):
        methods = set(self.handlers)
        if "GET" in methods:
            methods.add("HEAD")
        return frozenset(methods)

    def register(self, http_method, view):
        self.handlers[http_method.upper()] = view

    def __call__(self, request, *args, **kwargs):
        method = request.method.upper()
        handler = self.handlers.get(method)
        if handler is None and method == "HEAD":
            handler = self.handlers.get("GET")
        if handler is None:
            logger.warning(
                "Method Not Allowed (%s): %s",
                request.method,
                request.path,
                extra={"status_code": 405, "request": request},
            )
            return HttpResponseNotAllowed(sorted(self.http_methods))
        return handler(request, *args, **kwargs)


def _split_group(regex, start):
    """Return the index just past the group opening at regex[start]."""
    depth = 0
    index = start
    while index < len(regex):
        char = regex[index]
        if char == "\\":
            index += 2
            continue
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return index + 1
        index += 1
    return len(regex)


def normalize_regex(regex):
    """
    Convert a re_path() regex into a '{param}' path plus constraints.

    Example:
        >>> normalize_regex(r"^api/posts/(?P<pk>[0-9]+)/$")
        ('api/posts/{pk}/', {'pk': '[0-9]+'})
    """
    regex = regex.lstrip("^")
    if regex.endswith("$") and not regex.endswith("\\$"):
        regex = regex[:-1]
    if regex.endswith("/?"):
        regex = regex[:-2] + "/"

    path = []
    constraints = {}
    index = 0
    while index < len(regex):
        if regex.startswith("(?P<", index):
            end = _split_group(regex, index)
            group = regex[index:end]
            name, _, body = group[4:-1].partition(">")
            path.append("{" + name + "}")
            constraints[name] = body
            index = end
        elif regex[index] == "\\" and index + 1 < len(regex):
            path.append(regex[index + 1])
            index += 2
        else:
            path.append(regex[index])
            index += 1
    return "".join(path), constraints


def normalize_pattern(pattern):
    """
    Convert a resolver pattern into a '{param}' path plus constraints.
    """
    if isinstance(pattern, RoutePattern):
        route = str(pattern._route)
        constraints = {}

        def replace(match):
            name = match.group("name")
            converter = pattern.converters.get(name)
            if converter is not None:
                constraints[name] = converter.regex
            return "{" + name + "}"

        return ROUTE_PARAM_RE.sub(replace, route), constraints

    if isinstance(pattern, RegexPattern):
        return normalize_regex(str(pattern._regex))

    if isinstance(pattern, LocalePrefixPattern):
        return pattern.language_prefix, {}

    return str(pattern), {}


def view_http_methods(callback):
    """
    HTTP methods a view accepts, or None when it accepts any method.

    Handles django-autocrud dispatchers, class-based views (as_view()) and
    viewsets exposing an 'actions' map.
    """
    methods = getattr(callback, "http_methods", None)
    if methods is not None:
        return frozenset(m.upper() for m in methods)

    actions = getattr(callback, "actions", None)
    if isinstance(actions, dict) and actions:
        methods = {m.upper() for m in actions}
        if "GET" in methods:
            methods.add("HEAD")
        return frozenset(methods)

    view_class = getattr(callback, "view_class", None)
    if view_class is not None:
        methods = {m.upper() for m in view_class.http_method_names if hasattr(view_class, m)}
        if "GET" in methods:
            methods.add("HEAD")
        return frozenset(methods)

    return None


def _reset_reverse_caches(resolver):
    # Private URLResolver caches, checked against Django 4.2 through 5.2
    for entry in resolver.url_patterns:
        if isinstance(entry, URLResolver):
            _reset_reverse_caches(entry)
    resolver._reverse_dict.clear()
    resolver._namespace_dict.clear()
    resolver._app_dict.clear()
    resolver._populated = False


class DjangoRouteTable:
    """
    The live route table: Django's resolver plus django-autocrud's own
    urlpatterns.

    Example:
        table = DjangoRouteTable()
        table.register(definition, view)
        names = table.route_names()
    """

    def __init__(self):
        self.urlpatterns = []
        self._dispatchers = {}

    def register(self, definition, view):
        """
        Register a view for a RouteDefinition.

        Definitions sharing a path share one MethodDispatcher; each
        definition gets its own named pattern so every name reverses.
        Registering a name again replaces the earlier pattern.
        """
        dispatcher = self._dispatchers.get(definition.path)
        if dispatcher is None:
            dispatcher = MethodDispatcher(definition.path, definition.constraints)
            self._dispatchers[definition.path] = dispatcher

        dispatcher.register(definition.http_method, apply_middleware(view, definition.middleware))

        self.urlpatterns[:] = [p for p in self.urlpatterns if p.name != definition.name]
        self.urlpatterns.append(
            re_path(compile_pattern(definition.path, definition.constraints), dispatcher, name=definition.name)
        )
        self.refresh_resolvers()

        logger.debug(
            "Registered %s %s",
            definition.http_method,
            definition.path,
            extra={"route_name": definition.name, "model": definition.entity},
        )
        return dispatcher

    def refresh_resolvers(self):
        """
        Drop cached resolvers so new patterns resolve and reverse.

        Included resolvers outlive clear_url_caches() and keep their own
        reverse lookup tables, so those are reset too.
        """
        clear_url_caches()
        urlconf = getattr(settings, "ROOT_URLCONF", None)
        if urlconf is not None:
            _reset_reverse_caches(get_resolver(urlconf))

    def _walk(self, patterns, seen, prefix="", namespace=None):
        for entry in patterns:
            path, constraints = normalize_pattern(entry.pattern)
            if isinstance(entry, URLResolver):
                child_namespace = namespace
                if entry.namespace:
                    child_namespace = f"{namespace}:{entry.namespace}" if namespace else entry.namespace
                nested_constraints = dict(constraints)
                for route in self._walk(entry.url_patterns, seen, prefix + path, child_namespace):
                    yield LiveRoute(
                        path=route.path,
                        methods=route.methods,
                        name=route.name,
                        constraints={**nested_constraints, **route.constraints},
                        generated=route.generated,
                    )
            elif isinstance(entry, URLPattern):
                seen.add(id(entry))
                name = entry.name
                if name and namespace:
                    name = f"{namespace}:{name}"
                callback = entry.callback
                yield LiveRoute(
                    path=(prefix + path).strip("/"),
                    methods=view_http_methods(callback),
                    name=name,
                    constraints=constraints,
                    generated=getattr(callback, "autocrud_generated", False),
                )

    def live_routes(self):
        """
        Every route the resolver knows, plus generated routes not (yet)
        reachable from ROOT_URLCONF.
        """
        urlconf = getattr(settings, "ROOT_URLCONF", None)
        seen = set()
        routes = []
        if urlconf is not None:
            routes.extend(self._walk(get_resolver(urlconf).url_patterns, seen))

        namespace = autocrud_settings.ROUTE_NAMESPACE
        for entry in self.urlpatterns:
            if id(entry) in seen:
                continue
            name = f"{namespace}:{entry.name}" if namespace and entry.name else entry.name
            routes.append(
                LiveRoute(
                    path=entry.callback.autocrud_path,
                    methods=entry.callback.http_methods,
                    name=name,
                    constraints=entry.callback.autocrud_constraints,
                    generated=True,
                )
            )
        return routes

    def route_names(self):
        return {route.name for route in self.live_routes() if route.name}


route_table = DjangoRouteTable()
