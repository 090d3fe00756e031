"""
Django-AutoCrud Settings

Configuration is read from Django settings under the AUTO_CRUD key.
All settings have sensible defaults.

Example:
    # settings.py
    AUTO_CRUD = {
        'AUTO_GENERATE_ROUTES': True,
        'ROUTE_PREFIX': 'api',
        'MODELS': {
            'blog.Post': {'exclude_methods': ['destroy']},
        },
        'QUERY_BUILDER': {'max_per_page': 100},
    }
"""

from django.conf import settings
from django.core.signals import setting_changed
from django.dispatch import receiver

DEFAULTS = {
    # Route generation
    "AUTO_GENERATE_ROUTES": False,
    "ROUTE_PREFIX": "api",
    "ROUTE_NAMESPACE": None,
    "ROUTE_NAME_PATTERN": "{resource}.{method}",
    "MIDDLEWARE": [],  # View decorators applied to every generated route
    "PREVENT_ROUTE_CONFLICTS": True,
    "AUTO_RESET_ON_CONFIG_CHANGE": False,
    # Models exposed through generated routes, keyed by 'app_label.ModelName'
    "MODELS": {},
    "DEFAULT_CONTROLLER": "django_autocrud.controllers.AutoCrudController",
    "SCAN_EXCLUDE_APPS": ["django.*"],
    # Catalog of CRUD methods. Static patterns are emitted before parameterized ones.
    "CRUD_METHODS": {
        "index": {"http_method": "GET", "route_pattern": "{resource}"},
        "store": {"http_method": "POST", "route_pattern": "{resource}"},
        "paginate": {"http_method": "GET", "route_pattern": "{resource}/paginate"},
        "get_one": {"http_method": "GET", "route_pattern": "{resource}/one"},
        "show": {"http_method": "GET", "route_pattern": "{resource}/{id}", "where": {"id": "[0-9]+"}},
        "update": {"http_method": "PUT", "route_pattern": "{resource}/{id}", "where": {"id": "[0-9]+"}},
        "destroy": {"http_method": "DELETE", "route_pattern": "{resource}/{id}", "where": {"id": "[0-9]+"}},
    },
    # Hooks applied to every model unless overridden per model
    "GLOBAL_HOOKS": {},
    # Query builder
    "QUERY_BUILDER": {
        "max_per_page": 250,
        "default_per_page": 25,
        "enable_caching": False,
        "cache_ttl": 3600,
    },
    # Security
    "SECURITY": {
        "max_json_depth": 10,
    },
    # CSRF protection stays on unless explicitly disabled (token-only APIs)
    "CSRF_EXEMPT": False,
}

# Settings whose dict values are merged key-by-key over the defaults
MERGED_SETTINGS = {"QUERY_BUILDER", "SECURITY"}


class AutoCrudSettings:
    """
    A settings object that allows django-autocrud settings to be accessed as
    properties. For example:

        from django_autocrud.conf import autocrud_settings
        print(autocrud_settings.ROUTE_PREFIX)

    Settings can be overridden in Django settings.py under the AUTO_CRUD key.
    """

    def __init__(self, defaults=None):
        self.defaults = defaults or DEFAULTS
        self._cached_attrs = set()

    @property
    def user_settings(self):
        if not hasattr(self, "_user_settings"):
            self._user_settings = getattr(settings, "AUTO_CRUD", {})
        return self._user_settings

    def __getattr__(self, attr):
        if attr not in self.defaults:
            raise AttributeError(f"Invalid django-autocrud setting: '{attr}'")

        try:
            val = self.user_settings[attr]
        except KeyError:
            val = self.defaults[attr]
        else:
            if attr in MERGED_SETTINGS and isinstance(val, dict):
                val = {**self.defaults[attr], **val}

        # Cache the result
        self._cached_attrs.add(attr)
        setattr(self, attr, val)
        return val

    def query_builder(self, key):
        """Shortcut for a single QUERY_BUILDER option."""
        return self.QUERY_BUILDER.get(key, DEFAULTS["QUERY_BUILDER"][key])

    def reload(self):
        """Reload settings (useful for testing)."""
        for attr in self._cached_attrs:
            try:
                delattr(self, attr)
            except AttributeError:
                pass
        self._cached_attrs.clear()
        if hasattr(self, "_user_settings"):
            delattr(self, "_user_settings")


autocrud_settings = AutoCrudSettings(DEFAULTS)


@receiver(setting_changed)
def reload_autocrud_settings(*args, **kwargs):
    if kwargs.get("setting") == "AUTO_CRUD":
        autocrud_settings.reload()
