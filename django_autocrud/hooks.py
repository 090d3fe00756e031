"""
Django-AutoCrud Hooks

Named hook slots run by the CRUD request handler. Every slot has a no-op
default; returning None means "no opinion, keep the default behaviour".

Hooks are configured either by subclassing CrudHooks or with a dict of
callables (or dotted paths) in settings:

    AUTO_CRUD = {
        'GLOBAL_HOOKS': {
            'authorization': 'myapp.hooks.staff_only',
        },
        'MODELS': {
            'blog.Post': {
                'hooks': {'postprocess_response': 'myapp.hooks.wrap_posts'},
            },
        },
    }

Per-model hooks override global hooks slot by slot.
"""

from django.core.exceptions import ImproperlyConfigured

from django_autocrud.utils import resolve_callable

HOOK_SLOTS = (
    "authorization",
    "preprocess_data",
    "preprocess_bulk_data",
    "preprocess_single_data",
    "postprocess_response",
    "before_delete",
)


class CrudHooks:
    """
    Base hooks class for django-autocrud.

    Subclass this to customize request handling, similar to
    Django REST Framework's permission classes.

    Example:
        class PostHooks(CrudHooks):
            def authorization(self, request, method, model):
                return request.user.is_staff

            def preprocess_data(self, data, request, operation, model):
                return {**data, 'author': request.user.author.pk}
    """

    def authorization(self, request, method, model):
        """Return False to deny the request; None or True allows it."""
        return None

    def preprocess_data(self, data, request, operation, model):
        """Transform the payload of a store (single row) or update."""
        return None

    def preprocess_bulk_data(self, rows, request, model):
        """Transform the row list of a bulk store."""
        return None

    def preprocess_single_data(self, data, request, model):
        """Transform the payload of a single-row store."""
        return None

    def postprocess_response(self, response, request, operation, model):
        """Transform the serialized payload before it is returned."""
        return None

    def before_delete(self, instance, request):
        """Called with the instance right before it is deleted."""
        return None

    @classmethod
    def from_config(cls, global_hooks=None, model_hooks=None):
        """
        Build a hooks object from settings.

        Model hooks win slot by slot. A CrudHooks subclass or instance only
        claims the slots it overrides; the rest fall back to global hooks.

        Args:
            global_hooks: GLOBAL_HOOKS dict
            model_hooks: Per-model 'hooks' value: a dict of callables, a
                CrudHooks subclass or instance, or a dotted path to one

        Raises:
            ImproperlyConfigured: for unknown slots or unimportable callables
        """
        model_hooks = resolve_callable(model_hooks, "hooks")
        if isinstance(model_hooks, type) and issubclass(model_hooks, CrudHooks):
            model_hooks = model_hooks()

        slots = _resolve_slots(global_hooks or {})
        if isinstance(model_hooks, CrudHooks):
            if not slots:
                return model_hooks
            slots.update(model_hooks.overridden_slots())
        else:
            slots.update(_resolve_slots(model_hooks or {}))
        return CallableHooks(slots)

    def overridden_slots(self):
        """Return {slot: bound method} for slots this class overrides."""
        return {
            name: getattr(self, name)
            for name in HOOK_SLOTS
            if getattr(type(self), name) is not getattr(CrudHooks, name)
        }


def _resolve_slots(source):
    slots = {}
    for name, func in source.items():
        if name not in HOOK_SLOTS:
            raise ImproperlyConfigured(f"Unknown django-autocrud hook '{name}'. Valid hooks: {', '.join(HOOK_SLOTS)}")
        func = resolve_callable(func, f"hooks.{name}")
        if not callable(func):
            raise ImproperlyConfigured(f"Hook '{name}' must be callable")
        slots[name] = func
    return slots


class CallableHooks(CrudHooks):
    """CrudHooks backed by a dict of slot name -> callable."""

    def __init__(self, slots=None):
        self.slots = dict(slots or {})

    def overridden_slots(self):
        return dict(self.slots)

    def _call(self, name, *args):
        func = self.slots.get(name)
        if func is None:
            return None
        return func(*args)

    def authorization(self, request, method, model):
        return self._call("authorization", request, method, model)

    def preprocess_data(self, data, request, operation, model):
        return self._call("preprocess_data", data, request, operation, model)

    def preprocess_bulk_data(self, rows, request, model):
        return self._call("preprocess_bulk_data", rows, request, model)

    def preprocess_single_data(self, data, request, model):
        return self._call("preprocess_single_data", data, request, model)

    def postprocess_response(self, response, request, operation, model):
        return self._call("postprocess_response", response, request, operation, model)

    def before_delete(self, instance, request):
        return self._call("before_delete", instance, request)
