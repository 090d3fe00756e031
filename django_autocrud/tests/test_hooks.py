"""
Tests for django_autocrud.hooks module.
"""

import pytest

from django_autocrud.hooks import CrudHooks


def deny(request, method, model):
    return False


class NoOpHooks(CrudHooks):
    def postprocess_response(self, response, request, operation, model):
        return response


class TestCrudHooks:
    """Tests for the default hooks."""

    def test_defaults_are_noops(self):
        from django_autocrud.hooks import CrudHooks

        hooks = CrudHooks()

        assert hooks.authorization(None, "index", None) is None
        assert hooks.preprocess_data({}, None, "store", None) is None
        assert hooks.postprocess_response([], None, "index", None) is None
        assert hooks.before_delete(None, None) is None


class TestFromConfig:
    """Tests for CrudHooks.from_config."""

    def test_empty(self):
        from django_autocrud.hooks import CallableHooks, CrudHooks

        hooks = CrudHooks.from_config()

        assert isinstance(hooks, CallableHooks)
        assert hooks.authorization(None, "index", None) is None

    def test_model_overrides_global(self):
        from django_autocrud.hooks import CrudHooks

        hooks = CrudHooks.from_config(
            {"authorization": deny, "postprocess_response": lambda r, *a: "global"},
            {"postprocess_response": lambda r, *a: "model"},
        )

        assert hooks.authorization(None, "index", None) is False
        assert hooks.postprocess_response([], None, "index", None) == "model"

    def test_dotted_path(self):
        from django_autocrud.hooks import CrudHooks

        hooks = CrudHooks.from_config({"authorization": "django_autocrud.tests.test_hooks.deny"})

        assert hooks.authorization(None, "show", None) is False

    def test_subclass(self):
        from django_autocrud.hooks import CrudHooks

        class StaffOnly(CrudHooks):
            def authorization(self, request, method, model):
                return False

        hooks = CrudHooks.from_config({"authorization": lambda *a: True}, StaffOnly)

        assert hooks.authorization(None, "index", None) is False

    def test_subclass_without_global_hooks(self):
        from django_autocrud.hooks import CrudHooks

        class StaffOnly(CrudHooks):
            pass

        assert isinstance(CrudHooks.from_config(None, StaffOnly), StaffOnly)

    def test_subclass_keeps_global_slots(self):
        from django_autocrud.hooks import CrudHooks

        class WrapPosts(CrudHooks):
            def postprocess_response(self, response, request, operation, model):
                return {"wrapped": response}

        hooks = CrudHooks.from_config({"authorization": deny}, WrapPosts)

        assert hooks.authorization(None, "index", None) is False
        assert hooks.postprocess_response([], None, "index", None) == {"wrapped": []}

    def test_dotted_path_to_subclass_keeps_global_slots(self):
        from django_autocrud.hooks import CrudHooks

        hooks = CrudHooks.from_config({"authorization": deny}, "django_autocrud.tests.test_hooks.NoOpHooks")

        assert hooks.authorization(None, "index", None) is False

    def test_callable_hooks_instance_keeps_global_slots(self):
        from django_autocrud.hooks import CallableHooks, CrudHooks

        model_hooks = CallableHooks({"before_delete": lambda instance, request: "deleted"})
        hooks = CrudHooks.from_config({"authorization": deny}, model_hooks)

        assert hooks.authorization(None, "index", None) is False
        assert hooks.before_delete(None, None) == "deleted"

    def test_instance(self):
        from django_autocrud.hooks import CrudHooks

        instance = CrudHooks()

        assert CrudHooks.from_config(None, instance) is instance

    def test_unknown_slot(self):
        from django.core.exceptions import ImproperlyConfigured

        from django_autocrud.hooks import CrudHooks

        with pytest.raises(ImproperlyConfigured) as exc_info:
            CrudHooks.from_config({"after_save": deny})

        assert "after_save" in str(exc_info.value)

    def test_not_callable(self):
        from django.core.exceptions import ImproperlyConfigured

        from django_autocrud.hooks import CrudHooks

        with pytest.raises(ImproperlyConfigured):
            CrudHooks.from_config({"authorization": 5})
