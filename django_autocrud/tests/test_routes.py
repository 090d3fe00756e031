"""
Tests for django_autocrud.routes module.
"""

import pytest
from django.test import override_settings


def noop_decorator(view):
    return view


class TestJoinPath:
    """Tests for join_path and has_parameters."""

    def test_join(self):
        from django_autocrud.routes import join_path

        assert join_path("/api/", "posts/{id}") == "api/posts/{id}"
        assert join_path("", "posts") == "posts"
        assert join_path(None, "/posts/") == "posts"

    def test_has_parameters(self):
        from django_autocrud.routes import has_parameters

        assert has_parameters("posts/{id}")
        assert has_parameters("posts/{id?}")
        assert not has_parameters("posts/paginate")


class TestResourceName:
    """Tests for RouteBuilder.resource_name."""

    def test_pluralized_kebab(self):
        from django_autocrud.routes import RouteBuilder
        from django_autocrud.tests.testapp.models import ApiToken, Post

        builder = RouteBuilder()

        assert builder.resource_name(Post) == "posts"
        assert builder.resource_name(ApiToken) == "api-tokens"

    def test_route_name_prefix(self):
        from django_autocrud.routes import RouteBuilder
        from django_autocrud.tests.testapp.models import Post

        assert RouteBuilder().resource_name(Post, {"route_name_prefix": "articles"}) == "articles"


class TestBuild:
    """Tests for RouteBuilder.build."""

    def test_default_routes(self):
        from django_autocrud.controllers import AutoCrudController
        from django_autocrud.routes import RouteBuilder

        definitions = RouteBuilder().build("testapp.Post")

        assert [(d.http_method, d.path, d.name) for d in definitions] == [
            ("GET", "api/posts", "posts.index"),
            ("POST", "api/posts", "posts.store"),
            ("GET", "api/posts/paginate", "posts.paginate"),
            ("GET", "api/posts/one", "posts.get_one"),
            ("GET", "api/posts/{id}", "posts.show"),
            ("PUT", "api/posts/{id}", "posts.update"),
            ("DELETE", "api/posts/{id}", "posts.destroy"),
        ]
        assert all(d.entity == "testapp.Post" for d in definitions)
        assert all(d.controller is AutoCrudController for d in definitions)
        assert definitions[4].constraints == {"id": "[0-9]+"}

    def test_static_patterns_come_first(self):
        from django_autocrud.routes import RouteBuilder

        catalog = {
            "show": {"http_method": "GET", "route_pattern": "{resource}/{id}"},
            "index": {"http_method": "GET", "route_pattern": "{resource}"},
            "paginate": {"http_method": "get", "route_pattern": "{resource}/paginate"},
        }
        with override_settings(AUTO_CRUD={"CRUD_METHODS": catalog}):
            definitions = RouteBuilder().build("testapp.Post")

        assert [d.method for d in definitions] == ["index", "paginate", "show"]
        assert definitions[1].http_method == "GET"
        seen_parameter = False
        for definition in definitions:
            seen_parameter = seen_parameter or definition.has_parameters
            assert definition.has_parameters or not seen_parameter

    def test_include_then_exclude(self):
        from django_autocrud.routes import RouteBuilder

        config = {"include_methods": ["index", "show", "destroy"], "exclude_methods": ["destroy"]}

        assert [d.method for d in RouteBuilder().build("testapp.Post", config)] == ["index", "show"]

    def test_controller_supported_methods(self):
        from django_autocrud.controllers import AutoCrudController
        from django_autocrud.routes import RouteBuilder

        class ReadOnlyController(AutoCrudController):
            supported_methods = frozenset({"index", "show"})

        definitions = RouteBuilder().build("testapp.Post", {"controller": ReadOnlyController})

        assert [d.method for d in definitions] == ["index", "show"]

    def test_prefix_and_name_pattern(self):
        from django_autocrud.routes import RouteBuilder

        with override_settings(AUTO_CRUD={"ROUTE_PREFIX": "/v2/", "ROUTE_NAME_PATTERN": "autocrud.{resource}.{method}"}):
            definition = RouteBuilder().build("testapp.Author")[0]

        assert definition.path == "v2/authors"
        assert definition.pattern == "authors"
        assert definition.name == "autocrud.authors.index"

    def test_middleware_global_first(self):
        from django_autocrud.routes import RouteBuilder

        def model_decorator(view):
            return view

        with override_settings(AUTO_CRUD={"MIDDLEWARE": [noop_decorator]}):
            definition = RouteBuilder().build("testapp.Post", {"middleware": [model_decorator]})[0]

        assert definition.middleware == (noop_decorator, model_decorator)

    def test_controller_dotted_path(self):
        from django_autocrud.controllers import AutoCrudController
        from django_autocrud.routes import RouteBuilder

        builder = RouteBuilder()

        assert builder.controller_class({"controller": "django_autocrud.controllers.AutoCrudController"}) is AutoCrudController

    def test_unknown_model(self):
        from django.core.exceptions import ImproperlyConfigured

        from django_autocrud.routes import RouteBuilder

        with pytest.raises(ImproperlyConfigured):
            RouteBuilder().build("testapp.Missing")


class TestRouteInfo:
    """Tests for RouteBuilder.route_info."""

    def test_route_info(self):
        from django_autocrud.routes import RouteBuilder

        info = RouteBuilder().route_info("testapp.Comment", {"include_methods": ["index", "show"]})

        assert info["model"] == "testapp.Comment"
        assert info["resource_name"] == "comments"
        assert info["controller"] == "django_autocrud.controllers.AutoCrudController"
        assert info["routes"] == [
            {"method": "index", "http_method": "GET", "pattern": "comments", "name": "comments.index", "controller": info["controller"]},
            {"method": "show", "http_method": "GET", "pattern": "comments/{id}", "name": "comments.show", "controller": info["controller"]},
        ]
