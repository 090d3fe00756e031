"""
Tests for django_autocrud.generator module.
"""

import io
import logging
import os
from unittest.mock import patch

import pytest
from django.http import HttpResponse
from django.test import override_settings


def host_view(request):
    return HttpResponse("host")


def host_urlconf(*extra):
    from django.urls import path

    from django_autocrud.tests.conftest import make_urlconf

    return make_urlconf(path("api/authors", host_view, name="custom-authors"), *extra, name="host_urls")


def make_generator(route_table, **kwargs):
    from django_autocrud.generator import RouteGenerator

    return RouteGenerator(route_table=route_table, **kwargs)


class TestGenerateRoutes:
    """Tests for RouteGenerator.generate_routes."""

    @override_settings(AUTO_CRUD={"MODELS": {"testapp.Post": {}, "testapp.Tag": {"include_methods": ["index"]}}})
    def test_registers_configured_models(self, route_table):
        from django_autocrud.metadata import RouteMetadataStore, config_fingerprint

        result = make_generator(route_table).generate_routes()

        assert not result.skipped
        assert len(result.registered) == 8
        assert result.conflicts == []
        assert {"posts.index", "posts.destroy", "tags.index"} <= route_table.route_names()
        store = RouteMetadataStore()
        assert store.count() == {"testapp.Post": 7, "testapp.Tag": 1}
        assert store.get_fingerprint() == config_fingerprint()

    @override_settings(AUTO_CRUD={"MODELS": {"testapp.Post": {}}})
    def test_second_run_is_skipped(self, route_table):
        stdout = io.StringIO()
        make_generator(route_table).generate_routes()

        result = make_generator(route_table, stdout=stdout).generate_routes()

        assert result.skipped
        assert len(route_table.urlpatterns) == 7
        assert "Skipping generation" in stdout.getvalue()

    def test_config_change_regenerates(self, route_table):
        with override_settings(AUTO_CRUD={"MODELS": {"testapp.Post": {}}}):
            make_generator(route_table).generate_routes()

        with override_settings(AUTO_CRUD={"MODELS": {"testapp.Post": {}, "testapp.Tag": {}}}):
            result = make_generator(route_table).generate_routes()

        assert not result.skipped
        assert {d.entity for d in result.registered} == {"testapp.Tag"}
        assert {c.entity for c in result.conflicts} == {"testapp.Post"}

    @override_settings(AUTO_CRUD={"MODELS": {"testapp.Post": {}}})
    def test_regenerates_when_tracked_routes_not_live(self, route_table):
        from django_autocrud.router import DjangoRouteTable

        make_generator(route_table).generate_routes()

        # A new process: metadata survives in the cache, the routes do not
        fresh = DjangoRouteTable()
        result = make_generator(fresh).generate_routes()

        assert not result.skipped
        assert len(result.registered) == 7

    def test_conflicting_routes_skipped_and_logged(self, route_table, settings, caplog):
        settings.ROOT_URLCONF = host_urlconf()
        stdout = io.StringIO()

        with override_settings(AUTO_CRUD={"MODELS": {"testapp.Author": {}}}):
            with caplog.at_level(logging.WARNING, logger="django_autocrud"):
                result = make_generator(route_table, stdout=stdout).generate_routes()

        assert [(c.method, c.reason) for c in result.conflicts] == [("index", "pattern_exists"), ("store", "pattern_exists")]
        assert "authors.index" not in route_table.route_names()
        assert "authors.show" in route_table.route_names()
        record = next(r for r in caplog.records if r.getMessage() == "Auto CRUD route conflicts detected")
        assert record.conflicts[0]["route_name"] == "authors.index"
        assert record.package == "django-autocrud"
        assert "pattern_exists" in stdout.getvalue()

    def test_name_conflict(self, route_table, settings):
        from django.urls import path

        settings.ROOT_URLCONF = host_urlconf(path("elsewhere", host_view, name="tags.index"))

        with override_settings(AUTO_CRUD={"MODELS": {"testapp.Tag": {}}}):
            result = make_generator(route_table).generate_routes()

        assert [(c.method, c.reason) for c in result.conflicts] == [("index", "name_exists")]

    def test_prevention_disabled(self, route_table, settings):
        settings.ROOT_URLCONF = host_urlconf()

        with override_settings(AUTO_CRUD={"MODELS": {"testapp.Author": {}}, "PREVENT_ROUTE_CONFLICTS": False}):
            generator = make_generator(route_table)
            result = generator.generate_routes()
            assert not generator.should_skip_generation()

        assert len(result.registered) == 7
        assert result.conflicts == []

    def test_auto_reset_clears_metadata(self, route_table):
        from django_autocrud.metadata import RouteMetadataStore

        with override_settings(AUTO_CRUD={"MODELS": {"testapp.Post": {}}}):
            make_generator(route_table).generate_routes()

        with override_settings(AUTO_CRUD={"MODELS": {"testapp.Tag": {}}, "AUTO_RESET_ON_CONFIG_CHANGE": True}):
            make_generator(route_table).generate_routes()

        assert set(RouteMetadataStore().count()) == {"testapp.Tag"}

    def test_explicit_models(self, route_table):
        result = make_generator(route_table).generate_routes({"testapp.Comment": {"include_methods": ["index"]}})

        assert [d.name for d in result.registered] == ["comments.index"]

    @override_settings(AUTO_CRUD={"MODELS": {"testapp.Post": {}}})
    def test_state_returns_to_idle(self, route_table):
        from django_autocrud.generator import GeneratorState

        generator = make_generator(route_table)
        generator.generate_routes()

        assert generator.state is GeneratorState.IDLE

    def test_generated_views_handle_requests(self, serve_table, client, db):
        from django_autocrud.tests.testapp.models import Tag

        Tag.objects.create(name="news")
        with override_settings(AUTO_CRUD={"MODELS": {"testapp.Tag": {}}}):
            make_generator(serve_table).generate_routes()

        response = client.get("/api/tags")

        assert response.status_code == 200
        assert response.json()[0]["name"] == "news"


class TestScan:
    """Tests for scan mode."""

    def test_scan_for_models(self, route_table):
        labels = make_generator(route_table).scan_for_models()

        assert {"testapp.Author", "testapp.Post", "testapp.Tag", "testapp.Comment", "testapp.ApiToken"} <= set(labels)
        assert not any(label.startswith(("auth.", "contenttypes.")) for label in labels)

    def test_generate_for_discovered_models(self, route_table):
        from django_autocrud.tests.testapp import models

        directory = os.path.dirname(models.__file__)
        with override_settings(AUTO_CRUD={"MODELS": {"testapp.Tag": {"include_methods": ["index"]}}}):
            result = make_generator(route_table).generate_routes_for_discovered_models(directory)

        assert {d.entity for d in result.registered} == {
            "testapp.Author",
            "testapp.Post",
            "testapp.Tag",
            "testapp.Comment",
            "testapp.ApiToken",
        }
        assert [d.method for d in result.registered if d.entity == "testapp.Tag"] == ["index"]


class TestInspection:
    """Tests for validation and metadata inspection."""

    def test_validate_routes(self, route_table, settings):
        settings.ROOT_URLCONF = host_urlconf()

        with override_settings(AUTO_CRUD={"MODELS": {"testapp.Author": {}}}):
            conflicts = make_generator(route_table).validate_routes()

        assert [c.method for c in conflicts] == ["index", "store"]
        assert route_table.urlpatterns == []

    @override_settings(AUTO_CRUD={"MODELS": {"testapp.Post": {}}})
    def test_validate_ignores_generated_routes(self, route_table):
        generator = make_generator(route_table)
        generator.generate_routes()

        assert generator.validate_routes() == []

    @override_settings(AUTO_CRUD={"MODELS": {"testapp.Post": {"exclude_methods": ["destroy"]}}})
    def test_model_route_info_uses_config(self, route_table):
        info = make_generator(route_table).get_model_route_info("testapp.Post")

        assert "destroy" not in [r["method"] for r in info["routes"]]

    @override_settings(AUTO_CRUD={"MODELS": {"testapp.Post": {}}})
    def test_metadata_accessors(self, route_table):
        generator = make_generator(route_table)
        assert not generator.has_generated_routes()

        generator.generate_routes()

        assert generator.has_generated_routes()
        assert generator.get_generated_routes_count() == {"testapp.Post": 7}
        assert len(generator.get_generated_routes_metadata()) == 7
        assert len(generator.get_model_routes_metadata(["testapp.Post"])) == 7
        assert generator.get_model_routes_metadata(["testapp.Tag"]) == []

    @override_settings(AUTO_CRUD={"MODELS": {"testapp.Post": {}}})
    def test_validate_and_cleanup_stale(self, route_table):
        from django_autocrud.metadata import RouteMetadataStore
        from django_autocrud.routes import RouteDefinition

        generator = make_generator(route_table)
        generator.generate_routes()
        ghost = RouteDefinition("testapp.Tag", "index", "GET", "tags", "api/tags", "tags.index")
        RouteMetadataStore().record(ghost)

        issues = generator.validate_generated_routes()

        assert [i["route_name"] for i in issues] == ["tags.index"]
        assert generator.cleanup_stale_metadata() == 1
        assert generator.validate_generated_routes() == []

    @override_settings(AUTO_CRUD={"MODELS": {"testapp.Post": {}}, "ROUTE_NAMESPACE": "autocrud"})
    def test_namespace_stripped_from_live_names(self, route_table):
        generator = make_generator(route_table)
        generator.generate_routes()

        assert "autocrud:posts.index" in route_table.route_names()
        assert "posts.index" in generator.live_route_names()
        assert generator.validate_generated_routes() == []
        assert generator.should_skip_generation()


class TestReset:
    """Tests for reset operations."""

    @override_settings(AUTO_CRUD={"MODELS": {"testapp.Post": {}}})
    def test_reset_generated_routes(self, route_table, caplog):
        from django_autocrud.generator import RESET_LIMITATION_MESSAGE

        stdout = io.StringIO()
        generator = make_generator(route_table, stdout=stdout)
        generator.generate_routes()

        with caplog.at_level(logging.WARNING, logger="django_autocrud"):
            assert generator.reset_generated_routes() is True

        assert not generator.has_generated_routes()
        # Routes keep responding
        assert "posts.index" in route_table.route_names()
        assert RESET_LIMITATION_MESSAGE in caplog.text
        assert "Restart the application" in stdout.getvalue()

    def test_reset_without_routes(self, route_table):
        assert make_generator(route_table).reset_generated_routes() is True

    @override_settings(AUTO_CRUD={"MODELS": {"testapp.Post": {}}})
    def test_reset_failure(self, route_table, caplog):
        generator = make_generator(route_table)
        generator.generate_routes()

        with patch.object(generator.metadata, "clear", side_effect=RuntimeError("cache down")):
            with caplog.at_level(logging.ERROR, logger="django_autocrud"):
                assert generator.reset_generated_routes() is False

        record = next(r for r in caplog.records if r.levelno == logging.ERROR)
        assert record.error == "cache down"

    @override_settings(AUTO_CRUD={"MODELS": {"testapp.Post": {}, "testapp.Tag": {}}})
    def test_reset_routes_for_models(self, route_table):
        generator = make_generator(route_table)
        generator.generate_routes()

        assert generator.reset_routes_for_models(["testapp.Post"]) is True
        assert generator.get_generated_routes_count() == {"testapp.Tag": 7}

    def test_reset_routes_for_unknown_model(self, route_table, caplog):
        with caplog.at_level(logging.ERROR, logger="django_autocrud"):
            assert make_generator(route_table).reset_routes_for_models(["testapp.Missing"]) is False

        assert "Failed to reset routes for specific models" in caplog.text


class TestFormatTable:
    """Tests for format_table function."""

    def test_format_table(self):
        from django_autocrud.generator import format_table

        table = format_table(["Name", "HTTP"], [["posts.index", "GET"]])

        assert table.splitlines() == ["Name         HTTP", "-----------  ----", "posts.index  GET"]
