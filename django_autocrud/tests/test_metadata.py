"""
Tests for django_autocrud.metadata module.
"""

import pytest
from django.test import override_settings


def make_definition(entity="testapp.Post", method="index", name=None):
    from django_autocrud.routes import RouteDefinition

    return RouteDefinition(
        entity=entity,
        method=method,
        http_method="GET",
        pattern="posts",
        path="api/posts",
        name=name or f"posts.{method}",
    )


class TestRouteMetadataStore:
    """Tests for RouteMetadataStore class."""

    def test_record_and_all(self):
        from django_autocrud.metadata import RouteMetadataStore

        store = RouteMetadataStore()
        record = store.record(make_definition())

        assert store.all() == [record]
        assert record.route_name == "posts.index"
        assert record.entity == "testapp.Post"
        assert record.generated_at

    def test_record_refreshes_same_name(self):
        from django_autocrud.metadata import RouteMetadataStore

        store = RouteMetadataStore()
        store.record(make_definition())
        store.record(make_definition())

        assert store.route_names() == ["posts.index"]

    def test_empty_store(self):
        from django_autocrud.metadata import RouteMetadataStore

        store = RouteMetadataStore()

        assert not store.has_routes()
        assert store.all() == []
        assert store.count() == {}

    def test_count_and_for_entities(self):
        from django_autocrud.metadata import RouteMetadataStore

        store = RouteMetadataStore()
        store.record(make_definition(method="index"))
        store.record(make_definition(method="show"))
        store.record(make_definition(entity="testapp.Tag", name="tags.index"))

        assert store.count() == {"testapp.Post": 2, "testapp.Tag": 1}
        assert [r.route_name for r in store.for_entities(["testapp.Tag"])] == ["tags.index"]

    def test_validate_against_live_routes(self):
        from django_autocrud.metadata import ROUTE_NO_LONGER_EXISTS, RouteMetadataStore

        store = RouteMetadataStore()
        store.record(make_definition(method="index"))
        store.record(make_definition(method="show"))

        issues = store.validate_against_live_routes({"posts.index"})

        assert [i["route_name"] for i in issues] == ["posts.show"]
        assert issues[0]["issue"] == ROUTE_NO_LONGER_EXISTS
        assert issues[0]["model"] == "testapp.Post"
        # Validation reports only
        assert len(store.all()) == 2

    def test_cleanup_stale(self):
        from django_autocrud.metadata import RouteMetadataStore

        store = RouteMetadataStore()
        store.record(make_definition(method="index"))
        store.record(make_definition(method="show"))

        assert store.cleanup_stale({"posts.index"}) == 1
        assert store.route_names() == ["posts.index"]
        assert store.cleanup_stale({"posts.index"}) == 0

    def test_remove_entities(self):
        from django_autocrud.metadata import RouteMetadataStore

        store = RouteMetadataStore()
        store.record(make_definition())
        store.record(make_definition(entity="testapp.Tag", name="tags.index"))

        assert store.remove_entities(["testapp.Post"]) == ["posts.index"]
        assert store.route_names() == ["tags.index"]

    def test_clear(self):
        from django_autocrud.metadata import RouteMetadataStore

        store = RouteMetadataStore()
        store.record(make_definition())
        store.clear()

        assert not store.has_routes()

    def test_timeout(self):
        from unittest.mock import MagicMock

        from django_autocrud.metadata import METADATA_TIMEOUT, RouteMetadataStore

        backend = MagicMock()
        backend.get.return_value = None
        store = RouteMetadataStore(cache_backend=backend)

        store.record(make_definition())
        store.store_fingerprint("abc")

        assert METADATA_TIMEOUT == 60 * 60 * 24 * 30
        assert backend.set.call_args_list[0].kwargs["timeout"] == METADATA_TIMEOUT
        backend.set.assert_called_with("autocrud:config_hash", "abc", timeout=METADATA_TIMEOUT)

    def test_fingerprint_round_trip(self):
        from django_autocrud.metadata import RouteMetadataStore

        store = RouteMetadataStore()

        assert store.get_fingerprint() is None
        store.store_fingerprint("abc")
        assert store.get_fingerprint() == "abc"


class TestConfigFingerprint:
    """Tests for config_fingerprint function."""

    def test_stable(self):
        from django_autocrud.metadata import config_fingerprint

        assert config_fingerprint() == config_fingerprint()

    def test_changes_with_models(self):
        from django_autocrud.metadata import config_fingerprint

        before = config_fingerprint()
        with override_settings(AUTO_CRUD={"MODELS": {"testapp.Post": {}}}):
            after = config_fingerprint()

        assert before != after

    def test_changes_with_prefix(self):
        from django_autocrud.metadata import config_fingerprint

        before = config_fingerprint()
        with override_settings(AUTO_CRUD={"ROUTE_PREFIX": "v2"}):
            assert config_fingerprint() != before

    def test_hooks_ignored(self):
        from django_autocrud.metadata import config_fingerprint

        with override_settings(AUTO_CRUD={"MODELS": {"testapp.Post": {}}}):
            plain = config_fingerprint()
        with override_settings(AUTO_CRUD={"MODELS": {"testapp.Post": {"hooks": {"authorization": lambda *a: True}}}}):
            hooked = config_fingerprint()

        assert plain == hooked

    def test_callables_hashed_by_path(self):
        from django_autocrud.controllers import AutoCrudController
        from django_autocrud.metadata import config_fingerprint

        with override_settings(AUTO_CRUD={"MODELS": {"testapp.Post": {"controller": AutoCrudController}}}):
            first = config_fingerprint()
        with override_settings(AUTO_CRUD={"MODELS": {"testapp.Post": {"controller": AutoCrudController}}}):
            second = config_fingerprint()

        assert first == second
