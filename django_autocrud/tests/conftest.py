"""
Pytest configuration for django-autocrud tests.
"""

import os
import sys
import types

import pytest

# Add the package root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))


def pytest_configure():
    """Configure Django settings before tests run."""
    from django.conf import settings

    if not settings.configured:
        settings.configure(
            SECRET_KEY="test-secret-key",
            DEBUG=True,
            INSTALLED_APPS=[
                "django.contrib.contenttypes",
                "django.contrib.auth",
                "django_autocrud",
                "django_autocrud.tests.testapp",
            ],
            DATABASES={
                "default": {
                    "ENGINE": "django.db.backends.sqlite3",
                    "NAME": ":memory:",
                }
            },
            CACHES={
                "default": {
                    "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
                }
            },
            ROOT_URLCONF="django_autocrud.tests.testapp.urls",
            MIDDLEWARE=[],
            DEFAULT_AUTO_FIELD="django.db.models.BigAutoField",
            USE_TZ=True,
            AUTO_CRUD={},
        )

    import django

    django.setup()


@pytest.fixture(autouse=True)
def clean_state():
    """Start every test with an empty cache and fresh settings."""
    from django.core.cache import cache
    from django_autocrud.conf import autocrud_settings

    cache.clear()
    autocrud_settings.reload()
    yield
    cache.clear()
    autocrud_settings.reload()


@pytest.fixture
def route_table():
    """A fresh, empty route table."""
    from django_autocrud.router import DjangoRouteTable

    return DjangoRouteTable()


def make_urlconf(*patterns, name="autocrud_test_urls"):
    """Build an in-memory urlconf module usable as ROOT_URLCONF."""
    module = types.ModuleType(name)
    module.urlpatterns = list(patterns)
    return module


@pytest.fixture
def serve_table(route_table, settings):
    """Make the fresh route table the project's only urlconf."""
    from django.urls import include, path

    settings.ROOT_URLCONF = make_urlconf(path("", include(route_table.urlpatterns)))
    return route_table
