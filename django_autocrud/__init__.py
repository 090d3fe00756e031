"""
Django-AutoCrud: Configuration-Driven CRUD Endpoints for Django

Exposes Django models through generated REST routes and a JSON query
grammar (filters, relationship loading, ordering, projection and
pagination), while avoiding collisions with routes the project already
defines.

Example:
    # settings.py
    AUTO_CRUD = {
        'AUTO_GENERATE_ROUTES': True,
        'MODELS': {
            'blog.Post': {'exclude_methods': ['destroy']},
        },
    }

    # urls.py
    urlpatterns = [
        path('', include('django_autocrud.urls')),
    ]

    # GET /api/posts?filters=[["status","=","active"]]&order={"field":"id","order":"desc"}
"""

__version__ = "0.1.0"

# Query grammar and compilation
from django_autocrud.grammar import QueryGrammar, decode
from django_autocrud.query import QueryCompiler, QueryPlan
from django_autocrud.services import QueryBuilderService
from django_autocrud.pagination import apply_relationship_pagination

# Request handling
from django_autocrud.controllers import AutoCrudController
from django_autocrud.hooks import CrudHooks
from django_autocrud.response import CrudResponse

# Route generation
from django_autocrud.routes import RouteBuilder, RouteDefinition
from django_autocrud.conflicts import ConflictDetector, ConflictRecord, patterns_conflict
from django_autocrud.metadata import RouteMetadataStore
from django_autocrud.generator import RouteGenerator
from django_autocrud.router import route_table

# Errors
from django_autocrud.exceptions import (
    AutoCrudError,
    InvalidGrammar,
    InvalidRelationship,
    NotFound,
    Unauthorized,
)

# Configuration
from django_autocrud.conf import autocrud_settings

__all__ = [
    # Version
    "__version__",
    # Query
    "QueryGrammar",
    "decode",
    "QueryCompiler",
    "QueryPlan",
    "QueryBuilderService",
    "apply_relationship_pagination",
    # Request handling
    "AutoCrudController",
    "CrudHooks",
    "CrudResponse",
    # Routes
    "RouteBuilder",
    "RouteDefinition",
    "ConflictDetector",
    "ConflictRecord",
    "patterns_conflict",
    "RouteMetadataStore",
    "RouteGenerator",
    "route_table",
    # Errors
    "AutoCrudError",
    "InvalidGrammar",
    "InvalidRelationship",
    "NotFound",
    "Unauthorized",
    # Settings
    "autocrud_settings",
]
