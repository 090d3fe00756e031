"""
Django-AutoCrud Query Service

Ties together grammar decoding, query compilation and relationship
pagination, and serializes the results.

Provides:
- QueryBuilderService: list, paginated list, first row and by-pk reads
- Optional result caching for list reads
"""

import hashlib
import json
import logging

from django.core.cache import cache

from django_autocrud.conf import autocrud_settings
from django_autocrud.entities import get_model, model_label
from django_autocrud.grammar import decode
from django_autocrud.pagination import apply_relationship_pagination, paginate_queryset
from django_autocrud.query import QueryCompiler
from django_autocrud.response import serialize_instance, serialize_page, serialize_result

logger = logging.getLogger("django_autocrud")

CACHE_KEY_PREFIX = "autocrud:collections"


def _params_dict(params):
    if hasattr(params, "dict"):
        return params.dict()
    return dict(params or {})


class QueryBuilderService:
    """
    Read-side query service for one model.

    Each call decodes the parameters and compiles a fresh plan, so an
    instance holds no per-request state and can be shared.

    Example:
        service = QueryBuilderService("blog.Post")
        rows = service.get_collections(request.GET)
        page = service.get_collections_paginated(request.GET)
        first = service.get_one(request.GET)
    """

    def __init__(self, model):
        self.model = get_model(model)
        self.compiler = QueryCompiler(self.model)

    def get_queryset(self):
        return self.model._default_manager.all()

    def build(self, params, queryset=None):
        """
        Decode params and apply the compiled plan.

        Returns:
            Tuple of (queryset, plan, grammar)

        Raises:
            InvalidGrammar, InvalidRelationship
        """
        grammar = decode(params)
        plan = self.compiler.compile(grammar)
        if queryset is None:
            queryset = self.get_queryset()
        return plan.apply(queryset), plan, grammar

    def cache_key(self, params):
        """
        Cache key for a list read: md5 over the model label and the
        sorted query parameters.
        """
        payload = json.dumps(_params_dict(params), sort_keys=True, default=str)
        digest = hashlib.md5(f"{model_label(self.model)}{payload}".encode()).hexdigest()
        return f"{CACHE_KEY_PREFIX}:{digest}"

    def get_collections(self, params):
        """
        Return every matching row, serialized.

        When QUERY_BUILDER.enable_caching is on the payload is cached for
        cache_ttl seconds under cache_key(params).
        """
        if not autocrud_settings.query_builder("enable_caching"):
            return self._fetch_collections(params)

        key = self.cache_key(params)
        cached = cache.get(key)
        if cached is not None:
            logger.debug("Query cache hit", extra={"model": model_label(self.model), "cache_key": key})
            return cached

        result = self._fetch_collections(params)
        cache.set(key, result, timeout=autocrud_settings.query_builder("cache_ttl"))
        return result

    def _fetch_collections(self, params):
        queryset, plan, _ = self.build(params)
        rows = list(queryset)
        apply_relationship_pagination(rows, plan.relationship_pagination)
        return serialize_result(rows, plan.relations)

    def get_collections_paginated(self, params):
        """
        Return one page of matching rows.

        per_page is clamped to QUERY_BUILDER.max_per_page and defaults to
        default_per_page; page defaults to 1.
        """
        queryset, plan, grammar = self.build(params)
        if plan.is_grouped and not queryset.ordered:
            queryset = queryset.order_by(*plan.group_by)
        page = paginate_queryset(queryset, grammar.per_page, grammar.page)
        apply_relationship_pagination(page, plan.relationship_pagination)
        return serialize_page(page, plan.relations)

    def get_one(self, params):
        """
        Return the first matching row, or None.

        Without filters, orFilters and order the newest row (highest pk)
        is returned.
        """
        queryset, plan, grammar = self.build(params)
        if plan.is_grouped:
            if not queryset.ordered:
                queryset = queryset.order_by(*plan.group_by)
        elif not (grammar.filters or grammar.or_filters or grammar.order):
            queryset = queryset.order_by("-pk")
        row = queryset.first()
        if row is None:
            return None
        apply_relationship_pagination(row, plan.relationship_pagination)
        return serialize_instance(row, plan.relations)

    def show(self, pk, params):
        """Return the row with the given primary key, or None."""
        queryset, plan, _ = self.build(params, self.get_queryset().filter(pk=pk))
        row = queryset.first()
        if row is None:
            return None
        apply_relationship_pagination(row, plan.relationship_pagination)
        return serialize_instance(row, plan.relations)

    def clear_cache(self, params):
        """Forget the cached list payload for these parameters."""
        cache.delete(self.cache_key(params))
