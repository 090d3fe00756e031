"""
Django-AutoCrud Pagination

Top-level pagination helpers and the relationship pagination
post-processor.

Relationship pagination runs one extra query per parent row per paginated
relationship. Bound the number of parent rows with top-level pagination.
"""

import logging

from django.core.paginator import EmptyPage, Page, Paginator

from django_autocrud.conf import autocrud_settings
from django_autocrud.entities import get_model_relations, is_many_relation
from django_autocrud.query import apply_scope
from django_autocrud.response import PAGINATED_RELATIONS_ATTR

logger = logging.getLogger("django_autocrud")


def resolve_per_page(per_page=None):
    """
    Clamp a requested page size to QUERY_BUILDER.max_per_page.

    Missing or non-positive sizes fall back to default_per_page.

    Examples:
        >>> resolve_per_page(None)
        25
        >>> resolve_per_page(1000)
        250
    """
    default = autocrud_settings.query_builder("default_per_page")
    maximum = autocrud_settings.query_builder("max_per_page")
    if not per_page or per_page <= 0:
        per_page = default
    return min(per_page, maximum)


def resolve_page(page=None):
    if not page or page < 1:
        return 1
    return page


def paginate_queryset(queryset, per_page=None, page=None):
    """
    Paginate a queryset.

    Pages past the last one are returned empty instead of raising.

    Returns:
        django.core.paginator.Page
    """
    if not queryset.ordered:
        queryset = queryset.order_by("pk")

    paginator = Paginator(queryset, resolve_per_page(per_page))
    number = resolve_page(page)
    try:
        return paginator.page(number)
    except EmptyPage:
        return Page([], number, paginator)


def _result_instances(result):
    if result is None:
        return []
    if isinstance(result, Page):
        return list(result.object_list)
    if isinstance(result, (list, tuple)):
        return list(result)
    if isinstance(result, dict) or hasattr(result, "_meta"):
        return [result]
    return list(result)


def paginate_relation(instance, name, grammar):
    """
    Run an independent paginated query for one relation of one instance.

    Returns:
        Page, or None when the instance has no such to-many relation
    """
    rel_field = get_model_relations(type(instance)).get(name)
    if rel_field is None or not is_many_relation(rel_field):
        return None

    queryset = apply_scope(getattr(instance, name).all(), grammar)
    paginate = grammar.paginate
    return paginate_queryset(queryset, paginate.per_page, paginate.page)


def apply_relationship_pagination(result, side_table):
    """
    Attach a page of each requested relation to every parent instance.

    Args:
        result: A single instance, a list of instances or a Page
        side_table: Dict of relation name -> nested QueryGrammar; cleared
            after use

    Returns:
        The same result object
    """
    if not side_table:
        return result

    instances = _result_instances(result)
    for instance in instances:
        if not hasattr(instance, "_meta"):
            continue
        pages = getattr(instance, PAGINATED_RELATIONS_ATTR, None)
        if pages is None:
            pages = {}
            setattr(instance, PAGINATED_RELATIONS_ATTR, pages)

        for name, grammar in side_table.items():
            page = paginate_relation(instance, name, grammar)
            if page is None:
                continue
            pages[name] = page
            prefetched = getattr(instance, "_prefetched_objects_cache", None)
            if prefetched:
                prefetched.pop(name, None)

    logger.debug(
        "Paginated %d relationship(s) over %d row(s)",
        len(side_table),
        len(instances),
        extra={"relationships": list(side_table)},
    )
    side_table.clear()
    return result
