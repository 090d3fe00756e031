"""
Django-AutoCrud Filter Utilities

Handles Q object construction for the filters, orFilters and filtersIn
query parameters.

Supports:
- SQL-style comparison operators (=, !=, <>, >, >=, <, <=)
- like / ilike / not like patterns with % and _ wildcards
- in / not in (non-list values are wrapped in a list)
- Django lookup names used directly as operators (icontains, gte, isnull, ...)
- Equality maps ({"status": "active"})
- Nested relation fields in dot notation ("author.name")

All values are passed to the ORM as bound parameters; nothing is
concatenated into SQL text.
"""

import re

from django.db.models import Q

from django_autocrud.exceptions import InvalidGrammar
from django_autocrud.grammar import Condition, EqualityMap

# Django ORM lookups accepted verbatim as operators
LOOKUPS = {
    # Comparisons
    "lt",
    "lte",
    "gt",
    "gte",
    "exact",
    "iexact",
    "in",
    "isnull",
    "range",
    # Text
    "contains",
    "icontains",
    "startswith",
    "istartswith",
    "endswith",
    "iendswith",
    "regex",
    "iregex",
    # Date/Time
    "date",
    "year",
    "month",
    "day",
    "week_day",
    "hour",
    "minute",
    "second",
}

# SQL comparison operators -> (lookup, negated)
COMPARISON_OPERATORS = {
    "=": ("exact", False),
    "==": ("exact", False),
    "!=": ("exact", True),
    "<>": ("exact", True),
    ">": ("gt", False),
    ">=": ("gte", False),
    "<": ("lt", False),
    "<=": ("lte", False),
    "in": ("in", False),
    "not in": ("in", True),
}

LIKE_OPERATORS = {
    "like": (False, False),
    "ilike": (True, False),
    "not like": (False, True),
    "not ilike": (True, True),
}


def parse_field_path(field, prefix=""):
    """
    Convert dot notation to Django's double underscore format.

    Examples:
        >>> parse_field_path("author.name")
        'author__name'
        >>> parse_field_path("title", prefix="posts")
        'posts__title'
    """
    path = "__".join(part for part in field.split(".") if part)
    if prefix:
        return f"{prefix}__{path}"
    return path


def like_lookup(pattern, case_insensitive=False):
    """
    Translate a SQL LIKE pattern into a (lookup, value) pair.

    Simple patterns map onto contains/startswith/endswith/exact; anything
    with inner wildcards becomes an anchored regex.

    Examples:
        >>> like_lookup("%john%")
        ('contains', 'john')
        >>> like_lookup("john%", case_insensitive=True)
        ('istartswith', 'john')
        >>> like_lookup("j_hn")
        ('regex', '^j.hn$')
    """
    prefix = "i" if case_insensitive else ""
    pattern = str(pattern)
    starts = pattern.startswith("%")
    ends = pattern.endswith("%") and len(pattern) > 1
    core = pattern[1 if starts else 0 : -1 if ends else None]

    if "%" not in core and "_" not in core:
        if starts and ends:
            return f"{prefix}contains", core
        if starts:
            return f"{prefix}endswith", core
        if ends:
            return f"{prefix}startswith", core
        return f"{prefix}exact", core

    regex = "".join(".*" if ch == "%" else "." if ch == "_" else re.escape(ch) for ch in pattern)
    return f"{prefix}regex", f"^{regex}$"


def build_condition_q(condition, prefix="", key="filters"):
    """
    Build a Q object for a single [field, operator, value] condition.

    Operators are matched case-insensitively.

    Raises:
        InvalidGrammar: for an unsupported operator

    Examples:
        >>> build_condition_q(Condition("age", ">", 18))
        <Q: (AND: ('age__gt', 18))>
        >>> build_condition_q(Condition("status", "in", "active"))
        <Q: (AND: ('status__in', ['active']))>
    """
    field_path = parse_field_path(condition.field, prefix)
    operator = " ".join(condition.operator.lower().split())
    value = condition.value

    if operator in LIKE_OPERATORS:
        case_insensitive, negated = LIKE_OPERATORS[operator]
        lookup, value = like_lookup(value, case_insensitive)
        q = Q(**{f"{field_path}__{lookup}": value})
        return ~q if negated else q

    if operator in COMPARISON_OPERATORS:
        lookup, negated = COMPARISON_OPERATORS[operator]
        if lookup == "in" and not isinstance(value, list):
            value = [value]
        if lookup == "exact" and value is None:
            q = Q(**{f"{field_path}__isnull": True})
        elif lookup == "exact":
            q = Q(**{field_path: value})
        else:
            q = Q(**{f"{field_path}__{lookup}": value})
        return ~q if negated else q

    if operator in LOOKUPS:
        return Q(**{f"{field_path}__{operator}": value})

    raise InvalidGrammar(key, f"unsupported operator '{condition.operator}'")


def build_entry_q(entry, prefix="", key="filters"):
    """Build a Q object for a Condition or an EqualityMap."""
    if isinstance(entry, EqualityMap):
        q = Q()
        for field_name, value in entry.values.items():
            q &= build_condition_q(Condition(field_name, "=", value), prefix, key)
        return q
    if isinstance(entry, Condition):
        return build_condition_q(entry, prefix, key)
    raise InvalidGrammar(key, f"unsupported filter entry {entry!r}")


def build_filters_q(filters, or_filters, prefix="", key=None):
    """
    Build the combined filters/orFilters predicate as one group.

    All filters are ANDed together, then each orFilter is ORed onto that
    group. The result is a single Q, so it composes with AND against any
    predicate applied before it.

    Args:
        filters: List of Condition/EqualityMap entries (AND)
        or_filters: List of Condition/EqualityMap entries (OR)
        prefix: Optional relation path the fields are scoped under
        key: Grammar key reported on errors; defaults to filters/orFilters

    Returns:
        Django Q object (empty Q when there is nothing to filter)

    Example:
        >>> build_filters_q([Condition("age", ">", 18)], [Condition("name", "like", "%john%")])
        <Q: (OR: ('age__gt', 18), ('name__contains', 'john'))>
    """
    and_group = Q()
    for entry in filters:
        and_group &= build_entry_q(entry, prefix, key or "filters")

    result = and_group
    for entry in or_filters:
        result |= build_entry_q(entry, prefix, key or "orFilters")

    return result


def build_where_in_q(filters_in, prefix=""):
    """
    Build ANDed WHERE-IN predicates.

    Entries with an empty field or an empty values list are skipped.
    """
    q = Q()
    for where_in in filters_in:
        if not where_in.field or not where_in.values:
            continue
        q &= Q(**{f"{parse_field_path(where_in.field, prefix)}__in": list(where_in.values)})
    return q
