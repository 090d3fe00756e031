"""
Django-AutoCrud Query Grammar

Decodes the JSON-encoded query parameters of a request into a typed,
validated QueryGrammar.

Supported parameters (all values are JSON strings):
- filters: [[field, op, value], ...] ANDed together
- orFilters: same shape, ORed onto the filters group
- filtersIn: {field, values} or [{field, values}, ...]
- order: {field, order}
- groupBy: [field, ...]
- select: [field, ...]
- relationship: [{key, query?}, ...]
- relationshipFilter: [{relationship, filters, orFilters}, ...]
- per_page, page: integers

Example:
    >>> grammar = decode({"filters": '[["age", ">", 18]]', "order": '{"field": "id", "order": "desc"}'})
    >>> grammar.filters
    [Condition(field='age', operator='>', value=18)]
"""

import json
from dataclasses import dataclass, field
from typing import Any, Optional

from django_autocrud.conf import autocrud_settings
from django_autocrud.exceptions import InvalidGrammar

GRAMMAR_KEYS = (
    "filters",
    "orFilters",
    "filtersIn",
    "order",
    "groupBy",
    "select",
    "relationship",
    "relationshipFilter",
)

PAGINATION_KEYS = ("per_page", "page")


@dataclass
class Condition:
    """A single [field, operator, value] comparison."""

    field: str
    operator: str
    value: Any

    def to_json(self):
        return [self.field, self.operator, self.value]


@dataclass
class EqualityMap:
    """A {field: value, ...} entry, meaning field = value for every pair."""

    values: dict

    def to_json(self):
        return dict(self.values)


@dataclass
class WhereIn:
    field: str
    values: list

    def to_json(self):
        return {"field": self.field, "values": list(self.values)}


@dataclass
class Order:
    field: str
    direction: str = "asc"

    @property
    def descending(self):
        return self.direction == "desc"

    def to_json(self):
        return {"field": self.field, "order": self.direction}


@dataclass
class Paginate:
    """Pagination request; None means "use the configured default"."""

    per_page: Optional[int] = None
    page: Optional[int] = None

    def to_json(self):
        data = {}
        if self.per_page is not None:
            data["per_page"] = self.per_page
        if self.page is not None:
            data["page"] = self.page
        return data or True


@dataclass
class RelationshipLoad:
    """An eager-load request, optionally scoped by a nested query."""

    key: str
    query: Optional["QueryGrammar"] = None

    @property
    def paginate(self):
        return self.query.paginate if self.query is not None else None

    def to_json(self):
        data = {"key": self.key}
        if self.query is not None:
            data["query"] = self.query.to_dict()
        return data


@dataclass
class RelationshipFilter:
    """Constrains parent rows to those with a matching related row."""

    relationship: str
    filters: list = field(default_factory=list)
    or_filters: list = field(default_factory=list)

    def to_json(self):
        data = {"relationship": self.relationship}
        if self.filters:
            data["filters"] = [f.to_json() for f in self.filters]
        if self.or_filters:
            data["orFilters"] = [f.to_json() for f in self.or_filters]
        return data


@dataclass
class QueryGrammar:
    """
    Decoded, validated query grammar.

    The same structure describes nested relationship queries, where
    'paginate' requests per-row pagination of the relationship.
    """

    filters: list = field(default_factory=list)
    or_filters: list = field(default_factory=list)
    filters_in: list = field(default_factory=list)
    order: Optional[Order] = None
    group_by: list = field(default_factory=list)
    select: list = field(default_factory=list)
    relationships: list = field(default_factory=list)
    relationship_filters: list = field(default_factory=list)
    paginate: Optional[Paginate] = None
    per_page: Optional[int] = None
    page: Optional[int] = None

    @property
    def has_query_parameters(self):
        return bool(
            self.filters
            or self.or_filters
            or self.filters_in
            or self.order
            or self.group_by
            or self.select
            or self.relationships
            or self.relationship_filters
        )

    def to_dict(self):
        """Encode as a plain dict using the wire key names (nested query form)."""
        data = {}
        if self.filters:
            data["filters"] = [f.to_json() for f in self.filters]
        if self.or_filters:
            data["orFilters"] = [f.to_json() for f in self.or_filters]
        if self.filters_in:
            data["filtersIn"] = [w.to_json() for w in self.filters_in]
        if self.order is not None:
            data["order"] = self.order.to_json()
        if self.group_by:
            data["groupBy"] = list(self.group_by)
        if self.select:
            data["select"] = list(self.select)
        if self.relationships:
            data["relationship"] = [r.to_json() for r in self.relationships]
        if self.relationship_filters:
            data["relationshipFilter"] = [r.to_json() for r in self.relationship_filters]
        if self.paginate is not None:
            data["paginate"] = self.paginate.to_json()
        return data

    def to_params(self):
        """Encode as URL query parameters (JSON strings), the inverse of decode()."""
        params = {key: json.dumps(value) for key, value in self.to_dict().items() if key != "paginate"}
        if self.per_page is not None:
            params["per_page"] = str(self.per_page)
        if self.page is not None:
            params["page"] = str(self.page)
        return params


def _reject_constant(name):
    raise ValueError(f"Invalid JSON constant: {name}")


def json_depth(value):
    """
    Nesting depth of a decoded JSON value.

    Scalars have depth 0; each array or object level adds one.
    """
    depth = 0
    stack = [(value, 0)]
    while stack:
        current, level = stack.pop()
        if isinstance(current, dict):
            children = current.values()
        elif isinstance(current, list):
            children = current
        else:
            depth = max(depth, level)
            continue
        depth = max(depth, level + 1)
        stack.extend((child, level + 1) for child in children)
    return depth


def decode_json_param(key, raw, max_depth=None):
    """
    Decode one JSON query parameter.

    Args:
        key: Parameter name (reported in errors)
        raw: Raw string value
        max_depth: Maximum nesting depth (defaults to SECURITY.max_json_depth)

    Returns:
        Decoded value, or None for an absent/empty parameter

    Raises:
        InvalidGrammar: on malformed JSON or depth overflow
    """
    if raw is None or raw == "":
        return None

    if max_depth is None:
        max_depth = autocrud_settings.SECURITY.get("max_json_depth", 10)

    try:
        value = json.loads(raw, parse_constant=_reject_constant)
    except RecursionError:
        raise InvalidGrammar(key, "Maximum stack depth exceeded")
    except ValueError as e:
        raise InvalidGrammar(key, str(e))

    if json_depth(value) > max_depth:
        raise InvalidGrammar(key, "Maximum stack depth exceeded")

    return value


def _parse_filter_entry(key, entry):
    if isinstance(entry, dict):
        return EqualityMap(entry)
    if isinstance(entry, list) and len(entry) in (2, 3):
        if not isinstance(entry[0], str) or not entry[0]:
            raise InvalidGrammar(key, "filter field must be a non-empty string")
        if len(entry) == 2:
            return Condition(entry[0], "=", entry[1])
        if not isinstance(entry[1], str):
            raise InvalidGrammar(key, "filter operator must be a string")
        return Condition(entry[0], entry[1], entry[2])
    raise InvalidGrammar(key, f"unsupported filter entry {json.dumps(entry)}")


def parse_filters(key, value):
    """Parse a filters/orFilters value into Condition and EqualityMap entries."""
    if value is None:
        return []
    if isinstance(value, dict):
        return [EqualityMap(value)] if value else []
    if not isinstance(value, list):
        raise InvalidGrammar(key, "expected a list of filters")
    return [_parse_filter_entry(key, entry) for entry in value]


def parse_filters_in(key, value):
    """
    Parse filtersIn, accepting a single object or a list of objects.

    Both formats normalize to a list of WhereIn entries.
    """
    if value is None:
        return []
    entries = [value] if isinstance(value, dict) else value
    if not isinstance(entries, list):
        raise InvalidGrammar(key, "expected an object or a list of objects")

    result = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise InvalidGrammar(key, "each entry must be an object with 'field' and 'values'")
        values = entry.get("values") or []
        if not isinstance(values, list):
            raise InvalidGrammar(key, "'values' must be a list")
        result.append(WhereIn(entry.get("field") or "", values))
    return result


def parse_order(key, value):
    if value is None:
        return None
    if not isinstance(value, dict):
        raise InvalidGrammar(key, "expected an object with 'field' and 'order'")
    if not value.get("field"):
        return None
    direction = value.get("order", value.get("direction", "asc"))
    direction = "desc" if str(direction).lower() == "desc" else "asc"
    return Order(str(value["field"]), direction)


def parse_field_list(key, value):
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise InvalidGrammar(key, "expected a list of field names")
    return list(value)


def parse_paginate(key, value):
    if not value:
        return None
    if value is True:
        return Paginate()
    if not isinstance(value, dict):
        raise InvalidGrammar(key, "'paginate' must be an object")
    return Paginate(
        per_page=_parse_int(key, value.get("per_page")),
        page=_parse_int(key, value.get("page")),
    )


def parse_relationships(key, value):
    if value is None:
        return []
    if isinstance(value, (str, dict)):
        value = [value]
    if not isinstance(value, list):
        raise InvalidGrammar(key, "expected a list of relationships")

    loads = []
    for entry in value:
        if isinstance(entry, str):
            loads.append(RelationshipLoad(entry))
            continue
        if not isinstance(entry, dict):
            raise InvalidGrammar(key, "each relationship must be a name or an object with 'key'")
        rel_key = entry.get("key")
        if not rel_key:
            continue
        query = entry.get("query")
        if query is not None and not isinstance(query, dict):
            raise InvalidGrammar(key, "relationship 'query' must be an object")
        loads.append(RelationshipLoad(rel_key, parse_grammar_dict(query, key) if query else None))
    return loads


def parse_relationship_filters(key, value):
    if value is None:
        return []
    if isinstance(value, dict):
        value = [value]
    if not isinstance(value, list):
        raise InvalidGrammar(key, "expected a list of relationship filters")

    result = []
    for entry in value:
        if not isinstance(entry, dict) or not entry.get("relationship"):
            raise InvalidGrammar(key, "each entry needs a 'relationship'")
        result.append(
            RelationshipFilter(
                relationship=entry["relationship"],
                filters=parse_filters(key, entry.get("filters")),
                or_filters=parse_filters(key, entry.get("orFilters")),
            )
        )
    return result


def _parse_int(key, value):
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise InvalidGrammar(key, "expected an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidGrammar(key, "expected an integer")


def parse_grammar_dict(data, key_prefix=None):
    """
    Build a QueryGrammar from already-decoded values keyed by wire name.

    Used for nested relationship queries; errors are reported against
    key_prefix (the enclosing parameter) when given.
    """
    data = data or {}

    def k(name):
        return key_prefix or name

    return QueryGrammar(
        filters=parse_filters(k("filters"), data.get("filters")),
        or_filters=parse_filters(k("orFilters"), data.get("orFilters")),
        filters_in=parse_filters_in(k("filtersIn"), data.get("filtersIn")),
        order=parse_order(k("order"), data.get("order")),
        group_by=parse_field_list(k("groupBy"), data.get("groupBy")),
        select=parse_field_list(k("select"), data.get("select")),
        relationships=parse_relationships(k("relationship"), data.get("relationship")),
        relationship_filters=parse_relationship_filters(k("relationshipFilter"), data.get("relationshipFilter")),
        paginate=parse_paginate(k("paginate"), data.get("paginate")),
    )


def decode(params, max_depth=None):
    """
    Decode raw query parameters into a QueryGrammar.

    Every key is optional. A key present as a non-empty string must hold
    valid JSON; a single bad key fails the whole decode.

    Args:
        params: Mapping of query parameters (e.g. request.GET)
        max_depth: Optional override of SECURITY.max_json_depth

    Returns:
        QueryGrammar

    Raises:
        InvalidGrammar: carrying the offending key and the parser message
    """
    decoded = {}
    for key in GRAMMAR_KEYS:
        value = decode_json_param(key, params.get(key), max_depth=max_depth)
        if value is not None:
            decoded[key] = value

    grammar = parse_grammar_dict(decoded)
    grammar.paginate = None
    grammar.per_page = _parse_int("per_page", params.get("per_page"))
    grammar.page = _parse_int("page", params.get("page"))
    return grammar
