"""
Django-AutoCrud Query Compiler

Compiles a decoded QueryGrammar into a QueryPlan and applies the plan to
a queryset.

Compilation order:
1. relationshipFilter -> EXISTS-style pk__in subqueries
2. filtersIn -> WHERE-IN predicates
3. filters/orFilters -> one grouped predicate
4. groupBy -> values() + Count annotation
5. order -> order_by()
6. select -> only() (+ select_related() for dotted fields)
7. relationship -> Prefetch objects, or the relationship pagination
   side table when the nested query asks for 'paginate'
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from django.db.models import Count, Prefetch, Q

from django_autocrud.entities import get_model_relations, resolve_relation
from django_autocrud.filters import build_filters_q, build_where_in_q, parse_field_path

logger = logging.getLogger("django_autocrud")

# Name of the aggregate column added to grouped rows
GROUP_COUNT_FIELD = "count"


@dataclass
class QueryPlan:
    """
    Compiled, executable representation of a QueryGrammar.

    Attributes:
        model: Model class the plan targets
        where: Combined WHERE predicate
        group_by: ORM field paths to group on
        order_by: order_by() arguments ("-field" for descending)
        select: only() arguments
        select_related: Forward relations pulled in by dotted select fields
        prefetches: Prefetch objects / relation paths for eager loading
        relations: Nested dict of relation names to serialize
        relationship_pagination: Side table of relation name -> nested QueryGrammar
    """

    model: Any
    where: Q = field(default_factory=Q)
    group_by: list = field(default_factory=list)
    order_by: list = field(default_factory=list)
    select: list = field(default_factory=list)
    select_related: list = field(default_factory=list)
    prefetches: list = field(default_factory=list)
    relations: dict = field(default_factory=dict)
    relationship_pagination: dict = field(default_factory=dict)

    @property
    def is_grouped(self):
        return bool(self.group_by)

    def apply(self, queryset):
        """
        Apply the plan to a queryset.

        Grouped plans return a values() queryset of dicts; projection and
        eager loading do not apply to grouped rows.
        """
        if self.where:
            queryset = queryset.filter(self.where)

        if self.group_by:
            queryset = queryset.order_by().values(*self.group_by).annotate(**{GROUP_COUNT_FIELD: Count("pk")})
            if self.order_by:
                queryset = queryset.order_by(*self.order_by)
            return queryset

        if self.order_by:
            queryset = queryset.order_by(*self.order_by)
        if self.select:
            queryset = queryset.only(*self.select)
        if self.select_related:
            queryset = queryset.select_related(*self.select_related)
        if self.prefetches:
            queryset = queryset.prefetch_related(*self.prefetches)
        return queryset


def _add_relation_path(tree, path):
    node = tree
    for part in path.split("."):
        node = node.setdefault(part, {})


def compile_order(order):
    if order is None:
        return []
    path = parse_field_path(order.field)
    return [f"-{path}" if order.descending else path]


def apply_scope(queryset, grammar, allow_group_by=True, keep_fields=()):
    """
    Apply a nested relationship query (filtersIn, filters/orFilters,
    groupBy, order, select) to a related queryset.

    Args:
        queryset: Queryset of the related model
        grammar: Nested QueryGrammar
        allow_group_by: False inside Prefetch, which rejects values() querysets
        keep_fields: Fields that must stay loaded when select is applied
            (e.g. the foreign key back to the parent)
    """
    where = build_where_in_q(grammar.filters_in) & build_filters_q(grammar.filters, grammar.or_filters, key="relationship")
    if where:
        queryset = queryset.filter(where)

    order_by = compile_order(grammar.order)

    if grammar.group_by and allow_group_by:
        group_by = [parse_field_path(f) for f in grammar.group_by]
        queryset = queryset.order_by().values(*group_by).annotate(**{GROUP_COUNT_FIELD: Count("pk")})
        return queryset.order_by(*(order_by or group_by))

    if order_by:
        queryset = queryset.order_by(*order_by)
    if grammar.select:
        only = [parse_field_path(f) for f in grammar.select]
        only.extend(f for f in keep_fields if f not in only)
        queryset = queryset.only(*only)
    return queryset


class QueryCompiler:
    """
    Compiles QueryGrammar objects for one model.

    Example:
        >>> plan = QueryCompiler(Post).compile(decode(request.GET))
        >>> rows = plan.apply(Post.objects.all())
    """

    def __init__(self, model):
        self.model = model

    def compile(self, grammar):
        """
        Compile a grammar into a QueryPlan.

        Raises:
            InvalidRelationship: for unknown relationship names
            InvalidGrammar: for unsupported filter operators
        """
        plan = QueryPlan(model=self.model)

        for relationship_filter in grammar.relationship_filters:
            plan.where &= self.compile_relationship_filter(relationship_filter)

        plan.where &= build_where_in_q(grammar.filters_in)
        plan.where &= build_filters_q(grammar.filters, grammar.or_filters)

        plan.group_by = [parse_field_path(f) for f in grammar.group_by]
        plan.order_by = compile_order(grammar.order)

        if not plan.group_by:
            self._compile_select(plan, grammar.select)
            self._compile_relationships(plan, grammar.relationships, grammar.select)

        return plan

    def compile_relationship_filter(self, relationship_filter):
        """
        Constrain parent rows to those having a related row that matches.

        The conditions are evaluated inside one subquery so they all apply
        to the same related row.
        """
        relationship = relationship_filter.relationship
        resolve_relation(self.model, relationship)
        prefix = parse_field_path(relationship)

        condition = build_filters_q(relationship_filter.filters, relationship_filter.or_filters, prefix, key="relationshipFilter")
        if not condition:
            condition = Q(**{f"{prefix}__isnull": False})

        matching = self.model._default_manager.filter(condition).values("pk")
        return Q(pk__in=matching)

    def _compile_select(self, plan, select):
        for field_name in select:
            path = parse_field_path(field_name)
            plan.select.append(path)
            if "." in field_name:
                relation = field_name.rsplit(".", 1)[0]
                resolve_relation(self.model, relation)
                related_path = parse_field_path(relation)
                if related_path not in plan.select_related:
                    plan.select_related.append(related_path)
                _add_relation_path(plan.relations, relation)

    def _compile_relationships(self, plan, relationships, select):
        relations = get_model_relations(self.model)

        for load in relationships:
            related_model = resolve_relation(self.model, load.key)

            if load.paginate is not None:
                # Only direct relations can be paginated per parent
                if "." in load.key:
                    logger.warning(
                        "Skipping paginated relationship '%s' on %s: nested paths cannot be paginated",
                        load.key,
                        self.model._meta.label,
                    )
                    continue
                _add_relation_path(plan.relations, load.key)
                plan.relationship_pagination[load.key] = load.query
                continue

            _add_relation_path(plan.relations, load.key)

            path = parse_field_path(load.key)
            if load.query is None:
                plan.prefetches.append(path)
            else:
                keep = self._back_reference_fields(load.key, relations)
                scoped = apply_scope(related_model._default_manager.all(), load.query, allow_group_by=False, keep_fields=keep)
                plan.prefetches.append(Prefetch(path, queryset=scoped))

            # Forward keys must stay loaded for the prefetch to join on them
            head = load.key.split(".")[0]
            rel_field = relations.get(head)
            if select and rel_field is not None and rel_field.concrete and not rel_field.many_to_many:
                if rel_field.name not in plan.select:
                    plan.select.append(rel_field.name)

    def _back_reference_fields(self, key, relations):
        if "." in key:
            return ()
        rel_field = relations.get(key)
        if rel_field is not None and rel_field.one_to_many:
            return (rel_field.field.attname,)
        return ()
