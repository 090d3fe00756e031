"""
Django-AutoCrud Conflict Detection

Checks candidate route definitions against the live route table and
against each other.

A candidate conflicts when:
- its name is already taken ("name_exists")
- an existing route with the same HTTP method has exactly its path
  ("pattern_exists")
- an existing route with the same HTTP method could match the same URLs
  ("pattern_overlap"), see patterns_conflict()
"""

import re
from dataclasses import dataclass, field
from typing import Optional

from django_autocrud.routes import PARAMETER_RE

NAME_EXISTS = "name_exists"
PATTERN_EXISTS = "pattern_exists"
PATTERN_OVERLAP = "pattern_overlap"


@dataclass(frozen=True)
class LiveRoute:
    """
    A route of the live route table.

    Attributes:
        path: Pattern with '{param}' placeholders, no leading slash
        methods: Upper-case HTTP verbs, or None when any method is accepted
        name: Fully qualified route name ('ns:name'), if any
        constraints: Parameter name -> regex, where known
        generated: True for routes registered by django-autocrud
    """

    path: str
    methods: Optional[frozenset] = None
    name: Optional[str] = None
    constraints: dict = field(default_factory=dict)
    generated: bool = False

    def accepts(self, http_method):
        return self.methods is None or http_method.upper() in self.methods


@dataclass(frozen=True)
class ConflictRecord:
    entity: str
    method: str
    pattern: str
    name: str
    http_method: str
    reason: str

    def as_dict(self):
        return {
            "model": self.entity,
            "method": self.method,
            "route_pattern": self.pattern,
            "route_name": self.name,
            "http_method": self.http_method,
            "reason": self.reason,
        }


def is_parameter(segment):
    return bool(PARAMETER_RE.fullmatch(segment))


def _parameter_name(segment):
    return PARAMETER_RE.fullmatch(segment).group(1)


def _literal_matches(literal, parameter, constraints):
    constraint = (constraints or {}).get(_parameter_name(parameter))
    if not constraint:
        return True
    try:
        return re.fullmatch(constraint, literal) is not None
    except re.error:
        return True


def patterns_conflict(pattern1, pattern2, constraints1=None, constraints2=None):
    """
    Whether two different patterns could match the same URL.

    Patterns conflict when they have the same number of segments and every
    position holds equal literals or at least one parameter, with at least
    one parameter position overall. A literal only overlaps a parameter
    whose known constraint it matches.

    Identical patterns return False; they are an exact match, not an
    overlap.

    Examples:
        >>> patterns_conflict("posts/{id}", "posts/{slug}")
        True
        >>> patterns_conflict("posts/archive", "posts/{id}")
        True
        >>> patterns_conflict("posts/archive", "posts/draft")
        False
        >>> patterns_conflict("posts/paginate", "posts/{id}", constraints2={"id": "[0-9]+"})
        False
    """
    pattern1 = pattern1.strip("/")
    pattern2 = pattern2.strip("/")
    if pattern1 == pattern2:
        return False

    segments1 = pattern1.split("/")
    segments2 = pattern2.split("/")
    if len(segments1) != len(segments2):
        return False

    has_parameter_overlap = False
    for seg1, seg2 in zip(segments1, segments2):
        param1 = is_parameter(seg1)
        param2 = is_parameter(seg2)

        if param1 and param2:
            has_parameter_overlap = True
        elif param1:
            if not _literal_matches(seg2, seg1, constraints1):
                return False
            has_parameter_overlap = True
        elif param2:
            if not _literal_matches(seg1, seg2, constraints2):
                return False
            has_parameter_overlap = True
        elif seg1 != seg2:
            return False

    return has_parameter_overlap


class ConflictDetector:
    """
    Detects conflicts between candidate RouteDefinitions and live routes.

    Example:
        detector = ConflictDetector(namespace="api")
        conflicts = detector.find_all_conflicts(definitions, route_table.live_routes())
    """

    def __init__(self, namespace=None):
        self.namespace = namespace

    def qualified_name(self, name):
        if self.namespace:
            return f"{self.namespace}:{name}"
        return name

    def conflict_reason(self, candidate, existing_routes):
        """
        Return the reason code of the first conflict found, or None.
        """
        name = self.qualified_name(candidate.name)
        if any(route.name == name for route in existing_routes):
            return NAME_EXISTS

        full_path = candidate.path.strip("/")
        pattern = candidate.pattern.strip("/")
        for route in existing_routes:
            if not route.accepts(candidate.http_method):
                continue

            existing = route.path.strip("/")
            if existing in (full_path, pattern):
                return PATTERN_EXISTS
            if patterns_conflict(full_path, existing, candidate.constraints, route.constraints):
                return PATTERN_OVERLAP

        return None

    def has_conflict(self, candidate, existing_routes):
        return self.conflict_reason(candidate, existing_routes) is not None

    def record(self, candidate, reason):
        return ConflictRecord(
            entity=candidate.entity,
            method=candidate.method,
            pattern=candidate.pattern,
            name=candidate.name,
            http_method=candidate.http_method,
            reason=reason,
        )

    def as_live_route(self, candidate):
        return LiveRoute(
            path=candidate.path,
            methods=frozenset({candidate.http_method}),
            name=self.qualified_name(candidate.name),
            constraints=dict(candidate.constraints),
            generated=True,
        )

    def partition(self, candidates, existing_routes):
        """
        Split candidates into accepted definitions and conflict records.

        Each accepted candidate joins the existing routes, so later
        candidates are also checked against earlier ones.
        """
        existing = list(existing_routes)
        accepted = []
        conflicts = []
        for candidate in candidates:
            reason = self.conflict_reason(candidate, existing)
            if reason is not None:
                conflicts.append(self.record(candidate, reason))
                continue
            accepted.append(candidate)
            existing.append(self.as_live_route(candidate))
        return accepted, conflicts

    def find_all_conflicts(self, candidates, existing_routes):
        """Conflict records for every candidate that would be skipped."""
        return self.partition(candidates, existing_routes)[1]
