"""
Django-AutoCrud Route Metadata

Tracks generated routes in the Django cache for inspection, validation
and reset.

The whole mapping lives under a single cache key and every mutation
rewrites it with a 30 day timeout. There is no compare-and-swap: two
generation runs writing at the same moment can overwrite each other's
entries. Generation runs once per process start, so this is accepted.

Metadata is advisory. The URL resolver decides which routes respond.
"""

import hashlib
import json
import logging
from dataclasses import asdict, dataclass

from django.core.cache import cache
from django.utils import timezone

from django_autocrud.conf import autocrud_settings
from django_autocrud.utils import dotted_path

logger = logging.getLogger("django_autocrud")

METADATA_CACHE_KEY = "autocrud:route_metadata"
CONFIG_HASH_CACHE_KEY = "autocrud:config_hash"

# 30 days
METADATA_TIMEOUT = 60 * 60 * 24 * 30

ROUTE_NO_LONGER_EXISTS = "route_no_longer_exists"


@dataclass(frozen=True)
class RouteMetadataRecord:
    route_name: str
    entity: str
    method: str
    pattern: str
    http_method: str
    generated_at: str

    @classmethod
    def from_definition(cls, definition):
        return cls(
            route_name=definition.name,
            entity=definition.entity,
            method=definition.method,
            pattern=definition.pattern,
            http_method=definition.http_method,
            generated_at=timezone.now().isoformat(),
        )


def _fingerprint_default(value):
    if callable(value):
        return dotted_path(value)
    return repr(value)


def config_fingerprint(settings=None):
    """
    md5 over the settings that shape generated routes.

    Covers MODELS (hooks excluded), CRUD_METHODS, ROUTE_PREFIX,
    ROUTE_NAMESPACE, MIDDLEWARE and DEFAULT_CONTROLLER. Callables are
    hashed by their dotted path.
    """
    settings = settings or autocrud_settings
    models = {
        label: {key: value for key, value in (config or {}).items() if key != "hooks"}
        for label, config in (settings.MODELS or {}).items()
    }
    relevant = {
        "models": models,
        "crud_methods": settings.CRUD_METHODS,
        "route_prefix": settings.ROUTE_PREFIX,
        "route_namespace": settings.ROUTE_NAMESPACE or "",
        "middleware": list(settings.MIDDLEWARE or []),
        "default_controller": settings.DEFAULT_CONTROLLER,
    }
    payload = json.dumps(relevant, sort_keys=True, default=_fingerprint_default)
    return hashlib.md5(payload.encode()).hexdigest()


class RouteMetadataStore:
    """
    Cache-backed store of RouteMetadataRecords keyed by route name.

    Example:
        store = RouteMetadataStore()
        store.record(definition)
        store.count()
        {'blog.Post': 7}
    """

    def __init__(self, cache_backend=None, key=METADATA_CACHE_KEY, hash_key=CONFIG_HASH_CACHE_KEY):
        self.cache = cache_backend or cache
        self.key = key
        self.hash_key = hash_key

    def _load(self):
        return dict(self.cache.get(self.key) or {})

    def _save(self, metadata):
        self.cache.set(self.key, metadata, timeout=METADATA_TIMEOUT)

    def record(self, definition):
        """Add or refresh the entry of one registered RouteDefinition."""
        metadata = self._load()
        record = RouteMetadataRecord.from_definition(definition)
        metadata[record.route_name] = asdict(record)
        self._save(metadata)
        return record

    def all(self):
        return [RouteMetadataRecord(**data) for data in self._load().values()]

    def route_names(self):
        return list(self._load())

    def for_entities(self, entities):
        entities = set(entities)
        return [record for record in self.all() if record.entity in entities]

    def has_routes(self):
        return bool(self._load())

    def count(self):
        """Number of tracked routes per entity."""
        counts = {}
        for record in self.all():
            counts[record.entity] = counts.get(record.entity, 0) + 1
        return counts

    def validate_against_live_routes(self, live_route_names):
        """
        Report tracked routes missing from the live route table.

        Nothing is repaired; see cleanup_stale().
        """
        live_route_names = set(live_route_names)
        return [
            {
                "route_name": record.route_name,
                "model": record.entity,
                "issue": ROUTE_NO_LONGER_EXISTS,
                "metadata": asdict(record),
            }
            for record in self.all()
            if record.route_name not in live_route_names
        ]

    def cleanup_stale(self, live_route_names):
        """Drop entries whose route is not live. Returns the number removed."""
        live_route_names = set(live_route_names)
        metadata = self._load()
        stale = [name for name in metadata if name not in live_route_names]
        for name in stale:
            del metadata[name]
        if stale:
            self._save(metadata)
        return len(stale)

    def remove_entities(self, entities):
        """Drop the entries of the given entities. Returns the removed route names."""
        entities = set(entities)
        metadata = self._load()
        removed = [name for name, data in metadata.items() if data["entity"] in entities]
        for name in removed:
            del metadata[name]
        self._save(metadata)
        return removed

    def clear(self):
        self.cache.delete(self.key)

    def get_fingerprint(self):
        return self.cache.get(self.hash_key)

    def store_fingerprint(self, fingerprint):
        self.cache.set(self.hash_key, fingerprint, timeout=METADATA_TIMEOUT)
