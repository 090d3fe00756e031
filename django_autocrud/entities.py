"""
Django-AutoCrud Entity Descriptors

Model introspection for the query compiler, the route builder and the
request handler.

Features:
- Resolve models from 'app_label.ModelName' labels or bare names
- Describe a model's primary key and relationships
- Discover models for scan mode
"""

import fnmatch
import os
import sys
from dataclasses import dataclass, field

from django.apps import apps
from django.core.exceptions import FieldDoesNotExist, ImproperlyConfigured
from django.db import models

from django_autocrud.exceptions import InvalidRelationship


@dataclass(frozen=True)
class RelationshipDescriptor:
    """A named relationship and the model it points to."""

    name: str
    target: str
    many: bool


@dataclass(frozen=True)
class EntityDescriptor:
    """
    Immutable description of a queryable, routable model.

    Attributes:
        label: 'app_label.ModelName'
        name: Model class name (e.g. 'Post')
        pk_name: Primary key field name
        pk_auto_increment: True for AutoField/BigAutoField/SmallAutoField keys
        pk_is_string: True for CharField/TextField/UUIDField keys
        relationships: Relationship name -> RelationshipDescriptor
    """

    label: str
    name: str
    pk_name: str
    pk_auto_increment: bool
    pk_is_string: bool
    relationships: dict = field(default_factory=dict)

    @property
    def assigns_string_ids(self):
        """Whether rows need an identifier generated before a bulk insert."""
        return not self.pk_auto_increment and self.pk_is_string


def model_label(model):
    """Return the 'app_label.ModelName' label of a model class."""
    return f"{model._meta.app_label}.{model.__name__}"


def get_model(model_or_label):
    """
    Resolve a model class from a class or a label.

    Accepts 'app_label.ModelName' labels and, as a fallback, bare model
    names (case-insensitive) searched across all installed apps.

    Raises:
        ImproperlyConfigured: if no installed model matches
    """
    if isinstance(model_or_label, type) and issubclass(model_or_label, models.Model):
        return model_or_label

    if "." in model_or_label:
        try:
            return apps.get_model(model_or_label)
        except (LookupError, ValueError) as e:
            raise ImproperlyConfigured(f"Model '{model_or_label}' is not installed") from e

    for app_config in apps.get_app_configs():
        for model in app_config.get_models():
            if model.__name__.lower() == model_or_label.lower():
                return model
    raise ImproperlyConfigured(f"Model '{model_or_label}' is not installed")


def get_model_relations(model):
    """
    Get dict of relation_name -> field for a model.

    Includes forward relations (ForeignKey, OneToOneField, ManyToManyField)
    and reverse relations reachable through their accessor name.
    """
    relations = {}
    for rel_field in model._meta.get_fields():
        if not rel_field.is_relation or rel_field.related_model is None:
            continue
        if rel_field.auto_created and not rel_field.concrete:
            accessor = rel_field.get_accessor_name()
            if accessor:
                relations[accessor] = rel_field
        else:
            relations[rel_field.name] = rel_field
    return relations


def is_many_relation(rel_field):
    """Whether a relation field yields a collection (reverse FK or many-to-many)."""
    return bool(rel_field.one_to_many or rel_field.many_to_many)


def resolve_relation(model, path):
    """
    Walk a dotted relationship path and return the final related model.

    Args:
        model: Django model class
        path: Relationship path, e.g. "posts" or "posts.comments"

    Raises:
        InvalidRelationship: if any segment is not a relationship
    """
    current = model
    for part in path.split("."):
        relations = get_model_relations(current)
        if part not in relations:
            try:
                current._meta.get_field(part)
            except FieldDoesNotExist:
                raise InvalidRelationship(path, f"Call to undefined relationship [{part}] on model [{model_label(current)}]")
            raise InvalidRelationship(path, f"[{part}] on model [{model_label(current)}] is not a relationship")
        current = relations[part].related_model
    return current


def describe_model(model):
    """
    Build an EntityDescriptor for a model.

    Example:
        >>> describe_model(Post)
        EntityDescriptor(label='blog.Post', name='Post', pk_name='id', ...)
    """
    model = get_model(model)
    pk = model._meta.pk

    relationships = {}
    for name, rel_field in get_model_relations(model).items():
        relationships[name] = RelationshipDescriptor(
            name=name,
            target=model_label(rel_field.related_model),
            many=is_many_relation(rel_field),
        )

    return EntityDescriptor(
        label=model_label(model),
        name=model.__name__,
        pk_name=pk.name,
        pk_auto_increment=isinstance(pk, models.AutoField),
        pk_is_string=isinstance(pk, (models.CharField, models.TextField, models.UUIDField)),
        relationships=relationships,
    )


def get_fk_fields(model):
    """
    Get set of ForeignKey field names for a model.

    Example:
        >>> get_fk_fields(Post)
        {'author'}
    """
    fk_fields = set()
    for model_field in model._meta.get_fields():
        if isinstance(model_field, models.ForeignKey):
            fk_fields.add(model_field.name)
    return fk_fields


def resolve_fk_values(model, data):
    """
    Convert FK fields from 'author: 1' to 'author_id: 1' pattern.

    For each FK field in data where value is an integer, renames the key
    to use Django's _id suffix so the related object is not fetched.

    Example:
        >>> resolve_fk_values(Post, {'author': 1, 'title': 'Hello'})
        {'author_id': 1, 'title': 'Hello'}
    """
    fk_fields = get_fk_fields(model)
    result = {}

    for key, value in data.items():
        if key in fk_fields and isinstance(value, int) and not isinstance(value, bool):
            result[f"{key}_id"] = value
        else:
            result[key] = value

    return result


def get_concrete_field_names(model):
    """
    Get list of attribute names for a model's concrete fields.

    Foreign keys are reported by their attname ('author_id').
    """
    return [f.attname for f in model._meta.concrete_fields]


def _model_in_directory(model, directory):
    module = sys.modules.get(model.__module__)
    module_file = getattr(module, "__file__", None)
    if not module_file:
        return False
    directory = os.path.realpath(directory)
    return os.path.realpath(module_file).startswith(directory + os.sep)


def discover_models(directory=None, exclude_apps=None):
    """
    Discover installed models for scan mode.

    Only concrete, non-proxy models are returned. Apps whose name matches
    one of the exclude_apps glob patterns are skipped.

    Args:
        directory: Optional path; only models defined under it are returned
        exclude_apps: Glob patterns of app names to skip (e.g. ["django.*"])

    Returns:
        List of model classes
    """
    exclude_apps = exclude_apps or []
    discovered = []

    for app_config in apps.get_app_configs():
        if any(fnmatch.fnmatch(app_config.name, pattern) for pattern in exclude_apps):
            continue
        for model in app_config.get_models():
            if model._meta.abstract or model._meta.proxy:
                continue
            if directory and not _model_in_directory(model, directory):
                continue
            discovered.append(model)

    return discovered
