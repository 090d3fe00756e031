"""
Django-AutoCrud Controllers

The CRUD request handler bound to one model. Reads go through the query
service; writes go straight to the ORM.

Features:
- Authorization, preprocessing and postprocessing hooks
- Bulk create from a JSON array body
- Many-to-many sync from '<relation>_ids' keys
- Uniform JSON error responses
"""

import json
import logging
import uuid

from django.core.exceptions import FieldError, ValidationError
from django.db import transaction

from django_autocrud.entities import (
    describe_model,
    get_model,
    get_model_relations,
    model_label,
    resolve_fk_values,
)
from django_autocrud.exceptions import AutoCrudError, NotFound, Unauthorized
from django_autocrud.hooks import CrudHooks
from django_autocrud.response import CrudResponse, serialize_instance
from django_autocrud.services import QueryBuilderService
from django_autocrud.utils import pluralize

logger = logging.getLogger("django_autocrud")

# Marker element that may lead a bulk insert payload
BULK_INSERT_MARKER = "isUseInsertMode"

RELATION_IDS_SUFFIX = "_ids"


class InvalidBody(Exception):
    """The request body is not valid JSON."""


class InvalidField(Exception):
    """An update names a field the model does not have."""


class AutoCrudController:
    """
    CRUD handler for one model.

    Constructed once per model with its hooks; never rebuilt afterwards.
    Subclasses may narrow supported_methods to expose fewer endpoints.

    Example:
        controller = AutoCrudController(Post, hooks=CrudHooks.from_config(global_hooks, post_hooks))
        view = controller.as_view("show")
    """

    supported_methods = frozenset({"index", "store", "paginate", "get_one", "show", "update", "destroy"})

    def __init__(self, model, hooks=None):
        self.model = get_model(model)
        self.hooks = hooks or CrudHooks()
        self.entity = describe_model(self.model)
        self.service = QueryBuilderService(self.model)

    def __repr__(self):
        return f"<{type(self).__name__} {model_label(self.model)}>"

    def as_view(self, method):
        """Return a view function running one CRUD method."""
        if method not in self.supported_methods:
            raise ValueError(f"{type(self).__name__} does not support '{method}'")

        def view(request, *args, **kwargs):
            return self.handle(method, request, *args, *kwargs.values())

        view.autocrud_controller = self
        view.autocrud_method = method
        return view

    def handle(self, method, request, *args):
        """
        Run one CRUD method and convert failures into JSON responses.

        Only the exception message of unexpected errors reaches the client.
        """
        try:
            self.authorize(request, method)
            response = getattr(self, method)(request, *args)
        except AutoCrudError as e:
            response = CrudResponse.from_exception(e)
        except InvalidBody as e:
            response = CrudResponse.error("INVALID_JSON", str(e))
        except (InvalidField, FieldError) as e:
            response = CrudResponse.error("INVALID_FIELD", str(e))
        except Exception as e:
            logger.exception(
                "CRUD request failed",
                extra={"model": model_label(self.model), "method": method, "path": request.path},
            )
            response = CrudResponse.internal_error(e)
        return response.to_json_response()

    def authorize(self, request, method):
        if self.hooks.authorization(request, method, self.model) is False:
            raise Unauthorized()

    def postprocess(self, payload, request, operation):
        result = self.hooks.postprocess_response(payload, request, operation, self.model)
        return payload if result is None else result

    def preprocess(self, data, request, operation):
        result = self.hooks.preprocess_data(data, request, operation, self.model)
        return data if result is None else result

    def get_body(self, request):
        """
        Parse the request body.

        JSON bodies are decoded; form-encoded POST data is used otherwise.

        Raises:
            InvalidBody: for a body that is not valid JSON
        """
        if request.body and request.content_type != "application/x-www-form-urlencoded" and not request.content_type.startswith("multipart/"):
            try:
                return json.loads(request.body)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise InvalidBody(f"Invalid JSON in request body: {e}")
        return request.POST.dict()

    # Reads

    def index(self, request):
        data = self.service.get_collections(request.GET)
        return CrudResponse.ok(self.postprocess(data, request, "index"))

    def paginate(self, request):
        data = self.service.get_collections_paginated(request.GET)
        return CrudResponse.ok(self.postprocess(data, request, "paginate"))

    def get_one(self, request):
        data = self.service.get_one(request.GET)
        return CrudResponse.ok(self.postprocess(data, request, "get_one"))

    def show(self, request, pk):
        data = self.service.show(pk, request.GET)
        if data is None:
            raise NotFound(pk)
        return CrudResponse.ok(self.postprocess(data, request, "show"))

    # Writes

    def store(self, request):
        data = self.preprocess(self.get_body(request), request, "store")

        if isinstance(data, list):
            return self.store_bulk(request, data)

        if not isinstance(data, dict):
            raise InvalidBody("Request body must be an object or an array of objects")

        data, relations = self.extract_relation_ids(data)
        result = self.hooks.preprocess_single_data(data, request, self.model)
        if result is not None:
            data = result

        with transaction.atomic():
            instance = self.model._default_manager.create(**resolve_fk_values(self.model, data))
            self.sync_relations(instance, relations)

        instance.refresh_from_db()
        return CrudResponse.created(self.postprocess(serialize_instance(instance), request, "store"))

    def store_bulk(self, request, rows):
        """
        Insert many rows in one query.

        A leading {"isUseInsertMode": ...} element is dropped. Rows of a
        model with a non-auto string primary key get a uuid4 identifier
        when they omit one.
        """
        if rows and isinstance(rows[0], dict) and BULK_INSERT_MARKER in rows[0]:
            rows = rows[1:]

        result = self.hooks.preprocess_bulk_data(rows, request, self.model)
        if result is not None:
            rows = result

        if not all(isinstance(row, dict) for row in rows):
            raise InvalidBody("Bulk insert rows must be objects")

        rows = self.assign_identifiers(rows)
        instances = [self.model(**resolve_fk_values(self.model, row)) for row in rows]
        with transaction.atomic():
            created = self.model._default_manager.bulk_create(instances)

        payload = [serialize_instance(instance) for instance in created]
        return CrudResponse.created(self.postprocess(payload, request, "store_bulk"))

    def assign_identifiers(self, rows):
        if not self.entity.assigns_string_ids:
            return rows

        pk_name = self.entity.pk_name
        assigned = []
        for row in rows:
            if not row.get(pk_name):
                row = {**row, pk_name: str(uuid.uuid4())}
            assigned.append(row)
        return assigned

    def update(self, request, pk):
        instance = self.get_object(pk)
        data = self.preprocess(self.get_body(request), request, "update")
        if not isinstance(data, dict):
            raise InvalidBody("Request body must be an object")

        data, relations = self.extract_relation_ids(data)
        fields = self.editable_fields()
        for field_name, value in resolve_fk_values(self.model, data).items():
            if field_name not in fields:
                raise InvalidField(f"Field '{field_name}' does not exist on {model_label(self.model)}")
            setattr(instance, field_name, value)

        with transaction.atomic():
            instance.save()
            self.sync_relations(instance, relations)

        response = {"message": "Record updated successfully"}
        return CrudResponse.ok(self.postprocess(response, request, "update"))

    def destroy(self, request, pk):
        instance = self.get_object(pk)
        self.hooks.before_delete(instance, request)
        instance.delete()

        response = {"message": "Record deleted successfully"}
        return CrudResponse.ok(self.postprocess(response, request, "destroy"))

    # Helpers

    def get_object(self, pk):
        try:
            return self.model._default_manager.get(pk=pk)
        except (self.model.DoesNotExist, ValueError, ValidationError):
            raise NotFound(pk)

    def editable_fields(self):
        fields = set()
        for model_field in self.model._meta.concrete_fields:
            fields.add(model_field.name)
            fields.add(model_field.attname)
        return fields

    def extract_relation_ids(self, data):
        """
        Split '<relation>_ids' list values out of a payload.

        Returns:
            Tuple of (remaining data, {relation_name: ids})

        Example:
            >>> controller.extract_relation_ids({"title": "Hi", "tag_ids": [1, 2]})
            ({'title': 'Hi'}, {'tags': [1, 2]})
        """
        many_relations = {
            name
            for name, rel_field in get_model_relations(self.model).items()
            if rel_field.many_to_many
        }

        remaining = {}
        relations = {}
        for key, value in data.items():
            if key.endswith(RELATION_IDS_SUFFIX) and isinstance(value, list):
                base = key[: -len(RELATION_IDS_SUFFIX)]
                for name in (base, pluralize(base)):
                    if name in many_relations:
                        relations[name] = value
                        break
                continue
            remaining[key] = value
        return remaining, relations

    def sync_relations(self, instance, relations):
        for name, ids in relations.items():
            getattr(instance, name).set(ids)
