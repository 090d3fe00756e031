"""
Django-AutoCrud Response Utilities

Handles serialization of query results and JSON response building.

Features:
- Model instances serialized from their loaded concrete fields
- Nested serialization of eager-loaded and paginated relationships
- Page payloads in the {data, current_page, per_page, total, ...} shape
- Response code management
"""

import uuid

from django.core.paginator import Page
from django.http import JsonResponse

from django_autocrud.entities import get_concrete_field_names

# Attribute holding relationship pages on each parent instance
PAGINATED_RELATIONS_ATTR = "_autocrud_paginated"


def serialize_value(value):
    """
    Serialize a value for JSON response.

    Handles common Django types:
    - DateField, DateTimeField, TimeField -> ISO format string
    - UUID -> string
    - Related object -> primary key

    Args:
        value: Value to serialize

    Returns:
        JSON-serializable value
    """
    if value is None:
        return None

    # DateTime/Date/Time
    if hasattr(value, "isoformat"):
        return value.isoformat()

    if isinstance(value, uuid.UUID):
        return str(value)

    # Related object that was not requested as a relationship
    if hasattr(value, "_meta") and hasattr(value, "pk"):
        return value.pk

    return value


def serialize_instance(obj, relations=None):
    """
    Serialize a model instance (or a grouped row dict).

    Only loaded concrete fields are included, so a select() projection
    narrows the payload. Foreign keys are reported by attname
    ('author_id'). Relations named in the relations tree are nested under
    their name.

    Args:
        obj: Model instance or dict
        relations: Nested dict of relation names, e.g. {"posts": {"comments": {}}}

    Returns:
        Dict

    Example:
        >>> serialize_instance(post, {"author": {}})
        {"id": 1, "title": "Hello", "author_id": 3, "author": {"id": 3, "name": "Ada"}}
    """
    if obj is None:
        return None

    if isinstance(obj, dict):
        return {key: serialize_value(value) for key, value in obj.items()}

    deferred = obj.get_deferred_fields()
    result = {}
    for attname in get_concrete_field_names(type(obj)):
        if attname in deferred:
            continue
        result[attname] = serialize_value(getattr(obj, attname))

    paginated = getattr(obj, PAGINATED_RELATIONS_ATTR, {})
    for name, children in (relations or {}).items():
        if name in paginated:
            result[name] = serialize_page(paginated[name], children)
            continue

        value = getattr(obj, name, None)
        if value is None:
            result[name] = None
        elif hasattr(value, "all"):
            result[name] = [serialize_instance(item, children) for item in value.all()]
        else:
            result[name] = serialize_instance(value, children)

    return result


def serialize_collection(rows, relations=None):
    return [serialize_instance(row, relations) for row in rows]


def serialize_page(page, relations=None):
    """
    Serialize a Page into the paginated payload shape.

    'from' and 'to' are None for an empty page.

    Example:
        >>> serialize_page(page)
        {"data": [...], "current_page": 2, "per_page": 20, "total": 45,
         "last_page": 3, "from": 21, "to": 40}
    """
    data = serialize_collection(page.object_list, relations)
    paginator = page.paginator
    return {
        "data": data,
        "current_page": page.number,
        "per_page": paginator.per_page,
        "total": paginator.count,
        "last_page": max(paginator.num_pages, 1),
        "from": page.start_index() if data else None,
        "to": page.end_index() if data else None,
    }


def serialize_result(result, relations=None):
    """Serialize a single instance, a list of instances or a Page."""
    if isinstance(result, Page):
        return serialize_page(result, relations)
    if isinstance(result, (list, tuple)):
        return serialize_collection(result, relations)
    return serialize_instance(result, relations)


class CrudResponse:
    """
    Response builder for CRUD handlers.

    Success payloads are returned as-is; errors carry a message (and an
    'error' detail for internal errors).

    Example:
        >>> CrudResponse.ok([{"id": 1}]).to_json_response().status_code
        200

        >>> response = CrudResponse.error("NOT_FOUND", "Item with ID 5 not found")
        >>> response.to_dict()
        {"message": "Item with ID 5 not found"}
    """

    # Map response codes to HTTP status codes
    STATUS_MAP = {
        "OK": 200,
        "CREATED": 201,
        "BAD_REQUEST": 400,
        "INVALID_JSON": 400,
        "INVALID_GRAMMAR": 400,
        "INVALID_RELATIONSHIP": 400,
        "INVALID_FIELD": 400,
        "UNAUTHORIZED": 403,
        "NOT_FOUND": 404,
        "INTERNAL_ERROR": 500,
    }

    # Messages for response codes
    MSG_MAP = {
        "OK": "Success",
        "CREATED": "Created successfully",
        "BAD_REQUEST": "Bad request",
        "INVALID_JSON": "Invalid JSON in request body",
        "INVALID_GRAMMAR": "Invalid query parameter",
        "INVALID_RELATIONSHIP": "Invalid relationship",
        "INVALID_FIELD": "Invalid field",
        "UNAUTHORIZED": "Unauthorized",
        "NOT_FOUND": "Not found",
        "INTERNAL_ERROR": "An error occurred while processing your request.",
    }

    def __init__(self, code="OK", payload=None, message=None, error=None):
        """
        Initialize a CrudResponse.

        Args:
            code: Response code key (e.g., "OK", "NOT_FOUND")
            payload: Data returned for successful responses
            message: Error message for error responses
            error: Underlying exception message for internal errors
        """
        self.code = code
        self.payload = payload
        self.message = message
        self.error = error

    @property
    def success(self):
        return self.code in ("OK", "CREATED")

    @property
    def http_status(self):
        return self.STATUS_MAP.get(self.code, 500)

    @classmethod
    def ok(cls, payload):
        return cls(code="OK", payload=payload)

    @classmethod
    def created(cls, payload):
        return cls(code="CREATED", payload=payload)

    @classmethod
    def error(cls, code, message=None):
        return cls(code=code, message=message or cls.MSG_MAP.get(code, "An error occurred"))

    @classmethod
    def from_exception(cls, exc):
        """Build an error response from an AutoCrudError."""
        return cls.error(getattr(exc, "code", "INTERNAL_ERROR"), str(exc))

    @classmethod
    def internal_error(cls, exc):
        """Generic 500 response; only the exception message is exposed."""
        return cls(code="INTERNAL_ERROR", message=cls.MSG_MAP["INTERNAL_ERROR"], error=str(exc))

    def to_dict(self):
        if self.success:
            return self.payload

        result = {"message": self.message}
        if self.error is not None:
            result["error"] = self.error
        return result

    def to_json_response(self):
        return JsonResponse(self.to_dict(), status=self.http_status, safe=False)
