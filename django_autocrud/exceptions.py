"""
Django-AutoCrud Exceptions

Request-scoped errors raised while decoding query grammars, compiling
queries and handling CRUD requests. The request handler converts each of
them into a JSON response (see django_autocrud.response.CrudResponse).
"""


class AutoCrudError(Exception):
    """Base class for django-autocrud errors."""

    code = "INTERNAL_ERROR"


class InvalidGrammar(AutoCrudError):
    """A query parameter holds malformed JSON, exceeds the depth limit or has the wrong shape."""

    code = "INVALID_GRAMMAR"

    def __init__(self, key, message):
        self.key = key
        self.message = message
        super().__init__(f"Parameter {key} invalid: {message}")


class InvalidRelationship(AutoCrudError):
    """A relationship named in 'relationship' or 'relationshipFilter' does not exist on the model."""

    code = "INVALID_RELATIONSHIP"

    def __init__(self, relationship, message=None):
        self.relationship = relationship
        super().__init__(message or f"Relationship '{relationship}' does not exist")


class Unauthorized(AutoCrudError):
    """The authorization hook explicitly denied the request."""

    code = "UNAUTHORIZED"

    def __init__(self, message="Unauthorized"):
        super().__init__(message)


class NotFound(AutoCrudError):
    """No row matches the requested primary key."""

    code = "NOT_FOUND"

    def __init__(self, identifier):
        self.identifier = identifier
        super().__init__(f"Item with ID {identifier} not found")
