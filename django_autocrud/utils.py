"""
Django-AutoCrud String and Import Utilities
"""

import re

from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

# Irregular plurals that don't follow standard rules
_IRREGULAR_PLURALS = {
    "person": "people",
    "child": "children",
    "man": "men",
    "woman": "women",
    "mouse": "mice",
    "datum": "data",
    "medium": "media",
    "criterion": "criteria",
    "index": "indices",
    "status": "statuses",
    "address": "addresses",
}


def pluralize(word):
    """
    Convert a singular English word to its plural form.

    Examples:
        >>> pluralize("Post")
        'Posts'
        >>> pluralize("Category")
        'Categories'
        >>> pluralize("BlogPost")
        'BlogPosts'
        >>> pluralize("person")
        'people'
    """
    if not word:
        return word

    lower_word = word.lower()

    if lower_word in _IRREGULAR_PLURALS:
        plural = _IRREGULAR_PLURALS[lower_word]
        if word[0].isupper():
            return plural.capitalize()
        return plural

    # CamelCase: only the last word is pluralized (BlogPost -> BlogPosts)
    camel_match = re.match(r"^(.+)([A-Z][a-z]+)$", word)
    if camel_match:
        prefix, last_word = camel_match.groups()
        return prefix + pluralize(last_word)

    if lower_word.endswith(("s", "x", "z", "ch", "sh")):
        return word + "es"
    if lower_word.endswith("y"):
        if len(word) > 1 and lower_word[-2] in "aeiou":
            return word + "s"
        return word[:-1] + "ies"
    if lower_word.endswith("fe"):
        return word[:-2] + "ves"
    return word + "s"


def kebab_case(value):
    """
    Convert CamelCase, snake_case or spaced text to kebab-case.

    Examples:
        >>> kebab_case("BlogPosts")
        'blog-posts'
        >>> kebab_case("blog posts")
        'blog-posts'
        >>> kebab_case("api_tokens")
        'api-tokens'
    """
    value = re.sub(r"([a-z0-9])([A-Z])", r"\1-\2", value.strip())
    value = re.sub(r"[\s_]+", "-", value)
    return value.lower()


def resolve_callable(value, setting_name):
    """
    Resolve a dotted import path to the object it names.

    Objects that are not strings are returned unchanged.

    Raises:
        ImproperlyConfigured: if the path cannot be imported
    """
    if not isinstance(value, str):
        return value
    try:
        return import_string(value)
    except ImportError as e:
        raise ImproperlyConfigured(f"{setting_name}: could not import '{value}': {e}") from e


def dotted_path(obj):
    """Return 'module.QualName' for classes and functions, repr() for anything else."""
    module = getattr(obj, "__module__", None)
    qualname = getattr(obj, "__qualname__", None)
    if module and qualname:
        return f"{module}.{qualname}"
    return repr(obj)
