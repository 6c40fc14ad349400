"""Deterministic example payload synthesis from OpenAPI schemas."""

import copy
import logging
from typing import Any

from api_explorer.errors import CyclicReferenceError, SchemaResolutionError
from api_explorer.parser.schema import (
    ArraySchema,
    EnumSchema,
    ObjectSchema,
    PrimitiveSchema,
    RefSchema,
    SchemaNode,
)

from .resolver import SchemaResolver

logger = logging.getLogger(__name__)

EXAMPLE_DATE_TIME = "2024-01-01T00:00:00Z"
EXAMPLE_DATE = "2024-01-01"
EXAMPLE_EMAIL = "user@example.com"
EXAMPLE_UUID = "00000000-0000-0000-0000-000000000000"


def synthesize(
    node: SchemaNode | None,
    resolver: SchemaResolver,
    ancestors: frozenset[str] = frozenset(),
) -> Any:
    """Build a representative example value for a schema.

    Priority: explicit example, first enum value, every declared object
    property, a single-element array, then a per-type default.
    """
    if node is None:
        return None
    if node.has_example:
        return copy.deepcopy(node.example)

    if isinstance(node, RefSchema):
        try:
            target, ancestors = resolver.expand(node, ancestors)
        except CyclicReferenceError:
            return _empty_container(node, resolver)
        except SchemaResolutionError as e:
            logger.warning("Cannot synthesize example: %s", e)
            return None
        return synthesize(target, resolver, ancestors)

    if isinstance(node, EnumSchema):
        return node.values[0]

    if isinstance(node, ObjectSchema):
        return {name: synthesize(prop, resolver, ancestors) for name, prop in node.properties.items()}

    if isinstance(node, ArraySchema):
        if node.items is None:
            return []
        if isinstance(node.items, RefSchema) and _is_cyclic(node.items, resolver, ancestors):
            return []
        return [synthesize(node.items, resolver, ancestors)]

    return _primitive_example(node)


def default_value(node: SchemaNode | None, resolver: SchemaResolver) -> Any:
    """A per-field default used to backfill missing required fields."""
    if node is None:
        return None
    if isinstance(node, RefSchema):
        target = resolver.resolve_or_none(node)
        return default_value(target, resolver) if target is not None else None
    if isinstance(node, EnumSchema):
        return node.values[0]
    if node.has_default:
        return copy.deepcopy(node.default)
    if isinstance(node, ObjectSchema):
        return {}
    if isinstance(node, ArraySchema):
        return []

    schema_type = node.type
    if schema_type == "string":
        return {
            "email": EXAMPLE_EMAIL,
            "date-time": EXAMPLE_DATE_TIME,
            "date": EXAMPLE_DATE,
            "uuid": EXAMPLE_UUID,
        }.get(node.format or "", "string")
    if schema_type == "integer":
        return int(node.minimum) if node.minimum is not None else 0
    if schema_type == "number":
        return node.minimum if node.minimum is not None else 0.0
    if schema_type == "boolean":
        return False
    if schema_type == "array":
        return []
    if schema_type == "object":
        return {}
    return None


def _primitive_example(node: PrimitiveSchema) -> Any:
    if node.type == "string":
        return EXAMPLE_DATE_TIME if node.format == "date-time" else "string"
    if node.type in ("integer", "number"):
        return 0
    if node.type == "boolean":
        return True
    if node.type == "object":
        return {}
    return None


def _is_cyclic(node: RefSchema, resolver: SchemaResolver, ancestors: frozenset[str]) -> bool:
    try:
        resolver.expand(node, ancestors)
    except CyclicReferenceError:
        return True
    except SchemaResolutionError:
        return False
    return False


def _empty_container(node: RefSchema, resolver: SchemaResolver) -> Any:
    """Stand-in for a reference that closes a cycle: an empty value of the target's kind."""
    target = resolver.resolve_or_none(node)
    if isinstance(target, ObjectSchema):
        return {}
    if isinstance(target, ArraySchema):
        return []
    return None
