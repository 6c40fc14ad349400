"""Field-scoped validation of user-entered parameter values.

Values arrive as text, as typed into a form or passed on the command line.
Each parameter is checked against its schema regardless of its location.
"""

import datetime
import logging
import re
import uuid

from pydantic import AnyUrl, EmailStr, TypeAdapter, ValidationError

from api_explorer.errors import FieldError
from api_explorer.generator.resolver import SchemaResolver
from api_explorer.parser.openapi import Operation, Parameter
from api_explorer.parser.schema import EnumSchema, PrimitiveSchema, SchemaNode

logger = logging.getLogger(__name__)

INTEGER_RE = re.compile(r"^-?\d+$")
DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DATE_TIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?(Z|[+-]\d{2}:\d{2})?$")

FORMAT_ADAPTERS: dict[str, TypeAdapter] = {
    "email": TypeAdapter(EmailStr),
    "uri": TypeAdapter(AnyUrl),
    "url": TypeAdapter(AnyUrl),
    "uuid": TypeAdapter(uuid.UUID),
    "date": TypeAdapter(datetime.date),
    "date-time": TypeAdapter(datetime.datetime),
}


def validate_parameters(
    operation: Operation,
    values: dict[str, str],
    resolver: SchemaResolver | None = None,
) -> list[FieldError]:
    """Validate every declared parameter; returns one error per failing field."""
    errors = []
    for param in operation.parameters:
        message = validate_value(param, values.get(param.name, ""), resolver)
        if message:
            errors.append(FieldError(name=param.name, message=message))
    return errors


def validate_value(param: Parameter, raw: str | None, resolver: SchemaResolver | None = None) -> str | None:
    """Return an error message for one parameter value, or None when valid."""
    value = (raw or "").strip()
    name = param.name

    if not value:
        return f"{name} is required" if param.required else None

    schema = _concrete(param.param_schema, resolver)

    if isinstance(schema, EnumSchema):
        allowed = [str(v) for v in schema.values]
        if value not in allowed:
            return f"{name} must be one of: {', '.join(allowed)}"
        return None

    if not isinstance(schema, PrimitiveSchema):
        return None

    if schema.type == "integer":
        if not INTEGER_RE.match(value):
            return f"{name} must be an integer"
        return _check_range(name, int(value), schema)

    if schema.type == "number":
        try:
            number = float(value)
        except ValueError:
            return f"{name} must be a number"
        return _check_range(name, number, schema)

    if schema.type == "boolean":
        if value not in ("true", "false"):
            return f"{name} must be true or false"
        return None

    if schema.type in ("string", None):
        return _check_string(name, value, schema)

    return None


def _check_range(name: str, number: float, schema: PrimitiveSchema) -> str | None:
    if schema.minimum is not None and number < schema.minimum:
        return f"{name} must be >= {_fmt(schema.minimum)}"
    if schema.maximum is not None and number > schema.maximum:
        return f"{name} must be <= {_fmt(schema.maximum)}"
    exclusive_min = schema.exclusive_minimum
    if isinstance(exclusive_min, bool):
        exclusive_min = schema.minimum if exclusive_min else None
    if exclusive_min is not None and number <= exclusive_min:
        return f"{name} must be > {_fmt(exclusive_min)}"
    exclusive_max = schema.exclusive_maximum
    if isinstance(exclusive_max, bool):
        exclusive_max = schema.maximum if exclusive_max else None
    if exclusive_max is not None and number >= exclusive_max:
        return f"{name} must be < {_fmt(exclusive_max)}"
    return None


def _check_string(name: str, value: str, schema: PrimitiveSchema) -> str | None:
    fmt = schema.format
    if fmt == "email" and not _conforms(fmt, value):
        return f"{name} must be a valid email"
    if fmt in ("uri", "url") and not _conforms(fmt, value):
        return f"{name} must be a valid URL"
    if fmt == "uuid" and not _conforms(fmt, value):
        return f"{name} must be a valid UUID"
    if fmt == "date" and not (DATE_RE.match(value) and _conforms(fmt, value)):
        return f"{name} must be in format YYYY-MM-DD"
    if fmt == "date-time" and not (DATE_TIME_RE.match(value) and _conforms(fmt, value)):
        return f"{name} must be in ISO 8601 format"

    if schema.min_length is not None and len(value) < schema.min_length:
        return f"{name} must be at least {schema.min_length} characters"
    if schema.max_length is not None and len(value) > schema.max_length:
        return f"{name} must be at most {schema.max_length} characters"

    if schema.pattern:
        try:
            if not re.search(schema.pattern, value):
                return f"{name} does not match required pattern"
        except re.error as e:
            logger.warning("Ignoring invalid pattern %r on %s: %s", schema.pattern, name, e)
    return None


def _conforms(fmt: str, value: str) -> bool:
    """Parse the value with the pydantic type for its format; the regexes above only fix the shape."""
    try:
        FORMAT_ADAPTERS[fmt].validate_python(value)
    except ValidationError:
        return False
    return True


def _concrete(schema: SchemaNode, resolver: SchemaResolver | None) -> SchemaNode | None:
    if resolver is None:
        return schema
    return resolver.resolve_or_none(schema)


def _fmt(number: float) -> str:
    if isinstance(number, float) and number.is_integer():
        return str(int(number))
    return str(number)
