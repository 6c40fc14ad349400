"""Tagged schema variants for OpenAPI schema objects.

Raw OpenAPI schemas are free-form dicts where `$ref`, `enum`, `items`,
`properties` and `type` may co-occur. `parse_schema` classifies each dict
into exactly one variant using a fixed precedence:

    reference -> enum -> array -> object -> primitive
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

SCHEMA_REF_PREFIX = "#/components/schemas/"

# raw key -> model field
_CONSTRAINT_KEYS = {
    "description": "description",
    "format": "format",
    "minimum": "minimum",
    "maximum": "maximum",
    "exclusiveMinimum": "exclusive_minimum",
    "exclusiveMaximum": "exclusive_maximum",
    "multipleOf": "multiple_of",
    "minLength": "min_length",
    "maxLength": "max_length",
    "pattern": "pattern",
    "minItems": "min_items",
    "maxItems": "max_items",
    "uniqueItems": "unique_items",
    "nullable": "nullable",
    "readOnly": "read_only",
    "writeOnly": "write_only",
    "deprecated": "deprecated",
    "title": "title",
}


class _SchemaBase(BaseModel):
    """Fields every schema variant may carry."""

    model_config = ConfigDict(frozen=True)

    title: str = ""
    description: str = ""
    format: str | None = None
    minimum: float | None = None
    maximum: float | None = None
    exclusive_minimum: float | bool | None = None
    exclusive_maximum: float | bool | None = None
    multiple_of: float | None = None
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None
    min_items: int | None = None
    max_items: int | None = None
    unique_items: bool = False
    nullable: bool = False
    read_only: bool = False
    write_only: bool = False
    deprecated: bool = False
    # `None` is a legal example/default value, so presence is tracked separately.
    default: Any = None
    has_default: bool = False
    example: Any = None
    has_example: bool = False


class RefSchema(_SchemaBase):
    kind: Literal["ref"] = "ref"
    ref: str

    @property
    def ref_name(self) -> str:
        return self.ref.rsplit("/", 1)[-1]


class EnumSchema(_SchemaBase):
    kind: Literal["enum"] = "enum"
    values: list[Any]
    type: str | None = None


class ArraySchema(_SchemaBase):
    kind: Literal["array"] = "array"
    items: "SchemaNode | None" = None


class ObjectSchema(_SchemaBase):
    kind: Literal["object"] = "object"
    properties: "dict[str, SchemaNode]" = {}
    required: list[str] = []

    def is_required(self, name: str) -> bool:
        return name in self.required


class PrimitiveSchema(_SchemaBase):
    kind: Literal["primitive"] = "primitive"
    type: str | None = None


SchemaNode = Annotated[
    Union[RefSchema, EnumSchema, ArraySchema, ObjectSchema, PrimitiveSchema],
    Field(discriminator="kind"),
]

ArraySchema.model_rebuild()
ObjectSchema.model_rebuild()


def parse_schema(raw: Any) -> SchemaNode:
    """Classify a raw OpenAPI schema dict into a schema variant."""
    if not isinstance(raw, dict):
        raw = {}

    common = _common_fields(raw)
    schema_type, nullable_type = _normalize_type(raw.get("type"))
    if nullable_type:
        common["nullable"] = True

    if "$ref" in raw:
        return RefSchema(ref=str(raw["$ref"]), **common)

    if isinstance(raw.get("enum"), list) and raw["enum"]:
        return EnumSchema(values=list(raw["enum"]), type=schema_type, **common)

    if schema_type == "array":
        items = raw.get("items")
        return ArraySchema(items=parse_schema(items) if isinstance(items, dict) else None, **common)

    if schema_type == "object" or isinstance(raw.get("properties"), dict):
        properties = raw.get("properties") or {}
        required = raw.get("required") or []
        return ObjectSchema(
            properties={name: parse_schema(prop) for name, prop in properties.items()},
            required=[str(name) for name in required],
            **common,
        )

    return PrimitiveSchema(type=schema_type, **common)


def schema_type_name(node: SchemaNode) -> str:
    """Return a display type name for a schema variant."""
    if isinstance(node, RefSchema):
        return node.ref_name
    if isinstance(node, ArraySchema):
        return "array"
    if isinstance(node, ObjectSchema):
        return "object"
    if isinstance(node, EnumSchema):
        return node.type or "enum"
    return node.type or "any"


def is_binary(node: SchemaNode | None) -> bool:
    return isinstance(node, PrimitiveSchema) and node.type == "string" and node.format == "binary"


def is_binary_array(node: SchemaNode | None) -> bool:
    return isinstance(node, ArraySchema) and is_binary(node.items)


def _common_fields(raw: dict) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    for key, field_name in _CONSTRAINT_KEYS.items():
        value = raw.get(key)
        if value is not None:
            fields[field_name] = value
    if "default" in raw:
        fields["default"] = raw["default"]
        fields["has_default"] = True
    if "example" in raw:
        fields["example"] = raw["example"]
        fields["has_example"] = True
    elif isinstance(raw.get("examples"), list) and raw["examples"]:
        fields["example"] = raw["examples"][0]
        fields["has_example"] = True
    return fields


def _normalize_type(value: Any) -> tuple[str | None, bool]:
    """Reduce an OpenAPI 3.1 type list to a single type plus a nullable flag."""
    if isinstance(value, list):
        non_null = [t for t in value if t != "null"]
        return (non_null[0] if non_null else None), "null" in value
    if isinstance(value, str):
        return value, False
    return None, False
