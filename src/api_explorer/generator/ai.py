"""AI-assisted example generation with a deterministic fallback.

The LLM is asked for a JSON object matching a resolved schema. Whatever it
returns, user-pinned field values are written over the result, and required
fields it left out are backfilled locally with `default_value` rather than
asking again. Any failure falls back to `synthesize`.
"""

import json
import logging
import re
from typing import Any

from pydantic import BaseModel

from api_explorer.errors import CyclicReferenceError, RemoteGenerationError, SchemaResolutionError
from api_explorer.llm import LlmClient
from api_explorer.parser.schema import (
    ArraySchema,
    EnumSchema,
    ObjectSchema,
    PrimitiveSchema,
    RefSchema,
    SchemaNode,
)

from .example import default_value, synthesize
from .resolver import SchemaResolver

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a precise test data generator for OpenAPI schemas. Your job is to generate JSON "
    "that EXACTLY matches the provided schema structure. Follow all constraints (required fields, "
    "data types, enums, formats, min/max values). Respond ONLY with raw JSON - no markdown, "
    "no explanations, no code blocks."
)

FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)```", re.DOTALL)


class GenerationResult(BaseModel):
    value: Any = None
    source: str  # "ai" / "fallback"
    error: str | None = None


class AiExampleGenerator:
    """Generates example payloads through an LLM."""

    def __init__(self, model: str | None = None, client: LlmClient | None = None):
        self.client = client or LlmClient(model=model)

    def generate(
        self,
        schema: SchemaNode,
        resolver: SchemaResolver,
        context: str = "",
        pinned: dict[str, Any] | None = None,
    ) -> GenerationResult:
        pinned = pinned or {}
        concrete = resolver.resolve_or_none(schema)
        try:
            prompt = build_prompt(schema_to_json(schema, resolver), concrete, context, pinned)
            response = self.client.call(system=SYSTEM_PROMPT, user=prompt)
            value = parse_generated(response)
        # litellm surfaces provider, auth and network failures under many exception types
        except Exception as e:
            logger.warning("AI example generation failed, using synthesized example: %s", e)
            return GenerationResult(
                value=_apply_pinned(synthesize(schema, resolver), pinned),
                source="fallback",
                error=str(e),
            )

        if isinstance(concrete, ObjectSchema):
            if not isinstance(value, dict):
                logger.warning("AI returned %s for an object schema, using synthesized example", type(value).__name__)
                return GenerationResult(
                    value=_apply_pinned(synthesize(schema, resolver), pinned),
                    source="fallback",
                    error="AI returned a non-object value",
                )
            value = _apply_pinned(value, pinned)
            _backfill_required(value, concrete, resolver)
        return GenerationResult(value=value, source="ai")


def parse_generated(text: str) -> Any:
    """Parse the model's reply, tolerating markdown code fences."""
    content = text.strip()
    match = FENCE_RE.search(content)
    if match:
        content = match.group(1).strip()
    if not content:
        raise RemoteGenerationError("AI returned an empty response")
    try:
        return json.loads(content)
    except ValueError as e:
        raise RemoteGenerationError(f"AI returned invalid JSON: {e}") from e


def build_prompt(schema_json: dict, concrete: SchemaNode | None, context: str, pinned: dict[str, Any]) -> str:
    lines = [
        "You are generating test data for an API. Generate a JSON object that EXACTLY matches this schema.",
        "",
        "SCHEMA:",
        json.dumps(schema_json, indent=2),
    ]

    if isinstance(concrete, ObjectSchema) and concrete.properties:
        lines.extend(["", "FIELD-SPECIFIC INSTRUCTIONS:"])
        for name, prop in concrete.properties.items():
            lines.append(_field_instruction(name, prop, concrete.is_required(name), pinned))

    if pinned:
        lines.extend(["", "USER-PROVIDED VALUES (MUST USE THESE EXACTLY):", json.dumps(pinned, indent=2)])
    if context:
        lines.extend(["", f"CONTEXT: {context}"])

    required = concrete.required if isinstance(concrete, ObjectSchema) else []
    lines.extend([
        "",
        "RULES:",
        "1. Use user-provided values exactly as given.",
        f"2. Every required field must have a valid, non-null value: {json.dumps(required)}",
        "3. Match data types, enums, formats and min/max constraints exactly.",
        "4. Do not add fields that are not in the schema.",
        "5. Respond with the JSON value only.",
    ])
    return "\n".join(lines)


def schema_to_json(
    node: SchemaNode | None,
    resolver: SchemaResolver,
    ancestors: frozenset[str] = frozenset(),
) -> dict:
    """Plain-dict view of a schema with references expanded (cycles left as `$ref`)."""
    if node is None:
        return {}
    if isinstance(node, RefSchema):
        try:
            target, ancestors = resolver.expand(node, ancestors)
        except CyclicReferenceError:
            return {"$ref": node.ref}
        except SchemaResolutionError:
            return {}
        return schema_to_json(target, resolver, ancestors)

    out: dict[str, Any] = {}
    if node.description:
        out["description"] = node.description
    if node.format:
        out["format"] = node.format
    if isinstance(node, EnumSchema):
        if node.type:
            out["type"] = node.type
        out["enum"] = list(node.values)
    elif isinstance(node, ObjectSchema):
        out["type"] = "object"
        if node.required:
            out["required"] = list(node.required)
        out["properties"] = {
            name: schema_to_json(prop, resolver, ancestors) for name, prop in node.properties.items()
        }
    elif isinstance(node, ArraySchema):
        out["type"] = "array"
        out["items"] = schema_to_json(node.items, resolver, ancestors)
    elif isinstance(node, PrimitiveSchema) and node.type:
        out["type"] = node.type

    for key, value in (
        ("minimum", node.minimum),
        ("maximum", node.maximum),
        ("minLength", node.min_length),
        ("maxLength", node.max_length),
        ("pattern", node.pattern),
        ("minItems", node.min_items),
        ("maxItems", node.max_items),
    ):
        if value is not None:
            out[key] = value
    if node.nullable:
        out["nullable"] = True
    return out


def _field_instruction(name: str, prop: SchemaNode, required: bool, pinned: dict[str, Any]) -> str:
    if isinstance(prop, RefSchema):
        schema_type = prop.ref_name
    else:
        schema_type = getattr(prop, "type", None) or prop.kind
    text = f'- "{name}": {"**REQUIRED**" if required else "optional"}, type: {schema_type}'
    if name in pinned:
        text += f" **USER PROVIDED: {json.dumps(pinned[name])}** (USE THIS EXACT VALUE)"
    if isinstance(prop, EnumSchema):
        text += f", must be one of: {json.dumps(prop.values)}"
    if prop.format:
        text += f", format: {prop.format}"
    for label, value in (
        ("minimum", prop.minimum),
        ("maximum", prop.maximum),
        ("minLength", prop.min_length),
        ("maxLength", prop.max_length),
        ("pattern", prop.pattern),
    ):
        if value is not None:
            text += f", {label}: {value}"
    if prop.description:
        text += f", ({prop.description})"
    return text


def _apply_pinned(value: Any, pinned: dict[str, Any]) -> Any:
    if not pinned or not isinstance(value, dict):
        return value
    merged = dict(value)
    merged.update(pinned)
    return merged


def _backfill_required(value: dict, schema: ObjectSchema, resolver: SchemaResolver) -> None:
    missing = [name for name in schema.required if name not in value]
    for name in missing:
        prop = schema.properties.get(name)
        if prop is not None:
            value[name] = default_value(prop, resolver)
            logger.info("Backfilled missing required field %s", name)
