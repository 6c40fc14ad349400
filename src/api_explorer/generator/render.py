"""Structural schema rendering.

`render_schema` turns a schema into a tree of `RenderNode` objects that is
independent of any presentation layer. Referenced sub-schemas are
collapsible and start collapsed; their children are only built once their
path is expanded in an `ExpansionState`. Paths are stable JSON-pointer-like
strings (`#/properties/owner/items`), so expand/collapse state survives
re-rendering.

`render_text` formats a tree as indented text for terminal output.
"""

import json
from typing import Any

from pydantic import BaseModel

from api_explorer.errors import CyclicReferenceError, SchemaResolutionError
from api_explorer.parser.openapi import Operation
from api_explorer.parser.schema import (
    ArraySchema,
    EnumSchema,
    ObjectSchema,
    PrimitiveSchema,
    RefSchema,
    SchemaNode,
)

from .resolver import SchemaResolver

ROOT_PATH = "#"


class RenderNode(BaseModel):
    """One node of a rendered schema tree."""

    path: str
    name: str = ""
    kind: str  # object / array / enum / primitive / cycle / unknown
    type: str = ""
    format: str | None = None
    description: str = ""
    required: bool = False
    attributes: list[tuple[str, str]] = []
    enum: list[Any] = []
    ref_name: str = ""
    collapsible: bool = False
    expanded: bool = True
    children: list["RenderNode"] = []

    def walk(self):
        yield self
        for child in self.children:
            yield from child.walk()


class ExpansionState:
    """Tracks which collapsible paths are expanded."""

    def __init__(self, expanded: set[str] | None = None, expand_all: bool = False):
        self._expanded = set(expanded or ())
        self.expand_all = expand_all

    def is_expanded(self, path: str) -> bool:
        return self.expand_all or path in self._expanded

    def expand(self, path: str) -> None:
        self._expanded.add(path)

    def collapse(self, path: str) -> None:
        self._expanded.discard(path)

    def toggle(self, path: str) -> bool:
        """Flip a path's state; returns True when it is now expanded."""
        if path in self._expanded:
            self._expanded.discard(path)
            return False
        self._expanded.add(path)
        return True

    @property
    def expanded_paths(self) -> set[str]:
        return set(self._expanded)


def render_schema(
    node: SchemaNode | None,
    resolver: SchemaResolver,
    state: ExpansionState | None = None,
    path: str = ROOT_PATH,
) -> RenderNode:
    """Render a schema into a RenderNode tree.

    The root is always rendered open, even when it is a reference.
    """
    state = state or ExpansionState()
    if node is None:
        return RenderNode(path=path, kind="unknown", type="no schema")
    return _render(node, resolver, state, path, "", False, frozenset(), force_open=True)


def _render(
    node: SchemaNode,
    resolver: SchemaResolver,
    state: ExpansionState,
    path: str,
    name: str,
    required: bool,
    ancestors: frozenset[str],
    force_open: bool = False,
) -> RenderNode:
    if isinstance(node, RefSchema):
        try:
            target, inner_ancestors = resolver.expand(node, ancestors)
        except CyclicReferenceError:
            return RenderNode(
                path=path, name=name, kind="cycle", type=node.ref_name, ref_name=node.ref_name,
                description=node.description, required=required, attributes=attributes_of(node),
                collapsible=False, expanded=False,
            )
        except SchemaResolutionError:
            return RenderNode(
                path=path, name=name, kind="unknown", type="unknown schema", ref_name=node.ref_name,
                description=node.description, required=required, attributes=attributes_of(node),
            )

        expanded = force_open or state.is_expanded(path)
        rendered = _render_concrete(
            target, resolver, state, path, name, required, inner_ancestors, build_children=expanded
        )
        site_attributes = attributes_of(node)
        site_labels = {label for label, _ in site_attributes}
        return rendered.model_copy(
            update={
                "ref_name": node.ref_name,
                "collapsible": True,
                "expanded": expanded,
                "description": node.description or rendered.description,
                "attributes": site_attributes + [a for a in rendered.attributes if a[0] not in site_labels],
            }
        )

    return _render_concrete(node, resolver, state, path, name, required, ancestors, build_children=True)


def _render_concrete(
    node: SchemaNode,
    resolver: SchemaResolver,
    state: ExpansionState,
    path: str,
    name: str,
    required: bool,
    ancestors: frozenset[str],
    build_children: bool,
) -> RenderNode:
    base = dict(
        path=path,
        name=name,
        required=required,
        description=node.description,
        format=node.format,
        attributes=attributes_of(node),
    )

    if isinstance(node, EnumSchema):
        return RenderNode(kind="enum", type=node.type or "enum", enum=list(node.values), **base)

    if isinstance(node, ObjectSchema):
        children = []
        if build_children:
            for prop_name, prop in node.properties.items():
                children.append(
                    _render(
                        prop, resolver, state, f"{path}/properties/{_escape(prop_name)}",
                        prop_name, node.is_required(prop_name), ancestors,
                    )
                )
        return RenderNode(kind="object", type="object", children=children, **base)

    if isinstance(node, ArraySchema):
        children = []
        if build_children and node.items is not None:
            children.append(_render(node.items, resolver, state, f"{path}/items", "items", False, ancestors))
        return RenderNode(kind="array", type=f"array<{_item_type(node.items)}>", children=children, **base)

    assert isinstance(node, PrimitiveSchema)
    return RenderNode(kind="primitive", type=node.type or "any", **base)


def attributes_of(node: SchemaNode) -> list[tuple[str, str]]:
    """The constraint set of a schema node as ordered (label, value) pairs."""
    attrs: list[tuple[str, str]] = []
    if node.nullable:
        attrs.append(("nullable", "true"))
    if node.read_only:
        attrs.append(("read-only", "true"))
    if node.write_only:
        attrs.append(("write-only", "true"))
    if node.has_default:
        attrs.append(("default", _literal(node.default)))
    for label, value in (
        ("minLength", node.min_length),
        ("maxLength", node.max_length),
    ):
        if value is not None:
            attrs.append((label, _number(value)))
    if node.pattern:
        attrs.append(("pattern", json.dumps(node.pattern)))
    for label, value in (
        ("minimum", node.minimum),
        ("maximum", node.maximum),
        ("exclusiveMinimum", node.exclusive_minimum),
        ("exclusiveMaximum", node.exclusive_maximum),
        ("multipleOf", node.multiple_of),
        ("minItems", node.min_items),
        ("maxItems", node.max_items),
    ):
        if value is not None:
            attrs.append((label, _number(value)))
    if node.unique_items:
        attrs.append(("uniqueItems", "true"))
    if node.has_example and not (node.has_default and node.example == node.default):
        attrs.append(("example", _literal(node.example)))
    if node.deprecated:
        attrs.append(("deprecated", "true"))
    return attrs


def render_text(tree: RenderNode, indent: int = 0) -> str:
    """Format a render tree as indented text."""
    return "\n".join(_text_lines(tree, indent))


def _text_lines(node: RenderNode, depth: int) -> list[str]:
    pad = "  " * depth
    label = f"{node.name}: " if node.name else ""

    type_text = node.type
    if node.ref_name and node.kind not in ("cycle", "unknown"):
        marker = "[-]" if node.expanded else "[+]"
        type_text = f"{marker} {node.ref_name} ({node.type})"
    elif node.kind == "cycle":
        type_text = f"{node.ref_name} (circular reference)"
    elif node.kind == "unknown" and node.ref_name:
        type_text = f"unknown schema ({node.ref_name})"
    if node.format:
        type_text += f" <{node.format}>"

    line = f"{pad}{label}{type_text}"
    if node.required:
        line += " REQUIRED"
    if node.description:
        line += f"  // {node.description}"
    lines = [line]

    if node.enum:
        lines.append(f"{pad}  values: " + ", ".join(_literal(v) for v in node.enum))
    if node.attributes:
        lines.append(f"{pad}  " + " | ".join(f"{k}: {v}" for k, v in node.attributes))
    for child in node.children:
        lines.extend(_text_lines(child, depth + 1))
    return lines


def render_operation_text(operation: Operation, resolver: SchemaResolver, state: ExpansionState | None = None) -> str:
    """Detail view of an operation: parameters, request body and responses."""
    state = state or ExpansionState()
    lines = [f"{operation.method} {operation.path}"]
    if operation.deprecated:
        lines[0] += "  (deprecated)"
    if operation.summary:
        lines.append(operation.summary)
    if operation.description:
        lines.append(operation.description)

    if operation.parameters:
        lines.extend(["", "Parameters:"])
        for param in operation.parameters:
            tree = render_schema(param.param_schema, resolver, state, f"#/parameters/{_escape(param.name)}")
            flag = " REQUIRED" if param.required else ""
            desc = f"  // {param.description}" if param.description else ""
            lines.append(f"  {param.name} ({param.location}): {tree.type}{flag}{desc}")
            if tree.enum:
                lines.append("    values: " + ", ".join(_literal(v) for v in tree.enum))
            if tree.attributes:
                lines.append("    " + " | ".join(f"{k}: {v}" for k, v in tree.attributes))

    if operation.request_body:
        lines.extend(["", "Request body:"])
        for content_type, schema in operation.request_body.items():
            lines.append(f"  {content_type}")
            tree = render_schema(schema, resolver, state, f"#/requestBody/{_escape(content_type)}")
            lines.append(render_text(tree, indent=2))

    if operation.responses:
        lines.extend(["", "Responses:"])
        for status in sorted(operation.responses):
            response = operation.responses[status]
            lines.append(f"  {status} {response.description}".rstrip())
            for content_type, schema in response.content.items():
                lines.append(f"    {content_type}")
                tree = render_schema(
                    schema, resolver, state, f"#/responses/{status}/{_escape(content_type)}"
                )
                lines.append(render_text(tree, indent=3))
    return "\n".join(lines)


def _item_type(items: SchemaNode | None) -> str:
    if items is None:
        return "any"
    if isinstance(items, RefSchema):
        return items.ref_name
    if isinstance(items, ArraySchema):
        return f"array<{_item_type(items.items)}>"
    if isinstance(items, ObjectSchema):
        return "object"
    if isinstance(items, EnumSchema):
        return items.type or "enum"
    return items.type or "any"


def _escape(segment: str) -> str:
    return segment.replace("~", "~0").replace("/", "~1")


def _literal(value: Any) -> str:
    return json.dumps(value, default=str)


def _number(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
