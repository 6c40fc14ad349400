"""Lazy `$ref` resolution against a document's `components.schemas`.

References are expanded one level at a time, on demand. Named schemas are
parsed the first time they are looked up and memoized per resolver, so
branches that are never visited never cost anything.

Cycle guarding is the caller's responsibility to thread through: every
expansion returns the schema names it passed through, and callers carry the
union of those names down the traversal as `ancestors`. A reference to any
ancestor raises `CyclicReferenceError`.
"""

from api_explorer.errors import CyclicReferenceError, SchemaResolutionError
from api_explorer.parser.openapi import OpenApiDocument
from api_explorer.parser.schema import SCHEMA_REF_PREFIX, RefSchema, SchemaNode, parse_schema


class SchemaResolver:
    """Resolves schema references within one OpenAPI document."""

    def __init__(self, document: OpenApiDocument):
        self.document = document
        self._parsed: dict[str, SchemaNode] = {}

    def lookup(self, ref: str) -> SchemaNode:
        """Return the (possibly still referencing) schema a `$ref` string names."""
        name = ref_to_name(ref)
        if name is None or name not in self.document.schemas:
            raise SchemaResolutionError(ref)
        if name not in self._parsed:
            self._parsed[name] = parse_schema(self.document.schemas[name])
        return self._parsed[name]

    def expand(
        self, node: SchemaNode, ancestors: frozenset[str] = frozenset()
    ) -> tuple[SchemaNode, frozenset[str]]:
        """Follow a reference chain to a concrete node.

        Returns the concrete node and `ancestors` extended with every schema
        name the chain passed through.
        """
        names = set(ancestors)
        while isinstance(node, RefSchema):
            name = node.ref_name
            if name in names:
                raise CyclicReferenceError(node.ref)
            target = self.lookup(node.ref)
            names.add(name)
            node = target
        return node, frozenset(names)

    def resolve(self, node: SchemaNode, ancestors: frozenset[str] = frozenset()) -> SchemaNode:
        return self.expand(node, ancestors)[0]

    def resolve_or_none(self, node: SchemaNode, ancestors: frozenset[str] = frozenset()) -> SchemaNode | None:
        """Resolve, returning None for unresolvable or cyclic references."""
        try:
            return self.resolve(node, ancestors)
        except SchemaResolutionError:
            return None


def ref_to_name(ref: str) -> str | None:
    """Extract a schema name from `#/components/schemas/<Name>` (JSON-pointer unescaped)."""
    if not ref.startswith(SCHEMA_REF_PREFIX):
        return None
    name = ref[len(SCHEMA_REF_PREFIX):]
    if not name or "/" in name:
        return None
    return name.replace("~1", "/").replace("~0", "~")
