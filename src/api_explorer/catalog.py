"""Endpoint catalog: operations grouped by tag, with auth requirements."""

import logging
from typing import Any

from pydantic import BaseModel

from api_explorer.errors import SpecLoadError
from api_explorer.parser.openapi import OpenApiDocument, Operation, parse_document

logger = logging.getLogger(__name__)

DEFAULT_TAG = "Default"


class EndpointEntry(BaseModel):
    """Display entry for one operation under one tag."""

    tag: str
    method: str
    path: str
    summary: str
    operation_id: str = ""
    requires_auth: bool = False
    deprecated: bool = False


class Catalog(BaseModel):
    """Tag-grouped endpoint index for one document."""

    groups: dict[str, list[EndpointEntry]] = {}
    error: str | None = None

    @property
    def loaded(self) -> bool:
        return self.error is None

    def entries(self) -> list[EndpointEntry]:
        """Unique entries (first tag occurrence) in catalog order."""
        seen: set[tuple[str, str]] = set()
        result = []
        for entries in self.groups.values():
            for entry in entries:
                key = (entry.method, entry.path)
                if key not in seen:
                    seen.add(key)
                    result.append(entry)
        return result

    def lookup(self, method: str, path: str) -> EndpointEntry | None:
        method = method.upper()
        for entries in self.groups.values():
            for entry in entries:
                if entry.method == method and entry.path == path:
                    return entry
        return None

    def search(self, term: str) -> dict[str, list[EndpointEntry]]:
        """Filter by case-insensitive match on path, method, or tag.

        A tag that matches keeps all of its entries.
        """
        term = term.strip().lower()
        if not term:
            return dict(self.groups)
        result: dict[str, list[EndpointEntry]] = {}
        for tag, entries in self.groups.items():
            if term in tag.lower():
                result[tag] = list(entries)
                continue
            matches = [e for e in entries if term in e.path.lower() or term in e.method.lower()]
            if matches:
                result[tag] = matches
        return result


def effective_security(operation: Operation, document: OpenApiDocument) -> list[dict[str, list[str]]]:
    """Operation-level security when declared, else the document-level requirement."""
    if operation.security is not None:
        return operation.security
    return document.security


def requires_auth(operation: Operation, document: OpenApiDocument) -> bool:
    return len(effective_security(operation, document)) > 0


def build_catalog(document: OpenApiDocument) -> Catalog:
    """Group a document's operations by tag.

    Untagged operations go under "Default"; an operation with several tags
    appears under each. Tags sort alphabetically; entries keep declaration
    order.
    """
    groups: dict[str, list[EndpointEntry]] = {}
    for operation in document.operations():
        auth = requires_auth(operation, document)
        for tag in operation.tags or [DEFAULT_TAG]:
            groups.setdefault(tag, []).append(
                EndpointEntry(
                    tag=tag,
                    method=operation.method,
                    path=operation.path,
                    summary=operation.summary or operation.operation_id or operation.path,
                    operation_id=operation.operation_id,
                    requires_auth=auth,
                    deprecated=operation.deprecated,
                )
            )
    return Catalog(groups={tag: groups[tag] for tag in sorted(groups)})


def load_catalog(raw: Any) -> tuple[OpenApiDocument | None, Catalog]:
    """Parse a raw document and build its catalog without raising.

    A malformed document yields an empty catalog carrying an error message.
    """
    if not isinstance(raw, dict):
        logger.error("Failed to load API definition: document root is not an object")
        return None, Catalog(error="Failed to load API definition: document root is not an object")
    if not isinstance(raw.get("paths"), dict):
        logger.error("Failed to load API definition: document has no paths")
        return None, Catalog(error="Failed to load API definition: document has no paths")
    try:
        document = parse_document(raw)
    except (SpecLoadError, ValueError, TypeError, AttributeError) as e:
        logger.error("Failed to load API definition: %s", e)
        return None, Catalog(error=f"Failed to load API definition: {e}")
    return document, build_catalog(document)
