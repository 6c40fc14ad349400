"""OpenAPI 3.x document parser.

Parses a raw OpenAPI document (JSON or YAML) into immutable document,
operation and security-scheme models. Missing `paths` or `components`
sections are tolerated and produce empty mappings.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError

from api_explorer.errors import SpecLoadError

from .schema import SchemaNode, parse_schema

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS", "TRACE")
BODY_METHODS = ("POST", "PUT", "PATCH")


class Parameter(BaseModel):
    """A single operation parameter (path, query, header, or cookie)."""

    model_config = ConfigDict(frozen=True)

    name: str
    location: str  # path / query / header / cookie
    required: bool = False
    param_schema: SchemaNode
    description: str = ""
    deprecated: bool = False


class ResponseSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str = ""
    content: dict[str, SchemaNode] = {}


class SecurityScheme(BaseModel):
    """A named authentication mechanism declared in `components.securitySchemes`."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: str  # http / apiKey / oauth2 / openIdConnect
    scheme: str = ""  # bearer / basic for http schemes
    location: str = ""  # header / query / cookie for apiKey schemes
    param_name: str = ""  # header or query parameter name for apiKey schemes
    description: str = ""
    bearer_format: str = ""

    @property
    def label(self) -> str:
        if self.type == "http" and self.scheme.lower() == "bearer":
            return "Bearer"
        if self.type == "apiKey":
            return "API Key"
        return self.type


class Operation(BaseModel):
    """A single HTTP method on a single path."""

    model_config = ConfigDict(frozen=True)

    method: str  # GET / POST / PUT / DELETE / PATCH
    path: str  # /api/users/{id}
    summary: str = ""
    description: str = ""
    operation_id: str = ""
    parameters: list[Parameter] = []
    request_body: dict[str, SchemaNode] = {}  # content type -> schema
    request_body_required: bool = False
    responses: dict[str, ResponseSpec] = {}
    # None means "not declared", which is distinct from an explicit empty list.
    security: list[dict[str, list[str]]] | None = None
    tags: list[str] = []
    deprecated: bool = False

    @property
    def key(self) -> str:
        return f"{self.method}:{self.path}"

    def parameters_in(self, location: str) -> list[Parameter]:
        return [p for p in self.parameters if p.location == location]


class OpenApiDocument(BaseModel):
    """A parsed OpenAPI document. Immutable once loaded."""

    model_config = ConfigDict(frozen=True)

    openapi: str = ""
    info: dict[str, Any] = {}
    servers: list[str] = []
    paths: dict[str, dict[str, Operation]] = {}
    schemas: dict[str, dict[str, Any]] = {}
    security_schemes: dict[str, SecurityScheme] = {}
    security: list[dict[str, list[str]]] = []

    @property
    def title(self) -> str:
        return str(self.info.get("title") or "")

    @property
    def version(self) -> str:
        return str(self.info.get("version") or "")

    @property
    def description(self) -> str:
        return str(self.info.get("description") or "")

    @property
    def contact(self) -> str:
        """Contact name and email as "name - email", either part optional."""
        contact = self.info.get("contact")
        if not isinstance(contact, dict):
            return ""
        return " - ".join(str(contact[k]) for k in ("name", "email") if contact.get(k))

    def operations(self) -> list[Operation]:
        """All operations in document declaration order."""
        return [op for methods in self.paths.values() for op in methods.values()]

    def get_operation(self, method: str, path: str) -> Operation | None:
        return self.paths.get(path, {}).get(method.upper())


def load_document(file_path: Path) -> OpenApiDocument:
    """Parse an OpenAPI file (JSON or YAML) into an OpenApiDocument."""
    text = file_path.read_text(encoding="utf-8")
    return parse_document_text(text)


def parse_document_text(text: str) -> OpenApiDocument:
    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Document is not valid JSON or YAML: {e}") from e
    if not isinstance(doc, dict):
        raise SpecLoadError("Document root must be an object")
    return parse_document(doc)


def parse_document(doc: dict[str, Any]) -> OpenApiDocument:
    """Convert a raw OpenAPI mapping into an OpenApiDocument.

    Raises SpecLoadError when a section has the wrong shape.
    """
    try:
        return _build_document(doc)
    except (ValidationError, AttributeError, TypeError) as e:
        raise SpecLoadError(f"Malformed API definition: {e}") from e


def _build_document(doc: dict[str, Any]) -> OpenApiDocument:
    components = _mapping(doc.get("components"))
    raw_paths = doc.get("paths")
    if not isinstance(raw_paths, dict):
        raw_paths = {}
    paths: dict[str, dict[str, Operation]] = {}

    for path, methods in raw_paths.items():
        if not isinstance(methods, dict):
            continue
        shared_params = methods.get("parameters") or []
        operations: dict[str, Operation] = {}
        for method, operation in methods.items():
            if method.upper() not in HTTP_METHODS or not isinstance(operation, dict):
                continue
            operations[method.upper()] = _parse_operation(method.upper(), path, operation, shared_params)
        paths[path] = operations

    return OpenApiDocument(
        openapi=str(doc.get("openapi") or doc.get("swagger") or ""),
        info=_mapping(doc.get("info")),
        servers=[s["url"] for s in doc.get("servers") or [] if isinstance(s, dict) and "url" in s],
        paths=paths,
        schemas=_mapping(components.get("schemas")),
        security_schemes=_parse_security_schemes(_mapping(components.get("securitySchemes"))),
        security=doc.get("security") or [],
    )


def _parse_operation(method: str, path: str, operation: dict, shared_params: list) -> Operation:
    request_body = _mapping(operation.get("requestBody"))
    return Operation(
        method=method,
        path=path,
        summary=operation.get("summary") or "",
        description=operation.get("description") or "",
        operation_id=operation.get("operationId") or "",
        parameters=_parse_parameters(shared_params, operation.get("parameters") or []),
        request_body=_parse_content(request_body.get("content")),
        request_body_required=bool(request_body.get("required", False)),
        responses=_parse_responses(_mapping(operation.get("responses"))),
        security=operation.get("security"),
        tags=operation.get("tags") or [],
        deprecated=bool(operation.get("deprecated", False)),
    )


def _parse_parameters(shared: list, own: list) -> list[Parameter]:
    # Operation-level parameters override path-level ones with the same name and location.
    merged: dict[tuple[str, str], dict] = {}
    for p in list(shared or []) + list(own or []):
        if not isinstance(p, dict) or "name" not in p:
            continue
        merged[(p["name"], p.get("in", "query"))] = p

    result = []
    for (name, location), p in merged.items():
        raw_schema = p.get("schema")
        if raw_schema is None:
            # Swagger 2.0 style parameters carry the type inline
            raw_schema = {k: v for k, v in p.items() if k not in ("name", "in", "required", "description")}
        result.append(
            Parameter(
                name=name,
                location=location,
                required=bool(p.get("required", location == "path")),
                param_schema=parse_schema(raw_schema),
                description=p.get("description") or "",
                deprecated=bool(p.get("deprecated", False)),
            )
        )
    return result


def _parse_content(content: dict | None) -> dict[str, SchemaNode]:
    if not content:
        return {}
    return {ct: parse_schema(_mapping(media).get("schema")) for ct, media in content.items()}


def _parse_responses(responses: dict) -> dict[str, ResponseSpec]:
    result = {}
    for status_code, resp in responses.items():
        resp = _mapping(resp)
        result[str(status_code)] = ResponseSpec(
            description=resp.get("description") or "",
            content=_parse_content(resp.get("content")),
        )
    return result


def _parse_security_schemes(schemes: dict) -> dict[str, SecurityScheme]:
    result = {}
    for name, scheme in schemes.items():
        if not isinstance(scheme, dict):
            continue
        result[name] = SecurityScheme(
            name=name,
            type=scheme.get("type") or "",
            scheme=scheme.get("scheme") or "",
            location=scheme.get("in") or "",
            param_name=scheme.get("name") or "",
            description=scheme.get("description") or "",
            bearer_format=scheme.get("bearerFormat") or "",
        )
    return result


def _mapping(value: Any) -> dict:
    return value if isinstance(value, dict) else {}
