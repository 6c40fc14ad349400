"""Turns an operation plus user input into a concrete HTTP request."""

import base64
import logging
import mimetypes
from pathlib import Path
from urllib.parse import quote, urlencode

from pydantic import BaseModel

from api_explorer.catalog import effective_security
from api_explorer.generator.resolver import SchemaResolver
from api_explorer.parser.openapi import BODY_METHODS, OpenApiDocument, Operation
from api_explorer.parser.schema import ObjectSchema, is_binary, is_binary_array

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/json"


class UploadFile(BaseModel):
    """A file selected for a multipart field."""

    filename: str
    content: bytes = b""
    content_type: str = "application/octet-stream"

    @classmethod
    def from_path(cls, path: Path) -> "UploadFile":
        guessed, _ = mimetypes.guess_type(path.name)
        return cls(
            filename=path.name,
            content=path.read_bytes(),
            content_type=guessed or "application/octet-stream",
        )


class RequestInput(BaseModel):
    """Everything a user entered for one execution."""

    parameters: dict[str, str] = {}
    body: str | None = None
    content_type: str | None = None
    custom_headers: dict[str, str] = {}
    files: dict[str, list[UploadFile]] = {}
    form_fields: dict[str, str] = {}


class PreparedRequest(BaseModel):
    """A fully built request, ready for the transport and the cURL formatter."""

    method: str
    url: str
    headers: dict[str, str] = {}
    body: str | None = None
    multipart: bool = False
    form_fields: list[tuple[str, str]] = []
    files: list[tuple[str, UploadFile]] = []


def is_multipart(content_type: str | None) -> bool:
    return bool(content_type) and content_type.lower().startswith("multipart/")


def selected_content_type(operation: Operation, requested: str | None) -> str:
    """The request media type: the user's choice, else the first declared one."""
    if requested:
        return requested
    if operation.request_body:
        return next(iter(operation.request_body))
    return DEFAULT_CONTENT_TYPE


def build_request(
    document: OpenApiDocument,
    operation: Operation,
    request_input: RequestInput,
    credentials: dict[str, str] | None = None,
    base_url: str = "",
    resolver: SchemaResolver | None = None,
) -> PreparedRequest:
    """Substitute parameters, encode the body and attach credentials."""
    resolver = resolver or SchemaResolver(document)
    method = operation.method.upper()
    path = operation.path
    query: list[tuple[str, str]] = []
    headers: dict[str, str] = {}
    cookies: list[str] = []

    for param in operation.parameters:
        value = request_input.parameters.get(param.name, "")
        if value == "":
            continue
        if param.location == "path":
            path = path.replace(f"{{{param.name}}}", quote(value, safe=""))
        elif param.location == "query":
            query.append((param.name, value))
        elif param.location == "header":
            headers[param.name] = value
        elif param.location == "cookie":
            cookies.append(f"{param.name}={value}")
    if cookies:
        headers["Cookie"] = "; ".join(cookies)

    content_type = selected_content_type(operation, request_input.content_type)
    body = None
    multipart = False
    form_fields: list[tuple[str, str]] = []
    files: list[tuple[str, UploadFile]] = []

    if method in BODY_METHODS and is_multipart(content_type):
        multipart = True
        form_fields, files = _multipart_parts(operation, content_type, request_input, resolver)
    elif method in BODY_METHODS and (operation.request_body or request_input.body):
        headers["Content-Type"] = content_type
        # Sent verbatim: the text is never re-serialized.
        if request_input.body:
            body = request_input.body

    for name, value in request_input.custom_headers.items():
        _set_header(headers, name, value)
    if multipart:
        # The transport supplies the multipart boundary.
        for key in [k for k in headers if k.lower() == "content-type"]:
            del headers[key]

    _apply_credentials(document, operation, credentials or {}, headers, query)

    url = f"{base_url.rstrip('/')}{path}"
    if query:
        url += ("&" if "?" in url else "?") + urlencode(query, quote_via=quote)

    return PreparedRequest(
        method=method,
        url=url,
        headers=headers,
        body=body,
        multipart=multipart,
        form_fields=form_fields,
        files=files,
    )


def _multipart_parts(
    operation: Operation,
    content_type: str,
    request_input: RequestInput,
    resolver: SchemaResolver,
) -> tuple[list[tuple[str, str]], list[tuple[str, UploadFile]]]:
    form_fields: list[tuple[str, str]] = []
    files: list[tuple[str, UploadFile]] = []

    schema = operation.request_body.get(content_type)
    concrete = resolver.resolve_or_none(schema) if schema is not None else None

    if not isinstance(concrete, ObjectSchema):
        # Without a usable schema, send whatever the user supplied.
        for name, selected in request_input.files.items():
            files.extend((name, f) for f in selected)
        form_fields.extend((n, v) for n, v in request_input.form_fields.items() if v)
        return form_fields, files

    for name, prop in concrete.properties.items():
        prop = resolver.resolve_or_none(prop) or prop
        selected = request_input.files.get(name, [])
        if is_binary(prop):
            if selected:
                files.append((name, selected[0]))
        elif is_binary_array(prop):
            files.extend((name, f) for f in selected)
        else:
            value = request_input.form_fields.get(name, "")
            if value:
                form_fields.append((name, value))
    return form_fields, files


def _apply_credentials(
    document: OpenApiDocument,
    operation: Operation,
    credentials: dict[str, str],
    headers: dict[str, str],
    query: list[tuple[str, str]],
) -> None:
    for requirement in effective_security(operation, document):
        for scheme_name in requirement:
            value = credentials.get(scheme_name)
            scheme = document.security_schemes.get(scheme_name)
            if not value or scheme is None:
                logger.debug("No stored credential for security scheme %s", scheme_name)
                continue
            if scheme.type == "http" and scheme.scheme.lower() == "bearer":
                _set_header(headers, "Authorization", f"Bearer {value}")
            elif scheme.type == "http" and scheme.scheme.lower() == "basic":
                token = value
                if ":" in value:
                    token = base64.b64encode(value.encode("utf-8")).decode("ascii")
                _set_header(headers, "Authorization", f"Basic {token}")
            elif scheme.type == "apiKey":
                if scheme.location == "header":
                    _set_header(headers, scheme.param_name, value)
                elif scheme.location == "query":
                    query.append((scheme.param_name, value))
                elif scheme.location == "cookie":
                    cookie = f"{scheme.param_name}={value}"
                    headers["Cookie"] = f"{headers['Cookie']}; {cookie}" if "Cookie" in headers else cookie
            elif scheme.type in ("oauth2", "openIdConnect"):
                _set_header(headers, "Authorization", f"Bearer {value}")


def _set_header(headers: dict[str, str], name: str, value: str) -> None:
    """Set a header, replacing any existing one whose name differs only in case."""
    for key in [k for k in headers if k.lower() == name.lower()]:
        del headers[key]
    headers[name] = value
