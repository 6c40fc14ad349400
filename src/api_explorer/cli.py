"""CLI entry point for api-explorer."""

import json
import logging
import sys
from pathlib import Path

import click
import yaml

from api_explorer.catalog import load_catalog
from api_explorer.config import get_settings
from api_explorer.errors import ApiExplorerError, ExecutionInProgressError, SpecLoadError
from api_explorer.generator.ai import AiExampleGenerator
from api_explorer.generator.render import ExpansionState
from api_explorer.host import HostOptions, render_shell
from api_explorer.parser.source import load_spec, read_spec_text
from api_explorer.request.builder import RequestInput, UploadFile, selected_content_type
from api_explorer.request.executor import ExecutionState
from api_explorer.request.transport import HttpxTransport
from api_explorer.session import ExplorerSession
from api_explorer.storage.cache import CredentialStore, SessionCache
from api_explorer.storage.kv import JsonFileStore


class CliContext:
    def __init__(self, settings, spec: str, base_url: str, store: JsonFileStore, version: str | None):
        self.settings = settings
        self.spec = spec
        self.base_url = base_url
        self.store = store
        self.version = version

    def session(self, transport=None) -> ExplorerSession:
        try:
            document = load_spec(self.spec)
        except SpecLoadError as e:
            raise click.ClickException(f"Failed to load API definition: {e}")
        return ExplorerSession(
            document,
            self.store,
            transport=transport,
            base_url=self.base_url,
            version=self.version,
            namespace_cache=self.settings.namespace_cache_by_version,
        )


def _parse_pairs(values: tuple[str, ...], sep: str = "=") -> dict[str, str]:
    result = {}
    for item in values:
        key, found, value = item.partition(sep)
        if not found or not key.strip():
            raise click.BadParameter(f"Expected KEY{sep}VALUE, got {item!r}")
        result[key.strip()] = value.strip() if sep == ":" else value
    return result


@click.group()
@click.option("--spec", "spec_location", default=None, help="OpenAPI document URL or file path.")
@click.option("--base-url", default=None, help="Base URL requests are sent to.")
@click.option("--api-version", "api_version", default=None, help="Named API version from API_EXPLORER_API_VERSIONS.")
@click.option("--store", "store_path", default=None, type=click.Path(path_type=Path), help="Session store file.")
@click.option("--log-level", default=None, help="Logging level.")
@click.pass_context
def main(ctx, spec_location, base_url, api_version, store_path, log_level):
    """Browse, inspect, and call OpenAPI-described HTTP APIs."""
    settings = get_settings()
    logging.basicConfig(
        level=(log_level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    spec = spec_location or settings.spec_url
    if api_version:
        versions = {v.name: v.endpoint for v in settings.parsed_api_versions()}
        if api_version not in versions:
            raise click.BadParameter(f"Unknown API version {api_version!r}", param_hint="--api-version")
        spec = spec_location or versions[api_version]

    ctx.obj = CliContext(
        settings=settings,
        spec=spec,
        base_url=base_url or settings.base_url,
        store=JsonFileStore(store_path or settings.storage_path),
        version=api_version,
    )


@main.command()
@click.option("--search", default="", help="Filter by path, method, or tag.")
@click.pass_obj
def endpoints(obj: CliContext, search: str):
    """List endpoints grouped by tag."""
    try:
        raw = yaml.safe_load(read_spec_text(obj.spec))
    except (SpecLoadError, yaml.YAMLError) as e:
        raise click.ClickException(f"Failed to load API definition: {e}")
    _, catalog = load_catalog(raw)
    if not catalog.loaded:
        raise click.ClickException(catalog.error)

    groups = catalog.search(search)
    if not groups:
        click.echo("No endpoints found.")
        return
    for tag, entries in groups.items():
        click.echo(tag)
        for entry in entries:
            flags = []
            if entry.requires_auth:
                flags.append("auth")
            if entry.deprecated:
                flags.append("deprecated")
            suffix = f"  [{', '.join(flags)}]" if flags else ""
            click.echo(f"  {entry.method:<7} {entry.path}  {entry.summary}{suffix}")


@main.command()
@click.pass_obj
def info(obj: CliContext):
    """Show API details and where the definition was loaded from."""
    document = obj.session().document
    click.echo(f"Title: {document.title or '(untitled)'}")
    if document.version:
        click.echo(f"Version: {document.version}")
    if document.description:
        click.echo(f"Description: {document.description}")
    if document.contact:
        click.echo(f"Contact: {document.contact}")
    for server in document.servers:
        click.echo(f"Server: {server}")
    click.echo(f"Definition: {obj.spec}")


@main.command()
@click.argument("method")
@click.argument("path")
@click.option("--expand", multiple=True, help="Schema path to expand, e.g. '#/requestBody/application~1json/properties/owner'.")
@click.option("--expand-all", is_flag=True, help="Expand every referenced schema.")
@click.pass_obj
def show(obj: CliContext, method: str, path: str, expand: tuple[str, ...], expand_all: bool):
    """Show parameters, request body, and response schemas of an operation."""
    session = obj.session()
    state = ExpansionState(set(expand), expand_all=expand_all)
    try:
        click.echo(session.describe(method, path, state))
    except ApiExplorerError as e:
        raise click.ClickException(str(e))


@main.command()
@click.argument("method")
@click.argument("path")
@click.option("--content-type", default=None, help="Request media type.")
@click.pass_obj
def example(obj: CliContext, method: str, path: str, content_type: str | None):
    """Print a synthesized example request body."""
    session = obj.session()
    try:
        value = session.example_body(method, path, content_type)
    except ApiExplorerError as e:
        raise click.ClickException(str(e))
    if value is None:
        click.echo("No request body.")
        return
    click.echo(json.dumps(value, indent=2))


@main.command()
@click.argument("method")
@click.argument("path")
@click.option("--context", "context_text", default="", help="Free-text guidance for the generator.")
@click.option("--pin", multiple=True, help="Field value to keep as-is, NAME=VALUE (VALUE parsed as JSON when possible).")
@click.option("--content-type", default=None, help="Request media type.")
@click.option("--model", default=None, help="LLM model to use.")
@click.pass_obj
def generate(obj: CliContext, method: str, path: str, context_text: str, pin: tuple[str, ...], content_type: str | None, model: str | None):
    """Generate a request body with an LLM, falling back to a synthesized example."""
    session = obj.session()
    try:
        operation = session.operation(method, path)
    except ApiExplorerError as e:
        raise click.ClickException(str(e))
    schema = operation.request_body.get(selected_content_type(operation, content_type))
    if schema is None:
        raise click.ClickException(f"{operation.method} {operation.path} has no request body")

    pinned = {}
    for name, raw in _parse_pairs(pin).items():
        try:
            pinned[name] = json.loads(raw)
        except ValueError:
            pinned[name] = raw

    generator = AiExampleGenerator(model=model or obj.settings.llm_model)
    result = generator.generate(schema, session.resolver, context=context_text, pinned=pinned)
    if result.source == "fallback":
        click.echo(f"AI generation unavailable ({result.error}); using synthesized example.", err=True)
    click.echo(json.dumps(result.value, indent=2))


@main.command()
@click.argument("method")
@click.argument("path")
@click.option("-p", "--param", "params", multiple=True, help="Parameter value, NAME=VALUE.")
@click.option("-H", "--header", "headers", multiple=True, help="Custom header, 'Key: Value'.")
@click.option("--body", default=None, help="Raw request body, sent verbatim.")
@click.option("--body-file", default=None, type=click.Path(exists=True, path_type=Path), help="Read the raw request body from a file.")
@click.option("--content-type", default=None, help="Request media type.")
@click.option("--file", "files", multiple=True, help="Multipart file field, FIELD=PATH (repeat for several files).")
@click.option("--field", "fields", multiple=True, help="Multipart text field, NAME=VALUE.")
@click.option("--reuse/--no-reuse", default=True, help="Fill unspecified inputs from the session cache.")
@click.pass_obj
def call(obj: CliContext, method, path, params, headers, body, body_file, content_type, files, fields, reuse):
    """Execute an operation and print the response and cURL command."""
    with HttpxTransport(timeout=obj.settings.request_timeout_sec) as transport:
        session = obj.session(transport=transport)
        try:
            operation = session.operation(method, path)
        except ApiExplorerError as e:
            raise click.ClickException(str(e))

        cached = session.cached(operation.method, operation.path) if reuse else None
        if body_file is not None:
            body = body_file.read_text(encoding="utf-8")

        uploads: dict[str, list[UploadFile]] = {}
        for item in files:
            field, found, file_path = item.partition("=")
            if not found:
                raise click.BadParameter(f"Expected FIELD=PATH, got {item!r}", param_hint="--file")
            uploads.setdefault(field, []).append(UploadFile.from_path(Path(file_path)))

        custom_headers = _parse_pairs(headers, sep=":")
        parameters = {**(cached.parameters if cached else {}), **_parse_pairs(params)}
        request_input = RequestInput(
            parameters=parameters,
            body=body if body is not None else (cached.request_body if cached else None),
            content_type=content_type or (cached.content_type if cached and cached.request_body is not None else None),
            custom_headers={**(cached.headers_dict() if cached else {}), **custom_headers},
            files=uploads,
            form_fields=_parse_pairs(fields),
        )
        if custom_headers or body is not None:
            session.save_inputs(operation.method, operation.path, request_input)

        try:
            result = session.execute(operation.method, operation.path, request_input)
        except ExecutionInProgressError as e:
            raise click.ClickException(str(e))

    if result.state == ExecutionState.VALIDATION_FAILED:
        click.echo("Validation Error:", err=True)
        for error in result.errors:
            click.echo(f"  {error.name}: {error.message}", err=True)
        sys.exit(1)

    if result.state == ExecutionState.FAILED:
        click.echo(f"Request Failed: {result.error}", err=True)
        click.echo(result.curl, err=True)
        sys.exit(1)

    click.echo(f"{result.status} {result.status_text}  ({result.duration_ms}ms)")
    click.echo("")
    click.echo(result.curl)
    click.echo("")
    if result.headers:
        click.echo("Response headers:")
        for name, value in result.headers.items():
            click.echo(f"  {name}: {value}")
        click.echo("")
    click.echo(result.formatted_body())


@main.group()
def auth():
    """Manage stored credentials per security scheme."""


@auth.command("set")
@click.argument("scheme")
@click.argument("value")
@click.pass_obj
def auth_set(obj: CliContext, scheme: str, value: str):
    """Store a token or API key for SCHEME."""
    CredentialStore(obj.store).set(scheme, value)
    click.echo(f"Stored credential for {scheme}")


@auth.command("remove")
@click.argument("scheme")
@click.pass_obj
def auth_remove(obj: CliContext, scheme: str):
    """Forget the credential for SCHEME."""
    CredentialStore(obj.store).remove(scheme)
    click.echo(f"Removed credential for {scheme}")


@auth.command("list")
@click.pass_obj
def auth_list(obj: CliContext):
    """List schemes with a stored credential."""
    stored = CredentialStore(obj.store).get_all()
    if not stored:
        click.echo("No stored credentials.")
        return
    for scheme, value in sorted(stored.items()):
        masked = value[:4] + "..." if len(value) > 8 else "***"
        click.echo(f"{scheme}: {masked}")


@auth.command("clear")
@click.pass_obj
def auth_clear(obj: CliContext):
    """Forget all stored credentials."""
    CredentialStore(obj.store).clear()
    click.echo("Cleared stored credentials.")


@main.group()
def cache():
    """Inspect or clear cached requests and responses."""


@cache.command("show")
@click.argument("method", required=False)
@click.argument("path", required=False)
@click.pass_obj
def cache_show(obj: CliContext, method: str | None, path: str | None):
    """Show the cached interaction for METHOD PATH, or list cached keys."""
    session_cache = SessionCache(obj.store, namespace=obj.version if obj.settings.namespace_cache_by_version else None)
    if not method or not path:
        keys = session_cache.keys()
        click.echo("\n".join(keys) if keys else "Cache is empty.")
        return
    record = session_cache.load(method, path)
    if record is None:
        click.echo(f"Nothing cached for {method.upper()} {path}")
        return
    click.echo(record.model_dump_json(by_alias=True, indent=2))


@cache.command("clear")
@click.pass_obj
def cache_clear(obj: CliContext):
    """Remove every cached interaction."""
    SessionCache(obj.store).clear()
    click.echo("Cache cleared.")


@main.command()
@click.option("--template", required=True, type=click.Path(exists=True, path_type=Path), help="HTML template with [[Token]] placeholders.")
@click.option("-o", "--output", required=True, type=click.Path(path_type=Path), help="Output HTML file.")
@click.pass_obj
def shell(obj: CliContext, template: Path, output: Path):
    """Render the HTML shell page from a template."""
    options = HostOptions(
        document_title=obj.settings.document_title,
        route_prefix=obj.settings.route_prefix,
        swagger_endpoint=obj.spec,
        api_versions=obj.settings.parsed_api_versions(),
    )
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(render_shell(template.read_text(encoding="utf-8"), options), encoding="utf-8")
    click.echo(f"Shell page saved to {output}")
