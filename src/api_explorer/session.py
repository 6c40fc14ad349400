"""Explorer session: everything tied to one loaded API document.

A session is created when an API version is selected and discarded when
another one is selected. It owns the document, the catalog built from it,
a resolver, the session cache, stored credentials and the executor.
"""

import logging
from typing import Any

from api_explorer.catalog import Catalog, build_catalog
from api_explorer.errors import UnknownOperationError
from api_explorer.generator.example import synthesize
from api_explorer.generator.render import ExpansionState, render_operation_text
from api_explorer.generator.resolver import SchemaResolver
from api_explorer.parser.openapi import OpenApiDocument, Operation
from api_explorer.parser.source import SpecSource
from api_explorer.request.builder import RequestInput, selected_content_type
from api_explorer.request.executor import ExecutionResult, Executor
from api_explorer.request.transport import Transport
from api_explorer.storage.cache import CachedInteraction, CredentialStore, SessionCache
from api_explorer.storage.kv import KeyValueStore

logger = logging.getLogger(__name__)


class ExplorerSession:
    """Context object for one API document."""

    def __init__(
        self,
        document: OpenApiDocument,
        store: KeyValueStore,
        *,
        transport: Transport | None = None,
        base_url: str = "",
        version: str | None = None,
        namespace_cache: bool = False,
    ) -> None:
        self.document = document
        self.version = version
        self.catalog: Catalog = build_catalog(document)
        self.resolver = SchemaResolver(document)
        self.cache = SessionCache(store, namespace=version if namespace_cache else None)
        self.credentials = CredentialStore(store)
        self.base_url = base_url or (document.servers[0] if document.servers else "")
        self.executor = Executor(transport, self.cache, self.credentials, self.base_url) if transport else None

    @classmethod
    async def open(cls, source: SpecSource, store: KeyValueStore, **kwargs: Any) -> "ExplorerSession":
        document = await source.get()
        return cls(document, store, **kwargs)

    @classmethod
    async def switch_version(
        cls, source: SpecSource, location: str, store: KeyValueStore, **kwargs: Any
    ) -> "ExplorerSession":
        """Point the source at another document and start a fresh session on it."""
        source.location = location
        source.clear()
        logger.info("Switching API version to %s", location)
        return await cls.open(source, store, **kwargs)

    def operation(self, method: str, path: str) -> Operation:
        operation = self.document.get_operation(method, path)
        if operation is None:
            raise UnknownOperationError(method, path)
        return operation

    def describe(self, method: str, path: str, state: ExpansionState | None = None) -> str:
        return render_operation_text(self.operation(method, path), self.resolver, state)

    def example_body(self, method: str, path: str, content_type: str | None = None) -> Any:
        operation = self.operation(method, path)
        content_type = selected_content_type(operation, content_type)
        schema = operation.request_body.get(content_type)
        if schema is None:
            return None
        return synthesize(schema, self.resolver)

    def cached(self, method: str, path: str) -> CachedInteraction | None:
        return self.cache.load(method, path)

    def save_inputs(self, method: str, path: str, request_input: RequestInput) -> CachedInteraction:
        operation = self.operation(method, path)
        return self.cache.save_inputs(
            operation.method,
            operation.path,
            parameters={k: v for k, v in request_input.parameters.items() if v},
            request_body=request_input.body,
            content_type=selected_content_type(operation, request_input.content_type),
            custom_headers=request_input.custom_headers,
        )

    def execute(self, method: str, path: str, request_input: RequestInput) -> ExecutionResult:
        if self.executor is None:
            raise RuntimeError("Session was created without a transport")
        operation = self.operation(method, path)
        return self.executor.execute(self.document, operation, request_input, self.resolver)
