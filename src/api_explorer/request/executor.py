"""Executes an operation: validate, build, send, classify, cache.

    Idle -> Validating -> ValidationFailed
                       -> Building -> Sending -> Succeeded | Failed

HTTP error statuses are still a successful execution; only transport-level
failures end in Failed. A failed attempt never touches the cache.
"""

import json
import logging
import time
from enum import Enum
from typing import Any

from pydantic import BaseModel

from api_explorer.errors import ExecutionInProgressError, FieldError, TransportError
from api_explorer.generator.resolver import SchemaResolver
from api_explorer.parser.openapi import OpenApiDocument, Operation
from api_explorer.storage.cache import CachedResponse, CredentialStore, SessionCache

from .builder import PreparedRequest, RequestInput, build_request
from .curl import curl_for
from .transport import Transport, TransportResponse
from .validation import validate_parameters

logger = logging.getLogger(__name__)


class ExecutionState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    VALIDATION_FAILED = "validation_failed"
    BUILDING = "building"
    SENDING = "sending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ExecutionResult(BaseModel):
    state: ExecutionState
    transitions: list[ExecutionState] = []
    errors: list[FieldError] = []
    request: PreparedRequest | None = None
    curl: str = ""
    status: int | None = None
    status_text: str = ""
    duration_ms: int = 0
    headers: dict[str, str] = {}
    body_text: str = ""
    body: Any = None
    is_json: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is not None and 200 <= self.status < 300

    def formatted_body(self) -> str:
        if self.is_json:
            return json.dumps(self.body, indent=2, ensure_ascii=False)
        return self.body_text


def parse_response_body(content_type: str, text: str) -> tuple[Any, bool]:
    """Parse JSON when declared or when the text happens to be JSON; else keep text."""
    if not text.strip():
        return text, False
    try:
        return json.loads(text), True
    except ValueError:
        if "json" in content_type.lower():
            logger.debug("Response declared %s but is not valid JSON", content_type)
        return text, False


class Executor:
    """Runs operations against a transport and records results in the session cache."""

    def __init__(
        self,
        transport: Transport,
        cache: SessionCache | None = None,
        credentials: CredentialStore | None = None,
        base_url: str = "",
    ) -> None:
        self.transport = transport
        self.cache = cache
        self.credentials = credentials
        self.base_url = base_url
        self._inflight: set[str] = set()

    def is_running(self, operation: Operation) -> bool:
        return operation.key in self._inflight

    def execute(
        self,
        document: OpenApiDocument,
        operation: Operation,
        request_input: RequestInput,
        resolver: SchemaResolver | None = None,
    ) -> ExecutionResult:
        key = operation.key
        if key in self._inflight:
            raise ExecutionInProgressError(key)
        self._inflight.add(key)
        try:
            return self._run(document, operation, request_input, resolver or SchemaResolver(document))
        finally:
            self._inflight.discard(key)

    def _run(
        self,
        document: OpenApiDocument,
        operation: Operation,
        request_input: RequestInput,
        resolver: SchemaResolver,
    ) -> ExecutionResult:
        transitions = [ExecutionState.IDLE, ExecutionState.VALIDATING]

        errors = validate_parameters(operation, request_input.parameters, resolver)
        if errors:
            transitions.append(ExecutionState.VALIDATION_FAILED)
            logger.info("Validation failed for %s: %s", operation.key, [e.message for e in errors])
            return ExecutionResult(state=ExecutionState.VALIDATION_FAILED, transitions=transitions, errors=errors)

        transitions.append(ExecutionState.BUILDING)
        credentials = self.credentials.get_all() if self.credentials else {}
        request = build_request(document, operation, request_input, credentials, self.base_url, resolver)
        curl = curl_for(request)

        transitions.append(ExecutionState.SENDING)
        logger.info("Sending %s %s", request.method, request.url)
        started = time.perf_counter()
        try:
            response = self.transport.execute(
                request.method,
                request.url,
                request.headers,
                body=request.body,
                form_fields=request.form_fields,
                files=request.files,
                multipart=request.multipart,
            )
        except TransportError as e:
            transitions.append(ExecutionState.FAILED)
            logger.warning("Request failed for %s: %s", operation.key, e)
            return ExecutionResult(
                state=ExecutionState.FAILED,
                transitions=transitions,
                request=request,
                curl=curl,
                duration_ms=_elapsed_ms(started),
                error=e.detail,
            )
        duration_ms = _elapsed_ms(started)

        transitions.append(ExecutionState.SUCCEEDED)
        result = self._result(request, curl, response, duration_ms, transitions)
        self._record(operation, request_input, result)
        return result

    def _result(
        self,
        request: PreparedRequest,
        curl: str,
        response: TransportResponse,
        duration_ms: int,
        transitions: list[ExecutionState],
    ) -> ExecutionResult:
        body, is_json = parse_response_body(response.content_type, response.body_text)
        return ExecutionResult(
            state=ExecutionState.SUCCEEDED,
            transitions=transitions,
            request=request,
            curl=curl,
            status=response.status,
            status_text=response.status_text,
            duration_ms=duration_ms,
            headers=response.headers,
            body_text=response.body_text,
            body=body,
            is_json=is_json,
        )

    def _record(self, operation: Operation, request_input: RequestInput, result: ExecutionResult) -> None:
        if self.cache is None or result.status is None:
            return
        parameters = {k: v for k, v in request_input.parameters.items() if v}
        self.cache.save_response(
            operation.method,
            operation.path,
            parameters=parameters,
            response=CachedResponse(
                status=result.status,
                status_text=result.status_text,
                duration_ms=result.duration_ms,
                body=result.formatted_body(),
                curl=result.curl,
            ),
        )


def _elapsed_ms(started: float) -> int:
    return int(round((time.perf_counter() - started) * 1000))
