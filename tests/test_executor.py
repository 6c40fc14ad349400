from pathlib import Path
from unittest.mock import MagicMock

import httpx
import pytest

from api_explorer.errors import ExecutionInProgressError, TransportError
from api_explorer.parser.openapi import load_document
from api_explorer.request.builder import RequestInput, UploadFile
from api_explorer.request.executor import ExecutionState, Executor, parse_response_body
from api_explorer.request.transport import HttpxTransport, TransportResponse
from api_explorer.storage.cache import CredentialStore, SessionCache
from api_explorer.storage.kv import MemoryStore

FIXTURES = Path(__file__).parent / "fixtures"
BASE = "https://petstore.example.com/v1"


def _doc():
    return load_document(FIXTURES / "petstore.yaml")


def _transport(handler) -> HttpxTransport:
    return HttpxTransport(transport=httpx.MockTransport(handler))


class TestExecutor:
    def test_success_flow_and_cache(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": 42, "name": "rex"})

        store = MemoryStore()
        cache = SessionCache(store)
        executor = Executor(_transport(handler), cache, CredentialStore(store), BASE)
        doc = _doc()

        result = executor.execute(doc, doc.get_operation("GET", "/pets/{petId}"), RequestInput(parameters={"petId": "42"}))

        assert result.state == ExecutionState.SUCCEEDED
        assert result.transitions == [
            ExecutionState.IDLE,
            ExecutionState.VALIDATING,
            ExecutionState.BUILDING,
            ExecutionState.SENDING,
            ExecutionState.SUCCEEDED,
        ]
        assert str(seen[0].url) == f"{BASE}/pets/42"
        assert result.status == 200
        assert result.status_text == "OK"
        assert result.is_json is True
        assert result.body == {"id": 42, "name": "rex"}
        assert result.ok

        cached = cache.load("GET", "/pets/{petId}")
        assert cached.parameters == {"petId": "42"}
        assert cached.response.status == 200
        assert cached.response.curl == result.curl
        assert '"name": "rex"' in cached.response.body

    def test_validation_failure_makes_no_request(self):
        handler = MagicMock()
        store = MemoryStore()
        executor = Executor(_transport(handler), SessionCache(store), base_url=BASE)
        doc = _doc()

        result = executor.execute(doc, doc.get_operation("GET", "/pets"), RequestInput(parameters={"limit": "abc"}))

        assert result.state == ExecutionState.VALIDATION_FAILED
        assert result.errors[0].name == "limit"
        assert result.errors[0].message == "limit must be an integer"
        assert result.request is None
        handler.assert_not_called()
        assert SessionCache(store).load("GET", "/pets") is None

    def test_http_error_status_is_still_success(self):
        def handler(request):
            return httpx.Response(404, text="no such pet", headers={"Content-Type": "text/plain"})

        doc = _doc()
        result = Executor(_transport(handler), base_url=BASE).execute(
            doc, doc.get_operation("GET", "/pets/{petId}"), RequestInput(parameters={"petId": "1"})
        )
        assert result.state == ExecutionState.SUCCEEDED
        assert result.status == 404
        assert result.ok is False
        assert result.is_json is False
        assert result.formatted_body() == "no such pet"

    def test_transport_failure_keeps_cached_response(self):
        def ok(request):
            return httpx.Response(200, json=[])

        def broken(request):
            raise httpx.ConnectError("connection refused", request=request)

        store = MemoryStore()
        cache = SessionCache(store)
        doc = _doc()
        operation = doc.get_operation("GET", "/pets")

        Executor(_transport(ok), cache, base_url=BASE).execute(doc, operation, RequestInput(parameters={"limit": "1"}))
        result = Executor(_transport(broken), cache, base_url=BASE).execute(
            doc, operation, RequestInput(parameters={"limit": "2"})
        )

        assert result.state == ExecutionState.FAILED
        assert result.transitions[-1] == ExecutionState.FAILED
        assert "connection refused" in result.error
        assert result.curl.startswith("curl -X GET")
        cached = cache.load("GET", "/pets")
        assert cached.parameters == {"limit": "1"}
        assert cached.response.status == 200

    def test_stored_bearer_token_is_attached(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(201)

        store = MemoryStore()
        credentials = CredentialStore(store)
        credentials.set("bearerAuth", "abc123")
        doc = _doc()
        result = Executor(_transport(handler), credentials=credentials, base_url=BASE).execute(
            doc, doc.get_operation("POST", "/pets"), RequestInput(body='{"name": "rex"}')
        )

        assert seen[0].headers["Authorization"] == "Bearer abc123"
        assert seen[0].content == b'{"name": "rex"}'
        assert "-H 'Authorization: Bearer abc123'" in result.curl

    def test_multipart_request_is_sent_with_boundary(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200)

        doc = _doc()
        Executor(_transport(handler), base_url=BASE).execute(
            doc,
            doc.get_operation("POST", "/pets/{petId}/photos"),
            RequestInput(
                parameters={"petId": "3"},
                files={"file": [UploadFile(filename="rex.png", content=b"\x89PNG", content_type="image/png")]},
                form_fields={"caption": "invoice"},
            ),
        )
        content_type = seen[0].headers["Content-Type"]
        assert content_type.startswith("multipart/form-data; boundary=")
        body = seen[0].read()
        assert b'name="file"; filename="rex.png"' in body
        assert b'name="caption"' in body
        assert b"invoice" in body

    def test_multipart_without_files_is_still_form_data(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200)

        doc = _doc()
        result = Executor(_transport(handler), base_url=BASE).execute(
            doc,
            doc.get_operation("POST", "/pets/{petId}/photos"),
            RequestInput(parameters={"petId": "3"}, form_fields={"caption": "invoice"}),
        )

        assert result.state == ExecutionState.SUCCEEDED
        assert seen[0].headers["Content-Type"].startswith("multipart/form-data; boundary=")
        body = seen[0].read()
        assert b'Content-Disposition: form-data; name="caption"' in body
        assert b"filename=" not in body
        assert b"invoice" in body

    def test_reentrant_execution_is_rejected(self):
        doc = _doc()
        operation = doc.get_operation("GET", "/health")
        executor = Executor(MagicMock(), base_url=BASE)

        def reenter(*args, **kwargs):
            with pytest.raises(ExecutionInProgressError):
                executor.execute(doc, operation, RequestInput())
            return TransportResponse(status=200)

        executor.transport.execute.side_effect = reenter
        result = executor.execute(doc, operation, RequestInput())

        assert result.state == ExecutionState.SUCCEEDED
        assert not executor.is_running(operation)

    def test_transport_error_from_custom_transport(self):
        doc = _doc()
        transport = MagicMock()
        transport.execute.side_effect = TransportError("GET", f"{BASE}/health", "DNS failure")
        result = Executor(transport, base_url=BASE).execute(doc, doc.get_operation("GET", "/health"), RequestInput())
        assert result.state == ExecutionState.FAILED
        assert result.error == "DNS failure"


class TestParseResponseBody:
    def test_json_by_content(self):
        assert parse_response_body("text/plain", '{"a": 1}') == ({"a": 1}, True)

    def test_invalid_json_kept_as_text(self):
        assert parse_response_body("application/json", "<html>") == ("<html>", False)

    def test_empty(self):
        assert parse_response_body("application/json", "") == ("", False)
