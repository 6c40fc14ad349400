import base64
from pathlib import Path

from api_explorer.parser.openapi import load_document, parse_document
from api_explorer.request.builder import (
    RequestInput,
    UploadFile,
    build_request,
    is_multipart,
    selected_content_type,
)
from api_explorer.request.curl import curl_for

FIXTURES = Path(__file__).parent / "fixtures"
BASE = "https://api.example.com"


def _doc():
    return load_document(FIXTURES / "petstore.yaml")


class TestUrl:
    def test_path_parameter_substitution(self):
        doc = parse_document({"paths": {"/pets/{id}": {"get": {"parameters": [
            {"name": "id", "in": "path", "required": True, "schema": {"type": "integer"}},
        ]}}}})
        request = build_request(doc, doc.get_operation("GET", "/pets/{id}"), RequestInput(parameters={"id": "42"}), base_url=BASE)
        assert request.url == "https://api.example.com/pets/42"
        assert request.method == "GET"
        assert request.body is None

    def test_path_values_are_encoded(self):
        doc = _doc()
        request = build_request(doc, doc.get_operation("GET", "/pets/{petId}"), RequestInput(parameters={"petId": "a/b c"}))
        assert request.url == "/pets/a%2Fb%20c"

    def test_query_keeps_declaration_order_and_skips_empty(self):
        doc = _doc()
        request = build_request(
            doc,
            doc.get_operation("GET", "/pets"),
            RequestInput(parameters={"status": "sold", "limit": "5"}),
            base_url=BASE + "/",
        )
        assert request.url == "https://api.example.com/pets?limit=5&status=sold"

    def test_header_and_cookie_parameters(self):
        doc = parse_document({"paths": {"/a": {"get": {"parameters": [
            {"name": "X-Trace", "in": "header", "schema": {"type": "string"}},
            {"name": "session", "in": "cookie", "schema": {"type": "string"}},
        ]}}}})
        request = build_request(doc, doc.get_operation("GET", "/a"), RequestInput(parameters={"X-Trace": "t1", "session": "s1"}))
        assert request.headers == {"X-Trace": "t1", "Cookie": "session=s1"}


class TestBody:
    def test_body_is_sent_verbatim(self):
        doc = _doc()
        raw = '{ "name" : "rex",\n  "id": 1 }'
        request = build_request(doc, doc.get_operation("POST", "/pets"), RequestInput(body=raw))
        assert request.body == raw
        assert request.headers["Content-Type"] == "application/json"

    def test_get_has_no_body_headers(self):
        doc = _doc()
        request = build_request(doc, doc.get_operation("GET", "/pets"), RequestInput(body="ignored"))
        assert request.body is None
        assert "Content-Type" not in request.headers

    def test_custom_headers_merged_last(self):
        doc = _doc()
        request = build_request(
            doc,
            doc.get_operation("POST", "/pets"),
            RequestInput(body="{}", custom_headers={"Content-Type": "application/vnd.pet+json", "X-Debug": "1"}),
        )
        assert request.headers["Content-Type"] == "application/vnd.pet+json"
        assert request.headers["X-Debug"] == "1"

    def test_custom_header_replaces_differently_cased_name(self):
        doc = _doc()
        request = build_request(
            doc,
            doc.get_operation("POST", "/pets"),
            RequestInput(body="x", custom_headers={"content-type": "text/plain"}),
        )
        assert request.headers == {"content-type": "text/plain"}
        assert "application/json" not in curl_for(request)


class TestMultipart:
    def test_files_and_fields_from_schema(self):
        doc = _doc()
        photo = UploadFile(filename="rex.png", content=b"png", content_type="image/png")
        extras = [UploadFile(filename="a.jpg", content=b"a"), UploadFile(filename="b.jpg", content=b"b")]
        request = build_request(
            doc,
            doc.get_operation("POST", "/pets/{petId}/photos"),
            RequestInput(
                parameters={"petId": "1"},
                files={"file": [photo, extras[0]], "extra": extras},
                form_fields={"caption": "best boy", "unknown": "dropped"},
                custom_headers={"content-type": "multipart/form-data"},
            ),
        )
        assert request.multipart is True
        assert request.body is None
        assert [(name, f.filename) for name, f in request.files] == [
            ("file", "rex.png"),
            ("extra", "a.jpg"),
            ("extra", "b.jpg"),
        ]
        assert request.form_fields == [("caption", "best boy")]
        assert all(k.lower() != "content-type" for k in request.headers)

    def test_helpers(self):
        doc = _doc()
        assert is_multipart("multipart/form-data; boundary=x")
        assert not is_multipart("application/json")
        assert not is_multipart(None)
        assert selected_content_type(doc.get_operation("POST", "/pets/{petId}/photos"), None) == "multipart/form-data"
        assert selected_content_type(doc.get_operation("GET", "/pets"), None) == "application/json"
        assert selected_content_type(doc.get_operation("POST", "/pets"), "text/plain") == "text/plain"

    def test_upload_from_path(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_bytes(b"hello")
        upload = UploadFile.from_path(path)
        assert upload.filename == "notes.txt"
        assert upload.content == b"hello"
        assert upload.content_type == "text/plain"


class TestCredentials:
    def test_global_bearer_applies_to_undeclared_operation(self):
        doc = _doc()
        request = build_request(doc, doc.get_operation("POST", "/pets"), RequestInput(body="{}"), {"bearerAuth": "abc123"})
        assert request.headers["Authorization"] == "Bearer abc123"

    def test_credential_replaces_lowercase_custom_authorization(self):
        doc = _doc()
        request = build_request(
            doc,
            doc.get_operation("POST", "/pets"),
            RequestInput(body="{}", custom_headers={"authorization": "Bearer stale"}),
            {"bearerAuth": "abc123"},
        )
        assert [k for k in request.headers if k.lower() == "authorization"] == ["Authorization"]
        assert request.headers["Authorization"] == "Bearer abc123"

    def test_explicit_empty_security_sends_nothing(self):
        doc = _doc()
        request = build_request(doc, doc.get_operation("GET", "/pets"), RequestInput(), {"bearerAuth": "abc123"})
        assert "Authorization" not in request.headers

    def test_api_key_header(self):
        doc = _doc()
        request = build_request(
            doc, doc.get_operation("DELETE", "/pets/{petId}"), RequestInput(parameters={"petId": "1"}), {"apiKeyAuth": "k-1"}
        )
        assert request.headers == {"X-API-Key": "k-1"}

    def test_api_key_query(self):
        doc = _doc()
        request = build_request(doc, doc.get_operation("GET", "/store/inventory"), RequestInput(), {"queryKey": "q 1"})
        assert request.url == "/store/inventory?api_key=q%201"

    def test_missing_credential_is_skipped(self):
        doc = _doc()
        request = build_request(doc, doc.get_operation("POST", "/pets"), RequestInput(body="{}"), {})
        assert "Authorization" not in request.headers

    def test_basic_and_oauth2(self):
        doc = parse_document({
            "components": {"securitySchemes": {
                "basic": {"type": "http", "scheme": "basic"},
                "oauth": {"type": "oauth2", "flows": {}},
            }},
            "paths": {
                "/b": {"get": {"security": [{"basic": []}]}},
                "/o": {"get": {"security": [{"oauth": ["read"]}]}},
            },
        })
        basic = build_request(doc, doc.get_operation("GET", "/b"), RequestInput(), {"basic": "user:pass"})
        expected = base64.b64encode(b"user:pass").decode("ascii")
        assert basic.headers["Authorization"] == f"Basic {expected}"
        oauth = build_request(doc, doc.get_operation("GET", "/o"), RequestInput(), {"oauth": "tok"})
        assert oauth.headers["Authorization"] == "Bearer tok"
