from api_explorer.config import ApiVersion, Settings
from api_explorer.host import HostOptions, render_shell, version_selector_html

TEMPLATE = """<html>
<head><title>[[DocumentTitle]]</title></head>
<body data-prefix="[[RoutePrefix]]">
[[VersionSelectorString]]
<script>const url = "[[swaggerEndpoint]]"; const keep = "[[Unknown]]";</script>
</body>
</html>"""


class TestRenderShell:
    def test_tokens_are_substituted_case_insensitively(self):
        options = HostOptions(document_title="Pets API", route_prefix="/docs/", swagger_endpoint="/openapi.json")
        html = render_shell(TEMPLATE, options)
        assert "<title>Pets API</title>" in html
        assert 'data-prefix="docs"' in html
        assert 'const url = "/openapi.json"' in html

    def test_unknown_tokens_are_left_alone(self):
        assert "[[Unknown]]" in render_shell(TEMPLATE, HostOptions())

    def test_no_versions_means_no_selector(self):
        html = render_shell(TEMPLATE, HostOptions())
        assert "<select" not in html
        assert "[[VersionSelectorString]]" not in html


class TestVersionSelector:
    def test_current_version_selected(self):
        versions = [
            ApiVersion(name="v1", endpoint="/swagger/v1/swagger.json"),
            ApiVersion(name="v2", endpoint="/swagger/v2/swagger.json", description="beta"),
        ]
        html = version_selector_html(versions, "/swagger/v2/swagger.json")
        assert '<option value="/swagger/v1/swagger.json">v1</option>' in html
        assert '<option value="/swagger/v2/swagger.json" selected>v2 - beta</option>' in html

    def test_values_are_escaped(self):
        html = version_selector_html([ApiVersion(name="<v1>", endpoint='/a"b')], "")
        assert "&lt;v1&gt;" in html
        assert "/a&quot;b" in html


class TestSettings:
    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("API_EXPLORER_SPEC_URL", "https://api.test/openapi.json")
        monkeypatch.setenv("API_EXPLORER_API_VERSIONS", "v1=/v1.json, v2=/v2.json,broken")
        monkeypatch.setenv("API_EXPLORER_NAMESPACE_CACHE_BY_VERSION", "true")
        settings = Settings()
        assert settings.spec_url == "https://api.test/openapi.json"
        assert settings.namespace_cache_by_version is True
        assert [(v.name, v.endpoint) for v in settings.parsed_api_versions()] == [
            ("v1", "/v1.json"),
            ("v2", "/v2.json"),
        ]

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("API_EXPLORER_API_VERSIONS", raising=False)
        settings = Settings()
        assert settings.parsed_api_versions() == []
        assert settings.route_prefix == "swagger"
