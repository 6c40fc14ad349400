"""HTML shell rendering: `[[Token]]` substitution into a page template."""

import html
import re

from pydantic import BaseModel

from api_explorer.config import ApiVersion

TOKEN_RE = re.compile(r"\[\[(\w+)\]\]")


class HostOptions(BaseModel):
    document_title: str = "API Explorer"
    route_prefix: str = "swagger"
    swagger_endpoint: str = "/swagger/v1/swagger.json"
    api_versions: list[ApiVersion] = []

    def tokens(self) -> dict[str, str]:
        return {
            "documenttitle": self.document_title,
            "routeprefix": self.route_prefix.strip("/"),
            "swaggerendpoint": self.swagger_endpoint,
            "versionselectorstring": version_selector_html(self.api_versions, self.swagger_endpoint),
        }


def version_selector_html(versions: list[ApiVersion], current_endpoint: str) -> str:
    """Markup for the API version `<select>`; empty when there is nothing to choose."""
    if not versions:
        return ""
    options = []
    for version in versions:
        selected = " selected" if version.endpoint == current_endpoint else ""
        description = f" - {version.description}" if version.description else ""
        options.append(
            f'<option value="{html.escape(version.endpoint)}"{selected}>'
            f"{html.escape(version.name + description)}</option>"
        )
    return (
        '<div class="version-selector">'
        '<select id="apiVersionSelector" onchange="switchApiVersion(this.value)">'
        + "".join(options)
        + "</select></div>"
    )


def render_shell(template: str, options: HostOptions) -> str:
    """Replace known `[[Token]]` placeholders (case-insensitive); unknown ones are left alone."""
    tokens = options.tokens()

    def substitute(match: re.Match) -> str:
        return tokens.get(match.group(1).lower(), match.group(0))

    return TOKEN_RE.sub(substitute, template)
