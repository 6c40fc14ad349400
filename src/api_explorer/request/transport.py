"""HTTP transport for executing built requests.

The transport knows nothing about OpenAPI: it sends a method, URL, headers
and either a raw body or multipart parts, and reports what came back.
"""

from typing import Protocol

import httpx
from pydantic import BaseModel

from api_explorer.errors import TransportError

from .builder import UploadFile


class TransportResponse(BaseModel):
    status: int
    status_text: str = ""
    headers: dict[str, str] = {}
    body_text: str = ""

    @property
    def content_type(self) -> str:
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value
        return ""


class Transport(Protocol):
    def execute(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: str | None = None,
        form_fields: list[tuple[str, str]] | None = None,
        files: list[tuple[str, UploadFile]] | None = None,
        multipart: bool = False,
    ) -> TransportResponse: ...


class HttpxTransport:
    """Small httpx-based transport. No retries; 30 s timeout unless configured."""

    def __init__(
        self,
        *,
        timeout: float | None = 30.0,
        transport: httpx.BaseTransport | None = None,
        verify: bool = True,
    ) -> None:
        self._client = httpx.Client(timeout=timeout, transport=transport, verify=verify)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "HttpxTransport":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def execute(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: str | None = None,
        form_fields: list[tuple[str, str]] | None = None,
        files: list[tuple[str, UploadFile]] | None = None,
        multipart: bool = False,
    ) -> TransportResponse:
        kwargs: dict = {"headers": headers}
        if multipart or files:
            # Text fields travel as filename-less parts so httpx always encodes multipart/form-data.
            parts: list[tuple[str, tuple]] = [(name, (None, value)) for name, value in form_fields or []]
            parts.extend((name, (f.filename, f.content, f.content_type)) for name, f in files or [])
            if parts:
                kwargs["files"] = parts
        elif body is not None:
            kwargs["content"] = body.encode("utf-8")

        try:
            response = self._client.request(method, url, **kwargs)
        except (httpx.HTTPError, httpx.InvalidURL, OSError) as e:
            raise TransportError(method, url, str(e) or type(e).__name__) from e

        return TransportResponse(
            status=response.status_code,
            status_text=response.reason_phrase,
            headers=dict(response.headers),
            body_text=response.text,
        )
