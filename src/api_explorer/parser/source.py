"""Memoized OpenAPI document source.

The document is fetched once and reused. Callers that ask for it while a
fetch is already running await the same task instead of issuing another
request. `clear()` (or `get(force_refresh=True)`) drops both the cached
document and any in-flight task, which is what a version switch needs.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

import httpx

from api_explorer.errors import SpecLoadError

from .openapi import OpenApiDocument, load_document, parse_document_text

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], Awaitable[str]]


class SpecSource:
    """Fetches and caches the OpenAPI document for one spec location."""

    def __init__(
        self,
        location: str,
        *,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
        fetcher: Fetcher | None = None,
    ) -> None:
        self.location = location
        self._timeout = timeout
        self._transport = transport
        self._fetcher = fetcher
        self._document: OpenApiDocument | None = None
        self._inflight: asyncio.Task[OpenApiDocument] | None = None
        self._generation = 0

    @property
    def cached(self) -> OpenApiDocument | None:
        return self._document

    async def get(self, force_refresh: bool = False) -> OpenApiDocument:
        if force_refresh:
            self.clear()
        if self._document is not None:
            return self._document
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._load(self._generation, self.location))
        task = self._inflight
        try:
            document = await task
        finally:
            if self._inflight is task and task.done():
                self._inflight = None
        return document

    def clear(self) -> None:
        self._document = None
        self._inflight = None
        self._generation += 1

    async def _load(self, generation: int, location: str) -> OpenApiDocument:
        logger.info("Fetching OpenAPI document from %s", location)
        text = await self.read_text(location)
        document = parse_document_text(text)
        # A clear() issued mid-fetch invalidates this result for future callers.
        if generation == self._generation:
            self._document = document
        return document

    async def read_text(self, location: str) -> str:
        if self._fetcher is not None:
            return await self._fetcher(location)
        if not location.startswith(("http://", "https://")):
            path = Path(location)
            if not path.exists():
                raise SpecLoadError(f"Spec file not found: {location}")
            return path.read_text(encoding="utf-8")
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(location)
        except httpx.HTTPError as e:
            raise SpecLoadError(f"Failed to fetch {location}: {e}") from e
        if not response.is_success:
            raise SpecLoadError(f"Failed to fetch {location}: HTTP {response.status_code}")
        return response.text


def read_spec_text(location: str) -> str:
    """Raw document text from a local file or URL."""
    path = Path(location)
    if not location.startswith(("http://", "https://")) and path.exists():
        return path.read_text(encoding="utf-8")
    return asyncio.run(SpecSource(location).read_text(location))


def load_spec(location: str) -> OpenApiDocument:
    """Synchronous helper for callers outside an event loop."""
    path = Path(location)
    if not location.startswith(("http://", "https://")) and path.exists():
        return load_document(path)
    return asyncio.run(SpecSource(location).get())
