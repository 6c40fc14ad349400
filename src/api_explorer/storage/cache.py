"""Per-endpoint interaction cache and stored credentials.

Persistence is best-effort: read failures behave as a cache miss and write
failures are logged and dropped.
"""

import json
import logging

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as ModelValidationError

from api_explorer.errors import PersistenceError

from .kv import KeyValueStore

logger = logging.getLogger(__name__)

CACHE_PREFIX = "tryit:"
CREDENTIALS_KEY = "auth:credentials"


class HeaderEntry(BaseModel):
    key: str
    value: str


class CachedResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: int
    status_text: str = Field(default="", alias="statusText")
    duration_ms: int = Field(default=0, alias="durationMs")
    body: str = ""
    curl: str = ""


class CachedInteraction(BaseModel):
    """Last inputs and response recorded for one (method, path)."""

    model_config = ConfigDict(populate_by_name=True)

    parameters: dict[str, str] = {}
    request_body: str | None = Field(default=None, alias="requestBody")
    content_type: str = Field(default="application/json", alias="contentType")
    custom_headers: list[HeaderEntry] = Field(default=[], alias="customHeaders")
    response: CachedResponse | None = None

    def headers_dict(self) -> dict[str, str]:
        return {h.key: h.value for h in self.custom_headers}


class SessionCache:
    """Stores a CachedInteraction per `METHOD:path` key.

    Each write path updates only the fields it owns and keeps the rest of the
    existing record. With a namespace (e.g. an API version) keys are prefixed
    so different documents do not share slots.
    """

    def __init__(self, store: KeyValueStore, namespace: str | None = None):
        self.store = store
        self.namespace = namespace

    def key(self, method: str, path: str) -> str:
        scope = f"{self.namespace}:" if self.namespace else ""
        return f"{CACHE_PREFIX}{scope}{method.upper()}:{path}"

    def load(self, method: str, path: str) -> CachedInteraction | None:
        key = self.key(method, path)
        try:
            raw = self.store.get(key)
        except PersistenceError as e:
            logger.warning("Failed to read cache entry %s: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            return CachedInteraction.model_validate_json(raw)
        except ModelValidationError as e:
            logger.warning("Ignoring corrupt cache entry %s: %s", key, e)
            return None

    def save_inputs(
        self,
        method: str,
        path: str,
        *,
        parameters: dict[str, str],
        request_body: str | None,
        content_type: str,
        custom_headers: dict[str, str],
    ) -> CachedInteraction:
        """Record edited inputs, keeping any cached response."""
        existing = self.load(method, path) or CachedInteraction()
        record = existing.model_copy(
            update={
                "parameters": dict(parameters),
                "request_body": request_body,
                "content_type": content_type,
                "custom_headers": [HeaderEntry(key=k, value=v) for k, v in custom_headers.items()],
            }
        )
        self._write(method, path, record)
        return record

    def save_response(
        self,
        method: str,
        path: str,
        *,
        parameters: dict[str, str],
        response: CachedResponse,
    ) -> CachedInteraction:
        """Record an execution's parameters and response, keeping other inputs."""
        existing = self.load(method, path) or CachedInteraction()
        record = existing.model_copy(update={"parameters": dict(parameters), "response": response})
        self._write(method, path, record)
        return record

    def keys(self) -> list[str]:
        try:
            return sorted(k for k in self.store.keys() if k.startswith(CACHE_PREFIX))
        except PersistenceError as e:
            logger.warning("Failed to list cache entries: %s", e)
            return []

    def clear(self) -> None:
        """Remove every cached interaction, across all endpoints and namespaces."""
        for key in self.keys():
            try:
                self.store.remove(key)
            except PersistenceError as e:
                logger.warning("Failed to remove cache entry %s: %s", key, e)

    def _write(self, method: str, path: str, record: CachedInteraction) -> None:
        key = self.key(method, path)
        try:
            self.store.set(key, record.model_dump_json(by_alias=True))
        except PersistenceError as e:
            logger.warning("Failed to write cache entry %s: %s", key, e)


class CredentialStore:
    """Credentials per security-scheme name, shared by all endpoints."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def get_all(self) -> dict[str, str]:
        try:
            raw = self.store.get(CREDENTIALS_KEY)
        except PersistenceError as e:
            logger.warning("Failed to read stored credentials: %s", e)
            return {}
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring corrupt stored credentials")
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items() if v}

    def get(self, scheme_name: str) -> str | None:
        return self.get_all().get(scheme_name)

    def set(self, scheme_name: str, value: str) -> None:
        data = self.get_all()
        data[scheme_name] = value
        self._write(data)

    def remove(self, scheme_name: str) -> None:
        data = self.get_all()
        if data.pop(scheme_name, None) is not None:
            self._write(data)

    def clear(self) -> None:
        try:
            self.store.remove(CREDENTIALS_KEY)
        except PersistenceError as e:
            logger.warning("Failed to clear stored credentials: %s", e)

    def _write(self, data: dict[str, str]) -> None:
        try:
            self.store.set(CREDENTIALS_KEY, json.dumps(data))
        except PersistenceError as e:
            logger.warning("Failed to write stored credentials: %s", e)
