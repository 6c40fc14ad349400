"""Error types shared across api-explorer components."""

from pydantic import BaseModel


class ApiExplorerError(Exception):
    """Base error for api-explorer failures."""


class SpecLoadError(ApiExplorerError):
    """Raised when the OpenAPI document cannot be fetched or parsed."""


class SchemaResolutionError(ApiExplorerError):
    """Raised when a schema reference cannot be resolved."""

    def __init__(self, ref: str, message: str | None = None) -> None:
        self.ref = ref
        super().__init__(message or f"Unresolvable schema reference: {ref}")


class CyclicReferenceError(SchemaResolutionError):
    """Raised when a reference points back to a schema currently being expanded."""

    def __init__(self, ref: str) -> None:
        super().__init__(ref, f"Cyclic schema reference: {ref}")


class FieldError(BaseModel):
    """A single field-scoped validation failure."""

    name: str
    message: str


class ValidationError(ApiExplorerError):
    """Raised when user-supplied parameters fail validation."""

    def __init__(self, errors: list[FieldError]) -> None:
        self.errors = errors
        summary = "; ".join(e.message for e in errors)
        super().__init__(f"Validation failed: {summary}")


class TransportError(ApiExplorerError):
    """Raised when an HTTP request fails below the HTTP status level."""

    def __init__(self, method: str, url: str, detail: str) -> None:
        self.method = method.upper()
        self.url = url
        self.detail = detail
        super().__init__(f"Request failed {self.method} {self.url}: {detail}")


class RemoteGenerationError(ApiExplorerError):
    """Raised when the AI example generator returns nothing usable."""


class PersistenceError(ApiExplorerError):
    """Raised by key-value stores on read or write failure."""


class ExecutionInProgressError(ApiExplorerError):
    """Raised when an operation is executed again before the previous call finished."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Request already in progress for {key}")


class UnknownOperationError(ApiExplorerError):
    """Raised when a (method, path) pair is not in the loaded document."""

    def __init__(self, method: str, path: str) -> None:
        self.method = method.upper()
        self.path = path
        super().__init__(f"Unknown operation: {self.method} {path}")
