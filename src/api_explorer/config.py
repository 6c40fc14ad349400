"""Settings loaded from API_EXPLORER_* environment variables."""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ApiVersion(BaseModel):
    name: str
    endpoint: str
    description: str = ""


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="API_EXPLORER_", case_sensitive=False, extra="ignore")

    log_level: str = Field(default="WARNING")

    spec_url: str = Field(default="/swagger/v1/swagger.json")
    base_url: str = Field(default="")
    storage_path: Path = Field(default=Path.home() / ".api-explorer" / "store.json")
    request_timeout_sec: float = Field(default=30.0, ge=0.1, le=3600.0)

    llm_model: str | None = Field(default=None)

    document_title: str = Field(default="API Explorer")
    route_prefix: str = Field(default="swagger")
    # comma separated `name=url` pairs
    api_versions: str = Field(default="")
    namespace_cache_by_version: bool = Field(default=False)

    def parsed_api_versions(self) -> list[ApiVersion]:
        versions = []
        for item in self.api_versions.split(","):
            name, separator, endpoint = item.strip().partition("=")
            if separator and name.strip() and endpoint.strip():
                versions.append(ApiVersion(name=name.strip(), endpoint=endpoint.strip()))
        return versions


@lru_cache
def get_settings() -> Settings:
    return Settings()
