from functools import lru_cache
import os
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.schemas.github import GitHubApp


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = False
    project_name: str = "Integration Sync API"
    environment: str = "development"

    # Raw CORS origins string - read from env
    cors_origins_raw: Optional[str] = Field(
        default=None,
        alias="CORS_ORIGINS"
    )

    @computed_field
    @property
    def backend_cors_origins(self) -> List[str]:
        """Parse CORS_ORIGINS from environment variable (comma-separated string)."""
        raw = self.cors_origins_raw
        if not raw:
            raw = os.environ.get("BACKEND_CORS_ORIGINS") or ""

        if not raw or not raw.strip():
            return []
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    database_url: str = "sqlite+aiosqlite:///./integrations.db"

    # Each tenant owns its own database. Format: "acme=postgresql://...,globex=sqlite+aiosqlite:///./globex.db"
    multi_tenant_enabled: bool = False
    default_tenant: str = "default"
    tenant_database_urls_raw: Optional[str] = Field(
        default=None,
        alias="TENANT_DATABASE_URLS"
    )

    @computed_field
    @property
    def tenant_database_urls(self) -> Dict[str, str]:
        """Parse TENANT_DATABASE_URLS into a slug -> database URL mapping."""
        raw = self.tenant_database_urls_raw or ""
        urls: Dict[str, str] = {}
        for entry in raw.split(","):
            entry = entry.strip()
            if not entry or "=" not in entry:
                continue
            slug, url = entry.split("=", 1)
            if slug.strip() and url.strip():
                urls[slug.strip()] = url.strip()
        return urls

    # GitHub App
    github_app_id: Optional[int] = None
    github_app_private_key: Optional[str] = None  # PEM contents or path to a .pem file
    github_app_slug: str = ""
    github_app_name: str = ""
    github_api_url: str = "https://api.github.com"
    github_http_timeout_seconds: float = 15.0
    github_connector: str = "api"  # api or in_memory

    installation_sync_interval_minutes: int = 60

    # Frontend base URL used for installation callback redirects
    origin: str = "http://localhost:3000"

    log_level: str = "INFO"
    log_json: bool = True

    def get_github_app(self) -> Optional[GitHubApp]:
        """Build the configured GitHub App, or None when credentials are missing."""
        if not self.github_app_id or not self.github_app_private_key:
            return None
        return GitHubApp(
            app_id=self.github_app_id,
            private_key=load_private_key(self.github_app_private_key),
            slug=self.github_app_slug,
            name=self.github_app_name or self.github_app_slug,
        )


def load_private_key(value: str) -> str:
    """Accept a PEM string (optionally with escaped newlines) or a path to a PEM file."""
    value = value.strip()
    if "BEGIN" in value:
        return value.replace("\\n", "\n")
    path = Path(value).expanduser()
    if path.is_file():
        return path.read_text(encoding="utf-8")
    return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
