"""
Application configuration settings.

Central configuration module using Pydantic BaseSettings with environment variable support.
Loads from .env file and environment variables.
"""
import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Union
from urllib.parse import quote_plus

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file if it exists (python-dotenv)
env_path = Path(".env")
if env_path.exists():
    load_dotenv(dotenv_path=env_path)


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # App settings
    APP_NAME: str = "ScanGuard"
    APP_ENV: str = Field(default="local")
    DEBUG: bool = Field(default=False)

    # Database settings - generic connection string (highest priority)
    DATABASE_URL: Optional[str] = Field(
        default=None,
        description="Database connection URL (full SQLAlchemy URL)",
    )

    # Managed Postgres raw vars (PG*)
    PGUSER: Optional[str] = Field(default=None)
    PGPASSWORD: Optional[str] = Field(default=None)
    PGHOST: Optional[str] = Field(default=None)
    PGPORT: Optional[str] = Field(default=None)
    PGDATABASE: Optional[str] = Field(default=None)

    # Local docker-compose Postgres settings
    POSTGRES_USER: Optional[str] = Field(default=None)
    POSTGRES_PASSWORD: Optional[str] = Field(default=None)
    POSTGRES_HOST: Optional[str] = Field(default=None)
    POSTGRES_PORT: str = Field(default="5432")
    POSTGRES_DB: str = Field(default="scanguard")

    @property
    def sqlalchemy_database_uri(self) -> str:
        """
        Build SQLAlchemy database URI with priority:
        1. DATABASE_URL (full URL)
        2. PG* vars (managed Postgres raw env vars)
        3. Local docker-compose Postgres (POSTGRES_*)
        4. SQLite (local development without Docker)
        """
        if self.DATABASE_URL:
            url = self.DATABASE_URL
            # Some platforms still hand out the legacy postgres:// scheme
            if url.startswith("postgres://"):
                url = url.replace("postgres://", "postgresql+psycopg2://", 1)
            return url

        if self.PGUSER and self.PGHOST and self.PGDATABASE:
            password = quote_plus(self.PGPASSWORD or "")
            port = self.PGPORT or "5432"
            return f"postgresql+psycopg2://{self.PGUSER}:{password}@{self.PGHOST}:{port}/{self.PGDATABASE}"

        if os.getenv("POSTGRES_HOST") and self.POSTGRES_USER and self.POSTGRES_PASSWORD:
            password = quote_plus(self.POSTGRES_PASSWORD)
            return (
                f"postgresql+psycopg2://"
                f"{self.POSTGRES_USER}:{password}@"
                f"{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
            )

        return "sqlite:///./scanguard.db"

    # CORS settings
    CORS_ORIGINS: Union[str, List[str]] = Field(
        default='["http://localhost:3000", "http://localhost:5173", "http://localhost:8000"]',
    )

    @field_validator("CORS_ORIGINS")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS_ORIGINS from string or list."""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # Firmware upload settings
    MAX_UPLOAD_SIZE: int = Field(
        default=50 * 1024 * 1024, description="Max firmware upload size in bytes (50MB default)"
    )

    # Analysis pipeline
    ANALYSIS_MODE: str = Field(
        default="auto",
        description="Analyzer selection: auto (LLM when a key is configured, else mock), mock or llm",
    )
    PIPELINE_STAGE_DELAY_SECONDS: float = Field(
        default=1.0,
        ge=0,
        description="Pause between pipeline stages, keeps progress observable for dashboards",
    )
    MOCK_ANALYSIS_SEED: Optional[int] = Field(
        default=None,
        description="Seed for the mock analyzer's finding selection (None = random)",
    )
    STALE_SCAN_TIMEOUT_MINUTES: int = Field(
        default=30,
        ge=1,
        description="Scans with no progress for this long are marked failed",
    )

    # LLM gateway (OpenAI-compatible chat completions) - Optional
    OPENAI_API_KEY: Optional[str] = Field(
        default=None,
        description="API key for the LLM gateway used for firmware analysis (optional)",
    )
    OPENAI_BASE_URL: Optional[str] = Field(
        default=None,
        description="Base URL of an OpenAI-compatible gateway (None = api.openai.com)",
    )
    OPENAI_MODEL: str = Field(
        default="gpt-4o-mini",
        description="Model used for analysis and enrichment",
    )

    # Repository fetching (GitHub REST API)
    GITHUB_API_URL: str = Field(default="https://api.github.com")
    GITHUB_TOKEN: Optional[str] = Field(
        default=None,
        description="Fallback token used when a repository source has no access token",
    )
    REPOSITORY_MAX_FILES: int = Field(default=30, ge=1)

    # CVE lookups (NVD 2.0 API)
    NVD_API_URL: str = Field(default="https://services.nvd.nist.gov/rest/json/cves/2.0")
    NVD_API_KEY: Optional[str] = Field(default=None)
    CVE_CACHE_TTL_HOURS: int = Field(default=24, ge=0)

    HTTP_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)

    # Logging
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    # API Authentication
    API_KEY: Optional[str] = Field(
        default=None,
        description="Admin API key. Leave empty (and API_KEYS empty) to disable authentication.",
    )
    API_KEYS: Union[str, Dict[str, str]] = Field(
        default_factory=dict,
        description='Additional keys mapped to roles, JSON object or "key:role,key:role"',
    )

    @field_validator("API_KEYS")
    @classmethod
    def parse_api_keys(cls, v):
        """Parse API_KEYS from a JSON object or a comma-separated key:role list."""
        if isinstance(v, str):
            v = v.strip()
            if not v:
                return {}
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                keys = {}
                for pair in v.split(","):
                    if ":" not in pair:
                        continue
                    key, role = pair.split(":", 1)
                    if key.strip():
                        keys[key.strip()] = role.strip()
                return keys
        return v

    def is_openai_available(self) -> bool:
        """Check if the LLM gateway key is configured and not empty."""
        return (
            self.OPENAI_API_KEY is not None
            and isinstance(self.OPENAI_API_KEY, str)
            and self.OPENAI_API_KEY.strip() != ""
        )

    def is_auth_enabled(self) -> bool:
        """Authentication is enabled as soon as any key is configured."""
        return bool(self.API_KEY and self.API_KEY.strip()) or bool(self.API_KEYS)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
