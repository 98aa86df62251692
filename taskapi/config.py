# taskapi/config.py

"""
Configuration for the Task Manager API.

Values come from environment variables (or a ``.env`` file) and fall back to
development-friendly defaults.
"""

import logging
import sys
from enum import Enum
from typing import Any, Dict

import structlog
from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

load_dotenv()


class Environment(str, Enum):
    """Application environment types."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """
    Application settings.

    Environment variables override defaults; names are case-insensitive
    (``BIGQUERY_PROJECT_ID`` sets ``bigquery_project_id``).
    """

    # Environment
    environment: Environment = Field(default=Environment.DEVELOPMENT, description="Application environment")

    # API
    api_title: str = Field(default="Task Manager API", description="API title for OpenAPI docs")
    api_version: str = Field(default="1.0.0", description="API version")
    debug: bool = Field(default=False, description="Enable debug mode")
    api_base_url: str = Field(default="http://localhost:8000", description="Public URL of this API")
    front_base_url: str = Field(default="http://localhost:3000", description="URL the web frontend is served from")
    cors_origins: str = Field(default="", description="Extra allowed CORS origins (comma-separated)")
    max_body_bytes: int = Field(default=10 * 1024 * 1024, ge=1, description="Largest accepted request body")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")
    reload: bool = Field(default=False, description="Enable auto-reload (development only)")

    # Persistent store
    store_backend: str = Field(default="bigquery", description="Task store: bigquery or memory")
    bigquery_project_id: str = Field(default="", description="Google Cloud project")
    bigquery_dataset: str = Field(default="", description="BigQuery dataset")
    bigquery_table: str = Field(default="tasks", description="BigQuery table")
    bigquery_location: str = Field(default="US", description="Dataset location")

    # Cache
    cache_backend: str = Field(default="redis", description="Listing cache: redis, memory or none")
    redis_host: str = Field(default="localhost", description="Redis host")
    redis_port: int = Field(default=6379, ge=1, le=65535, description="Redis port")
    redis_db: int = Field(default=0, ge=0, description="Redis database number")
    redis_password: str = Field(default="", description="Redis password")
    cache_ttl_seconds: int = Field(default=300, ge=1, description="Listing cache TTL in seconds")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=False, description="Enable JSON logging for production")

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"

    @field_validator("store_backend")
    @classmethod
    def check_store_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in ("bigquery", "memory"):
            raise ValueError("store_backend must be 'bigquery' or 'memory'")
        return v

    @field_validator("cache_backend")
    @classmethod
    def check_cache_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in ("redis", "memory", "none"):
            raise ValueError("cache_backend must be 'redis', 'memory' or 'none'")
        return v

    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return v

    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == Environment.PRODUCTION

    def allowed_origins(self) -> list[str]:
        origins = [self.api_base_url, self.front_base_url]
        origins += [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]
        return list(dict.fromkeys(origins))

    def get_cors_config(self) -> Dict[str, Any]:
        """Get CORS configuration."""
        if self.is_production():
            # Restrictive CORS for production
            return {
                "allow_origins": [origin for origin in self.allowed_origins() if origin != "*"],
                "allow_credentials": True,
                "allow_methods": ["GET", "POST", "PUT", "DELETE"],
                "allow_headers": ["Content-Type", "Authorization"],
            }
        return {
            "allow_origins": self.allowed_origins(),
            "allow_credentials": True,
            "allow_methods": ["*"],
            "allow_headers": ["*"],
        }


# Global settings instance
settings = Settings()


def configure_structlog(config: Settings = settings) -> None:
    """Initialize structlog on top of stdlib logging."""
    logging.basicConfig(
        level=getattr(logging, config.log_level),
        stream=sys.stdout,
        force=True,
        format="%(message)s",
    )

    if config.log_json:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso" if config.log_json else "%H:%M:%S"),
            structlog.stdlib.add_log_level,
            structlog.processors.format_exc_info if config.log_json else structlog.dev.set_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
