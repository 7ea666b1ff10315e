"""
Configuration and Settings Management

This module handles all application configuration using Pydantic Settings
with support for environment variables and 12-Factor App principles.
"""

import logging
import secrets
from functools import lru_cache
import os
from urllib.parse import urlparse, urlunparse
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

# =============================================================================
# Base Directories
# =============================================================================

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent.parent.absolute()

# =============================================================================
# Core Application Settings
# =============================================================================

class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    All settings can be overridden via environment variables.
    """

    # =========================================================================
    # Application Core
    # =========================================================================

    APP_NAME: str = "Civic Reports"
    APP_VERSION: str = "1.0.0"
    APP_DESCRIPTION: str = "Municipal incident reporting and triage service"

    ENVIRONMENT: Literal["development", "testing", "staging", "production"] = "development"
    DEBUG: bool = Field(default=False, description="Debug mode")

    # Security
    SECRET_KEY: str = Field(
        default_factory=lambda: secrets.token_urlsafe(32),
        description="Secret key for signing access tokens"
    )
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60 * 24, description="Access token lifetime")

    # API Configuration
    API_V1_PREFIX: str = "/api/v1"
    CORS_ORIGINS: List[str] = Field(
        default=["*"],
        description="Allowed CORS origins"
    )

    # =========================================================================
    # Database Configuration (PostgreSQL)
    # =========================================================================

    POSTGRES_HOST: str = Field(default="localhost", description="PostgreSQL host")
    POSTGRES_PORT: int = Field(default=5432, description="PostgreSQL port")
    POSTGRES_DB: str = Field(default="civic_reports", description="Database name")
    POSTGRES_USER: str = Field(default="postgres", description="Database user")
    POSTGRES_PASSWORD: str = Field(default="postgres", description="Database password")

    # Connection pool settings
    DATABASE_POOL_SIZE: int = Field(default=10, description="Database connection pool size")
    DATABASE_MAX_OVERFLOW: int = Field(default=20, description="Max overflow connections")
    DATABASE_POOL_TIMEOUT: int = Field(default=30, description="Pool timeout in seconds")
    DATABASE_ECHO: bool = Field(default=False, description="Echo SQL queries")

    DATABASE_URL: Optional[str] = None

    @model_validator(mode='after')
    def assemble_database_url(self) -> 'Settings':
        # Respect explicit DATABASE_URL from environment if provided
        url = self.DATABASE_URL
        if not url:
            url = (
                f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
                f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
            )
        # Normalize common URL schemes to SQLAlchemy async driver
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql+asyncpg://", 1)
        elif url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        object.__setattr__(self, "DATABASE_URL", url)
        return self

    # =========================================================================
    # Redis Configuration
    # =========================================================================

    REDIS_HOST: str = Field(default="localhost", description="Redis host")
    REDIS_PORT: int = Field(default=6379, description="Redis port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: Optional[str] = Field(default=None, description="Redis password")
    REDIS_MAX_CONNECTIONS: int = Field(default=20, description="Redis connection pool size")
    REDIS_URL: Optional[str] = Field(
        default=None,
        description="Full Redis URL (redis:// or rediss://) for rate limiting",
    )
    REDIS_QUEUE_URL: Optional[str] = Field(
        default=None,
        description="Redis URL for the RQ job queue (uses DB 1)",
    )

    @model_validator(mode='after')
    def assemble_redis_urls(self) -> 'Settings':
        """Assemble Redis URLs if not provided explicitly via env variables."""
        if not self.REDIS_URL:
            tls_url = os.getenv("REDIS_TLS_URL")
            if tls_url:
                object.__setattr__(self, "REDIS_URL", tls_url)
            else:
                auth_part = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
                url = f"redis://{auth_part}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
                object.__setattr__(self, "REDIS_URL", url)

        # Same host/auth as REDIS_URL, DB switched to 1
        if not self.REDIS_QUEUE_URL:
            parsed = urlparse(self.REDIS_URL)
            queue_url = urlunparse((
                parsed.scheme,
                parsed.netloc,
                "/1",
                parsed.params,
                parsed.query,
                parsed.fragment,
            ))
            object.__setattr__(self, "REDIS_QUEUE_URL", queue_url)
        return self

    # =========================================================================
    # File Storage Configuration
    # =========================================================================

    STORAGE_BACKEND: Literal["local", "s3"] = Field(default="local")

    # Local storage
    UPLOAD_DIR: Path = Field(default=PROJECT_ROOT / "uploads")
    PUBLIC_BASE_URL: str = Field(
        default="http://localhost:8000",
        description="Base URL used to build public links for locally stored images"
    )
    MAX_FILE_SIZE_MB: int = Field(default=5, description="Max image size in MB")
    ALLOWED_FILE_TYPES: List[str] = Field(
        default=["image/jpeg", "image/jpg", "image/png", "image/webp", "image/gif"],
        description="Allowed MIME types for report images"
    )

    # S3-compatible storage
    S3_ENDPOINT_URL: Optional[str] = Field(default=None, description="S3 endpoint URL")
    S3_ACCESS_KEY_ID: Optional[str] = Field(default=None)
    S3_SECRET_ACCESS_KEY: Optional[str] = Field(default=None)
    S3_BUCKET_NAME: Optional[str] = Field(default=None)
    S3_REGION: str = Field(default="auto", description="S3 region")
    S3_PUBLIC_URL: Optional[str] = Field(
        default=None,
        description="Public base URL of the bucket (defaults to endpoint/bucket)"
    )

    # =========================================================================
    # Logging and Monitoring
    # =========================================================================

    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: Literal["json", "pretty"] = Field(default="json")
    METRICS_ENABLED: bool = Field(default=True)

    # =========================================================================
    # Background Jobs Configuration
    # =========================================================================

    # When disabled, fire-and-forget work runs as in-process asyncio tasks
    ENABLE_WORKERS: bool = Field(default=False, description="Dispatch side effects to RQ workers")
    WORKER_TIMEOUT: int = Field(default=120, description="Worker job timeout in seconds")

    # =========================================================================
    # Business Logic Configuration
    # =========================================================================

    NOTIFY_ON_STATUS_CHANGE: bool = Field(
        default=True,
        description="Notify the submitter when an admin changes a report status"
    )
    RATE_LIMIT_ENABLED: bool = Field(default=False)
    MAX_REPORTS_PER_USER_PER_DAY: int = Field(default=20)

    # =========================================================================
    # Development and Testing
    # =========================================================================

    TESTING: bool = Field(default=False)
    SHOW_DOCS: bool = Field(default=True, description="Show API documentation")

    # =========================================================================
    # Validation and Post-Processing
    # =========================================================================

    @field_validator('CORS_ORIGINS', mode='before')
    def assemble_cors_origins(cls, v: Any) -> List[str]:
        """Parse CORS origins from string or list."""
        if isinstance(v, str) and not v.startswith('['):
            return [i.strip() for i in v.split(',')]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(f"Invalid CORS_ORIGINS: {v}")

    @model_validator(mode='after')
    def validate_storage_config(self) -> 'Settings':
        """Validate storage configuration."""
        if self.STORAGE_BACKEND == "s3":
            required_fields = [
                "S3_ENDPOINT_URL", "S3_ACCESS_KEY_ID",
                "S3_SECRET_ACCESS_KEY", "S3_BUCKET_NAME"
            ]
            for field in required_fields:
                if not getattr(self, field):
                    raise ValueError(f"{field} is required when using s3 storage")
        return self

    # =========================================================================
    # Environment-specific configurations
    # =========================================================================

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_testing(self) -> bool:
        return self.ENVIRONMENT == "testing" or self.TESTING

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def DATABASE_ENGINE_OPTIONS(self) -> Dict[str, Any]:
        """Database engine configuration options."""
        options: Dict[str, Any] = {
            "echo": self.DATABASE_ECHO and not self.is_production,
            "pool_pre_ping": True,
        }
        # SQLite drivers use single-connection pools that reject sizing options
        if not str(self.DATABASE_URL).startswith("sqlite"):
            options.update({
                "pool_size": self.DATABASE_POOL_SIZE,
                "max_overflow": self.DATABASE_MAX_OVERFLOW,
                "pool_timeout": self.DATABASE_POOL_TIMEOUT,
                "pool_recycle": 3600,
            })
        return options

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "validate_assignment": True,
        "extra": "ignore",
    }


# =============================================================================
# Settings Instance and Cache
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Cached to avoid re-parsing environment variables on every call.
    """
    return Settings()


settings = get_settings()


# =============================================================================
# Logging Configuration
# =============================================================================

def setup_logging() -> None:
    """Configure structured logging for the application."""
    import re
    import sys

    import structlog

    def _ensure_exc_info_processor(logger, method_name, event_dict):
        if event_dict.get("exc_info"):
            return event_dict
        if method_name in ("error", "exception", "critical"):
            if sys.exc_info()[0] is not None:
                event_dict["exc_info"] = True
        return event_dict

    SENSITIVE_KEYS = {"authorization", "token", "access_token", "password", "secret"}
    token_pattern = re.compile(r"(eyJ[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]+)")

    def redact_secrets(_, __, event_dict):
        for key, value in list(event_dict.items()):
            if key.lower() in SENSITIVE_KEYS:
                event_dict[key] = "***REDACTED***"
            elif isinstance(value, str):
                event_dict[key] = token_pattern.sub("***REDACTED***", value)
            elif isinstance(value, dict):
                for k in list(value.keys()):
                    if isinstance(k, str) and k.lower() in SENSITIVE_KEYS:
                        value[k] = "***REDACTED***"
        return event_dict

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            _ensure_exc_info_processor,
            redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.dev.ConsoleRenderer()
                if settings.LOG_FORMAT == "pretty"
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.LOG_LEVEL.upper())
        ),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper()),
        format="%(message)s",
    )

    if settings.is_production:
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
