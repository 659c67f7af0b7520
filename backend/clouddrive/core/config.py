"""Application configuration with validation."""

from enum import Enum
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List

DEFAULT_SECRET_KEY = "dev-insecure-key-change-me"


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class ConfigurationError(Exception):
    """Raised when application configuration is invalid for the environment."""
    pass


class Settings(BaseSettings):
    """
    Process-level settings, read from the environment or ``.env``.

    Storage backend credentials are not here: they live in the storage
    configuration document managed by ``StorageConfigStore``.
    """

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment (development/production)"
    )

    cors_allowed_origins: str = Field(
        default="http://localhost:3000",
        description="Allowed CORS origins (comma-separated)"
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite:///./clouddrive.db",
        description="Database connection URL"
    )
    # Connection pool tuning (PostgreSQL only; ignored for SQLite).
    db_pool_size: int = Field(default=5)
    db_max_overflow: int = Field(default=10)
    db_pool_timeout: int = Field(default=30)
    db_pool_recycle: int = Field(default=1800)

    # Key for the reversible folder-id encryption used in URLs.
    secret_key: str = Field(
        default=DEFAULT_SECRET_KEY,
        description="Secret used to derive the opaque id encryption key"
    )

    session_ttl_hours: int = Field(
        default=24 * 30,
        description="Lifetime of login session tokens in hours"
    )

    # Storage
    storage_config_path: str = Field(
        default="./storage_config.json",
        description="Path of the JSON document holding storageMode and backend credentials"
    )
    removal_batch_size: int = Field(
        default=5,
        description="Concurrent payload deletions per batch (respects backend rate limits)"
    )
    storage_timeout: int = Field(
        default=60,
        description="Seconds before a storage backend HTTP call times out"
    )

    rate_limit_per_minute: int = Field(
        default=120,
        description="Maximum requests per client per minute"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: str = Field(
        default="json",
        description="Log output format: 'json' for structured, 'text' for human-readable"
    )

    def get_cors_origins(self) -> List[str]:
        """Parse comma-separated origins; wildcards are rejected."""
        origins = [origin.strip() for origin in self.cors_allowed_origins.split(',') if origin.strip()]

        if "*" in origins:
            raise ValueError(
                "Wildcard CORS (*) not allowed. "
                "Specify explicit origins in CORS_ALLOWED_ORIGINS"
            )

        return origins

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard Python logging levels."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper

    @field_validator('removal_batch_size')
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("removal_batch_size must be at least 1")
        return v

    def validate_production_config(self) -> None:
        """Fail startup in production when security-critical settings use defaults.

        Raises:
            ConfigurationError: If production config is insecure.
        """
        errors: list[str] = []

        if self.secret_key == DEFAULT_SECRET_KEY:
            errors.append(
                "SECRET_KEY is using the default insecure value. "
                "Generate a secure key: openssl rand -hex 32"
            )

        origins = self.get_cors_origins()
        localhost_origins = [o for o in origins if "localhost" in o or "127.0.0.1" in o]
        if localhost_origins:
            errors.append(
                f"CORS allows localhost origins: {localhost_origins}. "
                "Remove localhost origins for production."
            )

        if errors and self.environment == Environment.PRODUCTION:
            raise ConfigurationError(
                "Production configuration is insecure:\n  - " + "\n  - ".join(errors)
            )

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()
