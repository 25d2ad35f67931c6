"""Settings management for Devlink.

This module provides centralized configuration management for the Devlink
application using Pydantic Settings with environment variable support and
validation.

The settings are organized into logical groups:
- APISettings: Core API configuration
- SecuritySettings: Caller identity and API key settings
- GraphSettings: Pagination limits and transaction timeouts
- StorageSettings: User directory backend configuration

Example:
    Basic usage:
        from devlink.core.settings import settings

        if settings.debug:
            print(f"Running {settings.project_name} v{settings.version}")

    Environment variables:
        API_DEBUG=true
        GRAPH_MAX_PAGE_SIZE=50
        STORAGE_SEED_FILE=fixtures/users.json
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class APISettings(BaseSettings):
    """API server configuration settings.

    Attributes:
        version: Application version string.
        prefix: API URL prefix (e.g., '/api/v1').
        project_name: Human-readable project name.
        debug: Enable debug mode with verbose logging.
        host: Server bind address.
        port: Server bind port (1-65535).
        cors_origins: List of allowed CORS origins.
        log_dir: Directory for rotating JSON log files.

    Environment Variables:
        All attributes can be configured via environment variables with
        the 'API_' prefix (e.g., API_DEBUG, API_PORT).
    """

    version: str = Field(default="1.0.0", description="Application version string")
    prefix: str = Field(default="/api/v1", description="API URL prefix")
    project_name: str = Field(
        default="Devlink API", description="Human-readable project name"
    )
    debug: bool = Field(
        default=False, description="Enable debug mode with verbose logging"
    )
    host: str = Field(default="0.0.0.0", description="Server bind address")
    port: int = Field(default=8000, ge=1, le=65535, description="Server bind port")
    cors_origins: List[str] = Field(
        default=["*"], description="List of allowed CORS origins"
    )
    log_dir: str = Field(
        default="logs", description="Directory for rotating JSON log files"
    )

    model_config = SettingsConfigDict(env_prefix="API_")


class SecuritySettings(BaseSettings):
    """Caller identity settings.

    Devlink never issues or verifies credentials. An upstream authentication
    gateway resolves the principal and forwards its identifier in
    ``identity_header``. When ``api_key`` is set, every request must also
    present it in the ``X-API-Key`` header.

    Attributes:
        api_key: Shared key expected from the gateway; empty disables the check.
        identity_header: Header carrying the authenticated user id.

    Environment Variables:
        SECURITY_API_KEY: Shared gateway key.
        SECURITY_IDENTITY_HEADER: Override the identity header name.
    """

    api_key: str = Field(default="", description="Shared gateway API key")
    identity_header: str = Field(
        default="X-User-ID",
        min_length=1,
        description="Header carrying the authenticated user id",
    )

    model_config = SettingsConfigDict(env_prefix="SECURITY_")


class GraphSettings(BaseSettings):
    """Social graph limits.

    Attributes:
        default_page_size: Page size used when the caller sends none.
        max_page_size: Larger page sizes are clamped to this value.
        default_suggestion_limit: Suggestion count used when none is sent.
        max_suggestion_limit: Larger suggestion limits are clamped to this.
        transaction_timeout: Seconds to wait for a transactional scope.

    Environment Variables:
        All attributes use the 'GRAPH_' prefix (e.g., GRAPH_MAX_PAGE_SIZE).
    """

    default_page_size: int = Field(default=20, ge=1)
    max_page_size: int = Field(default=100, ge=1)
    default_suggestion_limit: int = Field(default=10, ge=1)
    max_suggestion_limit: int = Field(default=50, ge=1)
    transaction_timeout: float = Field(
        default=5.0, gt=0, description="Seconds to wait for a transactional scope"
    )

    @model_validator(mode="after")
    def validate_limits(self) -> "GraphSettings":
        """Ensure defaults never exceed their maximums.

        Raises:
            ValueError: If a default is larger than its maximum.
        """
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size must not exceed max_page_size")
        if self.default_suggestion_limit > self.max_suggestion_limit:
            raise ValueError(
                "default_suggestion_limit must not exceed max_suggestion_limit"
            )
        return self

    model_config = SettingsConfigDict(env_prefix="GRAPH_")


class StorageSettings(BaseSettings):
    """User directory configuration.

    Attributes:
        backend: Directory backend name. Only ``memory`` ships today.
        seed_file: Optional JSON file of user records loaded at startup.
    """

    backend: str = Field(default="memory", description="User directory backend")
    seed_file: Optional[str] = Field(
        default=None, description="JSON file of users loaded at startup"
    )

    model_config = SettingsConfigDict(env_prefix="STORAGE_")


class Settings(BaseSettings):
    """Composite settings container with nested configuration groups.

    Attributes:
        api: API server configuration settings.
        security: Caller identity settings.
        graph: Social graph limits.
        storage: User directory settings.

    Example:
        from devlink.core.settings import settings

        print(f"Server running on {settings.api.host}:{settings.api.port}")
        print(f"Max page size: {settings.graph.max_page_size}")
    """

    api: APISettings = Field(default_factory=APISettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    graph: GraphSettings = Field(default_factory=GraphSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    @property
    def debug(self) -> bool:
        """Get debug mode status from API settings."""
        return self.api.debug

    @property
    def version(self) -> str:
        """Get application version from API settings."""
        return self.api.version

    @property
    def prefix(self) -> str:
        """Get API URL prefix from API settings."""
        return self.api.prefix

    @property
    def project_name(self) -> str:
        """Get human-readable project name from API settings."""
        return self.api.project_name

    @property
    def cors_origins(self) -> List[str]:
        """Get CORS allowed origins from API settings."""
        return self.api.cors_origins

    @property
    def host(self) -> str:
        return self.api.host

    @property
    def port(self) -> int:
        return self.api.port

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=True, extra="ignore"
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance with environment variables loaded.

    Returns:
        Fully configured Settings instance with all nested configurations
        loaded from environment variables and defaults.
    """
    from dotenv import load_dotenv

    load_dotenv()
    return Settings()


# Global settings instance for convenient access throughout the application
settings = get_settings()
