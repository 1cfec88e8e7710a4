"""Configuration management for the memory capture hook."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from memory_capture.constants import (
    CONFIDENCE_THRESHOLD,
    DEFAULT_KEY_FILE,
    DEFAULT_MEMORY_ROOT,
    DEFAULT_SERVER_HOST,
    DEFAULT_SERVER_PORT,
    MARKER_TAG,
    MEMORY_PATH_MARKER,
    REQUEST_TIMEOUT_SECONDS,
    SERVER_POLL_INTERVAL_SECONDS,
    SERVER_READY_TIMEOUT_SECONDS,
    STDIN_TIMEOUT_SECONDS,
    STORE_ENDPOINT,
    STORE_TOOL_NAME,
)


class Settings(BaseSettings):
    """Hook settings loaded from ``MEMORY_CAPTURE_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="MEMORY_CAPTURE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Capture policy
    stdin_timeout_seconds: float = Field(
        default=STDIN_TIMEOUT_SECONDS, gt=0, description="Deadline for reading the hook payload"
    )
    confidence_threshold: float = Field(
        default=CONFIDENCE_THRESHOLD,
        ge=0.0,
        le=1.0,
        description="Minimum analyzer confidence for a fragment to be persisted",
    )
    memory_path_marker: str = Field(
        default=MEMORY_PATH_MARKER, min_length=1, description="Path segment marking memory files"
    )
    marker_tag: str = Field(default=MARKER_TAG, description="Tag attached to every learning")

    # Encryption key
    encryption_key: SecretStr | None = Field(
        default=None, description="Passphrase for the encrypted memory store"
    )
    key_file: Path = Field(
        default=Path(DEFAULT_KEY_FILE),
        description="File holding the passphrase when not set in the environment",
    )

    # Storage
    memory_root: Path = Field(
        default=Path(DEFAULT_MEMORY_ROOT), description="Root directory of the store"
    )

    # Store server
    server_host: str = Field(default=DEFAULT_SERVER_HOST, description="Store server host")
    server_port: int = Field(default=DEFAULT_SERVER_PORT, description="Store server port")
    server_command: str | None = Field(
        default=None, description="Command that starts the store server when it is not running"
    )
    server_ready_timeout_seconds: float = Field(default=SERVER_READY_TIMEOUT_SECONDS, gt=0)
    server_poll_interval_seconds: float = Field(default=SERVER_POLL_INTERVAL_SECONDS, gt=0)
    request_timeout_seconds: float = Field(default=REQUEST_TIMEOUT_SECONDS, gt=0)
    store_endpoint: str = Field(default=STORE_ENDPOINT, description="JSON-RPC endpoint path")
    store_tool_name: str = Field(default=STORE_TOOL_NAME, description="Store write tool name")

    # Application
    environment: str = Field(default="production", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"

    @property
    def server_url(self) -> str:
        """Get the base URL of the store server."""
        return f"http://{self.server_host}:{self.server_port}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
