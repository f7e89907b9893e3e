"""
Configuration management using Pydantic Settings.
"""
from typing import Literal
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Gateway settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True
    )

    # Application Configuration
    app_name: str = Field(default="aiproxy", alias="APP_NAME")
    app_env: Literal["development", "production", "testing"] = Field(
        default="development", alias="APP_ENV"
    )
    app_debug: bool = Field(default=False, alias="APP_DEBUG")

    # Listener Configuration
    gateway_host: str = Field(default="0.0.0.0", alias="GATEWAY_HOST")
    gateway_port: int = Field(default=3000, alias="GATEWAY_PORT")
    max_request_bytes: int = Field(default=65536, ge=1, alias="MAX_REQUEST_BYTES")

    # Database Configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/aiproxy.db",
        alias="DATABASE_URL"
    )

    # Logging Configuration
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: str = Field(default="./logs/aiproxy.log", alias="LOG_FILE")
    log_format: Literal["json", "text"] = Field(default="text", alias="LOG_FORMAT")
    log_buffer_size: int = Field(default=500, ge=1, alias="LOG_BUFFER_SIZE")

    # Upstream Configuration
    request_timeout: float = Field(default=60.0, gt=0, alias="REQUEST_TIMEOUT")
    connection_test_timeout: float = Field(
        default=30.0, gt=0, alias="CONNECTION_TEST_TIMEOUT"
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"

    @property
    def host(self) -> str:
        """Get listen address."""
        return self.gateway_host

    @property
    def port(self) -> int:
        """Get preferred listen port."""
        return self.gateway_port


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """
    Get settings instance.

    Returns:
        Settings instance
    """
    return settings
