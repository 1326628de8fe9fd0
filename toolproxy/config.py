"""Configuration management for the toolproxy server."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TOOLPROXY_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Server settings
    host: str = "127.0.0.1"
    port: int = 3333
    debug: bool = False
    base_path: str = "/mcp"

    # Advertised identity
    server_name: str = "toolproxy"
    server_description: str = "Gateway aggregating tool services behind one MCP endpoint"

    # Protocol
    protocol_version: str = "2025-06-18"
    supported_protocol_versions: list[str] = Field(
        default_factory=lambda: ["2024-11-05", "2025-03-26", "2025-06-18"]
    )

    # Dispatch
    call_timeout_seconds: float = Field(default=30.0, gt=0)
    naming_policy: Literal["reject", "qualify"] = "reject"

    # Services
    builtin_services: bool = True
    service_modules: list[str] = Field(default_factory=list)

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
