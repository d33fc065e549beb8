"""
API Configuration
HTTP-surface settings, read from API_* environment variables.
Marketplace settings (ledger, bus, agents) live in souq.config.
"""

import json
from typing import Any, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def split_origins(value: Any) -> Any:
    """Accept a JSON list or a comma-separated string of origins."""
    if not isinstance(value, str):
        return value
    value = value.strip()
    if value.startswith("["):
        return json.loads(value)
    return [origin.strip() for origin in value.split(",") if origin.strip()]


class APISettings(BaseSettings):
    """Settings for the marketplace HTTP API."""

    app_name: str = "Souq Marketplace API"
    version: str = "0.1.0"
    description: str = "Multiagent halal marketplace with a product ledger"

    # Server
    host: str = Field(default="0.0.0.0", alias="API_HOST")
    port: int = Field(default=8000, alias="API_PORT")
    reload: bool = Field(default=False, alias="API_RELOAD")
    log_level: str = Field(default="INFO", alias="API_LOG_LEVEL")

    # Browser clients
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"], alias="API_CORS_ORIGINS"
    )
    cors_allow_credentials: bool = True
    cors_allow_methods: List[str] = ["GET", "POST", "DELETE"]
    cors_allow_headers: List[str] = ["*"]

    # Ledger behaviour of the API
    persist_ledger: bool = Field(default=True, alias="API_PERSIST_LEDGER")
    max_blocks_per_page: int = Field(default=100, ge=1, alias="API_MAX_BLOCKS_PER_PAGE")

    # Latency (milliseconds)
    slow_request_ms: float = Field(default=300.0, alias="API_SLOW_REQUEST_MS")
    target_p95_latency_ms: int = Field(default=150, alias="API_TARGET_P95_MS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        validate_default=True,
        populate_by_name=True,
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Any) -> List[str]:
        return split_origins(v)


_settings: Optional[APISettings] = None


def get_settings() -> APISettings:
    """Get global API settings (singleton)."""
    global _settings
    if _settings is None:
        _settings = APISettings()
    return _settings


def reset_settings() -> None:
    global _settings
    _settings = None
