"""
Configuration settings for the Souq marketplace
Loads from environment variables and .env file
"""

from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Marketplace settings"""

    # Environment
    environment: str = "development"
    debug: bool = False

    # Storage
    database_url: str = Field(default="sqlite:///./souq.db", alias="DATABASE_URL")

    # Redis (message relay, Celery broker)
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")
    enable_message_relay: bool = Field(default=False, alias="SOUQ_ENABLE_MESSAGE_RELAY")
    relay_channel: str = Field(default="souq:messages", alias="SOUQ_RELAY_CHANNEL")
    relay_history_size: int = Field(default=1000, alias="SOUQ_RELAY_HISTORY_SIZE")

    # Celery
    celery_broker_url: Optional[str] = Field(default=None, alias="CELERY_BROKER_URL")
    celery_result_backend: Optional[str] = Field(default=None, alias="CELERY_RESULT_BACKEND")

    # Ledger
    ledger_difficulty: int = Field(default=2, ge=0, le=6, alias="SOUQ_LEDGER_DIFFICULTY")
    ledger_max_block_transactions: int = Field(
        default=50, ge=1, alias="SOUQ_LEDGER_MAX_BLOCK_TRANSACTIONS"
    )
    ledger_admin: str = Field(default="registry-admin", alias="SOUQ_LEDGER_ADMIN")
    require_certification: bool = Field(default=True, alias="SOUQ_REQUIRE_CERTIFICATION")
    seal_interval: float = Field(default=60.0, gt=0, alias="SOUQ_SEAL_INTERVAL")

    # Message bus
    mailbox_size: int = Field(default=100, ge=1, alias="SOUQ_MAILBOX_SIZE")
    send_timeout: float = Field(default=1.0, gt=0, alias="SOUQ_SEND_TIMEOUT")
    ack_timeout: float = Field(default=2.0, gt=0, alias="SOUQ_ACK_TIMEOUT")
    max_delivery_attempts: int = Field(default=3, ge=1, alias="SOUQ_MAX_DELIVERY_ATTEMPTS")

    # Agents
    negotiation_timeout: float = Field(default=2.0, gt=0, alias="SOUQ_NEGOTIATION_TIMEOUT")
    task_timeout: float = Field(default=5.0, gt=0, alias="SOUQ_TASK_TIMEOUT")
    max_task_attempts: int = Field(default=3, ge=1, alias="SOUQ_MAX_TASK_ATTEMPTS")

    # Logging
    log_level: str = Field(default="INFO", alias="SOUQ_LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra fields in .env file
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def default_celery_urls(self) -> "Settings":
        """Celery falls back to the Redis URL for broker and results."""
        if not self.celery_broker_url:
            self.celery_broker_url = self.redis_url
        if not self.celery_result_backend:
            self.celery_result_backend = self.redis_url
        return self


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get cached settings instance"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings (useful for testing)."""
    global _settings
    _settings = None
