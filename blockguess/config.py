"""Application configuration management."""
from pydantic import model_validator, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from functools import lru_cache
from typing import Annotated, Literal
import logging


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    environment: str = "development"

    # Backing store
    store_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    redis_namespace: str = "blockguess"
    connection_max_retries: int = 3  # Reconnect attempts after the first failure
    connection_retry_base_delay_seconds: float = 2.0  # Delay before attempt k is base * k

    # Block data source (Esplora / mempool.space compatible)
    block_api_url: str = "https://mempool.space/api"
    block_api_timeout_seconds: float = 10.0
    resolution_poll_interval_seconds: float = 30.0

    # Game rules
    max_guess_value: int = 100_000
    chat_history_limit: int = 100

    # Admin access (fixed allow-list of identity provider ids)
    admin_fids: Annotated[set[int], NoDecode] = {250704, 1107084}

    # Logging
    log_dir: str = "logs"
    log_level: str = "INFO"

    @field_validator("admin_fids", mode="before")
    @classmethod
    def parse_admin_fids(cls, value):
        """Parse comma-separated admin ids from environment variables."""
        if value is None:
            return cls.model_fields["admin_fids"].default
        if isinstance(value, int):
            return {value}
        if isinstance(value, str):
            items = [item.strip() for item in value.split(",") if item.strip()]
        elif isinstance(value, (list, tuple, set)):
            items = [str(item).strip() for item in value if str(item).strip()]
        else:
            raise TypeError("admin_fids must be provided as a string or sequence")
        return {int(item) for item in items}

    def is_admin_fid(self, fid: int | None) -> bool:
        """Determine if the provided identity provider id belongs to an administrator."""
        if fid is None:
            return False
        return fid in self.admin_fids

    @model_validator(mode="after")
    def validate_all_config(self):
        """Validate timing, limits and backend selection."""
        logger = logging.getLogger(__name__)

        if self.connection_max_retries < 0:
            raise ValueError("connection_max_retries must be >= 0")

        if self.connection_retry_base_delay_seconds < 0:
            raise ValueError("connection_retry_base_delay_seconds must be >= 0")

        if self.resolution_poll_interval_seconds <= 0:
            raise ValueError("resolution_poll_interval_seconds must be positive")

        if self.chat_history_limit < 1:
            raise ValueError("chat_history_limit must be at least 1")

        if self.max_guess_value < 0:
            raise ValueError("max_guess_value must be >= 0")

        if self.store_backend == "redis" and not self.redis_url:
            raise ValueError("redis_url is required when store_backend is 'redis'")

        self.block_api_url = self.block_api_url.rstrip("/")
        logger.debug(f"Configured store backend: {self.store_backend}")

        return self

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
