"""Settings loaded from environment variables.

Every value has a default; set CONTRACT_ROUTER_<NAME> to override, e.g.
CONTRACT_ROUTER_MAX_PAYLOAD_BYTES=1048576.
"""

import logging
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Defaults used when materializing routes and configuring logging."""

    model_config = SettingsConfigDict(
        env_prefix="CONTRACT_ROUTER_",
        env_file=None,
        case_sensitive=False,
        extra="ignore",
    )

    # Payload parsing
    max_payload_bytes: int = Field(
        default=32 * 1024 * 1024,
        gt=0,
        description="Upper bound on request payload size",
    )
    payload_output: str = Field(
        default="data",
        description="How the framework should buffer payloads (data, stream, file)",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_json: bool = Field(default=False, description="Emit JSON log lines")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level {v!r}")
        return level

    @field_validator("payload_output")
    @classmethod
    def validate_payload_output(cls, v: str) -> str:
        if v not in ("data", "stream", "file"):
            raise ValueError("payload_output must be one of data, stream, file")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
