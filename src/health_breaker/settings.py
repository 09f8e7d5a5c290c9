from __future__ import annotations

import structlog
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from health_breaker.logging import configure_structlog, get_log_level_value


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class BreakerSettings(BaseSettings):
    """Environment-driven defaults for circuit breakers and their logging."""

    model_config = prefixed_settings_config("HEALTH_BREAKER_")

    check_interval_seconds: float = 30.0
    open_timeout_seconds: float = 10.0
    log_level: str = "INFO"

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip().upper()
        get_log_level_value(normalized)
        return normalized

    @model_validator(mode="after")
    def _validate_timings(self) -> BreakerSettings:
        if self.check_interval_seconds < 1:
            raise ValueError("check_interval_seconds must be >= 1")
        if self.open_timeout_seconds < 0:
            raise ValueError("open_timeout_seconds must be >= 0")
        return self

    def configure_logging(self) -> structlog.stdlib.BoundLogger:
        """Configure structlog and stdlib logging at ``log_level``."""
        return configure_structlog(log_level=self.log_level)
