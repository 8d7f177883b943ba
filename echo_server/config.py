from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path

import structlog
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


LOG_LEVELS = ("trace", "debug", "info", "warn", "warning", "error")

_PATTERN_SEPARATOR = re.compile(r"[,;] ?")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", populate_by_name=True)

    host: str = Field(default="::", alias="ECHO_HOST")
    port: int = Field(default=8080, alias="ECHO_PORT", ge=1, le=65535)
    metrics: bool = Field(default=True, alias="ECHO_METRICS")
    metrics_port: int = Field(default=9090, alias="ECHO_METRICS_PORT", ge=1, le=65535)
    metrics_use_tls: bool = Field(default=False, alias="ECHO_METRICS_USE_TLS")
    log_level: str = Field(default="info", alias="ECHO_LOG_LEVEL")
    tls_key: str | None = Field(default=None, alias="ECHO_TLS_KEY")
    tls_cert: str | None = Field(default=None, alias="ECHO_TLS_CERT")
    skip_logging_for: str = Field(default="", alias="ECHO_SKIP_LOGGING_FOR")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = value.strip().lower()
        if level not in LOG_LEVELS:
            raise ValueError(f"log level must be one of {', '.join(LOG_LEVELS)}")
        return level

    @field_validator("tls_key", "tls_cert")
    @classmethod
    def _blank_is_unset(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _tls_pair(self) -> "Settings":
        if (self.tls_key is None) != (self.tls_cert is None):
            raise ValueError("tls_key and tls_cert must be provided together")
        return self

    @property
    def tls_enabled(self) -> bool:
        return self.tls_key is not None and self.tls_cert is not None

    @property
    def tls_key_path(self) -> Path | None:
        return Path(self.tls_key) if self.tls_key else None

    @property
    def tls_cert_path(self) -> Path | None:
        return Path(self.tls_cert) if self.tls_cert else None

    @property
    def unlogged_patterns(self) -> list[re.Pattern[str]]:
        return parse_unlogged_patterns(self.skip_logging_for)


def parse_unlogged_patterns(value: str) -> list[re.Pattern[str]]:
    """Compile the `,`/`;` separated URL patterns whose requests are not logged.

    Patterns that fail to compile are dropped with a warning.
    """
    patterns: list[re.Pattern[str]] = []
    if not value:
        return patterns

    for raw in _PATTERN_SEPARATOR.split(value):
        if not raw:
            continue
        try:
            patterns.append(re.compile(raw))
        except re.error:
            structlog.get_logger("config").warning("unlogged_pattern_rejected", pattern=raw)

    return patterns


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
