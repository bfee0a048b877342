"""Runtime configuration and logging setup."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import PROOF_VALIDITY_MS


class Settings(BaseSettings):
    """Settings loaded from ``MERKLEAUTH_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="MERKLEAUTH_",
        case_sensitive=False,
    )

    log_level: str = "INFO"

    # Maximum accepted age of a proof bundle. Defaults to the fixed five
    # minute window; overriding it changes which bundles verify.
    proof_validity_ms: int = Field(PROOF_VALIDITY_MS, ge=0)

    # Upper bound on concurrently held HTTP sessions.
    max_sessions: int = Field(128, ge=1)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


class JSONFormatter(logging.Formatter):
    """Render log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: str | None = None) -> logging.Logger:
    """Install a JSON stream handler on the ``merkleauth`` logger."""

    logger = logging.getLogger("merkleauth")
    logger.setLevel((level or get_settings().log_level).upper())
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger


__all__ = ["JSONFormatter", "Settings", "configure_logging", "get_settings"]
