from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from backend.preferences import (
    DEFAULT_CURRENCY,
    DEFAULT_TIMEZONE,
    normalize_currency,
    validate_timezone,
)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./budget.db"
    frontend_origin: str = "http://localhost:3000"
    default_currency: str = DEFAULT_CURRENCY
    default_timezone: str = DEFAULT_TIMEZONE
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            frontend_origin=os.getenv("FRONTEND_ORIGIN", cls.frontend_origin),
            default_currency=_env_currency(),
            default_timezone=_env_timezone(),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).strip().upper() or cls.log_level,
        )


def configure_logging(settings: Settings) -> None:
    level = logging.getLevelName(settings.log_level)
    if not isinstance(level, int):
        level = logging.INFO
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level)


def _env_currency() -> str:
    raw = os.getenv("DEFAULT_CURRENCY", DEFAULT_CURRENCY)
    try:
        return normalize_currency(raw)
    except ValueError:
        return DEFAULT_CURRENCY


def _env_timezone() -> str:
    raw = os.getenv("DEFAULT_TIMEZONE", DEFAULT_TIMEZONE)
    try:
        return validate_timezone(raw)
    except ValueError:
        return DEFAULT_TIMEZONE
