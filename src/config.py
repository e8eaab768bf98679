"""
FocusBoard Notifier — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class ConfigError(Exception):
    """Raised when a required setting is missing at the point of use."""


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str
    TELEGRAM_BOT_USERNAME: str = ""

    # Shared secret for the external sweep trigger
    CRON_SECRET: str = ""

    # SQLite
    DATABASE_PATH: str = "data/focusboard.db"

    # Reminder windows (minutes after target time that still count as due)
    SWEEP_WINDOW_MINUTES: int = 5
    POLL_WINDOW_MINUTES: int = 2

    # Drivers
    POLL_INTERVAL_SECONDS: int = 60
    SWEEP_INTERVAL_MINUTES: int = 5
    RUN_SWEEP_IN_BOT: bool = True
    SEND_TIMEOUT_SECONDS: float = 10.0

    # Telegram link handshake
    LINK_TTL_MINUTES: int = 30

    # Browser push (VAPID)
    VAPID_PRIVATE_KEY: str = ""
    VAPID_CLAIMS_EMAIL: str = ""

    @field_validator(
        "SWEEP_WINDOW_MINUTES",
        "POLL_WINDOW_MINUTES",
        "POLL_INTERVAL_SECONDS",
        "SWEEP_INTERVAL_MINUTES",
        "LINK_TTL_MINUTES",
        mode="before",
    )
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        return int(v)

    @field_validator("RUN_SWEEP_IN_BOT", mode="before")
    @classmethod
    def parse_flag(cls, v: str | bool) -> bool:
        if isinstance(v, bool):
            return v
        return str(v).strip().lower() in ("1", "true", "yes", "on")

    @field_validator("TELEGRAM_BOT_USERNAME", mode="before")
    @classmethod
    def strip_at(cls, v: str) -> str:
        return str(v or "").strip().lstrip("@")


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        TELEGRAM_BOT_USERNAME=os.getenv("TELEGRAM_BOT_USERNAME", ""),
        CRON_SECRET=os.getenv("CRON_SECRET", ""),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/focusboard.db"),
        SWEEP_WINDOW_MINUTES=os.getenv("SWEEP_WINDOW_MINUTES", "5"),
        POLL_WINDOW_MINUTES=os.getenv("POLL_WINDOW_MINUTES", "2"),
        POLL_INTERVAL_SECONDS=os.getenv("POLL_INTERVAL_SECONDS", "60"),
        SWEEP_INTERVAL_MINUTES=os.getenv("SWEEP_INTERVAL_MINUTES", "5"),
        RUN_SWEEP_IN_BOT=os.getenv("RUN_SWEEP_IN_BOT", "true"),
        SEND_TIMEOUT_SECONDS=os.getenv("SEND_TIMEOUT_SECONDS", "10"),
        LINK_TTL_MINUTES=os.getenv("LINK_TTL_MINUTES", "30"),
        VAPID_PRIVATE_KEY=os.getenv("VAPID_PRIVATE_KEY", ""),
        VAPID_CLAIMS_EMAIL=os.getenv("VAPID_CLAIMS_EMAIL", ""),
    )


# Singleton — imported by all other modules as:
#   from src.config import settings
settings = _load_settings()
