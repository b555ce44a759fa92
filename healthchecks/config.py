from __future__ import annotations

import re

from pydantic import field_validator
from pydantic_settings import BaseSettings

# A slow server is a failed server.
DEFAULT_TIMEOUT = 3.0

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible) healthchecks"

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m)?\s*$", re.IGNORECASE)
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0}


def parse_duration(value: str | float | int) -> float:
    """Convert ``"3s"`` / ``"500ms"`` / ``"1m"`` / ``2.5`` into seconds."""
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        match = _DURATION_RE.match(value)
        if not match:
            raise ValueError(f"Invalid duration: {value!r}")
        unit = (match.group(2) or "s").lower()
        seconds = float(match.group(1)) * _UNIT_SECONDS[unit]
    if seconds <= 0:
        raise ValueError(f"Duration must be positive, got {value!r}")
    return seconds


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Checks
    checks_file: str = "checks"  # line-oriented, or .yaml / .yml
    checks_path: str = "/_healthchecks"  # route the results are served on
    check_timeout: float = DEFAULT_TIMEOUT  # seconds per probe (per redirect hop)

    # Loopback target. Empty / 0 = use the socket the request arrived on
    loopback_protocol: str = ""  # http | https
    loopback_host: str = ""
    loopback_port: int = 0

    # Probe client
    verify_tls: bool = False  # loopback certs are issued for the public hostname
    user_agent: str = DEFAULT_USER_AGENT

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Logging
    log_level: str = "INFO"

    # Notifications on failure (optional, Slack / Telegram)
    slack_webhook_url: str = ""
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""

    @field_validator("check_timeout", mode="before")
    @classmethod
    def _parse_timeout(cls, value: str | float | int) -> float:
        return parse_duration(value)

    @field_validator("loopback_protocol")
    @classmethod
    def _check_protocol(cls, value: str) -> str:
        value = value.lower()
        if value not in ("", "http", "https"):
            raise ValueError(f"loopback_protocol must be http or https, got {value!r}")
        return value


settings = Settings()
