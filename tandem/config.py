"""
Settings for tandem, read from ``TANDEM_*`` environment variables.
"""

from dataclasses import dataclass
import logging
import os
from pathlib import Path

from .exceptions import ConfigurationError

DEFAULT_BASE_URL = "http://127.0.0.1:3000"
DEFAULT_STORE_PATH = Path.home() / ".tandem" / "sessions.json"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(
            f"{name} must be an integer, got {raw!r}", code="invalid_setting"
        ) from None
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative", code="invalid_setting")
    return value


@dataclass
class Settings:
    """Runtime configuration."""

    base_url: str = DEFAULT_BASE_URL
    api_key: str | None = None
    store_path: Path = DEFAULT_STORE_PATH
    agent_retries: int = 0
    timeout: int = 300
    log_level: str = "WARNING"
    chat_path: str = "/api/ai/chat"
    agent_path: str = "/api/crawl"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from the environment.

        Raises:
            ConfigurationError: if a numeric variable is not a non-negative integer
        """
        store_path = os.getenv("TANDEM_STORE_PATH")
        return cls(
            base_url=os.getenv("TANDEM_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
            api_key=os.getenv("TANDEM_API_KEY") or None,
            store_path=Path(store_path).expanduser() if store_path else DEFAULT_STORE_PATH,
            agent_retries=_int_env("TANDEM_AGENT_RETRIES", 0),
            timeout=_int_env("TANDEM_TIMEOUT", 300),
            log_level=os.getenv("TANDEM_LOG_LEVEL", "WARNING").upper(),
        )


def configure_logging(level: str = "WARNING") -> None:
    """Configure the root logger once for command-line use."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.WARNING
    logging.basicConfig(level=numeric, format=LOG_FORMAT)
